# chikamap/core/config.py
# -----------------------------------------------------------------------------
# 전역 설정 관리 (pydantic-settings v2)
# - .env 파일과 OS 환경변수를 읽어 Settings 객체로 제공
# - 지가 파이프라인 튜닝 상수(줌/프로브 한도/배치 크기 등)도 여기서 관리
# -----------------------------------------------------------------------------
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # 기본
    APP_NAME: str = "chikamap"
    ENV: str = "dev"
    DATABASE_URL: str = "sqlite+aiosqlite:///./chikamap.db"

    # 외부 API 키들
    REINFOLIB_API_KEY: str | None = None  # 不動産情報ライブラリ API 키
    REINFOLIB_API_URL: str = (
        "https://www.reinfolib.mlit.go.jp/ex-api/external/XPT002"
    )
    GOOGLE_API_KEY: str | None = None
    CRON_SECRET: str | None = None

    # 지가 타일 파이프라인
    LANDPRICE_ZOOM: int = 15  # 실시간 조회 + 캐시 타일 인덱스 (API 지원 범위 13~15)
    BATCH_ZOOM: int = 13  # 배치 조회용 (~4km 타일), 저장은 LANDPRICE_ZOOM 기준
    DAILY_PROBE_LIMIT: int = 5
    MAX_SEARCH_RESULTS: int = 100
    MAX_TILES_WARNING: int = 20
    HISTORY_YEARS: int = 5
    BATCH_SIZE: int = 10
    SEARCH_LIMIT: int = 20
    TILE_CACHE_TTL: int = 600  # 초

    # 업스트림 호출
    UPSTREAM_ATTEMPTS: int = 3
    UPSTREAM_BACKOFF_BASE: float = 0.5
    UPSTREAM_TIMEOUT: float = 10.0

    # 게이트웨이
    RATE_LIMIT_PER_MINUTE: int = 120
    PLACES_RATE_LIMIT_PER_MINUTE: int = 30
    CORS_ORIGINS: str = "*"

    # 로깅
    LOG_LEVEL: str = "INFO"
    LOG_DIR: str = "logs"

    model_config = SettingsConfigDict(
        env_file=".env", extra="ignore"  # .env에 추가 필드 무시
    )

    @field_validator("DATABASE_URL")
    @classmethod
    def _async_driver(cls, v: str) -> str:
        # 호스팅 업체가 주는 postgres:// URL은 asyncpg 드라이버로 교체
        if v.startswith("postgres://"):
            return "postgresql+asyncpg://" + v[len("postgres://") :]
        if v.startswith("postgresql://"):
            return "postgresql+asyncpg://" + v[len("postgresql://") :]
        return v

    @property
    def cors_origins(self) -> list[str]:
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]


settings = Settings()
