# chikamap/core/logging.py
# -----------------------------------------------------------------------------
# Loguru 기반 로깅 설정
# - 회전/백트레이스/레벨 지정
# - 파일 싱크 + stderr 싱크
# -----------------------------------------------------------------------------
import sys
from pathlib import Path

from loguru import logger

from chikamap.core.config import settings

_configured = False


def setup_logging(level: str | None = None, log_dir: str | None = None) -> None:
    """서버 기동 시 1회만 호출. 중복 호출은 무시."""
    global _configured
    if _configured:
        return

    level = level or settings.LOG_LEVEL
    path = Path(log_dir or settings.LOG_DIR)
    path.mkdir(exist_ok=True, parents=True)

    logger.remove()  # 기본 핸들러 제거
    logger.add(sys.stderr, level=level)
    logger.add(
        path / "app.log",
        rotation="10 MB",
        retention="10 files",
        enqueue=True,  # 멀티프로세스 안전
        backtrace=True,
        diagnose=False,  # 변수값 미출력
        level=level,
    )
    _configured = True
