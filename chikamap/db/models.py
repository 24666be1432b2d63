# chikamap/db/models.py
# -----------------------------------------------------------------------------
# ORM 모델 정의
# - LandPriceMaster: 지점 마스터 (지점당 1행, 최신 연도 속성 스냅샷)
# - LandPriceYearly: 연도별 가격/변동률
# - ApiFreshnessState: 업스트림 프로브 상태 (싱글턴, id=1)
# - BatchProgress: 배치 백필 작업 큐
# -----------------------------------------------------------------------------
from enum import IntEnum

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
    func,
)

from chikamap.db.session import Base


class PriceClassification(IntEnum):
    OFFICIAL_APPRAISAL = 0  # 地価公示 (1/1 기준, 3월 공표)
    PREFECTURAL_SURVEY = 1  # 都道府県地価調査 (7/1 기준, 9월 공표)


class BatchStatus:
    PENDING = "pending"
    COMPLETED = "completed"
    ERROR = "error"


class LandPriceMaster(Base):
    __tablename__ = "land_price_masters"

    point_id = Column(String, primary_key=True)
    lat = Column(Float, nullable=False)
    lon = Column(Float, nullable=False)
    tile_z = Column(Integer, nullable=False)
    tile_x = Column(Integer, nullable=False)
    tile_y = Column(Integer, nullable=False)
    price_classification = Column(Integer, nullable=False)

    # 검색/표시용 비정규화 컬럼 (properties 에서 추출)
    standard_lot_number = Column(String)
    prefecture_name = Column(String)
    city_name = Column(String)
    address_display = Column(String)
    place_name = Column(String)

    properties = Column(JSON, nullable=False)  # latest_year 시점의 전체 속성
    latest_year = Column(Integer, nullable=False)

    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime, server_default=func.now())

    __table_args__ = (
        Index(
            "idx_masters_tile", "tile_z", "tile_x", "tile_y", "price_classification"
        ),
        Index("idx_masters_coords", "lat", "lon"),
    )


class LandPriceYearly(Base):
    __tablename__ = "land_price_yearly"

    point_id = Column(
        String,
        ForeignKey("land_price_masters.point_id", ondelete="CASCADE"),
        primary_key=True,
    )
    year = Column(Integer, primary_key=True)
    price = Column(Integer)  # 円/㎡, 파싱 불가 시 NULL
    change_rate = Column(Float)  # 전년 대비 %
    created_at = Column(DateTime, server_default=func.now())

    __table_args__ = (Index("idx_yearly_point", "point_id", "year"),)


class ApiFreshnessState(Base):
    __tablename__ = "api_freshness_state"

    id = Column(Integer, primary_key=True, default=1)
    latest_year = Column(Integer, nullable=False)
    probe_count = Column(Integer, nullable=False, default=0)
    probe_date = Column(Date, nullable=False)
    updated_at = Column(DateTime, server_default=func.now())

    __table_args__ = (CheckConstraint("id = 1", name="ck_freshness_singleton"),)


class BatchProgress(Base):
    __tablename__ = "batch_progress"

    id = Column(Integer, primary_key=True, autoincrement=True)
    tile_z = Column(Integer, nullable=False)
    tile_x = Column(Integer, nullable=False)
    tile_y = Column(Integer, nullable=False)
    year = Column(Integer, nullable=False)
    price_classification = Column(Integer, nullable=False)
    status = Column(String, nullable=False, default=BatchStatus.PENDING, index=True)
    processed_at = Column(DateTime)

    __table_args__ = (
        UniqueConstraint(
            "tile_z",
            "tile_x",
            "tile_y",
            "year",
            "price_classification",
            name="uq_batch_unit",
        ),
    )
