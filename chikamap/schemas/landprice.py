# chikamap/schemas/landprice.py
# -----------------------------------------------------------------------------
# 지가 API 요청/응답 스키마
# - 클라이언트(JS)와 맞추기 위해 camelCase alias 로 직렬화
# -----------------------------------------------------------------------------
import math
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from chikamap.core.tiles import MAX_LATITUDE, Bounds, search_bounds_around
from chikamap.db.models import PriceClassification


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SearchBounds(CamelModel):
    north: float
    south: float
    east: float
    west: float

    @field_validator("north", "south", "east", "west")
    @classmethod
    def _finite(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError("bounds must be finite")
        return v

    @field_validator("north", "south")
    @classmethod
    def _lat_range(cls, v: float) -> float:
        if abs(v) > MAX_LATITUDE:
            raise ValueError(f"latitude must be within ±{MAX_LATITUDE}")
        return v

    @field_validator("east", "west")
    @classmethod
    def _lon_range(cls, v: float) -> float:
        if abs(v) > 180:
            raise ValueError("longitude must be within ±180")
        return v

    def to_bounds(self) -> Bounds:
        return Bounds(north=self.north, south=self.south, east=self.east, west=self.west)


class PriceHistory(CamelModel):
    year: int
    price: Optional[int] = None
    change_rate: Optional[float] = None


class LandPricePoint(CamelModel):
    """UI 표시용으로 정리된 지가 지점"""

    id: str
    point_id: Optional[str] = None
    lat: float
    lon: float
    price_classification: PriceClassification

    # 기본 정보
    standard_lot_number: str = "-"
    location_number: str = "-"
    residence_display: str = "-"
    prefecture_name: str = "-"
    city_name: str = ""

    # 가격 정보
    current_price: Optional[int] = None
    current_price_display: str = "-"
    year_on_year_change_rate: Optional[float] = None
    price_history: List[PriceHistory] = Field(default_factory=list)

    # 토지 정보
    use_category: str = "-"
    cadastral: str = "-"
    usage_status: str = "-"
    surrounding_usage_status: str = "-"

    # 도로 정보
    front_road_width: Optional[float] = None
    front_road_azimuth: str = "-"
    front_road_pavement: str = "-"
    side_road_azimuth: str = "-"
    side_road: str = "-"

    # 교통 정보
    nearest_station: str = "-"
    proximity_to_transportation: str = "-"
    distance_to_station: str = "-"

    # 법규제 정보
    regulations_use_category: str = "-"
    building_coverage_ratio: str = "-"
    floor_area_ratio: str = "-"
    fireproof_area: str = "-"
    altitude_district: str = "-"


class MapCenter(CamelModel):
    lat: float = Field(..., ge=-MAX_LATITUDE, le=MAX_LATITUDE)
    lon: float = Field(..., ge=-180, le=180)


class RegionRequest(CamelModel):
    """
    검색 범위 지정 방법 두 가지
    - bounds: 검색 범위 그대로
    - mapBounds (+ center): 화면 범위에서 중심 기준 40% 크기로 축소
    """

    bounds: Optional[SearchBounds] = None
    map_bounds: Optional[SearchBounds] = None
    center: Optional[MapCenter] = None
    classifications: List[PriceClassification] = Field(
        default_factory=lambda: [
            PriceClassification.OFFICIAL_APPRAISAL,
            PriceClassification.PREFECTURAL_SURVEY,
        ]
    )

    @model_validator(mode="after")
    def _has_bounds(self) -> "RegionRequest":
        if self.bounds is None and self.map_bounds is None:
            raise ValueError("either bounds or mapBounds is required")
        return self

    def search_bounds(self) -> Bounds:
        if self.bounds is not None:
            return self.bounds.to_bounds()
        view = self.map_bounds.to_bounds()
        if self.center is not None:
            lat, lon = self.center.lat, self.center.lon
        else:
            lat, lon = (view.north + view.south) / 2, (view.east + view.west) / 2
        return search_bounds_around(lat, lon, view)


class RegionResponse(CamelModel):
    points: List[LandPricePoint]
    truncated: bool
    total_matched: int
    latest_year: int
    tile_count: int = 0
    tile_warning: bool = False


class HistoryRequest(CamelModel):
    point: LandPricePoint
    years_back: int = Field(5, ge=1, le=20)
    ascending: bool = False


class SearchResult(CamelModel):
    point_id: str
    lat: float
    lon: float
    place_name: Optional[str] = None
    prefecture_name: Optional[str] = None
    city_name: Optional[str] = None
    address_display: Optional[str] = None
    standard_lot_number: Optional[str] = None
    price_classification: int
    year: int
    current_price: Optional[str] = None


class SearchResponse(CamelModel):
    results: List[SearchResult]


class FeatureCollection(CamelModel):
    type: str = "FeatureCollection"
    features: List[Dict[str, Any]] = Field(default_factory=list)
    latest_year: Optional[int] = None


class BatchSummary(BaseModel):
    message: str = "Batch update completed"
    processed: int
    saved: int
    remaining: int
    errors: int = 0
