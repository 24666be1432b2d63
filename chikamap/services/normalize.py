# chikamap/services/normalize.py
# -----------------------------------------------------------------------------
# 업스트림(XPT002) GeoJSON Feature 정규화
# - 가격 문자열 "1,230,000(円/㎡)" -> int
# - 和暦 연도 라벨 "令和7年" -> 2025
# - Feature -> DB 저장 레코드 / UI 표시용 LandPricePoint
# -----------------------------------------------------------------------------
from __future__ import annotations

import re
from typing import Any, Dict, Iterable, List, Optional

from chikamap.db.models import PriceClassification
from chikamap.schemas.landprice import LandPricePoint

# 元号 -> (원년의 서기 - 1)
_ERA_OFFSETS = {"令和": 2018, "平成": 1988}
_ERA_RE = re.compile(r"(令和|平成)\s*(元|\d+)\s*年")
_DIGITS_RE = re.compile(r"[^0-9]")


def parse_price(value: Any) -> Optional[int]:
    """숫자 이외 문자를 제거하고 정수로. 실패 시 None."""
    if value is None:
        return None
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value)
    cleaned = _DIGITS_RE.sub("", str(value).split("(")[0])
    if not cleaned:
        return None
    try:
        return int(cleaned)
    except ValueError:
        return None


def parse_change_rate(value: Any) -> Optional[float]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_era_year(label: Any) -> Optional[int]:
    if not isinstance(label, str):
        return None
    m = _ERA_RE.search(label)
    if not m:
        return None
    era, num = m.groups()
    n = 1 if num == "元" else int(num)
    return _ERA_OFFSETS[era] + n


def detect_latest_year(features: Iterable[Dict[str, Any]], current: int) -> int:
    """응답 안의 target_year_name_ja 중 가장 최신 연도 (없으면 current)"""
    latest = current
    for f in features:
        year = parse_era_year((f.get("properties") or {}).get("target_year_name_ja"))
        if year is not None and year > latest:
            latest = year
    return latest


def format_price(price: Optional[int]) -> Optional[str]:
    return f"{price:,}" if price is not None else None


def feature_coords(feature: Dict[str, Any]) -> Optional[tuple[float, float]]:
    """(lat, lon). GeoJSON 좌표 순서는 [lon, lat]"""
    try:
        lon, lat = feature["geometry"]["coordinates"][:2]
        return float(lat), float(lon)
    except (KeyError, TypeError, ValueError):
        return None


def point_identity(
    props: Dict[str, Any], lat: float, lon: float, classification: int
) -> str:
    """업스트림 point_id, 없으면 좌표+구분으로 합성 (같은 좌표의 두 구분 분리)"""
    pid = props.get("point_id")
    if pid not in (None, ""):
        return str(pid)
    return f"{lat}-{lon}-{classification}"


def feature_to_record(
    feature: Dict[str, Any], classification: Optional[int]
) -> Optional[Dict[str, Any]]:
    """DB upsert 용 레코드. 좌표가 없으면 None."""
    coords = feature_coords(feature)
    if coords is None:
        return None
    lat, lon = coords
    props = dict(feature.get("properties") or {})
    if classification is None:
        classification = parse_price(props.get("land_price_type")) or 0
    city = (props.get("city_county_name_ja") or "") + (
        props.get("ward_town_village_name_ja") or ""
    )
    return {
        "point_id": point_identity(props, lat, lon, int(classification)),
        "lat": lat,
        "lon": lon,
        "price_classification": int(classification),
        "standard_lot_number": props.get("standard_lot_number_ja") or None,
        "prefecture_name": props.get("prefecture_name_ja") or None,
        "city_name": city,
        "address_display": props.get("residence_display_name_ja") or None,
        "place_name": props.get("place_name_ja") or None,
        "properties": props,
        "price": parse_price(props.get("u_current_years_price_ja")),
        "change_rate": parse_change_rate(props.get("year_on_year_change_rate")),
    }


def clean_ratio(value: Optional[str]) -> str:
    """건폐율/용적률 "-800(%)" -> "800(%)★" (지정 용적률 초과 지점 표시)"""
    if not value:
        return "-"
    cleaned = value.strip()
    if cleaned.startswith("-"):
        cleaned = cleaned[1:] + "★"
    return cleaned or "-"


def _s(props: Dict[str, Any], key: str) -> str:
    v = props.get(key)
    return str(v) if v not in (None, "") else "-"


def feature_to_point(
    feature: Dict[str, Any], classification: PriceClassification
) -> Optional[LandPricePoint]:
    coords = feature_coords(feature)
    if coords is None:
        return None
    lat, lon = coords
    props = feature.get("properties") or {}
    pid = props.get("point_id")
    return LandPricePoint(
        id=point_identity(props, lat, lon, int(classification)),
        point_id=str(pid) if pid not in (None, "") else None,
        lat=lat,
        lon=lon,
        price_classification=classification,
        standard_lot_number=_s(props, "standard_lot_number_ja"),
        location_number=_s(props, "location_number_ja"),
        residence_display=_s(props, "residence_display_name_ja"),
        prefecture_name=_s(props, "prefecture_name_ja"),
        city_name=(props.get("city_county_name_ja") or "")
        + (props.get("ward_town_village_name_ja") or ""),
        current_price=parse_price(props.get("u_current_years_price_ja")),
        current_price_display=_s(props, "u_current_years_price_ja"),
        year_on_year_change_rate=parse_change_rate(
            props.get("year_on_year_change_rate")
        ),
        use_category=_s(props, "use_category_name_ja"),
        cadastral=_s(props, "u_cadastral_ja"),
        usage_status=_s(props, "usage_status_name_ja"),
        surrounding_usage_status=_s(
            props, "current_usage_status_of_surrounding_land_name_ja"
        ),
        front_road_width=parse_change_rate(props.get("front_road_width")),
        front_road_azimuth=_s(props, "front_road_azimuth_name_ja"),
        front_road_pavement=_s(props, "front_road_pavement_condition"),
        side_road_azimuth=_s(props, "side_road_azimuth_name_ja"),
        side_road=_s(props, "side_road_name_ja"),
        nearest_station=_s(props, "nearest_station_name_ja"),
        proximity_to_transportation=_s(props, "proximity_to_transportation_facilities"),
        distance_to_station=_s(props, "u_road_distance_to_nearest_station_name_ja"),
        regulations_use_category=_s(props, "regulations_use_category_name_ja"),
        building_coverage_ratio=clean_ratio(
            props.get("u_regulations_building_coverage_ratio_ja")
        ),
        floor_area_ratio=clean_ratio(props.get("u_regulations_floor_area_ratio_ja")),
        fireproof_area=_s(props, "regulations_fireproof_name_ja"),
        altitude_district=_s(props, "regulations_altitude_district_name_ja"),
    )


def features_of(payload: Optional[Dict[str, Any]]) -> List[Dict[str, Any]]:
    if not isinstance(payload, dict):
        return []
    feats = payload.get("features")
    return feats if isinstance(feats, list) else []
