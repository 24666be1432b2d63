from chikamap.db.models import PriceClassification
from chikamap.services.normalize import (
    clean_ratio,
    detect_latest_year,
    feature_to_point,
    feature_to_record,
    parse_change_rate,
    parse_era_year,
    parse_price,
    point_identity,
)
from fakes import feature


def test_parse_price():
    assert parse_price("1,230,000(円/㎡)") == 1230000
    assert parse_price("45,600") == 45600
    assert parse_price(98000) == 98000
    assert parse_price("") is None
    assert parse_price("-") is None
    assert parse_price(None) is None


def test_parse_change_rate():
    assert parse_change_rate("3.2") == 3.2
    assert parse_change_rate("-1.5") == -1.5
    assert parse_change_rate("") is None
    assert parse_change_rate("abc") is None


def test_parse_era_year():
    assert parse_era_year("令和7年") == 2025
    assert parse_era_year("令和元年") == 2019
    assert parse_era_year("平成30年") == 2018
    assert parse_era_year("平成元年") == 1989
    assert parse_era_year("2024年") is None
    assert parse_era_year(None) is None


def test_detect_latest_year_only_raises():
    feats = [
        feature(35.0, 139.0, year_label="令和6年"),
        feature(35.0, 139.0, year_label="令和7年"),
        {"properties": {}},
    ]
    assert detect_latest_year(feats, 2024) == 2025
    assert detect_latest_year(feats, 2026) == 2026
    assert detect_latest_year([], 2024) == 2024


def test_point_identity_fallback():
    assert point_identity({"point_id": 42}, 35.0, 139.0, 1) == "42"
    assert point_identity({}, 35.5, 139.5, 0) == "35.5-139.5-0"
    assert point_identity({}, 35.5, 139.5, 1) == "35.5-139.5-1"


def test_feature_to_record():
    rec = feature_to_record(
        feature(35.68, 139.76, point_id="P1", place_name_ja="丸の内"), 0
    )
    assert rec["point_id"] == "P1"
    assert (rec["lat"], rec["lon"]) == (35.68, 139.76)
    assert rec["price"] == 1000000
    assert rec["change_rate"] == 2.5
    assert rec["place_name"] == "丸の内"
    assert rec["city_name"] == "千代田区"
    assert feature_to_record({"properties": {}}, 0) is None


def test_feature_to_record_id_matches_point_id_without_upstream_id():
    for cls in PriceClassification:
        f = feature(35.5, 139.5)
        rec = feature_to_record(f, int(cls))
        assert rec["point_id"] == f"35.5-139.5-{int(cls)}"
        assert rec["point_id"] == feature_to_point(f, cls).id


def test_feature_to_record_classification_from_properties():
    rec = feature_to_record(feature(35.5, 139.5, land_price_type="1"), None)
    assert rec["price_classification"] == 1
    assert rec["point_id"] == "35.5-139.5-1"


def test_feature_to_point_display_fields():
    point = feature_to_point(
        feature(
            35.68,
            139.76,
            u_regulations_floor_area_ratio_ja="-800(%)",
            u_regulations_building_coverage_ratio_ja="80(%)",
        ),
        PriceClassification.PREFECTURAL_SURVEY,
    )
    assert point.id == "35.68-139.76-1"
    assert point.point_id is None
    assert point.current_price == 1000000
    assert point.floor_area_ratio == "800(%)★"
    assert point.building_coverage_ratio == "80(%)"
    assert point.nearest_station == "-"


def test_clean_ratio():
    assert clean_ratio(None) == "-"
    assert clean_ratio(" 60(%) ") == "60(%)"
