from chikamap.core.outcome import TRANSPORT, Outcome


def feature(lat, lon, point_id=None, price="1,000,000(円/㎡)", year_label="令和6年", **props):
    properties = {
        "u_current_years_price_ja": price,
        "year_on_year_change_rate": "2.5",
        "target_year_name_ja": year_label,
        "prefecture_name_ja": "東京都",
        "city_county_name_ja": "千代田区",
        **props,
    }
    if point_id is not None:
        properties["point_id"] = point_id
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [lon, lat]},
        "properties": properties,
    }


class FakeUpstream:
    """(z, x, y, year, cls) -> features 고정 응답"""

    def __init__(self, tiles=None, fail=False):
        self.tiles = tiles or {}
        self.fail = fail
        self.calls = []

    async def fetch_tile(self, z, x, y, year, classification=None, *, attempts=None):
        self.calls.append((z, x, y, year, classification))
        if self.fail:
            return Outcome.failure(TRANSPORT)
        features = self.tiles.get((z, x, y, year, classification), [])
        return Outcome.success({"type": "FeatureCollection", "features": list(features)})
