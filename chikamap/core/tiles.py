# chikamap/core/tiles.py
# -----------------------------------------------------------------------------
# XYZ(슬리피맵) 타일 계산
# - 위경도 <-> 타일 인덱스 (Web Mercator)
# - 검색 범위(bbox)를 덮는 타일 목록
# -----------------------------------------------------------------------------
from __future__ import annotations

import math
from dataclasses import dataclass
from typing import NamedTuple

# Web Mercator 투영이 정의되는 위도 한계
MAX_LATITUDE = 85.0511

# 업스트림(XPT002)이 받는 줌 범위
MIN_API_ZOOM = 13
MAX_API_ZOOM = 15


class Tile(NamedTuple):
    x: int
    y: int
    z: int


@dataclass(frozen=True, slots=True)
class Bounds:
    north: float
    south: float
    east: float
    west: float

    def contains(self, lat: float, lon: float) -> bool:
        """경계 포함(inclusive)"""
        return self.south <= lat <= self.north and self.west <= lon <= self.east


def to_tile(lat: float, lon: float, zoom: int) -> tuple[int, int]:
    n = 2**zoom
    x = math.floor((lon + 180.0) / 360.0 * n)
    lat_rad = math.radians(lat)
    y = math.floor(
        (1.0 - math.log(math.tan(lat_rad) + 1.0 / math.cos(lat_rad)) / math.pi)
        / 2.0
        * n
    )
    return x, y


def _tile_lat(y: int, zoom: int) -> float:
    n = 2**zoom
    return math.degrees(math.atan(math.sinh(math.pi * (1 - 2 * y / n))))


def tile_bounds(x: int, y: int, zoom: int) -> Bounds:
    """타일 한 장이 덮는 범위 (to_tile 의 역변환)"""
    n = 2**zoom
    return Bounds(
        north=_tile_lat(y, zoom),
        south=_tile_lat(y + 1, zoom),
        west=x / n * 360.0 - 180.0,
        east=(x + 1) / n * 360.0 - 180.0,
    )


def tiles_covering(bounds: Bounds, zoom: int) -> list[Tile]:
    """북서/남동 모서리 타일 사이의 직사각형 전체. 뒤집힌 bbox 는 빈 목록."""
    nw_x, nw_y = to_tile(bounds.north, bounds.west, zoom)
    se_x, se_y = to_tile(bounds.south, bounds.east, zoom)
    return [
        Tile(x, y, zoom)
        for x in range(nw_x, se_x + 1)
        for y in range(nw_y, se_y + 1)
    ]


def estimate_tile_count(bounds: Bounds, zoom: int) -> int:
    nw_x, nw_y = to_tile(bounds.north, bounds.west, zoom)
    se_x, se_y = to_tile(bounds.south, bounds.east, zoom)
    return max(0, se_x - nw_x + 1) * max(0, se_y - nw_y + 1)


def search_bounds_around(
    center_lat: float, center_lon: float, map_bounds: Bounds, ratio: float = 0.4
) -> Bounds:
    """지도 중심 기준으로 화면의 ratio(기본 40%) 크기 검색 범위"""
    lat_offset = (map_bounds.north - map_bounds.south) * ratio / 2
    lon_offset = (map_bounds.east - map_bounds.west) * ratio / 2
    return Bounds(
        north=center_lat + lat_offset,
        south=center_lat - lat_offset,
        east=center_lon + lon_offset,
        west=center_lon - lon_offset,
    )
