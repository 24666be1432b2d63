# chikamap/services/landprice.py
# -----------------------------------------------------------------------------
# 지가 조회 오케스트레이터
# - fetch_region: bbox -> 타일 목록 -> (타일 × 구분) 병렬 조회 -> 중복 제거
#                 -> bbox 필터 -> 상한 절단
# - fetch_point_history: 한 지점의 과거 N년 가격 (상세 보기 시 지연 조회)
# - 스토어/프로버/업스트림 핸들은 프로세스당 1회 생성해 주입
# -----------------------------------------------------------------------------
from __future__ import annotations

import asyncio
import math
from dataclasses import dataclass
from functools import lru_cache
from typing import Callable, Dict, Iterable, List, Optional

from loguru import logger

from chikamap.core.config import settings
from chikamap.core.tiles import MAX_LATITUDE, Bounds, Tile, to_tile, tiles_covering
from chikamap.db.models import PriceClassification
from chikamap.db.session import AsyncSessionLocal
from chikamap.schemas.landprice import LandPricePoint, PriceHistory, SearchResult
from chikamap.services.cache_store import LandPriceCacheStore
from chikamap.services.freshness import FreshnessProber
from chikamap.services.normalize import (
    feature_coords,
    feature_to_point,
    parse_change_rate,
    parse_price,
    point_identity,
)
from chikamap.services.reinfolib import ReinfolibClient
from chikamap.services.resolver import TileResolver, TileResult
from chikamap.services.tile_cache import TileMemoryCache

ProgressCallback = Callable[[int, int], None]


@dataclass(slots=True)
class RegionResult:
    points: List[LandPricePoint]
    truncated: bool
    total_matched: int
    latest_year: int
    tile_count: int = 0


def validate_bounds(bounds: Bounds) -> None:
    values = (bounds.north, bounds.south, bounds.east, bounds.west)
    if not all(isinstance(v, (int, float)) and math.isfinite(v) for v in values):
        raise ValueError("bounds must be finite numbers")
    if abs(bounds.north) > MAX_LATITUDE or abs(bounds.south) > MAX_LATITUDE:
        raise ValueError(f"latitude must be within ±{MAX_LATITUDE}")
    if abs(bounds.east) > 180 or abs(bounds.west) > 180:
        raise ValueError("longitude must be within ±180")


def coerce_classifications(values: Iterable) -> List[PriceClassification]:
    out: List[PriceClassification] = []
    for v in values:
        try:
            c = PriceClassification(int(v))
        except (TypeError, ValueError):
            raise ValueError(f"invalid price classification: {v!r}") from None
        if c not in out:
            out.append(c)
    return out


class LandPriceService:
    def __init__(
        self,
        store: LandPriceCacheStore,
        prober: FreshnessProber,
        resolver: TileResolver,
        *,
        zoom: Optional[int] = None,
        max_results: Optional[int] = None,
    ) -> None:
        self.store = store
        self.prober = prober
        self.resolver = resolver
        self.zoom = zoom if zoom is not None else settings.LANDPRICE_ZOOM
        self.max_results = (
            max_results if max_results is not None else settings.MAX_SEARCH_RESULTS
        )
        if self.max_results < 0:
            raise ValueError("max_results must be >= 0")

    async def fetch_tile(
        self, tile: Tile, year: int, classification: Optional[int] = None
    ) -> TileResult:
        return await self.resolver.resolve(tile, year, classification)

    async def fetch_region(
        self,
        bounds: Bounds,
        classifications: Iterable,
        on_progress: Optional[ProgressCallback] = None,
    ) -> RegionResult:
        validate_bounds(bounds)
        wanted = coerce_classifications(classifications)

        state = await self.prober.get_state()
        latest_year = state.latest_year
        tiles = tiles_covering(bounds, self.zoom)
        if not wanted or not tiles:
            return RegionResult([], False, 0, latest_year, len(tiles))

        total = len(tiles) * len(wanted)
        completed = 0

        async def one(tile: Tile, cls: PriceClassification):
            nonlocal completed
            try:
                result = await self.resolver.resolve(tile, latest_year, int(cls))
            except Exception as e:
                # 한 유닛 실패가 형제 유닛을 중단시키지 않음
                logger.error(f"[Region] {tile} cls={int(cls)} 조회 오류: {e!r}")
                result = TileResult()
            completed += 1
            if on_progress is not None:
                on_progress(completed, total)
            return cls, result

        results = await asyncio.gather(
            *(one(tile, cls) for tile in tiles for cls in wanted)
        )

        merged: Dict[str, LandPricePoint] = {}
        for cls, result in results:
            for feature in result.features:
                point = feature_to_point(feature, cls)
                if point is not None:
                    merged[point.id] = point

        inside = [p for p in merged.values() if bounds.contains(p.lat, p.lon)]
        return RegionResult(
            points=inside[: self.max_results],
            truncated=len(inside) > self.max_results,
            total_matched=len(inside),
            latest_year=latest_year,
            tile_count=len(tiles),
        )

    async def fetch_point_history(
        self,
        point: LandPricePoint,
        years_back: Optional[int] = None,
        *,
        latest_year: Optional[int] = None,
        ascending: bool = False,
    ) -> List[PriceHistory]:
        if years_back is None:
            years_back = settings.HISTORY_YEARS
        if years_back < 1:
            raise ValueError("years_back must be >= 1")
        if latest_year is None:
            latest_year = (await self.prober.get_state()).latest_year

        x, y = to_tile(point.lat, point.lon, self.zoom)
        tile = Tile(x, y, self.zoom)
        cls = int(point.price_classification)

        by_year: Dict[int, PriceHistory] = {
            latest_year: PriceHistory(
                year=latest_year,
                price=point.current_price,
                change_rate=point.year_on_year_change_rate,
            )
        }

        async def one(year: int) -> None:
            try:
                result = await self.resolver.resolve(tile, year, cls)
            except Exception as e:
                logger.error(f"[History] {point.id} year={year} 조회 오류: {e!r}")
                return
            for feature in result.features:
                coords = feature_coords(feature)
                if coords is None:
                    continue
                props = feature.get("properties") or {}
                if point_identity(props, *coords, cls) == point.id:
                    by_year[year] = PriceHistory(
                        year=year,
                        price=parse_price(props.get("u_current_years_price_ja")),
                        change_rate=parse_change_rate(
                            props.get("year_on_year_change_rate")
                        ),
                    )
                    break

        await asyncio.gather(*(one(latest_year - i) for i in range(1, years_back)))

        years = [latest_year - i for i in range(years_back)]
        if ascending:
            years.reverse()
        return [by_year.get(yr, PriceHistory(year=yr)) for yr in years]

    async def search_by_name(self, query: str) -> List[SearchResult]:
        return await self.store.search_by_name(query, limit=settings.SEARCH_LIMIT)


@lru_cache(maxsize=1)
def get_landprice_service() -> LandPriceService:
    """프로세스당 1회 생성 (FastAPI Depends 용)"""
    store = LandPriceCacheStore(AsyncSessionLocal)
    prober = FreshnessProber(AsyncSessionLocal)
    upstream = ReinfolibClient()
    resolver = TileResolver(
        store,
        prober,
        upstream,
        memory_cache=TileMemoryCache(settings.TILE_CACHE_TTL),
    )
    return LandPriceService(store, prober, resolver)
