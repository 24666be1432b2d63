# chikamap/services/resolver.py
# -----------------------------------------------------------------------------
# 단일 타일 조회: 캐시(DB) / 업스트림 선택
#   1) 프로브 모드 (당일 프로브 < 한도): 카운트 증가 → API 직접 호출
#      → 응답의 和暦 연도 감지 → latest_year 갱신 → 비동기 DB 저장
#   2) 캐시 우선 모드: DB 조회, 있으면 반환 / 없으면 API (프로브 카운트 X)
#   3) API 실패(401 제외) 시 1회 직접 재호출, 그래도 실패면 빈 결과
# - 같은 (z, x, y, year, cls) 동시 요청은 하나의 호출을 공유
# -----------------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from loguru import logger

from chikamap.core.coalesce import RequestCoalescer
from chikamap.core.outcome import Outcome
from chikamap.core.tiles import Tile
from chikamap.services.cache_store import LandPriceCacheStore
from chikamap.services.freshness import FreshnessProber, ProbeState
from chikamap.services.normalize import detect_latest_year, features_of
from chikamap.services.reinfolib import ReinfolibClient
from chikamap.services.tile_cache import TileMemoryCache


@dataclass(slots=True)
class TileResult:
    features: List[Dict[str, Any]] = field(default_factory=list)
    latest_year: Optional[int] = None
    source: str = "empty"  # "upstream" | "cache" | "empty"

    def to_collection(self) -> Dict[str, Any]:
        return {
            "type": "FeatureCollection",
            "features": self.features,
            "latestYear": self.latest_year,
        }


class TileResolver:
    def __init__(
        self,
        store: LandPriceCacheStore,
        prober: FreshnessProber,
        upstream: ReinfolibClient,
        memory_cache: Optional[TileMemoryCache] = None,
        coalescer: Optional[RequestCoalescer] = None,
    ) -> None:
        self.store = store
        self.prober = prober
        self.upstream = upstream
        self.memory_cache = memory_cache
        self.coalescer = coalescer if coalescer is not None else RequestCoalescer()

    async def resolve(
        self, tile: Tile, year: int, classification: Optional[int] = None
    ) -> TileResult:
        key = (tile.z, tile.x, tile.y, year, classification)
        if self.memory_cache is not None:
            hit = self.memory_cache.get(key)
            if hit is not None:
                return hit

        result = await self.coalescer.run(
            key, lambda: self._resolve(tile, year, classification)
        )
        if self.memory_cache is not None and result.features:
            self.memory_cache.set(key, result)
        return result

    async def _resolve(
        self, tile: Tile, year: int, classification: Optional[int]
    ) -> TileResult:
        state, probe = await self.prober.begin_request()
        if probe:
            return await self._from_upstream(tile, year, classification, state)

        cached = await self.store.query_tile(tile, year, classification)
        if cached.ok and cached.value:
            return TileResult(
                features=cached.value, latest_year=state.latest_year, source="cache"
            )
        # DB 가 비어 있거나 실패 → 업스트림 폴백 (빈 캐시는 권위 있는 결과가 아님)
        return await self._from_upstream(tile, year, classification, state)

    async def _from_upstream(
        self,
        tile: Tile,
        year: int,
        classification: Optional[int],
        state: ProbeState,
    ) -> TileResult:
        outcome: Outcome = await self.upstream.fetch_tile(
            tile.z, tile.x, tile.y, year, classification
        )
        if not outcome.ok and not outcome.terminal:
            logger.warning(
                f"[Resolver] {tile} year={year} 업스트림 실패({outcome.reason}), 직접 재호출"
            )
            outcome = await self.upstream.fetch_tile(
                tile.z, tile.x, tile.y, year, classification, attempts=1
            )
        if not outcome.ok:
            return TileResult(latest_year=state.latest_year)

        features = features_of(outcome.value)
        latest = state.latest_year
        if features:
            detected = detect_latest_year(features, latest)
            if detected > latest:
                await self.prober.observe_year(detected)
                latest = detected
            self.store.schedule_save(features, tile, year, classification)
        return TileResult(features=features, latest_year=latest, source="upstream")
