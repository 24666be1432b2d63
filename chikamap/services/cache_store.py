# chikamap/services/cache_store.py
# -----------------------------------------------------------------------------
# 지가 캐시 저장소 핸들
# - crud 함수를 세션 팩토리로 감싸고 결과를 Outcome 으로 반환
# - 저장 실패는 로그만 남기고 호출자에게 전파하지 않음
# - schedule_save: 응답을 막지 않는 백그라운드 저장 (fire-and-forget)
# -----------------------------------------------------------------------------
from __future__ import annotations

import asyncio
from typing import Any, Dict, Iterable, List, Optional, Set

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chikamap.core.config import settings
from chikamap.core.outcome import STORE, Outcome
from chikamap.core.tiles import Tile, to_tile
from chikamap.db import crud
from chikamap.db.models import BatchProgress
from chikamap.schemas.landprice import SearchResult
from chikamap.services.normalize import feature_to_record, format_price


def row_to_feature(row: Any) -> Dict[str, Any]:
    """DB 행 -> GeoJSON Feature. 연도별 가격으로 표시용 속성을 덮어씀."""
    props = dict(row.properties or {})
    if row.price is not None:
        props["u_current_years_price_ja"] = format_price(row.price)
    if row.change_rate is not None:
        props["year_on_year_change_rate"] = row.change_rate
    return {
        "type": "Feature",
        "geometry": {"type": "Point", "coordinates": [row.lon, row.lat]},
        "properties": props,
    }


class LandPriceCacheStore:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        zoom: Optional[int] = None,
    ) -> None:
        self._sessions = session_factory
        # 마스터 타일 인덱스는 조회 줌과 무관하게 이 줌으로 고정
        self.zoom = zoom if zoom is not None else settings.LANDPRICE_ZOOM
        self._pending: Set[asyncio.Task] = set()

    def storage_tile(self, record: Dict[str, Any]) -> tuple[int, int, int]:
        x, y = to_tile(record["lat"], record["lon"], self.zoom)
        return self.zoom, x, y

    # ── 읽기 ────────────────────────────────────────────────────────────────
    async def query_tile(
        self, tile: Tile, year: int, classification: Optional[int] = None
    ) -> Outcome[List[Dict[str, Any]]]:
        try:
            async with self._sessions() as db:
                rows = await crud.get_tile_rows(
                    db,
                    z=tile.z,
                    x=tile.x,
                    y=tile.y,
                    year=year,
                    classification=classification,
                    store_zoom=self.zoom,
                )
        except Exception as e:
            logger.warning(f"[Cache] tile {tile} year={year} 조회 실패: {e!r}")
            return Outcome.failure(STORE)
        return Outcome.success([row_to_feature(r) for r in rows])

    async def search_by_name(self, query: str, limit: int = 20) -> List[SearchResult]:
        query = (query or "").strip()
        if not query:
            return []
        try:
            async with self._sessions() as db:
                rows = await crud.search_masters(db, query, limit=limit)
        except Exception as e:
            # DB 미연결 시 빈 결과
            logger.warning(f"[Cache] 지명 검색 실패: {e!r}")
            return []
        return [
            SearchResult(
                point_id=r.point_id,
                lat=r.lat,
                lon=r.lon,
                place_name=r.place_name,
                prefecture_name=r.prefecture_name,
                city_name=r.city_name,
                address_display=r.address_display,
                standard_lot_number=r.standard_lot_number,
                price_classification=r.price_classification,
                year=r.latest_year,
                current_price=format_price(r.current_price),
            )
            for r in rows
        ]

    # ── 쓰기 ────────────────────────────────────────────────────────────────
    async def upsert_point(self, record: Dict[str, Any], year: int) -> Outcome[None]:
        try:
            async with self._sessions() as db:
                await crud.upsert_point(
                    db, record=record, tile=self.storage_tile(record), year=year
                )
                await db.commit()
        except Exception as e:
            logger.error(f"[Cache] upsert_point {record.get('point_id')} 실패: {e!r}")
            return Outcome.failure(STORE)
        return Outcome.success(None)

    async def upsert_yearly_price(
        self,
        point_id: str,
        year: int,
        price: Optional[int],
        change_rate: Optional[float],
    ) -> Outcome[None]:
        try:
            async with self._sessions() as db:
                await crud.upsert_yearly_price(
                    db, point_id=point_id, year=year, price=price, change_rate=change_rate
                )
                await db.commit()
        except Exception as e:
            logger.error(f"[Cache] upsert_yearly {point_id}/{year} 실패: {e!r}")
            return Outcome.failure(STORE)
        return Outcome.success(None)

    async def save_features(
        self,
        features: Iterable[Dict[str, Any]],
        tile: Tile,
        year: int,
        classification: Optional[int],
    ) -> int:
        """
        레코드별 독립 커밋. 실패한 레코드는 건너뛰고 저장 성공 건수 반환.
        tile 은 조회에 쓴 타일 (로그용), 저장 타일은 좌표에서 다시 계산.
        """
        saved = 0
        try:
            async with self._sessions() as db:
                for feature in features:
                    record = feature_to_record(feature, classification)
                    if record is None:
                        continue
                    try:
                        await crud.upsert_point(
                            db,
                            record=record,
                            tile=self.storage_tile(record),
                            year=year,
                        )
                        await crud.upsert_yearly_price(
                            db,
                            point_id=record["point_id"],
                            year=year,
                            price=record["price"],
                            change_rate=record["change_rate"],
                        )
                        await db.commit()
                        saved += 1
                    except Exception as e:
                        await db.rollback()
                        logger.error(
                            f"[Cache] Failed to save point {record['point_id']}: {e!r}"
                        )
        except Exception as e:
            logger.error(f"[Cache] tile {tile} 저장 세션 오류: {e!r}")
        return saved

    def schedule_save(
        self,
        features: List[Dict[str, Any]],
        tile: Tile,
        year: int,
        classification: Optional[int],
    ) -> asyncio.Task:
        task = asyncio.create_task(
            self.save_features(list(features), tile, year, classification)
        )
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """대기 중인 백그라운드 저장 완료까지 대기 (테스트/종료 시)"""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ── 배치 큐 ─────────────────────────────────────────────────────────────
    async def pending_batch_items(self, limit: int) -> List[BatchProgress]:
        async with self._sessions() as db:
            return list(await crud.get_pending_batch(db, limit))

    async def enqueue_batch_items(self, items: Iterable[Dict[str, int]]) -> int:
        async with self._sessions() as db:
            return await crud.enqueue_batch(db, items)

    async def mark_batch_item(self, item_id: int, status: str) -> None:
        async with self._sessions() as db:
            await crud.mark_batch(db, item_id, status)

    async def reset_batch_errors(self) -> int:
        async with self._sessions() as db:
            return await crud.reset_batch_errors(db)

    async def stats(self) -> Dict[str, Any]:
        async with self._sessions() as db:
            return await crud.get_stats(db)
