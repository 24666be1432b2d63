# chikamap/services/batch.py
# -----------------------------------------------------------------------------
# 주간 배치 백필
# (1) 주요 도시 타일 작업 생성 (3×3 이웃 × 지가 구분 2종)
# (2) pending 작업을 FIFO 로 BATCH_SIZE 개씩 처리
#     - 성공: 지점/가격 저장 후 completed
#     - 업스트림 실패: error (자동 재시도 없음, /admin/batch/reset 으로 복구)
# - 서버리스 실행시간(수 초) 안에 끝나도록 1회 실행당 소량만 처리
# -----------------------------------------------------------------------------
from __future__ import annotations

from datetime import date
from typing import Dict, Iterable, List, Optional

from loguru import logger

from chikamap.core.config import settings
from chikamap.core.tiles import Tile, to_tile
from chikamap.db.models import BatchStatus, PriceClassification
from chikamap.schemas.landprice import BatchSummary
from chikamap.services.cache_store import LandPriceCacheStore
from chikamap.services.reinfolib import ReinfolibClient

# 주요 도시 대표 좌표 (lat, lon)
MAJOR_CITIES: Dict[str, tuple[float, float]] = {
    "東京": (35.6812, 139.7671),
    "大阪": (34.6937, 135.5023),
    "名古屋": (35.1815, 136.9066),
    "横浜": (35.4437, 139.6380),
    "福岡": (33.5904, 130.4017),
    "札幌": (43.0618, 141.3545),
    "仙台": (38.2682, 140.8694),
    "広島": (34.3853, 132.4553),
    "京都": (35.0116, 135.7681),
    "神戸": (34.6901, 135.1956),
}


def generate_batch_items(
    cities: Iterable[tuple[float, float]], year: int, zoom: int
) -> List[Dict[str, int]]:
    items: List[Dict[str, int]] = []
    for lat, lon in cities:
        cx, cy = to_tile(lat, lon, zoom)
        for dx in (-1, 0, 1):
            for dy in (-1, 0, 1):
                for cls in PriceClassification:
                    items.append(
                        {
                            "tile_z": zoom,
                            "tile_x": cx + dx,
                            "tile_y": cy + dy,
                            "year": year,
                            "price_classification": int(cls),
                        }
                    )
    return items


async def run_batch_update(
    store: LandPriceCacheStore,
    upstream: ReinfolibClient,
    *,
    year: Optional[int] = None,
    batch_size: Optional[int] = None,
    cities: Optional[Iterable[tuple[float, float]]] = None,
    zoom: Optional[int] = None,
) -> BatchSummary:
    year = year if year is not None else date.today().year - 1
    batch_size = batch_size if batch_size is not None else settings.BATCH_SIZE
    zoom = zoom if zoom is not None else settings.BATCH_ZOOM
    if batch_size < 1:
        raise ValueError("batch_size must be >= 1")

    items = await store.pending_batch_items(batch_size)
    if not items:
        generated = generate_batch_items(
            cities if cities is not None else MAJOR_CITIES.values(), year, zoom
        )
        inserted = await store.enqueue_batch_items(generated)
        logger.info(f"[Batch] 신규 작업 {inserted}건 생성 (year={year})")
        items = await store.pending_batch_items(batch_size)

    processed = saved = errors = 0
    for item in items:
        tile = Tile(item.tile_x, item.tile_y, item.tile_z)
        outcome = await upstream.fetch_tile(
            tile.z, tile.x, tile.y, item.year, item.price_classification
        )
        if not outcome.ok:
            logger.error(
                f"[Batch] {tile} year={item.year} cls={item.price_classification} "
                f"실패: {outcome.reason}"
            )
            await store.mark_batch_item(item.id, BatchStatus.ERROR)
            errors += 1
            continue

        features = outcome.value.get("features") or []
        saved += await store.save_features(
            features, tile, item.year, item.price_classification
        )
        await store.mark_batch_item(item.id, BatchStatus.COMPLETED)
        processed += 1

    summary = BatchSummary(
        processed=processed,
        saved=saved,
        remaining=len(items) - processed,
        errors=errors,
    )
    logger.info(f"[Batch] {summary.model_dump()}")
    return summary
