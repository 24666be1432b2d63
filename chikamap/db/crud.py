# chikamap/db/crud.py
# -----------------------------------------------------------------------------
# 읽기/쓰기 유틸 함수 모음
# - 타일 조회 (마스터 ⋈ 연도별 가격)
# - 지점/연도별 가격 업서트 (조건부, 단일 문장)
# - 지명 검색, 배치 작업 큐, 프로브 상태 싱글턴, 통계
# -----------------------------------------------------------------------------
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from sqlalchemy import case, func, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession

from chikamap.core.tiles import tile_bounds
from chikamap.db.models import (
    ApiFreshnessState,
    BatchProgress,
    BatchStatus,
    LandPriceMaster,
    LandPriceYearly,
)

SNAPSHOT_COLUMNS = (
    "standard_lot_number",
    "prefecture_name",
    "city_name",
    "address_display",
    "place_name",
    "properties",
)
LOCATION_COLUMNS = ("lat", "lon", "tile_z", "tile_x", "tile_y")


def _insert(db: AsyncSession, model):
    """방언별 INSERT (ON CONFLICT 지원)"""
    if db.bind is not None and db.bind.dialect.name == "postgresql":
        return postgresql.insert(model)
    return sqlite.insert(model)


# ── 타일 조회 ────────────────────────────────────────────────────────────────
async def get_tile_rows(
    db: AsyncSession,
    *,
    z: int,
    x: int,
    y: int,
    year: int,
    classification: Optional[int] = None,
    store_zoom: int = 15,
) -> Sequence[Any]:
    """
    해당 연도 가격 행이 있는 지점만 (가격 NULL 제외)
    - 마스터의 타일은 항상 store_zoom 기준으로 저장됨
    - 요청 줌이 더 낮으면 하위 타일 범위, 더 높으면 타일 경계로 필터
    """
    stmt = (
        select(
            LandPriceMaster.point_id,
            LandPriceMaster.lat,
            LandPriceMaster.lon,
            LandPriceMaster.properties,
            LandPriceYearly.price,
            LandPriceYearly.change_rate,
        )
        .join(
            LandPriceYearly,
            (LandPriceYearly.point_id == LandPriceMaster.point_id)
            & (LandPriceYearly.year == year),
        )
        .where(
            LandPriceMaster.tile_z == store_zoom,
            LandPriceYearly.price.is_not(None),
        )
    )
    d = store_zoom - z
    if d >= 0:
        stmt = stmt.where(
            LandPriceMaster.tile_x.between(x << d, ((x + 1) << d) - 1),
            LandPriceMaster.tile_y.between(y << d, ((y + 1) << d) - 1),
        )
    else:
        b = tile_bounds(x, y, z)
        stmt = stmt.where(
            LandPriceMaster.tile_x == x >> -d,
            LandPriceMaster.tile_y == y >> -d,
            LandPriceMaster.lat > b.south,
            LandPriceMaster.lat <= b.north,
            LandPriceMaster.lon >= b.west,
            LandPriceMaster.lon < b.east,
        )
    if classification is not None:
        stmt = stmt.where(LandPriceMaster.price_classification == int(classification))
    res = await db.execute(stmt)
    return res.all()


# ── 업서트 ───────────────────────────────────────────────────────────────────
async def upsert_point(
    db: AsyncSession,
    *,
    record: Dict[str, Any],
    tile: tuple[int, int, int],
    year: int,
) -> None:
    """
    신규면 INSERT, 기존이면
    - year >= latest_year 일 때만 스냅샷 교체
    - latest_year = max(latest_year, year)
    를 하나의 조건부 UPDATE 로 처리 (read-then-write 없음)
    """
    tz, tx, ty = tile
    values = {
        "point_id": record["point_id"],
        "lat": record["lat"],
        "lon": record["lon"],
        "tile_z": tz,
        "tile_x": tx,
        "tile_y": ty,
        "price_classification": record["price_classification"],
        "latest_year": year,
        **{c: record.get(c) for c in SNAPSHOT_COLUMNS},
    }
    stmt = _insert(db, LandPriceMaster).values(**values)
    current = LandPriceMaster.__table__.c
    newer = stmt.excluded.latest_year >= current.latest_year
    set_ = {
        c: case((newer, stmt.excluded[c]), else_=current[c])
        for c in SNAPSHOT_COLUMNS + LOCATION_COLUMNS
    }
    set_["latest_year"] = case(
        (stmt.excluded.latest_year > current.latest_year, stmt.excluded.latest_year),
        else_=current.latest_year,
    )
    set_["updated_at"] = func.now()
    stmt = stmt.on_conflict_do_update(index_elements=["point_id"], set_=set_)
    await db.execute(stmt)


async def upsert_yearly_price(
    db: AsyncSession,
    *,
    point_id: str,
    year: int,
    price: Optional[int],
    change_rate: Optional[float],
) -> None:
    stmt = _insert(db, LandPriceYearly).values(
        point_id=point_id, year=year, price=price, change_rate=change_rate
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["point_id", "year"],
        set_={"price": stmt.excluded.price, "change_rate": stmt.excluded.change_rate},
    )
    await db.execute(stmt)


# ── 지명 검색 ────────────────────────────────────────────────────────────────
async def search_masters(db: AsyncSession, query: str, limit: int = 20) -> Sequence[Any]:
    """place/address/lot/city 부분일치, 최신 연도 가격 포함"""
    pattern = f"%{query}%"
    stmt = (
        select(
            LandPriceMaster.point_id,
            LandPriceMaster.lat,
            LandPriceMaster.lon,
            LandPriceMaster.place_name,
            LandPriceMaster.prefecture_name,
            LandPriceMaster.city_name,
            LandPriceMaster.address_display,
            LandPriceMaster.standard_lot_number,
            LandPriceMaster.price_classification,
            LandPriceMaster.latest_year,
            LandPriceYearly.price.label("current_price"),
        )
        .outerjoin(
            LandPriceYearly,
            (LandPriceYearly.point_id == LandPriceMaster.point_id)
            & (LandPriceYearly.year == LandPriceMaster.latest_year),
        )
        .where(
            or_(
                LandPriceMaster.place_name.ilike(pattern),
                LandPriceMaster.address_display.ilike(pattern),
                LandPriceMaster.standard_lot_number.ilike(pattern),
                LandPriceMaster.city_name.ilike(pattern),
            )
        )
        .order_by(LandPriceMaster.prefecture_name, LandPriceMaster.city_name)
        .limit(limit)
    )
    res = await db.execute(stmt)
    return res.all()


# ── 배치 작업 큐 ─────────────────────────────────────────────────────────────
async def get_pending_batch(db: AsyncSession, limit: int) -> Sequence[BatchProgress]:
    res = await db.execute(
        select(BatchProgress)
        .where(BatchProgress.status == BatchStatus.PENDING)
        .order_by(BatchProgress.id)
        .limit(limit)
    )
    return res.scalars().all()


async def enqueue_batch(db: AsyncSession, items: Iterable[Dict[str, int]]) -> int:
    """이미 있는 키는 무시 (ON CONFLICT DO NOTHING). 새로 들어간 행 수 반환."""
    inserted = 0
    for it in items:
        stmt = (
            _insert(db, BatchProgress)
            .values(**it, status=BatchStatus.PENDING)
            .on_conflict_do_nothing(
                index_elements=[
                    "tile_z",
                    "tile_x",
                    "tile_y",
                    "year",
                    "price_classification",
                ]
            )
        )
        res = await db.execute(stmt)
        inserted += max(0, res.rowcount or 0)
    await db.commit()
    return inserted


async def mark_batch(db: AsyncSession, item_id: int, status: str) -> None:
    values: Dict[str, Any] = {"status": status}
    if status == BatchStatus.COMPLETED:
        values["processed_at"] = datetime.now()
    await db.execute(
        update(BatchProgress).where(BatchProgress.id == item_id).values(**values)
    )
    await db.commit()


async def reset_batch_errors(db: AsyncSession) -> int:
    res = await db.execute(
        update(BatchProgress)
        .where(BatchProgress.status == BatchStatus.ERROR)
        .values(status=BatchStatus.PENDING)
    )
    await db.commit()
    return res.rowcount or 0


# ── 프로브 상태 (싱글턴) ─────────────────────────────────────────────────────
async def ensure_freshness_row(db: AsyncSession, *, latest_year: int, today: date) -> None:
    stmt = (
        _insert(db, ApiFreshnessState)
        .values(id=1, latest_year=latest_year, probe_count=0, probe_date=today)
        .on_conflict_do_nothing(index_elements=["id"])
    )
    await db.execute(stmt)


async def reset_probe_if_stale(db: AsyncSession, today: date) -> None:
    """날짜가 바뀐 경우에만 카운트 리셋 (조건부 UPDATE)"""
    await db.execute(
        update(ApiFreshnessState)
        .where(ApiFreshnessState.id == 1, ApiFreshnessState.probe_date != today)
        .values(probe_count=0, probe_date=today, updated_at=func.now())
    )


async def get_freshness(db: AsyncSession) -> ApiFreshnessState | None:
    res = await db.execute(select(ApiFreshnessState).where(ApiFreshnessState.id == 1))
    return res.scalar_one_or_none()


async def increment_probe(db: AsyncSession) -> None:
    await db.execute(
        update(ApiFreshnessState)
        .where(ApiFreshnessState.id == 1)
        .values(
            probe_count=ApiFreshnessState.probe_count + 1, updated_at=func.now()
        )
    )
    await db.commit()


async def raise_latest_year(db: AsyncSession, year: int) -> None:
    await db.execute(
        update(ApiFreshnessState)
        .where(ApiFreshnessState.id == 1, ApiFreshnessState.latest_year < year)
        .values(latest_year=year, updated_at=func.now())
    )
    await db.commit()


# ── 통계 ─────────────────────────────────────────────────────────────────────
async def _grouped(db: AsyncSession, col, order_by, limit: int | None = None) -> List[Dict[str, Any]]:
    stmt = select(col, func.count().label("cnt")).group_by(col).order_by(order_by)
    if limit:
        stmt = stmt.limit(limit)
    res = await db.execute(stmt)
    return [{"key": k, "count": int(n)} for k, n in res.all()]


async def get_stats(db: AsyncSession) -> Dict[str, Any]:
    masters = (
        await db.execute(select(func.count()).select_from(LandPriceMaster))
    ).scalar_one()
    yearly = (
        await db.execute(select(func.count()).select_from(LandPriceYearly))
    ).scalar_one()
    state = await get_freshness(db)
    return {
        "masters": int(masters),
        "yearly": int(yearly),
        "by_prefecture": await _grouped(
            db,
            LandPriceMaster.prefecture_name,
            func.count().desc(),
            limit=10,
        ),
        "by_classification": await _grouped(
            db,
            LandPriceMaster.price_classification,
            LandPriceMaster.price_classification,
        ),
        "by_year": await _grouped(db, LandPriceYearly.year, LandPriceYearly.year.desc()),
        "batch": await _grouped(db, BatchProgress.status, BatchProgress.status),
        "freshness": (
            {
                "latest_year": state.latest_year,
                "probe_count": state.probe_count,
                "probe_date": state.probe_date.isoformat(),
            }
            if state
            else None
        ),
    }
