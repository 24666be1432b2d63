import asyncio

from sqlalchemy import select

from chikamap.core.tiles import Tile, to_tile
from chikamap.db.models import LandPriceMaster, LandPriceYearly
from chikamap.services.cache_store import LandPriceCacheStore
from chikamap.services.normalize import feature_to_record
from fakes import feature

TILE = Tile(29105, 12903, 15)


async def _master(session_factory, point_id):
    async with session_factory() as db:
        return await db.get(LandPriceMaster, point_id)


async def _yearly(session_factory, point_id):
    async with session_factory() as db:
        rows = await db.execute(
            select(LandPriceYearly)
            .where(LandPriceYearly.point_id == point_id)
            .order_by(LandPriceYearly.year.desc())
        )
        return list(rows.scalars())


def _record(lat, lon):
    return feature_to_record(feature(lat, lon), 0)


def test_save_then_query_tile(session_factory):
    store = LandPriceCacheStore(session_factory)

    async def scenario():
        saved = await store.save_features(
            [feature(35.68, 139.76, point_id="P1", price="2,500,000(円/㎡)")], TILE, 2024, 0
        )
        hit = await store.query_tile(TILE, 2024, 0)
        other_year = await store.query_tile(TILE, 2023, 0)
        other_cls = await store.query_tile(TILE, 2024, 1)
        return saved, hit, other_year, other_cls

    saved, hit, other_year, other_cls = asyncio.run(scenario())
    assert saved == 1
    assert hit.ok and len(hit.value) == 1
    f = hit.value[0]
    assert f["geometry"]["coordinates"] == [139.76, 35.68]
    assert f["properties"]["u_current_years_price_ja"] == "2,500,000"
    assert f["properties"]["point_id"] == "P1"
    assert other_year.ok and other_year.value == []
    assert other_cls.ok and other_cls.value == []


def test_null_price_rows_are_not_served(session_factory):
    store = LandPriceCacheStore(session_factory)

    async def scenario():
        await store.save_features([feature(35.68, 139.76, point_id="P1", price="")], TILE, 2024, 0)
        return await store.query_tile(TILE, 2024, 0)

    assert asyncio.run(scenario()).value == []


def test_snapshot_only_moves_forward(session_factory):
    store = LandPriceCacheStore(session_factory)

    async def scenario():
        await store.save_features(
            [feature(35.68, 139.76, point_id="P1", place_name_ja="current")], TILE, 2024, 0
        )
        await store.save_features(
            [feature(35.68, 139.76, point_id="P1", place_name_ja="older")], TILE, 2022, 0
        )
        after_old = await _master(session_factory, "P1")
        await store.save_features(
            [feature(35.68, 139.76, point_id="P1", place_name_ja="newer")], TILE, 2025, 0
        )
        after_new = await _master(session_factory, "P1")
        years = [r.year for r in await _yearly(session_factory, "P1")]
        return after_old, after_new, years

    after_old, after_new, years = asyncio.run(scenario())
    assert after_old.place_name == "current"
    assert after_old.latest_year == 2024
    assert after_new.place_name == "newer"
    assert after_new.latest_year == 2025
    assert years == [2025, 2024, 2022]


def test_yearly_upsert_is_idempotent(session_factory):
    store = LandPriceCacheStore(session_factory)

    async def scenario():
        await store.save_features([feature(35.68, 139.76, point_id="P1")], TILE, 2024, 0)
        first = await store.upsert_yearly_price("P1", 2024, 111, 1.0)
        second = await store.upsert_yearly_price("P1", 2024, 222, -0.5)
        return first, second, await _yearly(session_factory, "P1")

    first, second, rows = asyncio.run(scenario())
    assert first.ok and second.ok
    assert len(rows) == 1
    assert (rows[0].price, rows[0].change_rate) == (222, -0.5)


def test_search_by_name(session_factory):
    store = LandPriceCacheStore(session_factory)

    async def scenario():
        await store.save_features(
            [
                feature(35.67, 139.76, point_id="G1", place_name_ja="銀座4丁目"),
                feature(35.69, 139.70, point_id="S1", place_name_ja="新宿3丁目"),
            ],
            TILE,
            2024,
            0,
        )
        return await store.search_by_name("銀座"), await store.search_by_name("  ")

    hits, blank = asyncio.run(scenario())
    assert [h.point_id for h in hits] == ["G1"]
    assert hits[0].year == 2024
    assert hits[0].current_price == "1,000,000"
    assert blank == []


def test_schedule_save_and_drain(session_factory):
    store = LandPriceCacheStore(session_factory)

    async def scenario():
        store.schedule_save([feature(35.68, 139.76, point_id="P1")], TILE, 2024, 0)
        await store.drain()
        return await store.query_tile(TILE, 2024, 0)

    assert len(asyncio.run(scenario()).value) == 1


def test_store_failure_is_an_outcome():
    def broken():
        raise RuntimeError("db down")

    store = LandPriceCacheStore(broken)
    out = asyncio.run(store.query_tile(TILE, 2024, 0))
    assert not out.ok
    assert asyncio.run(store.search_by_name("銀座")) == []


def test_batch_queue_enqueue_is_idempotent(session_factory):
    store = LandPriceCacheStore(session_factory)
    items = [
        {"tile_z": 13, "tile_x": 7276, "tile_y": 3225, "year": 2024, "price_classification": c}
        for c in (0, 1)
    ]

    async def scenario():
        first = await store.enqueue_batch_items(items)
        second = await store.enqueue_batch_items(items)
        pending = await store.pending_batch_items(10)
        await store.mark_batch_item(pending[0].id, "error")
        still_pending = await store.pending_batch_items(10)
        reset = await store.reset_batch_errors()
        stats = await store.stats()
        return first, second, pending, still_pending, reset, stats

    first, second, pending, still_pending, reset, stats = asyncio.run(scenario())
    assert first == 2
    assert second == 0
    assert [p.price_classification for p in pending] == [0, 1]
    assert len(still_pending) == 1
    assert reset == 1
    assert stats["batch"] == [{"key": "pending", "count": 2}]


def test_rows_are_indexed_at_storage_zoom_regardless_of_fetch_tile(session_factory):
    store = LandPriceCacheStore(session_factory)
    coarse = Tile(*to_tile(35.68, 139.76, 13), 13)

    async def scenario():
        await store.save_features([feature(35.68, 139.76, point_id="P1")], coarse, 2024, 0)
        return (
            await _master(session_factory, "P1"),
            await store.query_tile(TILE, 2024, 0),
            await store.query_tile(coarse, 2024, 0),
        )

    master, fine_hit, coarse_hit = asyncio.run(scenario())
    assert (master.tile_z, master.tile_x, master.tile_y) == (15, TILE.x, TILE.y)
    assert len(fine_hit.value) == 1
    assert len(coarse_hit.value) == 1


def test_coarse_tile_query_covers_all_finer_tiles(session_factory):
    store = LandPriceCacheStore(session_factory)
    coarse = Tile(*to_tile(35.68, 139.76, 13), 13)
    # 같은 z13 타일 안, 서로 다른 z15 타일 두 지점
    west = (35.68, 139.76)
    east = (35.68, 139.78)

    async def scenario():
        await store.save_features(
            [feature(*west, point_id="W"), feature(*east, point_id="E")], TILE, 2024, 0
        )
        return await store.query_tile(coarse, 2024, 0), await store.query_tile(TILE, 2024, 0)

    assert to_tile(*east, 13) == (coarse.x, coarse.y)
    assert to_tile(*east, 15) != to_tile(*west, 15)
    coarse_hit, fine_hit = asyncio.run(scenario())
    assert sorted(f["properties"]["point_id"] for f in coarse_hit.value) == ["E", "W"]
    assert [f["properties"]["point_id"] for f in fine_hit.value] == ["W"]


def test_finer_tile_query_filters_by_tile_bounds(session_factory):
    store = LandPriceCacheStore(session_factory)
    x16, y16 = to_tile(35.68, 139.76, 16)

    async def scenario():
        await store.save_features([feature(35.68, 139.76, point_id="P1")], TILE, 2024, 0)
        inside = await store.query_tile(Tile(x16, y16, 16), 2024, 0)
        outside = await store.query_tile(Tile(x16 ^ 1, y16, 16), 2024, 0)
        return inside, outside

    inside, outside = asyncio.run(scenario())
    assert len(inside.value) == 1
    assert outside.value == []


def test_newer_snapshot_moves_point_location(session_factory):
    store = LandPriceCacheStore(session_factory)

    async def scenario():
        await store.upsert_point(dict(_record(35.68, 139.76), point_id="P1"), 2024)
        await store.upsert_point(dict(_record(35.68, 139.80), point_id="P1"), 2025)
        await store.upsert_point(dict(_record(35.00, 135.00), point_id="P1"), 2023)
        return await _master(session_factory, "P1")

    master = asyncio.run(scenario())
    assert (master.lat, master.lon) == (35.68, 139.80)
    assert (master.tile_x, master.tile_y) == to_tile(35.68, 139.80, 15)
    assert master.latest_year == 2025