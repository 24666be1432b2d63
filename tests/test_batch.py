import asyncio

import pytest

from chikamap.core.outcome import TRANSPORT, Outcome
from chikamap.core.tiles import Tile, to_tile
from chikamap.services.batch import MAJOR_CITIES, generate_batch_items, run_batch_update
from chikamap.services.cache_store import LandPriceCacheStore
from fakes import FakeUpstream, feature

TOKYO = (35.6812, 139.7671)


def test_generate_batch_items_neighbourhood():
    items = generate_batch_items([TOKYO], 2024, 13)
    cx, cy = to_tile(*TOKYO, 13)
    assert len(items) == 18
    assert {(i["tile_x"], i["tile_y"]) for i in items} == {
        (cx + dx, cy + dy) for dx in (-1, 0, 1) for dy in (-1, 0, 1)
    }
    assert {i["price_classification"] for i in items} == {0, 1}
    assert len(MAJOR_CITIES) == 10


def test_batch_processes_fifo_and_persists(session_factory):
    cx, cy = to_tile(*TOKYO, 13)
    upstream = FakeUpstream({(13, cx - 1, cy - 1, 2024, 0): [feature(*TOKYO, point_id="P1")]})
    store = LandPriceCacheStore(session_factory)

    async def scenario():
        first = await run_batch_update(
            store, upstream, year=2024, batch_size=5, cities=[TOKYO], zoom=13
        )
        second = await run_batch_update(
            store, upstream, year=2024, batch_size=5, cities=[TOKYO], zoom=13
        )
        return first, second, await store.stats()

    first, second, stats = asyncio.run(scenario())
    assert first.processed == 5 and first.errors == 0
    assert first.saved == 1
    assert second.processed == 5
    assert upstream.calls[0] == (13, cx - 1, cy - 1, 2024, 0)
    assert stats["masters"] == 1
    assert {row["key"]: row["count"] for row in stats["batch"]} == {
        "completed": 10,
        "pending": 8,
    }


def test_batch_marks_upstream_failures_as_error(session_factory):
    class Flaky(FakeUpstream):
        async def fetch_tile(self, z, x, y, year, classification=None, **kw):
            self.calls.append((z, x, y, year, classification))
            if classification == 1:
                return Outcome.failure(TRANSPORT)
            return Outcome.success({"type": "FeatureCollection", "features": []})

    store = LandPriceCacheStore(session_factory)

    async def scenario():
        summary = await run_batch_update(
            store, Flaky(), year=2024, batch_size=4, cities=[TOKYO], zoom=13
        )
        return summary, await store.stats(), await store.reset_batch_errors()

    summary, stats, reset = asyncio.run(scenario())
    assert summary.processed == 2
    assert summary.errors == 2
    assert summary.remaining == 2
    assert reset == 2
    assert {row["key"]: row["count"] for row in stats["batch"]}["error"] == 2


def test_batch_rejects_non_positive_batch_size(session_factory):
    store = LandPriceCacheStore(session_factory)
    with pytest.raises(ValueError):
        asyncio.run(run_batch_update(store, FakeUpstream(), year=2024, batch_size=0))
    with pytest.raises(ValueError):
        asyncio.run(run_batch_update(store, FakeUpstream(), year=2024, batch_size=-1))


def test_batch_saves_points_at_storage_zoom(session_factory):
    cx, cy = to_tile(*TOKYO, 13)
    upstream = FakeUpstream({(13, cx, cy, 2024, 0): [feature(*TOKYO, point_id="P1")]})
    store = LandPriceCacheStore(session_factory)

    async def scenario():
        await run_batch_update(
            store, upstream, year=2024, batch_size=18, cities=[TOKYO], zoom=13
        )
        return await store.query_tile(Tile(*to_tile(*TOKYO, 15), 15), 2024, 0)

    hit = asyncio.run(scenario())
    assert [f["properties"]["point_id"] for f in hit.value] == ["P1"]
