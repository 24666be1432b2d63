import asyncio

import pytest

from chikamap.core.coalesce import RequestCoalescer


def test_concurrent_same_key_shares_one_call():
    calls = []

    async def scenario():
        co = RequestCoalescer()

        async def work():
            calls.append(1)
            await asyncio.sleep(0.01)
            return {"ok": True}

        a, b = await asyncio.gather(co.run("k", work), co.run("k", work))
        return co, a, b

    co, a, b = asyncio.run(scenario())
    assert len(calls) == 1
    assert a is b
    assert len(co) == 0


def test_different_keys_run_separately():
    calls = []

    async def scenario():
        co = RequestCoalescer()

        async def work(k):
            calls.append(k)
            return k

        return await asyncio.gather(co.run(1, lambda: work(1)), co.run(2, lambda: work(2)))

    assert asyncio.run(scenario()) == [1, 2]
    assert sorted(calls) == [1, 2]


def test_failure_propagates_and_clears_key():
    async def scenario():
        co = RequestCoalescer()

        async def boom():
            raise RuntimeError("x")

        with pytest.raises(RuntimeError):
            await co.run("k", boom)
        assert len(co) == 0
        return await co.run("k", lambda: asyncio.sleep(0, result="again"))

    assert asyncio.run(scenario()) == "again"
