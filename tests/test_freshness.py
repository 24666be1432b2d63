import asyncio
from datetime import date

from chikamap.services.freshness import FreshnessProber, ProbeState


def test_initial_state_is_last_year(session_factory):
    prober = FreshnessProber(session_factory, 5, today=lambda: date(2025, 7, 1))
    assert asyncio.run(prober.get_state()) == ProbeState(latest_year=2024, probe_count=0)


def test_gate_allows_daily_limit_checks_per_day(session_factory):
    today = [date(2025, 7, 1)]
    prober = FreshnessProber(session_factory, 5, today=lambda: today[0])

    async def run_day():
        return [probe for _, probe in [await prober.begin_request() for _ in range(7)]]

    assert asyncio.run(run_day()) == [True] * 5 + [False] * 2
    assert asyncio.run(prober.get_state()).probe_count == 5

    today[0] = date(2025, 7, 2)
    assert asyncio.run(prober.get_state()).probe_count == 0
    assert asyncio.run(prober.begin_request())[1] is True


def test_observe_year_is_monotonic(session_factory):
    prober = FreshnessProber(session_factory, 5, today=lambda: date(2025, 7, 1))

    async def scenario():
        await prober.get_state()
        await prober.observe_year(2026)
        await prober.observe_year(2025)
        return await prober.get_state()

    assert asyncio.run(scenario()).latest_year == 2026


def test_store_failure_falls_back_to_cache_first():
    def broken():
        raise RuntimeError("db down")

    prober = FreshnessProber(broken, 5, today=lambda: date(2025, 7, 1))
    state, probe = asyncio.run(prober.begin_request())
    assert state == ProbeState(latest_year=2024, probe_count=5)
    assert probe is False
