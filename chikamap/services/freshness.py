# chikamap/services/freshness.py
# -----------------------------------------------------------------------------
# 업스트림 프로브 상태 관리 (api_freshness_state 싱글턴)
# - 하루 DAILY_PROBE_LIMIT 회까지는 캐시를 건너뛰고 API 를 직접 호출(프로브)
#   → 새 연도 데이터가 공표되면 당일 안에 감지
# - 날짜가 바뀌면 첫 조회 시 카운트 0 으로 리셋
# - DB 오류 시 (작년, 한도 소진) 으로 폴백 = 캐시 우선 모드
# -----------------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from loguru import logger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from chikamap.core.config import settings
from chikamap.db import crud


@dataclass(frozen=True, slots=True)
class ProbeState:
    latest_year: int
    probe_count: int


class FreshnessProber:
    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        daily_probe_limit: Optional[int] = None,
        today: Callable[[], date] = date.today,
    ) -> None:
        self._sessions = session_factory
        self.limit = (
            daily_probe_limit
            if daily_probe_limit is not None
            else settings.DAILY_PROBE_LIMIT
        )
        self._today = today

    def fallback_state(self) -> ProbeState:
        return ProbeState(latest_year=self._today().year - 1, probe_count=self.limit)

    async def get_state(self) -> ProbeState:
        today = self._today()
        try:
            async with self._sessions() as db:
                await crud.ensure_freshness_row(
                    db, latest_year=today.year - 1, today=today
                )
                await crud.reset_probe_if_stale(db, today)
                await db.commit()
                row = await crud.get_freshness(db)
        except Exception as e:
            logger.warning(f"[Probe] 상태 조회 실패, 캐시 우선 모드로 폴백: {e!r}")
            return self.fallback_state()
        if row is None:
            return self.fallback_state()
        return ProbeState(latest_year=int(row.latest_year), probe_count=int(row.probe_count))

    def is_probe(self, state: ProbeState) -> bool:
        return state.probe_count < self.limit

    async def record_probe(self) -> None:
        try:
            async with self._sessions() as db:
                await crud.increment_probe(db)
        except Exception as e:
            logger.warning(f"[Probe] 카운트 증가 실패(무시): {e!r}")

    async def observe_year(self, candidate: int) -> None:
        try:
            async with self._sessions() as db:
                await crud.raise_latest_year(db, candidate)
        except Exception as e:
            logger.warning(f"[Probe] latest_year 갱신 실패(무시): {e!r}")
            return
        logger.info(f"[Probe] latest_year 후보 {candidate} 반영")

    async def begin_request(self) -> tuple[ProbeState, bool]:
        """게이트 판정: 프로브 허용이면 카운트까지 올리고 True"""
        state = await self.get_state()
        probe = self.is_probe(state)
        if probe:
            await self.record_probe()
        return state, probe
