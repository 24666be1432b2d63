# chikamap/core/coalesce.py
# -----------------------------------------------------------------------------
# 동일 키 요청 병합(in-flight dedupe)
# - 같은 키로 동시에 들어온 호출은 하나의 Future 를 공유
# - 완료(성공/실패) 시 맵에서 제거
# -----------------------------------------------------------------------------
from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Dict, Hashable, TypeVar

T = TypeVar("T")


class RequestCoalescer:
    def __init__(self) -> None:
        self._inflight: Dict[Hashable, asyncio.Future] = {}

    def __len__(self) -> int:
        return len(self._inflight)

    async def run(self, key: Hashable, factory: Callable[[], Awaitable[T]]) -> T:
        fut = self._inflight.get(key)
        if fut is not None:
            # shield: 대기자 하나가 취소돼도 공유 작업은 계속
            return await asyncio.shield(fut)

        fut = asyncio.ensure_future(factory())
        self._inflight[key] = fut
        fut.add_done_callback(lambda _f, k=key: self._inflight.pop(k, None))
        return await asyncio.shield(fut)
