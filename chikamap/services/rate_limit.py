# chikamap/services/rate_limit.py
# -----------------------------------------------------------------------------
# IP 기준 레이트 리밋 (메모리 내 슬라이딩 윈도우)
# - 프로세스 단위, 서버리스/다중 워커 간 공유되지 않음
# -----------------------------------------------------------------------------
from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional

CLEANUP_INTERVAL = 60.0  # 초


@dataclass(slots=True)
class RateDecision:
    allowed: bool
    remaining: int
    reset_seconds: float


class SlidingWindowRateLimiter:
    def __init__(
        self,
        max_requests: int,
        window_seconds: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.max_requests = max_requests
        self.window = window_seconds
        self._clock = clock
        self._hits: Dict[str, List[float]] = {}
        self._last_cleanup = clock()

    def _cleanup(self, now: float) -> None:
        if now - self._last_cleanup < CLEANUP_INTERVAL:
            return
        self._last_cleanup = now
        cutoff = now - self.window
        for key in list(self._hits):
            kept = [t for t in self._hits[key] if t > cutoff]
            if kept:
                self._hits[key] = kept
            else:
                del self._hits[key]

    def check(self, key: str) -> RateDecision:
        now = self._clock()
        self._cleanup(now)
        cutoff = now - self.window
        stamps = [t for t in self._hits.get(key, []) if t > cutoff]

        if len(stamps) >= self.max_requests:
            self._hits[key] = stamps
            return RateDecision(False, 0, stamps[0] + self.window - now)

        stamps.append(now)
        self._hits[key] = stamps
        return RateDecision(True, self.max_requests - len(stamps), self.window)


def client_ip(headers: Mapping[str, str], fallback: Optional[str] = None) -> str:
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return headers.get("x-real-ip") or fallback or "unknown"
