# chikamap/services/tile_cache.py
# -----------------------------------------------------------------------------
# 프로세스 내 타일 캐시 (TTL)
# - 짧은 시간 내 같은 타일 재요청 시 업스트림/DB 호출 생략
# - 정합성에는 관여하지 않음: 비어 있어도 결과는 동일
# -----------------------------------------------------------------------------
from __future__ import annotations

import time
from typing import Any, Callable, Dict, Hashable, Optional, Tuple


class TileMemoryCache:
    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 2048,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._data: Dict[Hashable, Tuple[float, Any]] = {}
        self.hits = 0
        self.misses = 0

    def get(self, key: Hashable) -> Optional[Any]:
        entry = self._data.get(key)
        if entry is None or self._clock() - entry[0] >= self.ttl:
            self._data.pop(key, None)
            self.misses += 1
            return None
        self.hits += 1
        return entry[1]

    def set(self, key: Hashable, value: Any) -> None:
        if self.ttl <= 0:
            return
        if len(self._data) >= self.max_entries:
            # 가장 오래된 항목 제거
            oldest = min(self._data, key=lambda k: self._data[k][0])
            self._data.pop(oldest, None)
        self._data[key] = (self._clock(), value)

    def clear(self) -> None:
        self._data.clear()
        self.hits = 0
        self.misses = 0

    def stats(self) -> dict:
        return {
            "entries": len(self._data),
            "hits": self.hits,
            "misses": self.misses,
            "ttl_seconds": self.ttl,
        }
