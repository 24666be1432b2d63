# chikamap/core/outcome.py
# -----------------------------------------------------------------------------
# I/O 결과 태그 타입
# - 업스트림/DB 호출은 예외 대신 Outcome(성공/실패+사유)을 돌려준다
# - 호출 측은 ok/reason 으로 폴백 여부를 결정
# -----------------------------------------------------------------------------
from __future__ import annotations

from dataclasses import dataclass
from typing import Generic, Optional, TypeVar

T = TypeVar("T")

# 실패 사유
UNAUTHORIZED = "unauthorized"
NO_API_KEY = "no_api_key"
UNSUPPORTED_ZOOM = "unsupported_zoom"
MALFORMED = "malformed"
TRANSPORT = "transport"
STORE = "store"


@dataclass(slots=True)
class Outcome(Generic[T]):
    ok: bool
    value: Optional[T] = None
    reason: Optional[str] = None

    @classmethod
    def success(cls, value: T) -> "Outcome[T]":
        return cls(ok=True, value=value)

    @classmethod
    def failure(cls, reason: str) -> "Outcome[T]":
        return cls(ok=False, reason=reason)

    @property
    def terminal(self) -> bool:
        """재시도/폴백 대상이 아닌 실패 (인증 실패 등)"""
        return not self.ok and self.reason in (UNAUTHORIZED, NO_API_KEY, UNSUPPORTED_ZOOM)
