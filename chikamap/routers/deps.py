# chikamap/routers/deps.py
# -----------------------------------------------------------------------------
# 라우터 공용 의존성
# - IP 레이트 리밋
# - 관리자 / Cron 인증
# -----------------------------------------------------------------------------
import math
from typing import Callable

from fastapi import HTTPException, Request, Response

from chikamap.core.config import settings
from chikamap.services.rate_limit import SlidingWindowRateLimiter, client_ip


def rate_limited(limiter: SlidingWindowRateLimiter) -> Callable[[Request, Response], None]:
    def _dep(request: Request, response: Response) -> None:
        host = request.client.host if request.client else None
        decision = limiter.check(client_ip(request.headers, host))
        response.headers["X-RateLimit-Remaining"] = str(decision.remaining)
        if not decision.allowed:
            raise HTTPException(
                status_code=429,
                detail="Too many requests. Please try again later.",
                headers={"Retry-After": str(math.ceil(decision.reset_seconds))},
            )

    return _dep


def _admin_key(request: Request) -> str | None:
    return request.query_params.get("key") or request.headers.get("x-api-key")


def require_admin(request: Request) -> None:
    """REINFOLIB_API_KEY 를 관리자 키로 겸용"""
    expected = settings.REINFOLIB_API_KEY
    if not expected or _admin_key(request) != expected:
        raise HTTPException(status_code=401, detail="Unauthorized")


def require_cron_or_admin(request: Request) -> None:
    """Cron 은 Authorization: Bearer <CRON_SECRET>, 없으면 관리자 키 허용"""
    if settings.CRON_SECRET and (
        request.headers.get("authorization") == f"Bearer {settings.CRON_SECRET}"
    ):
        return
    require_admin(request)
