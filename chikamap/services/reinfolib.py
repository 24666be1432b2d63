# chikamap/services/reinfolib.py
# -----------------------------------------------------------------------------
# 不動産情報ライブラリ (XPT002 地価公示・地価調査) 클라이언트
# - 타일(z/x/y) + 연도 + 지가 구분으로 GeoJSON 조회
# - 5xx/네트워크 오류는 지수 백오프 재시도, 4xx 는 재시도하지 않음
# - 결과는 Outcome 으로 반환 (예외를 밖으로 던지지 않음)
# -----------------------------------------------------------------------------
from __future__ import annotations

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import httpx
from loguru import logger

from chikamap.core.config import settings
from chikamap.core.outcome import (
    MALFORMED,
    NO_API_KEY,
    TRANSPORT,
    UNAUTHORIZED,
    UNSUPPORTED_ZOOM,
    Outcome,
)
from chikamap.core.tiles import MAX_API_ZOOM, MIN_API_ZOOM


def empty_collection() -> Dict[str, Any]:
    return {"type": "FeatureCollection", "features": []}


def backoff_delays(attempts: int, base: float = 0.5, factor: float = 2.0) -> list[float]:
    """시도 사이 대기시간. attempts=3 -> [0.5, 1.0] (마지막 시도 뒤에는 대기 없음)"""
    return [base * factor**i for i in range(max(0, attempts - 1))]


class ReinfolibClient:
    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        *,
        attempts: Optional[int] = None,
        backoff_base: Optional[float] = None,
        timeout: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.api_key = api_key if api_key is not None else settings.REINFOLIB_API_KEY
        self.base_url = base_url or settings.REINFOLIB_API_URL
        self.attempts = attempts if attempts is not None else settings.UPSTREAM_ATTEMPTS
        if self.attempts < 1:
            raise ValueError("attempts must be >= 1")
        self.backoff_base = (
            backoff_base if backoff_base is not None else settings.UPSTREAM_BACKOFF_BASE
        )
        t = timeout if timeout is not None else settings.UPSTREAM_TIMEOUT
        self._timeout = httpx.Timeout(connect=6.0, read=t, write=t, pool=6.0)
        self._transport = transport
        self._sleep = sleep
        self.calls = 0  # 실제 HTTP 요청 횟수

    def _params(
        self, z: int, x: int, y: int, year: int, classification: Optional[int]
    ) -> Dict[str, str]:
        params = {
            "response_format": "geojson",
            "z": str(z),
            "x": str(x),
            "y": str(y),
            "year": str(year),
        }
        if classification is not None:
            params["priceClassification"] = str(int(classification))
        return params

    async def fetch_tile(
        self,
        z: int,
        x: int,
        y: int,
        year: int,
        classification: Optional[int] = None,
        *,
        attempts: Optional[int] = None,
    ) -> Outcome[Dict[str, Any]]:
        if not self.api_key:
            logger.error("[Reinfolib] REINFOLIB_API_KEY is not set")
            return Outcome.failure(NO_API_KEY)
        if not MIN_API_ZOOM <= z <= MAX_API_ZOOM:
            return Outcome.failure(UNSUPPORTED_ZOOM)

        attempts = attempts if attempts is not None else self.attempts
        if attempts < 1:
            raise ValueError("attempts must be >= 1")
        delays = backoff_delays(attempts, self.backoff_base)
        headers = {"Ocp-Apim-Subscription-Key": self.api_key}
        params = self._params(z, x, y, year, classification)
        tag = f"z={z} x={x} y={y} year={year} cls={classification}"
        last = Outcome.failure(TRANSPORT)

        async with httpx.AsyncClient(
            timeout=self._timeout, transport=self._transport
        ) as client:
            for attempt in range(attempts):
                try:
                    self.calls += 1
                    r = await client.get(self.base_url, params=params, headers=headers)
                except httpx.HTTPError as e:
                    logger.warning(
                        f"[Reinfolib] {tag} 전송 오류 {attempt + 1}/{attempts}: {e!r}"
                    )
                    last = Outcome.failure(TRANSPORT)
                else:
                    if r.status_code == 401:
                        logger.error("[Reinfolib] Invalid API key (401)")
                        return Outcome.failure(UNAUTHORIZED)
                    if r.status_code == 404:
                        return Outcome.success(empty_collection())
                    if 400 <= r.status_code < 500:
                        logger.warning(f"[Reinfolib] {tag} HTTP {r.status_code}")
                        return Outcome.failure(f"http_{r.status_code}")
                    if r.status_code < 400:
                        try:
                            data = r.json()
                        except ValueError:
                            logger.warning(f"[Reinfolib] {tag} JSON 디코딩 실패")
                            return Outcome.failure(MALFORMED)
                        if not isinstance(data, dict):
                            return Outcome.failure(MALFORMED)
                        data.setdefault("type", "FeatureCollection")
                        if not isinstance(data.get("features"), list):
                            data["features"] = []
                        return Outcome.success(data)
                    logger.warning(
                        f"[Reinfolib] {tag} HTTP {r.status_code} {attempt + 1}/{attempts}"
                    )
                    last = Outcome.failure(f"http_{r.status_code}")

                if attempt < len(delays):
                    await self._sleep(delays[attempt])

        return last
