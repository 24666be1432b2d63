# chikamap/routers/maps.py
# -----------------------------------------------------------------------------
# 지도 보조 API (Google Maps Platform 프록시)
# - GET /api/geocode?address=
# - GET /api/places?query=
# - GET /api/streetview-metadata?lat=&lon=
# - GET /api/streetview?lat=&lon=&heading=&pitch=&fov=
# -----------------------------------------------------------------------------
import httpx
from fastapi import APIRouter, Depends, HTTPException, Query
from fastapi.responses import JSONResponse, Response
from loguru import logger

from chikamap.core.config import settings
from chikamap.routers.deps import rate_limited
from chikamap.services import google
from chikamap.services.rate_limit import SlidingWindowRateLimiter

router = APIRouter(prefix="/api", tags=["maps"])

_places_limiter = SlidingWindowRateLimiter(settings.PLACES_RATE_LIMIT_PER_MINUTE)


def _require_key() -> None:
    if not settings.GOOGLE_API_KEY:
        raise HTTPException(status_code=500, detail="API key not configured")


@router.get("/geocode", dependencies=[Depends(_require_key)])
async def geocode(address: str = Query(..., min_length=1, max_length=200)):
    try:
        return await google.geocode(address)
    except (httpx.HTTPError, ValueError):
        logger.exception("[Geocode] 실패")
        raise HTTPException(status_code=500, detail="Geocoding failed")


@router.get(
    "/places",
    dependencies=[Depends(_require_key), Depends(rate_limited(_places_limiter))],
)
async def places(query: str = Query(..., min_length=1, max_length=100)):
    try:
        status, body = await google.search_places(query)
    except (httpx.HTTPError, ValueError):
        logger.exception("[Places] 실패")
        raise HTTPException(status_code=500, detail="Places search failed")
    return JSONResponse(status_code=status, content=body)


@router.get("/streetview-metadata", dependencies=[Depends(_require_key)])
async def streetview_metadata(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
):
    try:
        return await google.streetview_metadata(lat, lon)
    except (httpx.HTTPError, ValueError):
        logger.exception("[StreetView] 메타데이터 조회 실패")
        raise HTTPException(status_code=500, detail="Street View metadata failed")


@router.get("/streetview", dependencies=[Depends(_require_key)])
async def streetview(
    lat: float = Query(..., ge=-90, le=90),
    lon: float = Query(..., ge=-180, le=180),
    heading: int = Query(0, ge=0, le=360),
    pitch: int = Query(0, ge=-90, le=90),
    fov: int = Query(90, ge=10, le=120),
):
    try:
        content, content_type = await google.streetview_image(
            lat, lon, heading=heading, pitch=pitch, fov=fov
        )
    except httpx.HTTPStatusError as e:
        logger.warning(f"[StreetView] HTTP {e.response.status_code}")
        raise HTTPException(
            status_code=e.response.status_code, detail="Failed to fetch Street View image"
        )
    except httpx.HTTPError:
        logger.exception("[StreetView] 이미지 조회 실패")
        raise HTTPException(
            status_code=500, detail="Failed to fetch from Google Street View API"
        )
    return Response(
        content=content,
        media_type=content_type,
        headers={"Cache-Control": "public, max-age=86400"},
    )
