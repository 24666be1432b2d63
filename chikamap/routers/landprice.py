# chikamap/routers/landprice.py
# -----------------------------------------------------------------------------
# 지가 API
# - GET  /api/landprice            : 단일 타일 프록시 (DB 경유)
# - POST /api/landprice/region     : 검색 범위 내 지점 목록
# - POST /api/landprice/history    : 지점 가격 이력 (지연 조회)
# - GET  /api/search-landprice     : DB 지명 검색
# -----------------------------------------------------------------------------
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response
from loguru import logger

from chikamap.core.config import settings
from chikamap.core.tiles import MAX_API_ZOOM, MIN_API_ZOOM, Tile, estimate_tile_count
from chikamap.routers.deps import rate_limited
from chikamap.schemas.landprice import (
    FeatureCollection,
    HistoryRequest,
    PriceHistory,
    RegionRequest,
    RegionResponse,
    SearchResponse,
)
from chikamap.services.landprice import (
    LandPriceService,
    get_landprice_service,
    validate_bounds,
)
from chikamap.services.rate_limit import SlidingWindowRateLimiter

router = APIRouter(prefix="/api", tags=["landprice"])

CDN_CACHE = "public, s-maxage=3600, stale-while-revalidate=86400"

_limiter = SlidingWindowRateLimiter(settings.RATE_LIMIT_PER_MINUTE)


@router.get(
    "/landprice",
    response_model=FeatureCollection,
    dependencies=[Depends(rate_limited(_limiter))],
)
async def landprice_tile(
    response: Response,
    z: int = Query(..., ge=MIN_API_ZOOM, le=MAX_API_ZOOM),
    x: int = Query(..., ge=0),
    y: int = Query(..., ge=0),
    year: int = Query(..., ge=1970, le=2100),
    price_classification: Optional[int] = Query(
        None, alias="priceClassification", ge=0, le=1
    ),
    svc: LandPriceService = Depends(get_landprice_service),
):
    result = await svc.fetch_tile(Tile(x, y, z), year, price_classification)
    response.headers["Cache-Control"] = CDN_CACHE
    return FeatureCollection(features=result.features, latest_year=result.latest_year)


@router.post(
    "/landprice/region",
    response_model=RegionResponse,
    dependencies=[Depends(rate_limited(_limiter))],
)
async def landprice_region(
    req: RegionRequest, svc: LandPriceService = Depends(get_landprice_service)
):
    bounds = req.search_bounds()
    try:
        # mapBounds 로 만든 범위는 여기서 처음 검증됨
        validate_bounds(bounds)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    estimated = estimate_tile_count(bounds, settings.LANDPRICE_ZOOM)
    tile_warning = estimated > settings.MAX_TILES_WARNING
    if tile_warning:
        logger.warning(f"[Region] 타일 {estimated}장 예상 (경고 기준 초과)")

    try:
        result = await svc.fetch_region(bounds, req.classifications)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("[Region] 지가 조회 실패")
        raise HTTPException(status_code=500, detail="Failed to fetch land price data")

    return RegionResponse(
        points=result.points,
        truncated=result.truncated,
        total_matched=result.total_matched,
        latest_year=result.latest_year,
        tile_count=result.tile_count,
        tile_warning=tile_warning,
    )


@router.post("/landprice/history", response_model=List[PriceHistory])
async def landprice_history(
    req: HistoryRequest, svc: LandPriceService = Depends(get_landprice_service)
):
    try:
        return await svc.fetch_point_history(
            req.point, req.years_back, ascending=req.ascending
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except Exception:
        logger.exception("[History] 가격 이력 조회 실패")
        raise HTTPException(status_code=500, detail="Failed to fetch price history")


@router.get(
    "/search-landprice",
    response_model=SearchResponse,
    dependencies=[Depends(rate_limited(_limiter))],
)
async def search_landprice(
    response: Response,
    q: str = Query("", max_length=100),
    svc: LandPriceService = Depends(get_landprice_service),
):
    if not q.strip():
        raise HTTPException(status_code=400, detail='Query parameter "q" is required')
    results = await svc.search_by_name(q)
    response.headers["Cache-Control"] = CDN_CACHE
    return SearchResponse(results=results)
