# chikamap/routers/admin.py
# -----------------------------------------------------------------------------
# 운영/배치 엔드포인트
# - batch-update : 주간 Cron (Bearer CRON_SECRET) 또는 관리자 키로 수동 실행
# - batch/reset  : error 상태 작업을 pending 으로 되돌림
# - migrate      : 테이블 생성 + 최신 연도 싱글톤 초기화
# - stats        : 캐시 DB 적재 현황
# -----------------------------------------------------------------------------
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger

from chikamap.core.config import settings
from chikamap.db.session import create_tables
from chikamap.routers.deps import require_admin, require_cron_or_admin
from chikamap.schemas.landprice import BatchSummary
from chikamap.services.batch import run_batch_update
from chikamap.services.landprice import LandPriceService, get_landprice_service

router = APIRouter(prefix="/admin", tags=["admin"])


@router.api_route(
    "/batch-update",
    methods=["GET", "POST"],
    response_model=BatchSummary,
    dependencies=[Depends(require_cron_or_admin)],
)
async def batch_update(
    year: Optional[int] = Query(None, ge=1970, le=2100),
    batch_size: Optional[int] = Query(None, alias="batchSize", ge=1, le=100),
    svc: LandPriceService = Depends(get_landprice_service),
):
    if not settings.REINFOLIB_API_KEY:
        raise HTTPException(status_code=500, detail="REINFOLIB_API_KEY not configured")
    try:
        return await run_batch_update(
            svc.store, svc.resolver.upstream, year=year, batch_size=batch_size
        )
    except Exception:
        logger.exception("[Batch] 배치 실행 실패")
        raise HTTPException(status_code=500, detail="Batch update failed")


@router.post("/batch/reset", dependencies=[Depends(require_admin)])
async def batch_reset(svc: LandPriceService = Depends(get_landprice_service)):
    count = await svc.store.reset_batch_errors()
    logger.info(f"[Batch] error 작업 {count}건 재대기")
    return {"reset": count}


@router.api_route(
    "/migrate", methods=["GET", "POST"], dependencies=[Depends(require_admin)]
)
async def migrate(svc: LandPriceService = Depends(get_landprice_service)):
    try:
        await create_tables()
        state = await svc.prober.get_state()
    except Exception:
        logger.exception("[Migrate] 마이그레이션 실패")
        raise HTTPException(status_code=500, detail="Migration failed")
    return {
        "status": "ok",
        "tables": [
            "land_price_masters",
            "land_price_yearly",
            "api_freshness_state",
            "batch_progress",
        ],
        "latestYear": state.latest_year,
    }


@router.get("/stats", dependencies=[Depends(require_admin)])
async def stats(svc: LandPriceService = Depends(get_landprice_service)):
    data = await svc.store.stats()
    cache = svc.resolver.memory_cache
    if cache is not None:
        data["memory_cache"] = cache.stats()
    return data
