# chikamap/main.py
# -----------------------------------------------------------------------------
# FastAPI 엔트리포인트
# - 기동 시 로깅 설정 + 테이블 생성
# - 종료 시 대기 중인 DB 저장 완료 후 엔진 정리
# -----------------------------------------------------------------------------
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from loguru import logger

from chikamap.core.config import settings
from chikamap.core.logging import setup_logging
from chikamap.db.session import create_tables, engine
from chikamap.routers import admin, landprice, maps
from chikamap.services.landprice import get_landprice_service

app = FastAPI(title=settings.APP_NAME)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_methods=["GET", "POST", "OPTIONS"],
    allow_headers=["*"],
    expose_headers=["X-RateLimit-Remaining"],
)


@app.on_event("startup")
async def on_startup():
    setup_logging()
    await create_tables()
    logger.info(f"[{settings.APP_NAME}] 기동 (env={settings.ENV})")


@app.on_event("shutdown")
async def on_shutdown():
    await get_landprice_service().store.drain()
    await engine.dispose()


app.include_router(landprice.router)
app.include_router(maps.router)
app.include_router(admin.router)


@app.get("/health")
async def health():
    return {"status": "ok"}
