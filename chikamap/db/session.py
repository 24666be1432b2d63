# chikamap/db/session.py
# -----------------------------------------------------------------------------
# SQLAlchemy Async 엔진/세션/베이스
# - SQLite 기본, PostgreSQL(asyncpg)로 교체 시 URL만 변경
# -----------------------------------------------------------------------------
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.orm import declarative_base

from chikamap.core.config import settings

Base = declarative_base()


def make_engine(url: str) -> AsyncEngine:
    return create_async_engine(url, echo=False, future=True, pool_pre_ping=True)


def make_session_factory(eng: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(eng, expire_on_commit=False)


engine = make_engine(settings.DATABASE_URL)
AsyncSessionLocal = make_session_factory(engine)


async def create_tables(eng: AsyncEngine = engine) -> None:
    # 모델 모듈이 import 되어 있어야 metadata 에 테이블이 등록됨
    from chikamap.db import models  # noqa: F401

    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
