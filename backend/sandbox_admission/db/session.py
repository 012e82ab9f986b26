"""Async engine and session factory for the admission store."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from functools import lru_cache

from sqlalchemy.ext.asyncio import AsyncEngine, async_sessionmaker, create_async_engine
from sqlmodel import SQLModel
from sqlmodel.ext.asyncio.session import AsyncSession

from sandbox_admission import models  # noqa: F401  (registers tables on the metadata)
from sandbox_admission.core.config import settings
from sandbox_admission.core.logging import get_logger

logger = get_logger(__name__)


@lru_cache(maxsize=1)
def get_engine() -> AsyncEngine:
    """Return the process-wide engine built from `DATABASE_URL`."""
    return create_async_engine(settings.database_url, echo=settings.db_echo, pool_pre_ping=True)


def get_session_maker(engine: AsyncEngine | None = None) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine or get_engine(), class_=AsyncSession, expire_on_commit=False)


async def init_db(engine: AsyncEngine | None = None) -> None:
    """Create any missing tables; migrations remain the source of truth in production."""
    target = engine or get_engine()
    async with target.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    logger.info("db.init.complete", extra={"dialect": target.dialect.name})


async def get_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a session and roll back anything left uncommitted."""
    async with get_session_maker()() as session:
        try:
            yield session
        finally:
            if session.in_transaction():
                await session.rollback()
