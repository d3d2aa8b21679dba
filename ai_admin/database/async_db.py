"""Async database engine and session factory."""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from ai_admin.config.settings import Settings

logger = logging.getLogger(__name__)


def create_async_database_engine(settings: Settings, database_url: str | None = None) -> AsyncEngine:
    """Create the async engine. Debug mode runs without pooling."""
    url = database_url or settings.database_url
    base_config = {
        "echo": settings.DB_ECHO,
        "pool_pre_ping": True,
    }

    if settings.DEBUG:
        logger.info("Creating async database engine for DEVELOPMENT (NullPool)")
        return create_async_engine(url, poolclass=NullPool, **base_config)

    logger.info("Creating async database engine for PRODUCTION (pooled)")
    return create_async_engine(
        url,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_timeout=30,
        **base_config,
    )


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@asynccontextmanager
async def session_scope(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    """
    Transactional session: commit on success, rollback and re-raise on error.
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception as e:
            logger.error(f"Async database error: {e}")
            await session.rollback()
            raise
