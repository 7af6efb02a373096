"""
Async database connection management via SQLAlchemy + asyncpg.

Provides a connection-pooled async engine and session factory shared by
the prediction store, the market data reader, and the serving layer.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from pricecast.settings import get_settings

logger = logging.getLogger(__name__)

# Module-level engine and session factory, initialized lazily via init_db().
engine: AsyncEngine | None = None
async_session_factory: async_sessionmaker[AsyncSession] | None = None


def init_db(url: str | None = None) -> async_sessionmaker[AsyncSession]:
    """Create the async engine and session factory.

    Called once at process startup (scheduler entry points).

    Args:
        url: Override DATABASE_URL. Defaults to settings value.

    Returns:
        The created session factory.
    """
    global engine, async_session_factory  # noqa: PLW0603

    settings = get_settings()
    database_url = url or settings.database_url

    engine_kwargs: dict = {"echo": False}
    if not database_url.startswith("sqlite"):
        engine_kwargs.update(
            pool_size=5,
            max_overflow=10,
            pool_timeout=30,
            pool_recycle=1800,
        )

    engine = create_async_engine(database_url, **engine_kwargs)

    async_session_factory = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    logger.info("Async engine initialized (%s)", engine.dialect.name)
    return async_session_factory


async def close_db() -> None:
    """Dispose of the engine connection pool.

    Called once at process shutdown.
    """
    global engine, async_session_factory  # noqa: PLW0603
    if engine is not None:
        await engine.dispose()
        logger.info("Async engine disposed")
    engine = None
    async_session_factory = None

