"""Shared fixtures: in-memory SQLite database, settings, fixed clock."""

from __future__ import annotations

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from pricecast.db.models import Base
from pricecast.settings import Settings

# 2025-10-09 09:00:00 UTC, aligned to the hour
NOW_MS = 1_760_000_400_000
HOUR_MS = 3_600_000


@pytest_asyncio.fixture
async def session_factory():
    """Fresh in-memory database per test (aiosqlite, single shared connection)."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    yield factory
    await engine.dispose()


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        environment="testing",
        database_url="sqlite+aiosqlite://",
        provider_min_spacing_seconds=0.0,
        pause_between_calls_seconds=0.0,
        pause_between_assets_seconds=0.0,
    )


@pytest.fixture
def clock():
    return lambda: NOW_MS
