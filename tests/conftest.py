"""
Shared test fixtures for WattWise tests.

Provides environment isolation, an in-memory SQLite database (through
aiosqlite) with the full schema, and session fixtures for service tests.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from collections.abc import AsyncGenerator

import pytest
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from wattwise.cache.previous_values import PreviousValueCache
from wattwise.db.models import Base
from wattwise.services.delta import DeltaEstimator

# All Settings environment variable names, used for cleanup.
_ALL_ENV_VARS = (
    "DATABASE_URL",
    "REDIS_URL",
    "TZ_OFFSET_MINUTES",
    "SAMPLE_INTERVAL_MINUTES",
    "DEFAULT_DEVICE_ID",
    "CACHE_TTL_S",
    "PREVIOUS_VALUE_TTL_S",
    "STALE_THRESHOLD_S",
    "BATCH_HOUR",
    "BATCH_MINUTE",
    "REFOLD_MAX_ATTEMPTS",
    "REFOLD_MAX_BACKOFF_S",
    "LOG_LEVEL",
)

DEVICE_ID = "meter-1"


@pytest.fixture(autouse=True)
def _set_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Reset settings env vars and set the required ones for every test.

    Changes working directory to tmp_path so no .env file is loaded.
    """
    for var in _ALL_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("DATABASE_URL", "postgresql+asyncpg://u:p@localhost/db")
    monkeypatch.setenv("REDIS_URL", "redis://localhost:6379/0")


@pytest.fixture()
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with every table created.

    StaticPool keeps a single connection so all sessions see one database.
    """
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture()
async def session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest.fixture()
def cache() -> PreviousValueCache:
    return PreviousValueCache()


@pytest.fixture()
def estimator(cache: PreviousValueCache) -> DeltaEstimator:
    """Delta estimator with a 5-minute nominal interval."""
    return DeltaEstimator(cache, nominal_interval_h=5 / 60)
