"""
FastAPI dependency injection providers.

Provides database sessions, settings, the previous-value cache, the delta
estimator, the refold queue and the clock for use with FastAPI's
Depends() mechanism. The cache and queue are process-wide singletons
created lazily (or eagerly by the application lifespan).

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from datetime import UTC, datetime
from typing import Annotated

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wattwise.cache.previous_values import PreviousValueCache, RedisPreviousValueCache
from wattwise.config import Settings, get_settings
from wattwise.db.session import get_async_session, get_session_factory
from wattwise.services.delta import DeltaEstimator
from wattwise.services.refold_queue import RefoldQueue

# Type alias for injecting an async DB session via FastAPI Depends().
# Usage in route handlers:
#   async def my_route(db: DbSession):
#       result = await db.execute(...)
DbSession = Annotated[AsyncSession, Depends(get_async_session)]


def get_app_settings() -> Settings:
    """FastAPI dependency returning validated settings."""
    return get_settings()


AppSettings = Annotated[Settings, Depends(get_app_settings)]


def get_clock() -> datetime:
    """Current time as an aware UTC datetime (overridable in tests)."""
    return datetime.now(UTC)


Now = Annotated[datetime, Depends(get_clock)]


# ---------------------------------------------------------------------------
# Process-wide singletons
# ---------------------------------------------------------------------------

_previous_value_cache: PreviousValueCache | None = None
_refold_queue: RefoldQueue | None = None


def init_previous_value_cache() -> PreviousValueCache:
    """Build the Redis-backed previous-value cache from settings.

    Cached after the first call.

    Returns:
        PreviousValueCache: The process-wide cache.
    """
    global _previous_value_cache  # noqa: PLW0603
    if _previous_value_cache is None:
        settings = get_settings()
        _previous_value_cache = RedisPreviousValueCache(ttl_s=settings.PREVIOUS_VALUE_TTL_S)
    return _previous_value_cache


def init_refold_queue() -> RefoldQueue:
    """Build the background refold queue from settings.

    Cached after the first call.

    Returns:
        RefoldQueue: The process-wide queue.
    """
    global _refold_queue  # noqa: PLW0603
    if _refold_queue is None:
        settings = get_settings()
        _refold_queue = RefoldQueue(
            max_attempts=settings.REFOLD_MAX_ATTEMPTS,
            max_backoff_s=settings.REFOLD_MAX_BACKOFF_S,
        )
    return _refold_queue


def get_previous_value_cache() -> PreviousValueCache:
    return init_previous_value_cache()


def get_refold_queue() -> RefoldQueue:
    return init_refold_queue()


def get_job_session_factory() -> async_sessionmaker[AsyncSession]:
    """Session factory used by background refold jobs."""
    return get_session_factory()


def get_delta_estimator(
    settings: AppSettings,
    cache: Annotated[PreviousValueCache, Depends(get_previous_value_cache)],
) -> DeltaEstimator:
    """Delta estimator bound to the process-wide previous-value cache."""
    return DeltaEstimator(cache, nominal_interval_h=settings.sample_interval_hours)


PreviousValues = Annotated[PreviousValueCache, Depends(get_previous_value_cache)]
Estimator = Annotated[DeltaEstimator, Depends(get_delta_estimator)]
Queue = Annotated[RefoldQueue, Depends(get_refold_queue)]
JobSessionFactory = Annotated[
    async_sessionmaker[AsyncSession], Depends(get_job_session_factory)
]
