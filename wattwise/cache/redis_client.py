"""
Redis client for cache operations.

Provides helper functions for creating Redis connections and invalidating
device-specific live-usage cache entries. Cache invalidation is best-effort:
connection failures are logged but do not propagate exceptions.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

import logging

import redis.asyncio as redis

from wattwise.config import get_settings

logger = logging.getLogger(__name__)


def live_cache_key(device_id: str) -> str:
    """Return the Redis key of the live-usage cache entry for a device."""
    return f"live:{device_id}"


async def get_redis() -> redis.Redis:
    """Create and return an async Redis client from application settings.

    Returns:
        redis.Redis: Async Redis client.
    """
    settings = get_settings()
    return redis.from_url(settings.REDIS_URL)


async def invalidate_live_cache(device_id: str) -> None:
    """Delete the live-usage cache key for a device.

    Best-effort operation: if Redis is unavailable or the delete fails,
    the error is logged but not raised. Ingest is never blocked by cache
    infrastructure issues.

    Args:
        device_id: The device identifier whose cache should be cleared.
    """
    try:
        client = await get_redis()
        try:
            await client.delete(live_cache_key(device_id))
        finally:
            await client.aclose()
    except Exception:
        logger.warning(
            "Failed to invalidate live cache for device %s", device_id, exc_info=True,
        )
