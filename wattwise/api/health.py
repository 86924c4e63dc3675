"""
Health check endpoint that probes DB and Redis connectivity.

Returns a JSON response indicating overall system status, the status of
each dependency (database and Redis) and the refold queue counters.
Returns HTTP 200 when all components are healthy, or HTTP 503 when any
component is degraded. Refold failures are reported but do not degrade
the status.

CHANGELOG:
- 2026-10-18: Report refold queue statistics
- 2026-10-18: Initial creation

TODO:
- None
"""

import logging

from fastapi import APIRouter
from fastapi.responses import JSONResponse
from sqlalchemy import text

from wattwise.api.deps import Queue
from wattwise.cache.redis_client import get_redis
from wattwise.db.session import get_async_session

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


async def _check_db() -> str:
    """Probe the database with a simple SELECT 1 query.

    Returns:
        "ok" if the query succeeds, "error" otherwise.
    """
    try:
        async for session in get_async_session():
            await session.execute(text("SELECT 1"))
            return "ok"
    except Exception:
        logger.warning("Health check: DB probe failed", exc_info=True)
        return "error"
    return "error"  # pragma: no cover


async def _check_redis() -> str:
    """Probe Redis with a PING command.

    Returns:
        "ok" if the ping succeeds, "error" otherwise.
    """
    try:
        client = await get_redis()
        try:
            await client.ping()
            return "ok"
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Health check: Redis probe failed", exc_info=True)
        return "error"


@router.get("/health")
async def health_check(queue: Queue) -> JSONResponse:
    """Health check probing DB and Redis and reporting the refold queue.

    Returns:
        JSONResponse: JSON with status, db, redis and refold fields.
            HTTP 200 when all components are ok, HTTP 503 when degraded.
    """
    db_status = await _check_db()
    redis_status = await _check_redis()

    all_ok = db_status == "ok" and redis_status == "ok"

    return JSONResponse(
        status_code=200 if all_ok else 503,
        content={
            "status": "ok" if all_ok else "degraded",
            "db": db_status,
            "redis": redis_status,
            "refold": queue.stats(),
        },
    )
