"""
Usage reporting API endpoints.

Read-only views over the daily, weekly and monthly rollups plus the live
increment of today's bucket. Absent rows are returned as zero-filled
records; only malformed parameters produce errors (400).

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

import json
import logging
import re
from datetime import date

from fastapi import APIRouter, HTTPException, Query

from wattwise.api.deps import AppSettings, DbSession, Now, PreviousValues
from wattwise.cache.redis_client import get_redis, live_cache_key
from wattwise.services import reporting
from wattwise.services.periods import local_today

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["usage"])

# Strict YYYY-MM-DD pattern; calendar validity is checked by date.fromisoformat.
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def parse_date(value: str) -> date:
    """Parse a YYYY-MM-DD string.

    Raises:
        HTTPException: 400 if the string is not a valid calendar date.
    """
    if not _DATE_RE.match(value):
        raise HTTPException(status_code=400, detail="Invalid date format. Use YYYY-MM-DD")
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise HTTPException(status_code=400, detail=f"Invalid date: {value}") from None


# ---------------------------------------------------------------------------
# Daily
# ---------------------------------------------------------------------------


@router.get("/daily-usage/date/{day}")
async def daily_usage_for_date(
    day: str,
    db: DbSession,
    settings: AppSettings,
    device_id: str | None = None,
) -> dict:
    """Daily summary for one date, zero-filled when absent."""
    target = parse_date(day)
    data = await reporting.get_day_usage(db, target, device_id or settings.DEFAULT_DEVICE_ID)
    found = data.pop("found")
    message = (
        "Daily usage data retrieved successfully" if found
        else "No usage data found for this date"
    )
    return {"success": True, "message": message, "data": data}


@router.get("/daily-usage/week")
async def daily_usage_for_week(
    db: DbSession,
    settings: AppSettings,
    now: Now,
    day: str | None = Query(default=None, alias="date"),
    device_id: str | None = None,
) -> dict:
    """Seven daily summaries (Sunday..Saturday) of the current or given week."""
    target = parse_date(day) if day else local_today(settings.TZ_OFFSET_MINUTES, now)
    week = await reporting.get_week_days(db, target, device_id or settings.DEFAULT_DEVICE_ID)
    return {
        "success": True,
        "message": "Daily usage data retrieved successfully",
        "data": week["days"],
        "weekStart": week["week_start"],
        "weekEnd": week["week_end"],
    }


# ---------------------------------------------------------------------------
# Weekly
# ---------------------------------------------------------------------------


@router.get("/weekly-usage/recent")
async def recent_weekly_usage(
    db: DbSession,
    settings: AppSettings,
    now: Now,
    weeks: int = Query(default=4, ge=1, le=53),
    device_id: str | None = None,
) -> dict:
    """Summaries of the last N weeks, oldest first."""
    today = local_today(settings.TZ_OFFSET_MINUTES, now)
    data = await reporting.get_recent_weeks(
        db, today, device_id or settings.DEFAULT_DEVICE_ID, count=weeks,
    )
    return {"success": True, "message": "Weekly usage data retrieved successfully", "data": data}


# ---------------------------------------------------------------------------
# Monthly
# ---------------------------------------------------------------------------


@router.get("/monthly-usage/year")
async def monthly_usage_for_year(
    db: DbSession,
    settings: AppSettings,
    now: Now,
    year: int | None = Query(default=None, ge=1, le=9999),
    device_id: str | None = None,
) -> dict:
    """Twelve monthly summaries of the current or given year."""
    target = year or local_today(settings.TZ_OFFSET_MINUTES, now).year
    data = await reporting.get_year_months(db, target, device_id or settings.DEFAULT_DEVICE_ID)
    return {
        "success": True,
        "message": "Monthly usage data retrieved successfully",
        "data": data,
        "year": target,
    }


@router.get("/monthly-usage/current")
async def current_monthly_usage(
    db: DbSession,
    settings: AppSettings,
    now: Now,
    device_id: str | None = None,
) -> dict:
    """Summary of the current month, zero-filled when absent."""
    today = local_today(settings.TZ_OFFSET_MINUTES, now)
    data = await reporting.get_current_month(db, today, device_id or settings.DEFAULT_DEVICE_ID)
    found = data.pop("found")
    message = (
        "Current month usage data retrieved successfully" if found
        else "No usage data found for current month"
    )
    return {"success": True, "message": message, "data": data}


@router.get("/monthly-usage/year-total")
async def year_total_usage(
    db: DbSession,
    settings: AppSettings,
    now: Now,
    year: int | None = Query(default=None, ge=1, le=9999),
    device_id: str | None = None,
) -> dict:
    """Totals over every month of the current or given year."""
    target = year or local_today(settings.TZ_OFFSET_MINUTES, now).year
    data = await reporting.get_year_total(db, target, device_id or settings.DEFAULT_DEVICE_ID)
    return {"success": True, "message": "Year total usage data retrieved successfully", "data": data}


# ---------------------------------------------------------------------------
# Live usage (Redis read-through cache)
# ---------------------------------------------------------------------------


async def _cache_get(device_id: str) -> dict | None:
    """Attempt to read cached live usage from Redis.

    Best-effort: returns None on any Redis failure so the caller
    falls through to the database.
    """
    try:
        client = await get_redis()
        try:
            raw = await client.get(live_cache_key(device_id))
            if raw is not None:
                return json.loads(raw)
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Redis cache read failed for device %s", device_id, exc_info=True)
    return None


async def _cache_set(device_id: str, payload: dict, ttl_s: int) -> None:
    """Attempt to write live usage to the Redis cache; failures are logged."""
    try:
        client = await get_redis()
        try:
            await client.set(live_cache_key(device_id), json.dumps(payload), ex=ttl_s)
        finally:
            await client.aclose()
    except Exception:
        logger.warning("Redis cache write failed for device %s", device_id, exc_info=True)


@router.get("/raw-usage/latest")
async def latest_raw_usage(
    db: DbSession,
    settings: AppSettings,
    cache: PreviousValues,
    now: Now,
    device_id: str | None = None,
) -> dict:
    """Increment added by the latest reading, or zeros when the meter is idle."""
    device = device_id or settings.DEFAULT_DEVICE_ID

    cached = await _cache_get(device)
    if cached is not None:
        return {"success": True, **cached}

    live = await reporting.get_live_usage(
        db,
        cache,
        device,
        now,
        tz_offset_minutes=settings.TZ_OFFSET_MINUTES,
        stale_threshold_s=settings.STALE_THRESHOLD_S,
    )
    await _cache_set(device, live, settings.CACHE_TTL_S)
    return {"success": True, **live}
