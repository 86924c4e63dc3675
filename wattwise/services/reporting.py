"""
Read-side queries over the rollup tables.

Every lookup answers with a record of the same shape whether or not a
row exists: a missing day, week or month is reported as a zero-valued
placeholder, never as an error. Range lookups always return the full
range (7 days, N weeks, 12 months) in chronological order.

CHANGELOG:
- 2026-10-18: Add current-month, year-total and live-usage lookups
- 2026-10-18: Initial creation

TODO:
- None
"""

import logging
from datetime import UTC, date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wattwise.cache.previous_values import PreviousValueCache
from wattwise.db.models import DailyUsage, MonthlyUsage, RawUsage, WeeklyUsage
from wattwise.services.periods import (
    day_key,
    month_name,
    recent_week_starts,
    week_end,
    week_number,
    week_start,
    week_year,
)
from wattwise.services.rollup import fold_rollups

logger = logging.getLogger(__name__)

_SUMMARY_FIELDS = ("total_energy", "total_power", "peak_power", "average_power")


def _iso(ts: datetime | None) -> str | None:
    return ts.isoformat() if ts is not None else None


def _summary(row: DailyUsage | WeeklyUsage | MonthlyUsage | None) -> dict:
    """Reporting fields of a rollup row, zero-filled when *row* is None."""
    if row is None:
        return {**dict.fromkeys(_SUMMARY_FIELDS, 0.0), "created_at": None, "updated_at": None}
    return {
        **{name: float(getattr(row, name) or 0.0) for name in _SUMMARY_FIELDS},
        "created_at": _iso(row.created_at),
        "updated_at": _iso(row.updated_at),
    }


# ---------------------------------------------------------------------------
# Daily
# ---------------------------------------------------------------------------


async def get_day_usage(session: AsyncSession, day: date, device_id: str) -> dict:
    """Return the daily summary for *day*.

    Returns:
        dict with ``date``, ``total_energy``, ``total_power``,
        ``peak_power``, ``average_power``, ``created_at``, ``updated_at``
        and ``found`` (False for a zero-filled placeholder).
    """
    row = await session.get(DailyUsage, (device_id, day))
    return {"date": day.isoformat(), **_summary(row), "found": row is not None}


async def get_week_days(session: AsyncSession, any_day: date, device_id: str) -> dict:
    """Return the seven daily summaries (Sunday..Saturday) of a week.

    Returns:
        dict with ``week_start``, ``week_end`` and ``days`` (7 entries).
    """
    start = week_start(any_day)
    end = week_end(any_day)
    rows = (
        await session.execute(
            select(DailyUsage).where(
                DailyUsage.device_id == device_id,
                DailyUsage.usage_date >= start,
                DailyUsage.usage_date <= end,
            )
        )
    ).scalars().all()
    by_day = {row.usage_date: row for row in rows}

    days = []
    for offset in range(7):
        day = start + timedelta(days=offset)
        days.append({"date": day.isoformat(), **_summary(by_day.get(day))})
    return {"week_start": start.isoformat(), "week_end": end.isoformat(), "days": days}


# ---------------------------------------------------------------------------
# Weekly
# ---------------------------------------------------------------------------


async def get_recent_weeks(
    session: AsyncSession,
    today: date,
    device_id: str,
    count: int = 4,
) -> list[dict]:
    """Return summaries of the last *count* weeks, oldest first.

    Missing weeks carry their computed week number and ISO year.
    """
    starts = recent_week_starts(today, count)
    rows = (
        await session.execute(
            select(WeeklyUsage).where(
                WeeklyUsage.device_id == device_id,
                WeeklyUsage.week_start_date.in_(starts),
            )
        )
    ).scalars().all()
    by_start = {row.week_start_date: row for row in rows}

    weeks = []
    for start in starts:
        row = by_start.get(start)
        weeks.append(
            {
                "week_start_date": start.isoformat(),
                "week_end_date": week_end(start).isoformat(),
                "week_number": row.week_number if row else week_number(start),
                "year": row.year if row else week_year(start),
                **_summary(row),
            }
        )
    return weeks


# ---------------------------------------------------------------------------
# Monthly
# ---------------------------------------------------------------------------


def _month_entry(year: int, month: int, row: MonthlyUsage | None) -> dict:
    return {
        "month": month,
        "year": year,
        "month_name": (row.month_name if row else None) or month_name(month),
        **_summary(row),
    }


async def get_year_months(session: AsyncSession, year: int, device_id: str) -> list[dict]:
    """Return the twelve monthly summaries of *year*, January first."""
    rows = (
        await session.execute(
            select(MonthlyUsage).where(
                MonthlyUsage.device_id == device_id, MonthlyUsage.year == year,
            )
        )
    ).scalars().all()
    by_month = {row.month: row for row in rows}
    return [_month_entry(year, month, by_month.get(month)) for month in range(1, 13)]


async def get_current_month(session: AsyncSession, today: date, device_id: str) -> dict:
    """Return the summary of the month containing *today*."""
    row = await session.get(MonthlyUsage, (device_id, today.year, today.month))
    return {**_month_entry(today.year, today.month, row), "found": row is not None}


async def get_year_total(session: AsyncSession, year: int, device_id: str) -> dict:
    """Return totals over every monthly row of *year*.

    Energy and power are summed, the peak is the maximum, and the average
    is the mean of the monthly averages.
    """
    rows = (
        await session.execute(
            select(MonthlyUsage).where(
                MonthlyUsage.device_id == device_id, MonthlyUsage.year == year,
            )
        )
    ).scalars().all()
    folded = fold_rollups(rows)
    return {
        "year": year,
        **{name: folded[name] for name in _SUMMARY_FIELDS},
        "months_count": len(rows),
    }


# ---------------------------------------------------------------------------
# Live usage
# ---------------------------------------------------------------------------


def _live_payload(
    voltage: float = 0.0,
    current: float = 0.0,
    power: float = 0.0,
    energy: float = 0.0,
    timestamp: datetime | None = None,
) -> dict:
    return {
        "voltage": f"{voltage:.3f}",
        "current": f"{current:.3f}",
        "power": f"{power:.3f}",
        "energy": f"{energy:.3f}",
        "timestamp": _iso(timestamp),
    }


async def get_live_usage(
    session: AsyncSession,
    cache: PreviousValueCache,
    device_id: str,
    now: datetime,
    tz_offset_minutes: int,
    stale_threshold_s: int,
) -> dict:
    """Return what the latest sample added to today's bucket.

    Voltage and current are instantaneous. Power and energy are the
    bucket totals minus the cached pre-fold snapshot, clamped at zero, so
    they show the increment of the latest update rather than the day's
    running total. A missing or stale bucket is reported as zeros.

    Returns:
        dict with ``message`` and ``data`` (values formatted to three
        decimals, plus ``timestamp``).
    """
    today = day_key(now, tz_offset_minutes)
    bucket = (
        await session.execute(
            select(RawUsage).where(
                RawUsage.device_id == device_id, RawUsage.usage_date == today,
            ).execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()

    if bucket is None:
        return {"message": "No usage data available yet", "data": _live_payload()}

    last_update = bucket.last_updated_at
    if last_update.tzinfo is None:
        last_update = last_update.replace(tzinfo=UTC)
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)

    if (now - last_update).total_seconds() > stale_threshold_s:
        return {
            "message": "Hardware appears to be off - no recent data",
            "data": _live_payload(timestamp=last_update),
        }

    power = bucket.power or 0.0
    energy = bucket.energy_accumulated or 0.0
    snapshot = await cache.get(device_id)
    if (
        snapshot is not None
        and snapshot.last_timestamp is not None
        and snapshot.last_day == bucket.usage_date
    ):
        power -= snapshot.last_power
        energy -= snapshot.last_accumulated_energy

    return {
        "message": "Latest usage data retrieved successfully",
        "data": _live_payload(
            voltage=bucket.voltage or 0.0,
            current=bucket.current or 0.0,
            power=max(0.0, power),
            energy=max(0.0, energy),
            timestamp=last_update,
        ),
    }
