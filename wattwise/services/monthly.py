"""
Monthly aggregation: fold the weeks that start inside a calendar month.

A week belongs to the month that contains its Sunday start date, so a week
straddling a month boundary is counted once, in the earlier month. Lock
rules mirror the weekly rollup: rows are always created when missing and
only rewritten while today is on or before the month's last day.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wattwise.db.models import MonthlyUsage, WeeklyUsage
from wattwise.services.periods import is_month_locked, month_name, month_range
from wattwise.services.rollup import fold_rollups
from wattwise.services.weekly import (
    STATUS_CREATED,
    STATUS_LOCKED,
    STATUS_NO_DATA,
    STATUS_UPDATED,
)

logger = logging.getLogger(__name__)


async def refresh_monthly(
    session: AsyncSession,
    year: int,
    month: int,
    device_id: str,
    today: date,
) -> dict:
    """Recompute the monthly rollup for *year*-*month*.

    Args:
        session: Async SQLAlchemy session; committed when a row is written.
        year: Calendar year.
        month: Calendar month, 1-12.
        device_id: Device whose weekly rows are folded.
        today: Current local date, used for the lock predicate.

    Returns:
        dict with ``status`` (no_data / created / updated / locked),
        ``year``, ``month``, ``month_name`` and ``locked``.
    """
    first, last = month_range(year, month)
    locked = is_month_locked(year, month, today)
    name = month_name(month)

    result = {"year": year, "month": month, "month_name": name, "locked": locked}

    weeks = (
        await session.execute(
            select(WeeklyUsage)
            .where(
                WeeklyUsage.device_id == device_id,
                WeeklyUsage.week_start_date >= first,
                WeeklyUsage.week_start_date <= last,
            )
            .order_by(WeeklyUsage.week_start_date)
        )
    ).scalars().all()

    if not weeks:
        logger.info("No weekly usage for device %s in %s %d", device_id, name, year)
        return {**result, "status": STATUS_NO_DATA}

    aggregates = fold_rollups(weeks)

    row = await session.get(MonthlyUsage, (device_id, year, month))
    if row is not None:
        if locked:
            logger.info("Month %s %d is complete and locked; skipping update", name, year)
            return {**result, "status": STATUS_LOCKED}
        status = STATUS_UPDATED
    else:
        row = MonthlyUsage(device_id=device_id, year=year, month=month)
        session.add(row)
        status = STATUS_CREATED

    row.month_name = name
    row.weeks_count = len(weeks)
    for field, value in aggregates.items():
        setattr(row, field, value)

    await session.commit()
    logger.info(
        "Monthly usage %s for device %s, %s %d (%d weeks)",
        status, device_id, name, year, len(weeks),
    )
    return {**result, "status": status, "weeks_count": len(weeks)}
