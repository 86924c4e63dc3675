"""
Weekly aggregation: fold a Sunday-to-Saturday week of daily rollups.

The week row is keyed by ``(device_id, year, week_number)``. Rows are
created whenever missing, even for a week that has already ended (first
run after downtime), but an existing row is only rewritten while the week
is open. Once today is past the week's Saturday the row is frozen so
that late daily data cannot change a closed reporting period.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wattwise.db.models import DailyUsage, WeeklyUsage
from wattwise.services.periods import (
    is_week_locked,
    week_end,
    week_number,
    week_start,
    week_year,
)
from wattwise.services.rollup import fold_rollups

logger = logging.getLogger(__name__)

STATUS_NO_DATA = "no_data"
STATUS_CREATED = "created"
STATUS_UPDATED = "updated"
STATUS_LOCKED = "locked"


async def refresh_weekly(
    session: AsyncSession,
    any_day: date,
    device_id: str,
    today: date,
) -> dict:
    """Recompute the weekly rollup of the week containing *any_day*.

    Args:
        session: Async SQLAlchemy session; committed when a row is written.
        any_day: Any date inside the target week.
        device_id: Device whose daily rows are folded.
        today: Current local date, used for the lock predicate.

    Returns:
        dict with ``status`` (no_data / created / updated / locked),
        ``week_start``, ``week_end``, ``week_number``, ``year`` and
        ``locked``.
    """
    start = week_start(any_day)
    end = week_end(any_day)
    number = week_number(any_day)
    year = week_year(any_day)
    locked = is_week_locked(any_day, today)

    result = {
        "week_start": start.isoformat(),
        "week_end": end.isoformat(),
        "week_number": number,
        "year": year,
        "locked": locked,
    }

    days = (
        await session.execute(
            select(DailyUsage)
            .where(
                DailyUsage.device_id == device_id,
                DailyUsage.usage_date >= start,
                DailyUsage.usage_date <= end,
            )
            .order_by(DailyUsage.usage_date)
        )
    ).scalars().all()

    if not days:
        logger.info("No daily usage for device %s in week %s..%s", device_id, start, end)
        return {**result, "status": STATUS_NO_DATA}

    aggregates = fold_rollups(days)

    row = await session.get(WeeklyUsage, (device_id, year, number))
    if row is not None:
        if locked:
            logger.info(
                "Week %d/%d (%s..%s) is complete and locked; skipping update",
                number, year, start, end,
            )
            return {**result, "status": STATUS_LOCKED}
        status = STATUS_UPDATED
    else:
        row = WeeklyUsage(device_id=device_id, year=year, week_number=number)
        session.add(row)
        status = STATUS_CREATED

    row.week_start_date = start
    row.week_end_date = end
    row.days_count = len(days)
    for name, value in aggregates.items():
        setattr(row, name, value)

    await session.commit()
    logger.info(
        "Weekly usage %s for device %s, week %d/%d (%s..%s, %d days)",
        status, device_id, number, year, start, end, len(days),
    )
    return {**result, "status": status, "days_count": len(days)}
