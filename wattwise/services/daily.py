"""
Daily aggregation: fold the day's raw bucket into the daily rollup.

Runs once per raw-bucket mutation (the ingest path enqueues exactly one
refold per folded sample). Field semantics follow the bucket:

- totals mirror the bucket (``total_power`` is the bucket's running sum
  of power readings, ``total_energy`` its accumulated energy);
- peaks are ``max(existing peak, bucket value)`` and never decrease;
- ``record_count`` is incremented by one per refold;
- ``average_power = total_power / record_count``;
- ``average_voltage`` / ``average_current`` hold the latest instantaneous
  values, not a running mean.

Calling refold twice for one mutation double-counts ``record_count``;
callers must refold at most once per fold.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

import logging
from datetime import date

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from wattwise.db.models import DailyUsage, RawUsage

logger = logging.getLogger(__name__)


async def refold_daily(session: AsyncSession, day: date, device_id: str) -> dict:
    """Recompute the daily rollup for *day* from its raw bucket.

    Args:
        session: Async SQLAlchemy session; committed on success.
        day: Local calendar day to refold.
        device_id: Device whose bucket is folded.

    Returns:
        dict: ``{"success": True, "date": ..., "record_count": ...}``, or
        ``{"success": False, "message": "No data to aggregate"}`` when the
        day has no raw bucket.
    """
    bucket = (
        await session.execute(
            select(RawUsage).where(
                RawUsage.device_id == device_id, RawUsage.usage_date == day,
            ).execution_options(populate_existing=True)
        )
    ).scalar_one_or_none()

    if bucket is None:
        logger.info("No raw bucket for device %s on %s; nothing to refold", device_id, day)
        return {"success": False, "message": "No data to aggregate", "date": day.isoformat()}

    voltage = bucket.voltage or 0.0
    current = bucket.current or 0.0
    power = bucket.power or 0.0
    energy = bucket.energy_accumulated or 0.0

    row = await session.get(DailyUsage, (device_id, day))
    if row is None:
        row = DailyUsage(
            device_id=device_id,
            usage_date=day,
            peak_voltage=voltage,
            peak_current=current,
            peak_power=power,
            record_count=1,
        )
        session.add(row)
    else:
        row.peak_voltage = max(row.peak_voltage or 0.0, voltage)
        row.peak_current = max(row.peak_current or 0.0, current)
        row.peak_power = max(row.peak_power or 0.0, power)
        row.record_count = (row.record_count or 0) + 1

    row.total_voltage = voltage
    row.total_current = current
    row.total_power = power
    row.total_energy = energy
    row.average_voltage = voltage
    row.average_current = current
    row.average_power = power / row.record_count

    await session.commit()
    logger.info(
        "Daily usage refolded for device %s on %s (records: %d)",
        device_id, day, row.record_count,
    )
    return {"success": True, "date": day.isoformat(), "record_count": row.record_count}
