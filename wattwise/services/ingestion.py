"""
Ingestion service: fold one telemetry sample into its day's raw bucket.

Each device has exactly one raw bucket per local calendar day. The first
sample of a day creates the bucket through an atomic insert-if-absent
(``INSERT ... ON CONFLICT DO NOTHING`` on the composite primary key), so
two concurrent first samples cannot both create a row. Every later sample
is applied with a single atomic ``UPDATE``:

- ``voltage`` / ``current``: replaced by the sample's values.
- ``power``: accumulates the sample's instantaneous power (a running sum
  of readings, not a physical power total).
- ``energy_accumulated``: accumulates the delta estimator's increment.

Storage failures roll back the session and surface as StorageError. The
estimator's counter update is undone as well, so a rejected sample's
energy is still counted by the next stored sample.

CHANGELOG:
- 2026-10-18: Restore the cached counter when a fold fails to store
- 2026-10-18: Replace read-then-insert with insert-if-absent
- 2026-10-18: Initial creation

TODO:
- None
"""

import logging
import math
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from wattwise.cache.previous_values import PreviousValueCache, PreviousValues
from wattwise.db.models import RawUsage
from wattwise.errors import StorageError, ValidationError
from wattwise.services.delta import DeltaEstimator
from wattwise.services.periods import day_key

logger = logging.getLogger(__name__)

ACTION_INSERTED = "inserted"
ACTION_UPDATED = "updated"


@dataclass(frozen=True)
class RawSample:
    """One telemetry reading from the meter.

    Attributes:
        voltage: Instantaneous voltage (V).
        current: Instantaneous current (A).
        power: Instantaneous power (W).
        energy_counter: Cumulative hardware energy counter (kWh).
        observed_at: When the reading was taken. Naive values are UTC.
        device_id: Optional device identifier.
    """

    voltage: float
    current: float
    power: float
    energy_counter: float
    observed_at: datetime
    device_id: str | None = None


@dataclass(frozen=True)
class FoldResult:
    """Outcome of folding one sample.

    Attributes:
        action: ``"inserted"`` for a new bucket, ``"updated"`` otherwise.
        device_id: Device the bucket belongs to.
        day: Local calendar day of the bucket.
        power: Bucket power total after the fold.
        energy: Bucket accumulated energy after the fold.
        delta: Energy increment contributed by this sample.
    """

    action: str
    device_id: str
    day: date
    power: float
    energy: float
    delta: float

    def accumulated(self) -> dict[str, float]:
        return {"power": self.power, "energy": self.energy}


def validate_sample(sample: RawSample) -> None:
    """Reject samples with missing or non-finite readings.

    Raises:
        ValidationError: Naming every offending field.
    """
    bad = []
    for name in ("voltage", "current", "power", "energy_counter"):
        value = getattr(sample, name)
        if value is None or isinstance(value, bool) or not isinstance(value, (int, float)):
            bad.append(name)
        elif not math.isfinite(value):
            bad.append(name)
    if bad:
        raise ValidationError(
            f"Missing or invalid sample field(s): {', '.join(bad)}"
        )
    if not isinstance(sample.observed_at, datetime):
        raise ValidationError("Sample observed_at must be a datetime")


def _as_utc(ts: datetime) -> datetime:
    if ts.tzinfo is None:
        return ts.replace(tzinfo=UTC)
    return ts.astimezone(UTC)


def _insert_for(session: AsyncSession) -> Any:
    """Pick the dialect-specific INSERT construct that supports ON CONFLICT."""
    dialect = session.get_bind().dialect.name
    if dialect == "postgresql":
        return pg_insert
    if dialect == "sqlite":
        return sqlite_insert
    raise StorageError(f"Unsupported database dialect for upsert: {dialect}")


async def _insert_bucket_if_absent(
    session: AsyncSession,
    insert: Any,
    device_id: str,
    day: date,
    sample: RawSample,
    delta: float,
    observed_at: datetime,
) -> bool:
    """Create the day's bucket unless one exists. Returns True if created."""
    stmt = (
        insert(RawUsage)
        .values(
            device_id=device_id,
            usage_date=day,
            voltage=float(sample.voltage),
            current=float(sample.current),
            power=float(sample.power),
            energy_accumulated=delta,
            created_at=observed_at,
            last_updated_at=observed_at,
        )
        .on_conflict_do_nothing(index_elements=["device_id", "usage_date"])
    )
    result = await session.execute(stmt)
    return result.rowcount == 1


async def _restore_counter(
    cache: PreviousValueCache,
    device_id: str,
    previous: PreviousValues | None,
    counter: float,
) -> None:
    """Put back the counter cached before a sample that was not stored.

    Left alone if another fold has already replaced the rejected counter.
    """
    current = await cache.get(device_id)
    if current is None or current.last_hardware_energy_counter != counter:
        return
    await cache.update(
        device_id,
        last_hardware_energy_counter=previous.last_hardware_energy_counter if previous else None,
        last_day=previous.last_day if previous else None,
    )
    logger.debug("Restored previous counter for device %s after failed fold", device_id)


async def fold_sample(
    session: AsyncSession,
    sample: RawSample,
    estimator: DeltaEstimator,
    *,
    tz_offset_minutes: int,
    default_device_id: str,
    sample_interval_h: float | None = None,
) -> FoldResult:
    """Fold a sample into the raw bucket of its local day.

    Args:
        session: Async SQLAlchemy session; committed on success.
        sample: The reading to fold.
        estimator: Delta estimator whose cache also receives the bucket's
            pre-fold snapshot.
        tz_offset_minutes: Configured local UTC offset.
        default_device_id: Device id used when the sample has none.
        sample_interval_h: Expected time since the previous sample.

    Returns:
        FoldResult with the action taken and the bucket's new totals.

    Raises:
        ValidationError: If the sample is malformed (nothing is written).
        StorageError: If the database rejects the write.
    """
    validate_sample(sample)

    device_id = sample.device_id or default_device_id
    observed_at = _as_utc(sample.observed_at)
    day = day_key(observed_at, tz_offset_minutes)
    insert = _insert_for(session)

    previous = await estimator.cache.get(device_id)
    delta = await estimator.estimate_delta(
        device_id,
        float(sample.power),
        float(sample.energy_counter),
        sample_interval_h,
        day=day,
    )

    key = (RawUsage.device_id == device_id, RawUsage.usage_date == day)
    try:
        inserted = await _insert_bucket_if_absent(
            session, insert, device_id, day, sample, delta, observed_at,
        )
        if not inserted:
            await session.execute(
                update(RawUsage)
                .where(*key)
                .values(
                    voltage=float(sample.voltage),
                    current=float(sample.current),
                    power=RawUsage.power + float(sample.power),
                    energy_accumulated=RawUsage.energy_accumulated + delta,
                    last_updated_at=observed_at,
                )
            )
        row = (
            await session.execute(
                select(RawUsage.power, RawUsage.energy_accumulated).where(*key)
            )
        ).one()
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        await _restore_counter(
            estimator.cache, device_id, previous, float(sample.energy_counter),
        )
        logger.error("Failed to fold sample for device %s on %s", device_id, day, exc_info=True)
        raise StorageError(f"Failed to store sample: {exc}") from exc

    power_total = float(row.power)
    energy_total = float(row.energy_accumulated)

    if inserted:
        before_power, before_energy = 0.0, 0.0
    else:
        before_power = power_total - float(sample.power)
        before_energy = energy_total - delta
    await estimator.cache.update(
        device_id,
        last_voltage=float(sample.voltage),
        last_current=float(sample.current),
        last_power=before_power,
        last_accumulated_energy=before_energy,
        last_timestamp=observed_at,
    )

    action = ACTION_INSERTED if inserted else ACTION_UPDATED
    logger.info(
        "Folded sample into %s bucket for device %s on %s (delta %.4f kWh)",
        action, device_id, day, delta,
    )
    return FoldResult(
        action=action,
        device_id=device_id,
        day=day,
        power=power_total,
        energy=energy_total,
        delta=delta,
    )
