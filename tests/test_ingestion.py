"""
Tests for the ingestion service (bucket folding).

Validates the one-bucket-per-device-per-day invariant, replace vs
accumulate field semantics, first-sample energy synthesis, validation
before mutation, and storage error handling (including counter restore), and concurrent
first-of-day folds.

CHANGELOG:
- 2026-10-18: Cover concurrent first folds and counter restore on failure
- 2026-10-18: Initial creation

TODO:
- None
"""

import asyncio
import math
from datetime import date, datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wattwise.cache.previous_values import PreviousValueCache
from wattwise.db.models import RawUsage
from wattwise.errors import StorageError, ValidationError
from wattwise.services.delta import DeltaEstimator
from wattwise.services.ingestion import (
    ACTION_INSERTED,
    ACTION_UPDATED,
    RawSample,
    fold_sample,
    validate_sample,
)

DEVICE_ID = "meter-1"
T0 = datetime(2025, 3, 10, 9, 0, tzinfo=timezone.utc)


def _sample(
    voltage: float = 220.0,
    current: float = 2.0,
    power: float = 440.0,
    energy: float = 5000.0,
    observed_at: datetime = T0,
    device_id: str | None = DEVICE_ID,
) -> RawSample:
    return RawSample(
        voltage=voltage,
        current=current,
        power=power,
        energy_counter=energy,
        observed_at=observed_at,
        device_id=device_id,
    )


async def _fold(session: AsyncSession, estimator: DeltaEstimator, sample: RawSample, **kw):
    kw.setdefault("tz_offset_minutes", 0)
    kw.setdefault("default_device_id", "default")
    return await fold_sample(session, sample, estimator, **kw)


async def _bucket_count(session: AsyncSession) -> int:
    return (await session.execute(select(func.count()).select_from(RawUsage))).scalar_one()


class TestFirstSampleOfDay:
    """The first sample creates the bucket with a synthesized increment."""

    @pytest.mark.asyncio()
    async def test_creates_bucket(
        self, session: AsyncSession, estimator: DeltaEstimator,
    ) -> None:
        result = await _fold(session, estimator, _sample())

        assert result.action == ACTION_INSERTED
        assert result.day == date(2025, 3, 10)
        assert result.power == pytest.approx(440.0)
        assert result.energy == pytest.approx(0.0367, abs=1e-4)
        assert await _bucket_count(session) == 1

    @pytest.mark.asyncio()
    async def test_lifetime_counter_not_stored_as_energy(
        self, session: AsyncSession, estimator: DeltaEstimator,
    ) -> None:
        await _fold(session, estimator, _sample())
        bucket = (await session.execute(select(RawUsage))).scalar_one()
        assert bucket.energy_accumulated < 1.0
        assert bucket.voltage == 220.0
        assert bucket.current == 2.0


class TestSubsequentSamples:
    """Later samples replace voltage/current and accumulate power/energy."""

    @pytest.mark.asyncio()
    async def test_second_sample_accumulates(
        self, session: AsyncSession, estimator: DeltaEstimator,
    ) -> None:
        await _fold(session, estimator, _sample())
        result = await _fold(
            session,
            estimator,
            _sample(voltage=221.0, current=2.1, power=460.0, energy=5000.04,
                    observed_at=T0.replace(minute=5)),
        )

        assert result.action == ACTION_UPDATED
        assert result.power == pytest.approx(900.0)
        assert result.energy == pytest.approx(0.0767, abs=1e-4)
        assert result.delta == pytest.approx(0.04)

        bucket = (await session.execute(select(RawUsage))).scalar_one()
        assert bucket.voltage == 221.0
        assert bucket.current == 2.1
        assert bucket.power == pytest.approx(900.0)

    @pytest.mark.asyncio()
    async def test_counter_reset_never_decreases_energy(
        self, session: AsyncSession, estimator: DeltaEstimator,
    ) -> None:
        first = await _fold(session, estimator, _sample())
        second = await _fold(session, estimator, _sample(energy=1.0))
        assert second.energy > first.energy

    @pytest.mark.asyncio()
    async def test_one_bucket_per_device_per_day(
        self, session: AsyncSession, estimator: DeltaEstimator,
    ) -> None:
        for minute in range(0, 30, 5):
            await _fold(
                session, estimator,
                _sample(energy=5000.0 + minute / 1000, observed_at=T0.replace(minute=minute)),
            )
        assert await _bucket_count(session) == 1

    @pytest.mark.asyncio()
    async def test_new_day_new_bucket(
        self, session: AsyncSession, estimator: DeltaEstimator,
    ) -> None:
        await _fold(session, estimator, _sample())
        result = await _fold(
            session, estimator, _sample(observed_at=T0.replace(day=11)),
        )
        assert result.action == ACTION_INSERTED
        assert await _bucket_count(session) == 2

    @pytest.mark.asyncio()
    async def test_devices_have_separate_buckets(
        self, session: AsyncSession, estimator: DeltaEstimator,
    ) -> None:
        await _fold(session, estimator, _sample(device_id="a"))
        result = await _fold(session, estimator, _sample(device_id="b"))
        assert result.action == ACTION_INSERTED
        assert await _bucket_count(session) == 2

    @pytest.mark.asyncio()
    async def test_missing_device_uses_default(
        self, session: AsyncSession, estimator: DeltaEstimator,
    ) -> None:
        result = await _fold(session, estimator, _sample(device_id=None))
        assert result.device_id == "default"

    @pytest.mark.asyncio()
    async def test_offset_decides_bucket_day(
        self, session: AsyncSession, estimator: DeltaEstimator,
    ) -> None:
        late = datetime(2025, 3, 10, 23, 0, tzinfo=timezone.utc)
        result = await _fold(
            session, estimator, _sample(observed_at=late), tz_offset_minutes=420,
        )
        assert result.day == date(2025, 3, 11)


class TestPreFoldSnapshot:
    """The cache receives the bucket's values from before the latest fold."""

    @pytest.mark.asyncio()
    async def test_snapshot_after_insert_is_zero(
        self, session: AsyncSession, estimator: DeltaEstimator, cache: PreviousValueCache,
    ) -> None:
        await _fold(session, estimator, _sample())
        snapshot = await cache.get(DEVICE_ID)
        assert snapshot.last_power == 0.0
        assert snapshot.last_accumulated_energy == 0.0
        assert snapshot.last_timestamp == T0

    @pytest.mark.asyncio()
    async def test_snapshot_after_update_holds_previous_totals(
        self, session: AsyncSession, estimator: DeltaEstimator, cache: PreviousValueCache,
    ) -> None:
        first = await _fold(session, estimator, _sample())
        await _fold(session, estimator, _sample(power=460.0, energy=5000.04))
        snapshot = await cache.get(DEVICE_ID)
        assert snapshot.last_power == pytest.approx(440.0)
        assert snapshot.last_accumulated_energy == pytest.approx(first.energy)


class TestValidation:
    """Malformed samples are rejected before any mutation."""

    @pytest.mark.parametrize("field", ["voltage", "current", "power", "energy"])
    def test_non_finite_field_rejected(self, field: str) -> None:
        with pytest.raises(ValidationError):
            validate_sample(_sample(**{field: math.nan}))

    def test_none_field_rejected(self) -> None:
        with pytest.raises(ValidationError, match="voltage"):
            validate_sample(_sample(voltage=None))

    def test_missing_timestamp_rejected(self) -> None:
        with pytest.raises(ValidationError):
            validate_sample(_sample(observed_at=None))

    @pytest.mark.asyncio()
    async def test_invalid_sample_writes_nothing(
        self, session: AsyncSession, estimator: DeltaEstimator, cache: PreviousValueCache,
    ) -> None:
        with pytest.raises(ValidationError):
            await _fold(session, estimator, _sample(power=math.inf))
        assert await _bucket_count(session) == 0
        assert await cache.get(DEVICE_ID) is None


class TestStorageErrors:
    """Database failures roll back and surface as StorageError."""

    @pytest.mark.asyncio()
    async def test_execute_failure_raises_storage_error(
        self, estimator: DeltaEstimator,
    ) -> None:
        session = AsyncMock()
        session.get_bind = MagicMock()
        session.get_bind.return_value.dialect.name = "sqlite"
        session.execute.side_effect = OperationalError("INSERT", {}, Exception("disk full"))

        with pytest.raises(StorageError, match="Failed to store sample"):
            await _fold(session, estimator, _sample())

        session.rollback.assert_awaited_once()
        session.commit.assert_not_awaited()

    @pytest.mark.asyncio()
    async def test_unsupported_dialect_raises_storage_error(
        self, estimator: DeltaEstimator,
    ) -> None:
        session = AsyncMock()
        session.get_bind = MagicMock()
        session.get_bind.return_value.dialect.name = "oracle"

        with pytest.raises(StorageError, match="Unsupported"):
            await _fold(session, estimator, _sample())

    @pytest.mark.asyncio()
    async def test_failed_write_restores_cached_counter(
        self, session: AsyncSession, estimator: DeltaEstimator, cache: PreviousValueCache,
    ) -> None:
        """Energy of a rejected sample is picked up by the next stored one."""
        await _fold(session, estimator, _sample())

        failing = AsyncMock()
        failing.get_bind = MagicMock()
        failing.get_bind.return_value.dialect.name = "sqlite"
        failing.execute.side_effect = OperationalError("UPDATE", {}, Exception("disk full"))
        with pytest.raises(StorageError):
            await _fold(
                failing, estimator,
                _sample(energy=5000.02, observed_at=T0.replace(minute=5)),
            )

        assert (await cache.get(DEVICE_ID)).last_hardware_energy_counter == 5000.0

        result = await _fold(
            session, estimator, _sample(energy=5000.04, observed_at=T0.replace(minute=10)),
        )
        assert result.delta == pytest.approx(0.04)
        assert result.energy == pytest.approx(0.0767, abs=1e-4)

    @pytest.mark.asyncio()
    async def test_failed_first_write_clears_counter(
        self, estimator: DeltaEstimator, cache: PreviousValueCache,
    ) -> None:
        failing = AsyncMock()
        failing.get_bind = MagicMock()
        failing.get_bind.return_value.dialect.name = "sqlite"
        failing.execute.side_effect = OperationalError("INSERT", {}, Exception("disk full"))

        with pytest.raises(StorageError):
            await _fold(failing, estimator, _sample())

        entry = await cache.get(DEVICE_ID)
        assert entry.last_hardware_energy_counter is None
        assert entry.last_day is None


class TestConcurrentFolds:
    """Simultaneous first-of-day folds share one bucket."""

    @pytest.mark.asyncio()
    async def test_concurrent_first_samples_create_one_bucket(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        estimator: DeltaEstimator,
    ) -> None:
        async def fold_in_own_session(sample: RawSample):
            async with session_factory() as own:
                return await _fold(own, estimator, sample)

        results = await asyncio.gather(
            fold_in_own_session(_sample(power=440.0)),
            fold_in_own_session(_sample(power=460.0, energy=5000.01)),
        )

        assert sorted(r.action for r in results) == [ACTION_INSERTED, ACTION_UPDATED]
        async with session_factory() as check:
            assert await _bucket_count(check) == 1
            bucket = (await check.execute(select(RawUsage))).scalar_one()
        assert bucket.power == pytest.approx(900.0)
