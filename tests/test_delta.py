"""
Tests for the delta estimator.

Validates first-sample synthesis, accepted counter differences, the
reset and implausible-jump fallbacks, day rollover, and that the cache
always records the latest counter.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

import math
from datetime import date

import pytest

from wattwise.cache.previous_values import PreviousValueCache
from wattwise.services.delta import DeltaEstimator, expected_energy

DEVICE_ID = "meter-1"
DAY = date(2025, 3, 10)
FIVE_MIN_H = 5 / 60


class TestExpectedEnergy:
    def test_expected_energy_kwh(self) -> None:
        assert expected_energy(1000, 1.0) == pytest.approx(1.0)
        assert expected_energy(440, FIVE_MIN_H) == pytest.approx(0.036667, rel=1e-4)


class TestFirstSample:
    """Cold cache: the first delta equals the expected increment."""

    @pytest.mark.asyncio()
    async def test_first_sample_synthesized(self, estimator: DeltaEstimator) -> None:
        """A lifetime counter of 5000 kWh does not become the first delta."""
        delta = await estimator.estimate_delta(DEVICE_ID, 440, 5000.0, day=DAY)
        assert delta == pytest.approx(0.0367, abs=1e-4)

    @pytest.mark.asyncio()
    async def test_first_sample_uses_hint(self, estimator: DeltaEstimator) -> None:
        delta = await estimator.estimate_delta(DEVICE_ID, 1000, 10.0, 0.5, day=DAY)
        assert delta == pytest.approx(0.5)

    @pytest.mark.asyncio()
    async def test_counter_recorded(
        self, estimator: DeltaEstimator, cache: PreviousValueCache,
    ) -> None:
        await estimator.estimate_delta(DEVICE_ID, 440, 5000.0, day=DAY)
        cached = await cache.get(DEVICE_ID)
        assert cached is not None
        assert cached.last_hardware_energy_counter == 5000.0
        assert cached.last_day == DAY


class TestSuccessiveSamples:
    """Plausible counter differences are accepted as-is."""

    @pytest.mark.asyncio()
    async def test_plausible_delta_accepted(self, estimator: DeltaEstimator) -> None:
        await estimator.estimate_delta(DEVICE_ID, 440, 5000.0, day=DAY)
        delta = await estimator.estimate_delta(DEVICE_ID, 460, 5000.04, day=DAY)
        assert delta == pytest.approx(0.04)

    @pytest.mark.asyncio()
    async def test_zero_delta_accepted(self, estimator: DeltaEstimator) -> None:
        await estimator.estimate_delta(DEVICE_ID, 0, 42.0, day=DAY)
        assert await estimator.estimate_delta(DEVICE_ID, 0, 42.0, day=DAY) == 0.0

    @pytest.mark.asyncio()
    async def test_devices_tracked_independently(self, estimator: DeltaEstimator) -> None:
        await estimator.estimate_delta("a", 440, 100.0, day=DAY)
        await estimator.estimate_delta("b", 440, 900.0, day=DAY)
        assert await estimator.estimate_delta("a", 440, 100.01, day=DAY) == pytest.approx(0.01)


class TestFallbacks:
    """Resets and implausible jumps fall back to the nominal estimate."""

    @pytest.mark.asyncio()
    async def test_counter_reset_falls_back(self, estimator: DeltaEstimator) -> None:
        await estimator.estimate_delta(DEVICE_ID, 440, 5000.0, day=DAY)
        delta = await estimator.estimate_delta(DEVICE_ID, 440, 3.0, day=DAY)
        assert delta == pytest.approx(expected_energy(440, FIVE_MIN_H))
        assert delta >= 0

    @pytest.mark.asyncio()
    async def test_reset_records_new_counter(
        self, estimator: DeltaEstimator, cache: PreviousValueCache,
    ) -> None:
        await estimator.estimate_delta(DEVICE_ID, 440, 5000.0, day=DAY)
        await estimator.estimate_delta(DEVICE_ID, 440, 3.0, day=DAY)
        assert (await cache.get(DEVICE_ID)).last_hardware_energy_counter == 3.0
        delta = await estimator.estimate_delta(DEVICE_ID, 440, 3.02, day=DAY)
        assert delta == pytest.approx(0.02)

    @pytest.mark.asyncio()
    async def test_implausible_jump_falls_back(self, estimator: DeltaEstimator) -> None:
        """A jump above two hours of consumption at current power is rejected."""
        await estimator.estimate_delta(DEVICE_ID, 440, 5000.0, day=DAY)
        delta = await estimator.estimate_delta(DEVICE_ID, 440, 5001.0, day=DAY)
        assert delta == pytest.approx(expected_energy(440, FIVE_MIN_H))

    @pytest.mark.asyncio()
    async def test_jump_at_zero_power_falls_back_to_zero(
        self, estimator: DeltaEstimator,
    ) -> None:
        await estimator.estimate_delta(DEVICE_ID, 0, 10.0, day=DAY)
        assert await estimator.estimate_delta(DEVICE_ID, 0, 11.0, day=DAY) == 0.0

    @pytest.mark.asyncio()
    async def test_negative_power_never_negative(self, estimator: DeltaEstimator) -> None:
        delta = await estimator.estimate_delta(DEVICE_ID, -500, 10.0, day=DAY)
        assert delta >= 0

    @pytest.mark.asyncio()
    async def test_non_finite_counter_bounded(self, estimator: DeltaEstimator) -> None:
        await estimator.estimate_delta(DEVICE_ID, 440, 10.0, day=DAY)
        delta = await estimator.estimate_delta(DEVICE_ID, 440, math.inf, day=DAY)
        assert math.isfinite(delta)
        assert delta >= 0

    @pytest.mark.asyncio()
    async def test_anomaly_logged(
        self, estimator: DeltaEstimator, caplog: pytest.LogCaptureFixture,
    ) -> None:
        await estimator.estimate_delta(DEVICE_ID, 440, 5000.0, day=DAY)
        with caplog.at_level("WARNING", logger="wattwise.services.delta"):
            await estimator.estimate_delta(DEVICE_ID, 440, 1.0, day=DAY)
        assert "Counter reset" in caplog.text


class TestDayRollover:
    """A counter cached on a previous day is not used as the prior."""

    @pytest.mark.asyncio()
    async def test_new_day_synthesizes_first_delta(self, estimator: DeltaEstimator) -> None:
        await estimator.estimate_delta(DEVICE_ID, 440, 5000.0, day=DAY)
        delta = await estimator.estimate_delta(
            DEVICE_ID, 440, 5000.3, day=date(2025, 3, 11),
        )
        assert delta == pytest.approx(expected_energy(440, FIVE_MIN_H))

    @pytest.mark.asyncio()
    async def test_without_day_uses_cached_counter(self) -> None:
        estimator = DeltaEstimator(PreviousValueCache(), nominal_interval_h=FIVE_MIN_H)
        await estimator.estimate_delta(DEVICE_ID, 440, 5000.0)
        assert await estimator.estimate_delta(DEVICE_ID, 440, 5000.03) == pytest.approx(0.03)
