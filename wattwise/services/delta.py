"""
Delta estimator: cumulative hardware energy counter -> incremental energy.

The meter reports a lifetime (or reset-on-power-cycle) cumulative energy
counter in kWh. Incremental consumption is the difference between
successive readings, bounded against counter resets, unit/interval
mismatches, and missing history:

1. No cached counter for the device today (cold start or first sample of
   the day): synthesize a prior counter ``counter - expected_energy(power,
   hint)`` so the first delta equals the expected increment instead of the
   lifetime total.
2. ``raw = counter - prior``.
3. ``raw < 0``: counter reset, fall back to the nominal-interval estimate.
4. ``raw > 2 * expected_energy(power, 1h)``: implausible jump, same fallback.
5. Otherwise accept ``raw``.
6. Always record ``counter`` as the new prior.

The estimator never raises and always returns a finite, non-negative
value. It is lossy whenever the cache is cold.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

import logging
import math
from datetime import date

from wattwise.cache.previous_values import PreviousValueCache

logger = logging.getLogger(__name__)

# Jumps larger than this many hours of consumption at the current power
# are treated as a unit/interval mismatch.
PLAUSIBLE_WINDOW_H = 2.0


def expected_energy(power_w: float, hours: float) -> float:
    """Return the energy (kWh) drawn at *power_w* watts for *hours* hours."""
    return power_w * hours / 1000.0


def _bounded(value: float) -> float:
    if not math.isfinite(value) or value < 0:
        return 0.0
    return value


class DeltaEstimator:
    """Converts cumulative counter readings into bounded increments.

    Args:
        cache: Per-device previous-value store, owned by this estimator
            for the counter fields.
        nominal_interval_h: Expected sampling cadence in hours, used for
            the reset / mismatch fallback.
    """

    def __init__(self, cache: PreviousValueCache, nominal_interval_h: float) -> None:
        self._cache = cache
        self._nominal_interval_h = nominal_interval_h

    @property
    def cache(self) -> PreviousValueCache:
        return self._cache

    @property
    def nominal_interval_h(self) -> float:
        return self._nominal_interval_h

    async def estimate_delta(
        self,
        device_id: str,
        power: float,
        hardware_energy_counter: float,
        sample_interval_hint_h: float | None = None,
        day: date | None = None,
    ) -> float:
        """Return the incremental energy (kWh) represented by this reading.

        Args:
            device_id: Device the reading belongs to.
            power: Instantaneous power of the sample (W).
            hardware_energy_counter: Cumulative counter reading (kWh).
            sample_interval_hint_h: Expected time since the previous sample
                in hours; defaults to the nominal interval.
            day: Local day the sample is bucketed into. A cached counter
                recorded on a different day is treated as absent.

        Returns:
            A finite, non-negative energy increment in kWh.
        """
        hint_h = sample_interval_hint_h or self._nominal_interval_h
        fallback = _bounded(expected_energy(power, self._nominal_interval_h))

        cached = await self._cache.get(device_id)
        prior = None
        if cached is not None and cached.last_hardware_energy_counter is not None:
            if day is None or cached.last_day is None or cached.last_day == day:
                prior = cached.last_hardware_energy_counter

        if prior is None:
            prior = hardware_energy_counter - expected_energy(power, hint_h)
            logger.info(
                "No prior counter for device %s; synthesizing first delta", device_id,
            )

        raw_delta = hardware_energy_counter - prior

        if not math.isfinite(raw_delta):
            logger.warning(
                "Non-finite counter delta for device %s; using nominal estimate",
                device_id,
            )
            delta = fallback
        elif raw_delta < 0:
            logger.warning(
                "Counter reset for device %s (%.4f -> %.4f kWh); using nominal estimate",
                device_id, prior, hardware_energy_counter,
            )
            delta = fallback
        elif raw_delta > PLAUSIBLE_WINDOW_H * expected_energy(power, 1.0):
            logger.warning(
                "Implausible counter jump for device %s (%.4f kWh at %.1f W); "
                "using nominal estimate",
                device_id, raw_delta, power,
            )
            delta = fallback
        else:
            delta = raw_delta

        await self._cache.update(
            device_id,
            last_hardware_energy_counter=hardware_energy_counter,
            last_day=day,
        )
        return _bounded(delta)
