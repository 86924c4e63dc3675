"""
Shared fold of lower-granularity rollup rows into one summary.

Totals are summed, peaks are maximised, and averages are the mean of the
constituent rows' averages (means of means, not re-derived from samples).

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

from collections.abc import Sequence
from typing import Protocol

ROLLUP_FIELDS: tuple[str, ...] = (
    "total_voltage",
    "total_current",
    "total_power",
    "total_energy",
    "peak_voltage",
    "peak_current",
    "peak_power",
    "average_voltage",
    "average_current",
    "average_power",
)


class RollupRow(Protocol):
    total_voltage: float
    total_current: float
    total_power: float
    total_energy: float
    peak_voltage: float
    peak_current: float
    peak_power: float
    average_voltage: float
    average_current: float
    average_power: float


def fold_rollups(rows: Sequence[RollupRow]) -> dict[str, float]:
    """Aggregate *rows* into a dict keyed by :data:`ROLLUP_FIELDS`.

    An empty sequence yields all zeros.
    """
    count = len(rows)
    result = dict.fromkeys(ROLLUP_FIELDS, 0.0)
    for row in rows:
        for kind in ("voltage", "current", "power", "energy"):
            result[f"total_{kind}"] += getattr(row, f"total_{kind}") or 0.0
        for kind in ("voltage", "current", "power"):
            peak = f"peak_{kind}"
            result[peak] = max(result[peak], getattr(row, peak) or 0.0)
            result[f"average_{kind}"] += getattr(row, f"average_{kind}") or 0.0

    if count:
        for kind in ("voltage", "current", "power"):
            result[f"average_{kind}"] /= count
    return result
