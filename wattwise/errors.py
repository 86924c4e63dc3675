"""
Error taxonomy for the usage aggregation engine.

Only ingest-path failures are raised to callers. Absence of a rollup row
is answered with a zero-filled record, and counter anomalies are absorbed
by the delta estimator, so neither has an exception class here.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""


class UsageError(Exception):
    """Base class for errors raised by the usage engine."""


class ValidationError(UsageError):
    """A telemetry sample is missing fields or carries malformed values.

    Raised before any state is mutated.
    """


class StorageError(UsageError):
    """The backing store failed while folding a sample."""
