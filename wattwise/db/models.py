"""
SQLAlchemy ORM models for the usage database.

Defines the raw per-day bucket and the three rollup tables. Every table is
keyed by ``device_id`` first; single-device deployments write everything
under the configured default device id.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

import datetime

from sqlalchemy import Date, DateTime, Double, Integer, Text
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def _utcnow() -> datetime.datetime:
    return datetime.datetime.now(datetime.UTC)


class Base(DeclarativeBase):
    """SQLAlchemy declarative base for all usage ORM models."""

    pass


class RawUsage(Base):
    """One bucket per device per local calendar day.

    ``voltage`` and ``current`` are replaced by every sample, while
    ``power`` and ``energy_accumulated`` accumulate. The composite primary
    key enforces the one-bucket-per-day invariant, and first-of-day
    creation goes through ``INSERT ... ON CONFLICT DO NOTHING``.

    Attributes:
        device_id: Identifier of the metering device.
        usage_date: Local calendar day of the bucket.
        voltage: Latest voltage reading (V).
        current: Latest current reading (A).
        power: Sum of instantaneous power readings (W).
        energy_accumulated: Sum of per-sample energy increments (kWh).
        created_at: When the bucket was created (UTC).
        last_updated_at: When the last sample was folded in (UTC).
    """

    __tablename__ = "raw_usage"

    device_id: Mapped[str] = mapped_column(Text, primary_key=True, nullable=False)
    usage_date: Mapped[datetime.date] = mapped_column(
        Date, primary_key=True, nullable=False,
    )
    voltage: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    current: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    power: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    energy_accumulated: Mapped[float] = mapped_column(
        Double, nullable=False, default=0.0,
    )
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    last_updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )

    def __repr__(self) -> str:
        """Return string representation of the RawUsage bucket."""
        return (
            f"RawUsage(device_id={self.device_id!r}, usage_date={self.usage_date!r}, "
            f"energy_accumulated={self.energy_accumulated!r})"
        )


class _RollupColumns:
    """Aggregate columns shared by the daily, weekly and monthly tables."""

    total_voltage: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    total_current: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    total_power: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    total_energy: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    peak_voltage: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    peak_current: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    peak_power: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    average_voltage: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    average_current: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    average_power: Mapped[float] = mapped_column(Double, nullable=False, default=0.0)
    created_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow,
    )
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, default=_utcnow, onupdate=_utcnow,
    )


class DailyUsage(_RollupColumns, Base):
    """Daily rollup folded from the day's raw bucket.

    Attributes:
        device_id: Identifier of the metering device.
        usage_date: Local calendar day.
        record_count: Number of ingest events folded into the row.
    """

    __tablename__ = "daily_usage"

    device_id: Mapped[str] = mapped_column(Text, primary_key=True, nullable=False)
    usage_date: Mapped[datetime.date] = mapped_column(
        Date, primary_key=True, nullable=False,
    )
    record_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        """Return string representation of the DailyUsage row."""
        return (
            f"DailyUsage(device_id={self.device_id!r}, usage_date={self.usage_date!r}, "
            f"record_count={self.record_count!r})"
        )


class WeeklyUsage(_RollupColumns, Base):
    """Sunday-to-Saturday rollup folded from daily rows.

    Attributes:
        device_id: Identifier of the metering device.
        year: ISO year of the week.
        week_number: ISO week number of the week.
        week_start_date: Sunday that opens the week.
        week_end_date: Saturday that closes the week.
        days_count: Number of daily rows folded in.
    """

    __tablename__ = "weekly_usage"

    device_id: Mapped[str] = mapped_column(Text, primary_key=True, nullable=False)
    year: Mapped[int] = mapped_column(Integer, primary_key=True, nullable=False)
    week_number: Mapped[int] = mapped_column(Integer, primary_key=True, nullable=False)
    week_start_date: Mapped[datetime.date] = mapped_column(Date, nullable=False, index=True)
    week_end_date: Mapped[datetime.date] = mapped_column(Date, nullable=False)
    days_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        """Return string representation of the WeeklyUsage row."""
        return (
            f"WeeklyUsage(device_id={self.device_id!r}, year={self.year!r}, "
            f"week_number={self.week_number!r})"
        )


class MonthlyUsage(_RollupColumns, Base):
    """Calendar-month rollup folded from the weeks that start in the month.

    Attributes:
        device_id: Identifier of the metering device.
        year: Calendar year.
        month: Calendar month, 1-12.
        month_name: English month name.
        weeks_count: Number of weekly rows folded in.
    """

    __tablename__ = "monthly_usage"

    device_id: Mapped[str] = mapped_column(Text, primary_key=True, nullable=False)
    year: Mapped[int] = mapped_column(Integer, primary_key=True, nullable=False)
    month: Mapped[int] = mapped_column(Integer, primary_key=True, nullable=False)
    month_name: Mapped[str] = mapped_column(Text, nullable=False)
    weeks_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    def __repr__(self) -> str:
        """Return string representation of the MonthlyUsage row."""
        return (
            f"MonthlyUsage(device_id={self.device_id!r}, year={self.year!r}, "
            f"month={self.month!r})"
        )
