"""
Calendar period keys for bucketing and rollups.

Pure functions deriving the local calendar day, the Sunday-to-Saturday
week, its ISO week number, and month ranges. Every instant is converted
with one explicit, configured UTC offset; nothing here reads the database
session's or the host's implicit timezone.

CHANGELOG:
- 2026-10-18: Key weeks by the ISO week of their Monday (stable per week)
- 2026-10-18: Initial creation

TODO:
- None
"""

import calendar
from datetime import UTC, date, datetime, timedelta, timezone, tzinfo

MONTH_NAMES: tuple[str, ...] = tuple(calendar.month_name[1:])


def local_tz(offset_minutes: int) -> tzinfo:
    """Return a fixed-offset tzinfo for *offset_minutes* east of UTC."""
    return timezone(timedelta(minutes=offset_minutes))


def day_key(ts: datetime, offset_minutes: int) -> date:
    """Return the local calendar day of *ts*.

    Naive datetimes are interpreted as UTC.

    Args:
        ts: The instant to bucket.
        offset_minutes: Configured local UTC offset in minutes.

    Returns:
        The calendar date of *ts* in the configured offset.
    """
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=UTC)
    return ts.astimezone(local_tz(offset_minutes)).date()


def local_today(offset_minutes: int, now: datetime | None = None) -> date:
    """Return today's date in the configured offset."""
    if now is None:
        now = datetime.now(UTC)
    return day_key(now, offset_minutes)


def week_start(day: date) -> date:
    """Return the Sunday that opens the week containing *day*."""
    # date.weekday(): Monday=0 .. Sunday=6
    return day - timedelta(days=(day.weekday() + 1) % 7)


def week_end(day: date) -> date:
    """Return the Saturday that closes the week containing *day*."""
    return week_start(day) + timedelta(days=6)


def _week_monday(day: date) -> date:
    return week_start(day) + timedelta(days=1)


def week_number(day: date) -> int:
    """Return the ISO week number of the Sunday-started week containing *day*.

    ISO numbering puts January 4th in week 1 and assigns boundary weeks by
    their Thursday. The number is taken from the week's Monday, so all seven
    days from Sunday to Saturday share one key.
    """
    return _week_monday(day).isocalendar().week


def week_year(day: date) -> int:
    """Return the ISO year that owns the week containing *day*."""
    return _week_monday(day).isocalendar().year


def month_range(year: int, month: int) -> tuple[date, date]:
    """Return the first and last calendar day of a month.

    Args:
        year: Calendar year.
        month: Calendar month, 1-12.

    Returns:
        Tuple of (first_day, last_day), both inclusive.

    Raises:
        ValueError: If *month* is not in 1-12.
    """
    if not 1 <= month <= 12:
        raise ValueError(f"Invalid month: {month!r}. Expected 1-12.")
    _, last = calendar.monthrange(year, month)
    return date(year, month, 1), date(year, month, last)


def month_name(month: int) -> str:
    """Return the English name of *month* (1-12), or '' when out of range."""
    if 1 <= month <= 12:
        return MONTH_NAMES[month - 1]
    return ""


def is_week_locked(day: date, today: date) -> bool:
    """A week is locked once today is strictly after its Saturday."""
    return today > week_end(day)


def is_month_locked(year: int, month: int, today: date) -> bool:
    """A month is locked once today is strictly after its last day."""
    _, last = month_range(year, month)
    return today > last


def recent_week_starts(today: date, count: int) -> list[date]:
    """Return the Sunday starts of the last *count* weeks, oldest first.

    The final entry is the week containing *today*.
    """
    current = week_start(today)
    return [current - timedelta(weeks=i) for i in range(count - 1, -1, -1)]
