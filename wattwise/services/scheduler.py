"""
Rollup triggers: per-ingest cascade and the end-of-day batch.

Two triggers keep weekly and monthly rollups current:

1. **Ingest cascade**: after every successful raw-bucket fold, the daily
   refold, weekly refresh and monthly refresh for the sample's period are
   submitted as three independent jobs to the refold queue.
2. **End-of-day batch**: once per local day shortly after midnight, the
   weekly and monthly rollups of the period that just closed, and of the
   newly opened one, are refreshed for every device with daily data.
   Closed periods only gain rows that were never created (locked rows are
   not rewritten).

Failures are logged per stage and never stop the scheduler loop; the next
tick is the only retry.

CHANGELOG:
- 2026-10-18: Never schedule the same run time twice after an early wake-up
- 2026-10-18: Initial creation

TODO:
- None
"""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, date, datetime, timedelta
from typing import Any

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from wattwise.db.models import DailyUsage
from wattwise.services.daily import refold_daily
from wattwise.services.monthly import refresh_monthly
from wattwise.services.periods import local_today, local_tz, week_start
from wattwise.services.refold_queue import RefoldQueue
from wattwise.services.weekly import refresh_weekly

logger = logging.getLogger(__name__)

SessionFactory = async_sessionmaker[AsyncSession]


# ---------------------------------------------------------------------------
# Trigger (a): ingest cascade
# ---------------------------------------------------------------------------


def enqueue_cascade(
    queue: RefoldQueue,
    session_factory: SessionFactory,
    day: date,
    device_id: str,
    today: Callable[[], date],
) -> None:
    """Submit daily, weekly and monthly refresh jobs for *day*.

    The monthly job targets the month containing the week's Sunday start,
    because that is the month the weekly row is counted in.

    Args:
        queue: Refold queue receiving the jobs.
        session_factory: Factory opening one session per job attempt.
        day: Local day of the folded sample.
        device_id: Device of the folded sample.
        today: Returns the current local date when a job runs.
    """
    month_anchor = week_start(day)

    async def _daily() -> None:
        async with session_factory() as session:
            await refold_daily(session, day, device_id)

    async def _weekly() -> None:
        async with session_factory() as session:
            await refresh_weekly(session, day, device_id, today())

    async def _monthly() -> None:
        async with session_factory() as session:
            await refresh_monthly(
                session, month_anchor.year, month_anchor.month, device_id, today(),
            )

    queue.submit(f"daily:{device_id}:{day}", _daily)
    queue.submit(f"weekly:{device_id}:{day}", _weekly)
    queue.submit(
        f"monthly:{device_id}:{month_anchor.year}-{month_anchor.month:02d}", _monthly,
    )


# ---------------------------------------------------------------------------
# Trigger (b): end-of-day batch
# ---------------------------------------------------------------------------


async def _device_ids(session_factory: SessionFactory) -> list[str]:
    async with session_factory() as session:
        result = await session.execute(
            select(DailyUsage.device_id).distinct().order_by(DailyUsage.device_id)
        )
        return list(result.scalars().all())


async def _run_stage(name: str, stage: Callable[[], Awaitable[dict]]) -> dict:
    """Run one batch stage; failures are logged and reported, not raised."""
    try:
        return await stage()
    except Exception as exc:
        logger.warning("End-of-day stage %s failed", name, exc_info=True)
        return {"status": "error", "error": str(exc)}


async def run_end_of_day_batch(
    session_factory: SessionFactory,
    today: date,
    device_ids: list[str] | None = None,
) -> list[dict]:
    """Refresh weekly and monthly rollups around the day boundary.

    Args:
        session_factory: Factory opening one session per stage.
        today: The local date that just started.
        device_ids: Devices to process. Defaults to every device with
            daily rows.

    Returns:
        One result dict per stage, each tagged with ``stage`` and
        ``device_id``.
    """
    yesterday = today - timedelta(days=1)
    if device_ids is None:
        device_ids = await _device_ids(session_factory)

    week_days = [yesterday] if week_start(yesterday) == week_start(today) else [yesterday, today]
    months: list[tuple[int, int]] = []
    for anchor in (yesterday, week_start(yesterday), week_start(today), today):
        key = (anchor.year, anchor.month)
        if key not in months:
            months.append(key)

    logger.info(
        "End-of-day batch for %s: %d device(s), weeks of %s, months %s",
        today, len(device_ids), [d.isoformat() for d in week_days], months,
    )

    results: list[dict] = []
    for device_id in device_ids:
        for day in week_days:

            async def _weekly(day: date = day, device_id: str = device_id) -> dict:
                async with session_factory() as session:
                    return await refresh_weekly(session, day, device_id, today)

            outcome = await _run_stage(f"weekly:{device_id}:{day}", _weekly)
            results.append({"stage": "weekly", "device_id": device_id, **outcome})

        for year, month in months:

            async def _monthly(year: int = year, month: int = month, device_id: str = device_id) -> dict:
                async with session_factory() as session:
                    return await refresh_monthly(session, year, month, device_id, today)

            outcome = await _run_stage(f"monthly:{device_id}:{year}-{month:02d}", _monthly)
            results.append({"stage": "monthly", "device_id": device_id, **outcome})

    logger.info("End-of-day batch for %s completed (%d stages)", today, len(results))
    return results


def seconds_until_next_run(
    now: datetime,
    tz_offset_minutes: int,
    hour: int,
    minute: int,
) -> float:
    """Seconds from *now* until the next local ``hour:minute``.

    A run time equal to *now* is scheduled for the following day.
    """
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    local_now = now.astimezone(local_tz(tz_offset_minutes))
    target = local_now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= local_now:
        target += timedelta(days=1)
    return (target - local_now).total_seconds()


class BatchScheduler:
    """Runs :func:`run_end_of_day_batch` once per local day.

    Args:
        session_factory: Factory opening database sessions.
        tz_offset_minutes: Configured local UTC offset.
        hour: Local hour of the daily run.
        minute: Local minute of the daily run.
        clock: Returns the current aware datetime.
        sleep: Coroutine used to wait for the next tick.
    """

    def __init__(
        self,
        session_factory: SessionFactory,
        tz_offset_minutes: int,
        hour: int = 0,
        minute: int = 1,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._session_factory = session_factory
        self._tz_offset_minutes = tz_offset_minutes
        self._hour = hour
        self._minute = minute
        self._clock = clock
        self._sleep = sleep
        self._task: asyncio.Task | None = None
        self._last_target: datetime | None = None
        self.runs = 0
        self.failures = 0

    def seconds_until_next_run(self) -> float:
        """Delay until the next run time not already handled by this scheduler.

        A timer may fire slightly before the run time, in which case the
        run time just handled still lies ahead; it is skipped by a day.
        """
        now = self._clock()
        delay = seconds_until_next_run(
            now, self._tz_offset_minutes, self._hour, self._minute,
        )
        target = now + timedelta(seconds=delay)
        if self._last_target is not None and target - self._last_target < timedelta(hours=1):
            delay += timedelta(days=1).total_seconds()
            target += timedelta(days=1)
        self._last_target = target
        return delay

    async def run_once(self) -> list[dict]:
        """Run the batch for the current local date."""
        today = local_today(self._tz_offset_minutes, self._clock())
        return await run_end_of_day_batch(self._session_factory, today)

    async def tick(self) -> None:
        """Wait for the next scheduled time, then run the batch once.

        Failures are logged and counted; they never escape the tick.
        """
        delay = self.seconds_until_next_run()
        logger.info("Next end-of-day batch in %.0fs", delay)
        await self._sleep(delay)
        try:
            await self.run_once()
            self.runs += 1
        except Exception:
            self.failures += 1
            logger.error("End-of-day batch failed", exc_info=True)

    async def _run_forever(self) -> None:
        while True:
            await self.tick()

    def start(self) -> None:
        """Start the scheduler loop on the running event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._run_forever(), name="end-of-day-batch")

    async def stop(self) -> None:
        """Cancel the scheduler loop."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
