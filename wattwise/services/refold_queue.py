"""
Background job queue for daily/weekly/monthly refolds.

Ingest responses never wait for rollup recomputation. Instead each stage
is submitted as an independent job to this FIFO queue, processed by a
single asyncio worker so that refolds for the same device never run in
parallel. A failing job is retried with exponential backoff up to
``max_attempts`` and then dropped; failures never propagate to the
submitter or to other jobs. Counters are exposed through :meth:`stats`
for the health endpoint.

CHANGELOG:
- 2026-10-18: Initial creation

TODO:
- None
"""

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

logger = logging.getLogger(__name__)

JobFactory = Callable[[], Awaitable[Any]]


@dataclass
class _Job:
    name: str
    factory: JobFactory


class RefoldQueue:
    """FIFO queue of refold jobs with bounded retry and failure counters.

    Args:
        max_attempts: Attempts per job, including the first one.
        max_backoff_s: Upper bound of the delay between attempts.
        sleep: Coroutine used to wait between attempts (injectable for
            tests).
    """

    def __init__(
        self,
        max_attempts: int = 3,
        max_backoff_s: float = 30.0,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._queue: asyncio.Queue[_Job] = asyncio.Queue()
        self._max_attempts = max(1, max_attempts)
        self._max_backoff_s = max_backoff_s
        self._sleep = sleep
        self._worker: asyncio.Task | None = None

        self.submitted = 0
        self.succeeded = 0
        self.failed = 0
        self.retried = 0
        self.last_error: str | None = None

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def submit(self, name: str, factory: JobFactory) -> None:
        """Enqueue a job without waiting for it.

        Args:
            name: Human-readable job name used in logs.
            factory: Zero-argument coroutine function performing the job.
                It is called once per attempt.
        """
        self._queue.put_nowait(_Job(name=name, factory=factory))
        self.submitted += 1

    async def drain(self) -> int:
        """Run every pending job in order and return how many ran."""
        processed = 0
        while not self._queue.empty():
            job = self._queue.get_nowait()
            try:
                await self._run(job)
            finally:
                self._queue.task_done()
            processed += 1
        return processed

    def start(self) -> None:
        """Start the background worker on the running event loop."""
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run_forever(), name="refold-worker")

    async def stop(self) -> None:
        """Cancel the background worker. Pending jobs stay queued."""
        if self._worker is None:
            return
        self._worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._worker
        self._worker = None

    def backoff(self, attempt: int) -> float:
        """Delay before retry number *attempt* (1-based): ``min(2**(attempt-1), cap)``."""
        return min(2 ** (attempt - 1), self._max_backoff_s)

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    def stats(self) -> dict:
        """Return the queue counters as a JSON-serializable dict."""
        return {
            "submitted": self.submitted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "retried": self.retried,
            "pending": self.pending,
            "last_error": self.last_error,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run_forever(self) -> None:
        while True:
            job = await self._queue.get()
            try:
                await self._run(job)
            finally:
                self._queue.task_done()

    async def _run(self, job: _Job) -> bool:
        for attempt in range(1, self._max_attempts + 1):
            try:
                await job.factory()
            except Exception as exc:
                self.last_error = f"{job.name}: {exc}"
                if attempt < self._max_attempts:
                    self.retried += 1
                    delay = self.backoff(attempt)
                    logger.warning(
                        "Job %s failed (attempt %d/%d), retrying in %.1fs",
                        job.name, attempt, self._max_attempts, delay, exc_info=True,
                    )
                    await self._sleep(delay)
                    continue
                self.failed += 1
                logger.error(
                    "Job %s failed after %d attempts; giving up",
                    job.name, self._max_attempts, exc_info=True,
                )
                return False
            self.succeeded += 1
            return True
        return False  # pragma: no cover
