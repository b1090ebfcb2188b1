"""
Periodic trigger for evaluation passes.

The scheduler fires on wall-clock boundaries that are multiples of the
interval since the UTC epoch (for a 10 minute interval: :00, :10, :20 ...).
Each fire starts one pass as its own task; passes are not awaited before the
next fire, so overlap protection is the job's concern.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional, Set

import structlog

from waterme.shared.exceptions import ConfigurationError

logger = structlog.get_logger(__name__)

Job = Callable[[], Awaitable[object]]


def next_fire_time(now: datetime, interval_minutes: int) -> datetime:
    """First boundary strictly after ``now`` (aware datetime, UTC)."""
    if interval_minutes <= 0:
        raise ConfigurationError("Interval must be a positive number of minutes")

    period = interval_minutes * 60
    timestamp = now.timestamp()
    boundary = (int(timestamp // period) + 1) * period
    return datetime.fromtimestamp(boundary, tz=timezone.utc)


class IntervalScheduler:
    """Runs ``job`` on every interval boundary until stopped."""

    def __init__(
        self,
        interval_minutes: int,
        job: Job,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc)
    ):
        if interval_minutes <= 0:
            raise ConfigurationError("Interval must be a positive number of minutes")

        self.interval_minutes = interval_minutes
        self.job = job
        self._clock = clock
        self._timer: Optional[asyncio.Task] = None
        self._runs: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._timer is not None and not self._timer.done()

    def start(self) -> None:
        if self.running:
            return
        self._timer = asyncio.create_task(self._loop(), name="waterme-scheduler")
        logger.info("Scheduler started", interval_minutes=self.interval_minutes)

    async def stop(self) -> None:
        """Cancel the timer and wait for any pass already started."""
        if self._timer is not None:
            self._timer.cancel()
            try:
                await self._timer
            except asyncio.CancelledError:
                pass
            self._timer = None

        if self._runs:
            await asyncio.gather(*self._runs, return_exceptions=True)

        logger.info("Scheduler stopped")

    def fire(self) -> asyncio.Task:
        """Start one pass now."""
        task = asyncio.create_task(self._run_job())
        self._runs.add(task)
        task.add_done_callback(self._runs.discard)
        return task

    async def _loop(self) -> None:
        last_fire: Optional[datetime] = None
        while True:
            now = self._clock()
            # Early wake-ups must not fire the same boundary twice
            reference = now if last_fire is None or now > last_fire else last_fire
            fire_at = next_fire_time(reference, self.interval_minutes)
            delay = max((fire_at - now) / timedelta(seconds=1), 0.0)
            logger.debug("Next evaluation pass scheduled", fire_at=fire_at.isoformat())
            await asyncio.sleep(delay)
            last_fire = fire_at
            self.fire()

    async def _run_job(self) -> None:
        try:
            await self.job()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            # A failed pass must not stop future fires
            logger.exception("Scheduled pass failed", error=str(e))
