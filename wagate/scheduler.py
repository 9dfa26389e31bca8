"""Scheduler — daily background job at a fixed time of day.

Runs as an asyncio background task alongside the gateway. Used for the
nightly health sweep of the recipient directory.

Usage:
    scheduler = DailyScheduler("03:00", reliability.health_sweep)
    await scheduler.start()
    # ... later ...
    await scheduler.stop()
"""

import asyncio
import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

from croniter import croniter

logger = logging.getLogger("wagate.scheduler")

_DAY_SECONDS = 24 * 60 * 60


def parse_time_of_day(value: str) -> tuple[int, int]:
    """Parse 'HH:MM' into (hour, minute).

    Raises:
        ValueError: if the value is not a valid time of day
    """
    try:
        hour_str, minute_str = value.strip().split(":", 1)
        hour, minute = int(hour_str), int(minute_str)
    except ValueError:
        raise ValueError(f"Invalid time of day '{value}', expected HH:MM")
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"Invalid time of day '{value}', expected HH:MM")
    return hour, minute


def next_occurrence(at: str, from_time: Optional[datetime] = None) -> datetime:
    """Next datetime strictly after `from_time` whose clock reads `at`.

    Rolls over to the next day if that time has already passed today.
    """
    hour, minute = parse_time_of_day(at)
    now = from_time or datetime.now()
    return croniter(f"{minute} {hour} * * *", now).get_next(datetime)


def seconds_until_next(at: str, from_time: Optional[datetime] = None) -> float:
    """Initial delay before the first run."""
    now = from_time or datetime.now()
    return (next_occurrence(at, now) - now).total_seconds()


class DailyScheduler:
    """Fire an async callback once at `at`, then every 24 hours."""

    def __init__(
        self,
        at: str,
        callback: Callable[[], Awaitable[object]],
        name: str = "daily job",
    ):
        parse_time_of_day(at)  # fail fast on bad config
        self.at = at
        self.name = name
        self._callback = callback
        self._running = False
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start the scheduler background task."""
        if self._running:
            logger.warning(f"Scheduler for {self.name} already running")
            return

        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(f"Scheduler started: {self.name} daily at {self.at}")

    async def stop(self):
        """Stop the scheduler."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info(f"Scheduler stopped: {self.name}")

    async def _run_loop(self):
        delay = seconds_until_next(self.at)
        logger.info(f"Next {self.name} in {delay / 3600:.1f}h")
        await asyncio.sleep(delay)

        while self._running:
            await self._execute()
            await asyncio.sleep(_DAY_SECONDS)

    async def _execute(self):
        logger.info(f"Running scheduled {self.name}")
        try:
            await self._callback()
        except Exception as e:
            logger.error(f"Scheduled {self.name} failed: {e}", exc_info=True)
