"""Periodic triggers for cache refreshes and document scans."""

from __future__ import annotations

import asyncio
import logging
import re
import time
from collections.abc import Awaitable
from dataclasses import dataclass
from typing import Callable

from .errors import ScheduleError

logger = logging.getLogger(__name__)

_STEP = re.compile(r"^\*/(\d+)$")


def parse_schedule(expression: str) -> float:
    """
    Convert a fixed-interval cron expression to seconds.

    Supported forms:
        "* * * * *"      every minute
        "*/N * * * *"    every N minutes
        "0 * * * *"      every hour
        "0 */N * * *"    every N hours

    Args:
        expression: Five-field cron expression

    Returns:
        Interval in seconds

    Raises:
        ScheduleError: For any other expression
    """
    fields = expression.split()
    if len(fields) != 5 or any(f != "*" for f in fields[2:]):
        raise ScheduleError(f"Unsupported schedule: {expression!r}. Use '*/N * * * *' or '0 */N * * *'.")

    minute, hour = fields[0], fields[1]

    if hour == "*":
        if minute == "*":
            return 60.0
        if minute == "0":
            return 3600.0
        match = _STEP.match(minute)
        if match and 0 < int(match.group(1)) < 60:
            return int(match.group(1)) * 60.0
    elif minute == "0":
        match = _STEP.match(hour)
        if match and 0 < int(match.group(1)) < 24:
            return int(match.group(1)) * 3600.0

    raise ScheduleError(f"Unsupported schedule: {expression!r}. Use '*/N * * * *' or '0 */N * * *'.")


@dataclass
class PeriodicJob:
    """An async action run every ``interval`` seconds."""

    name: str
    interval: float
    action: Callable[[], Awaitable[object]]
    run_immediately: bool = True
    runs: int = 0
    failures: int = 0


class Scheduler:
    """
    Run periodic jobs concurrently until stopped.

    Each job has its own loop. An exception inside a run is logged and the
    job simply runs again on its next tick; nothing a job raises stops the
    scheduler. Runs of one job never overlap.

    Example:
        scheduler = Scheduler()
        scheduler.add_job("refresh-cache", parse_schedule("*/15 * * * *"), refresh)
        scheduler.add_job("scan", parse_schedule("*/30 * * * *"), scan)
        await scheduler.run()  # until scheduler.stop()
    """

    def __init__(self) -> None:
        self.jobs: list[PeriodicJob] = []
        self._stopped = asyncio.Event()

    def add_job(
        self,
        name: str,
        interval: float,
        action: Callable[[], Awaitable[object]],
        run_immediately: bool = True,
    ) -> PeriodicJob:
        job = PeriodicJob(name=name, interval=interval, action=action, run_immediately=run_immediately)
        self.jobs.append(job)
        return job

    def stop(self) -> None:
        """Ask every job loop to exit after its current run."""
        self._stopped.set()

    async def _run_job(self, job: PeriodicJob) -> None:
        if not job.run_immediately and await self._wait(job.interval):
            return

        while not self._stopped.is_set():
            start = time.monotonic()
            try:
                await job.action()
            except Exception as e:
                job.failures += 1
                logger.error(f"Job {job.name} failed: {e}")
            finally:
                job.runs += 1

            elapsed = time.monotonic() - start
            if await self._wait(max(0.0, job.interval - elapsed)):
                return

    async def _wait(self, seconds: float) -> bool:
        """Sleep for ``seconds``; return True if stopped meanwhile."""
        try:
            await asyncio.wait_for(self._stopped.wait(), timeout=seconds)
        except asyncio.TimeoutError:
            return False
        return True

    async def run(self) -> None:
        """Run every job until ``stop()`` is called."""
        for job in self.jobs:
            logger.info(f"Scheduling {job.name} every {job.interval:g}s")
        await asyncio.gather(*(self._run_job(job) for job in self.jobs))
