"""
In-process cron scheduler.

Each registered job runs in its own asyncio task that sleeps until the
next fire time of its cron expression and then awaits the job.
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from croniter import croniter

logger = logging.getLogger(__name__)


@dataclass
class CronJob:
    name: str
    schedule: str
    job: Callable[[], Awaitable[None]]

    def next_run(self, now: Optional[datetime] = None) -> datetime:
        """Next fire time after ``now`` (UTC)."""
        base = now or datetime.now(timezone.utc)
        return croniter(self.schedule, base).get_next(datetime)


class CronService:
    """Registers cron jobs and runs them as asyncio tasks."""

    def __init__(self):
        self.jobs: list[CronJob] = []
        self._tasks: dict[str, asyncio.Task] = {}

    def register_job(self, job: CronJob) -> None:
        """
        Add a job to the schedule.

        Raises:
            ValueError: If the cron expression is invalid
        """
        if not croniter.is_valid(job.schedule):
            raise ValueError(f"Invalid cron expression for {job.name}: {job.schedule!r}")
        self.jobs.append(job)

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks.values())

    async def run_job(self, job: CronJob) -> None:
        """Run a job once; failures are logged."""
        logger.info(f"Running cron job: {job.name}")
        try:
            await job.job()
        except Exception as e:
            logger.error(f"Cron job {job.name} failed: {e}", exc_info=True)

    async def _loop(self, job: CronJob) -> None:
        try:
            while True:
                now = datetime.now(timezone.utc)
                delay = (job.next_run(now) - now).total_seconds()
                await asyncio.sleep(max(delay, 0))
                await self.run_job(job)
        except asyncio.CancelledError:
            logger.info(f"Cron job {job.name} stopped")
            raise

    def start(self) -> None:
        """Start one task per registered job. Requires a running event loop."""
        loop = asyncio.get_running_loop()
        for job in self.jobs:
            if job.name in self._tasks and not self._tasks[job.name].done():
                continue
            self._tasks[job.name] = loop.create_task(self._loop(job), name=f"cron:{job.name}")
            logger.info(f"Registered cron job: {job.name} with schedule {job.schedule}")

    async def stop(self) -> None:
        """Cancel all job tasks and wait for them to finish."""
        tasks = list(self._tasks.values())
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()


cron_service = CronService()
