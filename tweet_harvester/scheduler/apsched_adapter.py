"""APScheduler wrapper running the agent's periodic jobs on the event loop."""

from __future__ import annotations

from typing import Any, Awaitable, Callable

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger


class APSchedulerAdapter:
    """Manage interval jobs (send gate, recovery scan, auto scroll)."""

    def __init__(self, logger: structlog.BoundLogger | None = None) -> None:
        self.scheduler = AsyncIOScheduler()
        self.logger = logger or structlog.get_logger("tweet_harvester.scheduler")
        self.started = False

    def start(self) -> None:
        if not self.started:
            self.scheduler.start()
            self.started = True
            self.logger.info("apscheduler_started")

    def shutdown(self) -> None:
        if self.started:
            self.scheduler.shutdown(wait=False)
            self.started = False
            self.logger.info("apscheduler_stopped")

    def schedule_interval(
        self,
        name: str,
        callback: Callable[[], Awaitable[Any]],
        seconds: float,
    ) -> str:
        trigger = self._build_trigger(seconds)
        job_id = f"agent::{name}"
        # One instance at a time; a slow run skips ticks instead of stacking them
        self.scheduler.add_job(
            callback,
            trigger=trigger,
            id=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self.logger.info("job_scheduled", job=job_id, seconds=seconds)
        return job_id

    def _build_trigger(self, seconds: float) -> IntervalTrigger:
        if not isinstance(seconds, (int, float)) or seconds <= 0:
            raise ValueError("Interval jobs require a positive number of seconds")
        return IntervalTrigger(seconds=float(seconds))

    def list_jobs(self) -> list[dict]:
        jobs = []
        for job in self.scheduler.get_jobs():
            jobs.append(
                {
                    "id": job.id,
                    "next_run_time": getattr(job, "next_run_time", None),
                    "trigger": str(job.trigger),
                }
            )
        return jobs


__all__ = ["APSchedulerAdapter"]
