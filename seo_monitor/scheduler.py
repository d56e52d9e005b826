"""
Job Scheduler - named jobs at independent fixed intervals, never overlapping

Built on APScheduler's AsyncIOScheduler: each job gets an IntervalTrigger with
``max_instances=1`` and ``coalesce=True``, so a run time that arrives while
the previous run is still in progress is skipped (not queued). Skips and
failures come back through scheduler events and are logged with the job name
and timestamp; a failing job never stops itself or any other job.

Usage::

    scheduler = Scheduler()
    scheduler.schedule("poll", 300_000, pipeline.poll_cycle, run_immediately=True)
    scheduler.schedule("report", 86_400_000, pipeline.report_cycle)
    await scheduler.start()
    ...
    await scheduler.stop()
"""

import asyncio
import inspect
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from typing import Any

from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_MAX_INSTANCES,
    JobExecutionEvent,
    JobSubmissionEvent,
)
from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from seo_monitor.core.logging_config import get_logger, job_context
from seo_monitor.core.observability import capture_exception, track_performance
from seo_monitor.utils.datetime_utils import ms_to_timedelta, utc_now

logger = get_logger(__name__)

# Returned by a scheduled run that found a manual run of the same job in flight
_SKIPPED = object()


@dataclass
class Job:
    """A scheduled unit of work plus its run statistics."""

    name: str
    interval: timedelta
    work: Callable[[], Any]
    run_immediately: bool = False
    is_running: bool = False
    run_count: int = 0
    skipped_count: int = 0
    failure_count: int = 0
    last_run_at: datetime | None = None
    last_error: str | None = None

    def __post_init__(self):
        if not self.name:
            raise ValueError("Job name must be non-empty")
        if self.interval <= timedelta(0):
            raise ValueError(f"Job interval must be positive: {self.name}")


class Scheduler:
    """
    Named interval jobs on an APScheduler AsyncIOScheduler.

    ``work`` may be a plain callable or return an awaitable. Either way it
    runs on the event loop (APScheduler only sees the coroutine wrapper), so
    jobs never touch pipeline state from a worker thread.
    """

    def __init__(self, clock: Callable[[], datetime] = utc_now) -> None:
        self._clock = clock
        self._jobs: dict[str, Job] = {}
        self._runs: set[asyncio.Task] = set()
        self._scheduler = AsyncIOScheduler(timezone=UTC)
        self._scheduler.add_listener(self._on_job_event, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR | EVENT_JOB_MAX_INSTANCES)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def schedule(self, name: str, interval_ms: int, work: Callable[[], Any], run_immediately: bool = False) -> Job:
        """
        Register a job. If the scheduler is already started the job starts
        ticking right away.

        Raises:
            ValueError: If a job with that name exists or the interval is invalid
        """
        if name in self._jobs:
            raise ValueError(f"Job already scheduled: {name}")
        if not isinstance(interval_ms, int | float) or interval_ms <= 0:
            raise ValueError(f"Job interval must be positive: {name} ({interval_ms!r}ms)")

        job = Job(name=name, interval=ms_to_timedelta(interval_ms), work=work, run_immediately=run_immediately)
        self._jobs[name] = job

        options: dict[str, Any] = {}
        if run_immediately:
            options["next_run_time"] = datetime.now(UTC)
        self._scheduler.add_job(
            self._run_scheduled,
            trigger=IntervalTrigger(seconds=job.interval.total_seconds(), timezone=UTC),
            args=[name],
            id=name,
            name=name,
            max_instances=1,  # skip, never overlap
            coalesce=True,
            misfire_grace_time=None,
            **options,
        )
        logger.info("Job scheduled", extra={"job": name, "interval_ms": interval_ms})
        return job

    def cancel(self, name: str) -> bool:
        """
        Stop future invocations of ``name``. A run already in flight is
        allowed to finish.

        Returns:
            True if the job existed
        """
        job = self._jobs.pop(name, None)
        if job is None:
            return False

        try:
            self._scheduler.remove_job(name)
        except JobLookupError:
            logger.debug("Job already gone from scheduler", extra={"job": name})

        logger.info("Job cancelled", extra={"job": name, "in_flight": job.is_running})
        return True

    def get_job(self, name: str) -> Job | None:
        job = self._jobs.get(name)
        return replace(job) if job is not None else None

    def jobs(self) -> list[Job]:
        return [replace(job) for job in self._jobs.values()]

    @property
    def running(self) -> bool:
        return self._scheduler.running

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Start the underlying scheduler on the running event loop."""
        if self._scheduler.running:
            return
        self._scheduler.start()
        logger.info("Scheduler started", extra={"jobs": sorted(self._jobs)})

    async def stop(self, wait: bool = True) -> None:
        """
        Stop scheduling new runs.

        Args:
            wait: Await in-flight runs (True) or cancel them (False)
        """
        runs = list(self._runs)
        if self._scheduler.running:
            if wait:
                # Paused: no new submissions while in-flight runs finish
                self._scheduler.pause()
                await asyncio.gather(*runs, return_exceptions=True)
            self._scheduler.shutdown(wait=False)

        for run in runs:
            if not run.done():
                run.cancel()
        await asyncio.gather(*runs, return_exceptions=True)
        logger.info("Scheduler stopped", extra={"waited_for_runs": wait, "in_flight": len(runs)})

    async def run_now(self, name: str) -> bool:
        """
        Run ``name`` immediately and wait for it to finish.

        Returns:
            False if the job was already running (the request is dropped)

        Raises:
            KeyError: If no such job is scheduled
        """
        job = self._jobs.get(name)
        if job is None:
            raise KeyError(f"No such job: {name}")

        if job.is_running:
            logger.warning("Manual run skipped, job still running", extra={"job": name})
            return False

        try:
            await self._run(job, trigger="manual")
        except Exception as e:
            self._record_failure(job, e)
        else:
            self._record_success(job)
        return True

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _run_scheduled(self, name: str) -> Any:
        """Entry point APScheduler calls; exceptions surface as EVENT_JOB_ERROR."""
        job = self._jobs.get(name)
        if job is None:
            return _SKIPPED
        if job.is_running:
            self._record_skip(job)
            return _SKIPPED
        await self._run(job, trigger="interval")
        return None

    async def _run(self, job: Job, trigger: str) -> None:
        job.is_running = True
        job.last_run_at = self._clock()
        task = asyncio.current_task()
        if task is not None:
            self._runs.add(task)
        try:
            with (
                job_context(job.name),
                track_performance(f"job:{job.name}", alert_threshold_ms=job.interval.total_seconds() * 1000) as ctx,
            ):
                ctx["trigger"] = trigger
                result = job.work()
                if inspect.isawaitable(result):
                    await result
        finally:
            job.is_running = False
            if task is not None:
                self._runs.discard(task)

    def _on_job_event(self, event: JobExecutionEvent | JobSubmissionEvent) -> None:
        job = self._jobs.get(event.job_id)
        if job is None:
            return

        if event.code == EVENT_JOB_MAX_INSTANCES:
            self._record_skip(job)
        elif event.code == EVENT_JOB_ERROR:
            if isinstance(event.exception, asyncio.CancelledError):
                logger.info("Scheduled run cancelled", extra={"job": job.name})
                return
            self._record_failure(job, event.exception)
        elif event.retval is not _SKIPPED:
            self._record_success(job)

    def _record_success(self, job: Job) -> None:
        job.run_count += 1
        job.last_error = None

    def _record_skip(self, job: Job) -> None:
        job.skipped_count += 1
        logger.warning(
            "Skipping run, previous run still in progress",
            extra={"job": job.name, "skipped_count": job.skipped_count, "timestamp": self._clock().isoformat()},
        )

    def _record_failure(self, job: Job, error: BaseException) -> None:
        job.failure_count += 1
        job.last_error = f"{type(error).__name__}: {error}"
        logger.error(
            "Scheduled job failed",
            exc_info=error,
            extra={
                "job": job.name,
                "timestamp": self._clock().isoformat(),
                "error_type": type(error).__name__,
                "failure_count": job.failure_count,
            },
        )
        capture_exception(error, context={"job": job.name})
