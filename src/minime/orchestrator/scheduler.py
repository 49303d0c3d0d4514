"""Recurring job scheduler built on APScheduler's asyncio scheduler."""

from __future__ import annotations

import asyncio
import logging
import time
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Iterable, List, Optional, Set, Tuple

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from minime.errors import DuplicateJobError, JobNotFoundError

from .events import EventBus, EventType
from .models import JobDefinition, JobHandler, JobStatusSnapshot, TriggerResult

logger = logging.getLogger(__name__)


DEFAULT_GRACE_PERIOD = 30.0


class JobScheduler:
    """Runs named jobs on independent intervals.

    Each enabled job gets its own APScheduler interval job. Timer callbacks
    only spawn a tracked run task, so stopping the timers never interrupts a
    run in progress. At most one run per job id executes at a time; the
    guard is a flag checked and set with no await in between.
    """

    def __init__(
        self,
        services: Any = None,
        *,
        events: Optional[EventBus] = None,
        grace_period: float = DEFAULT_GRACE_PERIOD,
        clock: Callable[[], datetime] = datetime.utcnow,
    ) -> None:
        self.services = services
        self.events = events or EventBus()
        self.grace_period = grace_period
        self._clock = clock
        self._jobs: Dict[str, JobDefinition] = {}
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._running = False
        self._spawned: Set[asyncio.Task] = set()
        self._active_runs: Set[asyncio.Task] = set()

    @property
    def running(self) -> bool:
        return self._running

    def __contains__(self, job_id: str) -> bool:
        return job_id in self._jobs

    def job_ids(self) -> List[str]:
        return list(self._jobs)

    def register_job(
        self,
        job_id: str,
        name: str,
        description: str,
        interval: float,
        handler: JobHandler,
        enabled: bool = True,
    ) -> JobDefinition:
        """Register a job. Registering after ``start()`` does not arm it.

        Raises:
            DuplicateJobError: If ``job_id`` is already registered
            ValueError: If ``interval`` is not positive
        """
        if job_id in self._jobs:
            raise DuplicateJobError(
                f"Job {job_id} already registered", details={"job_id": job_id}
            )
        if interval <= 0:
            raise ValueError("interval must be greater than zero")

        job = JobDefinition(
            id=job_id,
            name=name,
            description=description,
            interval=interval,
            handler=handler,
            enabled=enabled,
        )
        self._jobs[job_id] = job
        logger.info(
            "Registered job",
            extra={"job_id": job_id, "interval_seconds": interval, "enabled": enabled},
        )
        return job

    def start(self) -> None:
        """Arm every enabled job. Must be called from a running event loop."""
        if self._running:
            logger.warning("Job scheduler already running")
            return

        self._scheduler = AsyncIOScheduler(event_loop=asyncio.get_running_loop())
        self._scheduler.start()
        self._running = True
        for job in self._jobs.values():
            if job.enabled:
                self._arm(job)

        logger.info("Job scheduler started", extra={"jobs": len(self._jobs)})
        self.events.emit(EventType.SCHEDULER_STARTED, jobs=list(self._jobs))

    def stop(self) -> None:
        """Cancel all timers. Runs already in progress continue."""
        if not self._running:
            return
        self._running = False
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
        for job in self._jobs.values():
            job.state.next_run = None

        logger.info("Job scheduler stopped")
        self.events.emit(EventType.SCHEDULER_STOPPED)

    async def shutdown(self, grace_period: Optional[float] = None) -> bool:
        """Stop timers and wait for outstanding runs.

        Returns:
            True if every run finished within the grace period
        """
        self.stop()
        grace = self.grace_period if grace_period is None else grace_period
        current = asyncio.current_task()
        pending = {
            t for t in self._spawned | self._active_runs if not t.done() and t is not current
        }
        if not pending:
            return True

        _, still_running = await asyncio.wait(pending, timeout=grace)
        if still_running:
            logger.warning(
                "Shutdown grace period elapsed with jobs still running",
                extra={"grace_period": grace, "still_running": len(still_running)},
            )
            return False
        return True

    def schedule_job(self, job_id: str) -> None:
        """(Re)arm the timer for a job.

        Raises:
            JobNotFoundError: If the job is unknown
        """
        job = self._get(job_id)
        if not self._running:
            logger.debug(
                "Scheduler not running, job will be armed on start",
                extra={"job_id": job_id},
            )
            return
        self._arm(job)

    def _arm(self, job: JobDefinition) -> None:
        assert self._scheduler is not None
        self._scheduler.add_job(
            self._fire,
            trigger=IntervalTrigger(seconds=job.interval),
            args=[job.id],
            id=job.id,
            name=job.name,
            replace_existing=True,
        )
        job.state.next_run = self._clock() + timedelta(seconds=job.interval)
        logger.info(
            "Scheduled job",
            extra={"job_id": job.id, "interval_seconds": job.interval},
        )

    def _disarm(self, job: JobDefinition) -> None:
        if self._scheduler is not None and self._scheduler.get_job(job.id) is not None:
            self._scheduler.remove_job(job.id)
        job.state.next_run = None

    async def _fire(self, job_id: str) -> None:
        task = asyncio.create_task(self.run_job(job_id), name=f"job-{job_id}")
        self._spawned.add(task)
        task.add_done_callback(self._spawned.discard)

    async def run_job(self, job_id: str) -> bool:
        """Run a job once if it exists, is enabled and is not already running.

        Handler exceptions are logged and counted, never propagated.

        Returns:
            True when the handler ran and succeeded
        """
        success, _ = await self._execute(job_id)
        return success

    async def _execute(self, job_id: str) -> Tuple[bool, Optional[str]]:
        job = self._jobs.get(job_id)
        if job is None:
            logger.error("Job not found", extra={"job_id": job_id})
            return False, "not found"
        if job.state.running:
            logger.warning("Job already running, skipping", extra={"job_id": job_id})
            return False, "already running"
        if not job.enabled:
            logger.debug("Job disabled, skipping", extra={"job_id": job_id})
            return False, "disabled"

        job.state.running = True
        now = self._clock()
        job.state.last_run = now
        job.state.next_run = now + timedelta(seconds=job.interval)
        task = asyncio.current_task()
        if task is not None:
            self._active_runs.add(task)

        logger.info("Running job", extra={"job_id": job_id})
        self.events.emit(EventType.JOB_STARTED, job_id=job_id, name=job.name)
        started = time.perf_counter()
        error: Optional[str] = None
        try:
            await job.handler(self.services)
        except Exception as exc:
            error = str(exc) or type(exc).__name__
            job.stats.failures += 1
            logger.error(
                "Job failed",
                exc_info=True,
                extra={"job_id": job_id, "error": error},
            )
        finally:
            duration = (time.perf_counter() - started) * 1000
            job.stats.runs += 1
            job.stats.last_duration = duration
            job.stats.total_duration += duration
            job.state.running = False
            if task is not None:
                self._active_runs.discard(task)

        if error is not None:
            self.events.emit(EventType.JOB_FAILED, job_id=job_id, name=job.name, error=error)
            return False, error

        logger.info(
            "Job completed",
            extra={"job_id": job_id, "duration_ms": round(duration, 2)},
        )
        self.events.emit(
            EventType.JOB_COMPLETED, job_id=job_id, name=job.name, duration=duration
        )
        return True, None

    def toggle_job(self, job_id: str, enabled: bool) -> None:
        """Enable or disable a job, (dis)arming its timer when running.

        Raises:
            JobNotFoundError: If the job is unknown
        """
        job = self._get(job_id)
        job.enabled = enabled
        if self._running:
            if enabled:
                self._arm(job)
            else:
                self._disarm(job)
        logger.info(
            "Job toggled", extra={"job_id": job_id, "enabled": enabled}
        )

    def get_job_status(self, job_id: str) -> Optional[JobStatusSnapshot]:
        job = self._jobs.get(job_id)
        return job.snapshot() if job else None

    def get_all_jobs_status(self) -> List[JobStatusSnapshot]:
        return [job.snapshot() for job in self._jobs.values()]

    async def trigger_job(self, job_id: str) -> bool:
        """Run a job once outside its cadence.

        Raises:
            JobNotFoundError: If the job is unknown
        """
        self._get(job_id)
        logger.info("Manually triggering job", extra={"job_id": job_id})
        return await self.run_job(job_id)

    async def trigger_all_jobs(self, exclude: Iterable[str] = ()) -> List[TriggerResult]:
        """Trigger every job sequentially; one failure never stops the rest."""
        excluded = set(exclude)
        results = []
        for job_id in list(self._jobs):
            if job_id in excluded:
                continue
            logger.info("Manually triggering job", extra={"job_id": job_id})
            success, error = await self._execute(job_id)
            results.append(TriggerResult(job_id=job_id, success=success, error=error))
        return results

    def _get(self, job_id: str) -> JobDefinition:
        job = self._jobs.get(job_id)
        if job is None:
            raise JobNotFoundError(f"Job {job_id} not found", details={"job_id": job_id})
        return job
