"""Scheduler service for the daemon's periodic jobs: request intake and the reconciliation sweep."""

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, List, Optional, Sequence

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from rfq_dispatch.logging import get_logger

logger = get_logger(__name__, component="scheduler")

INTAKE_JOB_ID = "request-intake"
SWEEP_JOB_ID = "reconciliation-sweep"


@dataclass(frozen=True)
class PeriodicJob:
    """One interval job.

    ``func`` returns a count that is logged on completion. The first run
    happens after ``first_run_delay_seconds``, or one interval if unset.
    """

    job_id: str
    name: str
    func: Callable[[], int]
    interval_seconds: int
    first_run_delay_seconds: Optional[int] = None

    @property
    def first_run_delay(self) -> int:
        if self.first_run_delay_seconds is None:
            return self.interval_seconds
        return self.first_run_delay_seconds


class SchedulerService:
    """
    Wraps APScheduler to run the daemon's periodic jobs at fixed intervals.

    Uses BackgroundScheduler so jobs run in their own threads while the
    main thread handles signals and shutdown.
    """

    def __init__(
        self,
        jobs: Sequence[PeriodicJob],
        shutdown_event: Optional[threading.Event] = None,
    ):
        """
        Args:
            jobs: Jobs to register on start()
            shutdown_event: Optional event set on shutdown for coordination
        """
        if not jobs:
            raise ValueError("SchedulerService needs at least one job")

        self.jobs: List[PeriodicJob] = list(jobs)
        self.shutdown_event = shutdown_event

        self.scheduler = BackgroundScheduler(
            job_defaults={
                "max_instances": 1,  # a job never overlaps itself
                "coalesce": True,
            },
            timezone=timezone.utc,
        )

    def start(self) -> None:
        """Register every job and start the scheduler."""
        now = datetime.now(timezone.utc)
        next_runs: Dict[str, str] = {}

        for job in self.jobs:
            next_run = now + timedelta(seconds=job.first_run_delay)
            self.scheduler.add_job(
                func=self._run_job,
                args=(job,),
                trigger=IntervalTrigger(seconds=job.interval_seconds, timezone=timezone.utc),
                id=job.job_id,
                name=job.name,
                replace_existing=True,
                next_run_time=next_run,
                misfire_grace_time=job.interval_seconds,
            )
            next_runs[job.job_id] = next_run.isoformat()

        self.scheduler.start()

        logger.info(
            f"Scheduler started with {len(self.jobs)} jobs",
            extra={
                "event": "scheduler.started",
                "intervals": {job.job_id: job.interval_seconds for job in self.jobs},
                "next_run_times": next_runs,
            },
        )

    def _run_job(self, job: PeriodicJob) -> None:
        try:
            count = job.func()
        except Exception as e:
            logger.error(
                f"{job.name} failed: {e}",
                extra={
                    "event": "scheduler.job.failed",
                    "job_id": job.job_id,
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )
            return

        logger.debug(
            f"{job.name} finished",
            extra={"event": "scheduler.job.completed", "job_id": job.job_id, "count": count},
        )

    def shutdown(self, wait: bool = False) -> None:
        """
        Shutdown the scheduler.

        Args:
            wait: If True, wait for running jobs to complete before returning
        """
        logger.info(
            "Shutting down scheduler",
            extra={"event": "scheduler.stopping", "wait_for_jobs": wait},
        )

        if self.scheduler.running:
            self.scheduler.shutdown(wait=wait)

        if self.shutdown_event:
            self.shutdown_event.set()

        logger.info("Scheduler shutdown complete", extra={"event": "scheduler.stopped"})

    def is_running(self) -> bool:
        return self.scheduler.running

    def get_next_run_time(self, job_id: str) -> Optional[datetime]:
        job = self.scheduler.get_job(job_id)
        return job.next_run_time if job else None
