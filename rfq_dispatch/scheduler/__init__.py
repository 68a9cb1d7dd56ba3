"""Scheduling of the daemon's periodic jobs."""

from .service import INTAKE_JOB_ID, SWEEP_JOB_ID, PeriodicJob, SchedulerService

__all__ = [
    "INTAKE_JOB_ID",
    "SWEEP_JOB_ID",
    "PeriodicJob",
    "SchedulerService",
]
