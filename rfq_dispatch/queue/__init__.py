"""Delivery job queue: the port and its Celery implementation."""

from .base import JobHandler, JobQueue
from .celery_app import celery_app, configure_celery
from .celery_queue import CeleryJobQueue
from .tasks import bind_runtime, clear_runtime, deliver_distribution

__all__ = [
    "JobHandler",
    "JobQueue",
    "CeleryJobQueue",
    "celery_app",
    "configure_celery",
    "bind_runtime",
    "clear_runtime",
    "deliver_distribution",
]
