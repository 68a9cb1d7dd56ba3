"""Celery tasks for RFQ delivery.

The task body only rebuilds the DeliveryJob and hands it to the handler bound
at startup (DeliveryWorker.process). Retries are Celery retries; their
countdown and budget come from QueueConfig rather than decorator arguments so
that config.yaml controls them.
"""

import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

from celery.utils.time import get_exponential_backoff_interval

from rfq_dispatch.config.models import QueueConfig
from rfq_dispatch.distribution.models import DeliveryJob
from rfq_dispatch.logging import get_logger
from rfq_dispatch.logging.context import log_context

from .base import JobHandler
from .celery_app import celery_app

logger = get_logger(__name__, component="queue")

DELIVER_TASK_NAME = "rfq_dispatch.deliver_distribution"


@dataclass(frozen=True)
class TaskRuntime:
    """What a task needs from the running service."""

    handler: JobHandler
    queue_config: QueueConfig


_runtime: Optional[TaskRuntime] = None
_runtime_lock = threading.Lock()


def bind_runtime(handler: JobHandler, queue_config: QueueConfig) -> TaskRuntime:
    """Register the handler that delivery tasks call."""
    global _runtime
    with _runtime_lock:
        _runtime = TaskRuntime(handler=handler, queue_config=queue_config)
        return _runtime


def clear_runtime() -> None:
    global _runtime
    with _runtime_lock:
        _runtime = None


def get_runtime() -> TaskRuntime:
    runtime = _runtime
    if runtime is None:
        raise RuntimeError("Delivery task runtime is not bound; call bind_runtime() at startup")
    return runtime


def retry_countdown(config: QueueConfig, retries: int) -> int:
    """Seconds before retry number ``retries + 1`` (exponential, capped, optional full jitter)."""
    return get_exponential_backoff_interval(
        factor=config.retry_backoff,
        retries=retries,
        maximum=config.retry_backoff_max,
        full_jitter=config.retry_jitter,
    )


@celery_app.task(bind=True, name=DELIVER_TASK_NAME, acks_late=True)
def deliver_distribution(self, job_data: Dict[str, Any]) -> None:
    """Deliver one distribution; transient failures are retried with backoff."""
    runtime = get_runtime()
    config = runtime.queue_config
    job = DeliveryJob.from_dict(job_data)
    attempt = self.request.retries + 1
    max_retries = config.max_attempts - 1

    with log_context(job_attempt=attempt, task_id=self.request.id):
        try:
            runtime.handler(job)
        except Exception as exc:
            if self.request.retries >= max_retries:
                logger.error(
                    f"Job {job.distribution_id} dead-lettered after {attempt} attempts: {exc}",
                    extra={
                        "event": "queue.job.dead_lettered",
                        "job": job.distribution_id,
                        "attempt": attempt,
                        "error_type": type(exc).__name__,
                    },
                )
                raise

            countdown = retry_countdown(config, self.request.retries)
            logger.warning(
                f"Job {job.distribution_id} failed on attempt {attempt}, "
                f"retrying in {countdown}s: {exc}",
                extra={
                    "event": "queue.job.retry_scheduled",
                    "job": job.distribution_id,
                    "attempt": attempt,
                    "delay_seconds": countdown,
                    "error_type": type(exc).__name__,
                },
            )
            raise self.retry(exc=exc, countdown=countdown, max_retries=max_retries)

    logger.debug(
        f"Job {job.distribution_id} completed",
        extra={"event": "queue.job.completed", "job": job.distribution_id, "attempt": attempt},
    )
