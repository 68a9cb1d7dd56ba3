"""JobQueue that publishes delivery jobs as Celery tasks."""

from typing import Sequence

from rfq_dispatch.distribution.models import DeliveryJob
from rfq_dispatch.logging import get_logger

from .base import JobQueue
from .celery_app import DELIVERY_QUEUE
from .tasks import deliver_distribution

logger = get_logger(__name__, component="queue")


class CeleryJobQueue(JobQueue):
    """Sends one ``deliver_distribution`` task per job.

    Example:
        >>> job_queue = CeleryJobQueue()
        >>> job_queue.enqueue_bulk(jobs)  # a Celery worker runs DeliveryWorker.process
    """

    def __init__(self, queue_name: str = DELIVERY_QUEUE):
        self.queue_name = queue_name

    def enqueue_bulk(self, jobs: Sequence[DeliveryJob]) -> None:
        for job in jobs:
            deliver_distribution.apply_async(args=(job.to_dict(),), queue=self.queue_name)

        logger.info(
            f"Enqueued {len(jobs)} jobs",
            extra={"event": "queue.enqueued", "queue": self.queue_name, "job_count": len(jobs)},
        )
