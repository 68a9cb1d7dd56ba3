"""Celery application for delivery tasks."""

from celery import Celery

from rfq_dispatch.config.environment import DEFAULT_BROKER_URL

DELIVERY_QUEUE = "rfq-delivery"

celery_app = Celery("rfq_dispatch", include=["rfq_dispatch.queue.tasks"])
celery_app.conf.update(
    broker_url=DEFAULT_BROKER_URL,
    task_serializer="json",
    accept_content=["json"],
    result_backend=None,
    task_ignore_result=True,
    task_default_queue=DELIVERY_QUEUE,
    # a job whose worker dies mid-send is redelivered, not lost
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,
    worker_hijack_root_logger=False,
    broker_connection_retry_on_startup=True,
    timezone="UTC",
    enable_utc=True,
)


def configure_celery(broker_url: str) -> Celery:
    """Point the app at the configured broker (CELERY_BROKER_URL)."""
    celery_app.conf.broker_url = broker_url
    return celery_app
