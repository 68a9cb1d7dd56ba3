"""Reconciliation sweep for Distributions whose delivery job never ran.

Distribution records are committed before their jobs are enqueued. If the
process dies in between, or the enqueue fails, the records stay PENDING with
no job. The sweep finds those records and enqueues a fresh job for each.
"""

from datetime import datetime, timedelta
from typing import Callable, ContextManager, Optional

from sqlalchemy.orm import Session

from rfq_dispatch.config.models import ReconciliationConfig
from rfq_dispatch.logging import get_logger
from rfq_dispatch.persistence import DistributionRepository, get_session
from rfq_dispatch.queue import JobQueue
from rfq_dispatch.utils.timestamps import utc_now

from .models import DeliveryJob

logger = get_logger(__name__, component="reconciliation")


class ReconciliationSweep:
    """Requeues stale, never-attempted PENDING Distributions.

    A record qualifies when it was created more than ``pending_threshold``
    ago, no worker has ever started on it and it was not already requeued
    within the threshold.
    """

    def __init__(
        self,
        job_queue: JobQueue,
        config: Optional[ReconciliationConfig] = None,
        session_factory: Callable[[], ContextManager[Session]] = get_session,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.job_queue = job_queue
        self.config = config or ReconciliationConfig()
        self.session_factory = session_factory
        self.clock = clock

    def run_once(self) -> int:
        """Run one sweep. Returns the number of requeued distributions."""
        now = self.clock()
        cutoff = now - timedelta(seconds=self.config.pending_threshold_seconds)

        with self.session_factory() as session:
            stale = DistributionRepository(session).find_stale_pending(
                cutoff, self.config.batch_size
            )

        if not stale:
            logger.debug(
                "No stale pending distributions",
                extra={"event": "reconciliation.idle", "cutoff": cutoff},
            )
            return 0

        jobs = [
            DeliveryJob(
                distribution_id=distribution.id,
                trip_request_id=distribution.trip_request_id,
                agency_id=distribution.agency_id,
                legacy_target=None,
                payload=distribution.notification_payload,
            )
            for distribution in stale
        ]
        self.job_queue.enqueue_bulk(jobs)

        with self.session_factory() as session:
            DistributionRepository(session).mark_requeued([job.distribution_id for job in jobs], now)

        logger.warning(
            f"Requeued {len(jobs)} stale pending distributions",
            extra={
                "event": "reconciliation.requeued",
                "requeued_count": len(jobs),
                "distribution_ids": [job.distribution_id for job in jobs],
                "cutoff": cutoff,
            },
        )
        return len(jobs)
