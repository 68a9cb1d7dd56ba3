"""Distribution coordinator.

Creates the Distribution records for a trip request exactly once, hands one
delivery job per record to the job queue and owns the status-write API used
by the delivery worker and by external view/response hooks.
"""

from datetime import datetime
from typing import Callable, ContextManager, List, Optional

from sqlalchemy.orm import Session

from rfq_dispatch.domain.models import DistributionStatus
from rfq_dispatch.logging import get_logger
from rfq_dispatch.logging.context import log_context
from rfq_dispatch.matching import AgencyMatcher, AgencyMatchResult, MatchCriteria
from rfq_dispatch.persistence import (
    DistributionRepository,
    TripRequestRepository,
    get_session,
)
from rfq_dispatch.queue import JobQueue
from rfq_dispatch.utils.timestamps import utc_now

from .models import DeliveryJob, DistributionResult, DistributionStats
from .payloads import build_notification_payload

logger = get_logger(__name__, component="coordinator")

# Agencies listed in the completion log
TOP_AGENCIES_LOGGED = 3


class DistributionCoordinator:
    """Orchestrates distribution of trip requests to matched agencies.

    Args:
        matcher: Agency matching engine
        job_queue: Queue receiving one DeliveryJob per created Distribution
        session_factory: Context manager factory yielding a transactional session
        clock: Returns the current UTC time
    """

    def __init__(
        self,
        matcher: AgencyMatcher,
        job_queue: JobQueue,
        session_factory: Callable[[], ContextManager[Session]] = get_session,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.matcher = matcher
        self.job_queue = job_queue
        self.session_factory = session_factory
        self.clock = clock

    def distribute(self, trip_request_id: str) -> DistributionResult:
        """Distribute a trip request to every matched agency.

        Running it again for a request that already has Distributions is a
        no-op that returns an empty result without matching.

        Raises:
            RecordNotFoundError: If the trip request doesn't exist
            PersistenceError: If reading or the distribution transaction fails
        """
        with log_context(trip_request_id=trip_request_id):
            with self.session_factory() as session:
                existing = DistributionRepository(session).count_for_request(trip_request_id)

            if existing > 0:
                logger.info(
                    f"Trip request {trip_request_id} already distributed, skipping",
                    extra={"event": "distribution.skipped", "existing_distributions": existing},
                )
                return DistributionResult.empty(trip_request_id)

            with self.session_factory() as session:
                trip_request = TripRequestRepository(session).get_required(trip_request_id)

            payload = build_notification_payload(trip_request)
            criteria = MatchCriteria(
                destination=trip_request.destination,
                trip_type=trip_request.trip_type,
                regions=[trip_request.destination] if trip_request.destination else [],
                exclude_target=trip_request.requester_target,
            )
            matches = self.matcher.match(criteria)

            if not matches:
                logger.warning(
                    f"No agencies matched trip request {trip_request_id}",
                    extra={
                        "event": "distribution.no_match",
                        "destination": trip_request.destination,
                        "trip_type": trip_request.trip_type,
                    },
                )
                return DistributionResult.empty(trip_request_id)

            snapshot = payload.to_snapshot()

            # Records and the status flip commit together or not at all
            with self.session_factory() as session:
                distributions = DistributionRepository(session).create_many(
                    trip_request_id,
                    [match.agency_id for match in matches],
                    snapshot,
                    self.clock(),
                )
                TripRequestRepository(session).mark_distributed(trip_request_id)

            jobs = [
                DeliveryJob(
                    distribution_id=distribution.id,
                    trip_request_id=trip_request_id,
                    agency_id=distribution.agency_id,
                    legacy_target=match.primary_target,
                    payload=snapshot,
                )
                for distribution, match in zip(distributions, matches)
            ]
            self._enqueue(jobs)

            result = DistributionResult(
                trip_request_id=trip_request_id,
                total_matched=len(matches),
                distribution_ids=[d.id for d in distributions],
                agency_ids=[d.agency_id for d in distributions],
            )
            self._log_completed(trip_request.user_id, matches, result)
            return result

    def _enqueue(self, jobs: List[DeliveryJob]) -> None:
        # Records are already committed; the reconciliation sweep requeues
        # anything that does not make it onto the queue here.
        try:
            self.job_queue.enqueue_bulk(jobs)
        except Exception as e:
            logger.error(
                f"Failed to enqueue {len(jobs)} delivery jobs: {e}",
                extra={
                    "event": "distribution.enqueue_failed",
                    "job_count": len(jobs),
                    "error_type": type(e).__name__,
                },
                exc_info=True,
            )

    @staticmethod
    def _log_completed(
        user_id: str, matches: List[AgencyMatchResult], result: DistributionResult
    ) -> None:
        top = [
            {"agency_id": m.agency_id, "name": m.agency_name, "score": m.score, "reasons": m.reasons}
            for m in matches[:TOP_AGENCIES_LOGGED]
        ]
        logger.info(
            f"Trip request {result.trip_request_id} distributed to {result.total_matched} agencies",
            extra={
                "event": "distribution.completed",
                "user_id": user_id,
                "agency_count": result.total_matched,
                "agency_ids": result.agency_ids,
                "top_agencies": top,
            },
        )

    # Status API

    def mark_delivered(self, distribution_id: str) -> bool:
        return self._write_status(distribution_id, DistributionStatus.DELIVERED)

    def mark_failed(self, distribution_id: str, reason: str) -> bool:
        return self._write_status(distribution_id, DistributionStatus.FAILED, reason)

    def mark_viewed(self, distribution_id: str) -> bool:
        return self._write_status(distribution_id, DistributionStatus.VIEWED)

    def mark_responded(self, distribution_id: str) -> bool:
        """Record the agency's response; the first response time is kept."""
        return self._write_status(distribution_id, DistributionStatus.RESPONDED)

    def _write_status(
        self,
        distribution_id: str,
        status: DistributionStatus,
        failure_reason: Optional[str] = None,
    ) -> bool:
        """Apply a guarded status write.

        Returns:
            True if written, False if the current status does not allow it

        Raises:
            RecordNotFoundError: If distribution_id doesn't exist
        """
        with self.session_factory() as session:
            applied = DistributionRepository(session).update_status(
                distribution_id, status, self.clock(), failure_reason
            )

        if applied:
            logger.info(
                f"Distribution {distribution_id} marked {status.value}",
                extra={
                    "event": f"distribution.status.{status.value.lower()}",
                    "distribution_id": distribution_id,
                    "failure_reason": failure_reason,
                },
            )
        else:
            logger.debug(
                f"Ignored {status.value} for distribution {distribution_id}",
                extra={
                    "event": "distribution.status.ignored",
                    "distribution_id": distribution_id,
                    "requested_status": status.value,
                },
            )
        return applied

    def get_stats(self, trip_request_id: str) -> DistributionStats:
        with self.session_factory() as session:
            counts = DistributionRepository(session).status_counts(trip_request_id)

        return DistributionStats(
            total=sum(counts.values()),
            pending=counts.get(DistributionStatus.PENDING, 0),
            delivered=counts.get(DistributionStatus.DELIVERED, 0),
            failed=counts.get(DistributionStatus.FAILED, 0),
            viewed=counts.get(DistributionStatus.VIEWED, 0),
            responded=counts.get(DistributionStatus.RESPONDED, 0),
        )
