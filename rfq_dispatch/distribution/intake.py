"""Intake poll that distributes newly OPEN trip requests.

Trip requests are written by the intake flow upstream of this service. The
daemon polls for OPEN, unexpired requests and runs distribute() for each one.
A request that matched nobody stays OPEN and is stamped so it moves to the
back of the next poll.
"""

from datetime import datetime
from typing import Callable, ContextManager, List, Optional

from sqlalchemy.orm import Session

from rfq_dispatch.config.models import IntakeConfig
from rfq_dispatch.logging import get_logger
from rfq_dispatch.persistence import PersistenceError, TripRequestRepository, get_session
from rfq_dispatch.utils.timestamps import utc_now

from .coordinator import DistributionCoordinator

logger = get_logger(__name__, component="intake")


class RequestIntake:
    """Feeds OPEN trip requests into the coordinator."""

    def __init__(
        self,
        coordinator: DistributionCoordinator,
        config: Optional[IntakeConfig] = None,
        session_factory: Callable[[], ContextManager[Session]] = get_session,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.coordinator = coordinator
        self.config = config or IntakeConfig()
        self.session_factory = session_factory
        self.clock = clock

    def run_once(self) -> int:
        """Run one poll. Returns the number of requests distributed."""
        now = self.clock()

        with self.session_factory() as session:
            pending = TripRequestRepository(session).list_open_for_intake(
                now, self.config.batch_size
            )

        if not pending:
            logger.debug("No open trip requests", extra={"event": "intake.idle"})
            return 0

        distributed = 0
        unmatched: List[str] = []
        failed: List[str] = []

        for trip_request in pending:
            try:
                result = self.coordinator.distribute(trip_request.id)
            except PersistenceError as e:
                # the next poll picks the request up again
                logger.error(
                    f"Distribution of trip request {trip_request.id} failed: {e}",
                    extra={
                        "event": "intake.request_failed",
                        "trip_request_id": trip_request.id,
                        "error_type": type(e).__name__,
                    },
                )
                failed.append(trip_request.id)
                continue

            if result.is_empty:
                unmatched.append(trip_request.id)
            else:
                distributed += 1

        if unmatched:
            with self.session_factory() as session:
                TripRequestRepository(session).mark_intake_checked(unmatched, now)

        logger.info(
            f"Intake distributed {distributed} of {len(pending)} open trip requests",
            extra={
                "event": "intake.completed",
                "open_count": len(pending),
                "distributed_count": distributed,
                "unmatched_ids": unmatched,
                "failed_ids": failed,
            },
        )
        return distributed
