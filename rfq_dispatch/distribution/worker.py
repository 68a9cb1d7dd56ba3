"""Delivery worker: processes one DeliveryJob per (trip request, agency) pair.

Per job, strictly in order:
1. Idempotency check against the stored Distribution status
2. Target resolution
3. Rendering from the stored payload snapshot
4. Concurrent fan-out to every target (settle-all)
5. Outcome write, and a retry signal to the queue for transient failures
"""

import contextvars
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime
from typing import Callable, ContextManager, List, Optional, Sequence

from sqlalchemy.orm import Session

from rfq_dispatch.logging import get_logger
from rfq_dispatch.logging.context import log_context
from rfq_dispatch.notifications.models import (
    ERROR_EXCEPTION,
    MessageAction,
    SendResult,
    rfq_actions,
)
from rfq_dispatch.notifications.templates import MessageRenderer
from rfq_dispatch.notifications.transport import MessageTransport
from rfq_dispatch.persistence import (
    DistributionRepository,
    PersistenceError,
    RecordNotFoundError,
    TripRequestRepository,
    get_session,
)
from rfq_dispatch.utils.timestamps import utc_now

from .coordinator import DistributionCoordinator
from .errors import (
    DeliveryError,
    NoReachableTargetsError,
    PermanentDeliveryError,
    TransientDeliveryError,
    is_transient_error,
)
from .models import DeliveryJob
from .targets import TargetResolver

logger = get_logger(__name__, component="worker")

NO_TARGETS_REASON = "no reachable delivery targets"


class DeliveryWorker:
    """Delivers RFQ messages and records the outcome on the Distribution.

    The worker never retries sends itself: a transient total failure is
    signalled by raising TransientDeliveryError, and the job queue decides
    when to run the job again.
    """

    def __init__(
        self,
        coordinator: DistributionCoordinator,
        resolver: TargetResolver,
        renderer: MessageRenderer,
        transport: MessageTransport,
        max_fanout_workers: int = 8,
        session_factory: Callable[[], ContextManager[Session]] = get_session,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.coordinator = coordinator
        self.resolver = resolver
        self.renderer = renderer
        self.transport = transport
        self.max_fanout_workers = max_fanout_workers
        self.session_factory = session_factory
        self.clock = clock

    def process(self, job: DeliveryJob) -> None:
        """Handle one delivery job.

        Raises:
            TransientDeliveryError: All targets failed with retryable errors
            Exception: An unexpected error that classifies as transient
        """
        with log_context(
            distribution_id=job.distribution_id,
            trip_request_id=job.trip_request_id,
            agency_id=job.agency_id,
        ):
            if not self._begin_attempt(job):
                return

            try:
                self._deliver(job)
            except (NoReachableTargetsError, PermanentDeliveryError):
                # terminal, FAILED is already recorded
                return
            except DeliveryError:
                raise
            except Exception as exc:
                transient = is_transient_error(exc)
                logger.error(
                    f"Unexpected error delivering distribution {job.distribution_id}: {exc}",
                    extra={
                        "event": "delivery.unexpected_error",
                        "error_type": type(exc).__name__,
                        "transient": transient,
                    },
                    exc_info=True,
                )
                self._record_unexpected_failure(job, exc)
                if transient:
                    raise

    def _begin_attempt(self, job: DeliveryJob) -> bool:
        """Idempotency check plus attempt bookkeeping. False means skip the job."""
        with self.session_factory() as session:
            repo = DistributionRepository(session)
            distribution = repo.get(job.distribution_id)

            if distribution is None:
                logger.warning(
                    f"Distribution {job.distribution_id} not found, dropping job",
                    extra={"event": "delivery.missing_record"},
                )
                return False

            if distribution.status.is_delivered:
                logger.info(
                    f"Distribution {job.distribution_id} already {distribution.status.value}, skipping",
                    extra={"event": "delivery.skipped", "status": distribution.status.value},
                )
                return False

            repo.record_attempt(job.distribution_id, self.clock())
            return True

    def _deliver(self, job: DeliveryJob) -> None:
        targets = sorted(self.resolver.resolve(job.agency_id, job.legacy_target))
        if not targets:
            self.coordinator.mark_failed(job.distribution_id, NO_TARGETS_REASON)
            logger.warning(
                f"No reachable targets for agency {job.agency_id}",
                extra={"event": "delivery.no_targets"},
            )
            raise NoReachableTargetsError(job.distribution_id, NO_TARGETS_REASON)

        text = self.renderer.render(job.payload, self._lookup_expiry(job.trip_request_id))
        results = self._fan_out(targets, text, rfq_actions(job.trip_request_id))

        delivered = [r for r in results if r.success]
        if delivered:
            self.coordinator.mark_delivered(job.distribution_id)
            logger.info(
                f"Delivered distribution {job.distribution_id} to {len(delivered)} of {len(results)} targets",
                extra={
                    "event": "delivery.succeeded",
                    "targets_total": len(results),
                    "targets_delivered": len(delivered),
                    "targets_failed": len(results) - len(delivered),
                },
            )
            return

        first_failure = results[0]
        reason = first_failure.reason
        self.coordinator.mark_failed(job.distribution_id, reason)

        if first_failure.transient:
            logger.warning(
                f"All {len(results)} targets failed transiently, leaving retry to the queue",
                extra={"event": "delivery.failed.transient", "reason": reason},
            )
            raise TransientDeliveryError(job.distribution_id, reason)

        logger.error(
            f"All {len(results)} targets failed permanently",
            extra={"event": "delivery.failed.permanent", "reason": reason},
        )
        raise PermanentDeliveryError(job.distribution_id, reason)

    def _lookup_expiry(self, trip_request_id: str) -> Optional[datetime]:
        with self.session_factory() as session:
            return TripRequestRepository(session).get_expiry(trip_request_id)

    def _fan_out(
        self, targets: Sequence[str], text: str, actions: List[MessageAction]
    ) -> List[SendResult]:
        """Send to every target concurrently; results come back in target order."""
        workers = min(len(targets), self.max_fanout_workers)
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="rfq-fanout") as executor:
            futures = [
                # each send gets its own copy of the logging context
                executor.submit(contextvars.copy_context().run, self._send_one, target, text, actions)
                for target in targets
            ]
            return [future.result() for future in futures]

    def _send_one(self, target: str, text: str, actions: List[MessageAction]) -> SendResult:
        try:
            result = self.transport.send(target, text, actions)
        except Exception as exc:
            logger.warning(
                f"Transport raised for target {target}: {exc}",
                extra={"event": "delivery.target.exception", "target": target},
            )
            return SendResult(
                target=target,
                success=False,
                error_code=ERROR_EXCEPTION,
                message=str(exc) or type(exc).__name__,
                transient=is_transient_error(exc),
            )

        if not result.success:
            logger.info(
                f"Send to {target} failed: {result.reason}",
                extra={
                    "event": "delivery.target.failed",
                    "target": target,
                    "transient": result.transient,
                },
            )
        return result

    def _record_unexpected_failure(self, job: DeliveryJob, exc: Exception) -> None:
        """Make sure the record does not stay PENDING after an unexpected error.

        The status guard refuses the write when the record is already
        DELIVERED or later.
        """
        try:
            self.coordinator.mark_failed(job.distribution_id, str(exc) or type(exc).__name__)
        except RecordNotFoundError:
            logger.warning(
                f"Distribution {job.distribution_id} disappeared before its failure was recorded",
                extra={"event": "delivery.missing_record"},
            )
        except PersistenceError as write_error:
            raise TransientDeliveryError(
                job.distribution_id, f"could not record failure: {write_error}"
            ) from exc
