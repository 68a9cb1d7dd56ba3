"""Data access layer (repositories) for persistence operations.

Repositories wrap a session, return domain models rather than ORM models and
translate SQLAlchemy failures into the persistence exception hierarchy.
"""

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import func, or_, select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from rfq_dispatch.domain.models import (
    Agency,
    AgencyStatus,
    AgentStatus,
    Distribution,
    DistributionStatus,
    TripRequest,
    TripRequestStatus,
)

from .exceptions import DataIntegrityError, PersistenceError, RecordNotFoundError
from .schema import (
    AgencyModel,
    AgentMembershipModel,
    DistributionModel,
    TripRequestModel,
    _format_datetime,
    _parse_datetime,
)

logger = logging.getLogger(__name__)


def new_record_id() -> str:
    return uuid.uuid4().hex


class TripRequestRepository:
    """Repository for trip request reads and the distributed-status flip."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, trip_request: TripRequest) -> TripRequest:
        """Insert a trip request.

        Raises:
            DataIntegrityError: If a request with the same id exists
            PersistenceError: If database error occurs
        """
        try:
            model = TripRequestModel.from_domain(trip_request)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error adding trip request {trip_request.id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to add trip request: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error adding trip request {trip_request.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to add trip request: {e}") from e

    def get(self, trip_request_id: str) -> Optional[TripRequest]:
        """Retrieve a trip request by id, or None if it doesn't exist.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            model = self.session.get(TripRequestModel, trip_request_id)
            return model.to_domain() if model is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving trip request {trip_request_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve trip request: {e}") from e

    def get_required(self, trip_request_id: str) -> TripRequest:
        """Retrieve a trip request that must exist.

        Raises:
            RecordNotFoundError: If trip_request_id doesn't exist
            PersistenceError: If database error occurs
        """
        trip_request = self.get(trip_request_id)
        if trip_request is None:
            raise RecordNotFoundError(f"Trip request {trip_request_id} not found")
        return trip_request

    def get_expiry(self, trip_request_id: str) -> Optional[datetime]:
        """Expiry timestamp of a request; None if unset or the request is gone."""
        try:
            stmt = select(TripRequestModel.expires_at).where(TripRequestModel.id == trip_request_id)
            value = self.session.execute(stmt).scalar_one_or_none()
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving expiry of trip request {trip_request_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve trip request expiry: {e}") from e

        return _parse_datetime(value)

    def mark_distributed(self, trip_request_id: str) -> None:
        """Flip the request's status to DISTRIBUTED.

        Raises:
            RecordNotFoundError: If trip_request_id doesn't exist
            PersistenceError: If database error occurs
        """
        try:
            stmt = (
                update(TripRequestModel)
                .where(TripRequestModel.id == trip_request_id)
                .values(status=TripRequestStatus.DISTRIBUTED.value)
            )
            result = self.session.execute(stmt)
            self.session.flush()

            if result.rowcount == 0:
                raise RecordNotFoundError(f"Trip request {trip_request_id} not found")

        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error marking trip request {trip_request_id} distributed: {e}", exc_info=True)
            raise PersistenceError(f"Failed to mark trip request distributed: {e}") from e

    def list_open_for_intake(self, now: datetime, limit: int) -> List[TripRequest]:
        """OPEN, unexpired requests for the intake poll.

        Never-checked requests come first, then the least recently checked,
        so a request that matched nobody does not starve new ones.

        Raises:
            PersistenceError: If database error occurs
        """
        now_str = _format_datetime(now)
        try:
            stmt = (
                select(TripRequestModel)
                .where(
                    TripRequestModel.status == TripRequestStatus.OPEN.value,
                    or_(
                        TripRequestModel.expires_at.is_(None),
                        TripRequestModel.expires_at > now_str,
                    ),
                )
                .order_by(
                    TripRequestModel.intake_checked_at.is_not(None),
                    TripRequestModel.intake_checked_at.asc(),
                    TripRequestModel.id.asc(),
                )
                .limit(limit)
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing open trip requests: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list open trip requests: {e}") from e

    def mark_intake_checked(self, trip_request_ids: Sequence[str], timestamp: datetime) -> int:
        """Stamp intake_checked_at on the given requests. Returns the number updated."""
        if not trip_request_ids:
            return 0
        try:
            stmt = (
                update(TripRequestModel)
                .where(TripRequestModel.id.in_(list(trip_request_ids)))
                .values(intake_checked_at=_format_datetime(timestamp))
            )
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error marking trip requests intake-checked: {e}", exc_info=True)
            raise PersistenceError(f"Failed to mark trip requests intake-checked: {e}") from e


class AgencyRepository:
    """Repository for the agency catalog and its agents."""

    def __init__(self, session: Session):
        self.session = session

    def add(self, agency: Agency) -> Agency:
        """Insert an agency together with its memberships.

        Raises:
            DataIntegrityError: If an agency or membership id already exists
            PersistenceError: If database error occurs
        """
        try:
            model = AgencyModel.from_domain(agency)
            self.session.add(model)
            self.session.flush()
            return model.to_domain()
        except IntegrityError as e:
            logger.error(f"Integrity error adding agency {agency.id}: {e}", exc_info=True)
            raise DataIntegrityError(f"Failed to add agency: {e}") from e
        except SQLAlchemyError as e:
            logger.error(f"Error adding agency {agency.id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to add agency: {e}") from e

    def get(self, agency_id: str) -> Optional[Agency]:
        try:
            model = self.session.get(AgencyModel, agency_id)
            return model.to_domain() if model is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving agency {agency_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve agency: {e}") from e

    def list_approved(self, min_rating: float = 0.0) -> List[Agency]:
        """All APPROVED agencies with rating >= min_rating.

        Ordered by rating descending, then id ascending, so equal ratings
        always come back in the same order.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            stmt = (
                select(AgencyModel)
                .where(
                    AgencyModel.status == AgencyStatus.APPROVED.value,
                    AgencyModel.rating >= min_rating,
                )
                .order_by(AgencyModel.rating.desc(), AgencyModel.id.asc())
            )
            models = self.session.execute(stmt).scalars().all()
            return [model.to_domain() for model in models]
        except SQLAlchemyError as e:
            logger.error(f"Error listing approved agencies: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list approved agencies: {e}") from e

    def active_agent_targets(self, agency_id: str) -> List[str]:
        """Delivery targets of the agency's currently ACTIVE agents.

        Agents without a target are skipped.

        Raises:
            PersistenceError: If database error occurs
        """
        try:
            stmt = (
                select(AgentMembershipModel.target)
                .where(
                    AgentMembershipModel.agency_id == agency_id,
                    AgentMembershipModel.status == AgentStatus.ACTIVE.value,
                    AgentMembershipModel.target.is_not(None),
                )
                .order_by(AgentMembershipModel.id.asc())
            )
            return [target for target in self.session.execute(stmt).scalars().all() if target]
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving agent targets for agency {agency_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve agent targets: {e}") from e


class DistributionRepository:
    """Repository for Distribution records."""

    def __init__(self, session: Session):
        self.session = session

    def count_for_request(self, trip_request_id: str) -> int:
        try:
            stmt = select(func.count()).select_from(DistributionModel).where(
                DistributionModel.trip_request_id == trip_request_id
            )
            return int(self.session.execute(stmt).scalar_one())
        except SQLAlchemyError as e:
            logger.error(f"Error counting distributions for {trip_request_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to count distributions: {e}") from e

    def create_many(
        self,
        trip_request_id: str,
        agency_ids: Sequence[str],
        payload: Dict[str, Any],
        created_at: datetime,
    ) -> List[Distribution]:
        """Insert one PENDING Distribution per agency, sharing one payload snapshot.

        Runs inside the caller's session; nothing is committed here.

        Raises:
            DataIntegrityError: If a (request, agency) pair already exists
            PersistenceError: If database error occurs
        """
        created_at_str = _format_datetime(created_at)
        try:
            models = [
                DistributionModel(
                    id=new_record_id(),
                    trip_request_id=trip_request_id,
                    agency_id=agency_id,
                    status=DistributionStatus.PENDING.value,
                    notification_payload=dict(payload),
                    created_at=created_at_str,
                    attempt_count=0,
                )
                for agency_id in agency_ids
            ]
            self.session.add_all(models)
            self.session.flush()
            return [model.to_domain() for model in models]
        except IntegrityError as e:
            logger.error(
                f"Integrity error creating distributions for {trip_request_id}: {e}", exc_info=True
            )
            raise DataIntegrityError(
                f"Failed to create distributions due to constraint violation: {e}"
            ) from e
        except SQLAlchemyError as e:
            logger.error(f"Error creating distributions for {trip_request_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to create distributions: {e}") from e

    def get(self, distribution_id: str) -> Optional[Distribution]:
        try:
            model = self.session.get(DistributionModel, distribution_id)
            return model.to_domain() if model is not None else None
        except SQLAlchemyError as e:
            logger.error(f"Error retrieving distribution {distribution_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to retrieve distribution: {e}") from e

    def list_for_request(self, trip_request_id: str) -> List[Distribution]:
        try:
            stmt = (
                select(DistributionModel)
                .where(DistributionModel.trip_request_id == trip_request_id)
                .order_by(DistributionModel.created_at.asc(), DistributionModel.id.asc())
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error listing distributions for {trip_request_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to list distributions: {e}") from e

    def update_status(
        self,
        distribution_id: str,
        status: DistributionStatus,
        timestamp: datetime,
        failure_reason: Optional[str] = None,
    ) -> bool:
        """Write a status if the transition table allows it.

        The guard is part of the UPDATE statement itself, so concurrent writers
        cannot move a record backwards.

        Returns:
            True if the row was updated, False if the transition was refused

        Raises:
            RecordNotFoundError: If distribution_id doesn't exist
            PersistenceError: If database error occurs
        """
        allowed_from = [s.value for s in DistributionStatus if s.can_transition_to(status)]
        ts = _format_datetime(timestamp)

        values: Dict[str, Any] = {"status": status.value}
        if status == DistributionStatus.DELIVERED:
            values.update(delivered_at=ts, failure_reason=None)
        elif status == DistributionStatus.FAILED:
            values["failure_reason"] = failure_reason
        elif status == DistributionStatus.VIEWED:
            values["viewed_at"] = ts
        elif status == DistributionStatus.RESPONDED:
            values["responded_at"] = ts

        try:
            stmt = (
                update(DistributionModel)
                .where(
                    DistributionModel.id == distribution_id,
                    DistributionModel.status.in_(allowed_from),
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            result = self.session.execute(stmt)
            self.session.flush()

            if result.rowcount > 0:
                return True

            if self.session.get(DistributionModel, distribution_id) is None:
                raise RecordNotFoundError(f"Distribution {distribution_id} not found")
            return False

        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(
                f"Error updating distribution {distribution_id} to {status.value}: {e}",
                exc_info=True,
            )
            raise PersistenceError(f"Failed to update distribution status: {e}") from e

    def record_attempt(self, distribution_id: str, timestamp: datetime) -> None:
        """Increment attempt_count and stamp last_attempted_at.

        Raises:
            RecordNotFoundError: If distribution_id doesn't exist
            PersistenceError: If database error occurs
        """
        try:
            stmt = (
                update(DistributionModel)
                .where(DistributionModel.id == distribution_id)
                .values(
                    attempt_count=DistributionModel.attempt_count + 1,
                    last_attempted_at=_format_datetime(timestamp),
                )
                .execution_options(synchronize_session=False)
            )
            result = self.session.execute(stmt)
            self.session.flush()

            if result.rowcount == 0:
                raise RecordNotFoundError(f"Distribution {distribution_id} not found")

        except RecordNotFoundError:
            raise
        except SQLAlchemyError as e:
            logger.error(f"Error recording attempt for {distribution_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to record delivery attempt: {e}") from e

    def status_counts(self, trip_request_id: str) -> Dict[DistributionStatus, int]:
        """Number of distributions per status for one request (absent statuses omitted)."""
        try:
            stmt = (
                select(DistributionModel.status, func.count())
                .where(DistributionModel.trip_request_id == trip_request_id)
                .group_by(DistributionModel.status)
            )
            return {
                DistributionStatus(status): int(count)
                for status, count in self.session.execute(stmt).all()
            }
        except SQLAlchemyError as e:
            logger.error(f"Error computing stats for {trip_request_id}: {e}", exc_info=True)
            raise PersistenceError(f"Failed to compute distribution stats: {e}") from e

    def find_stale_pending(self, cutoff: datetime, limit: int) -> List[Distribution]:
        """PENDING records created before cutoff that no worker has picked up.

        Records requeued after cutoff are skipped so a slow queue is not
        flooded with duplicates.

        Returns:
            Distributions ordered by created_at ASC, at most ``limit``

        Raises:
            PersistenceError: If database error occurs
        """
        cutoff_str = _format_datetime(cutoff)
        try:
            stmt = (
                select(DistributionModel)
                .where(
                    DistributionModel.status == DistributionStatus.PENDING.value,
                    DistributionModel.created_at < cutoff_str,
                    DistributionModel.last_attempted_at.is_(None),
                    or_(
                        DistributionModel.requeued_at.is_(None),
                        DistributionModel.requeued_at < cutoff_str,
                    ),
                )
                .order_by(DistributionModel.created_at.asc(), DistributionModel.id.asc())
                .limit(limit)
            )
            return [model.to_domain() for model in self.session.execute(stmt).scalars().all()]
        except SQLAlchemyError as e:
            logger.error(f"Error finding stale pending distributions: {e}", exc_info=True)
            raise PersistenceError(f"Failed to find stale pending distributions: {e}") from e

    def mark_requeued(self, distribution_ids: Sequence[str], timestamp: datetime) -> int:
        """Stamp requeued_at on the given records. Returns the number updated."""
        if not distribution_ids:
            return 0
        try:
            stmt = (
                update(DistributionModel)
                .where(DistributionModel.id.in_(list(distribution_ids)))
                .values(requeued_at=_format_datetime(timestamp))
                .execution_options(synchronize_session=False)
            )
            result = self.session.execute(stmt)
            self.session.flush()
            return result.rowcount
        except SQLAlchemyError as e:
            logger.error(f"Error marking distributions requeued: {e}", exc_info=True)
            raise PersistenceError(f"Failed to mark distributions requeued: {e}") from e
