"""Database schema definition and ORM models.

SQLAlchemy ORM models for trip requests, agencies, agent memberships and
distributions, with conversions to and from the pydantic domain models.
Timestamps are stored as fixed-width ISO 8601 strings so they sort and
compare lexicographically.
"""

import logging
from datetime import date, datetime
from typing import Optional

from sqlalchemy import (
    JSON,
    Column,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    inspect,
)
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, relationship

from rfq_dispatch.domain.models import (
    Agency,
    AgentMembership,
    Distribution,
    TripRequest,
)
from rfq_dispatch.utils.timestamps import ensure_utc

logger = logging.getLogger(__name__)

Base = declarative_base()


class TripRequestModel(Base):
    """ORM model for trip_requests table.

    Owned by the request intake flow; this service reads it and flips status.
    """

    __tablename__ = "trip_requests"

    id = Column(String(64), primary_key=True, nullable=False)
    user_id = Column(String(64), nullable=False)

    destination = Column(String(255), nullable=True)
    departure_city = Column(String(255), nullable=False)
    # Calendar dates stored as YYYY-MM-DD
    departure_date = Column(String(10), nullable=True)
    return_date = Column(String(10), nullable=True)
    trip_type = Column(String(50), nullable=True)

    adults = Column(Integer, nullable=False, default=1)
    children = Column(Integer, nullable=False, default=0)
    children_ages = Column(JSON, nullable=False, default=list)
    infants = Column(Integer, nullable=False, default=0)

    budget_min = Column(Float, nullable=True)
    budget_max = Column(Float, nullable=True)
    currency = Column(String(8), nullable=False)

    preferences = Column(JSON, nullable=False, default=list)
    notes = Column(Text, nullable=True)
    language = Column(String(8), nullable=False)

    status = Column(String(20), nullable=False)
    expires_at = Column(String(50), nullable=True)
    requester_target = Column(String(255), nullable=True)
    # Last time the intake poll looked at this request without distributing it
    intake_checked_at = Column(String(50), nullable=True)

    __table_args__ = (Index("idx_trip_requests_status", "status"),)

    def to_domain(self) -> TripRequest:
        return TripRequest(
            id=self.id,
            user_id=self.user_id,
            destination=self.destination,
            departure_city=self.departure_city,
            departure_date=_parse_date(self.departure_date),
            return_date=_parse_date(self.return_date),
            trip_type=self.trip_type,
            adults=self.adults,
            children=self.children,
            children_ages=list(self.children_ages or []),
            infants=self.infants,
            budget_min=self.budget_min,
            budget_max=self.budget_max,
            currency=self.currency,
            preferences=list(self.preferences or []),
            notes=self.notes,
            language=self.language,
            status=self.status,
            expires_at=_parse_datetime(self.expires_at),
            requester_target=self.requester_target,
        )

    @classmethod
    def from_domain(cls, trip_request: TripRequest) -> "TripRequestModel":
        return cls(
            id=trip_request.id,
            user_id=trip_request.user_id,
            destination=trip_request.destination,
            departure_city=trip_request.departure_city,
            departure_date=_format_date(trip_request.departure_date),
            return_date=_format_date(trip_request.return_date),
            trip_type=trip_request.trip_type,
            adults=trip_request.adults,
            children=trip_request.children,
            children_ages=list(trip_request.children_ages),
            infants=trip_request.infants,
            budget_min=trip_request.budget_min,
            budget_max=trip_request.budget_max,
            currency=trip_request.currency,
            preferences=list(trip_request.preferences),
            notes=trip_request.notes,
            language=trip_request.language,
            status=trip_request.status.value,
            expires_at=_format_datetime(trip_request.expires_at),
            requester_target=trip_request.requester_target,
        )


class AgencyModel(Base):
    """ORM model for agencies table (read-only catalog for this service)."""

    __tablename__ = "agencies"

    id = Column(String(64), primary_key=True, nullable=False)
    name = Column(String(255), nullable=False)
    status = Column(String(20), nullable=False)
    regions = Column(JSON, nullable=False, default=list)
    specializations = Column(JSON, nullable=False, default=list)
    rating = Column(Float, nullable=False, default=0.0)
    broadcast_targets = Column(JSON, nullable=False, default=list)

    memberships = relationship(
        "AgentMembershipModel",
        back_populates="agency",
        lazy="selectin",
        cascade="all, delete-orphan",
    )

    __table_args__ = (Index("idx_agencies_status_rating", "status", "rating"),)

    def to_domain(self) -> Agency:
        return Agency(
            id=self.id,
            name=self.name,
            status=self.status,
            regions=list(self.regions or []),
            specializations=list(self.specializations or []),
            rating=self.rating,
            broadcast_targets=list(self.broadcast_targets or []),
            memberships=[m.to_domain() for m in self.memberships],
        )

    @classmethod
    def from_domain(cls, agency: Agency) -> "AgencyModel":
        return cls(
            id=agency.id,
            name=agency.name,
            status=agency.status.value,
            regions=list(agency.regions),
            specializations=list(agency.specializations),
            rating=agency.rating,
            broadcast_targets=list(agency.broadcast_targets),
            memberships=[AgentMembershipModel.from_domain(m) for m in agency.memberships],
        )


class AgentMembershipModel(Base):
    """ORM model for agent_memberships table."""

    __tablename__ = "agent_memberships"

    id = Column(String(64), primary_key=True, nullable=False)
    agency_id = Column(String(64), ForeignKey("agencies.id"), nullable=False)
    status = Column(String(20), nullable=False)
    target = Column(String(255), nullable=True)

    agency = relationship("AgencyModel", back_populates="memberships")

    __table_args__ = (Index("idx_agent_memberships_agency", "agency_id", "status"),)

    def to_domain(self) -> AgentMembership:
        return AgentMembership(
            id=self.id,
            agency_id=self.agency_id,
            status=self.status,
            target=self.target,
        )

    @classmethod
    def from_domain(cls, membership: AgentMembership) -> "AgentMembershipModel":
        return cls(
            id=membership.id,
            agency_id=membership.agency_id,
            status=membership.status.value,
            target=membership.target,
        )


class DistributionModel(Base):
    """ORM model for distributions table.

    One row per (trip request, agency) pair, enforced by a unique constraint.
    """

    __tablename__ = "distributions"

    id = Column(String(64), primary_key=True, nullable=False)
    trip_request_id = Column(String(64), ForeignKey("trip_requests.id"), nullable=False)
    agency_id = Column(String(64), ForeignKey("agencies.id"), nullable=False)

    status = Column(String(20), nullable=False)
    notification_payload = Column(JSON, nullable=False)

    # Lifecycle timestamps (ISO 8601 strings)
    created_at = Column(String(50), nullable=False)
    delivered_at = Column(String(50), nullable=True)
    viewed_at = Column(String(50), nullable=True)
    responded_at = Column(String(50), nullable=True)
    failure_reason = Column(Text, nullable=True)

    # Reconciliation bookkeeping
    attempt_count = Column(Integer, nullable=False, default=0)
    last_attempted_at = Column(String(50), nullable=True)
    requeued_at = Column(String(50), nullable=True)

    __table_args__ = (
        UniqueConstraint("trip_request_id", "agency_id", name="uq_distributions_request_agency"),
        Index("idx_distributions_request", "trip_request_id"),
        Index("idx_distributions_status_created", "status", "created_at"),
    )

    def to_domain(self) -> Distribution:
        return Distribution(
            id=self.id,
            trip_request_id=self.trip_request_id,
            agency_id=self.agency_id,
            status=self.status,
            notification_payload=dict(self.notification_payload or {}),
            created_at=_parse_datetime(self.created_at),
            delivered_at=_parse_datetime(self.delivered_at),
            viewed_at=_parse_datetime(self.viewed_at),
            responded_at=_parse_datetime(self.responded_at),
            failure_reason=self.failure_reason,
            attempt_count=self.attempt_count or 0,
            last_attempted_at=_parse_datetime(self.last_attempted_at),
            requeued_at=_parse_datetime(self.requeued_at),
        )


def _format_datetime(dt: Optional[datetime]) -> Optional[str]:
    """Format a datetime as a fixed-width UTC ISO 8601 string for storage."""
    dt = ensure_utc(dt)
    if dt is None:
        return None
    return dt.strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def _parse_datetime(dt_str: Optional[str]) -> Optional[datetime]:
    """Parse a stored ISO 8601 string back into an aware UTC datetime."""
    if not dt_str:
        return None

    dt_str = dt_str.rstrip("Z")
    try:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S.%f")
    except ValueError:
        dt = datetime.strptime(dt_str, "%Y-%m-%dT%H:%M:%S")

    return ensure_utc(dt)


def _format_date(value: Optional[date]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_date(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


def create_schema(engine: Engine) -> None:
    """Create all tables and indexes if they don't exist (idempotent)."""
    logger.info("Creating database schema if not exists")

    try:
        Base.metadata.create_all(engine, checkfirst=True)
        tables = inspect(engine).get_table_names()
        logger.info(f"Database schema ready. Tables: {', '.join(tables)}")
    except Exception as e:
        logger.error(f"Failed to create database schema: {e}", exc_info=True)
        raise
