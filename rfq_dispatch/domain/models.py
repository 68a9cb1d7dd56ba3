"""Core domain models for trip requests, agencies and distributions.

This module defines the data structures shared by every layer:
- TripRequest: a traveler's request for quote (read-only here except the status flip)
- Agency / AgentMembership: the agency catalog and its agents' delivery targets
- Distribution: the per-(request, agency) delivery-tracking record
- DistributionStatus: the closed status set and its allowed transitions
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Optional

from pydantic import BaseModel, Field, field_validator

from rfq_dispatch.utils.timestamps import ensure_utc


class TripRequestStatus(str, Enum):
    """Lifecycle marker of a trip request as far as distribution is concerned."""

    OPEN = "OPEN"
    DISTRIBUTED = "DISTRIBUTED"
    CLOSED = "CLOSED"
    EXPIRED = "EXPIRED"


class AgencyStatus(str, Enum):
    """Approval status of an agency."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    SUSPENDED = "SUSPENDED"


class AgentStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"


class DistributionStatus(str, Enum):
    """Delivery status of a Distribution.

    Status only moves forward along PENDING -> DELIVERED -> VIEWED -> RESPONDED
    or PENDING -> FAILED. A FAILED record may still become DELIVERED when the
    queue re-executes its job.
    """

    PENDING = "PENDING"
    DELIVERED = "DELIVERED"
    FAILED = "FAILED"
    VIEWED = "VIEWED"
    RESPONDED = "RESPONDED"

    def can_transition_to(self, target: "DistributionStatus") -> bool:
        """Whether a write of ``target`` is allowed from this status.

        Self-transitions listed in the table are timestamp refreshes.
        """
        return target in _ALLOWED_TRANSITIONS[self]

    @property
    def is_delivered(self) -> bool:
        """True for DELIVERED and every status that can only follow it."""
        return self in _DELIVERED_STATES


_ALLOWED_TRANSITIONS: Dict[DistributionStatus, FrozenSet[DistributionStatus]] = {
    DistributionStatus.PENDING: frozenset(
        {DistributionStatus.DELIVERED, DistributionStatus.FAILED}
    ),
    DistributionStatus.DELIVERED: frozenset(
        {DistributionStatus.DELIVERED, DistributionStatus.VIEWED, DistributionStatus.RESPONDED}
    ),
    DistributionStatus.VIEWED: frozenset(
        {DistributionStatus.VIEWED, DistributionStatus.RESPONDED}
    ),
    # first response time is kept
    DistributionStatus.RESPONDED: frozenset(),
    DistributionStatus.FAILED: frozenset(
        {DistributionStatus.FAILED, DistributionStatus.DELIVERED}
    ),
}

_DELIVERED_STATES = frozenset(
    {DistributionStatus.DELIVERED, DistributionStatus.VIEWED, DistributionStatus.RESPONDED}
)


def _strip_tags(values: List[str]) -> List[str]:
    """Drop blank entries and surrounding whitespace, keeping order."""
    cleaned = []
    for value in values:
        stripped = value.strip()
        if stripped:
            cleaned.append(stripped)
    return cleaned


class TripRequest(BaseModel):
    """A traveler's request for quote."""

    id: str = Field(..., min_length=1)
    user_id: str = Field(..., min_length=1, description="Owning traveler")
    destination: Optional[str] = None
    departure_city: str = Field(..., description="City of departure")
    departure_date: Optional[date] = None
    return_date: Optional[date] = None
    trip_type: Optional[str] = Field(None, description="e.g. PACKAGE, FLIGHT_ONLY")
    adults: int = Field(1, ge=0)
    children: int = Field(0, ge=0)
    children_ages: List[int] = Field(default_factory=list)
    infants: int = Field(0, ge=0)
    budget_min: Optional[float] = Field(None, ge=0)
    budget_max: Optional[float] = Field(None, ge=0)
    currency: str = "USD"
    preferences: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    language: str = "en"
    status: TripRequestStatus = TripRequestStatus.OPEN
    expires_at: Optional[datetime] = None
    requester_target: Optional[str] = Field(
        None, description="The traveler's own delivery target"
    )

    @field_validator("destination", "trip_type", "notes", "requester_target")
    @classmethod
    def blank_to_none(cls, v: Optional[str]) -> Optional[str]:
        """Treat blank optional strings as absent."""
        if v is None:
            return None
        stripped = v.strip()
        return stripped if stripped else None

    @field_validator("expires_at")
    @classmethod
    def expires_at_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)


class AgentMembership(BaseModel):
    """An agent working for an agency, optionally reachable at a target."""

    id: str
    agency_id: str
    status: AgentStatus = AgentStatus.ACTIVE
    target: Optional[str] = None


class Agency(BaseModel):
    """A travel agency that can receive RFQs."""

    id: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    status: AgencyStatus = AgencyStatus.PENDING
    regions: List[str] = Field(default_factory=list)
    specializations: List[str] = Field(default_factory=list)
    rating: float = Field(0.0, ge=0.0, le=5.0)
    broadcast_targets: List[str] = Field(
        default_factory=list, description="Shared channels for the whole agency"
    )
    memberships: List[AgentMembership] = Field(default_factory=list)

    @field_validator("regions", "specializations", "broadcast_targets")
    @classmethod
    def clean_tags(cls, v: List[str]) -> List[str]:
        return _strip_tags(v)

    def active_agent_targets(self) -> List[str]:
        """Targets of ACTIVE agents that have one configured."""
        targets = []
        for membership in self.memberships:
            if membership.status != AgentStatus.ACTIVE:
                continue
            if membership.target and membership.target.strip():
                targets.append(membership.target.strip())
        return targets

    def has_active_agents(self) -> bool:
        return any(m.status == AgentStatus.ACTIVE for m in self.memberships)


class Distribution(BaseModel):
    """Per-(trip request, agency) delivery-tracking record."""

    id: str
    trip_request_id: str
    agency_id: str
    status: DistributionStatus = DistributionStatus.PENDING
    notification_payload: Dict[str, Any] = Field(
        default_factory=dict, description="Frozen payload snapshot taken at distribution time"
    )
    created_at: datetime
    delivered_at: Optional[datetime] = None
    viewed_at: Optional[datetime] = None
    responded_at: Optional[datetime] = None
    failure_reason: Optional[str] = None
    attempt_count: int = Field(0, ge=0)
    last_attempted_at: Optional[datetime] = None
    requeued_at: Optional[datetime] = None

    @field_validator(
        "created_at",
        "delivered_at",
        "viewed_at",
        "responded_at",
        "last_attempted_at",
        "requeued_at",
    )
    @classmethod
    def timestamps_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(v)
