"""Data models for the agency matching engine."""

from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional


class RejectionReason(str, Enum):
    """Why an approved agency was left out before scoring."""

    MISSING_TARGET = "MISSING_TARGET"
    SELF_DELIVERY = "SELF_DELIVERY"
    NO_ACTIVE_AGENTS = "NO_ACTIVE_AGENTS"


@dataclass
class MatchCriteria:
    """What a trip request asks of an agency.

    Attributes:
        destination: Requested destination, compared against agency regions
        trip_type: Requested trip type, compared against agency specializations
        regions: Extra region names that count as a region match
        exclude_target: Requester's own target; agencies broadcasting to it are skipped
    """

    destination: Optional[str] = None
    trip_type: Optional[str] = None
    regions: List[str] = field(default_factory=list)
    exclude_target: Optional[str] = None


@dataclass
class AgencyMatchResult:
    """A matched agency with its score and the reasons behind it."""

    agency_id: str
    agency_name: str
    targets: List[str]
    score: float
    reasons: List[str] = field(default_factory=list)

    @property
    def primary_target(self) -> Optional[str]:
        """First broadcast target, carried in delivery jobs as the legacy target."""
        return self.targets[0] if self.targets else None


@dataclass
class RejectedAgency:
    agency_id: str
    reason: RejectionReason
    detail: str = ""


@dataclass
class MatchOutcome:
    """Everything one matching run decided, used for the summary log and tests.

    Attributes:
        results: Agencies returned to the caller, best first
        rejected: Agencies left out before scoring
        considered: Number of approved agencies loaded
        eligible: Number of agencies that survived the eligibility filters
        fallback: True when nothing scored and the whole eligible set was returned
    """

    results: List[AgencyMatchResult] = field(default_factory=list)
    rejected: List[RejectedAgency] = field(default_factory=list)
    considered: int = 0
    eligible: int = 0
    fallback: bool = False
