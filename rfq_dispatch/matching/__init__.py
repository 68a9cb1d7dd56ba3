"""Agency matching: eligibility filters and scoring for trip requests."""

from .engine import AgencyMatcher, normalize_tag
from .models import (
    AgencyMatchResult,
    MatchCriteria,
    MatchOutcome,
    RejectedAgency,
    RejectionReason,
)

__all__ = [
    "AgencyMatcher",
    "normalize_tag",
    "AgencyMatchResult",
    "MatchCriteria",
    "MatchOutcome",
    "RejectedAgency",
    "RejectionReason",
]
