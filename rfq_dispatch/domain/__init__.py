"""Domain models for the RFQ distribution core."""

from .models import (
    Agency,
    AgencyStatus,
    AgentMembership,
    AgentStatus,
    Distribution,
    DistributionStatus,
    TripRequest,
    TripRequestStatus,
)

__all__ = [
    "Agency",
    "AgencyStatus",
    "AgentMembership",
    "AgentStatus",
    "Distribution",
    "DistributionStatus",
    "TripRequest",
    "TripRequestStatus",
]
