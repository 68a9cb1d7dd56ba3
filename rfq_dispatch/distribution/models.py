"""Data models exchanged by the coordinator, the job queue and the worker."""

from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class DeliveryJob:
    """Queue message: deliver one Distribution to one agency.

    Attributes:
        distribution_id: Distribution record to deliver
        trip_request_id: Request the distribution belongs to
        agency_id: Recipient agency
        legacy_target: Single target captured at distribution time, may be None
        payload: Stored notification payload snapshot
    """

    distribution_id: str
    trip_request_id: str
    agency_id: str
    legacy_target: Optional[str] = None
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DeliveryJob":
        return cls(
            distribution_id=data["distribution_id"],
            trip_request_id=data["trip_request_id"],
            agency_id=data["agency_id"],
            legacy_target=data.get("legacy_target"),
            payload=dict(data.get("payload") or {}),
        )


@dataclass
class DistributionResult:
    """What a distribute() call did. Empty when nothing was distributed."""

    trip_request_id: str
    total_matched: int = 0
    distribution_ids: List[str] = field(default_factory=list)
    agency_ids: List[str] = field(default_factory=list)

    @classmethod
    def empty(cls, trip_request_id: str) -> "DistributionResult":
        return cls(trip_request_id=trip_request_id)

    @property
    def is_empty(self) -> bool:
        return self.total_matched == 0


@dataclass
class DistributionStats:
    """Distribution counts per status for one trip request."""

    total: int = 0
    pending: int = 0
    delivered: int = 0
    failed: int = 0
    viewed: int = 0
    responded: int = 0
