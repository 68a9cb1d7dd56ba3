"""Notification payload builder.

Turns a trip request into the frozen snapshot stored on every Distribution
and rendered later by the delivery worker. The builder is a pure function:
the same request always yields the same payload.
"""

from typing import List, Optional, Tuple

from pydantic import BaseModel, ConfigDict

from rfq_dispatch.domain.models import TripRequest
from rfq_dispatch.utils.timestamps import format_calendar_date

NOT_SPECIFIED = "Not specified"


class NotificationPayload(BaseModel):
    """Immutable, renderable snapshot of a trip request."""

    model_config = ConfigDict(frozen=True)

    trip_request_id: str
    destination: str
    departure_city: str
    departure_date: str
    return_date: Optional[str] = None
    trip_type: Optional[str] = None
    adults: int
    children: int = 0
    children_ages: Tuple[int, ...] = ()
    infants: int = 0
    budget_range: Optional[str] = None
    currency: str
    preferences: Tuple[str, ...] = ()
    notes: Optional[str] = None
    summary_text: str
    language: str

    def to_snapshot(self) -> dict:
        """JSON-compatible dict for storage and queue messages."""
        return self.model_dump(mode="json")


def build_notification_payload(trip_request: TripRequest) -> NotificationPayload:
    """Build the notification payload for a trip request.

    Args:
        trip_request: Trip request to snapshot

    Returns:
        Frozen NotificationPayload
    """
    budget_range = format_budget_range(
        trip_request.budget_min, trip_request.budget_max, trip_request.currency
    )

    return NotificationPayload(
        trip_request_id=trip_request.id,
        destination=trip_request.destination or NOT_SPECIFIED,
        departure_city=trip_request.departure_city,
        departure_date=format_calendar_date(trip_request.departure_date) or NOT_SPECIFIED,
        return_date=format_calendar_date(trip_request.return_date),
        trip_type=trip_request.trip_type,
        adults=trip_request.adults,
        children=trip_request.children,
        children_ages=tuple(trip_request.children_ages),
        infants=trip_request.infants,
        budget_range=budget_range,
        currency=trip_request.currency,
        preferences=tuple(trip_request.preferences),
        notes=trip_request.notes,
        summary_text=_build_summary(trip_request, budget_range),
        language=trip_request.language,
    )


def format_budget_range(
    budget_min: Optional[float], budget_max: Optional[float], currency: str
) -> Optional[str]:
    """Human-readable budget range; a zero bound counts as unset.

    >>> format_budget_range(1000, 2500, "USD")
    '1000-2500 USD'
    >>> format_budget_range(None, 2500, "USD")
    'up to 2500 USD'
    """
    low = _format_amount(budget_min) if budget_min else None
    high = _format_amount(budget_max) if budget_max else None

    if low and high:
        return f"{low}-{high} {currency}"
    if high:
        return f"up to {high} {currency}"
    if low:
        return f"from {low} {currency}"
    return None


def _format_amount(amount: float) -> str:
    if float(amount).is_integer():
        return str(int(amount))
    return f"{amount:.2f}".rstrip("0").rstrip(".")


def describe_travelers(adults: int, children: int, children_ages, infants: int) -> str:
    """e.g. "2 adults, 1 child (ages: 7), 1 infant"."""
    parts: List[str] = [f"{adults} adult{'s' if adults != 1 else ''}"]

    if children > 0:
        ages = f" (ages: {', '.join(str(age) for age in children_ages)})" if children_ages else ""
        parts.append(f"{children} child{'ren' if children > 1 else ''}{ages}")

    if infants > 0:
        parts.append(f"{infants} infant{'s' if infants > 1 else ''}")

    return ", ".join(parts)


def _build_summary(trip_request: TripRequest, budget_range: Optional[str]) -> str:
    lines = [
        "New travel request",
        f"Destination: {trip_request.destination or 'TBD'}",
        f"From: {trip_request.departure_city}",
    ]

    departure = format_calendar_date(trip_request.departure_date)
    if departure:
        returning = format_calendar_date(trip_request.return_date) or "open"
        lines.append(f"Dates: {departure} → {returning}")

    lines.append(
        "Travelers: "
        + describe_travelers(
            trip_request.adults,
            trip_request.children,
            trip_request.children_ages,
            trip_request.infants,
        )
    )

    if trip_request.trip_type:
        lines.append(f"Type: {trip_request.trip_type}")
    if budget_range:
        lines.append(f"Budget: {budget_range}")
    if trip_request.preferences:
        lines.append(f"Preferences: {', '.join(trip_request.preferences)}")
    if trip_request.notes:
        lines.append(f"Notes: {trip_request.notes}")

    return "\n".join(lines)
