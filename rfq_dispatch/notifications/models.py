"""Data models and exceptions for the message transport and renderer."""

from dataclasses import dataclass
from typing import List, Optional


class NotificationError(Exception):
    """Base exception for notification-related errors."""

    pass


class NotificationTemplateError(NotificationError):
    """Raised when template rendering fails due to configuration or missing variables."""

    pass


# Transport error codes
ERROR_TIMEOUT = "TIMEOUT"
ERROR_CONNECTION_RESET = "CONNECTION_RESET"
ERROR_CONNECTION_REFUSED = "CONNECTION_REFUSED"
ERROR_DNS_FAILURE = "DNS_FAILURE"
ERROR_CONNECTION = "CONNECTION_ERROR"
ERROR_INVALID_TARGET = "INVALID_TARGET"
ERROR_REQUEST = "REQUEST_ERROR"
ERROR_EXCEPTION = "TRANSPORT_EXCEPTION"

TRANSIENT_ERROR_CODES = frozenset(
    {
        ERROR_TIMEOUT,
        ERROR_CONNECTION_RESET,
        ERROR_CONNECTION_REFUSED,
        ERROR_DNS_FAILURE,
        ERROR_CONNECTION,
    }
)

# Lower-cased fragments of error messages that mean "try again later"
TRANSIENT_MESSAGE_MARKERS = (
    "etimedout",
    "econnreset",
    "econnrefused",
    "enotfound",
    "eai_again",
    "timed out",
    "timeout",
    "connection reset",
    "connection refused",
    "too many requests",
    "temporarily unavailable",
)


def is_transient_failure(
    status_code: Optional[int] = None,
    error_code: Optional[str] = None,
    message: Optional[str] = None,
) -> bool:
    """Classify a send failure as retryable.

    Transient: 429, any 5xx, network timeouts, connection resets or refusals,
    DNS failures. Everything else (other 4xx, malformed targets) is permanent.
    """
    if status_code is not None:
        if status_code == 429 or 500 <= status_code <= 599:
            return True
        if 400 <= status_code <= 499:
            return False

    if error_code and error_code.upper() in TRANSIENT_ERROR_CODES:
        return True

    if message:
        lowered = message.lower()
        return any(marker in lowered for marker in TRANSIENT_MESSAGE_MARKERS)

    return False


@dataclass(frozen=True)
class MessageAction:
    """An inline action button attached to a message."""

    label: str
    data: str

    def to_dict(self) -> dict:
        return {"label": self.label, "data": self.data}


def rfq_actions(trip_request_id: str) -> List[MessageAction]:
    """Offer / reject buttons attached to every RFQ message."""
    return [
        MessageAction("📩 Submit Offer", f"rfq:offer:{trip_request_id}"),
        MessageAction("❌ Reject RFQ", f"rfq:reject:{trip_request_id}"),
    ]


@dataclass
class SendResult:
    """Outcome of sending one message to one target.

    Attributes:
        target: Delivery target the message was sent to
        success: Whether the transport accepted the message
        status_code: HTTP-like status code, if the transport produced one
        error_code: Transport error code (see TRANSIENT_ERROR_CODES)
        message: Human-readable failure description
        transient: Whether retrying the send may succeed
    """

    target: str
    success: bool
    status_code: Optional[int] = None
    error_code: Optional[str] = None
    message: Optional[str] = None
    transient: bool = False

    @classmethod
    def delivered(cls, target: str, status_code: Optional[int] = None) -> "SendResult":
        return cls(target=target, success=True, status_code=status_code)

    @classmethod
    def failed(
        cls,
        target: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        message: Optional[str] = None,
    ) -> "SendResult":
        """Build a failed result, classifying it on the way."""
        return cls(
            target=target,
            success=False,
            status_code=status_code,
            error_code=error_code,
            message=message,
            transient=is_transient_failure(status_code, error_code, message),
        )

    @property
    def reason(self) -> str:
        """Failure reason suitable for Distribution.failure_reason."""
        if self.success:
            return ""
        parts = []
        if self.status_code is not None:
            parts.append(str(self.status_code))
        if self.error_code:
            parts.append(self.error_code)
        head = " ".join(parts)
        if self.message:
            return f"{head}: {self.message}" if head else self.message
        return head or "unknown transport failure"
