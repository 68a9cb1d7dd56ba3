"""Outbound messaging: transport port, HTTP adapter and message renderer."""

from .models import (
    MessageAction,
    NotificationError,
    NotificationTemplateError,
    SendResult,
    is_transient_failure,
    rfq_actions,
)
from .templates import MessageRenderer, md_escape, trip_type_label
from .transport import HttpMessageTransport, MessageTransport

__all__ = [
    "MessageAction",
    "NotificationError",
    "NotificationTemplateError",
    "SendResult",
    "is_transient_failure",
    "rfq_actions",
    "MessageRenderer",
    "md_escape",
    "trip_type_label",
    "HttpMessageTransport",
    "MessageTransport",
]
