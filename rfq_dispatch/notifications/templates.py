"""Template rendering for RFQ messages using Jinja2.

Messages are Markdown, so autoescaping is off and every interpolated
user-supplied value goes through the ``md_escape`` filter instead.
"""

import logging
import re
from datetime import datetime
from typing import Any, Dict, Mapping, Optional, Union

from jinja2 import Environment, PackageLoader, StrictUndefined, TemplateError

from rfq_dispatch.distribution.payloads import NotificationPayload
from rfq_dispatch.utils.timestamps import format_calendar_date

from .models import NotificationTemplateError

logger = logging.getLogger(__name__)

_MARKDOWN_SPECIAL = re.compile(r"([_*\[\]()~`>#+\-=|{}.!])")


def md_escape(value: Any) -> str:
    """Backslash-escape Markdown control characters."""
    return _MARKDOWN_SPECIAL.sub(r"\\\1", str(value))


def trip_type_label(value: str) -> str:
    """FLIGHT_ONLY -> "Flight only"."""
    text = value.replace("_", " ").lower()
    return text[:1].upper() + text[1:]


class MessageRenderer:
    """Renders the outbound RFQ message from a stored payload snapshot."""

    def __init__(
        self,
        template_dir: str = "message_templates",
        template_name: str = "rfq_message.txt.j2",
    ):
        self.template_name = template_name

        self.env = Environment(
            loader=PackageLoader("rfq_dispatch.notifications", template_dir),
            autoescape=False,
            undefined=StrictUndefined,
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["md_escape"] = md_escape
        self.env.filters["trip_type_label"] = trip_type_label

    def render(
        self,
        payload: Union[NotificationPayload, Mapping[str, Any]],
        expires_at: Optional[datetime] = None,
    ) -> str:
        """Render the message text.

        Args:
            payload: Payload model or its stored dict snapshot
            expires_at: Request expiry, omitted from the message when None

        Raises:
            NotificationTemplateError: If the payload is invalid or rendering fails
        """
        try:
            if not isinstance(payload, NotificationPayload):
                payload = NotificationPayload.model_validate(dict(payload))

            context: Dict[str, Any] = {
                "payload": payload,
                "expires_on": format_calendar_date(expires_at),
            }
            text = self.env.get_template(self.template_name).render(context)
        except TemplateError as e:
            error_msg = f"Template rendering failed: {e}"
            logger.error(error_msg, exc_info=True)
            raise NotificationTemplateError(error_msg) from e
        except ValueError as e:
            # pydantic.ValidationError is a ValueError
            error_msg = f"Invalid notification payload: {e}"
            logger.error(error_msg)
            raise NotificationTemplateError(error_msg) from e

        logger.debug(f"Rendered RFQ message for request {payload.trip_request_id}")
        return text.strip()
