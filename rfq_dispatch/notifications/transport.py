"""Message transport: sends rendered RFQ messages to delivery targets.

``MessageTransport`` is the port the delivery worker depends on.
``HttpMessageTransport`` posts messages to a messaging gateway over HTTP.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Sequence

import requests

from rfq_dispatch.logging import get_logger

from .models import (
    ERROR_CONNECTION,
    ERROR_CONNECTION_REFUSED,
    ERROR_CONNECTION_RESET,
    ERROR_DNS_FAILURE,
    ERROR_INVALID_TARGET,
    ERROR_REQUEST,
    ERROR_TIMEOUT,
    MessageAction,
    SendResult,
)

logger = get_logger(__name__, component="transport")


class MessageTransport(ABC):
    """Sends one rendered message to one target."""

    @abstractmethod
    def send(self, target: str, text: str, actions: Sequence[MessageAction] = ()) -> SendResult:
        """Send a message.

        Implementations report failures through the returned SendResult;
        raising is tolerated but turned into a failed result by the caller.
        """

    def close(self) -> None:
        """Release transport resources."""


class HttpMessageTransport(MessageTransport):
    """Transport that POSTs messages as JSON to ``{base_url}/messages``.

    Request body::

        {"target": "...", "text": "...", "parse_mode": "Markdown",
         "actions": [{"label": "...", "data": "..."}]}

    Any 2xx response counts as delivered. Error responses may carry
    ``error_code`` and ``description`` fields in a JSON body.
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        timeout: int = 10,
        user_agent: str = "RfqDispatch/1.0",
        session: Optional[requests.Session] = None,
    ):
        self.endpoint = f"{base_url.rstrip('/')}/messages"
        self.timeout = timeout

        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": user_agent})
        if token:
            self._session.headers.update({"Authorization": f"Bearer {token}"})

    def send(self, target: str, text: str, actions: Sequence[MessageAction] = ()) -> SendResult:
        if not target or not target.strip():
            return SendResult.failed(
                target or "", error_code=ERROR_INVALID_TARGET, message="blank delivery target"
            )

        body = {
            "target": target.strip(),
            "text": text,
            "parse_mode": "Markdown",
            "actions": [action.to_dict() for action in actions],
        }

        try:
            response = self._session.post(self.endpoint, json=body, timeout=self.timeout)
        except requests.exceptions.Timeout as e:
            return self._network_failure(target, ERROR_TIMEOUT, e)
        except requests.exceptions.ConnectionError as e:
            return self._network_failure(target, _connection_error_code(e), e)
        except requests.exceptions.RequestException as e:
            return self._network_failure(target, ERROR_REQUEST, e)

        if 200 <= response.status_code < 300:
            logger.debug(
                f"Message accepted for {target}",
                extra={"event": "transport.send.succeeded", "target": target},
            )
            return SendResult.delivered(target, status_code=response.status_code)

        details = _error_details(response)
        result = SendResult.failed(
            target,
            status_code=response.status_code,
            error_code=details.get("error_code"),
            message=details.get("description") or response.reason,
        )
        logger.warning(
            f"Gateway rejected message for {target}: HTTP {response.status_code}",
            extra={
                "event": "transport.send.rejected",
                "target": target,
                "status_code": response.status_code,
                "transient": result.transient,
            },
        )
        return result

    def close(self) -> None:
        self._session.close()

    @staticmethod
    def _network_failure(target: str, error_code: str, error: Exception) -> SendResult:
        logger.warning(
            f"Network error sending to {target}: {error}",
            extra={"event": "transport.send.network_error", "target": target, "error_code": error_code},
        )
        return SendResult.failed(target, error_code=error_code, message=str(error))


def _connection_error_code(error: requests.exceptions.ConnectionError) -> str:
    text = str(error).lower()
    if "name or service not known" in text or "nameresolution" in text or "getaddrinfo" in text:
        return ERROR_DNS_FAILURE
    if "refused" in text:
        return ERROR_CONNECTION_REFUSED
    if "reset" in text:
        return ERROR_CONNECTION_RESET
    return ERROR_CONNECTION


def _error_details(response: requests.Response) -> Dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    if not isinstance(data, dict):
        return {}
    details = {}
    code = data.get("error_code", data.get("code"))
    if code is not None:
        details["error_code"] = str(code)
    description = data.get("description", data.get("message"))
    if description:
        details["description"] = str(description)
    return details
