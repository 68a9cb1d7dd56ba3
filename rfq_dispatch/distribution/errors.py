"""Delivery error hierarchy and transient/permanent classification.

Transient failures are retried by the job queue; permanent ones leave the
Distribution FAILED for good.
"""

import socket
from typing import Optional

import requests

from rfq_dispatch.notifications.models import is_transient_failure
from rfq_dispatch.persistence.exceptions import (
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
)


class DistributionError(Exception):
    """Base exception for the distribution pipeline."""

    pass


class DeliveryError(DistributionError):
    """A delivery attempt for one Distribution failed.

    Attributes:
        distribution_id: Distribution the attempt was for
        reason: Failure reason written to the record
    """

    def __init__(self, distribution_id: str, reason: str):
        super().__init__(f"Delivery of distribution {distribution_id} failed: {reason}")
        self.distribution_id = distribution_id
        self.reason = reason


class TransientDeliveryError(DeliveryError):
    """Every target failed with a retryable error; the queue should retry the job."""

    pass


class PermanentDeliveryError(DeliveryError):
    """Every target failed and retrying will not help."""

    pass


class NoReachableTargetsError(DeliveryError):
    """The agency has no delivery target right now."""

    pass


def is_transient_error(error: BaseException) -> bool:
    """Whether an exception raised on the delivery path is worth retrying.

    Transient: TransientDeliveryError, network timeouts, connection resets or
    refusals, DNS failures, HTTP 429/5xx and store connectivity failures.
    Everything else, including missing records and constraint violations, is
    permanent.
    """
    if isinstance(error, TransientDeliveryError):
        return True
    if isinstance(error, DeliveryError):
        return False

    if isinstance(error, (RecordNotFoundError, DataIntegrityError)):
        return False
    if isinstance(error, PersistenceError):
        return True

    if isinstance(error, requests.exceptions.HTTPError):
        return is_transient_failure(status_code=_status_code(error), message=str(error))
    if isinstance(error, (requests.exceptions.Timeout, requests.exceptions.ConnectionError)):
        return True

    if isinstance(error, (TimeoutError, ConnectionError, socket.gaierror)):
        return True

    return is_transient_failure(message=str(error))


def _status_code(error: requests.exceptions.HTTPError) -> Optional[int]:
    response = getattr(error, "response", None)
    return response.status_code if response is not None else None
