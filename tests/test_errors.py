"""Unit tests for delivery error classification."""

import socket
from unittest.mock import Mock

import pytest
import requests

from rfq_dispatch.distribution.errors import (
    DeliveryError,
    DistributionError,
    NoReachableTargetsError,
    PermanentDeliveryError,
    TransientDeliveryError,
    is_transient_error,
)
from rfq_dispatch.persistence import (
    DatabaseConnectionError,
    DataIntegrityError,
    PersistenceError,
    RecordNotFoundError,
)


def http_error(status_code):
    response = Mock(status_code=status_code)
    return requests.exceptions.HTTPError(f"{status_code} error", response=response)


class TestHierarchy:
    def test_delivery_errors_carry_id_and_reason(self):
        error = TransientDeliveryError("dist-1", "503 Service Unavailable")

        assert isinstance(error, DeliveryError)
        assert isinstance(error, DistributionError)
        assert error.distribution_id == "dist-1"
        assert error.reason == "503 Service Unavailable"
        assert "dist-1" in str(error)


class TestIsTransientError:
    """Tests for is_transient_error."""

    @pytest.mark.parametrize(
        "error",
        [
            TransientDeliveryError("d", "timeout"),
            requests.exceptions.Timeout("read timed out"),
            requests.exceptions.ConnectionError("connection reset by peer"),
            TimeoutError(),
            ConnectionRefusedError(),
            socket.gaierror("Name or service not known"),
            DatabaseConnectionError("database is locked"),
            PersistenceError("disk I/O error"),
            http_error(429),
            http_error(502),
            RuntimeError("ETIMEDOUT while sending"),
        ],
    )
    def test_transient(self, error):
        assert is_transient_error(error) is True

    @pytest.mark.parametrize(
        "error",
        [
            PermanentDeliveryError("d", "403"),
            NoReachableTargetsError("d", "no targets"),
            RecordNotFoundError("gone"),
            DataIntegrityError("duplicate"),
            http_error(400),
            http_error(403),
            ValueError("bad payload"),
            KeyError("destination"),
        ],
    )
    def test_permanent(self, error):
        assert is_transient_error(error) is False
