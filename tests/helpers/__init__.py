"""Test helper utilities for RFQ distribution tests."""

from .factories import (
    load_fixture_agencies,
    make_agency,
    make_trip_request,
    seed_agencies,
    seed_trip_request,
)
from .fake_transport import RecordingTransport

__all__ = [
    "load_fixture_agencies",
    "make_agency",
    "make_trip_request",
    "seed_agencies",
    "seed_trip_request",
    "RecordingTransport",
]
