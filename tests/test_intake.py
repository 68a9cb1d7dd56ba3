"""Unit tests for the request intake poll."""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from rfq_dispatch.config.models import IntakeConfig
from rfq_dispatch.distribution.coordinator import DistributionCoordinator
from rfq_dispatch.distribution.intake import RequestIntake
from rfq_dispatch.distribution.models import DistributionResult
from rfq_dispatch.domain.models import TripRequestStatus
from rfq_dispatch.matching import AgencyMatcher
from rfq_dispatch.persistence import PersistenceError, TripRequestRepository, get_session
from rfq_dispatch.queue import JobQueue
from tests.helpers import make_agency, make_trip_request, seed_agencies, seed_trip_request

NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def job_queue():
    return Mock(spec=JobQueue)


@pytest.fixture
def coordinator(database, job_queue):
    return DistributionCoordinator(AgencyMatcher(), job_queue)


def make_intake(coordinator, **config):
    return RequestIntake(coordinator, IntakeConfig(**config), clock=lambda: NOW)


def load_request(trip_request_id):
    with get_session() as session:
        return TripRequestRepository(session).get(trip_request_id)


class TestRequestIntake:
    def test_open_request_is_distributed(self, coordinator, job_queue):
        seed_agencies(make_agency("dubai", regions=["Dubai"]))
        seed_trip_request()

        assert make_intake(coordinator).run_once() == 1

        jobs = job_queue.enqueue_bulk.call_args.args[0]
        assert [job.agency_id for job in jobs] == ["dubai"]
        assert load_request("req-001").status == TripRequestStatus.DISTRIBUTED

    def test_idle_when_nothing_open(self, coordinator, job_queue):
        assert make_intake(coordinator).run_once() == 0
        job_queue.enqueue_bulk.assert_not_called()

    def test_expired_request_skipped(self, coordinator, job_queue):
        seed_agencies(make_agency("dubai", regions=["Dubai"]))
        seed_trip_request(make_trip_request(expires_at=NOW - timedelta(hours=1)))

        assert make_intake(coordinator).run_once() == 0
        job_queue.enqueue_bulk.assert_not_called()

    def test_unmatched_request_stays_open_and_is_stamped(self, coordinator, job_queue):
        # the only agency is the requester's own channel
        seed_agencies(make_agency("self", broadcast_targets=["traveler-chat"]))
        seed_trip_request()

        assert make_intake(coordinator).run_once() == 0

        assert load_request("req-001").status == TripRequestStatus.OPEN
        job_queue.enqueue_bulk.assert_not_called()

        # a new request is polled ahead of the stamped one
        seed_trip_request(make_trip_request("req-002"))
        with get_session() as session:
            reopened = TripRequestRepository(session).list_open_for_intake(NOW, 10)
        assert [r.id for r in reopened] == ["req-002", "req-001"]

    def test_batch_size_limits_one_run(self, coordinator, job_queue):
        seed_agencies(make_agency("dubai", regions=["Dubai"]))
        for trip_request_id in ("req-001", "req-002", "req-003"):
            seed_trip_request(make_trip_request(trip_request_id))

        intake = make_intake(coordinator, batch_size=2)

        assert intake.run_once() == 2
        assert intake.run_once() == 1
        assert intake.run_once() == 0

    def test_persistence_error_does_not_stop_the_batch(self, database):
        for trip_request_id in ("req-001", "req-002"):
            seed_trip_request(make_trip_request(trip_request_id))
        coordinator = Mock(spec=DistributionCoordinator)
        coordinator.distribute.side_effect = [
            PersistenceError("database is locked"),
            DistributionResult(trip_request_id="req-002", total_matched=1),
        ]

        assert make_intake(coordinator).run_once() == 1
        assert [c.args[0] for c in coordinator.distribute.call_args_list] == ["req-001", "req-002"]
