"""Unit tests for the reconciliation sweep."""

from datetime import datetime, timedelta, timezone
from unittest.mock import Mock

import pytest

from rfq_dispatch.config.models import ReconciliationConfig
from rfq_dispatch.distribution.reconciliation import ReconciliationSweep
from rfq_dispatch.persistence import DistributionRepository, get_session
from rfq_dispatch.queue import JobQueue
from tests.helpers import make_agency, seed_agencies, seed_trip_request

CREATED = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)
PAYLOAD = {"trip_request_id": "req-001", "destination": "Dubai"}


@pytest.fixture
def job_queue():
    return Mock(spec=JobQueue)


@pytest.fixture
def distributions(database):
    seed_trip_request()
    seed_agencies(make_agency("a"), make_agency("b"))
    with get_session() as session:
        return DistributionRepository(session).create_many("req-001", ["a", "b"], PAYLOAD, CREATED)


def make_sweep(job_queue, now, **config):
    return ReconciliationSweep(
        job_queue, ReconciliationConfig(pending_threshold="10m", **config), clock=lambda: now
    )


class TestReconciliationSweep:
    def test_requeues_stale_pending(self, job_queue, distributions):
        sweep = make_sweep(job_queue, CREATED + timedelta(minutes=15))

        assert sweep.run_once() == 2

        jobs = job_queue.enqueue_bulk.call_args.args[0]
        assert {job.distribution_id for job in jobs} == {d.id for d in distributions}
        assert all(job.legacy_target is None for job in jobs)
        assert all(job.payload == PAYLOAD for job in jobs)

    def test_fresh_records_left_alone(self, job_queue, distributions):
        sweep = make_sweep(job_queue, CREATED + timedelta(minutes=5))

        assert sweep.run_once() == 0
        job_queue.enqueue_bulk.assert_not_called()

    def test_attempted_records_left_alone(self, job_queue, distributions):
        with get_session() as session:
            DistributionRepository(session).record_attempt(distributions[0].id, CREATED)

        sweep = make_sweep(job_queue, CREATED + timedelta(minutes=15))

        assert sweep.run_once() == 1

    def test_second_run_within_threshold_does_not_duplicate(self, job_queue, distributions):
        now = CREATED + timedelta(minutes=15)
        make_sweep(job_queue, now).run_once()
        job_queue.reset_mock()

        assert make_sweep(job_queue, now + timedelta(minutes=5)).run_once() == 0
        assert make_sweep(job_queue, now + timedelta(minutes=11)).run_once() == 2

    def test_batch_size(self, job_queue, distributions):
        sweep = make_sweep(job_queue, CREATED + timedelta(minutes=15), batch_size=1)

        assert sweep.run_once() == 1

    def test_enqueue_failure_does_not_stamp_requeued(self, job_queue, distributions):
        job_queue.enqueue_bulk.side_effect = RuntimeError("queue down")
        sweep = make_sweep(job_queue, CREATED + timedelta(minutes=15))

        with pytest.raises(RuntimeError):
            sweep.run_once()

        with get_session() as session:
            assert all(
                d.requeued_at is None
                for d in DistributionRepository(session).list_for_request("req-001")
            )
