"""Unit tests for the main entry point.

Tests the main() function including:
- CLI argument parsing
- Configuration loading with priority (CLI > env > config)
- Component wiring
- Distribute, sweep-once, worker and daemon modes
- Daemon intake of OPEN trip requests
- Exit code handling
"""

import shutil
import threading
from pathlib import Path
from unittest.mock import Mock, patch

import pytest

from rfq_dispatch.config.environment import EnvironmentConfig
from rfq_dispatch.config.exceptions import ConfigurationError
from rfq_dispatch.config.models import AppConfig, IntakeConfig, QueueConfig, ReconciliationConfig
from rfq_dispatch.distribution.models import DistributionResult, DistributionStats
from rfq_dispatch.main import (
    _parse_args,
    build_components,
    build_periodic_jobs,
    load_runtime_config,
    main,
    run_daemon,
    run_distribute,
    run_sweep_once,
    run_worker,
)
from rfq_dispatch.notifications.transport import HttpMessageTransport
from rfq_dispatch.persistence import DistributionRepository, RecordNotFoundError, get_session
from rfq_dispatch.queue import CeleryJobQueue
from rfq_dispatch.queue.tasks import get_runtime
from rfq_dispatch.scheduler import INTAKE_JOB_ID, SWEEP_JOB_ID
from tests.helpers import RecordingTransport, load_fixture_agencies, seed_agencies, seed_trip_request

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def make_env_config(**overrides):
    values = {"transport_base_url": "https://gateway.test/api", "transport_token": "test-token"}
    values.update(overrides)
    return EnvironmentConfig(**values)


class TestParseArgs:
    def test_defaults(self):
        args = _parse_args([])

        assert args.config is None
        assert args.log_level is None
        assert args.distribute is None
        assert not args.sweep_once
        assert not args.worker
        assert not args.validate_config

    def test_distribute(self):
        args = _parse_args(["--distribute", "req-001", "--config", "custom.yaml"])

        assert args.distribute == "req-001"
        assert args.config == Path("custom.yaml")

    def test_modes_are_exclusive(self):
        with pytest.raises(SystemExit):
            _parse_args(["--distribute", "req-001", "--sweep-once"])

    def test_worker_mode(self):
        assert _parse_args(["--worker"]).worker

        with pytest.raises(SystemExit):
            _parse_args(["--worker", "--sweep-once"])

    def test_invalid_log_level(self):
        with pytest.raises(SystemExit):
            _parse_args(["--log-level", "LOUD"])


class TestLoadRuntimeConfig:
    """Test suite for load_runtime_config helper."""

    def test_config_file_level_used_when_nothing_else_set(self, mock_env_vars):
        _, env_config = load_runtime_config(FIXTURES_DIR / "valid_config.yaml", None)

        assert env_config.log_level == "DEBUG"

    def test_environment_wins_over_config_file(self, mock_env_vars, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "warning")

        _, env_config = load_runtime_config(FIXTURES_DIR / "valid_config.yaml", None)

        assert env_config.log_level == "WARNING"

    def test_cli_wins_over_environment(self, mock_env_vars, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "WARNING")

        _, env_config = load_runtime_config(FIXTURES_DIR / "valid_config.yaml", "ERROR")

        assert env_config.log_level == "ERROR"

    def test_missing_environment_raises(self, monkeypatch):
        monkeypatch.delenv("TRANSPORT_BASE_URL", raising=False)

        with pytest.raises(ConfigurationError):
            load_runtime_config(FIXTURES_DIR / "minimal_config.yaml", None)


class TestBuildComponents:
    def test_wires_celery_queue_and_http_transport(self):
        components = build_components(
            AppConfig(queue=QueueConfig(workers=3)),
            make_env_config(broker_url="redis://broker.test:6379/1"),
        )

        try:
            assert isinstance(components.transport, HttpMessageTransport)
            assert isinstance(components.job_queue, CeleryJobQueue)
            assert components.worker.transport is components.transport
            assert components.sweep.job_queue is components.job_queue
            assert components.coordinator.job_queue is components.job_queue
            assert components.intake.coordinator is components.coordinator
        finally:
            components.stop()

    def test_binds_delivery_task_to_worker(self):
        app_config = AppConfig(queue=QueueConfig(max_attempts=4))
        components = build_components(app_config, make_env_config(), transport=RecordingTransport())

        runtime = get_runtime()
        assert runtime.handler == components.worker.process
        assert runtime.queue_config.max_attempts == 4

    def test_stop_closes_transport(self):
        transport = RecordingTransport()
        components = build_components(AppConfig(), make_env_config(), transport=transport)

        components.stop()

        assert transport.closed


class TestRunModes:
    def test_run_distribute_unknown_request(self):
        components = Mock()
        components.coordinator.distribute.side_effect = RecordNotFoundError("Trip request not found: missing")

        assert run_distribute(components, "missing") == 1
        components.coordinator.get_stats.assert_not_called()

    def test_run_distribute_returns_after_enqueue(self):
        components = Mock()
        components.coordinator.distribute.return_value = DistributionResult(trip_request_id="req-001", total_matched=1)
        components.coordinator.get_stats.return_value = DistributionStats(total=1, pending=1)

        assert run_distribute(components, "req-001") == 0

    def test_run_sweep_once(self):
        components = Mock()
        components.sweep.run_once.return_value = 2

        assert run_sweep_once(components) == 0
        components.sweep.run_once.assert_called_once()

    @patch("rfq_dispatch.main.celery_app")
    def test_run_worker_starts_celery_worker(self, mock_celery_app):
        app_config = AppConfig(queue=QueueConfig(workers=3))

        assert run_worker(app_config, make_env_config(log_level="DEBUG")) == 0

        argv = mock_celery_app.worker_main.call_args.kwargs["argv"]
        assert argv[0] == "worker"
        assert "--pool=threads" in argv
        assert "--concurrency=3" in argv
        assert "--queues=rfq-delivery" in argv
        assert "--loglevel=DEBUG" in argv

    def test_periodic_jobs_follow_config(self):
        components = Mock()

        jobs = build_periodic_jobs(components, AppConfig())

        assert [job.job_id for job in jobs] == [INTAKE_JOB_ID, SWEEP_JOB_ID]
        intake, sweep = jobs
        assert intake.func is components.intake.run_once
        assert intake.interval_seconds == 60
        assert intake.first_run_delay == 0
        assert sweep.func is components.sweep.run_once
        assert sweep.first_run_delay == 300

    def test_disabled_jobs_are_skipped(self):
        app_config = AppConfig(
            intake=IntakeConfig(enabled=False), reconciliation=ReconciliationConfig(enabled=False)
        )

        assert build_periodic_jobs(Mock(), app_config) == []


class TestDaemonIntake:
    @patch("signal.signal")
    def test_open_request_distributed_while_daemon_runs(self, mock_signal, database, celery_eager):
        transport = RecordingTransport()
        app_config = AppConfig(matching={"min_rating": 2.5})
        components = build_components(app_config, make_env_config(), transport=transport)
        seed_agencies(*load_fixture_agencies())
        seed_trip_request()
        shutdown_event = threading.Event()
        run_intake = components.intake.run_once

        def intake_then_stop():
            try:
                return run_intake()
            finally:
                shutdown_event.set()

        components.intake.run_once = intake_then_stop

        assert run_daemon(components, app_config, shutdown_event=shutdown_event) == 0

        with get_session() as session:
            distributions = DistributionRepository(session).list_for_request("req-001")
        assert sorted(d.agency_id for d in distributions) == ["agency-dubai"]
        assert set(transport.targets) == {"dubai-dreams-channel", "dubai-agent-1-chat"}


class TestMain:
    """Test suite for main() function."""

    def test_validate_config_valid(self, capsys):
        exit_code = main(["--validate-config", "--config", str(FIXTURES_DIR / "valid_config.yaml")])

        assert exit_code == 0
        assert "is valid" in capsys.readouterr().out

    def test_validate_config_invalid(self, tmp_path):
        config_file = tmp_path / "config.yaml"
        config_file.write_text("queue:\n  workers: 0\n")

        assert main(["--validate-config", "--config", str(config_file)]) == 1

    @patch("rfq_dispatch.main.load_runtime_config")
    def test_main_configuration_error(self, mock_load_config):
        """Test main() handles ConfigurationError gracefully."""
        mock_load_config.side_effect = ConfigurationError(
            "Config file not found",
            suggestions=["Create config.yaml"],
        )

        assert main(["--config", "nonexistent.yaml"]) == 1

    @patch("rfq_dispatch.main.load_runtime_config")
    def test_main_keyboard_interrupt(self, mock_load_config):
        mock_load_config.side_effect = KeyboardInterrupt()

        assert main([]) == 0

    @patch("rfq_dispatch.main.close_database")
    @patch("rfq_dispatch.main.init_database")
    @patch("rfq_dispatch.main.configure_logging")
    @patch("rfq_dispatch.main.load_runtime_config")
    def test_main_unexpected_error(
        self, mock_load_config, mock_configure_logging, mock_init_db, mock_close_db
    ):
        mock_load_config.return_value = (AppConfig(), make_env_config(log_level="INFO"))
        mock_init_db.side_effect = RuntimeError("database unreachable")

        assert main(["--sweep-once"]) == 1
        mock_close_db.assert_called_once()

    @patch("rfq_dispatch.main.close_database")
    @patch("rfq_dispatch.main.init_database")
    @patch("rfq_dispatch.main.configure_logging")
    @patch("rfq_dispatch.main.HttpMessageTransport")
    def test_main_distribute_delivers(
        self,
        mock_transport_cls,
        mock_configure_logging,
        mock_init_db,
        mock_close_db,
        database,
        celery_eager,
        mock_env_vars,
        tmp_path,
    ):
        config_file = tmp_path / "config.yaml"
        shutil.copy(FIXTURES_DIR / "valid_config.yaml", config_file)
        transport = RecordingTransport()
        mock_transport_cls.return_value = transport
        seed_trip_request()
        seed_agencies(*load_fixture_agencies())

        exit_code = main(["--distribute", "req-001", "--config", str(config_file)])

        assert exit_code == 0
        mock_configure_logging.assert_called_once_with(
            level="DEBUG", format_type="json", environment="local"
        )
        mock_init_db.assert_called_once_with("sqlite:///:memory:")
        # agency-egypt is below min_rating 2.5
        assert set(transport.targets) == {"dubai-dreams-channel", "dubai-agent-1-chat"}
        assert transport.closed

    @patch("rfq_dispatch.main.close_database")
    @patch("rfq_dispatch.main.init_database")
    @patch("rfq_dispatch.main.configure_logging")
    @patch("rfq_dispatch.main.HttpMessageTransport")
    def test_main_distribute_unknown_request(
        self,
        mock_transport_cls,
        mock_configure_logging,
        mock_init_db,
        mock_close_db,
        database,
        mock_env_vars,
    ):
        mock_transport_cls.return_value = RecordingTransport()

        exit_code = main(["--distribute", "missing", "--config", str(FIXTURES_DIR / "minimal_config.yaml")])

        assert exit_code == 1

    @patch("rfq_dispatch.main.SchedulerService")
    @patch("rfq_dispatch.main.build_components")
    @patch("rfq_dispatch.main.close_database")
    @patch("rfq_dispatch.main.init_database")
    @patch("rfq_dispatch.main.configure_logging")
    @patch("rfq_dispatch.main.load_runtime_config")
    @patch("signal.signal")
    def test_main_daemon_mode(
        self,
        mock_signal,
        mock_load_config,
        mock_configure_logging,
        mock_init_db,
        mock_close_db,
        mock_build_components,
        mock_scheduler_service,
    ):
        """Test main() in daemon mode."""
        mock_load_config.return_value = (AppConfig(), make_env_config(log_level="INFO"))
        components = Mock()
        mock_build_components.return_value = components

        # Exit the wait loop straight away
        mock_scheduler_service.return_value.start.side_effect = KeyboardInterrupt()

        exit_code = main([])

        assert exit_code == 0
        mock_scheduler_service.assert_called_once()
        jobs = mock_scheduler_service.call_args.args[0]
        assert [job.job_id for job in jobs] == [INTAKE_JOB_ID, SWEEP_JOB_ID]
        assert [job.interval_seconds for job in jobs] == [60, 300]
        components.stop.assert_called_once_with()
