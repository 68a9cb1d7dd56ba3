"""Tests for the configuration module."""

import warnings
from pathlib import Path

import pytest

from rfq_dispatch.config import (
    AppConfig,
    ConfigurationError,
    load_config,
    validate_config_file,
)
from rfq_dispatch.config.duration import (
    DurationParseError,
    parse_duration,
    seconds_to_human_readable,
    validate_duration_range,
)
from rfq_dispatch.config.environment import (
    DEFAULT_BROKER_URL,
    DEFAULT_DATABASE_URL,
    load_environment_config,
)
from rfq_dispatch.config.validators import check_for_warnings

FIXTURES_DIR = Path(__file__).parent / "fixtures"


def write_config(tmp_path, content):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(content)
    return config_file


class TestConfigurationLoading:
    """Test configuration loading from YAML files."""

    def test_load_valid_config(self, mock_env_vars):
        app_config, env_config = load_config(FIXTURES_DIR / "valid_config.yaml")

        assert app_config.matching.min_rating == 2.5
        assert app_config.queue.workers == 4
        assert app_config.queue.max_attempts == 5
        assert app_config.queue.retry_backoff == 1
        assert app_config.queue.retry_jitter is False
        assert app_config.delivery.max_fanout_workers == 4
        assert app_config.intake.interval_seconds == 30
        assert app_config.intake.batch_size == 20
        assert app_config.delivery.request_timeout == 15
        assert app_config.reconciliation.interval_seconds == 120
        assert app_config.reconciliation.pending_threshold_seconds == 900
        assert app_config.logging.level == "DEBUG"
        assert app_config.logging.format == "json"

        assert env_config.transport_base_url == "https://gateway.test/api"
        assert env_config.transport_token == "test-token"

    def test_load_minimal_config_uses_defaults(self, mock_env_vars):
        app_config, _ = load_config(FIXTURES_DIR / "minimal_config.yaml")

        assert app_config.matching.min_rating == 0.0
        assert app_config.matching.region_weight == 3.0
        assert app_config.queue.max_attempts == 3
        assert app_config.delivery.user_agent == "RfqDispatch/1.0"
        assert app_config.reconciliation.enabled is True
        assert app_config.reconciliation.interval_seconds == 300
        assert app_config.logging.format == "key-value"
        assert app_config.intake.enabled is True
        assert app_config.intake.interval_seconds == 60

    def test_config_file_not_found(self, mock_env_vars):
        with pytest.raises(ConfigurationError, match="not found"):
            load_config(Path("does/not/exist.yaml"))

    def test_invalid_yaml_syntax(self, tmp_path, mock_env_vars):
        config_file = write_config(tmp_path, "queue:\n  workers: [1, 2\n")

        with pytest.raises(ConfigurationError, match="Failed to parse YAML"):
            load_config(config_file)

    def test_empty_file(self, tmp_path, mock_env_vars):
        with pytest.raises(ConfigurationError, match="empty"):
            load_config(write_config(tmp_path, ""))

    def test_top_level_must_be_mapping(self, tmp_path, mock_env_vars):
        with pytest.raises(ConfigurationError, match="mapping"):
            load_config(write_config(tmp_path, "- a\n- b\n"))

    def test_invalid_values_collected(self, tmp_path, mock_env_vars):
        config_file = write_config(
            tmp_path,
            "queue:\n  workers: 0\n  max_attempts: nope\nmatching:\n  min_rating: 7\n",
        )

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(config_file)

        assert len(exc_info.value.errors) == 3
        assert exc_info.value.suggestions
        assert exc_info.value.source == str(config_file)
        assert "queue -> workers" in str(exc_info.value)

    def test_backoff_max_below_base(self, tmp_path, mock_env_vars):
        config_file = write_config(
            tmp_path, "queue:\n  retry_backoff: 10\n  retry_backoff_max: 5\n"
        )

        with pytest.raises(ConfigurationError, match="retry_backoff_max"):
            load_config(config_file)

    def test_single_fanout_worker_rejected(self, tmp_path, mock_env_vars):
        config_file = write_config(tmp_path, "delivery:\n  max_fanout_workers: 1\n")

        with pytest.raises(ConfigurationError) as exc_info:
            load_config(config_file)

        assert "delivery -> max_fanout_workers" in str(exc_info.value)

    def test_intake_interval_too_short(self, tmp_path, mock_env_vars):
        config_file = write_config(tmp_path, 'intake:\n  interval: "5s"\n')

        with pytest.raises(ConfigurationError, match="too short"):
            load_config(config_file)

    def test_sweep_interval_too_short(self, tmp_path, mock_env_vars):
        config_file = write_config(tmp_path, 'reconciliation:\n  interval: "10s"\n')

        with pytest.raises(ConfigurationError, match="too short"):
            load_config(config_file)

    def test_invalid_log_level(self, tmp_path, mock_env_vars):
        with pytest.raises(ConfigurationError):
            load_config(write_config(tmp_path, "logging:\n  level: LOUD\n"))

    def test_validate_config_file_utility(self, tmp_path, capsys):
        assert validate_config_file(FIXTURES_DIR / "valid_config.yaml") is True
        assert "✓" in capsys.readouterr().out

        assert validate_config_file(write_config(tmp_path, "queue:\n  workers: -1\n")) is False
        assert "✗" in capsys.readouterr().out


class TestConfigWarnings:
    def test_no_warnings_for_defaults(self):
        assert check_for_warnings({}) == []

    def test_single_attempt_warns(self):
        assert any("max_attempts" in w for w in check_for_warnings({"queue": {"max_attempts": 1}}))

    def test_disabled_sweep_warns(self):
        warnings_found = check_for_warnings({"reconciliation": {"enabled": False}})

        assert any("disabled" in w for w in warnings_found)

    def test_disabled_intake_warns(self):
        warnings_found = check_for_warnings({"intake": {"enabled": False}})

        assert any("Intake poll is disabled" in w for w in warnings_found)

    def test_threshold_shorter_than_interval_warns(self):
        config = {"reconciliation": {"interval": "1h", "pending_threshold": "10m"}}

        assert any("pending_threshold" in w for w in check_for_warnings(config))

    def test_warnings_emitted_on_load(self, tmp_path, mock_env_vars):
        config_file = write_config(tmp_path, "matching:\n  min_rating: 4.8\n")

        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            load_config(config_file)

        assert any("min_rating" in str(w.message) for w in caught)


class TestDurationParsing:
    """Test duration parsing utilities."""

    @pytest.mark.parametrize(
        "value, expected",
        [
            ("15m", 900),
            ("1h", 3600),
            ("30s", 30),
            ("2d", 172800),
            ("1h30m", 5400),
            ("PT15M", 900),
            ("PT1H30M", 5400),
            ("P1D", 86400),
        ],
    )
    def test_parse_duration(self, value, expected):
        assert parse_duration(value) == expected

    @pytest.mark.parametrize("value", ["", "abc", "15x", "PT", "0m"])
    def test_parse_invalid(self, value):
        with pytest.raises(DurationParseError):
            parse_duration(value)

    def test_validate_duration_range(self):
        validate_duration_range(300, min_seconds=60, max_seconds=3600)

        with pytest.raises(DurationParseError, match="interval too short"):
            validate_duration_range(30, min_seconds=60, max_seconds=3600, label="interval")
        with pytest.raises(DurationParseError, match="too long"):
            validate_duration_range(7200, min_seconds=60, max_seconds=3600)

    def test_seconds_to_human_readable(self):
        assert seconds_to_human_readable(900) == "15 minutes"
        assert seconds_to_human_readable(3600) == "1 hour"
        assert seconds_to_human_readable(1) == "1 second"


class TestEnvironmentConfig:
    """Test environment variable loading."""

    def test_load_valid_environment_config(self, mock_env_vars):
        env_config = load_environment_config()

        assert env_config.transport_base_url == "https://gateway.test/api"
        assert env_config.database_url == "sqlite:///:memory:"
        assert env_config.environment == "local"

    def test_missing_transport_url(self, monkeypatch):
        monkeypatch.delenv("TRANSPORT_BASE_URL", raising=False)

        with pytest.raises(ConfigurationError) as exc_info:
            load_environment_config()

        assert any("TRANSPORT_BASE_URL" in error for error in exc_info.value.errors)

    def test_invalid_transport_url(self, monkeypatch):
        monkeypatch.setenv("TRANSPORT_BASE_URL", "ftp://gateway")

        with pytest.raises(ConfigurationError, match="validation failed"):
            load_environment_config()

    def test_blank_token_rejected(self, mock_env_vars, monkeypatch):
        monkeypatch.setenv("TRANSPORT_TOKEN", "   ")

        with pytest.raises(ConfigurationError):
            load_environment_config()

    def test_invalid_log_level(self, mock_env_vars, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "verbose")

        with pytest.raises(ConfigurationError):
            load_environment_config()

    def test_optional_env_vars(self, monkeypatch):
        monkeypatch.setenv("TRANSPORT_BASE_URL", "http://localhost:8080/")
        for name in (
            "TRANSPORT_TOKEN",
            "DATABASE_URL",
            "LOG_LEVEL",
            "ENVIRONMENT",
            "CELERY_BROKER_URL",
        ):
            monkeypatch.delenv(name, raising=False)

        env_config = load_environment_config()

        assert env_config.transport_base_url == "http://localhost:8080"
        assert env_config.transport_token is None
        assert env_config.database_url == DEFAULT_DATABASE_URL
        assert env_config.log_level is None
        assert env_config.broker_url == DEFAULT_BROKER_URL

    def test_broker_url_from_environment(self, mock_env_vars, monkeypatch):
        monkeypatch.setenv("CELERY_BROKER_URL", "redis://broker:6379/2")

        assert load_environment_config().broker_url == "redis://broker:6379/2"

    def test_blank_broker_url_rejected(self, mock_env_vars, monkeypatch):
        monkeypatch.setenv("CELERY_BROKER_URL", " ")

        with pytest.raises(ConfigurationError) as exc_info:
            load_environment_config()

        assert any("CELERY_BROKER_URL" in error for error in exc_info.value.errors)


class TestAppConfigDefaults:
    def test_all_sections_optional(self):
        config = AppConfig()

        assert config.reconciliation.pending_threshold_seconds == 600
        assert config.queue.workers == 2
