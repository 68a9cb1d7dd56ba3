"""Configuration management for the RFQ distribution service."""

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_config, validate_config_file
from .models import (
    AppConfig,
    DeliveryConfig,
    IntakeConfig,
    LogFormat,
    LogLevel,
    LoggingConfig,
    MatchingConfig,
    QueueConfig,
    ReconciliationConfig,
)

__all__ = [
    "load_config",
    "validate_config_file",
    "load_environment_config",
    "AppConfig",
    "MatchingConfig",
    "QueueConfig",
    "DeliveryConfig",
    "IntakeConfig",
    "ReconciliationConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    "LogLevel",
    "LogFormat",
    "ConfigurationError",
]
