"""Environment variable loading and validation."""

import os
from typing import Optional
from urllib.parse import urlparse

from .exceptions import ConfigurationError

DEFAULT_DATABASE_URL = "sqlite:///./data/rfq_dispatch.db"
DEFAULT_BROKER_URL = "redis://localhost:6379/0"

_VALID_LOG_LEVELS = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


class EnvironmentConfig:
    """Environment variable configuration holder."""

    def __init__(
        self,
        transport_base_url: str,
        transport_token: Optional[str] = None,
        database_url: Optional[str] = None,
        log_level: Optional[str] = None,
        environment: Optional[str] = None,
        broker_url: Optional[str] = None,
    ):
        self.transport_base_url = transport_base_url.rstrip("/")
        self.transport_token = transport_token
        self.database_url = database_url or DEFAULT_DATABASE_URL
        self.log_level = log_level
        self.environment = environment or "local"
        self.broker_url = broker_url or DEFAULT_BROKER_URL


def load_environment_config() -> EnvironmentConfig:
    """
    Load and validate environment variables.

    Required environment variables:
    - TRANSPORT_BASE_URL: Base URL of the messaging gateway (http or https)

    Optional environment variables:
    - TRANSPORT_TOKEN: Bearer token sent to the messaging gateway
    - DATABASE_URL: Database URL (default: sqlite:///./data/rfq_dispatch.db)
    - LOG_LEVEL: Override log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    - ENVIRONMENT: Deployment label attached to log records (default: local)
    - CELERY_BROKER_URL: Celery broker for delivery tasks (default: redis://localhost:6379/0)

    Returns:
        EnvironmentConfig object with validated values

    Raises:
        ConfigurationError: If required variables are missing or invalid
    """
    errors = []

    transport_base_url = os.getenv("TRANSPORT_BASE_URL")
    transport_token = os.getenv("TRANSPORT_TOKEN")
    database_url = os.getenv("DATABASE_URL")
    log_level = os.getenv("LOG_LEVEL")
    environment = os.getenv("ENVIRONMENT")
    broker_url = os.getenv("CELERY_BROKER_URL")

    if not transport_base_url:
        errors.append("Missing required environment variable: TRANSPORT_BASE_URL")
    elif not _is_http_url(transport_base_url):
        errors.append(
            f"Invalid TRANSPORT_BASE_URL: '{transport_base_url}'. Must be an http(s) URL."
        )

    if transport_token is not None and not transport_token.strip():
        errors.append("TRANSPORT_TOKEN is set but empty. Unset it or provide a token.")

    if broker_url is not None and not broker_url.strip():
        errors.append("CELERY_BROKER_URL is set but empty. Unset it or provide a broker URL.")

    if log_level and log_level.upper() not in _VALID_LOG_LEVELS:
        errors.append(
            f"Invalid LOG_LEVEL: '{log_level}'. Must be one of: {', '.join(_VALID_LOG_LEVELS)}"
        )

    if errors:
        raise ConfigurationError(
            "Environment variable validation failed",
            errors=errors,
            suggestions=[
                "Copy .env.example to .env and fill in your values",
                "Ensure all required environment variables are set",
                "Check that TRANSPORT_BASE_URL starts with http:// or https://",
            ],
        )

    return EnvironmentConfig(
        transport_base_url=transport_base_url,
        transport_token=transport_token,
        database_url=database_url,
        log_level=log_level,
        environment=environment,
        broker_url=broker_url,
    )


def _is_http_url(url: str) -> bool:
    parsed = urlparse(url)
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)
