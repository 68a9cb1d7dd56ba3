"""Configuration schema models using Pydantic."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from .duration import DurationParseError, parse_duration, validate_duration_range


class LogLevel(str, Enum):
    """Logging levels."""

    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


class MatchingConfig(BaseModel):
    """Agency selection and scoring settings."""

    min_rating: float = Field(
        0.0, ge=0.0, le=5.0, description="Minimum agency rating considered for matching"
    )
    region_weight: float = Field(3.0, ge=0.0, description="Score for a destination/region match")
    specialization_weight: float = Field(
        2.0, ge=0.0, description="Score for a trip type/specialization match"
    )


class QueueConfig(BaseModel):
    """Celery delivery task settings."""

    workers: int = Field(2, ge=1, le=32, description="Celery worker concurrency (threads)")
    max_attempts: int = Field(
        3, ge=1, le=10, description="Attempts per delivery job before it is dead-lettered"
    )
    retry_backoff: int = Field(
        2, ge=1, le=60, description="Backoff factor in seconds, doubled per retry"
    )
    retry_backoff_max: int = Field(
        300, ge=1, le=3600, description="Upper bound for a single retry countdown"
    )
    retry_jitter: bool = Field(True, description="Randomize retry countdowns (full jitter)")

    @model_validator(mode="after")
    def validate_backoff_bounds(self):
        if self.retry_backoff_max < self.retry_backoff:
            raise ValueError("retry_backoff_max must be >= retry_backoff")
        return self


class DeliveryConfig(BaseModel):
    """Message transport and fan-out settings."""

    request_timeout: int = Field(
        10, ge=1, le=120, description="Timeout for a single transport call (seconds)"
    )
    max_fanout_workers: int = Field(
        8, ge=2, le=64, description="Concurrent sends per distribution"
    )
    user_agent: str = Field("RfqDispatch/1.0", min_length=1)

    @field_validator("user_agent")
    @classmethod
    def strip_user_agent(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("user_agent cannot be empty")
        return stripped


class IntakeConfig(BaseModel):
    """Settings for the poll that distributes newly OPEN trip requests."""

    enabled: bool = Field(True, description="Poll for OPEN trip requests in daemon mode")
    interval: str = Field("1m", description="How often the intake poll runs")
    batch_size: int = Field(50, ge=1, le=1000, description="Maximum requests distributed per run")

    # Computed fields
    interval_seconds: Optional[int] = None

    @field_validator("interval")
    @classmethod
    def validate_interval(cls, v: str) -> str:
        try:
            seconds = parse_duration(v)
            validate_duration_range(seconds, min_seconds=10, max_seconds=86400, label="interval")
            return v
        except DurationParseError as e:
            raise ValueError(str(e)) from e

    @model_validator(mode="after")
    def compute_seconds(self):
        self.interval_seconds = parse_duration(self.interval)
        return self


class ReconciliationConfig(BaseModel):
    """Settings for the sweep that requeues stranded PENDING distributions."""

    enabled: bool = Field(True, description="Run the sweep on a schedule in daemon mode")
    interval: str = Field("5m", description="How often the sweep runs")
    pending_threshold: str = Field(
        "10m", description="Age after which an unattempted PENDING record is requeued"
    )
    batch_size: int = Field(100, ge=1, le=10000, description="Maximum records requeued per run")

    # Computed fields
    interval_seconds: Optional[int] = None
    pending_threshold_seconds: Optional[int] = None

    @field_validator("interval")
    @classmethod
    def validate_interval(cls, v: str) -> str:
        try:
            seconds = parse_duration(v)
            validate_duration_range(seconds, min_seconds=30, max_seconds=86400, label="interval")
            return v
        except DurationParseError as e:
            raise ValueError(str(e)) from e

    @field_validator("pending_threshold")
    @classmethod
    def validate_pending_threshold(cls, v: str) -> str:
        try:
            seconds = parse_duration(v)
            validate_duration_range(
                seconds, min_seconds=60, max_seconds=7 * 86400, label="pending_threshold"
            )
            return v
        except DurationParseError as e:
            raise ValueError(str(e)) from e

    @model_validator(mode="after")
    def compute_seconds(self):
        self.interval_seconds = parse_duration(self.interval)
        self.pending_threshold_seconds = parse_duration(self.pending_threshold)
        return self


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(
        LogFormat.KEY_VALUE, description="Log output format (json or key-value)"
    )

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the RFQ distribution service."""

    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    queue: QueueConfig = Field(default_factory=QueueConfig)
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    intake: IntakeConfig = Field(default_factory=IntakeConfig)
    reconciliation: ReconciliationConfig = Field(default_factory=ReconciliationConfig)
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig, description="Logging configuration"
    )
