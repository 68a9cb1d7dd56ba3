"""Additional validation utilities for configuration."""

import warnings
from typing import Any, Dict, List

from .duration import DurationParseError, parse_duration


def check_for_warnings(config_dict: Dict[str, Any]) -> List[str]:
    """
    Check configuration for potential issues and return warnings.

    Args:
        config_dict: Raw configuration dictionary

    Returns:
        List of warning messages
    """
    warning_messages = []

    queue = config_dict.get("queue", {})
    if isinstance(queue, dict):
        max_attempts = queue.get("max_attempts", 3)
        if isinstance(max_attempts, int) and max_attempts == 1:
            warning_messages.append(
                "queue.max_attempts is 1: transient delivery failures will not be retried"
            )

    intake = config_dict.get("intake", {})
    if isinstance(intake, dict) and intake.get("enabled", True) is False:
        warning_messages.append(
            "Intake poll is disabled: OPEN trip requests are only distributed with --distribute"
        )

    reconciliation = config_dict.get("reconciliation", {})
    if isinstance(reconciliation, dict):
        if reconciliation.get("enabled", True) is False:
            warning_messages.append(
                "Reconciliation sweep is disabled: distributions whose jobs were never "
                "enqueued will stay PENDING"
            )

        interval = _seconds_or_none(reconciliation.get("interval", "5m"))
        threshold = _seconds_or_none(reconciliation.get("pending_threshold", "10m"))
        if interval is not None and threshold is not None and threshold < interval:
            warning_messages.append(
                f"reconciliation.pending_threshold ({reconciliation.get('pending_threshold')}) "
                f"is shorter than reconciliation.interval ({reconciliation.get('interval')})"
            )

    matching = config_dict.get("matching", {})
    if isinstance(matching, dict):
        min_rating = matching.get("min_rating", 0)
        if isinstance(min_rating, (int, float)) and min_rating >= 4.5:
            warning_messages.append(
                f"High matching.min_rating ({min_rating}) may leave most requests unmatched"
            )

    return warning_messages


def _seconds_or_none(value: Any):
    if not isinstance(value, str):
        return None
    try:
        return parse_duration(value)
    except DurationParseError:
        return None


def emit_warnings(warning_messages: List[str]) -> None:
    """
    Emit warning messages using Python's warnings module.

    Args:
        warning_messages: List of warning messages to emit
    """
    for message in warning_messages:
        warnings.warn(message, UserWarning, stacklevel=2)
