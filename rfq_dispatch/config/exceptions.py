"""Custom exceptions for configuration management."""

from pathlib import Path
from typing import List, Optional, Union

from pydantic import ValidationError


class ConfigurationError(Exception):
    """Raised when the config file or the environment is unusable.

    Carries every problem found in one pass (``errors``), hints for the
    operator (``suggestions``) and, when known, the file that was read
    (``source``). ``str()`` renders all of it for stderr.
    """

    def __init__(
        self,
        message: str,
        errors: Optional[List[str]] = None,
        suggestions: Optional[List[str]] = None,
        source: Optional[Union[str, Path]] = None,
    ):
        self.message = message
        self.errors = list(errors or [])
        self.suggestions = list(suggestions or [])
        self.source = str(source) if source is not None else None
        super().__init__(str(self))

    @classmethod
    def from_validation_error(
        cls,
        error: ValidationError,
        source: Optional[Union[str, Path]] = None,
        suggestions: Optional[List[str]] = None,
    ) -> "ConfigurationError":
        """Build an error listing each pydantic failure as ``section -> field: problem``."""
        return cls(
            "Configuration validation failed",
            errors=[_describe(item) for item in error.errors()],
            suggestions=suggestions,
            source=source,
        )

    def __str__(self) -> str:
        header = self.message
        if self.source:
            header = f"{header} ({self.source})"

        lines = [header]
        if self.errors:
            lines.append("\nValidation Errors:")
            lines.extend(f"  {i}. {error}" for i, error in enumerate(self.errors, 1))
        if self.suggestions:
            lines.append("\nSuggestions:")
            lines.extend(f"  - {suggestion}" for suggestion in self.suggestions)
        return "\n".join(lines)


def _describe(item: dict) -> str:
    field_path = " -> ".join(str(loc) for loc in item["loc"])
    error_type = item["type"]

    if error_type == "extra_forbidden":
        return f"Unknown field: {field_path}"
    if error_type.endswith("_type"):
        expected = error_type[: -len("_type")]
        return f"Invalid type for '{field_path}': expected {expected}, got {item.get('input')!r}"
    if "enum" in error_type:
        return f"Invalid value for '{field_path}': {item['msg']}"
    if field_path:
        return f"{field_path}: {item['msg']}"
    return item["msg"]
