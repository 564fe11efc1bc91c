from __future__ import annotations

from typing import Any

from .services.errors import ValidationError


def optional_text(value: Any, field: str) -> str | None:
    """
    Coerce an optional free-text input.

    - None or whitespace-only -> None
    - non-string -> ValidationError (400, not a 500 on .strip())
    """
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValidationError(f"{field} must be a string")
    value = value.strip()
    return value or None


def require_text(value: Any, field: str) -> str:
    """Like optional_text, but missing or blank input is rejected."""
    value = optional_text(value, field)
    if value is None:
        raise ValidationError(f"{field} is required")
    return value
