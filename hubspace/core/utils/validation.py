"""Input validation helpers."""

from __future__ import annotations

from hubspace.core.errors import ValidationError


def require_non_blank(value: str | None, label: str) -> str:
    """Return the stripped value or raise when it is missing or whitespace."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{label} is required")
    return value.strip()


def require_positive(value: int, label: str) -> int:
    if value is None or int(value) <= 0:
        raise ValueError(f"{label} must be a positive integer")
    return int(value)
