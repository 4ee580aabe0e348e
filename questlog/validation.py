"""Input validation helpers shared by the engine operations."""

import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from questlog.errors import ValidationError


def require_uuid(value: Any, field: str) -> str:
    """Return ``value`` as a canonical UUID string or raise ValidationError."""
    if not isinstance(value, str) or not value:
        raise ValidationError(f"{field} is required", field=field)
    try:
        return str(uuid.UUID(value))
    except ValueError:
        raise ValidationError(f"Invalid {field} format. Must be a valid UUID.", field=field)


def require_int(value: Any, field: str) -> int:
    """Return ``value`` if it is a real integer (bools rejected)."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"{field} must be an integer", field=field)
    return value


def require_text(value: Any, field: str) -> str:
    """Return ``value`` stripped, rejecting empty or non-string input."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{field} is required", field=field)
    return value.strip()


def to_utc_naive(value: Optional[datetime], field: str) -> Optional[datetime]:
    """Return ``value`` as a naive UTC datetime.

    All stored datetimes are naive UTC; aware inputs are converted, naive ones
    are taken as UTC already.
    """
    if value is None:
        return None
    if not isinstance(value, datetime):
        raise ValidationError(f"{field} must be a datetime", field=field)
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value
