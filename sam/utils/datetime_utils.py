"""
Datetime utilities for SAM services.
"""
from datetime import datetime, timezone
from typing import Optional

# Apple reference date (Core Data epoch): 2001-01-01 00:00:00 UTC
REFERENCE_EPOCH = datetime(2001, 1, 1, tzinfo=timezone.utc)


def make_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure datetime is timezone-aware (UTC if naive).

    Args:
        dt: A datetime object that may or may not have timezone info

    Returns:
        The same datetime with UTC timezone if it was naive,
        or the original timezone-aware datetime, or None if input was None
    """
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt


def to_storage(dt: Optional[datetime]) -> Optional[str]:
    """Serialize a datetime as a UTC ISO string (sortable as text)."""
    if dt is None:
        return None
    return make_aware(dt).astimezone(timezone.utc).isoformat()


def from_storage(value: Optional[str]) -> Optional[datetime]:
    """Parse a stored ISO string back into an aware datetime."""
    if not value:
        return None
    return make_aware(datetime.fromisoformat(value))


def reference_seconds(dt: datetime) -> int:
    """Whole seconds since the Apple reference date."""
    return int((make_aware(dt) - REFERENCE_EPOCH).total_seconds())
