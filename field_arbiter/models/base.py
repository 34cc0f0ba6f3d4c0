"""
Shared helpers for the field arbiter data models.
"""

from datetime import datetime, timezone

from ulid import ULID


def _utcnow() -> datetime:
    """Get current UTC time (timezone-aware)."""
    return datetime.now(timezone.utc)


def new_id() -> str:
    """Generate a time-ordered unique identifier."""
    return str(ULID())


def ensure_utc(value: datetime) -> datetime:
    """Interpret naive datetimes as UTC so all timestamps stay comparable."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
