"""Timestamp helpers shared by the data models."""

from datetime import datetime, timezone
from typing import Optional


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Interpret naive datetimes as UTC so every comparison is well defined."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def utc_now() -> datetime:
    """Default clock for the engine."""
    return datetime.now(timezone.utc)
