"""Datetime utilities for timezone-aware UTC timestamps.

Usage:
    from libs.common.datetime_utils import utc_now

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utc_now
    )
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return timezone-aware UTC datetime.

    This replaces the deprecated datetime.utcnow() which returns naive datetimes.
    Always use this for timestamps in the database.
    """
    return datetime.now(timezone.utc)


def ensure_aware(value: Optional[datetime]) -> Optional[datetime]:
    """Treat naive datetimes (as returned by some drivers) as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def from_epoch_ms(value: Optional[int]) -> Optional[datetime]:
    """Convert a millisecond Unix timestamp to an aware UTC datetime."""
    if value is None:
        return None
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def hours_until(start: datetime, now: Optional[datetime] = None) -> float:
    """Hours from ``now`` until ``start`` (negative once ``start`` has passed)."""
    now = now or utc_now()
    return (ensure_aware(start) - ensure_aware(now)).total_seconds() / 3600
