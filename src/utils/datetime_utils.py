"""Datetime utilities for timezone-aware UTC timestamps.

Usage:
    from src.utils.datetime_utils import utc_now, to_iso

    # For SQLAlchemy Column defaults
    created_at = Column(DateTime, default=utc_now)

    # For JSON payloads (None passes through)
    payload["sunset_date"] = to_iso(product.sunset_date)
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """Return current UTC time as timezone-aware datetime."""
    return datetime.now(timezone.utc)


def to_iso(value: Optional[datetime]) -> Optional[str]:
    """Format a datetime as ISO 8601, or return None."""
    if value is None:
        return None
    return value.isoformat()
