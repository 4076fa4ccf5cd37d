"""
Date and time utilities for YieldSync.

Provides timezone-aware datetime helpers.
"""
from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    """
    Get current UTC datetime with timezone info.

    Returns:
        datetime: Current datetime in UTC with tzinfo set to timezone.utc

    Example:
        >>> now = utcnow()
        >>> now.tzinfo
        datetime.timezone.utc

    Note:
        Always use this function instead of datetime.now() to ensure
        timezone-aware timestamps across the application.
    """
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to timezone-aware UTC.

    SQLite has no timezone support, so DATETIME columns come back naive even
    when they were written from utcnow(). Naive values are assumed to already
    be in UTC; aware values are converted.

    Args:
        value: Datetime to normalize (None passes through)

    Returns:
        Timezone-aware UTC datetime, or None
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)
