"""DateTime utility functions for taskforest."""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Current time as a naive UTC datetime.

    Timestamps are stored naive (UTC implied) so values round-trip through
    SQLite unchanged and compare equal in exact-match queries.

    Returns:
        Naive datetime in UTC
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_naive_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to naive UTC.

    Args:
        dt: Aware or naive datetime; naive values are assumed to be UTC already

    Returns:
        Naive UTC datetime, or None if dt is None

    Examples:
        >>> from datetime import datetime, timedelta, timezone
        >>> to_naive_utc(datetime(2025, 3, 1, 9, 0, tzinfo=timezone(timedelta(hours=2))))
        datetime.datetime(2025, 3, 1, 7, 0)
    """
    if dt is None or dt.tzinfo is None:
        return dt
    return dt.astimezone(timezone.utc).replace(tzinfo=None)
