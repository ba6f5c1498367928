"""
UTC time helpers.

Day numbers are whole days elapsed since 1970-01-01T00:00:00Z, so daily
quota boundaries do not depend on the caller's timezone.
"""
from datetime import datetime, timezone
from typing import Callable, Optional

SECONDS_PER_DAY = 86400

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime to aware UTC.

    Naive values are taken to already be UTC (SQLite hands back naive
    datetimes even for timezone-aware columns).
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def day_number(moment: datetime) -> int:
    """Whole UTC days since the Unix epoch for the given moment."""
    return int(as_utc(moment).timestamp()) // SECONDS_PER_DAY
