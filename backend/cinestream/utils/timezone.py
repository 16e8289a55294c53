"""
Timezone utilities for CineStream.
Provides consistent UTC datetime handling.
"""
from datetime import datetime, timezone, date
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC datetime with timezone info.
    Replacement for deprecated datetime.utcnow().
    """
    return datetime.now(timezone.utc)


def utc_today() -> date:
    return utc_now().date()


def ensure_utc(dt: Optional[datetime]) -> Optional[datetime]:
    """
    Ensure a datetime is UTC and timezone-aware.
    If timezone-naive, assumes it's already UTC and adds UTC timezone.
    If timezone-aware, converts to UTC.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        # SQLite hands back naive datetimes
        return dt.replace(tzinfo=timezone.utc)
    else:
        return dt.astimezone(timezone.utc)


def age_seconds(dt: Optional[datetime]) -> float:
    """Seconds elapsed since dt; infinity when dt is unknown."""
    if dt is None:
        return float("inf")
    return (utc_now() - ensure_utc(dt)).total_seconds()


def format_iso_utc(dt: Optional[datetime]) -> Optional[str]:
    """
    Format datetime as ISO string in UTC.
    Returns None if datetime is None.
    """
    if dt is None:
        return None
    return ensure_utc(dt).isoformat()
