"""
UTC DateTime Utilities.

Provides consistent UTC datetime handling across the service.
All datetimes are stored and handled in UTC with timezone awareness.
"""

from datetime import datetime, timezone
from typing import Optional


def utc_now() -> datetime:
    """
    Get current UTC time as timezone-aware datetime.

    This is the standard function for all complaint timestamps
    (creation_date, update_date).
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC timezone-aware datetime.

    - If naive: assumes UTC and adds timezone
    - If aware: converts to UTC
    """
    if dt.tzinfo is None:
        return dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def to_utc_optional(dt: Optional[datetime]) -> Optional[datetime]:
    if dt is None:
        return None
    return to_utc(dt)
