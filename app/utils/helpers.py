"""
Common helper functions
"""

from datetime import datetime, timezone
from typing import Optional
from dateutil.relativedelta import relativedelta

def utcnow() -> datetime:
    """Timezone-aware current UTC time"""
    return datetime.now(timezone.utc)

def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Normalize a datetime read from the database to aware UTC

    Some backends (SQLite) hand back naive datetimes even for
    timezone-aware columns; those are stored as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)

def add_months(value: datetime, months: int) -> datetime:
    """
    Add calendar months to a datetime

    Keeps the day of month when it exists in the target month and
    clamps to the month's last day otherwise (Jan 31 + 1 month = Feb 28/29).
    """
    return value + relativedelta(months=months)

def from_unix_timestamp(value: Optional[int]) -> Optional[datetime]:
    """Convert a Unix timestamp (as sent by Stripe) to aware UTC"""
    if value is None:
        return None
    return datetime.fromtimestamp(int(value), tz=timezone.utc)
