"""Utility functions package"""

from .helpers import utcnow, ensure_utc, add_months, from_unix_timestamp

__all__ = [
    "utcnow",
    "ensure_utc",
    "add_months",
    "from_unix_timestamp",
]
