"""
Timezone helpers.

All timestamps are stored and compared in UTC. Some backends (SQLite in
tests) hand back naive datetimes from timezone-aware columns, so values
read from the database pass through `as_utc` before any comparison.
"""

from datetime import datetime, timezone
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_expired(expires_at: Optional[datetime], now: Optional[datetime] = None) -> bool:
    """A missing expiry never counts as expired."""
    if expires_at is None:
        return False
    return as_utc(expires_at) <= (now or utcnow())
