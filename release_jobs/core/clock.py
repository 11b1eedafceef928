"""
UTC time helpers.

Dependencies: datetime (stdlib)
System role: Single source of wall-clock time for job and audit timestamps
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """
    Attach UTC to naive datetimes read back from the store.

    SQLite drops tzinfo on round trip; Postgres keeps it.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
