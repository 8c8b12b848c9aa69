"""
Timestamp helpers.

All persisted timestamps are naive UTC: SQLite drops tzinfo on round-trip,
so comparing a stored value against an aware ``now`` would raise.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    """Current time as naive UTC."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values pass through."""
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)
