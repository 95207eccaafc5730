"""UTC timestamp normalization.

The ledger stores naive UTC datetimes (SQLite drops offsets anyway) and the
API always emits timezone-aware UTC.
"""

from datetime import datetime, timezone


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Return an aware UTC datetime; naive input is taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_storage(value: datetime) -> datetime:
    """Convert to the naive-UTC form persisted in the ledger."""
    return ensure_utc(value).replace(tzinfo=None)
