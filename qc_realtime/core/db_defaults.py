"""Database-aware helpers for timestamps and JSON columns."""

from datetime import datetime, timezone

from sqlalchemy import JSON
from sqlalchemy.dialects.postgresql import JSONB as PG_JSONB


def jsonb_type():
    """
    Return a JSONB type that stores JSON on SQLite.
    """
    return PG_JSONB().with_variant(JSON, "sqlite")


def utcnow() -> datetime:
    """Timezone-aware "now" used for Python-side column defaults."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime | None) -> datetime | None:
    """Normalize a datetime read back from the store.

    SQLite drops tzinfo on round-trip, so naive values are treated as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


__all__ = ["jsonb_type", "utcnow", "as_utc"]
