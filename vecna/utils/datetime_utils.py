"""Timezone-aware timestamp helpers."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone


def now_utc() -> datetime:
    """Return the current timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def lease_expiry(seconds: int, start: datetime | None = None) -> datetime:
    """Return the instant a lease taken at ``start`` (default: now) runs out."""
    return (start or now_utc()) + timedelta(seconds=seconds)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (e.g. read back from SQLite) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
