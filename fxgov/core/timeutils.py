from __future__ import annotations

from datetime import datetime, timezone


def now_utc() -> datetime:
    """Return the current UTC datetime."""
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC (SQLite drops tzinfo)."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def is_weekend(dt_utc: datetime) -> bool:
    """FX market closed: Saturday, Sunday, or Friday from 22:00 UTC."""
    dt = ensure_utc(dt_utc)
    weekday = dt.weekday()
    return weekday >= 5 or (weekday == 4 and dt.hour >= 22)
