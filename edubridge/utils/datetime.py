from __future__ import annotations
from datetime import datetime, date, UTC
from typing import Optional

__all__ = ["utc_now", "utc_today", "ensure_aware_utc", "to_naive_utc", "naive_utc_now", "iso_or_none"]


def utc_now() -> datetime:
    """Return timezone-aware UTC now."""
    return datetime.now(UTC)


def utc_today() -> date:
    return utc_now().date()


def ensure_aware_utc(dt: datetime | None) -> Optional[datetime]:
    """Ensure a datetime is timezone-aware in UTC (assumes naive input already in UTC)."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt.replace(tzinfo=UTC)
    return dt.astimezone(UTC)


def to_naive_utc(dt: datetime | None) -> Optional[datetime]:
    """Convert aware datetime to naive UTC for storage/compare; pass through naive assumed UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        return dt
    return dt.astimezone(UTC).replace(tzinfo=None)


def naive_utc_now() -> datetime:
    """Naive UTC now, the form stored in DateTime columns."""
    return to_naive_utc(utc_now())


def iso_or_none(dt: datetime | None) -> Optional[str]:
    aware = ensure_aware_utc(dt)
    return aware.isoformat() if aware else None
