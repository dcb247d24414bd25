"""
Time and date helpers shared by the analytical services.

Every service takes a ``clock`` callable (default ``utcnow``) so tests can
pin or advance time without patching the standard library.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone
from typing import Callable

Clock = Callable[[], datetime]


def utcnow() -> datetime:
    """Return the current UTC datetime with timezone info.

    Prefer this over ``datetime.utcnow()`` (which returns naive datetimes).
    """
    return datetime.now(tz=timezone.utc)


def ensure_aware(value: datetime) -> datetime:
    """Attach UTC to a naive datetime; aware datetimes pass through unchanged."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def days_between(start: datetime, end: datetime) -> float:
    """Return the (fractional) number of days from ``start`` to ``end``."""
    delta = ensure_aware(end) - ensure_aware(start)
    return delta.total_seconds() / 86400.0


def add_days(moment: datetime, days: float) -> date:
    """Return the calendar date ``days`` after ``moment``."""
    return (moment + timedelta(days=days)).date()


def month_key(moment: datetime | date) -> str:
    """Format a date as its ``YYYY-MM`` period key."""
    return f"{moment.year:04d}-{moment.month:02d}"
