"""Time Utilities for UTC management"""

from datetime import date, datetime, timezone
from typing import Optional, Union


def get_utc_now() -> datetime:
    """
    Returns a naive UTC datetime.
    Matches the DB schema (TIMESTAMP WITHOUT TIME ZONE).
    """
    return datetime.now(timezone.utc).replace(tzinfo=None)


def as_naive_utc(value: datetime) -> datetime:
    """Normalize an aware datetime to naive UTC; naive values pass through."""
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def short_year(value: Optional[Union[date, datetime]] = None) -> str:
    """Last two digits of the year, e.g. '25' for 2025."""
    value = value or get_utc_now()
    return f"{value.year % 100:02d}"
