"""
Timestamp normalisation.

Stored and queried instants are compared as timezone-aware UTC values.
Some drivers (SQLite in particular) hand back naive datetimes even for
``DateTime(timezone=True)`` columns; those are interpreted as UTC.
"""

from datetime import date, datetime, time, timezone


def to_utc(value: datetime | date) -> datetime:
    """
    Return ``value`` as a timezone-aware UTC datetime.

    A plain ``date`` means midnight UTC at the start of that day.

    Raises:
        TypeError: If ``value`` is not a date or datetime.
    """
    if isinstance(value, datetime):
        if value.tzinfo is None:
            return value.replace(tzinfo=timezone.utc)
        return value.astimezone(timezone.utc)
    if isinstance(value, date):
        return datetime.combine(value, time.min, tzinfo=timezone.utc)
    raise TypeError(f"Expected date or datetime, got {type(value).__name__}")


def to_utc_or_none(value: datetime | date | None) -> datetime | None:
    """Like ``to_utc`` but passes ``None`` through."""
    return None if value is None else to_utc(value)
