"""
Small helpers shared by the model modules.

Timestamps are stored as naive UTC datetimes so the same columns work on
PostgreSQL and SQLite.
"""

from datetime import date, datetime, timezone
from decimal import Decimal


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def iso(value: date | datetime | None) -> str | None:
    """Serialize a date/datetime for JSON, passing None through."""
    return value.isoformat() if value is not None else None


def num(value: Decimal | float | int | None) -> float | None:
    """Serialize a numeric column (Decimal on PostgreSQL) as a float."""
    return float(value) if value is not None else None
