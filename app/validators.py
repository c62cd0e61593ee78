"""
Input validation helpers shared by the service layer.

Each helper either returns a cleaned value or raises
``app.errors.ValidationError`` naming the offending field.
"""

import re
from datetime import date, datetime, timezone

from app.errors import ValidationError

EMAIL_PATTERN = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")


def validate_email(email: str | None, field: str = "email") -> str:
    """Return the lower-cased email or raise if it is malformed."""
    if not email or not isinstance(email, str):
        raise ValidationError(f"{field} must be a non-empty string")
    email = email.strip().lower()
    if len(email) > 254 or not EMAIL_PATTERN.match(email):
        raise ValidationError(f"Invalid {field} format")
    return email


def parse_date(value, field: str) -> date | None:
    """Parse an ISO ``YYYY-MM-DD`` (or full ISO datetime) value to a date."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return datetime.fromisoformat(str(value)).date()
    except ValueError:
        try:
            return date.fromisoformat(str(value)[:10])
        except ValueError as exc:
            raise ValidationError(f"Invalid date for {field}: {value}") from exc


def parse_datetime(value, field: str) -> datetime | None:
    """Parse an ISO datetime string; a bare date means midnight."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError as exc:
        raise ValidationError(f"Invalid datetime for {field}: {value}") from exc
    # Stored naive in UTC.
    if parsed.tzinfo is not None:
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def parse_number(value, field: str, minimum: float | None = None) -> float | None:
    """Parse a numeric value, optionally enforcing a lower bound."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number")
    try:
        number = float(value)
    except (TypeError, ValueError) as exc:
        raise ValidationError(f"{field} must be a number") from exc
    if minimum is not None and number < minimum:
        raise ValidationError(f"{field} must be at least {minimum:g}")
    return number


def parse_choice(value, field: str, choices: tuple[str, ...]) -> str | None:
    """Return ``value`` if it is one of ``choices`` (None passes)."""
    if value is None or value == "":
        return None
    if value not in choices:
        raise ValidationError(f"Invalid {field}. Must be one of: {', '.join(choices)}")
    return value


def parse_string_list(value, field: str) -> list[str]:
    """Accept a list of strings or a comma-separated string."""
    if value is None:
        return []
    if isinstance(value, str):
        return [item.strip() for item in value.split(",") if item.strip()]
    if isinstance(value, (list, tuple)):
        return [str(item).strip() for item in value if str(item).strip()]
    raise ValidationError(f"{field} must be a list")
