"""Datetime utilities with consistent UTC timezone handling.

Every timestamp stored locally or exchanged with the server goes through
these helpers so comparisons never mix naive and aware values.
"""

from datetime import datetime, timezone
from typing import Optional


def now_utc() -> datetime:
    """Return current datetime in UTC timezone.

    Returns:
        Current datetime with timezone=UTC
    """
    return datetime.now(timezone.utc)


def ensure_aware(dt: Optional[datetime]) -> Optional[datetime]:
    """Ensure datetime is timezone-aware, assuming UTC if naive.

    Args:
        dt: Datetime to check/convert, or None

    Returns:
        Timezone-aware datetime in UTC, or None if input was None
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        # Naive datetime - assume UTC
        return dt.replace(tzinfo=timezone.utc)

    return dt


def to_iso_string(dt: Optional[datetime]) -> Optional[str]:
    """Convert datetime to ISO string with timezone info.

    Args:
        dt: Datetime to convert, or None

    Returns:
        ISO format string with timezone, or None if input was None
    """
    if dt is None:
        return None

    return ensure_aware(dt).isoformat()


def parse_iso(value: Optional[str]) -> Optional[datetime]:
    """Parse an ISO-8601 string into an aware datetime.

    Accepts the trailing ``Z`` designator that servers commonly emit.

    Args:
        value: ISO string, or None

    Returns:
        Timezone-aware datetime, or None if the value is empty or invalid
    """
    if not value:
        return None
    if isinstance(value, datetime):
        return ensure_aware(value)

    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        return ensure_aware(datetime.fromisoformat(text))
    except ValueError:
        return None


def parse_date_with_tz(date_str: str, date_format: str = "%Y-%m-%d") -> datetime:
    """Parse date string and ensure it's timezone-aware (UTC).

    Args:
        date_str: Date string to parse
        date_format: Format string for parsing (default: YYYY-MM-DD)

    Returns:
        Timezone-aware datetime in UTC
    """
    return ensure_aware(datetime.strptime(date_str, date_format))
