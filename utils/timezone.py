"""UTC-everywhere time handling. Expiry checks and numbering years all read from here."""

from datetime import datetime, timedelta, timezone


def now_utc() -> datetime:
    """
    Current time in UTC.

    Use this instead of datetime.now() everywhere.
    """
    return datetime.now(timezone.utc)


def to_utc(dt: datetime) -> datetime:
    """
    Convert a datetime to UTC.

    Raises ValueError if datetime is naive (no timezone).
    """
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot convert naive datetime to UTC. Datetime must be timezone-aware."
        )
    return dt.astimezone(timezone.utc)


def parse_iso(iso_string: str) -> datetime:
    """
    Parse ISO 8601 datetime string to UTC datetime.

    Raises ValueError if string has no timezone info.
    """
    dt = datetime.fromisoformat(iso_string)
    if dt.tzinfo is None:
        raise ValueError(
            "Cannot parse naive datetime string. "
            "Include timezone offset (e.g., 'Z' or '+00:00')."
        )
    return to_utc(dt)


def days_from_now(days: int) -> datetime:
    """UTC timestamp `days` whole days after now."""
    return now_utc() + timedelta(days=days)


def month_start(dt: datetime, months_back: int = 0) -> datetime:
    """
    First instant of the month containing dt, optionally shifted back.

    month_start(dt, 1) is the start of the previous month.
    """
    dt = to_utc(dt)
    month_index = dt.year * 12 + (dt.month - 1) - months_back
    year, month = divmod(month_index, 12)
    return datetime(year, month + 1, 1, tzinfo=timezone.utc)
