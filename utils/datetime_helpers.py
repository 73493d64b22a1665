from datetime import date, datetime, time, timezone
from typing import Optional


def format_utc_datetime(dt: Optional[datetime]) -> Optional[str]:
    """
    Format a shift timestamp as an ISO 8601 string.

    Timezone-aware values are converted to UTC and given a 'Z' suffix. Naive
    values are local wall-clock readings entered by the driver, so they are
    emitted unchanged rather than guessed into UTC.

    Args:
        dt: A datetime object or None

    Returns:
        An ISO 8601 formatted string, or None if the input is None.
    """
    if dt is None:
        return None

    if dt.tzinfo is None:
        return dt.isoformat()

    iso_string = dt.astimezone(timezone.utc).isoformat()

    if iso_string.endswith("+00:00"):
        return iso_string.replace("+00:00", "Z")

    return iso_string


def combine_date_time(day: Optional[date], time_of_day: Optional[time]) -> Optional[datetime]:
    """Join the separate date and time pickers of a shift form; None if either is missing."""
    if day is None or time_of_day is None:
        return None
    return datetime.combine(day, time_of_day)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)
