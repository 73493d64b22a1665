"""
Timezone and calendar utilities for partitioning shifts by local day, week and year.

Shift timestamps may arrive naive (already local wall-clock time) or aware
(any zone). Calendar questions - "which day", "which week", "which year" - are
always answered in the tracker's configured timezone for aware values, and
taken at face value for naive ones.
"""

from datetime import date, datetime, timedelta, timezone
from typing import Optional, Tuple, Union
from zoneinfo import ZoneInfo


def from_utc_to_local(utc_dt: datetime, tz: str) -> datetime:
    """
    Convert UTC datetime to local datetime in the specified timezone.

    Args:
        utc_dt: UTC datetime (naive values are treated as UTC)
        tz: IANA timezone string (e.g., 'America/New_York', 'America/Los_Angeles')

    Returns:
        datetime: Local datetime in the specified timezone
    """
    if utc_dt.tzinfo is None:
        utc_dt = utc_dt.replace(tzinfo=timezone.utc)

    return utc_dt.astimezone(ZoneInfo(tz))


def local_date(dt: datetime, tz: str) -> date:
    """Calendar day of a shift timestamp (naive values are already local)."""
    if dt.tzinfo is None:
        return dt.date()
    return dt.astimezone(ZoneInfo(tz)).date()


def calendar_day(value: Union[date, datetime], tz: str) -> date:
    """A date argument as given; a datetime reduced to its local day (time-of-day ignored)."""
    if isinstance(value, datetime):
        return local_date(value, tz)
    return value


def week_start_for(day: date, week_start_day: int) -> date:
    """
    Anchor date of the 7-day window containing `day`.

    Args:
        day: any calendar day
        week_start_day: 0=Monday ... 6=Sunday (same numbering as date.weekday())

    Returns:
        date: the most recent `week_start_day` on or before `day`
    """
    offset = (day.weekday() - week_start_day) % 7
    return day - timedelta(days=offset)


def get_week_range(day: date, week_start_day: int) -> Tuple[date, date]:
    """
    Get the inclusive (first, last) days of the week containing `day`.

    A Sunday shift belongs to the week that started the previous Monday when
    weeks start on Monday, and opens a new week when weeks start on Sunday.
    """
    start = week_start_for(day, week_start_day)
    return start, start + timedelta(days=6)


def align_timezone(dt: datetime, reference: datetime, tz: str) -> datetime:
    """
    Return `dt` with the same awareness as `reference` so the two can be compared.

    Naive values are read as wall-clock time in `tz`; aware values headed for a
    naive reference are converted to `tz` and stripped.
    """
    if (dt.tzinfo is None) == (reference.tzinfo is None):
        return dt
    if dt.tzinfo is None:
        return ensure_timezone_aware(dt, tz)
    return from_utc_to_local(dt, tz).replace(tzinfo=None)


def advance_past(previous: datetime, now: datetime, tz: str) -> datetime:
    """`now`, or one microsecond after `previous` when the clock has not moved past it."""
    floor = align_timezone(previous, now, tz)
    if now > floor:
        return now
    return floor + timedelta(microseconds=1)


def validate_timezone(tz: str) -> bool:
    """
    Validate if the timezone string is a valid IANA timezone.

    Args:
        tz: IANA timezone string to validate

    Returns:
        bool: True if valid, False otherwise
    """
    try:
        ZoneInfo(tz)
        return True
    except Exception:
        return False


def get_default_timezone() -> str:
    """Default timezone when none is configured (US Eastern)."""
    return "America/New_York"


def ensure_timezone_aware(dt: datetime, default_tz: Optional[str] = None) -> datetime:
    """
    Ensure a datetime is timezone-aware, defaulting to UTC if naive.

    Args:
        dt: datetime object
        default_tz: Optional default timezone if dt is naive

    Returns:
        datetime: timezone-aware datetime
    """
    if dt.tzinfo is None:
        if default_tz:
            return dt.replace(tzinfo=ZoneInfo(default_tz))
        else:
            return dt.replace(tzinfo=timezone.utc)
    return dt
