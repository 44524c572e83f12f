"""
Centralized season calendar logic.

Dinner deadlines are measured from the dinner start time, which is the
event date at DINNER_START_HOUR in the community's local timezone.

Example: with ticketIsCancellableDaysBefore = 8 and dinners at 18:00
Europe/Copenhagen, a dinner on Mar 20 can be released until Mar 12 18:00
local time (17:00 UTC).
"""
from datetime import date, datetime, timedelta
from typing import Iterable, List, Optional, Sequence

import pytz

from commonmeal.core.config import get_settings


WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]


def utcnow() -> datetime:
    """Timezone-aware current time in UTC."""
    return datetime.now(pytz.UTC)


def to_utc(dt: datetime) -> datetime:
    """
    Normalize a datetime to aware UTC.

    Naive datetimes are assumed to already be UTC, which is how they are
    stored in the database.
    """
    if dt.tzinfo is None:
        return pytz.UTC.localize(dt)
    return dt.astimezone(pytz.UTC)


def to_db_timestamp(dt: datetime) -> datetime:
    """Convert to the naive UTC form used by DateTime columns."""
    return to_utc(dt).replace(tzinfo=None)


def local_date(dt: datetime, community_timezone: Optional[str] = None) -> date:
    """The calendar date of an instant in the community's timezone."""
    tz = pytz.timezone(community_timezone or get_settings().COMMUNITY_TIMEZONE)
    return to_utc(dt).astimezone(tz).date()


def dinner_start_time(
    dinner_date: date,
    community_timezone: Optional[str] = None,
    start_hour: Optional[int] = None,
) -> datetime:
    """
    Instant the dinner starts, as aware UTC.

    Examples:
        >>> dinner_start_time(date(2024, 3, 20), "Europe/Copenhagen", 18)
        datetime.datetime(2024, 3, 20, 17, 0, tzinfo=<UTC>)
        >>> dinner_start_time(date(2024, 7, 1), "Europe/Copenhagen", 18)  # summer time
        datetime.datetime(2024, 7, 1, 16, 0, tzinfo=<UTC>)
    """
    settings = get_settings()
    tz = pytz.timezone(community_timezone or settings.COMMUNITY_TIMEZONE)
    hour = settings.DINNER_START_HOUR if start_hour is None else start_hour
    local_start = tz.localize(datetime(dinner_date.year, dinner_date.month, dinner_date.day, hour, 0))
    return local_start.astimezone(pytz.UTC)


def dinner_end_time(dinner_date: date, duration_minutes: Optional[int] = None) -> datetime:
    """Instant the dinner window closes, as aware UTC."""
    minutes = get_settings().DINNER_DURATION_MINUTES if duration_minutes is None else duration_minutes
    return dinner_start_time(dinner_date) + timedelta(minutes=minutes)


def cancellation_deadline(dinner_date: date, days_before: int) -> datetime:
    """Last instant an order for this dinner may be released or cancelled by its owner."""
    return dinner_start_time(dinner_date) - timedelta(days=days_before)


def dining_mode_deadline(dinner_date: date, minutes_before: int) -> datetime:
    """Last instant the dining mode of an order for this dinner may change."""
    return dinner_start_time(dinner_date) - timedelta(minutes=minutes_before)


def is_before_deadline(now: datetime, deadline: datetime) -> bool:
    """Deadlines are inclusive: a request exactly at the deadline is still on time."""
    return to_utc(now) <= to_utc(deadline)


def weekday_name(d: date) -> str:
    return WEEKDAYS[d.weekday()]


def normalize_weekdays(days: Iterable[str]) -> List[str]:
    """
    Validate weekday names and return them in week order.

    >>> normalize_weekdays(["Thursday", "monday"])
    ['monday', 'thursday']
    """
    wanted = {d.strip().lower() for d in days}
    unknown = wanted - set(WEEKDAYS)
    if unknown:
        raise ValueError(f"Unknown weekday(s): {', '.join(sorted(unknown))}")
    return [d for d in WEEKDAYS if d in wanted]


def parse_date_range(raw: dict) -> tuple[date, date]:
    """Parse a stored {"start": ISO date, "end": ISO date} holiday range."""
    start = raw["start"] if isinstance(raw["start"], date) else date.fromisoformat(raw["start"])
    end = raw["end"] if isinstance(raw["end"], date) else date.fromisoformat(raw["end"])
    if end < start:
        raise ValueError(f"Date range ends before it starts: {start} - {end}")
    return start, end


def in_ranges(d: date, ranges: Sequence[tuple[date, date]]) -> bool:
    return any(start <= d <= end for start, end in ranges)


def each_day_on_weekdays(start: date, end: date, cooking_days: Sequence[str]) -> List[date]:
    """All dates in [start, end] whose weekday is one of cooking_days."""
    selected = set(cooking_days)
    days = []
    current = start
    while current <= end:
        if weekday_name(current) in selected:
            days.append(current)
        current += timedelta(days=1)
    return days


def compute_cooking_dates(
    season_start: date,
    season_end: date,
    cooking_days: Sequence[str],
    holidays: Sequence[tuple[date, date]] = (),
) -> List[date]:
    """Cooking dates of a season: selected weekdays in range, minus holidays."""
    return [
        d for d in each_day_on_weekdays(season_start, season_end, cooking_days)
        if not in_ranges(d, holidays)
    ]


def age_on(birth_date: date, on_date: date) -> int:
    """Whole years between birth_date and on_date."""
    years = on_date.year - birth_date.year
    if (on_date.month, on_date.day) < (birth_date.month, birth_date.day):
        years -= 1
    return years
