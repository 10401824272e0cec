"""Date and time-range helpers shared by every stage of the import."""

import math
from datetime import date, datetime, time, timedelta

from errors import FormatError, RangeError
from patterns import Patterns

TIME_FMT = "%H:%M:%S"
DATE_FMT = "%Y-%m-%d"


def parse_date(value: str) -> date:
    """Parse a strict YYYY-MM-DD string into a real calendar date."""
    value = (value or "").strip()
    if not Patterns.DATE_FORMAT.match(value):
        raise FormatError(f"Invalid date format '{value}', expected YYYY-MM-DD")
    try:
        return datetime.strptime(value, DATE_FMT).date()
    except ValueError:
        raise FormatError(f"Invalid calendar date '{value}'")


def parse_time(value: str) -> time:
    """Parse a strict HH:mm:ss string."""
    value = (value or "").strip()
    match = Patterns.TIME_FORMAT.match(value)
    if not match:
        raise FormatError(f"Invalid time format '{value}', expected HH:mm:ss")
    hour, minute, second = (int(part) for part in match.groups())
    return time(hour, minute, second)


def parse_instant(date_str: str, time_str: str) -> datetime:
    """Combine a date and a time-of-day string into a comparable instant."""
    return datetime.combine(parse_date(date_str), parse_time(time_str))


def overlaps(a_start, a_end, b_start, b_end) -> bool:
    """Half-open overlap test: ranges that only touch do not overlap."""
    return a_start < b_end and b_start < a_end


def round_quarter(hours: float) -> float:
    """Round hours to the nearest quarter hour, halves rounding up."""
    return math.floor(hours * 4 + 0.5) / 4


def duration_hours(start: datetime, end: datetime) -> float:
    """Hours between two instants, rounded to the nearest 0.25."""
    if end <= start:
        raise RangeError(f"End {end:%H:%M:%S} must be after start {start:%H:%M:%S}")
    return round_quarter((end - start).total_seconds() / 3600)


def hours_to_seconds(hours: float) -> int:
    return int(round(hours * 3600))


def add_seconds(day: date, start: time, seconds: int) -> datetime:
    return datetime.combine(day, start) + timedelta(seconds=seconds)


def format_time(value: time) -> str:
    return value.strftime(TIME_FMT)


def format_date(value: date) -> str:
    return value.strftime(DATE_FMT)


def start_of_previous_year(today: date) -> date:
    return date(today.year - 1, 1, 1)


def get_week_dates(week_str: str) -> tuple[date, date]:
    """Get start and end date (Mon-Sun) for a week string YYYYWW."""
    if not Patterns.WEEK_FORMAT.match(week_str):
        raise FormatError(f"Invalid week '{week_str}', expected YYYYWW")
    year = int(week_str[:4])
    week = int(week_str[4:])
    try:
        week_start = date.fromisocalendar(year, week, 1)
    except ValueError:
        raise FormatError(f"Week {week} does not exist in {year}")
    return week_start, week_start + timedelta(days=6)


def get_current_week() -> str:
    """Get current week as YYYYWW."""
    return datetime.now().strftime("%G%V")
