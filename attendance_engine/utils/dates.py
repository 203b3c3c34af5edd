"""Calendar date helpers shared by the report and alert engines."""

import re
from datetime import date, timedelta
from enum import Enum

from attendance_engine.exceptions import InvalidDateError

DATE_ISO_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class RelativePeriod(str, Enum):
    """Relative periods understood by report filters."""

    TODAY = "today"
    YESTERDAY = "yesterday"
    WEEK = "week"
    MONTH = "month"
    LAST_30_DAYS = "30days"
    YEAR = "year"


def is_date_iso(value: object) -> bool:
    """Check that a value is a strict YYYY-MM-DD string naming a real day.

    The string is parsed into a calendar date and re-serialised; only an exact
    round trip is accepted, so "2025-02-30" and "25-2-28" are both rejected.
    """
    if not isinstance(value, str) or not DATE_ISO_PATTERN.match(value):
        return False
    year, month, day = (int(part) for part in value.split("-"))
    try:
        parsed = date(year, month, day)
    except ValueError:
        return False
    return (parsed.year, parsed.month, parsed.day) == (year, month, day)


def parse_date_iso(value: object) -> date:
    """Parse a strict ISO date string.

    Raises:
        InvalidDateError: If the value is not a real YYYY-MM-DD date
    """
    if not is_date_iso(value):
        raise InvalidDateError(value)
    return date.fromisoformat(value)


def is_weekend(day: date) -> bool:
    """Check if a date falls on Saturday or Sunday."""
    return day.weekday() >= 5


def resolve_relative_period(period: RelativePeriod, today: date) -> tuple[date, date]:
    """Resolve a relative period into an inclusive (start, end) date range."""
    match period:
        case RelativePeriod.TODAY:
            return today, today
        case RelativePeriod.YESTERDAY:
            yesterday = today - timedelta(days=1)
            return yesterday, yesterday
        case RelativePeriod.WEEK:
            # ISO week, Monday to Sunday
            start = today - timedelta(days=today.weekday())
            return start, start + timedelta(days=6)
        case RelativePeriod.MONTH:
            start = today.replace(day=1)
            next_month = (start + timedelta(days=32)).replace(day=1)
            return start, next_month - timedelta(days=1)
        case RelativePeriod.LAST_30_DAYS:
            return today - timedelta(days=29), today
        case RelativePeriod.YEAR:
            return date(today.year, 1, 1), date(today.year, 12, 31)


def previous_period(start: date, end: date) -> tuple[date, date]:
    """Get the period of equal length immediately preceding [start, end]."""
    length = (end - start).days + 1
    previous_end = start - timedelta(days=1)
    return previous_end - timedelta(days=length - 1), previous_end


def iter_days(start: date, end: date):
    """Yield every date from start to end inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)
