"""Date parsing utilities."""

from datetime import UTC, date, datetime, time, timedelta
from typing import Optional

from dateutil import parser as date_parser
from dateutil.relativedelta import relativedelta

from payledger.domain.errors import ParseError


def _month_start(day: date) -> date:
    return day.replace(day=1)


def _year_start(day: date) -> date:
    return day.replace(month=1, day=1)


# Relative expressions accepted by parse_date, each resolving to a day.
RELATIVE_DATES = {
    "today": lambda today: today,
    "yesterday": lambda today: today - timedelta(days=1),
    "tomorrow": lambda today: today + timedelta(days=1),
    "this week": lambda today: today - timedelta(days=today.weekday()),
    "this month": _month_start,
    "this year": _year_start,
    "last week": lambda today: today - timedelta(days=today.weekday() + 7),
    "last month": lambda today: _month_start(today - relativedelta(months=1)),
    "last year": lambda today: _year_start(today) - relativedelta(years=1),
}

# Report periods as (start, end) pairs.
PERIOD_RANGES = {
    "this-month": lambda today: (_month_start(today), today),
    "this-year": lambda today: (_year_start(today), today),
    "last-month": lambda today: (
        _month_start(today - relativedelta(months=1)),
        _month_start(today) - timedelta(days=1),
    ),
    "last-year": lambda today: (
        _year_start(today) - relativedelta(years=1),
        _year_start(today) - timedelta(days=1),
    ),
}


def parse_date(date_str: str, today: Optional[date] = None) -> date:
    """Parse a date typed by an operator.

    Accepts anything python-dateutil understands ("2024-01-15",
    "January 15, 2024") plus the relative forms in ``RELATIVE_DATES``
    such as "yesterday" or "last month" (the first day of that month).

    Raises:
        ValueError: If date string cannot be parsed
    """
    text = date_str.strip().lower()
    today = today or date.today()

    if text in RELATIVE_DATES:
        return RELATIVE_DATES[text](today)

    try:
        return date_parser.parse(text).date()
    except (ValueError, TypeError, OverflowError) as e:
        raise ValueError(f"Could not parse date '{date_str}': {e}")


def get_date_range(period: str, today: Optional[date] = None) -> tuple[date, date]:
    """Return the inclusive ``(start, end)`` days of a named report period.

    Raises:
        ValueError: If period string is not recognized
    """
    key = period.strip().lower()
    if key not in PERIOD_RANGES:
        raise ValueError(f"Unknown period: '{period}'. Supported periods: {', '.join(PERIOD_RANGES)}")
    return PERIOD_RANGES[key](today or date.today())


def parse_iso_date(value: str) -> date:
    """Parse a strict ISO 8601 date (``YYYY-MM-DD``) from a statement.

    Raises:
        ParseError: If the value is not an ISO date
    """
    try:
        return date.fromisoformat(value.strip())
    except (ValueError, AttributeError) as e:
        raise ParseError(f"Invalid date '{value}': {e}")


def parse_iso_datetime(value: str) -> datetime:
    """Parse an ISO 8601 timestamp; naive values are taken as UTC.

    Raises:
        ParseError: If the value is not an ISO timestamp
    """
    try:
        parsed = date_parser.isoparse(value.strip())
    except (ValueError, AttributeError, OverflowError) as e:
        raise ParseError(f"Invalid timestamp '{value}': {e}")
    return ensure_utc(parsed)


def ensure_utc(value: datetime) -> datetime:
    """Return ``value`` as an aware UTC datetime; naive input is assumed UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def start_of_day(value: date) -> datetime:
    """Midnight UTC at the start of ``value``."""
    return datetime.combine(value, time.min, tzinfo=UTC)


def end_of_day_exclusive(value: Optional[date]) -> Optional[datetime]:
    """Midnight UTC after ``value``, for half-open date ranges."""
    if value is None:
        return None
    return start_of_day(value + timedelta(days=1))
