"""Business-day calendar arithmetic for phase and task scheduling.

All functions operate on calendar dates (datetime.date). Dates are wall-clock
days; no timezone conversion is ever applied. A business day is Monday to
Friday; no holiday calendar is considered.

Example:
    >>> from datetime import date
    >>> add_business_days(date(2025, 1, 31), 1)  # Friday -> Monday
    datetime.date(2025, 2, 3)
    >>> business_days_between(date(2025, 2, 3), date(2025, 2, 9))
    5
"""

from __future__ import annotations

from datetime import date, datetime, timedelta

from buildplan.errors import ParseError

ONE_DAY = timedelta(days=1)

# date.weekday(): Monday == 0 ... Sunday == 6
_WEEKEND = frozenset({5, 6})


def is_business_day(day: date) -> bool:
    """Return True when day falls Monday through Friday."""
    return day.weekday() not in _WEEKEND


def parse_date(value: date | datetime | str) -> date:
    """Normalize a date-like value to a calendar date.

    Accepts a date, a datetime (the time component is dropped) or an ISO
    string. ISO datetime strings are truncated to their date part.

    Args:
        value: The value to normalize.

    Returns:
        The calendar date.

    Raises:
        ParseError: If value is not a recognizable date.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        if len(text) > 10 and text[10] in "T ":
            text = text[:10]
        try:
            return date.fromisoformat(text)
        except ValueError:
            raise ParseError(value) from None
    raise ParseError(value)


def days_between(start: date, end: date) -> int:
    """Signed number of calendar days from start to end."""
    return (end - start).days


def add_business_days(day: date, days: int) -> date:
    """Return the date that is `days` business days after `day`.

    Weekends are skipped. Zero returns the input unchanged, even when the
    input itself falls on a weekend.

    Raises:
        ValueError: If days is negative.
    """
    if days < 0:
        raise ValueError(f"Business day count must be non-negative, got {days}")

    result = day
    remaining = days
    while remaining > 0:
        result += ONE_DAY
        if is_business_day(result):
            remaining -= 1
    return result


def business_days_between(start: date, end: date) -> int:
    """Count weekdays in the inclusive range [start, end].

    Returns 0 when end precedes start.
    """
    if end < start:
        return 0
    total_days = (end - start).days + 1
    full_weeks, extra = divmod(total_days, 7)
    count = full_weeks * 5
    weekday = start.weekday()
    for offset in range(extra):
        if (weekday + offset) % 7 not in _WEEKEND:
            count += 1
    return count


def business_day_offset(start: date, end: date) -> int:
    """Count weekdays in the half-open range (start, end].

    This is the inverse of add_business_days: when end is a business day
    after start, add_business_days(start, business_day_offset(start, end))
    returns end.
    Returns 0 when end is on or before start.
    """
    if end <= start:
        return 0
    return business_days_between(start + ONE_DAY, end)


def calculate_end_date(start: date, duration_days: int, buffer_days: int = 0) -> date:
    """Effective end date: start advanced by duration plus buffer business days."""
    return add_business_days(start, duration_days + buffer_days)


def format_date_range(start: date | None, end: date | None) -> str:
    """Format a date range for display, e.g. "Feb 3, 2025 - Mar 14, 2025"."""
    if start is None or end is None:
        return "Not set"
    return f"{_display(start)} - {_display(end)}"


def _display(day: date) -> str:
    return f"{day.strftime('%b')} {day.day}, {day.year}"
