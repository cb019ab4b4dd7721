"""Unit tests for business-day calendar arithmetic."""

from __future__ import annotations

from datetime import date, datetime

import pytest

from buildplan.errors import ParseError, ValidationError
from buildplan.scheduling.calendar import (
    add_business_days,
    business_day_offset,
    business_days_between,
    calculate_end_date,
    days_between,
    format_date_range,
    is_business_day,
    parse_date,
)

FRIDAY = date(2025, 1, 31)
SATURDAY = date(2025, 2, 1)
SUNDAY = date(2025, 2, 2)
MONDAY = date(2025, 2, 3)


class TestParseDate:
    def test_date_passthrough(self) -> None:
        assert parse_date(MONDAY) is MONDAY

    def test_datetime_drops_time(self) -> None:
        assert parse_date(datetime(2025, 2, 3, 23, 59)) == MONDAY

    def test_iso_string(self) -> None:
        assert parse_date("2025-02-03") == MONDAY

    def test_iso_datetime_string_is_truncated(self) -> None:
        """Time and offset never shift the calendar day."""
        assert parse_date("2025-02-03T23:30:00-08:00") == MONDAY
        assert parse_date("2025-02-03 00:15:00") == MONDAY

    @pytest.mark.parametrize("value", ["", "not-a-date", "2025-13-01", "03/02/2025"])
    def test_invalid_strings_raise(self, value: str) -> None:
        with pytest.raises(ParseError) as exc_info:
            parse_date(value)
        assert exc_info.value.value == value

    def test_unsupported_type_raises(self) -> None:
        with pytest.raises(ParseError):
            parse_date(20250203)  # type: ignore[arg-type]

    def test_parse_error_is_a_validation_error(self) -> None:
        with pytest.raises(ValidationError, match="Invalid date format"):
            parse_date("tomorrow")


class TestCalendarDays:
    def test_days_between_is_signed(self) -> None:
        assert days_between(FRIDAY, MONDAY) == 3
        assert days_between(MONDAY, FRIDAY) == -3


class TestBusinessDays:
    def test_weekend_detection(self) -> None:
        assert is_business_day(FRIDAY)
        assert not is_business_day(SATURDAY)
        assert not is_business_day(SUNDAY)
        assert is_business_day(MONDAY)

    def test_add_zero_returns_input(self) -> None:
        assert add_business_days(SATURDAY, 0) == SATURDAY
        assert add_business_days(MONDAY, 0) == MONDAY

    def test_add_skips_weekend(self) -> None:
        assert add_business_days(FRIDAY, 1) == MONDAY
        assert add_business_days(SATURDAY, 1) == MONDAY
        assert add_business_days(SUNDAY, 1) == MONDAY

    def test_add_across_multiple_weeks(self) -> None:
        assert add_business_days(MONDAY, 5) == date(2025, 2, 10)
        assert add_business_days(MONDAY, 10) == date(2025, 2, 17)
        assert add_business_days(SATURDAY, 10) == date(2025, 2, 14)

    def test_add_negative_raises(self) -> None:
        with pytest.raises(ValueError):
            add_business_days(MONDAY, -1)

    def test_between_is_inclusive(self) -> None:
        assert business_days_between(MONDAY, MONDAY) == 1
        assert business_days_between(MONDAY, date(2025, 2, 9)) == 5
        assert business_days_between(FRIDAY, MONDAY) == 2

    def test_between_weekend_only(self) -> None:
        assert business_days_between(SATURDAY, SUNDAY) == 0

    def test_between_reversed_range(self) -> None:
        assert business_days_between(date(2025, 2, 9), MONDAY) == 0

    def test_between_long_range(self) -> None:
        assert business_days_between(date(2025, 1, 1), date(2025, 12, 31)) == 261

    def test_offset_from_weekend_start(self) -> None:
        assert business_day_offset(SATURDAY, date(2025, 2, 5)) == 3
        assert business_day_offset(SATURDAY, date(2025, 2, 11)) == 7

    def test_offset_of_same_or_earlier_day(self) -> None:
        assert business_day_offset(MONDAY, MONDAY) == 0
        assert business_day_offset(MONDAY, FRIDAY) == 0

    @pytest.mark.parametrize("start", [FRIDAY, SATURDAY, SUNDAY, MONDAY])
    @pytest.mark.parametrize("days", [1, 4, 5, 6, 13])
    def test_offset_inverts_add(self, start: date, days: int) -> None:
        assert business_day_offset(start, add_business_days(start, days)) == days


class TestEndDate:
    def test_duration_plus_buffer(self) -> None:
        assert calculate_end_date(MONDAY, 5, 1) == date(2025, 2, 11)

    def test_zero_duration(self) -> None:
        assert calculate_end_date(SATURDAY, 0) == SATURDAY


class TestFormatDateRange:
    def test_formats_both_ends(self) -> None:
        assert format_date_range(MONDAY, date(2025, 3, 14)) == "Feb 3, 2025 - Mar 14, 2025"

    def test_missing_end(self) -> None:
        assert format_date_range(MONDAY, None) == "Not set"
        assert format_date_range(None, None) == "Not set"
