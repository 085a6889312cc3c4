"""Tests for weektally.core.periods: period boundaries and date keys."""

from datetime import date, datetime

import pytest

from weektally.core.periods import (
    in_period,
    is_valid_date_key,
    parse_date_key,
    period_days,
    period_end,
    period_start,
)


class TestPeriodStart:
    def test_sunday_start_for_a_monday(self):
        assert period_start("2025-03-10", "Sunday") == "2025-03-09"

    def test_monday_start_for_a_monday(self):
        assert period_start("2025-03-10", "Monday") == "2025-03-10"

    def test_sunday_is_its_own_start(self):
        assert period_start("2025-03-09", "Sunday") == "2025-03-09"

    def test_sunday_with_monday_start_goes_back_six_days(self):
        assert period_start("2025-03-16", "Monday") == "2025-03-10"

    def test_saturday_with_sunday_start(self):
        assert period_start("2025-03-15", "Sunday") == "2025-03-09"

    def test_crosses_month_and_year(self):
        assert period_start("2025-01-02", "Sunday") == "2024-12-29"

    def test_defaults_to_sunday(self):
        assert period_start("2025-03-12") == "2025-03-09"

    def test_accepts_date_and_datetime(self):
        assert period_start(date(2025, 3, 10), "Sunday") == "2025-03-09"
        assert period_start(datetime(2025, 3, 10, 23, 59), "Sunday") == "2025-03-09"

    @pytest.mark.parametrize("day", [
        "2025-03-08", "2025-03-09", "2025-03-10", "2025-03-13", "2025-03-15", "2024-02-29",
    ])
    @pytest.mark.parametrize("weekday", ["Sunday", "Monday"])
    def test_idempotent(self, day, weekday):
        start = period_start(day, weekday)
        assert period_start(start, weekday) == start

    def test_invalid_weekday_raises(self):
        with pytest.raises(ValueError):
            period_start("2025-03-10", "Tuesday")

    def test_malformed_day_raises(self):
        with pytest.raises(ValueError):
            period_start("03/10/2025", "Sunday")


class TestPeriodRange:
    def test_end_is_six_days_after_start(self):
        assert period_end("2025-03-09") == "2025-03-15"

    def test_end_crosses_month(self):
        assert period_end("2025-02-23") == "2025-03-01"

    def test_period_days(self):
        days = period_days("2025-03-09")
        assert len(days) == 7
        assert days[0] == "2025-03-09"
        assert days[-1] == "2025-03-15"

    def test_in_period(self):
        assert in_period("2025-03-09", "2025-03-09")
        assert in_period("2025-03-15", "2025-03-09")
        assert not in_period("2025-03-08", "2025-03-09")
        assert not in_period("2025-03-16", "2025-03-09")


class TestDateKeys:
    def test_parse(self):
        assert parse_date_key("2025-03-10") == date(2025, 3, 10)

    @pytest.mark.parametrize("key", ["2025-3-10", "2025-02-30", "", None, 20250310, "2025-03-10T00:00"])
    def test_invalid(self, key):
        assert not is_valid_date_key(key)

    def test_valid(self):
        assert is_valid_date_key("2024-02-29")
