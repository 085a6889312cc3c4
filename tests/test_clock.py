"""Tests for weektally.core.clock: SystemClock and its fixed mode."""

from datetime import date, datetime

import pytest

from weektally.core.clock import SystemClock


class TestFixedClock:
    def test_bare_date_is_local_midnight(self):
        clock = SystemClock()
        clock.set_fixed("2025-03-10")
        assert clock.now() == datetime(2025, 3, 10, 0, 0, 0)
        assert clock.now_as_date_key() == "2025-03-10"

    def test_datetime_string(self):
        clock = SystemClock(fixed="2025-03-10T23:59:00")
        assert clock.now_as_date_key() == "2025-03-10"

    def test_date_object(self):
        clock = SystemClock(fixed=date(2025, 3, 9))
        assert clock.now() == datetime(2025, 3, 9)

    def test_timestamp_matches_now(self):
        clock = SystemClock(fixed=datetime(2025, 3, 10, 9, 30))
        assert clock.timestamp_ms() == int(datetime(2025, 3, 10, 9, 30).timestamp() * 1000)

    def test_is_fixed_and_clear(self):
        clock = SystemClock(fixed="2025-03-10")
        assert clock.is_fixed
        clock.clear_fixed()
        assert not clock.is_fixed
        assert clock.now_as_date_key() == date.today().isoformat()

    def test_instances_are_independent(self):
        fixed = SystemClock(fixed="2020-01-01")
        real = SystemClock()
        assert fixed.now_as_date_key() == "2020-01-01"
        assert not real.is_fixed

    def test_rejects_unsupported_type(self):
        with pytest.raises(TypeError):
            SystemClock().set_fixed(12345)

    def test_rejects_malformed_string(self):
        with pytest.raises(ValueError):
            SystemClock().set_fixed("not-a-date")
