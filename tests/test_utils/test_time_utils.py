"""Tests for date helpers, especially the 1 = Sunday day-of-week encoding."""

from __future__ import annotations

from datetime import date, timezone

import pytest

from stocktwin.utils.time_utils import (
    is_weekend_day,
    period_bounds,
    sales_day_of_week,
    trailing_dates,
    utcnow,
)


class TestSalesDayOfWeek:
    @pytest.mark.parametrize(
        "d, expected",
        [
            (date(2026, 10, 18), 1),  # Sunday
            (date(2026, 10, 19), 2),  # Monday
            (date(2026, 10, 23), 6),  # Friday
            (date(2026, 10, 24), 7),  # Saturday
        ],
    )
    def test_encoding(self, d, expected):
        assert sales_day_of_week(d) == expected

    def test_weekend_days(self):
        assert is_weekend_day(1)
        assert is_weekend_day(7)
        assert not any(is_weekend_day(d) for d in range(2, 7))


class TestTrailingDates:
    def test_most_recent_first(self):
        dates = trailing_dates(date(2026, 10, 18), 3)
        assert dates == [date(2026, 10, 18), date(2026, 10, 17), date(2026, 10, 16)]

    def test_crosses_month_boundary(self):
        assert trailing_dates(date(2026, 10, 1), 2)[-1] == date(2026, 9, 30)

    def test_zero_days_rejected(self):
        with pytest.raises(ValueError):
            trailing_dates(date(2026, 10, 18), 0)


class TestPeriodBounds:
    def test_seven_day_window(self):
        assert period_bounds(date(2026, 10, 18), 7) == (date(2026, 10, 18), date(2026, 10, 25))


def test_utcnow_is_timezone_aware():
    assert utcnow().tzinfo == timezone.utc
