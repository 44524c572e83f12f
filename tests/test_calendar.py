"""
Tests for season calendar arithmetic.
"""
import pytest
from datetime import date, datetime

import pytz

from commonmeal.core.calendar import (
    age_on,
    cancellation_deadline,
    compute_cooking_dates,
    dining_mode_deadline,
    dinner_start_time,
    is_before_deadline,
    local_date,
    normalize_weekdays,
    parse_date_range,
    to_db_timestamp,
)


class TestDinnerStartTime:
    """Dinner start is local DINNER_START_HOUR converted to UTC."""

    def test_winter_time(self):
        assert dinner_start_time(date(2024, 3, 20), "Europe/Copenhagen", 18) == datetime(
            2024, 3, 20, 17, 0, tzinfo=pytz.UTC
        )

    def test_summer_time(self):
        assert dinner_start_time(date(2024, 7, 1), "Europe/Copenhagen", 18) == datetime(
            2024, 7, 1, 16, 0, tzinfo=pytz.UTC
        )


class TestDeadlines:
    def test_cancellation_deadline_days_before(self):
        deadline = cancellation_deadline(date(2024, 3, 20), 8)
        assert deadline == datetime(2024, 3, 12, 17, 0, tzinfo=pytz.UTC)

    def test_dining_mode_deadline_minutes_before(self):
        deadline = dining_mode_deadline(date(2024, 3, 20), 90)
        assert deadline == datetime(2024, 3, 20, 15, 30, tzinfo=pytz.UTC)

    def test_deadline_is_inclusive(self):
        deadline = datetime(2024, 3, 12, 17, 0, tzinfo=pytz.UTC)
        assert is_before_deadline(deadline, deadline)
        assert not is_before_deadline(datetime(2024, 3, 12, 17, 0, 1, tzinfo=pytz.UTC), deadline)

    def test_naive_now_is_treated_as_utc(self):
        deadline = datetime(2024, 3, 12, 17, 0, tzinfo=pytz.UTC)
        assert is_before_deadline(datetime(2024, 3, 12, 16, 59), deadline)


class TestCookingDates:
    def test_weekdays_within_range(self):
        # 2024-09-02 is a Monday
        dates = compute_cooking_dates(date(2024, 9, 2), date(2024, 9, 15), ["monday", "thursday"])
        assert dates == [date(2024, 9, 2), date(2024, 9, 5), date(2024, 9, 9), date(2024, 9, 12)]

    def test_holidays_are_excluded(self):
        dates = compute_cooking_dates(
            date(2024, 9, 2),
            date(2024, 9, 15),
            ["monday", "thursday"],
            [(date(2024, 9, 5), date(2024, 9, 9))],
        )
        assert dates == [date(2024, 9, 2), date(2024, 9, 12)]


class TestWeekdayNormalization:
    def test_sorted_in_week_order(self):
        assert normalize_weekdays(["Thursday", " monday "]) == ["monday", "thursday"]

    def test_unknown_weekday_rejected(self):
        with pytest.raises(ValueError, match="funday"):
            normalize_weekdays(["monday", "funday"])


class TestHelpers:
    def test_parse_date_range(self):
        assert parse_date_range({"start": "2024-10-14", "end": "2024-10-20"}) == (
            date(2024, 10, 14),
            date(2024, 10, 20),
        )

    def test_parse_date_range_rejects_reversed(self):
        with pytest.raises(ValueError):
            parse_date_range({"start": "2024-10-20", "end": "2024-10-14"})

    def test_age_on_birthday_boundary(self):
        assert age_on(date(2012, 5, 10), date(2024, 5, 9)) == 11
        assert age_on(date(2012, 5, 10), date(2024, 5, 10)) == 12

    def test_local_date_crosses_midnight(self):
        # 23:30 UTC on Jan 1 is already Jan 2 in Copenhagen
        assert local_date(datetime(2024, 1, 1, 23, 30, tzinfo=pytz.UTC), "Europe/Copenhagen") == date(2024, 1, 2)

    def test_db_timestamp_is_naive_utc(self):
        stamp = to_db_timestamp(pytz.timezone("Europe/Copenhagen").localize(datetime(2024, 1, 2, 0, 30)))
        assert stamp == datetime(2024, 1, 1, 23, 30)
        assert stamp.tzinfo is None
