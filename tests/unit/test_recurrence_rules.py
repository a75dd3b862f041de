"""
Unit tests for recurrence rule evaluation.

Dates below are checked against a calendar: 2025-03-12 is a Wednesday,
2025-04-01 a Tuesday. Weekdays use 0 = Sunday.
"""

from datetime import datetime

import pytest
from dateutil import tz

from deal_scheduler.domain.recurring.rules import (
    Annual,
    Biweekly,
    Custom,
    MonthlyDate,
    MonthlyWeekday,
    Quarterly,
    SemiAnnual,
    Weekly,
    calculate_first_scheduled_date,
    calculate_upcoming_dates,
    is_date_in_future_utc,
    next_occurrence,
    rule_from_fields,
    should_mark_completed,
)

UTC = tz.UTC


def utc(year, month, day, hour=0, minute=0):
    return datetime(year, month, day, hour, minute, tzinfo=UTC)


class TestNextOccurrence:
    """Tests for next_occurrence per frequency."""

    def test_weekly_next_matching_weekday(self):
        assert next_occurrence(Weekly(day=5), utc(2025, 3, 12)) == utc(2025, 3, 14)

    def test_weekly_anchor_on_weekday_moves_a_full_week(self):
        assert next_occurrence(Weekly(day=3), utc(2025, 3, 12, 9)) == utc(2025, 3, 19)

    def test_biweekly_anchor_on_weekday(self):
        assert next_occurrence(Biweekly(day=3), utc(2025, 3, 12)) == utc(2025, 3, 26)

    def test_biweekly_skips_first_matching_weekday(self):
        assert next_occurrence(Biweekly(day=5), utc(2025, 3, 12)) == utc(2025, 3, 21)

    def test_monthly_weekday_passed_in_month_goes_to_next_month(self):
        # 2nd Tuesday of March is the 11th
        rule = MonthlyWeekday(day=2, week=2)
        assert next_occurrence(rule, utc(2025, 3, 12)) == utc(2025, 4, 8)

    def test_monthly_weekday_not_yet_passed_stays_in_month(self):
        rule = MonthlyWeekday(day=2, week=3)
        assert next_occurrence(rule, utc(2025, 3, 12)) == utc(2025, 3, 18)

    def test_monthly_weekday_missing_fifth_occurrence_uses_last(self):
        # April 2025 has only four Mondays
        rule = MonthlyWeekday(day=1, week=5)
        assert next_occurrence(rule, utc(2025, 3, 12)) == utc(2025, 3, 31)
        assert next_occurrence(rule, utc(2025, 3, 31)) == utc(2025, 4, 28)

    def test_monthly_date(self):
        assert next_occurrence(MonthlyDate(day=15), utc(2025, 3, 12)) == utc(2025, 4, 15)

    def test_monthly_date_clamps_to_short_month(self):
        assert next_occurrence(MonthlyDate(day=31), utc(2025, 3, 31)) == utc(2025, 4, 30)
        assert next_occurrence(MonthlyDate(day=31), utc(2025, 1, 31)) == utc(2025, 2, 28)

    def test_monthly_date_clamp_does_not_stick(self):
        after_april = next_occurrence(MonthlyDate(day=31), utc(2025, 4, 30))
        assert after_april == utc(2025, 5, 31)

    def test_quarterly_and_semi_annual(self):
        assert next_occurrence(Quarterly(day=15), utc(2025, 3, 12)) == utc(2025, 6, 15)
        assert next_occurrence(SemiAnnual(day=15), utc(2025, 3, 12)) == utc(2025, 9, 15)

    def test_annual_from_leap_day(self):
        assert next_occurrence(Annual(day=29), utc(2024, 2, 29)) == utc(2025, 2, 28)

    def test_custom_interval(self):
        assert next_occurrence(Custom(interval_days=10), utc(2025, 3, 12)) == utc(2025, 3, 22)

    def test_naive_anchor_read_as_utc(self):
        assert next_occurrence(Weekly(day=5), datetime(2025, 3, 12, 23, 0)) == utc(2025, 3, 14)


class TestTimezones:
    """Calendar math happens in the series zone, results land on its midnight."""

    def test_tokyo_anchor_crosses_date_line(self):
        # 23:30 UTC Wednesday is already Thursday morning in Tokyo
        result = next_occurrence(Weekly(day=5), utc(2025, 3, 12, 23, 30), "Asia/Tokyo")
        assert result.astimezone(UTC) == utc(2025, 3, 13, 15)
        local = result.astimezone(tz.gettz("Asia/Tokyo"))
        assert (local.day, local.hour) == (14, 0)

    def test_new_york_anchor_is_previous_local_day(self):
        # 02:00 UTC Wednesday is Tuesday evening in New York (EDT, UTC-4)
        result = next_occurrence(Weekly(day=3), utc(2025, 3, 12, 2), "America/New_York")
        assert result.astimezone(UTC) == utc(2025, 3, 12, 4)

    def test_midnight_across_dst_change(self):
        # Clocks go forward in Stockholm on 2025-03-30
        result = next_occurrence(Custom(interval_days=7), utc(2025, 3, 25, 12), "Europe/Stockholm")
        assert result.astimezone(UTC) == utc(2025, 3, 31, 22)

    def test_unknown_zone_falls_back_to_utc(self):
        assert next_occurrence(Weekly(day=5), utc(2025, 3, 12), "Mars/Olympus") == utc(2025, 3, 14)


@pytest.mark.parametrize(
    "rule",
    [
        Weekly(day=0),
        Biweekly(day=6),
        MonthlyWeekday(day=4, week=5),
        MonthlyDate(day=31),
        Quarterly(day=30),
        SemiAnnual(day=29),
        Annual(day=31),
        Custom(interval_days=1),
    ],
)
def test_repeated_application_strictly_increases(rule):
    current = utc(2024, 12, 31, 18)
    for _ in range(30):
        following = next_occurrence(rule, current, "Europe/Stockholm")
        assert following > current
        current = following


class TestRuleFromFields:
    """Tests for building rule variants from stored columns."""

    def test_builds_variants(self):
        assert rule_from_fields("weekly", 1) == Weekly(day=1)
        assert rule_from_fields("monthly_weekday", 2, 3) == MonthlyWeekday(day=2, week=3)
        assert rule_from_fields("annual", 31) == Annual(day=31)
        assert rule_from_fields("custom", None, None, 10) == Custom(interval_days=10)

    @pytest.mark.parametrize(
        "fields",
        [
            ("weekly", None),
            ("weekly", 7),
            ("monthly_date", 0),
            ("quarterly", 32),
            ("monthly_weekday", 2, None),
            ("monthly_weekday", 2, 6),
            ("custom", None, None, None),
            ("custom", None, None, 0),
            ("hourly", 1),
        ],
    )
    def test_rejects_incomplete_or_out_of_range(self, fields):
        with pytest.raises(ValueError):
            rule_from_fields(*fields)


class TestFutureDates:
    """Tests for UTC day-granularity comparisons."""

    def test_later_same_day_is_not_future(self):
        assert not is_date_in_future_utc(utc(2025, 3, 12, 23, 59), utc(2025, 3, 12, 0, 1))

    def test_next_day_is_future(self):
        assert is_date_in_future_utc(utc(2025, 3, 13, 0, 1), utc(2025, 3, 12, 23, 59))

    def test_past_is_not_future(self):
        assert not is_date_in_future_utc(utc(2025, 3, 11), utc(2025, 3, 12))

    def test_first_scheduled_date(self):
        now = utc(2025, 3, 12, 15, 30)
        assert calculate_first_scheduled_date(utc(2025, 3, 20), now) == utc(2025, 3, 20)
        assert calculate_first_scheduled_date(utc(2025, 3, 12), now) == now
        assert calculate_first_scheduled_date(None, now) == now


class TestUpcomingDates:
    """Tests for upcoming deal projection."""

    def test_never_ending_respects_limit(self):
        result = calculate_upcoming_dates(
            MonthlyDate(day=15), utc(2025, 3, 15), "UTC", 100.0, "USD", "never", None, None, limit=3
        )
        assert [d["date"] for d in result["deals"]] == [
            utc(2025, 3, 15),
            utc(2025, 4, 15),
            utc(2025, 5, 15),
        ]
        assert result["summary"] == {
            "has_end_date": False,
            "total_count": None,
            "total_amount": None,
            "currency": "USD",
        }

    def test_after_count_subtracts_already_generated(self):
        result = calculate_upcoming_dates(
            Weekly(day=3),
            utc(2025, 3, 12),
            "UTC",
            100.0,
            "USD",
            "after_count",
            None,
            5,
            already_generated=2,
        )
        assert len(result["deals"]) == 3
        assert result["summary"]["total_count"] == 5
        assert result["summary"]["total_amount"] == 500.0

    def test_on_date_stops_at_end_date(self):
        result = calculate_upcoming_dates(
            MonthlyDate(day=15), utc(2025, 3, 15), "UTC", 50.0, "EUR", "on_date", utc(2025, 6, 30), None
        )
        assert len(result["deals"]) == 4
        assert result["deals"][-1]["date"] == utc(2025, 6, 15)
        assert result["summary"]["has_end_date"] is True
        assert result["summary"]["total_count"] == 4
        assert result["summary"]["total_amount"] == 200.0

    def test_missing_amount_totals_zero(self):
        result = calculate_upcoming_dates(
            Custom(interval_days=1), utc(2025, 3, 12), "UTC", None, None, "after_count", None, 2
        )
        assert result["summary"]["total_amount"] == 0


class TestSchedulingHelpers:
    """Tests for completion helpers."""

    def test_should_mark_completed(self):
        assert should_mark_completed("after_count", None, 3, 3, None)
        assert not should_mark_completed("after_count", None, 3, 2, None)
        assert should_mark_completed("on_date", utc(2025, 3, 31), None, 1, utc(2025, 4, 1))
        assert not should_mark_completed("on_date", utc(2025, 3, 31), None, 1, utc(2025, 3, 31))
        assert not should_mark_completed("never", None, None, 500, utc(2030, 1, 1))
