"""
Recurrence rule evaluation for recurring deal series.

A rule is one of a closed set of frozen variants, one per frequency, so a
rule that exists is always structurally complete (a Weekly rule always has
a weekday, a Custom rule always has an interval). All calendar math is done
in the series timezone and results are anchored to midnight in that zone.

Weekdays use 0 = Sunday ... 6 = Saturday.
"""

import calendar
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Union

from dateutil import tz
from dateutil.relativedelta import relativedelta

RECURRING_FREQUENCIES = (
    "weekly",
    "biweekly",
    "monthly_weekday",
    "monthly_date",
    "quarterly",
    "semi_annual",
    "annual",
    "custom",
)

# frequencyDay is a day of week (0-6) for these
DAY_OF_WEEK_FREQUENCIES = ("weekly", "biweekly", "monthly_weekday")
# frequencyDay is a day of month (1-31) for these
DAY_OF_MONTH_FREQUENCIES = ("monthly_date", "quarterly", "semi_annual", "annual")
FREQUENCIES_REQUIRING_DAY = DAY_OF_WEEK_FREQUENCIES + DAY_OF_MONTH_FREQUENCIES


@dataclass(frozen=True)
class Weekly:
    day: int


@dataclass(frozen=True)
class Biweekly:
    day: int


@dataclass(frozen=True)
class MonthlyWeekday:
    day: int
    week: int


@dataclass(frozen=True)
class MonthlyDate:
    day: int


@dataclass(frozen=True)
class Quarterly:
    day: int


@dataclass(frozen=True)
class SemiAnnual:
    day: int


@dataclass(frozen=True)
class Annual:
    day: int


@dataclass(frozen=True)
class Custom:
    interval_days: int


Rule = Union[Weekly, Biweekly, MonthlyWeekday, MonthlyDate, Quarterly, SemiAnnual, Annual, Custom]

_DAY_OF_MONTH_RULES = {
    "monthly_date": MonthlyDate,
    "quarterly": Quarterly,
    "semi_annual": SemiAnnual,
    "annual": Annual,
}

_MONTHS_BETWEEN = {
    MonthlyDate: 1,
    Quarterly: 3,
    SemiAnnual: 6,
    Annual: 12,
}


def rule_from_fields(
    frequency: str,
    frequency_day: Optional[int] = None,
    frequency_week: Optional[int] = None,
    frequency_interval: Optional[int] = None,
) -> Rule:
    """
    Build a rule variant from the flat columns stored on a series.

    Raises:
        ValueError: if a field the frequency needs is missing or out of range
    """
    if frequency not in RECURRING_FREQUENCIES:
        raise ValueError(f"Unknown frequency: {frequency}")

    if frequency == "custom":
        if frequency_interval is None:
            raise ValueError("frequencyInterval is required when frequency is 'custom'")
        if frequency_interval < 1:
            raise ValueError("frequencyInterval must be at least 1")
        return Custom(interval_days=frequency_interval)

    if frequency_day is None:
        raise ValueError(f"frequencyDay is required for {frequency} frequency")

    if frequency in DAY_OF_WEEK_FREQUENCIES:
        if not 0 <= frequency_day <= 6:
            raise ValueError(
                f"For {frequency} frequency, frequencyDay must be 0-6 (Sunday-Saturday)"
            )
        if frequency == "weekly":
            return Weekly(day=frequency_day)
        if frequency == "biweekly":
            return Biweekly(day=frequency_day)
        if frequency_week is None:
            raise ValueError("frequencyWeek is required for monthly_weekday frequency")
        if not 1 <= frequency_week <= 5:
            raise ValueError(
                "For monthly_weekday frequency, frequencyWeek must be 1-5 (1st through 5th occurrence)"
            )
        return MonthlyWeekday(day=frequency_day, week=frequency_week)

    if not 1 <= frequency_day <= 31:
        raise ValueError(f"For {frequency} frequency, frequencyDay must be 1-31 (day of month)")
    return _DAY_OF_MONTH_RULES[frequency](day=frequency_day)


def get_zone(timezone: Optional[str]):
    """Resolve an IANA zone name, falling back to UTC"""
    zone = tz.gettz(timezone) if timezone else None
    return zone or tz.UTC


def ensure_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as returned by SQLite) as UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=tz.UTC)
    return value.astimezone(tz.UTC)


def start_of_day_utc(value: datetime) -> datetime:
    value = ensure_utc(value)
    return datetime(value.year, value.month, value.day, tzinfo=tz.UTC)


def is_date_in_future_utc(value: datetime, now: Optional[datetime] = None) -> bool:
    """True when value falls on a later UTC calendar day than now (hours are ignored)"""
    now = now or datetime.now(tz.UTC)
    return start_of_day_utc(value) > start_of_day_utc(now)


def _sunday_based_weekday(value) -> int:
    return (value.weekday() + 1) % 7


def _local_midnight(year: int, month: int, day: int, zone) -> datetime:
    return datetime(year, month, day, tzinfo=zone)


def _next_weekday_after(local_date, weekday: int):
    """First date strictly after local_date falling on weekday"""
    candidate = local_date + timedelta(days=1)
    offset = (weekday - _sunday_based_weekday(candidate)) % 7
    return candidate + timedelta(days=offset)


def _nth_weekday_of_month(year: int, month: int, weekday: int, week: int):
    """
    nth occurrence of weekday in the month. A 5th occurrence that does not
    exist falls back to the last occurrence in that month.
    """
    first = datetime(year, month, 1).date()
    offset = (weekday - _sunday_based_weekday(first)) % 7
    day = 1 + offset + (week - 1) * 7
    last_day = calendar.monthrange(year, month)[1]
    while day > last_day:
        day -= 7
    return first.replace(day=day)


def next_occurrence(rule: Rule, anchor: datetime, timezone: str = "UTC") -> datetime:
    """
    Compute the occurrence following anchor.

    Args:
        rule: Rule variant
        anchor: Reference instant (naive values are read as UTC)
        timezone: IANA zone the series is anchored to

    Returns:
        Timezone-aware datetime at midnight in the series zone
    """
    zone = get_zone(timezone)
    local = ensure_utc(anchor).astimezone(zone)
    local_date = local.date()

    if isinstance(rule, Weekly):
        target = _next_weekday_after(local_date, rule.day)
    elif isinstance(rule, Biweekly):
        # Skip one matching weekday so the cadence is every other week
        target = _next_weekday_after(local_date, rule.day) + timedelta(days=7)
    elif isinstance(rule, MonthlyWeekday):
        target = _nth_weekday_of_month(local_date.year, local_date.month, rule.day, rule.week)
        if target <= local_date:
            following = local_date.replace(day=1) + relativedelta(months=1)
            target = _nth_weekday_of_month(following.year, following.month, rule.day, rule.week)
    elif isinstance(rule, Custom):
        target = local_date + timedelta(days=rule.interval_days)
    else:
        months = _MONTHS_BETWEEN[type(rule)]
        shifted = local_date.replace(day=1) + relativedelta(months=months)
        last_day = calendar.monthrange(shifted.year, shifted.month)[1]
        target = shifted.replace(day=min(rule.day, last_day))

    return _local_midnight(target.year, target.month, target.day, zone)


def calculate_first_scheduled_date(issue_date: Optional[datetime], now: datetime) -> datetime:
    """Future issue dates are scheduled as-is; today or past generates immediately"""
    if issue_date is not None and is_date_in_future_utc(issue_date, now):
        return ensure_utc(issue_date)
    return ensure_utc(now)


def should_mark_completed(
    end_type: str,
    end_date: Optional[datetime],
    end_count: Optional[int],
    deals_generated: int,
    next_scheduled_at: Optional[datetime],
) -> bool:
    if end_type == "on_date":
        return (
            end_date is not None
            and next_scheduled_at is not None
            and ensure_utc(next_scheduled_at) > ensure_utc(end_date)
        )
    if end_type == "after_count":
        return end_count is not None and deals_generated >= end_count
    return False


def calculate_upcoming_dates(
    rule: Rule,
    start_date: datetime,
    timezone: str,
    amount: Optional[float],
    currency: str,
    end_type: str,
    end_date: Optional[datetime],
    end_count: Optional[int],
    already_generated: int = 0,
    limit: int = 10,
) -> dict:
    """
    Project the next occurrences of a series for preview.

    Returns:
        dict with "deals" (list of {"date", "amount"}) and "summary"
        ({"has_end_date", "total_count", "total_amount", "currency"})
    """
    end_date = ensure_utc(end_date) if end_date else None
    current = ensure_utc(start_date)
    max_iterations = limit if end_type == "never" else min(limit, 100)
    remaining = (
        end_count - already_generated
        if end_type == "after_count" and end_count is not None
        else None
    )

    deals = []
    while len(deals) < max_iterations:
        if end_type == "on_date" and end_date and current > end_date:
            break
        if remaining is not None and len(deals) >= remaining:
            break
        deals.append({"date": current, "amount": amount})
        current = ensure_utc(next_occurrence(rule, current, timezone))

    total_count = None
    total_amount = None
    if end_type == "after_count" and end_count is not None:
        total_count = end_count
        total_amount = end_count * (amount or 0)
    elif end_type == "on_date" and end_date:
        counted = 0
        probe = ensure_utc(start_date)
        while probe <= end_date and counted < 1000:
            counted += 1
            probe = ensure_utc(next_occurrence(rule, probe, timezone))
        total_count = counted
        total_amount = counted * (amount or 0)

    return {
        "deals": deals,
        "summary": {
            "has_end_date": end_type != "never",
            "total_count": total_count,
            "total_amount": total_amount,
            "currency": currency,
        },
    }
