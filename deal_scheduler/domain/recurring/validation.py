"""
Cross-field validation of partial series updates.

An update payload may touch a field whose validity depends on another
field it does not carry (e.g. only frequencyDay, whose range depends on
the stored frequency). Those cases need the persisted series, which is
only loaded when such a dependency exists.
"""

import logging
from typing import Any, Callable, Optional

from fastapi import HTTPException

from ...models import DealRecurring
from .rules import DAY_OF_MONTH_FREQUENCIES, DAY_OF_WEEK_FREQUENCIES, FREQUENCIES_REQUIRING_DAY

logger = logging.getLogger(__name__)


def needs_persisted_state(changes: dict[str, Any]) -> bool:
    """
    True when a field in the payload depends on a field the payload omits.

    `changes` holds only the fields the caller sent; an explicit None is a
    request to clear that field.
    """
    has_frequency = "frequency" in changes
    frequency = changes.get("frequency")
    has_end_type = "end_type" in changes

    return any(
        (
            "frequency_day" in changes and not has_frequency,
            has_frequency and "frequency_day" not in changes,
            has_frequency
            and frequency in FREQUENCIES_REQUIRING_DAY
            and "frequency_day" in changes
            and changes["frequency_day"] is None,
            "frequency_week" in changes and not has_frequency,
            frequency == "monthly_weekday" and "frequency_week" not in changes,
            "frequency_interval" in changes and not has_frequency,
            frequency == "custom" and "frequency_interval" not in changes,
            "end_date" in changes and not has_end_type,
            "end_count" in changes and not has_end_type,
            changes.get("end_type") == "on_date" and "end_date" not in changes,
            changes.get("end_type") == "after_count" and "end_count" not in changes,
        )
    )


def _effective(field: str, changes: dict[str, Any], existing: Optional[DealRecurring]):
    if field in changes:
        return changes[field]
    if existing is not None:
        return getattr(existing, field)
    return None


def _reject(detail: str):
    logger.warning(f"⚠️ Rejected recurring update: {detail}")
    raise HTTPException(status_code=400, detail=detail)


def validate_update(
    changes: dict[str, Any],
    load_existing: Callable[[], DealRecurring],
) -> Optional[DealRecurring]:
    """
    Validate a partial update against the persisted series.

    Args:
        changes: Snake-case fields present in the request (explicit None kept)
        load_existing: Returns the persisted series or raises 404

    Returns:
        The persisted series if it had to be loaded, otherwise None

    Raises:
        HTTPException: 400 naming the offending field
    """
    existing = load_existing() if needs_persisted_state(changes) else None

    frequency = _effective("frequency", changes, existing)
    day = _effective("frequency_day", changes, existing)
    week = _effective("frequency_week", changes, existing)
    interval = _effective("frequency_interval", changes, existing)

    if frequency in FREQUENCIES_REQUIRING_DAY:
        if day is None:
            _reject(f"frequencyDay is required for {frequency} frequency and cannot be null")
        if frequency in DAY_OF_WEEK_FREQUENCIES and not 0 <= day <= 6:
            _reject(f"For {frequency} frequency, frequencyDay must be 0-6 (Sunday-Saturday)")
        if frequency in DAY_OF_MONTH_FREQUENCIES and not 1 <= day <= 31:
            _reject(f"For {frequency} frequency, frequencyDay must be 1-31 (day of month)")

    if frequency == "monthly_weekday":
        if week is None:
            _reject("frequencyWeek is required for monthly_weekday frequency and cannot be null")
        if not 1 <= week <= 5:
            _reject(
                "For monthly_weekday frequency, frequencyWeek must be 1-5 (1st through 5th occurrence)"
            )

    if frequency == "custom" and interval is None:
        _reject("frequencyInterval is required for custom frequency and cannot be null")

    # Fields that only belong to one frequency; stale stored values are cleared by the caller
    if frequency and changes.get("frequency_week") is not None and frequency != "monthly_weekday":
        _reject(f"frequencyWeek is only valid for monthly_weekday frequency, not {frequency}")
    if frequency and changes.get("frequency_interval") is not None and frequency != "custom":
        _reject(f"frequencyInterval is only valid for custom frequency, not {frequency}")

    end_type = _effective("end_type", changes, existing)
    if end_type == "on_date" and _effective("end_date", changes, existing) is None:
        _reject("endDate is required when endType is 'on_date' and cannot be null")
    if end_type == "after_count" and _effective("end_count", changes, existing) is None:
        _reject("endCount is required when endType is 'after_count' and cannot be null")

    if end_type and changes.get("end_date") is not None and end_type != "on_date":
        _reject(f"endDate is only valid when endType is 'on_date', not '{end_type}'")
    if end_type and changes.get("end_count") is not None and end_type != "after_count":
        _reject(f"endCount is only valid when endType is 'after_count', not '{end_type}'")

    return existing
