"""Shared validation utilities"""

from typing import Optional

from dateutil import tz


def validate_timezone(value: Optional[str]) -> Optional[str]:
    """
    Validate an IANA timezone name.

    Args:
        value: Zone name such as "Europe/Stockholm"

    Returns:
        The zone name unchanged

    Raises:
        ValueError: If the zone is unknown
    """
    if value is None:
        return value

    value = value.strip()
    if not value or tz.gettz(value) is None:
        raise ValueError(f"Invalid timezone: {value}")
    return value


def validate_currency(value: Optional[str]) -> Optional[str]:
    """Normalize a three-letter ISO 4217 currency code"""
    if value is None:
        return value

    value = value.strip().upper()
    if len(value) != 3 or not value.isalpha():
        raise ValueError("Currency must be a 3-letter ISO code")
    return value
