"""Shared validation utilities"""

from typing import Optional


def validate_day_of_week(day: int) -> int:
    """
    Validate an ISO day of week (1 = Monday ... 7 = Sunday).

    Raises:
        ValueError: If the day is outside 1..7
    """
    if not isinstance(day, int) or isinstance(day, bool) or not 1 <= day <= 7:
        raise ValueError("day_of_week must be between 1 (Monday) and 7 (Sunday)")
    return day


def validate_group_name(name: Optional[str]) -> str:
    """
    Validate and trim a session group name.

    Raises:
        ValueError: If the name is missing or blank
    """
    if not name or not isinstance(name, str) or not name.strip():
        raise ValueError("Group name is required")

    name = name.strip()
    if len(name) > 255:
        raise ValueError("Group name must be 255 characters or fewer")
    return name
