"""
Month key helpers.

A month is the string ``YYYY-MM``. Keys are opaque and ordered: plain
string comparison gives chronological order, so selectors never parse
them except to step forwards or backwards.
"""

import calendar
import re
from datetime import date, datetime
from typing import List, Optional, Tuple, Union

from exceptions import ValidationError

_MONTH_PATTERN = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def is_valid_month(month: str) -> bool:
    """Return True when the value is a well-formed ``YYYY-MM`` key."""
    return isinstance(month, str) and bool(_MONTH_PATTERN.fullmatch(month))


def _split(month: str) -> Tuple[int, int]:
    if not is_valid_month(month):
        raise ValidationError("Month must use the YYYY-MM format", details={"month": month})
    year, month_num = month.split("-")
    return int(year), int(month_num)


def month_key(value: Union[date, str]) -> str:
    """
    Return the month key of a date or ISO date string.

    Args:
        value: date object or ISO string (``YYYY-MM-DD`` or longer)

    Returns:
        ``YYYY-MM`` month key
    """
    if isinstance(value, date):
        return f"{value.year:04d}-{value.month:02d}"
    return value[:7]


def add_months(month: str, count: int) -> str:
    """Step a month key forwards (or backwards for negative counts)."""
    year, month_num = _split(month)
    index = year * 12 + (month_num - 1) + count
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def previous_month(month: str) -> str:
    """Return the month before ``month``."""
    return add_months(month, -1)


def next_month(month: str) -> str:
    """Return the month after ``month``."""
    return add_months(month, 1)


def month_bounds(month: str) -> Tuple[date, date]:
    """Return the first and last calendar day of a month."""
    year, month_num = _split(month)
    last_day = calendar.monthrange(year, month_num)[1]
    return date(year, month_num, 1), date(year, month_num, last_day)


def months_between(start: str, end: str) -> List[str]:
    """
    List month keys from start to end inclusive.

    Returns an empty list when start is after end.
    """
    months: List[str] = []
    current = start
    while current <= end:
        months.append(current)
        current = next_month(current)
    return months


def current_month(today: Optional[date] = None) -> str:
    """Return the month key for today (or the given date)."""
    return month_key(today or date.today())


def add_months_to_date(value: date, count: int) -> date:
    """Shift a date by whole months, clamping the day to the month length."""
    target = add_months(month_key(value), count)
    year, month_num = _split(target)
    last_day = calendar.monthrange(year, month_num)[1]
    return date(year, month_num, min(value.day, last_day))


def parse_date(value: Union[date, str, None]) -> Optional[date]:
    """Parse an ISO date (time portion ignored); None passes through."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value[:10])
    except ValueError as exc:
        raise ValidationError("Invalid ISO date", details={"value": value}, original_error=exc) from exc


__all__ = [
    "is_valid_month",
    "month_key",
    "add_months",
    "previous_month",
    "next_month",
    "month_bounds",
    "months_between",
    "current_month",
    "add_months_to_date",
    "parse_date",
]
