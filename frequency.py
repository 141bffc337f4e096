"""
Frequency normalization for recurring amounts.

Converts a cadence (weekly, biweekly, monthly, ...) into a monthly
multiplier so bills, income and planned contributions can be compared on
a per-month basis.
"""

import logging
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, List, Optional

from money import ZERO, coerce_decimal, quantize_money
from month_utils import add_months_to_date, month_bounds

# Configure logging
logger = logging.getLogger(__name__)

MONTHLY_MULTIPLIERS: Dict[str, Decimal] = {
    "weekly": Decimal(52) / Decimal(12),
    "biweekly": Decimal(26) / Decimal(12),
    "semimonthly": Decimal(2),
    "monthly": Decimal(1),
    "quarterly": Decimal(1) / Decimal(3),
    "yearly": Decimal(1) / Decimal(12),
    "oneoff": ZERO,
}

_CADENCE_ALIASES = {
    "annual": "yearly",
    "annually": "yearly",
    "one-off": "oneoff",
    "one_off": "oneoff",
    "once": "oneoff",
    "semi-monthly": "semimonthly",
    "bi-weekly": "biweekly",
}


def normalize_cadence(cadence: Optional[str]) -> str:
    """
    Canonicalize a cadence label.

    Args:
        cadence: Raw cadence string (case and separators ignored)

    Returns:
        Canonical cadence name (unknown values are returned lowercased)
    """
    if not cadence:
        return "monthly"
    key = cadence.strip().lower()
    return _CADENCE_ALIASES.get(key, key)


def monthly_multiplier(cadence: Optional[str]) -> Decimal:
    """
    Return the factor converting one occurrence into a monthly amount.

    Unknown cadences are treated as monthly and logged.
    """
    key = normalize_cadence(cadence)
    multiplier = MONTHLY_MULTIPLIERS.get(key)
    if multiplier is None:
        logger.warning(f"Unknown cadence '{cadence}', treating as monthly")
        return MONTHLY_MULTIPLIERS["monthly"]
    return multiplier


def normalize_to_monthly(amount, cadence: Optional[str]) -> Decimal:
    """
    Convert a per-occurrence amount to its monthly equivalent.

    Args:
        amount: Amount of one occurrence
        cadence: Cadence of the occurrence

    Returns:
        Monthly amount rounded to cents
    """
    return quantize_money(coerce_decimal(amount) * monthly_multiplier(cadence))


_MONTH_STEPS = {"monthly": 1, "quarterly": 3, "yearly": 12}
_DAY_STEPS = {"weekly": 7, "biweekly": 14}


def months_since(start: date, value: date) -> int:
    """Whole calendar months from start's month to value's month."""
    return (value.year - start.year) * 12 + value.month - start.month


def due_dates_in_month(next_due: Optional[date], cadence: Optional[str], month: str) -> List[date]:
    """
    Project the due dates of a recurring item that fall inside a month.

    Occurrences are projected forward from ``next_due``; months before the
    next due date have no occurrences. Unknown cadences recur monthly.

    Args:
        next_due: Next due date of the item (None means never due)
        cadence: Cadence of the item
        month: Target ``YYYY-MM`` month

    Returns:
        Due dates within the month, in order
    """
    if next_due is None:
        return []
    first_day, last_day = month_bounds(month)
    if next_due > last_day:
        return []

    key = normalize_cadence(cadence)
    if key not in MONTHLY_MULTIPLIERS:
        key = "monthly"

    if key == "oneoff":
        return [next_due] if next_due >= first_day else []

    if key in _MONTH_STEPS:
        period = _MONTH_STEPS[key]
        offset = months_since(next_due, first_day)
        if offset % period:
            return []
        return [add_months_to_date(next_due, offset)]

    if key in _DAY_STEPS:
        step = _DAY_STEPS[key]
        current = next_due
        if current < first_day:
            skipped = -(-(first_day - current).days // step)
            current = current + timedelta(days=skipped * step)
        dates: List[date] = []
        while current <= last_day:
            dates.append(current)
            current = current + timedelta(days=step)
        return dates

    # semimonthly: the due day and the day fifteen days later
    dates = []
    for offset in (0, -1):
        anchor = add_months_to_date(next_due, months_since(next_due, first_day) + offset)
        for candidate in (anchor, anchor + timedelta(days=15)):
            if first_day <= candidate <= last_day and candidate >= next_due and candidate not in dates:
                dates.append(candidate)
    return sorted(dates)
