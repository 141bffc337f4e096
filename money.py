"""
Helpers for Decimal money values.

All amounts in the budget core are Decimal currency values. Raw numbers
coming from the user-data blob are coerced once, and computed values
(interest, percentages, averages) are rounded to cents.
"""

from decimal import ROUND_CEILING, ROUND_HALF_UP, Decimal
from typing import Iterable

ZERO = Decimal("0")
CENT = Decimal("0.01")
INFINITY = Decimal("Infinity")


def coerce_decimal(value) -> Decimal:
    """
    Normalize numeric values to Decimal.

    Args:
        value: Raw numeric value (int, float, str, Decimal or None)

    Returns:
        Decimal value, zero for None
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise TypeError("Boolean is not a money amount")
    return Decimal(str(value))


def quantize_money(value) -> Decimal:
    """Round a value to whole cents (half-up)."""
    return coerce_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def ceil_to_multiple(value: Decimal, step: Decimal) -> Decimal:
    """
    Round a value up to the next multiple of step.

    Args:
        value: Amount to round
        step: Positive rounding step (e.g. 10 rounds 143.20 to 150)

    Returns:
        Rounded amount; value unchanged when step is not positive
    """
    if step <= 0:
        return value
    multiples = (value / step).to_integral_value(rounding=ROUND_CEILING)
    return multiples * step


def sum_money(values: Iterable[Decimal]) -> Decimal:
    """Sum Decimal values starting from zero (never returns int 0)."""
    total = ZERO
    for value in values:
        total += value
    return total


__all__ = [
    "ZERO",
    "CENT",
    "INFINITY",
    "coerce_decimal",
    "quantize_money",
    "ceil_to_multiple",
    "sum_money",
]
