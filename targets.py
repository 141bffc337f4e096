"""
Category funding targets.

Three target kinds are supported:

* ``refill_up_to``: top the category's available balance up to the amount.
* ``set_aside_another``: assign the amount every month regardless of balance.
* ``have_balance_by``: reach the amount by a date, spread evenly over the
  remaining calendar months.

Balances come from the ledger (assigned - spent + carryover), so the
numbers here always agree with the month summary.
"""

import logging
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence, Tuple

from budgeting import LedgerIndex
from exceptions import ValidationError
from models import Category, ValidationResult
from money import ZERO, ceil_to_multiple, coerce_decimal, quantize_money, sum_money
from month_utils import month_bounds

logger = logging.getLogger(__name__)

REFILL_UP_TO = "refill_up_to"
SET_ASIDE_ANOTHER = "set_aside_another"
HAVE_BALANCE_BY = "have_balance_by"
TARGET_TYPES = (REFILL_UP_TO, SET_ASIDE_ANOTHER, HAVE_BALANCE_BY)
WHOLE_DOLLAR = Decimal(1)


@dataclass(frozen=True)
class TargetCalculation:
    """What one category still needs to meet its target this month."""

    category_id: str
    category_name: str
    target_type: str
    target_amount: Decimal
    current_balance: Decimal
    needed: Decimal
    is_underfunded: bool
    is_snoozed: bool
    suggested_assignment: Decimal
    days_until_due: Optional[int] = None
    months_until_due: Optional[int] = None


@dataclass(frozen=True)
class TargetNeeds:
    """
    Month-wide target totals.

    ``surplus`` is expected income minus everything targets still need;
    a negative surplus means the targets cost more than the income.
    """

    month: str
    total_target_amount: Decimal
    total_needed: Decimal
    total_underfunded: Decimal
    expected_income: Decimal
    surplus: Decimal
    categories: Tuple[TargetCalculation, ...]


def has_target(category: Category) -> bool:
    """True when the category carries a supported target."""
    return category.target_type in TARGET_TYPES


def is_target_snoozed(category: Category, as_of: date) -> bool:
    """True while ``as_of`` is on or before the category's snooze date."""
    return category.target_snoozed_until is not None and category.target_snoozed_until >= as_of


def snooze_target(category: Category, month: str) -> Category:
    """Return the category with its target snoozed through the end of ``month``."""
    _, last_day = month_bounds(month)
    logger.info(f"Snoozed target of {category.id} until {last_day}")
    return replace(category, target_snoozed_until=last_day)


def months_until(target_date: date, as_of: date) -> int:
    """Calendar months from ``as_of`` to the target date, never less than 1."""
    return max(1, (target_date.year - as_of.year) * 12 + (target_date.month - as_of.month))


def calculate_monthly_contribution(target_amount, current_balance, target_date: date, as_of: date) -> Decimal:
    """Even monthly amount that closes the gap to the target by its date."""
    gap = max(ZERO, coerce_decimal(target_amount) - coerce_decimal(current_balance))
    return quantize_money(gap / months_until(target_date, as_of))


def calculate_category_target(
    category: Category,
    current_balance: Decimal,
    assigned_this_month: Decimal,
    as_of: date
) -> TargetCalculation:
    """
    Work out the need of a single category target.

    ``set_aside_another`` counts what was already assigned this month
    toward the amount. A ``have_balance_by`` target without a date needs
    nothing.
    """
    target_amount = category.target_amount or ZERO
    snoozed = is_target_snoozed(category, as_of)
    needed = ZERO
    suggested = ZERO
    days_until_due = None
    months_until_due = None

    if category.target_type == REFILL_UP_TO:
        needed = max(ZERO, target_amount - current_balance)
        suggested = needed
    elif category.target_type == SET_ASIDE_ANOTHER:
        needed = max(ZERO, target_amount - assigned_this_month)
        suggested = needed
    elif category.target_type == HAVE_BALANCE_BY and category.target_date:
        days_until_due = (category.target_date - as_of).days
        months_until_due = months_until(category.target_date, as_of)
        needed = calculate_monthly_contribution(target_amount, current_balance, category.target_date, as_of)
        suggested = ceil_to_multiple(needed, WHOLE_DOLLAR)

    return TargetCalculation(
        category_id=category.id,
        category_name=category.name,
        target_type=category.target_type,
        target_amount=target_amount,
        current_balance=current_balance,
        needed=needed,
        is_underfunded=needed > 0 and not snoozed,
        is_snoozed=snoozed,
        suggested_assignment=suggested,
        days_until_due=days_until_due,
        months_until_due=months_until_due,
    )


def calculate_target_needs(
    index: LedgerIndex,
    month: str,
    as_of: date,
    expected_income=ZERO
) -> TargetNeeds:
    """
    Calculate target needs for every targeted, non-archived category.

    Snoozed targets are listed but left out of the totals.

    Args:
        index: Ledger of the snapshot
        month: ``YYYY-MM`` month being funded
        as_of: Date used for snoozes and due dates
        expected_income: Income expected for the month

    Returns:
        TargetNeeds with one calculation per targeted category
    """
    calculations: List[TargetCalculation] = []
    for category in index.categories.values():
        if category.archived or not has_target(category):
            continue
        calculations.append(calculate_category_target(
            category,
            index.available(category.id, month),
            index.assigned(category.id, month),
            as_of,
        ))

    active = [calc for calc in calculations if not calc.is_snoozed]
    total_needed = sum_money(calc.needed for calc in active)
    income = coerce_decimal(expected_income)
    needs = TargetNeeds(
        month=month,
        total_target_amount=sum_money(calc.target_amount for calc in active),
        total_needed=total_needed,
        total_underfunded=sum_money(calc.needed for calc in active if calc.is_underfunded),
        expected_income=income,
        surplus=income - total_needed,
        categories=tuple(calculations),
    )
    logger.debug(f"Target needs for {month}: {total_needed} across {len(active)} active targets")
    return needs


def calculate_underfunded_amount(category_ids: Iterable[str], calculations: Sequence[TargetCalculation]) -> Decimal:
    """Total still needed by the selected categories."""
    selected = set(category_ids)
    return sum_money(calc.needed for calc in calculations if calc.category_id in selected and calc.needed > 0)


def target_priority(calculation: TargetCalculation) -> int:
    """
    Funding priority of a target; higher is more important.

    Snoozed targets rank 0 and funded ones 1. Underfunded targets start
    at 5, gain up to 5 for a near ``have_balance_by`` date and 2 for
    ``set_aside_another``.
    """
    if calculation.is_snoozed:
        return 0
    if not calculation.is_underfunded:
        return 1
    priority = 5
    if calculation.target_type == HAVE_BALANCE_BY and calculation.days_until_due is not None:
        if calculation.days_until_due <= 30:
            priority += 5
        elif calculation.days_until_due <= 90:
            priority += 3
        elif calculation.days_until_due <= 180:
            priority += 1
    if calculation.target_type == SET_ASIDE_ANOTHER:
        priority += 2
    return priority


def target_display_text(category: Category) -> str:
    """Short human-readable description of a category's target."""
    amount = f"${category.target_amount or ZERO:,.2f}"
    if category.target_type == REFILL_UP_TO:
        return f"Refill up to {amount}"
    if category.target_type == SET_ASIDE_ANOTHER:
        return f"Set aside {amount} each month"
    if category.target_type == HAVE_BALANCE_BY:
        when = category.target_date.isoformat() if category.target_date else "target date"
        return f"Have {amount} by {when}"
    return "No target set"


def validate_target(
    target_type: Optional[str],
    target_amount,
    target_date: Optional[date],
    as_of: date
) -> ValidationResult:
    """
    Check a target configuration before it is saved.

    No target (None or "none") is always valid.
    """
    if target_type in (None, "none"):
        return ValidationResult(is_valid=True)
    errors: List[str] = []
    if target_type not in TARGET_TYPES:
        errors.append(f"Unknown target type: {target_type}")
    amount = coerce_decimal(target_amount)
    if amount <= 0:
        errors.append("Target amount must be greater than 0")
    if target_type == HAVE_BALANCE_BY:
        if target_date is None:
            errors.append('Target date is required for "Have balance by" targets')
        elif target_date <= as_of:
            errors.append("Target date must be in the future")
    return ValidationResult(is_valid=not errors, errors=errors)


def require_valid_target(category: Category, as_of: date) -> None:
    """
    Raise when the category's target configuration is invalid.

    Raises:
        ValidationError: With the first error as the message
    """
    result = validate_target(category.target_type, category.target_amount, category.target_date, as_of)
    if not result.is_valid:
        raise ValidationError(result.errors[0], details={"category": category.id, "errors": len(result.errors)})
