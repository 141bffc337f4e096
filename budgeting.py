"""
Budgeting module for YNAB-like envelope budgets.

This module provides the category ledger selectors (assigned, spent,
available, carryover), the month summary with its Ready-to-Assign figure,
and group rollups with bill minimums and shortfall. Every selector is a
pure function of the ledger snapshot it receives.
"""

import logging
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from exceptions import ValidationError
from frequency import due_dates_in_month
from models import (
    BudgetEntry,
    Category,
    CategoryBalance,
    Group,
    GroupBalance,
    MonthSummary,
    RolloverNegative,
    RolloverPositive,
    ScheduledItem,
    ScheduledKind,
    Transaction,
    TransactionDirection,
    ValidationResult,
)
from money import ZERO, coerce_decimal, quantize_money, sum_money
from month_utils import months_between, previous_month

# Configure logging
logger = logging.getLogger(__name__)

UNKNOWN_GROUP_NAME = "Unknown Group"


def carryover_amount(category: Optional[Category], prior_available: Decimal) -> Decimal:
    """
    Portion of the prior month's available that stays in the category.

    Args:
        category: Category (None means unknown; nothing carries)
        prior_available: Available balance of the previous month

    Returns:
        Carried amount, zero unless the rollover policy says carry
    """
    if category is None:
        return ZERO
    if prior_available > 0 and category.rollover_positive is RolloverPositive.CARRY:
        return prior_available
    if prior_available < 0 and category.rollover_negative is RolloverNegative.CARRY:
        return prior_available
    return ZERO


def rollover_to_budget(category: Optional[Category], prior_available: Decimal) -> Decimal:
    """
    Portion of the prior month's available that flows back into Ready to Assign.

    Positive leftovers return under the ``return`` policy; overspends reduce
    Ready to Assign under ``reduce_ta``. Carry categories contribute zero.
    """
    if category is None:
        return ZERO
    if prior_available > 0 and category.rollover_positive is RolloverPositive.RETURN:
        return prior_available
    if prior_available < 0 and category.rollover_negative is RolloverNegative.REDUCE_TA:
        return prior_available
    return ZERO


class LedgerIndex:
    """
    Precomputed category ledger over one snapshot of budget data.

    Assigned and spent amounts are bucketed per (category, month) once.
    Available balances are evaluated as a memoized fold over the
    chronologically sorted months starting at the category's first month
    of activity, so month M only ever looks one hop back at month M-1.
    """

    def __init__(
        self,
        transactions: Iterable[Transaction],
        budget_entries: Iterable[BudgetEntry],
        categories: Iterable[Category]
    ):
        """
        Index a ledger snapshot.

        Args:
            transactions: Ledger transactions
            budget_entries: Budget entries (unique per category and month)
            categories: Known categories
        """
        self.categories: Dict[str, Category] = {}
        for category in categories:
            self.categories[category.id] = category

        self._assigned: Dict[Tuple[str, str], Decimal] = {}
        self._assigned_by_month: Dict[str, Decimal] = {}
        for entry in budget_entries:
            key = (entry.category_id, entry.month)
            if key in self._assigned:
                logger.warning(f"Duplicate budget entry for {key}; later entry wins")
                self._assigned_by_month[entry.month] -= self._assigned[key]
            self._assigned[key] = entry.assigned
            self._assigned_by_month[entry.month] = self._assigned_by_month.get(entry.month, ZERO) + entry.assigned

        self._spent: Dict[Tuple[str, str], Decimal] = {}
        self._inflows: Dict[str, Decimal] = {}
        self._last_spend: Dict[Tuple[str, str], object] = {}
        self._spend_dates: Dict[str, List[date]] = {}
        for txn in transactions:
            month = txn.month
            if txn.direction is TransactionDirection.INFLOW:
                if txn.inflow_to_budget:
                    self._inflows[month] = self._inflows.get(month, ZERO) + abs(txn.amount)
                continue
            if txn.direction is not TransactionDirection.OUTFLOW:
                continue
            for category_id, portion in txn.category_portions().items():
                if not category_id:
                    continue
                key = (category_id, month)
                self._spent[key] = self._spent.get(key, ZERO) + portion
                last = self._last_spend.get(key)
                if last is None or txn.date > last:
                    self._last_spend[key] = txn.date
                self._spend_dates.setdefault(category_id, []).append(txn.date)

        self._first_month: Dict[str, str] = {}
        for category_id, month in list(self._assigned) + list(self._spent):
            first = self._first_month.get(category_id)
            if first is None or month < first:
                self._first_month[category_id] = month

        self._available_cache: Dict[Tuple[str, str], Decimal] = {}
        self._carry_cache: Dict[Tuple[str, str], Decimal] = {}

    def assigned(self, category_id: str, month: str) -> Decimal:
        """Assigned amount of the (category, month) entry, zero when absent."""
        return self._assigned.get((category_id, month), ZERO)

    def spent(self, category_id: str, month: str) -> Decimal:
        """Absolute outflows tagged to the category in the month."""
        return self._spent.get((category_id, month), ZERO)

    def last_spend_date(self, category_id: str, month: str):
        """Date of the latest outflow for the category in the month, or None."""
        return self._last_spend.get((category_id, month))

    def last_spend_on_or_before(self, category_id: str, as_of: date) -> Optional[date]:
        """Latest outflow for the category dated on or before ``as_of`` in any month."""
        dates = [value for value in self._spend_dates.get(category_id, ()) if value <= as_of]
        return max(dates) if dates else None

    def total_assigned(self, month: str) -> Decimal:
        """Sum of every budget entry of the month."""
        return self._assigned_by_month.get(month, ZERO)

    def inflows_to_budget(self, month: str) -> Decimal:
        """Inflows marked as counting toward the budget in the month."""
        return self._inflows.get(month, ZERO)

    def _fold(self, category_id: str, month: str) -> None:
        first = self._first_month.get(category_id)
        if first is None or month < first or category_id not in self.categories:
            return
        category = self.categories.get(category_id)
        prior = ZERO
        for current in months_between(first, month):
            key = (category_id, current)
            if key in self._available_cache:
                prior = self._available_cache[key]
                continue
            carry = carryover_amount(category, prior)
            available = self.assigned(category_id, current) - self.spent(category_id, current) + carry
            self._carry_cache[key] = carry
            self._available_cache[key] = available
            prior = available

    def available(self, category_id: str, month: str) -> Decimal:
        """Assigned minus spent plus carryover from the previous month; zero for unknown categories."""
        key = (category_id, month)
        if key not in self._available_cache:
            self._fold(category_id, month)
        return self._available_cache.get(key, ZERO)

    def carryover(self, category_id: str, month: str) -> Decimal:
        """Amount carried into the month from the previous month's available."""
        key = (category_id, month)
        if key not in self._carry_cache:
            self._fold(category_id, month)
        return self._carry_cache.get(key, ZERO)

    def category_balance(self, category_id: str, month: str) -> CategoryBalance:
        """All ledger figures for one category in one month."""
        return CategoryBalance(
            category_id=category_id,
            month=month,
            assigned=self.assigned(category_id, month),
            spent=self.spent(category_id, month),
            available=self.available(category_id, month),
            carryover_from_prior=self.carryover(category_id, month),
        )

    def rollover_effect(self, month: str) -> Decimal:
        """Prior-month leftovers returned to (or overspends taken from) Ready to Assign."""
        prior_month = previous_month(month)
        effect = ZERO
        for category_id, category in self.categories.items():
            effect += rollover_to_budget(category, self.available(category_id, prior_month))
        return effect

    def ready_to_assign(self, month: str) -> Decimal:
        """Inflows to budget minus total assigned plus the rollover effect."""
        return self.inflows_to_budget(month) - self.total_assigned(month) + self.rollover_effect(month)

    def balances(self, month: str) -> List[CategoryBalance]:
        """
        Balances of every category for the month, in category order.

        Archived categories are only listed while they still hold figures.
        """
        result: List[CategoryBalance] = []
        for category_id, category in self.categories.items():
            balance = self.category_balance(category_id, month)
            if category.archived and not (balance.assigned or balance.spent or balance.available):
                continue
            result.append(balance)
        return result

    def month_summary(self, month: str) -> MonthSummary:
        """Aggregate category balances into the month summary."""
        balances = self.balances(month)
        overspends = tuple(balance for balance in balances if balance.available < 0)
        summary = MonthSummary(
            month=month,
            to_allocate=self.ready_to_assign(month),
            total_assigned=self.total_assigned(month),
            total_spent=sum_money(balance.spent for balance in balances),
            total_inflows=self.inflows_to_budget(month),
            rollover_effect=self.rollover_effect(month),
            categories=tuple(balances),
            overspends=overspends,
        )
        logger.debug(
            "Month summary %s: to_allocate=%s assigned=%s overspends=%s",
            month,
            summary.to_allocate,
            summary.total_assigned,
            len(overspends)
        )
        return summary


def select_spent_by_category(transactions: Iterable[Transaction], category_id: str, month: str) -> Decimal:
    """
    Sum absolute outflows tagged to a category in a month.

    Split transactions only contribute the split portions assigned to the
    category, never the transaction total.
    """
    return LedgerIndex(transactions, [], []).spent(category_id, month)


def select_assigned_by_category(budget_entries: Iterable[BudgetEntry], category_id: str, month: str) -> Decimal:
    """Return the assigned amount for (category, month), or 0 when no entry exists."""
    for entry in budget_entries:
        if entry.category_id == category_id and entry.month == month:
            return entry.assigned
    return ZERO


def select_available_by_category(
    transactions: Iterable[Transaction],
    budget_entries: Iterable[BudgetEntry],
    categories: Iterable[Category],
    category_id: str,
    month: str
) -> Decimal:
    """
    Compute available = assigned - spent + carryover for a category.

    Args:
        transactions: Ledger transactions
        budget_entries: Budget entries
        categories: Known categories (rollover policies)
        category_id: Category to evaluate
        month: ``YYYY-MM`` month

    Returns:
        Available balance (may be negative)
    """
    return LedgerIndex(transactions, budget_entries, categories).available(category_id, month)


def select_carryover(
    transactions: Iterable[Transaction],
    budget_entries: Iterable[BudgetEntry],
    categories: Iterable[Category],
    category_id: str,
    month: str
) -> Decimal:
    """Return the amount carried into ``month`` from the previous month."""
    return LedgerIndex(transactions, budget_entries, categories).carryover(category_id, month)


def select_ready_to_assign(
    transactions: Iterable[Transaction],
    budget_entries: Iterable[BudgetEntry],
    categories: Iterable[Category],
    month: str
) -> Decimal:
    """Return Ready to Assign for the month."""
    return LedgerIndex(transactions, budget_entries, categories).ready_to_assign(month)


def select_month_summary(
    transactions: Iterable[Transaction],
    budget_entries: Iterable[BudgetEntry],
    categories: Iterable[Category],
    month: str
) -> MonthSummary:
    """
    Build the month summary (Ready to Assign, totals, balances, overspends).

    The summary's ``to_allocate`` is the canonical unassigned-income figure;
    consumers such as notifications read it instead of re-deriving it.
    """
    return LedgerIndex(transactions, budget_entries, categories).month_summary(month)


def select_overspends(
    transactions: Iterable[Transaction],
    budget_entries: Iterable[BudgetEntry],
    categories: Iterable[Category],
    month: str
) -> List[CategoryBalance]:
    """Return category balances whose available is below zero."""
    summary = select_month_summary(transactions, budget_entries, categories, month)
    return list(summary.overspends)


def select_min_required_by_category(
    scheduled_items: Iterable[ScheduledItem],
    category_id: str,
    month: str
) -> Decimal:
    """
    Sum bill amounts due within the month for a category.

    Flexible bills contribute their recorded average when one exists.
    """
    total = ZERO
    for item in scheduled_items:
        if item.kind is not ScheduledKind.BILL or item.category_id != category_id:
            continue
        occurrences = due_dates_in_month(item.next_due, item.cadence, month)
        total += item.due_amount * len(occurrences)
    return total


def _group_balance(
    index: LedgerIndex,
    group: Optional[Group],
    group_id: str,
    scheduled_items: Sequence[ScheduledItem],
    month: str
) -> GroupBalance:
    members = [
        category for category in index.categories.values()
        if category.group_id == group_id
    ]
    balances = tuple(index.category_balance(category.id, month) for category in members)
    assigned = sum_money(balance.assigned for balance in balances)
    min_required = sum_money(
        select_min_required_by_category(scheduled_items, category.id, month)
        for category in members
    )
    return GroupBalance(
        group_id=group_id,
        group_name=group.name if group else UNKNOWN_GROUP_NAME,
        group_type=group.type if group else "other",
        month=month,
        assigned=assigned,
        spent=sum_money(balance.spent for balance in balances),
        available=sum_money(balance.available for balance in balances),
        min_required=min_required,
        shortfall=max(ZERO, min_required - assigned),
        categories=balances,
    )


def select_group_rollup(
    transactions: Iterable[Transaction],
    budget_entries: Iterable[BudgetEntry],
    categories: Iterable[Category],
    groups: Iterable[Group],
    scheduled_items: Iterable[ScheduledItem],
    group_id: str,
    month: str
) -> GroupBalance:
    """
    Aggregate category balances of one group plus its bill minimums.

    An unknown group id degrades to a rollup named "Unknown Group".

    Returns:
        GroupBalance with shortfall = max(0, min_required - assigned)
    """
    index = LedgerIndex(transactions, budget_entries, categories)
    group = next((candidate for candidate in groups if candidate.id == group_id), None)
    return _group_balance(index, group, group_id, list(scheduled_items), month)


def select_all_group_rollups(
    transactions: Iterable[Transaction],
    budget_entries: Iterable[BudgetEntry],
    categories: Iterable[Category],
    groups: Iterable[Group],
    scheduled_items: Iterable[ScheduledItem],
    month: str
) -> List[GroupBalance]:
    """Rollups for every known group plus any group referenced only by categories."""
    index = LedgerIndex(transactions, budget_entries, categories)
    items = list(scheduled_items)
    known = {group.id: group for group in groups}
    ordered_ids = list(known)
    for category in index.categories.values():
        if category.group_id not in known and category.group_id not in ordered_ids:
            ordered_ids.append(category.group_id)
    return [_group_balance(index, known.get(group_id), group_id, items, month) for group_id in ordered_ids]


def select_coverage_pct(
    budget_entries: Iterable[BudgetEntry],
    scheduled_items: Iterable[ScheduledItem],
    month: str
) -> Decimal:
    """
    Percentage of bills due in the month that are funded by assignments.

    Each category's funding counts up to its own requirement. Returns 100
    when nothing is due.
    """
    entries = list(budget_entries)
    items = list(scheduled_items)
    category_ids = {item.category_id for item in items if item.kind is ScheduledKind.BILL and item.category_id}

    required_total = ZERO
    funded_total = ZERO
    for category_id in sorted(category_ids):
        required = select_min_required_by_category(items, category_id, month)
        if required <= 0:
            continue
        assigned = select_assigned_by_category(entries, category_id, month)
        required_total += required
        funded_total += min(max(assigned, ZERO), required)

    if required_total == 0:
        return Decimal("100")
    return quantize_money(funded_total / required_total * 100)


def validate_month_close(summary: MonthSummary) -> ValidationResult:
    """
    Check whether a month can be closed.

    A month is blocked by overspent categories and by money that is still
    unassigned (or over-assigned).
    """
    errors: List[str] = []
    warnings: List[str] = []
    if summary.overspends:
        errors.append(f"{len(summary.overspends)} overspent categories must be covered first")
    if summary.to_allocate > 0:
        errors.append(f"Ready to Assign still holds {quantize_money(summary.to_allocate)}")
    elif summary.to_allocate < 0:
        errors.append(f"Budget is over-assigned by {quantize_money(-summary.to_allocate)}")
    underfunded = [balance for balance in summary.categories if balance.available == 0 and balance.assigned == 0]
    if underfunded:
        warnings.append(f"{len(underfunded)} categories have no funds this month")
    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def validate_assignment(
    transactions: Iterable[Transaction],
    budget_entries: Iterable[BudgetEntry],
    categories: Iterable[Category],
    category_id: str,
    month: str,
    amount,
    allow_over_assign: bool = False
) -> ValidationResult:
    """
    Check a proposed assignment before it is written.

    Args:
        transactions: Ledger transactions
        budget_entries: Current budget entries
        categories: Known categories
        category_id: Category being funded
        month: Target month
        amount: New assigned amount for the (category, month) entry
        allow_over_assign: Accept assignments that drive Ready to Assign negative

    Returns:
        ValidationResult; over-assignment is a warning when allowed
    """
    errors: List[str] = []
    warnings: List[str] = []
    new_amount = coerce_decimal(amount)
    if new_amount < 0:
        errors.append("Assigned amount cannot be negative")
        return ValidationResult(is_valid=False, errors=errors, warnings=warnings)

    index = LedgerIndex(transactions, budget_entries, categories)
    if category_id not in index.categories:
        errors.append(f"Unknown category '{category_id}'")
        return ValidationResult(is_valid=False, errors=errors, warnings=warnings)

    delta = new_amount - index.assigned(category_id, month)
    remaining = index.ready_to_assign(month) - delta
    if remaining < 0:
        message = f"Assignment exceeds Ready to Assign by {quantize_money(-remaining)}"
        if allow_over_assign:
            warnings.append(message)
        else:
            errors.append(message)
    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def require_valid_assignment(result: ValidationResult) -> None:
    """Raise ValidationError carrying the first rejection reason."""
    if not result.is_valid:
        raise ValidationError(result.errors[0], details={"errors": len(result.errors)})


@dataclass(frozen=True)
class BudgetStatus:
    """
    Status of a budget category.

    Attributes:
        category_id: Category identifier
        name: Category name
        assigned: Amount assigned this month
        spent: Amount spent this month
        available: Available balance
        percentage_used: Percentage of assigned spent
    """
    category_id: str
    name: str
    assigned: Decimal
    spent: Decimal
    available: Decimal
    percentage_used: Decimal


def build_budget_statuses(index: LedgerIndex, month: str) -> List[BudgetStatus]:
    """Per-category status rows for reporting."""
    statuses: List[BudgetStatus] = []
    for balance in index.balances(month):
        category = index.categories[balance.category_id]
        used = quantize_money(balance.spent / balance.assigned * 100) if balance.assigned > 0 else ZERO
        statuses.append(BudgetStatus(
            category_id=balance.category_id,
            name=category.name,
            assigned=balance.assigned,
            spent=balance.spent,
            available=balance.available,
            percentage_used=used,
        ))
    return statuses
