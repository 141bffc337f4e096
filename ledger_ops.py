"""
Write-side ledger operations.

Pure functions that take the current arrays of the user-data snapshot and
return updated copies: assigning and moving money between categories,
split validation, balance effects of transaction edits, and category and
group lifecycle. Persisting the result is the caller's job.
"""

import logging
import uuid
from dataclasses import replace
from datetime import date
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from exceptions import LedgerError, NotFoundError, ValidationError
from models import Account, BudgetEntry, Category, Group, Split, Transaction
from money import CENT, ZERO, coerce_decimal, sum_money
from month_utils import add_months, is_valid_month, month_bounds, month_key

# Configure logging
logger = logging.getLogger(__name__)

UNCATEGORIZED_GROUP_ID = "uncategorized"


def _new_entry_id() -> str:
    return str(uuid.uuid4())


def _require_month(month: str) -> None:
    if not is_valid_month(month):
        raise ValidationError("Month must use the YYYY-MM format", details={"month": month})


def assign_to_category(
    budget_entries: Sequence[BudgetEntry],
    category_id: str,
    month: str,
    amount,
    id_factory: Callable[[], str] = _new_entry_id
) -> List[BudgetEntry]:
    """
    Set the assigned amount of a (category, month) entry.

    The entry is created lazily the first time the category is funded in
    the month; otherwise it is replaced.

    Args:
        budget_entries: Current budget entries
        category_id: Category to fund
        month: ``YYYY-MM`` month
        amount: New assigned amount
        id_factory: Generator for new entry ids

    Returns:
        New list of budget entries

    Raises:
        ValidationError: If the amount is negative or the month malformed
    """
    value = coerce_decimal(amount)
    if value < 0:
        raise ValidationError("Assigned amount cannot be negative", details={"amount": value})
    _require_month(month)

    updated: List[BudgetEntry] = []
    found = False
    for entry in budget_entries:
        if entry.category_id == category_id and entry.month == month:
            updated.append(replace(entry, assigned=value))
            found = True
        else:
            updated.append(entry)
    if not found:
        updated.append(BudgetEntry(id=id_factory(), category_id=category_id, month=month, assigned=value))
        logger.info(f"Created budget entry for {category_id} in {month}: {value}")
    else:
        logger.info(f"Updated budget entry for {category_id} in {month}: {value}")
    return updated


def adjust_assigned(
    budget_entries: Sequence[BudgetEntry],
    category_id: str,
    month: str,
    delta,
    id_factory: Callable[[], str] = _new_entry_id
) -> Tuple[List[BudgetEntry], bool]:
    """
    Add a delta to an entry's assigned amount (negative results allowed).

    Returns:
        Tuple of (new entries, whether the entry had to be created)
    """
    change = coerce_decimal(delta)
    updated: List[BudgetEntry] = []
    found = False
    for entry in budget_entries:
        if entry.category_id == category_id and entry.month == month:
            updated.append(replace(entry, assigned=entry.assigned + change))
            found = True
        else:
            updated.append(entry)
    if not found:
        updated.append(BudgetEntry(id=id_factory(), category_id=category_id, month=month, assigned=change))
    return updated, not found


def move_between_categories(
    budget_entries: Sequence[BudgetEntry],
    from_category_id: str,
    to_category_id: str,
    month: str,
    amount,
    id_factory: Callable[[], str] = _new_entry_id
) -> List[BudgetEntry]:
    """
    Move assigned money from one category to another within a month.

    Raises:
        ValidationError: If the amount is not positive or both sides match
    """
    value = coerce_decimal(amount)
    if value <= 0:
        raise ValidationError("Move amount must be positive", details={"amount": value})
    if from_category_id == to_category_id:
        raise ValidationError("Cannot move money to the same category", details={"category": from_category_id})
    _require_month(month)

    updated, _ = adjust_assigned(budget_entries, from_category_id, month, -value, id_factory)
    updated, _ = adjust_assigned(updated, to_category_id, month, value, id_factory)
    logger.info(f"Moved {value} from {from_category_id} to {to_category_id} in {month}")
    return updated


def validate_splits(total, splits: Iterable[Split]) -> None:
    """
    Check that split amounts add up to the transaction total.

    Raises:
        ValidationError: If the splits are empty, untagged, or off by more than a cent
    """
    split_list = list(splits)
    if not split_list:
        raise ValidationError("A split transaction needs at least one split")
    for position, split in enumerate(split_list):
        if not split.category_id:
            raise ValidationError("Every split needs a category", details={"split": position})
    split_total = sum_money(abs(split.amount) for split in split_list)
    expected = abs(coerce_decimal(total))
    if abs(split_total - expected) > CENT:
        raise ValidationError(
            "Split amounts must add up to the transaction total",
            details={"total": expected, "splits": split_total}
        )


def budget_month_for(value: date, month_end_offset: int = 0) -> str:
    """
    Budget month a transaction dated ``value`` belongs to.

    Args:
        value: Transaction date
        month_end_offset: Days before month end after which transactions
            count toward the next month (0 disables the shift)

    Returns:
        ``YYYY-MM`` month key
    """
    month = month_key(value)
    if month_end_offset <= 0:
        return month
    _, last_day = month_bounds(month)
    if (last_day - value).days < month_end_offset:
        return add_months(month, 1)
    return month


def apply_transaction_to_balances(
    accounts: Sequence[Account],
    transaction: Transaction,
    reverse: bool = False
) -> List[Account]:
    """
    Apply (or reverse) a transaction's effect on its account balance.

    Args:
        accounts: Current accounts
        transaction: Transaction to apply
        reverse: Undo the transaction instead

    Returns:
        New list of accounts (unchanged when the account is unknown)
    """
    if not transaction.account_id:
        return list(accounts)
    delta = transaction.signed_amount
    if reverse:
        delta = -delta
    updated: List[Account] = []
    matched = False
    for account in accounts:
        if account.id == transaction.account_id:
            updated.append(replace(account, balance=account.balance + delta))
            matched = True
        else:
            updated.append(account)
    if not matched:
        logger.warning(f"Transaction {transaction.id} references unknown account {transaction.account_id}")
    return updated


def edit_transaction(
    accounts: Sequence[Account],
    transactions: Sequence[Transaction],
    updated_transaction: Transaction
) -> Tuple[List[Account], List[Transaction]]:
    """
    Replace a transaction, reversing the old balance effect and applying the new one.

    Category spent figures follow automatically because selectors derive
    them from the transaction list.

    Raises:
        NotFoundError: If no transaction with the same id exists
        ValidationError: If the new splits do not add up
    """
    original = next((txn for txn in transactions if txn.id == updated_transaction.id), None)
    if original is None:
        raise NotFoundError("Transaction not found", details={"id": updated_transaction.id})
    if updated_transaction.splits:
        validate_splits(updated_transaction.amount, updated_transaction.splits)

    new_accounts = apply_transaction_to_balances(accounts, original, reverse=True)
    new_accounts = apply_transaction_to_balances(new_accounts, updated_transaction)
    new_transactions = [updated_transaction if txn.id == original.id else txn for txn in transactions]
    logger.info(f"Edited transaction {original.id}")
    return new_accounts, new_transactions


def archive_category(categories: Sequence[Category], category_id: str) -> List[Category]:
    """
    Soft-archive a category; its history stays resolvable.

    Raises:
        NotFoundError: If the category does not exist
    """
    if not any(category.id == category_id for category in categories):
        raise NotFoundError("Category not found", details={"id": category_id})
    return [replace(category, archived=True) if category.id == category_id else category for category in categories]


def delete_category(
    categories: Sequence[Category],
    budget_entries: Sequence[BudgetEntry],
    category_id: str
) -> List[Category]:
    """
    Hard-delete a category that no budget entry references.

    Raises:
        NotFoundError: If the category does not exist
        LedgerError: If budget entries still reference it (archive instead)
    """
    if not any(category.id == category_id for category in categories):
        raise NotFoundError("Category not found", details={"id": category_id})
    references = [entry for entry in budget_entries if entry.category_id == category_id]
    if references:
        raise LedgerError(
            "Category is referenced by budget entries; archive it instead",
            details={"id": category_id, "entries": len(references)}
        )
    return [category for category in categories if category.id != category_id]


def delete_group(
    groups: Sequence[Group],
    categories: Sequence[Category],
    group_id: str
) -> Tuple[List[Group], List[Category]]:
    """
    Delete a group and move its categories to the uncategorized group.

    Raises:
        NotFoundError: "Group not found" when the id is unknown
    """
    if not any(group.id == group_id for group in groups):
        raise NotFoundError("Group not found", details={"id": group_id})
    remaining = [group for group in groups if group.id != group_id]
    moved = 0
    new_categories: List[Category] = []
    for category in categories:
        if category.group_id == group_id:
            new_categories.append(replace(category, group_id=UNCATEGORIZED_GROUP_ID))
            moved += 1
        else:
            new_categories.append(category)
    logger.info(f"Deleted group {group_id}; moved {moved} categories to {UNCATEGORIZED_GROUP_ID}")
    return remaining, new_categories


def entries_by_key(budget_entries: Iterable[BudgetEntry]) -> Dict[Tuple[str, str], BudgetEntry]:
    """Index budget entries by (category_id, month)."""
    return {entry.key: entry for entry in budget_entries}


def find_entry(
    budget_entries: Iterable[BudgetEntry],
    category_id: str,
    month: str
) -> Optional[BudgetEntry]:
    """Return the (category, month) entry or None."""
    return entries_by_key(budget_entries).get((category_id, month))


def assigned_or_zero(budget_entries: Iterable[BudgetEntry], category_id: str, month: str) -> Decimal:
    """Assigned amount of the entry, zero when it does not exist."""
    entry = find_entry(budget_entries, category_id, month)
    return entry.assigned if entry else ZERO
