"""
Shared fixtures for the budget core tests.

The sample household below is small but touches every module: two groups,
rollover policies of each kind, a split transaction, bills, income,
debts and a goal.
"""

from datetime import date
from decimal import Decimal

import pytest

from models import (
    Account,
    AccountType,
    BudgetEntry,
    Category,
    DebtAccount,
    Goal,
    GoalContribution,
    Group,
    RolloverNegative,
    RolloverPositive,
    ScheduledItem,
    ScheduledKind,
    Split,
    Transaction,
    TransactionDirection,
)
from user_data import UserData


def outflow(txn_id, day, amount, category_id=None, splits=(), account_id="checking"):
    """Build an outflow transaction."""
    return Transaction(
        id=txn_id,
        date=day,
        amount=Decimal(str(amount)),
        direction=TransactionDirection.OUTFLOW,
        account_id=account_id,
        category_id=category_id,
        splits=tuple(splits),
    )


def income(txn_id, day, amount, account_id="checking"):
    """Build an inflow that counts toward the budget."""
    return Transaction(
        id=txn_id,
        date=day,
        amount=Decimal(str(amount)),
        direction=TransactionDirection.INFLOW,
        account_id=account_id,
        inflow_to_budget=True,
    )


def entry(category_id, month, assigned):
    """Build a budget entry with a predictable id."""
    return BudgetEntry(id=f"{category_id}:{month}", category_id=category_id, month=month, assigned=Decimal(str(assigned)))


@pytest.fixture
def groups():
    return [
        Group(id="bills", name="Bills", type="fixed"),
        Group(id="everyday", name="Everyday", type="flexible"),
    ]


@pytest.fixture
def categories():
    return [
        Category(id="rent", name="Rent", group_id="bills", priority=5),
        Category(id="utilities", name="Utilities", group_id="bills", priority=4),
        Category(
            id="groceries",
            name="Groceries",
            group_id="everyday",
            rollover_positive=RolloverPositive.RETURN,
            rollover_negative=RolloverNegative.REDUCE_TA,
        ),
        Category(id="dining_out", name="Dining Out", group_id="everyday", priority=2),
        Category(id="entertainment", name="Entertainment", group_id="everyday", priority=1),
    ]


@pytest.fixture
def budget_entries():
    return [
        entry("rent", "2024-06", 1200),
        entry("utilities", "2024-06", 150),
        entry("groceries", "2024-06", 300),
        entry("dining_out", "2024-06", 200),
        entry("entertainment", "2024-06", 100),
    ]


@pytest.fixture
def transactions():
    return [
        income("pay-1", date(2024, 6, 1), 2500),
        outflow("t-rent", date(2024, 6, 1), 1200, "rent"),
        outflow("t-util", date(2024, 6, 10), 140, "utilities"),
        outflow("t-groc-1", date(2024, 6, 5), 200, "groceries"),
        outflow(
            "t-split",
            date(2024, 6, 12),
            180,
            splits=[Split("groceries", Decimal("150")), Split("dining_out", Decimal("30"))],
        ),
        outflow("t-movie", date(2024, 6, 20), 40, "entertainment"),
    ]


@pytest.fixture
def scheduled_items():
    return [
        ScheduledItem(
            id="bill-rent",
            kind=ScheduledKind.BILL,
            amount=Decimal("1200"),
            cadence="monthly",
            next_due=date(2024, 6, 1),
            category_id="rent",
            name="Rent",
        ),
        ScheduledItem(
            id="bill-power",
            kind=ScheduledKind.BILL,
            amount=Decimal("120"),
            cadence="monthly",
            next_due=date(2024, 6, 15),
            category_id="utilities",
            name="Power",
            flexible=True,
            average_amount=Decimal("160"),
        ),
        ScheduledItem(
            id="salary",
            kind=ScheduledKind.INCOME,
            amount=Decimal("2500"),
            cadence="monthly",
            next_due=date(2024, 7, 1),
            name="Salary",
        ),
        ScheduledItem(
            id="save-emergency",
            kind=ScheduledKind.GOAL,
            amount=Decimal("100"),
            cadence="monthly",
            next_due=date(2024, 7, 1),
            name="Emergency savings",
        ),
    ]


@pytest.fixture
def accounts():
    return [
        Account(id="checking", name="Checking", type=AccountType.CHECKING, balance=Decimal("3000")),
        Account(id="savings", name="Savings", type=AccountType.SAVINGS, balance=Decimal("5000")),
        Account(id="visa", name="Visa", type=AccountType.CREDIT, balance=Decimal("-800")),
    ]


@pytest.fixture
def debts():
    return [
        DebtAccount(id="card", name="Credit Card", principal_balance=Decimal("1000"), apr=Decimal("20"), min_payment=Decimal("50")),
        DebtAccount(id="loan", name="Small Loan", principal_balance=Decimal("500"), apr=Decimal("10"), min_payment=Decimal("30")),
    ]


@pytest.fixture
def goals():
    return [
        Goal(
            id="vacation",
            name="Vacation",
            target_amount=Decimal("1000"),
            priority=4,
            target_date=date(2025, 6, 1),
            contributions=(
                GoalContribution(id="c1", date=date(2024, 5, 1), amount=Decimal("200")),
                GoalContribution(id="c2", date=date(2024, 6, 1), amount=Decimal("100")),
            ),
        ),
    ]


@pytest.fixture
def user_data(categories, groups, budget_entries, transactions, accounts, scheduled_items, debts, goals):
    return UserData(
        categories=categories,
        groups=groups,
        budget_entries=budget_entries,
        transactions=transactions,
        accounts=accounts,
        scheduled_items=scheduled_items,
        debts=debts,
        goals=goals,
    )
