"""
Record types for the budget calculation core.

Every entity of the user-data blob (categories, budget entries,
transactions, accounts, scheduled items, debts, goals) gets an explicit
frozen dataclass with enumerated tags and optional fields. Money fields
are coerced to Decimal on construction so callers may pass ints or
strings.
"""

import enum
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from money import INFINITY, ZERO, coerce_decimal
from month_utils import month_key


def _coerce_fields(instance, *names: str) -> None:
    for name in names:
        value = getattr(instance, name)
        if value is not None:
            object.__setattr__(instance, name, coerce_decimal(value))


class RolloverPositive(enum.Enum):
    """What happens to a positive leftover at month end."""
    CARRY = "carry"
    RETURN = "return"


class RolloverNegative(enum.Enum):
    """What happens to an overspend at month end."""
    REDUCE_TA = "reduce_ta"
    CARRY = "carry"
    IGNORE = "ignore"


class TransactionDirection(enum.Enum):
    """Enumeration of transaction directions."""
    INFLOW = "inflow"
    OUTFLOW = "outflow"
    TRANSFER = "transfer"


class AccountType(enum.Enum):
    """Enumeration of account types."""
    CHECKING = "checking"
    SAVINGS = "savings"
    CREDIT = "credit"
    INVESTMENT = "investment"
    LOAN = "loan"


class ScheduledKind(enum.Enum):
    """Kinds of scheduled (planned) items."""
    BILL = "bill"
    GOAL = "goal"
    DEBT = "debt"
    INVESTMENT = "investment"
    INCOME = "income"


class GoalStatus(enum.Enum):
    """Lifecycle states of a savings goal."""
    ACTIVE = "ACTIVE"
    PAUSED = "PAUSED"
    COMPLETED = "COMPLETED"
    ARCHIVED = "ARCHIVED"


class ForecastMode(enum.Enum):
    """How income and outflow are projected."""
    PLANNED_ONLY = "planned_only"
    PLANNED_PLUS_AVERAGE = "planned_plus_average"


@dataclass(frozen=True)
class Group:
    """Category group (e.g. "Bills", "Everyday")."""

    id: str
    name: str
    type: str = "other"


@dataclass(frozen=True)
class Category:
    """
    Budget category (envelope).

    Attributes:
        id: Category identifier
        name: Display name
        group_id: Owning group identifier
        priority: 1 (lowest) to 5 (highest)
        rollover_positive: Policy for positive leftovers
        rollover_negative: Policy for overspends
        target_type: Optional target kind (e.g. "have_balance_by")
        target_amount: Optional target amount
        target_date: Optional "have balance by" date
        target_snoozed_until: Target ignored through this date
        is_savings: Marks savings envelopes
        archived: Soft-archived categories stay resolvable
    """

    id: str
    name: str
    group_id: str = "uncategorized"
    priority: int = 3
    rollover_positive: RolloverPositive = RolloverPositive.CARRY
    rollover_negative: RolloverNegative = RolloverNegative.REDUCE_TA
    target_type: Optional[str] = None
    target_amount: Optional[Decimal] = None
    target_date: Optional[date] = None
    target_snoozed_until: Optional[date] = None
    is_savings: bool = False
    archived: bool = False

    def __post_init__(self) -> None:
        _coerce_fields(self, "target_amount")


@dataclass(frozen=True)
class BudgetEntry:
    """Assigned amount for one (category, month) pair."""

    id: str
    category_id: str
    month: str
    assigned: Decimal = ZERO

    def __post_init__(self) -> None:
        _coerce_fields(self, "assigned")

    @property
    def key(self) -> Tuple[str, str]:
        """Uniqueness key of the entry."""
        return (self.category_id, self.month)


@dataclass(frozen=True)
class Split:
    """Portion of a transaction allocated to one category."""

    category_id: str
    amount: Decimal
    memo: Optional[str] = None

    def __post_init__(self) -> None:
        _coerce_fields(self, "amount")


@dataclass(frozen=True)
class Transaction:
    """
    Ledger transaction.

    ``amount`` is stored as recorded; ``direction`` decides its sign for
    balance purposes and selectors always work on the magnitude.
    """

    id: str
    date: date
    amount: Decimal
    direction: TransactionDirection
    account_id: Optional[str] = None
    category_id: Optional[str] = None
    inflow_to_budget: bool = False
    splits: Tuple[Split, ...] = ()
    payee: Optional[str] = None
    memo: Optional[str] = None
    cleared: bool = False

    def __post_init__(self) -> None:
        _coerce_fields(self, "amount")
        object.__setattr__(self, "splits", tuple(self.splits))

    @property
    def month(self) -> str:
        """Budget month of the transaction."""
        return month_key(self.date)

    @property
    def signed_amount(self) -> Decimal:
        """Effect on the account balance (inflow +, outflow -)."""
        if self.direction is TransactionDirection.INFLOW:
            return abs(self.amount)
        if self.direction is TransactionDirection.OUTFLOW:
            return -abs(self.amount)
        return self.amount

    def category_portions(self) -> Dict[Optional[str], Decimal]:
        """Absolute amount per category, honoring splits."""
        if self.splits:
            portions: Dict[Optional[str], Decimal] = {}
            for split in self.splits:
                portions[split.category_id] = portions.get(split.category_id, ZERO) + abs(split.amount)
            return portions
        return {self.category_id: abs(self.amount)}


@dataclass(frozen=True)
class Account:
    """Account with a recorded balance and the date it was recorded."""

    id: str
    name: str
    type: AccountType
    on_budget: bool = True
    balance: Decimal = ZERO
    balance_as_of: Optional[date] = None

    def __post_init__(self) -> None:
        _coerce_fields(self, "balance")


@dataclass(frozen=True)
class ScheduledItem:
    """
    Recurring or one-off planned item (bill, income, contribution).

    Attributes:
        id: Identifier
        kind: Bill, income, goal, debt or investment
        amount: Nominal amount per occurrence
        cadence: weekly/biweekly/semimonthly/monthly/quarterly/yearly/oneoff
        next_due: Next due date
        category_id: Linked budget category (income may have none)
        name: Display name
        flexible: Flexible bills use their recorded average amount
        average_amount: Trailing average for flexible bills
        is_paid: Whether the current occurrence is already paid
    """

    id: str
    kind: ScheduledKind
    amount: Decimal
    cadence: str = "monthly"
    next_due: Optional[date] = None
    category_id: Optional[str] = None
    name: str = ""
    flexible: bool = False
    average_amount: Optional[Decimal] = None
    is_paid: bool = False

    def __post_init__(self) -> None:
        _coerce_fields(self, "amount", "average_amount")

    @property
    def due_amount(self) -> Decimal:
        """Amount expected for one occurrence."""
        if self.flexible and self.average_amount:
            return abs(self.average_amount)
        return abs(self.amount)


@dataclass(frozen=True)
class DebtAccount:
    """
    Debt fed to the payoff simulator. Never mutated by the simulation.

    Attributes:
        principal_balance: Current principal
        apr: Annual percentage rate (e.g. 19.99)
        min_payment: Required monthly minimum
        promo_rate: Promotional APR applying through ``promo_ends``
        promo_ends: Last month (``YYYY-MM``) of the promotional rate
    """

    id: str
    name: str
    principal_balance: Decimal
    apr: Decimal
    min_payment: Decimal
    type: str = "other"
    credit_limit: Optional[Decimal] = None
    promo_rate: Optional[Decimal] = None
    promo_ends: Optional[str] = None

    def __post_init__(self) -> None:
        _coerce_fields(self, "principal_balance", "apr", "min_payment", "credit_limit", "promo_rate")

    def apr_for_month(self, month: str) -> Decimal:
        """Effective APR in a calendar month (promotional rate honored)."""
        if self.promo_rate is not None and self.promo_ends and month <= self.promo_ends:
            return self.promo_rate
        return self.apr


@dataclass(frozen=True)
class GoalContribution:
    """Single entry of a goal's append-only contribution ledger."""

    id: str
    date: date
    amount: Decimal
    source: str = "RTA"
    note: Optional[str] = None

    def __post_init__(self) -> None:
        _coerce_fields(self, "amount")


@dataclass(frozen=True)
class Goal:
    """Savings goal with its contributions."""

    id: str
    name: str
    target_amount: Decimal
    priority: int = 3
    status: GoalStatus = GoalStatus.ACTIVE
    target_date: Optional[date] = None
    category_id: Optional[str] = None
    contributions: Tuple[GoalContribution, ...] = ()

    def __post_init__(self) -> None:
        _coerce_fields(self, "target_amount")
        object.__setattr__(self, "contributions", tuple(self.contributions))

    @property
    def saved_amount(self) -> Decimal:
        """Total contributed so far."""
        total = ZERO
        for contribution in self.contributions:
            total += contribution.amount
        return total


@dataclass(frozen=True)
class ForecastOverride:
    """User delta applied to a forecast month (category None means income)."""

    month: str
    category_id: Optional[str]
    delta_amount: Decimal
    note: Optional[str] = None

    def __post_init__(self) -> None:
        _coerce_fields(self, "delta_amount")


@dataclass(frozen=True)
class CategoryBalance:
    """Derived ledger figures for one category in one month."""

    category_id: str
    month: str
    assigned: Decimal
    spent: Decimal
    available: Decimal
    carryover_from_prior: Decimal


@dataclass(frozen=True)
class MonthSummary:
    """Ready-to-Assign and per-category balances of a month."""

    month: str
    to_allocate: Decimal
    total_assigned: Decimal
    total_spent: Decimal
    total_inflows: Decimal
    rollover_effect: Decimal
    categories: Tuple[CategoryBalance, ...]
    overspends: Tuple[CategoryBalance, ...]


@dataclass(frozen=True)
class GroupBalance:
    """Group rollup of category balances plus bill minimums."""

    group_id: str
    group_name: str
    group_type: str
    month: str
    assigned: Decimal
    spent: Decimal
    available: Decimal
    min_required: Decimal
    shortfall: Decimal
    categories: Tuple[CategoryBalance, ...]


@dataclass(frozen=True)
class SavingsRunway:
    """
    Cash runway projection.

    ``runway_months`` is ``Decimal('Infinity')`` when the monthly net is
    not negative; ``depletion_month`` is then None.
    """

    liquid_cash_now: Decimal
    monthly_income_forecast: Decimal
    monthly_bills_forecast: Decimal
    variable_spend_forecast: Decimal
    planned_contributions: Decimal
    monthly_outflow_forecast: Decimal
    monthly_net_forecast: Decimal
    runway_months: Decimal
    depletion_month: Optional[str]
    forecast_mode: ForecastMode
    warning_threshold_months: int
    is_critical: bool

    @property
    def is_unbounded(self) -> bool:
        """True when cash never depletes at the forecast rate."""
        return self.runway_months == INFINITY


@dataclass(frozen=True)
class ValidationResult:
    """Structured outcome of a validation pass."""

    is_valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


__all__ = [
    "RolloverPositive",
    "RolloverNegative",
    "TransactionDirection",
    "AccountType",
    "ScheduledKind",
    "GoalStatus",
    "ForecastMode",
    "Group",
    "Category",
    "BudgetEntry",
    "Split",
    "Transaction",
    "Account",
    "ScheduledItem",
    "DebtAccount",
    "GoalContribution",
    "Goal",
    "ForecastOverride",
    "CategoryBalance",
    "MonthSummary",
    "GroupBalance",
    "SavingsRunway",
    "ValidationResult",
]
