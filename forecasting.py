"""
Runway and cash-flow forecasting.

Projects liquid cash, income and outflow forward from scheduled items and
trailing averages to compute the savings runway, and builds the month by
month forecast timeline (actual past months plus predicted future months)
that the scenario engine adjusts.
"""

import copy
import logging
import math
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Union

from budgeting import LedgerIndex
from exceptions import ForecastError
from frequency import normalize_to_monthly
from models import (
    Account,
    AccountType,
    BudgetEntry,
    Category,
    ForecastMode,
    ForecastOverride,
    SavingsRunway,
    ScheduledItem,
    ScheduledKind,
    Transaction,
    TransactionDirection,
)
from money import INFINITY, ZERO, quantize_money, sum_money
from month_utils import add_months, add_months_to_date, is_valid_month
from user_data import UserData

logger = logging.getLogger(__name__)

LIQUID_ACCOUNT_TYPES = (AccountType.CHECKING, AccountType.SAVINGS)
CONTRIBUTION_KINDS = (ScheduledKind.GOAL, ScheduledKind.DEBT, ScheduledKind.INVESTMENT)

TRAILING_INCOME_MONTHS = 3
TRAILING_SPEND_DAYS = 90
WMA_WEIGHTS = (Decimal("0.2"), Decimal("0.3"), Decimal("0.5"))
SPEND_UTILIZATION = Decimal("0.95")

CONFIDENCE_MULTIPLIERS: Dict[str, Decimal] = {
    "conservative": Decimal("1.1"),
    "moderate": Decimal("1.0"),
    "optimistic": Decimal("0.9"),
}


def _coerce_mode(mode: Union[ForecastMode, str]) -> ForecastMode:
    if isinstance(mode, ForecastMode):
        return mode
    try:
        return ForecastMode(str(mode).lower())
    except ValueError as exc:
        raise ForecastError("Unknown forecast mode", details={"mode": mode}, original_error=exc) from exc


def select_liquid_cash_now(accounts: Iterable[Account], transactions: Iterable[Transaction]) -> Decimal:
    """
    Sum positive balances of on-budget checking and savings accounts.

    Each balance is the recorded balance plus the signed effect of
    transactions dated after ``balance_as_of`` (every transaction when the
    recorded date is unknown). Negative balances count as zero.
    """
    txns = list(transactions)
    total = ZERO
    for account in accounts:
        if not account.on_budget or account.type not in LIQUID_ACCOUNT_TYPES:
            continue
        balance = account.balance
        for txn in txns:
            if txn.account_id != account.id:
                continue
            if account.balance_as_of is not None and txn.date <= account.balance_as_of:
                continue
            balance += txn.signed_amount
        total += max(ZERO, balance)
    return total


def select_planned_income(scheduled_items: Iterable[ScheduledItem]) -> Decimal:
    """Scheduled income normalized to a monthly amount."""
    return sum_money(
        normalize_to_monthly(abs(item.amount), item.cadence)
        for item in scheduled_items if item.kind is ScheduledKind.INCOME
    )


def select_monthly_bills_forecast(scheduled_items: Iterable[ScheduledItem]) -> Decimal:
    """Bills normalized to a monthly amount (flexible bills use their average)."""
    return sum_money(
        normalize_to_monthly(item.due_amount, item.cadence)
        for item in scheduled_items if item.kind is ScheduledKind.BILL
    )


def select_planned_contributions(scheduled_items: Iterable[ScheduledItem]) -> Decimal:
    """Goal, debt and investment contributions normalized to a monthly amount."""
    return sum_money(
        normalize_to_monthly(abs(item.amount), item.cadence)
        for item in scheduled_items if item.kind in CONTRIBUTION_KINDS
    )


def select_trailing_income_average(transactions: Iterable[Transaction], as_of: date) -> Decimal:
    """Average monthly budgeted inflow over the three months before ``as_of``."""
    window_start = add_months_to_date(as_of, -TRAILING_INCOME_MONTHS)
    total = sum_money(
        abs(txn.amount) for txn in transactions
        if txn.direction is TransactionDirection.INFLOW
        and txn.inflow_to_budget
        and window_start <= txn.date <= as_of
    )
    return quantize_money(total / TRAILING_INCOME_MONTHS)


def select_variable_spend_forecast(
    scheduled_items: Iterable[ScheduledItem],
    transactions: Iterable[Transaction],
    as_of: date
) -> Decimal:
    """
    Monthly rate of variable spending.

    Sums the trailing 90 days of categorized outflows whose category is not
    linked to a bill, then divides by three.
    """
    bill_categories = {
        item.category_id for item in scheduled_items
        if item.kind is ScheduledKind.BILL and item.category_id
    }
    window_start = as_of - timedelta(days=TRAILING_SPEND_DAYS)
    total = ZERO
    for txn in transactions:
        if txn.direction is not TransactionDirection.OUTFLOW:
            continue
        if not (window_start <= txn.date <= as_of):
            continue
        for category_id, portion in txn.category_portions().items():
            if category_id and category_id not in bill_categories:
                total += portion
    return quantize_money(total / 3)


def select_monthly_income_forecast(
    scheduled_items: Iterable[ScheduledItem],
    transactions: Iterable[Transaction],
    month: str,
    mode: Union[ForecastMode, str] = ForecastMode.PLANNED_PLUS_AVERAGE,
    as_of: Optional[date] = None
) -> Decimal:
    """
    Forecast monthly income.

    ``planned_only`` uses scheduled income; ``planned_plus_average`` never
    forecasts less than what is scheduled, taking the greater of planned
    income and the trailing three-month average of budgeted inflows.
    """
    forecast_mode = _coerce_mode(mode)
    planned = select_planned_income(scheduled_items)
    if forecast_mode is ForecastMode.PLANNED_ONLY:
        return planned
    average = select_trailing_income_average(transactions, as_of or date.today())
    return max(planned, average)


def select_monthly_outflow_forecast(
    scheduled_items: Iterable[ScheduledItem],
    transactions: Iterable[Transaction],
    categories: Iterable[Category],
    month: str,
    mode: Union[ForecastMode, str] = ForecastMode.PLANNED_PLUS_AVERAGE,
    as_of: Optional[date] = None
) -> Decimal:
    """Bills plus planned contributions, plus variable spend when averaging."""
    items = list(scheduled_items)
    forecast_mode = _coerce_mode(mode)
    outflow = select_monthly_bills_forecast(items) + select_planned_contributions(items)
    if forecast_mode is ForecastMode.PLANNED_ONLY:
        return outflow
    return outflow + select_variable_spend_forecast(items, transactions, as_of or date.today())


def select_runway(
    accounts: Iterable[Account],
    transactions: Iterable[Transaction],
    scheduled_items: Iterable[ScheduledItem],
    categories: Iterable[Category],
    month: str,
    mode: Union[ForecastMode, str] = ForecastMode.PLANNED_PLUS_AVERAGE,
    warning_threshold_months: int = 6,
    as_of: Optional[date] = None
) -> SavingsRunway:
    """
    Compute how long liquid cash lasts at the forecast monthly net.

    Args:
        accounts: Accounts (liquid cash source)
        transactions: Ledger transactions
        scheduled_items: Bills, income and planned contributions
        categories: Known categories
        month: Month the projection starts from
        mode: ``planned_only`` or ``planned_plus_average``
        warning_threshold_months: Runway at or below this is critical
        as_of: Reference date for trailing windows (defaults to today)

    Returns:
        SavingsRunway; runway is infinite when the monthly net is not negative
    """
    if not is_valid_month(month):
        raise ForecastError("Month must use the YYYY-MM format", details={"month": month})
    reference = as_of or date.today()
    forecast_mode = _coerce_mode(mode)
    txns = list(transactions)
    items = list(scheduled_items)

    liquid_cash = select_liquid_cash_now(accounts, txns)
    income = select_monthly_income_forecast(items, txns, month, forecast_mode, reference)
    bills = select_monthly_bills_forecast(items)
    contributions = select_planned_contributions(items)
    variable = ZERO
    if forecast_mode is ForecastMode.PLANNED_PLUS_AVERAGE:
        variable = select_variable_spend_forecast(items, txns, reference)
    outflow = bills + contributions + variable
    net = income - outflow

    runway_months = INFINITY
    depletion_month = None
    if net < 0:
        raw_runway = liquid_cash / abs(net)
        runway_months = quantize_money(raw_runway)
        depletion_month = add_months(month, math.ceil(raw_runway))

    runway = SavingsRunway(
        liquid_cash_now=liquid_cash,
        monthly_income_forecast=income,
        monthly_bills_forecast=bills,
        variable_spend_forecast=variable,
        planned_contributions=contributions,
        monthly_outflow_forecast=outflow,
        monthly_net_forecast=net,
        runway_months=runway_months,
        depletion_month=depletion_month,
        forecast_mode=forecast_mode,
        warning_threshold_months=warning_threshold_months,
        is_critical=runway_months <= warning_threshold_months,
    )
    if runway.is_critical:
        logger.warning(f"Runway of {runway_months} months is at or below {warning_threshold_months} months")
    return runway


@dataclass
class ForecastCategory:
    """Forecast line for one category in one month."""

    category_id: str
    category_name: str
    group_id: str
    group_name: str
    baseline: Decimal
    final: Decimal
    confidence: str = "high"
    override: Optional[Decimal] = None


@dataclass
class ForecastMonth:
    """One month of the forecast timeline."""

    month: str
    income: Decimal
    rta: Decimal
    categories: List[ForecastCategory]
    total_assigned: Decimal
    total_spent: Decimal
    net_cash_flow: Decimal
    is_actual: bool = False

    def category(self, category_id: str) -> Optional[ForecastCategory]:
        """Find a category line by id."""
        return next((line for line in self.categories if line.category_id == category_id), None)


@dataclass
class ForecastOptions:
    """
    Forecast timeline options.

    Attributes:
        include_overrides: Apply user forecast overrides
        seasonality: Apply name-based seasonality multipliers
        confidence_threshold: conservative, moderate or optimistic
        past_months: Actual months shown before the current month
        future_months: Predicted months after the current month
    """
    include_overrides: bool = True
    seasonality: bool = True
    confidence_threshold: str = "moderate"
    past_months: int = 6
    future_months: int = 12

    @classmethod
    def from_config(cls, config: Dict) -> "ForecastOptions":
        """Build options from the ``forecast`` configuration section."""
        section = config.get("forecast", {}) or {}
        return cls(
            include_overrides=bool(section.get("include_overrides", True)),
            seasonality=bool(section.get("seasonality", True)),
            confidence_threshold=section.get("confidence_threshold", "moderate"),
            past_months=int(section.get("past_months", 6)),
            future_months=int(section.get("future_months", 12)),
        )


def seasonality_multiplier(category_name: str, month: str) -> Decimal:
    """Name-based seasonal factor for a category in a calendar month."""
    month_num = int(month.split("-")[1])
    name = category_name.lower()
    if "utilities" in name or "heating" in name:
        if month_num in (12, 1, 2):
            return Decimal("1.3")
        if month_num in (6, 7, 8):
            return Decimal("0.8")
        return Decimal("1.0")
    if "gift" in name or "holiday" in name:
        return Decimal("2.0") if month_num in (11, 12) else Decimal("0.3")
    if "vacation" in name or "travel" in name:
        return Decimal("1.5") if month_num in (6, 7, 8) else Decimal("0.8")
    return Decimal("1.0")


def confidence_multiplier(threshold: str) -> Decimal:
    """Buffer applied to predicted baselines (unknown thresholds are neutral)."""
    return CONFIDENCE_MULTIPLIERS.get(threshold, Decimal("1.0"))


def determine_confidence(
    category_id: str,
    budget_entries: Iterable[BudgetEntry],
    transactions: Iterable[Transaction]
) -> str:
    """
    Rate how much history backs a category prediction.

    Returns:
        "high", "medium" or "low"
    """
    funded_months = sum(1 for entry in budget_entries if entry.category_id == category_id and entry.assigned > 0)
    txn_count = sum(1 for txn in transactions if category_id in txn.category_portions())
    if funded_months >= 3 and txn_count >= 5:
        return "high"
    if funded_months >= 2 and txn_count >= 2:
        return "medium"
    return "low"


def compute_category_baseline(
    index: LedgerIndex,
    category: Category,
    current_month: str,
    target_month: str,
    options: ForecastOptions
) -> Decimal:
    """
    Predicted amount for a category in a future month.

    Weighted moving average (0.2/0.3/0.5) of assigned and of spent over the
    three months ending at the current month, taking the larger of the
    two, then scaled by seasonality and the confidence buffer.
    """
    history = [add_months(current_month, offset) for offset in (-2, -1, 0)]
    wma_assigned = ZERO
    wma_spent = ZERO
    for weight, month in zip(WMA_WEIGHTS, history):
        wma_assigned += index.assigned(category.id, month) * weight
        wma_spent += index.spent(category.id, month) * weight
    baseline = max(wma_assigned, wma_spent)
    if options.seasonality:
        baseline *= seasonality_multiplier(category.name, target_month)
    baseline *= confidence_multiplier(options.confidence_threshold)
    return quantize_money(baseline)


def _group_name(data: UserData, group_id: str) -> str:
    group = data.group(group_id)
    return group.name if group else "Uncategorized"


def _actual_month(data: UserData, index: LedgerIndex, month: str) -> ForecastMonth:
    lines: List[ForecastCategory] = []
    total_spent = ZERO
    for category in data.categories:
        assigned = index.assigned(category.id, month)
        total_spent += index.spent(category.id, month)
        lines.append(ForecastCategory(
            category_id=category.id,
            category_name=category.name,
            group_id=category.group_id,
            group_name=_group_name(data, category.group_id),
            baseline=assigned,
            final=assigned,
            confidence="high",
        ))
    income = index.inflows_to_budget(month)
    total_assigned = sum_money(line.final for line in lines)
    return ForecastMonth(
        month=month,
        income=income,
        rta=income - total_assigned,
        categories=lines,
        total_assigned=total_assigned,
        total_spent=total_spent,
        net_cash_flow=income - total_spent,
        is_actual=True,
    )


def _predicted_month(
    data: UserData,
    index: LedgerIndex,
    current_month: str,
    month: str,
    options: ForecastOptions
) -> ForecastMonth:
    lines: List[ForecastCategory] = []
    for category in data.categories:
        if category.archived:
            continue
        baseline = compute_category_baseline(index, category, current_month, month, options)
        lines.append(ForecastCategory(
            category_id=category.id,
            category_name=category.name,
            group_id=category.group_id,
            group_name=_group_name(data, category.group_id),
            baseline=baseline,
            final=baseline,
            confidence=determine_confidence(category.id, data.budget_entries, data.transactions),
        ))
    return recalculate_month(ForecastMonth(
        month=month,
        income=select_planned_income(data.scheduled_items),
        rta=ZERO,
        categories=lines,
        total_assigned=ZERO,
        total_spent=ZERO,
        net_cash_flow=ZERO,
    ))


def recalculate_month(forecast_month: ForecastMonth) -> ForecastMonth:
    """
    Refresh the totals of a predicted month from its category lines.

    Predicted spending assumes 95% of the assigned total is used.
    """
    forecast_month.total_assigned = sum_money(line.final for line in forecast_month.categories)
    forecast_month.rta = forecast_month.income - forecast_month.total_assigned
    forecast_month.total_spent = quantize_money(forecast_month.total_assigned * SPEND_UTILIZATION)
    forecast_month.net_cash_flow = forecast_month.income - forecast_month.total_spent
    return forecast_month


def generate_forecast(
    data: UserData,
    current_month: str,
    options: Optional[ForecastOptions] = None
) -> List[ForecastMonth]:
    """
    Build the forecast timeline around the current month.

    Past months and the current month report actual figures; future months
    are predicted from category baselines and planned income, with user
    overrides applied when enabled.

    Args:
        data: User-data snapshot
        current_month: Month separating actual from predicted figures
        options: Timeline options (defaults when omitted)

    Returns:
        Chronological list of ForecastMonth
    """
    if not is_valid_month(current_month):
        raise ForecastError("Month must use the YYYY-MM format", details={"month": current_month})
    opts = options or ForecastOptions()
    index = LedgerIndex(data.transactions, data.budget_entries, data.categories)

    timeline: List[ForecastMonth] = []
    for offset in range(-opts.past_months, 0):
        timeline.append(_actual_month(data, index, add_months(current_month, offset)))
    timeline.append(_actual_month(data, index, current_month))
    for offset in range(1, opts.future_months + 1):
        timeline.append(_predicted_month(data, index, current_month, add_months(current_month, offset), opts))

    if opts.include_overrides and data.forecast_overrides:
        future = [override for override in data.forecast_overrides if override.month > current_month]
        timeline = apply_overrides(timeline, future)

    logger.info(f"Generated forecast of {len(timeline)} months around {current_month}")
    return timeline


def apply_overrides(
    forecast: Sequence[ForecastMonth],
    overrides: Iterable[ForecastOverride]
) -> List[ForecastMonth]:
    """
    Apply user deltas to a forecast, returning a new timeline.

    Income overrides (no category) add to income; category overrides set
    ``final = baseline + delta``. Totals are recomputed for touched months.
    """
    by_month: Dict[str, List[ForecastOverride]] = {}
    for override in overrides:
        by_month.setdefault(override.month, []).append(override)

    result: List[ForecastMonth] = []
    for month in forecast:
        month_overrides = by_month.get(month.month)
        if not month_overrides:
            result.append(copy.deepcopy(month))
            continue
        updated = copy.deepcopy(month)
        category_deltas: Dict[str, Decimal] = {}
        for override in month_overrides:
            if override.category_id is None:
                updated.income += override.delta_amount
            else:
                category_deltas[override.category_id] = (
                    category_deltas.get(override.category_id, ZERO) + override.delta_amount
                )
        for line in updated.categories:
            if line.category_id in category_deltas:
                line.override = category_deltas[line.category_id]
                line.final = line.baseline + line.override
        updated.total_assigned = sum_money(line.final for line in updated.categories)
        updated.rta = updated.income - updated.total_assigned
        updated.net_cash_flow = updated.income - updated.total_spent
        result.append(updated)
    return result


def group_forecast_by_group(forecast: Sequence[ForecastMonth]) -> Dict[str, List[str]]:
    """Map group names to the category ids that appear under them."""
    grouped: Dict[str, List[str]] = {}
    for month in forecast:
        for line in month.categories:
            members = grouped.setdefault(line.group_name, [])
            if line.category_id not in members:
                members.append(line.category_id)
    return grouped


def forecast_month_keys(forecast: Sequence[ForecastMonth]) -> List[str]:
    """Month keys of a timeline, in order."""
    return [month.month for month in forecast]
