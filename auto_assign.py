"""
Auto-assign: suggest how to spend Ready to Assign on underfunded targets.

Four deterministic strategies (priority, urgency, spending trend and
proportional) each produce a plan; the plan with the best coverage and
confidence score wins. Suggestions never exceed Ready to Assign and
never exceed what a target still needs.
"""

import logging
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal
from typing import Callable, Iterable, List, Optional, Sequence, Tuple

import pandas as pd

from budgeting import LedgerIndex
from ledger_ops import adjust_assigned
from models import BudgetEntry, Transaction, TransactionDirection
from money import ZERO, coerce_decimal, quantize_money, sum_money
from targets import (
    HAVE_BALANCE_BY,
    REFILL_UP_TO,
    SET_ASIDE_ANOTHER,
    TargetCalculation,
    calculate_target_needs,
    target_priority,
)

logger = logging.getLogger(__name__)

SHORT_WINDOW_DAYS = 30
LONG_WINDOW_DAYS = 90
VOLATILITY_SAMPLE = 10
NO_DUE_DATE_DAYS = 999
CONFIDENCE_WEIGHTS = {"high": Decimal("1"), "medium": Decimal("0.7"), "low": Decimal("0.4")}


@dataclass(frozen=True)
class SpendingTrend:
    """Recent spending pattern of one category."""

    category_id: str
    last_30_day_average: Decimal
    last_90_day_average: Decimal
    trend: str
    volatility: str


@dataclass(frozen=True)
class AllocationSuggestion:
    """Suggested amount to add to one category's assignment."""

    category_id: str
    category_name: str
    current_balance: Decimal
    suggested_amount: Decimal
    reason: str
    priority: int
    confidence: str


@dataclass(frozen=True)
class AutoAssignResult:
    """Winning plan, or an empty one naming why nothing was suggested."""

    suggestions: Tuple[AllocationSuggestion, ...]
    total_suggested: Decimal
    remaining_rta: Decimal
    strategy: str
    confidence: int


def _volatility(amounts: Sequence[Decimal]) -> str:
    if len(amounts) < 3:
        return "low"
    series = pd.Series([float(amount) for amount in amounts])
    mean = series.mean()
    coefficient = series.std(ddof=0) / mean if mean > 0 else 0.0
    if coefficient > 0.5:
        return "high"
    if coefficient > 0.25:
        return "medium"
    return "low"


def calculate_spending_trends(
    transactions: Iterable[Transaction],
    category_ids: Iterable[str],
    as_of: date
) -> List[SpendingTrend]:
    """
    Daily spending averages over the last 30 and 90 days per category.

    A 30-day average above 120% of the 90-day one is "increasing", below
    80% "decreasing". Volatility is the coefficient of variation of the
    last ten outflows.
    """
    outflows = [
        txn for txn in transactions
        if txn.direction is TransactionDirection.OUTFLOW and txn.date <= as_of
    ]
    short_start = as_of - timedelta(days=SHORT_WINDOW_DAYS)
    long_start = as_of - timedelta(days=LONG_WINDOW_DAYS)

    trends: List[SpendingTrend] = []
    for category_id in category_ids:
        dated = sorted(
            (txn.date, portion)
            for txn in outflows
            for portion_id, portion in txn.category_portions().items()
            if portion_id == category_id
        )
        short_average = sum_money(amount for day, amount in dated if day >= short_start) / SHORT_WINDOW_DAYS
        long_average = sum_money(amount for day, amount in dated if day >= long_start) / LONG_WINDOW_DAYS
        trend = "stable"
        if short_average > long_average * Decimal("1.2"):
            trend = "increasing"
        elif short_average < long_average * Decimal("0.8"):
            trend = "decreasing"
        trends.append(SpendingTrend(
            category_id=category_id,
            last_30_day_average=quantize_money(short_average),
            last_90_day_average=quantize_money(long_average),
            trend=trend,
            volatility=_volatility([amount for _, amount in dated[-VOLATILITY_SAMPLE:]]),
        ))
    return trends


def trend_score(trend: Optional[SpendingTrend]) -> int:
    """Higher for rising, volatile spending; 25 without history."""
    if trend is None:
        return 25
    score = 50
    if trend.trend == "increasing":
        score += 20
    if trend.volatility == "high":
        score += 15
    if trend.last_30_day_average > trend.last_90_day_average:
        score += 10
    return score


def _priority_reason(target: TargetCalculation) -> str:
    if target.target_type == HAVE_BALANCE_BY:
        return f"Due in {target.days_until_due} days" if target.days_until_due else "Time-sensitive target"
    if target.target_type == SET_ASIDE_ANOTHER:
        return "Regular savings goal"
    if target.target_type == REFILL_UP_TO:
        return "Maintain target balance"
    return "High priority target"


def _urgency_reason(target: TargetCalculation) -> str:
    days = target.days_until_due
    if days is not None:
        if days <= 7:
            return "Due this week"
        if days <= 30:
            return "Due this month"
        if days <= 90:
            return "Due in 3 months"
    return "No specific due date"


def _trend_reason(trend: Optional[SpendingTrend]) -> str:
    if trend is None:
        return "No spending history"
    if trend.trend == "increasing":
        return "Spending is increasing"
    if trend.trend == "decreasing":
        return "Spending is decreasing"
    return "Stable spending pattern"


def calculate_confidence(suggestions: Sequence[AllocationSuggestion], targets: Sequence[TargetCalculation]) -> int:
    """Blend of need coverage (60%) and per-suggestion confidence (40%), 0-100."""
    if not suggestions:
        return 0
    total_needed = sum_money(target.needed for target in targets)
    coverage = sum_money(s.suggested_amount for s in suggestions) / total_needed if total_needed > 0 else ZERO
    average = sum_money(CONFIDENCE_WEIGHTS[s.confidence] for s in suggestions) / len(suggestions)
    blended = (coverage * Decimal("0.6") + average * Decimal("0.4")) * 100
    return int(blended.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def _result(
    suggestions: List[AllocationSuggestion],
    available_rta: Decimal,
    strategy: str,
    targets: Sequence[TargetCalculation]
) -> AutoAssignResult:
    total = sum_money(s.suggested_amount for s in suggestions)
    return AutoAssignResult(
        suggestions=tuple(suggestions),
        total_suggested=total,
        remaining_rta=available_rta - total,
        strategy=strategy,
        confidence=calculate_confidence(suggestions, targets),
    )


def _greedy(
    available_rta: Decimal,
    ordered: Sequence[TargetCalculation],
    describe: Callable[[TargetCalculation], Tuple[str, int, str]]
) -> List[AllocationSuggestion]:
    suggestions: List[AllocationSuggestion] = []
    remaining = available_rta
    for target in ordered:
        if remaining <= 0:
            break
        amount = min(target.needed, remaining)
        if amount <= 0:
            continue
        reason, priority, confidence = describe(target)
        suggestions.append(AllocationSuggestion(
            category_id=target.category_id,
            category_name=target.category_name,
            current_balance=target.current_balance,
            suggested_amount=amount,
            reason=reason,
            priority=priority,
            confidence=confidence,
        ))
        remaining -= amount
    return suggestions


def priority_based_allocation(available_rta: Decimal, targets: Sequence[TargetCalculation]) -> AutoAssignResult:
    """Fund the highest target priority first."""
    ordered = sorted(targets, key=lambda target: -target_priority(target))
    suggestions = _greedy(
        available_rta, ordered, lambda target: (_priority_reason(target), target_priority(target), "high")
    )
    return _result(suggestions, available_rta, "priority_based", targets)


def urgency_based_allocation(available_rta: Decimal, targets: Sequence[TargetCalculation]) -> AutoAssignResult:
    """Fund the nearest due date first; undated targets go last."""
    def days(target: TargetCalculation) -> int:
        return NO_DUE_DATE_DAYS if target.days_until_due is None else target.days_until_due

    def describe(target: TargetCalculation) -> Tuple[str, int, str]:
        if target.days_until_due is None:
            return _urgency_reason(target), 50, "medium"
        return _urgency_reason(target), max(1, 100 - target.days_until_due), "high"

    return _result(_greedy(available_rta, sorted(targets, key=days), describe), available_rta, "urgency_based", targets)


def trend_based_allocation(
    available_rta: Decimal,
    targets: Sequence[TargetCalculation],
    trends: Sequence[SpendingTrend]
) -> AutoAssignResult:
    """Fund categories with rising or volatile spending first."""
    by_category = {trend.category_id: trend for trend in trends}

    def describe(target: TargetCalculation) -> Tuple[str, int, str]:
        trend = by_category.get(target.category_id)
        return _trend_reason(trend), trend_score(trend), "medium" if trend else "low"

    ordered = sorted(targets, key=lambda target: -trend_score(by_category.get(target.category_id)))
    return _result(_greedy(available_rta, ordered, describe), available_rta, "trend_based", targets)


def balanced_allocation(available_rta: Decimal, targets: Sequence[TargetCalculation]) -> AutoAssignResult:
    """Split Ready to Assign in proportion to each target's need."""
    total_needed = sum_money(target.needed for target in targets)
    if total_needed <= 0:
        return AutoAssignResult((), ZERO, available_rta, "balanced", 0)

    suggestions: List[AllocationSuggestion] = []
    remaining = available_rta
    for target in targets:
        if remaining <= 0:
            break
        proportion = target.needed / total_needed
        amount = min(quantize_money(available_rta * proportion), target.needed, remaining)
        if amount <= 0:
            continue
        suggestions.append(AllocationSuggestion(
            category_id=target.category_id,
            category_name=target.category_name,
            current_balance=target.current_balance,
            suggested_amount=amount,
            reason=f"Proportional allocation ({proportion * 100:.1f}% of need)",
            priority=50,
            confidence="medium",
        ))
        remaining -= amount
    return _result(suggestions, available_rta, "balanced", targets)


def strategy_score(result: AutoAssignResult, targets: Sequence[TargetCalculation]) -> Decimal:
    """Coverage 50%, confidence 30%, share of targets touched 20%."""
    total_needed = max(Decimal(1), sum_money(target.needed for target in targets))
    coverage = result.total_suggested / total_needed
    efficiency = Decimal(len(result.suggestions)) / max(1, len(targets))
    return (coverage * Decimal("0.5") + Decimal(result.confidence) / 100 * Decimal("0.3")
            + efficiency * Decimal("0.2")) * 100


def generate_allocation_suggestions(
    available_rta,
    calculations: Sequence[TargetCalculation],
    trends: Sequence[SpendingTrend] = (),
    locked_categories: Iterable[str] = ()
) -> AutoAssignResult:
    """
    Pick the best-scoring allocation plan for the underfunded targets.

    Locked and snoozed categories are never suggested. Ties keep the
    earlier strategy (priority, urgency, trend, balanced).

    Args:
        available_rta: Ready to Assign for the month
        calculations: Target calculations of the month
        trends: Spending trends for the targeted categories
        locked_categories: Category ids the user does not want touched

    Returns:
        AutoAssignResult; ``strategy`` is insufficient_funds,
        no_eligible_targets or no_viable_strategy when nothing is suggested
    """
    rta = coerce_decimal(available_rta)
    if rta <= 0:
        return AutoAssignResult((), ZERO, rta, "insufficient_funds", 0)

    locked = set(locked_categories)
    eligible = [
        calc for calc in calculations
        if calc.category_id not in locked and not calc.is_snoozed and calc.is_underfunded
    ]
    if not eligible:
        return AutoAssignResult((), ZERO, rta, "no_eligible_targets", 0)

    candidates = [
        priority_based_allocation(rta, eligible),
        urgency_based_allocation(rta, eligible),
        trend_based_allocation(rta, eligible, trends),
        balanced_allocation(rta, eligible),
    ]
    best: Optional[AutoAssignResult] = None
    best_score = ZERO
    for candidate in candidates:
        score = strategy_score(candidate, eligible)
        if score > best_score:
            best, best_score = candidate, score
    if best is None:
        return AutoAssignResult((), ZERO, rta, "no_viable_strategy", 0)
    logger.info(f"Auto-assign picked {best.strategy}: {best.total_suggested} across {len(best.suggestions)} categories")
    return best


def suggest_allocations(
    index: LedgerIndex,
    transactions: Iterable[Transaction],
    month: str,
    as_of: date,
    locked_categories: Iterable[str] = ()
) -> AutoAssignResult:
    """Auto-assign the month's Ready to Assign from a ledger snapshot."""
    needs = calculate_target_needs(index, month, as_of)
    trends = calculate_spending_trends(transactions, [calc.category_id for calc in needs.categories], as_of)
    return generate_allocation_suggestions(index.ready_to_assign(month), needs.categories, trends, locked_categories)


def apply_allocation_suggestions(
    budget_entries: Sequence[BudgetEntry],
    suggestions: Iterable[AllocationSuggestion],
    month: str
) -> List[BudgetEntry]:
    """Add each suggested amount to the category's assignment for the month."""
    updated = list(budget_entries)
    for suggestion in suggestions:
        updated, _ = adjust_assigned(updated, suggestion.category_id, month, suggestion.suggested_amount)
    return updated
