"""
Debt payoff simulation.

Amortizes a set of debts month by month under avalanche, snowball or a
custom ordering, with extra payments, lump sums, payment rounding and
redirected minimums. Interest is accrued in cents each month. The input
debts are never mutated; the simulation works on its own balances.
"""

import logging
from dataclasses import dataclass, field, replace
from datetime import date
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from exceptions import DebtSimulationError, NonConvergenceError
from models import DebtAccount
from money import ZERO, ceil_to_multiple, coerce_decimal, quantize_money, sum_money
from month_utils import current_month, is_valid_month, next_month

# Configure logging
logger = logging.getLogger(__name__)

MAX_MONTHS = 600
PAYOFF_METHODS = ("avalanche", "snowball", "custom")
AVALANCHE_THRESHOLD_PCT = Decimal("3")
MONTHS_PER_YEAR = Decimal(12)
HUNDRED = Decimal(100)


@dataclass(frozen=True)
class LumpSum:
    """One-time extra payment applied in a calendar month."""

    amount: Decimal
    month: str

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", coerce_decimal(self.amount))


@dataclass(frozen=True)
class PayoffOptions:
    """
    Options of a payoff simulation.

    Attributes:
        method: avalanche, snowball or custom
        extra_per_month: Extra paid every month on top of minimums
        lump_sum: Optional one-time payment
        round_up_to_nearest: Round each debt's monthly payment up to this multiple
        keep_minimums: Redirect unused and paid-off minimums to the other debts
        custom_order: Debt ids in priority order for the custom method
        start_month: First simulated month (defaults to next month)
        max_months: Iteration cap
    """

    method: str = "avalanche"
    extra_per_month: Decimal = ZERO
    lump_sum: Optional[LumpSum] = None
    round_up_to_nearest: Optional[Decimal] = None
    keep_minimums: bool = True
    custom_order: Tuple[str, ...] = ()
    start_month: Optional[str] = None
    max_months: int = MAX_MONTHS

    def __post_init__(self) -> None:
        object.__setattr__(self, "extra_per_month", coerce_decimal(self.extra_per_month))
        if self.round_up_to_nearest is not None:
            object.__setattr__(self, "round_up_to_nearest", coerce_decimal(self.round_up_to_nearest))
        object.__setattr__(self, "custom_order", tuple(self.custom_order))


@dataclass(frozen=True)
class DebtMonthLine:
    """What happened to one debt in one simulated month."""

    debt_id: str
    debt_name: str
    starting_balance: Decimal
    interest: Decimal
    payment: Decimal
    principal: Decimal
    ending_balance: Decimal
    paid_off: bool


@dataclass(frozen=True)
class PayoffStep:
    """One simulated month across all debts."""

    month_index: int
    month: str
    debts: Tuple[DebtMonthLine, ...]
    total_payment: Decimal
    total_interest: Decimal
    total_principal: Decimal
    remaining_debt: Decimal


@dataclass(frozen=True)
class PayoffMilestone:
    """A debt reaching zero."""

    month_index: int
    month: str
    debt_id: str
    debt_name: str
    message: str


@dataclass(frozen=True)
class PayoffResult:
    """
    Outcome of a payoff simulation.

    ``interest_saved`` and ``months_saved`` compare against the same plan
    without extra payments or lump sum; they are None when that baseline
    never converges.
    """

    method: str
    months_to_debt_free: int
    total_interest_paid: Decimal
    total_paid: Decimal
    timeline: Tuple[PayoffStep, ...]
    milestones: Tuple[PayoffMilestone, ...]
    payoff_order: Tuple[str, ...]
    converged: bool = True
    interest_saved: Optional[Decimal] = None
    months_saved: Optional[int] = None
    baseline_months: Optional[int] = None
    baseline_interest: Optional[Decimal] = None


@dataclass
class _WorkingDebt:
    debt: DebtAccount
    balance: Decimal
    position: int
    paid_month: Optional[int] = None


def validate_debts(debts: Iterable[DebtAccount]) -> None:
    """
    Reject debts the simulator cannot amortize.

    Raises:
        DebtSimulationError: On negative balance, APR or minimum payment
    """
    for debt in debts:
        if debt.principal_balance < 0 or debt.apr < 0 or debt.min_payment < 0:
            raise DebtSimulationError(
                "Debt balance, APR and minimum payment must not be negative",
                details={"debt": debt.id}
            )


def _order(working: List[_WorkingDebt], options: PayoffOptions, month: str) -> List[_WorkingDebt]:
    active = [item for item in working if item.balance > 0]
    if options.method == "avalanche":
        return sorted(active, key=lambda item: (-item.debt.apr_for_month(month), item.balance, item.position))
    if options.method == "snowball":
        return sorted(active, key=lambda item: (item.balance, -item.debt.apr_for_month(month), item.position))
    rank = {debt_id: index for index, debt_id in enumerate(options.custom_order)}
    return sorted(active, key=lambda item: (rank.get(item.debt.id, len(rank)), item.position))


def _monthly_interest(balance: Decimal, apr: Decimal) -> Decimal:
    return quantize_money(balance * apr / HUNDRED / MONTHS_PER_YEAR)


def _scheduled_minimum(debt: DebtAccount, options: PayoffOptions) -> Decimal:
    """Minimum the plan commits to each month, rounded up when configured."""
    if options.round_up_to_nearest:
        return ceil_to_multiple(debt.min_payment, options.round_up_to_nearest)
    return debt.min_payment


def simulate_payoff(
    debts: Sequence[DebtAccount],
    options: PayoffOptions,
    raise_on_cap: bool = True
) -> PayoffResult:
    """
    Run one amortization without the baseline comparison.

    Each month, in the method's order: accrue interest and reserve the
    minimum (never more than the balance). The month's extra money, plus
    any minimum a debt no longer needs when ``keep_minimums`` is set, goes
    to the highest-priority debt and cascades down the order. Each debt's
    total payment is then rounded up when configured and capped at what
    it owes.

    Args:
        debts: Debts to simulate
        options: Simulation options
        raise_on_cap: Raise instead of returning ``converged=False`` when
            the cap is reached

    Returns:
        PayoffResult without savings figures

    Raises:
        NonConvergenceError: If debts remain after ``max_months`` and
            ``raise_on_cap`` is set
    """
    if options.method not in PAYOFF_METHODS:
        raise DebtSimulationError("Unknown payoff method", details={"method": options.method})
    validate_debts(debts)
    month = options.start_month or next_month(current_month(date.today()))
    if not is_valid_month(month):
        raise DebtSimulationError("Start month must use the YYYY-MM format", details={"month": month})

    working = [
        _WorkingDebt(debt=debt, balance=debt.principal_balance, position=position)
        for position, debt in enumerate(debts)
    ]
    timeline: List[PayoffStep] = []
    milestones: List[PayoffMilestone] = []
    payoff_order: List[str] = []
    total_interest = ZERO
    total_paid = ZERO
    month_index = 0

    while any(item.balance > 0 for item in working):
        if month_index >= options.max_months:
            remaining = sum_money(item.balance for item in working)
            if raise_on_cap:
                raise NonConvergenceError(
                    "Debts are not paid off within the simulation limit",
                    details={"months": options.max_months, "remaining": remaining}
                )
            logger.info(f"Payoff simulation stopped at {options.max_months} months with {remaining} remaining")
            break
        month_index += 1
        ordered = _order(working, options, month)

        lines: Dict[str, Dict[str, Decimal]] = {}
        extra = options.extra_per_month
        if options.lump_sum and options.lump_sum.month == month:
            extra += options.lump_sum.amount
        for item in ordered:
            opening = item.balance
            interest = _monthly_interest(opening, item.debt.apr_for_month(month))
            item.balance = opening + interest
            minimum = _scheduled_minimum(item.debt, options)
            if minimum >= opening:
                payment = item.balance
            else:
                payment = min(minimum, item.balance)
            if options.keep_minimums and minimum > payment:
                extra += minimum - payment
            lines[item.debt.id] = {"opening": opening, "interest": interest, "payment": payment, "due": item.balance}
            total_interest += interest

        if options.keep_minimums:
            extra += sum_money(
                _scheduled_minimum(item.debt, options) for item in working
                if item.paid_month is not None and item.paid_month < month_index
            )
        for item in ordered:
            if extra <= 0:
                break
            line = lines[item.debt.id]
            room = line["due"] - line["payment"]
            if room <= 0:
                continue
            applied = min(extra, room)
            line["payment"] += applied
            extra -= applied

        for item in ordered:
            line = lines[item.debt.id]
            if options.round_up_to_nearest:
                line["payment"] = min(ceil_to_multiple(line["payment"], options.round_up_to_nearest), line["due"])
            item.balance -= line["payment"]

        step_lines: List[DebtMonthLine] = []
        for item in working:
            line = lines.get(item.debt.id)
            if line is None:
                continue
            paid_off = item.balance <= 0
            if paid_off and item.paid_month is None:
                item.balance = ZERO
                item.paid_month = month_index
                payoff_order.append(item.debt.id)
                milestones.append(PayoffMilestone(
                    month_index=month_index,
                    month=month,
                    debt_id=item.debt.id,
                    debt_name=item.debt.name,
                    message=f"{item.debt.name} is paid off!",
                ))
            step_lines.append(DebtMonthLine(
                debt_id=item.debt.id,
                debt_name=item.debt.name,
                starting_balance=line["opening"],
                interest=line["interest"],
                payment=line["payment"],
                principal=line["payment"] - line["interest"],
                ending_balance=item.balance,
                paid_off=paid_off,
            ))
            total_paid += line["payment"]

        timeline.append(PayoffStep(
            month_index=month_index,
            month=month,
            debts=tuple(step_lines),
            total_payment=sum_money(line.payment for line in step_lines),
            total_interest=sum_money(line.interest for line in step_lines),
            total_principal=sum_money(line.principal for line in step_lines),
            remaining_debt=sum_money(item.balance for item in working),
        ))
        month = next_month(month)

    converged = all(item.balance <= 0 for item in working)
    return PayoffResult(
        method=options.method,
        months_to_debt_free=month_index,
        total_interest_paid=total_interest,
        total_paid=total_paid,
        timeline=tuple(timeline),
        milestones=tuple(milestones),
        payoff_order=tuple(payoff_order),
        converged=converged,
    )


def compute_payoff_schedule(debts: Sequence[DebtAccount], options: PayoffOptions) -> PayoffResult:
    """
    Simulate a payoff plan and compare it to the no-extra baseline.

    The baseline reruns the same plan with zero extra per month and no lump
    sum. Savings are clamped at zero.

    Raises:
        NonConvergenceError: If the plan itself never clears the debts
    """
    result = simulate_payoff(debts, options)
    baseline = simulate_payoff(
        debts,
        replace(options, extra_per_month=ZERO, lump_sum=None),
        raise_on_cap=False
    )
    if not baseline.converged:
        logger.warning("Minimum-only baseline does not converge; savings are not reported")
        return replace(result, baseline_months=None, baseline_interest=None)

    interest_saved = max(ZERO, baseline.total_interest_paid - result.total_interest_paid)
    months_saved = max(0, baseline.months_to_debt_free - result.months_to_debt_free)
    logger.info(
        "Payoff plan (%s): %s months, interest %s, saves %s over %s months",
        options.method,
        result.months_to_debt_free,
        result.total_interest_paid,
        interest_saved,
        months_saved
    )
    return replace(
        result,
        interest_saved=interest_saved,
        months_saved=months_saved,
        baseline_months=baseline.months_to_debt_free,
        baseline_interest=baseline.total_interest_paid,
    )


@dataclass(frozen=True)
class PayoffComparison:
    """Avalanche and snowball results side by side."""

    avalanche: PayoffResult
    snowball: PayoffResult
    recommended: str
    interest_difference: Decimal
    reason: str


def compare_payoff_methods(debts: Sequence[DebtAccount], options: PayoffOptions) -> PayoffComparison:
    """
    Run avalanche and snowball with the same options and recommend one.

    Avalanche is recommended when it saves more than 3% of the snowball
    plan's interest; otherwise the motivational wins of snowball are worth
    the small cost.
    """
    avalanche = compute_payoff_schedule(debts, replace(options, method="avalanche"))
    snowball = compute_payoff_schedule(debts, replace(options, method="snowball"))
    difference = snowball.total_interest_paid - avalanche.total_interest_paid
    threshold = snowball.total_interest_paid * AVALANCHE_THRESHOLD_PCT / HUNDRED
    if snowball.total_interest_paid > 0 and difference > threshold:
        recommended = "avalanche"
        reason = f"Avalanche saves {quantize_money(difference)} in interest"
    else:
        recommended = "snowball"
        reason = "Interest difference is small; quick wins keep motivation up"
    return PayoffComparison(
        avalanche=avalanche,
        snowball=snowball,
        recommended=recommended,
        interest_difference=quantize_money(difference),
        reason=reason,
    )


def calculate_credit_utilization(debts: Iterable[DebtAccount]) -> Decimal:
    """Credit card balances as a percentage of their combined limits."""
    cards = [
        debt for debt in debts
        if debt.type == "credit_card" and debt.credit_limit and debt.credit_limit > 0
    ]
    if not cards:
        return ZERO
    total_balance = sum_money(card.principal_balance for card in cards)
    total_limit = sum_money(card.credit_limit for card in cards)
    return quantize_money(total_balance / total_limit * HUNDRED)


@dataclass(frozen=True)
class DebtSummary:
    """Headline figures for a set of debts."""

    count: int
    total_balance: Decimal
    total_minimum: Decimal
    weighted_apr: Decimal
    highest_apr_debt: Optional[str] = None
    utilization_pct: Decimal = ZERO
    ids: List[str] = field(default_factory=list)


def summarize_debts(debts: Sequence[DebtAccount]) -> DebtSummary:
    """Total balance, total minimum and balance-weighted APR."""
    active = [debt for debt in debts if debt.principal_balance > 0]
    total_balance = sum_money(debt.principal_balance for debt in active)
    weighted = ZERO
    if total_balance > 0:
        weighted = quantize_money(
            sum_money(debt.apr * debt.principal_balance for debt in active) / total_balance
        )
    highest = max(active, key=lambda debt: debt.apr, default=None)
    return DebtSummary(
        count=len(active),
        total_balance=total_balance,
        total_minimum=sum_money(debt.min_payment for debt in active),
        weighted_apr=weighted,
        highest_apr_debt=highest.id if highest else None,
        utilization_pct=calculate_credit_utilization(debts),
        ids=[debt.id for debt in active],
    )
