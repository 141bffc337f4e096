"""
Rebalance advisor for overspent categories.

Finds overspent categories and donor categories with spare funds, scores
donors with a flexibility heuristic and proposes fund-transfer moves.
The flexibility score is a ranking aid, not a guaranteed-correct
allocation. Applied moves are captured in an immutable reassignment
record that can be reversed exactly once.
"""

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from budgeting import LedgerIndex
from exceptions import RebalanceError, ValidationError
from ledger_ops import adjust_assigned
from models import BudgetEntry, Category, Group, ScheduledItem, ScheduledKind, Transaction
from money import ZERO, quantize_money, sum_money

# Configure logging
logger = logging.getLogger(__name__)

BASE_FLEXIBILITY = 50
BILL_WINDOW_DAYS = 7
RECENT_ACTIVITY_DAYS = 7
TARGET_URGENCY_DAYS = 30
SPARKLINE_MONTHS = 12

FLEXIBLE_KEYWORDS = {
    ("savings", "emergency"): 30,
    ("entertainment", "dining"): 20,
    ("rent", "mortgage", "insurance", "utilities"): -40,
}


@dataclass(frozen=True)
class OverspentCategory:
    """Category whose available balance is negative."""

    category_id: str
    category_name: str
    group_id: str
    group_name: str
    assigned: Decimal
    spent: Decimal
    overspent: Decimal
    priority: int


@dataclass(frozen=True)
class DonorCategory:
    """Category with spare funds and its flexibility score."""

    category_id: str
    category_name: str
    group_id: str
    group_name: str
    assigned: Decimal
    spent: Decimal
    available: Decimal
    flexibility: int
    last_spend_date: Optional[date] = None


@dataclass(frozen=True)
class FutureImpact:
    """Projected effect of a move on the donor over the coming months."""

    next_month_effect: Decimal
    three_month_effect: Decimal
    confidence: str
    sparkline: Tuple[Decimal, ...]


@dataclass(frozen=True)
class RebalanceMove:
    """A single transfer of assigned money between categories."""

    from_category_id: str
    from_category_name: str
    to_category_id: str
    to_category_name: str
    amount: Decimal
    reason: str = ""
    impact: str = "low"
    future_impact: Optional[FutureImpact] = None


@dataclass(frozen=True)
class AlternativeOption:
    """Fallback when donors cannot cover every overspend."""

    type: str
    description: str
    amount: Decimal
    pros: Tuple[str, ...] = ()
    cons: Tuple[str, ...] = ()


@dataclass(frozen=True)
class RebalanceResult:
    """Full analysis of a month's overspending."""

    month: str
    overspent_categories: Tuple[OverspentCategory, ...]
    donor_categories: Tuple[DonorCategory, ...]
    suggested_moves: Tuple[RebalanceMove, ...]
    total_covered: Decimal
    total_uncovered: Decimal
    can_fully_cover: bool
    alternative_options: Tuple[AlternativeOption, ...]


@dataclass(frozen=True)
class ReassignmentRecord:
    """
    Immutable log of applied moves.

    ``created_entry_keys`` lists the (category, month) entries the apply
    step had to create so a reversal can drop them again.
    """

    id: str
    month: str
    timestamp: datetime
    moves: Tuple[RebalanceMove, ...]
    total_amount: Decimal
    reason: str
    is_reversible: bool = True
    created_entry_keys: Tuple[Tuple[str, str], ...] = ()
    reversed_at: Optional[datetime] = None
    reversed_by: Optional[str] = None


@dataclass(frozen=True)
class ReversalResult:
    """Entries after a reversal plus both records."""

    updated_entries: List[BudgetEntry]
    reversal_record: ReassignmentRecord
    reversed_original: ReassignmentRecord


def _group_name(groups: Dict[str, Group], group_id: str) -> str:
    group = groups.get(group_id)
    return group.name if group else "Uncategorized"


def find_overspent_categories(
    index: LedgerIndex,
    month: str,
    groups: Optional[Dict[str, Group]] = None
) -> List[OverspentCategory]:
    """Overspent categories sorted by overspent amount, largest first."""
    groups = groups or {}
    overspent: List[OverspentCategory] = []
    for balance in index.balances(month):
        if balance.available >= 0:
            continue
        category = index.categories[balance.category_id]
        overspent.append(OverspentCategory(
            category_id=category.id,
            category_name=category.name,
            group_id=category.group_id,
            group_name=_group_name(groups, category.group_id),
            assigned=balance.assigned,
            spent=balance.spent,
            overspent=-balance.available,
            priority=category.priority,
        ))
    return sorted(overspent, key=lambda item: item.overspent, reverse=True)


def has_bill_due_soon(
    category_id: str,
    scheduled_items: Iterable[ScheduledItem],
    as_of: date,
    window_days: int = BILL_WINDOW_DAYS
) -> bool:
    """True when an unpaid bill of the category is due within the window."""
    horizon = as_of + timedelta(days=window_days)
    return any(
        item.kind is ScheduledKind.BILL
        and item.category_id == category_id
        and item.next_due is not None
        and item.next_due <= horizon
        and not item.is_paid
        for item in scheduled_items
    )


def calculate_flexibility(
    category: Category,
    assigned: Decimal,
    spent: Decimal,
    last_spend_date: Optional[date],
    as_of: date,
    recent_days: int = RECENT_ACTIVITY_DAYS
) -> int:
    """
    Heuristic score (0-100) of how safely funds can leave a category.

    Name signals, utilization of the assigned amount, recent activity and
    target urgency each nudge the base score of 50.
    """
    score = BASE_FLEXIBILITY
    name = category.name.lower()
    for keywords, adjustment in FLEXIBLE_KEYWORDS.items():
        if any(keyword in name for keyword in keywords):
            score += adjustment

    utilization = spent / assigned * 100 if assigned > 0 else ZERO
    if utilization < 25:
        score += 20
    elif utilization > 75:
        score -= 20

    recent = last_spend_date is not None and last_spend_date >= as_of - timedelta(days=recent_days)
    if not recent:
        score += 15

    if category.target_type == "set_aside_another":
        score -= 10
    if category.target_type == "have_balance_by" and category.target_date:
        if (category.target_date - as_of).days <= TARGET_URGENCY_DAYS:
            score -= 25

    return max(0, min(100, score))


def find_donor_categories(
    index: LedgerIndex,
    scheduled_items: Sequence[ScheduledItem],
    month: str,
    as_of: date,
    groups: Optional[Dict[str, Group]] = None,
    max_donors: Optional[int] = None,
    bill_window_days: int = BILL_WINDOW_DAYS,
    recent_days: int = RECENT_ACTIVITY_DAYS
) -> List[DonorCategory]:
    """
    Categories with positive available and no unpaid bill due soon.

    Recent activity looks back from ``as_of`` across month boundaries.
    Sorted by flexibility, then available, both descending.
    """
    groups = groups or {}
    donors: List[DonorCategory] = []
    for balance in index.balances(month):
        if balance.available <= 0:
            continue
        if has_bill_due_soon(balance.category_id, scheduled_items, as_of, bill_window_days):
            logger.debug(f"Skipping donor {balance.category_id}: bill due within {bill_window_days} days")
            continue
        category = index.categories[balance.category_id]
        last_spend = index.last_spend_date(category.id, month)
        recent_spend = index.last_spend_on_or_before(category.id, as_of)
        donors.append(DonorCategory(
            category_id=category.id,
            category_name=category.name,
            group_id=category.group_id,
            group_name=_group_name(groups, category.group_id),
            assigned=balance.assigned,
            spent=balance.spent,
            available=balance.available,
            flexibility=calculate_flexibility(
                category, balance.assigned, balance.spent, recent_spend, as_of, recent_days
            ),
            last_spend_date=last_spend,
        ))
    donors.sort(key=lambda donor: (-donor.flexibility, -donor.available))
    if max_donors is not None:
        donors = donors[:max_donors]
    return donors


def calculate_donor_score(
    donor: DonorCategory,
    available: Decimal,
    overspent: OverspentCategory,
    need: Decimal,
    as_of: date
) -> Decimal:
    """Flexibility plus bonuses for ample funds, a different group and inactivity."""
    score = Decimal(donor.flexibility)
    if need > 0:
        score += min(Decimal(20), available / need * 10)
    if donor.group_id != overspent.group_id:
        score += 15
    if donor.last_spend_date is None:
        score += 10
    elif (as_of - donor.last_spend_date).days > RECENT_ACTIVITY_DAYS:
        score += 5
    return score


def calculate_move_impact(available: Decimal, amount: Decimal) -> str:
    """Impact level by the share of the donor's available being moved."""
    if available <= 0:
        return "high"
    share = amount / available * 100
    if share <= 25:
        return "low"
    if share <= 50:
        return "medium"
    return "high"


def calculate_future_impact(donor_id: str, amount: Decimal, forecast: Optional[Sequence]) -> FutureImpact:
    """
    Rough projection of a move's effect on the donor.

    Assumes the donor recovers a quarter of the amount per month over the
    following three months.
    """
    known = forecast and any(month.category(donor_id) for month in forecast)
    if not known:
        return FutureImpact(ZERO, ZERO, "low", tuple(ZERO for _ in range(SPARKLINE_MONTHS)))
    sparkline = []
    for position in range(SPARKLINE_MONTHS):
        if position == 0:
            sparkline.append(-amount)
        elif position <= 3:
            sparkline.append(quantize_money(-amount * (1 - Decimal(position) * Decimal("0.25"))))
        else:
            sparkline.append(ZERO)
    return FutureImpact(
        next_month_effect=-amount,
        three_month_effect=quantize_money(-amount * Decimal("0.5")),
        confidence="medium",
        sparkline=tuple(sparkline),
    )


def _move_reason(donor: DonorCategory, available: Decimal, overspent: OverspentCategory, amount: Decimal) -> str:
    reasons = []
    if donor.flexibility > 70:
        reasons.append("high flexibility")
    if available > amount * 2:
        reasons.append("ample funds available")
    if donor.last_spend_date is None:
        reasons.append("no recent activity")
    if donor.group_id != overspent.group_id:
        reasons.append("different category group")
    reason_text = ", ".join(reasons) if reasons else "available funds"
    return f"Move from {donor.category_name} ({reason_text})"


def generate_rebalance_moves(
    overspent_categories: Sequence[OverspentCategory],
    donors: Sequence[DonorCategory],
    as_of: date,
    forecast: Optional[Sequence] = None
) -> List[RebalanceMove]:
    """
    Greedily cover each overspend with the best-scoring remaining donor.

    Overspends are processed largest first; each move takes
    ``min(remaining need, donor available)`` and exhausted donors drop out.
    """
    remaining: Dict[str, Decimal] = {donor.category_id: donor.available for donor in donors}
    pool = list(donors)
    moves: List[RebalanceMove] = []

    for overspent in overspent_categories:
        need = overspent.overspent
        while need > 0 and pool:
            best = max(
                pool,
                key=lambda donor: calculate_donor_score(
                    donor, remaining[donor.category_id], overspent, need, as_of
                )
            )
            available = remaining[best.category_id]
            amount = min(need, available)
            moves.append(RebalanceMove(
                from_category_id=best.category_id,
                from_category_name=best.category_name,
                to_category_id=overspent.category_id,
                to_category_name=overspent.category_name,
                amount=amount,
                reason=_move_reason(best, available, overspent, amount),
                impact=calculate_move_impact(available, amount),
                future_impact=calculate_future_impact(best.category_id, amount, forecast) if forecast else None,
            ))
            remaining[best.category_id] = available - amount
            need -= amount
            if remaining[best.category_id] <= 0:
                pool = [donor for donor in pool if donor.category_id != best.category_id]
    return moves


def generate_alternative_options(
    uncovered: Decimal,
    categories: Iterable[Category],
    index: LedgerIndex,
    month: str
) -> List[AlternativeOption]:
    """Options for the part of the overspend no donor can cover."""
    options = [AlternativeOption(
        type="next_month_reduction",
        description=f"Reduce next month's budget by {quantize_money(uncovered)}",
        amount=uncovered,
        pros=("Prevents recurring overspending", "No immediate impact on other categories"),
        cons=("Less flexibility next month", "May be difficult to stick to a reduced budget"),
    )]
    emergency = next((category for category in categories if "emergency" in category.name.lower()), None)
    if emergency is not None:
        balance = index.available(emergency.id, month)
        options.append(AlternativeOption(
            type="emergency_fund",
            description=f"Use {emergency.name} ({quantize_money(balance)} available) to cover {quantize_money(uncovered)}",
            amount=uncovered,
            pros=("Immediate resolution", "No impact on other budget categories"),
            cons=("Reduces emergency fund balance", "Should be replenished quickly"),
        ))
    return options


def analyze_overspending(
    categories: Iterable[Category],
    budget_entries: Iterable[BudgetEntry],
    transactions: Iterable[Transaction],
    scheduled_items: Iterable[ScheduledItem],
    month: str,
    as_of: Optional[date] = None,
    groups: Iterable[Group] = (),
    forecast: Optional[Sequence] = None,
    max_donors: Optional[int] = None,
    bill_window_days: int = BILL_WINDOW_DAYS,
    recent_days: int = RECENT_ACTIVITY_DAYS
) -> RebalanceResult:
    """
    Analyze a month's overspending and suggest moves.

    Args:
        categories: Known categories
        budget_entries: Budget entries
        transactions: Ledger transactions
        scheduled_items: Scheduled items (bills protect their categories)
        month: Month to rebalance
        as_of: Reference date for bill and activity windows (defaults to today)
        groups: Category groups for display names
        forecast: Optional forecast timeline for future impact
        max_donors: Keep only the top donors when set
        bill_window_days: Bills due within this many days protect a donor
        recent_days: Activity window for the recency signal

    Returns:
        RebalanceResult with moves, coverage totals and alternatives
    """
    reference = as_of or date.today()
    category_list = list(categories)
    items = list(scheduled_items)
    group_map = {group.id: group for group in groups}
    index = LedgerIndex(transactions, budget_entries, category_list)

    overspent = find_overspent_categories(index, month, group_map)
    if not overspent:
        return RebalanceResult(month, (), (), (), ZERO, ZERO, True, ())

    donors = find_donor_categories(
        index, items, month, reference, group_map, max_donors, bill_window_days, recent_days
    )
    moves = generate_rebalance_moves(overspent, donors, reference, forecast)
    total_overspent = sum_money(item.overspent for item in overspent)
    total_covered = sum_money(move.amount for move in moves)
    total_uncovered = max(ZERO, total_overspent - total_covered)
    alternatives = generate_alternative_options(total_uncovered, category_list, index, month) if total_uncovered > 0 else []

    logger.info(
        "Rebalance %s: %s overspent, %s donors, covered %s, uncovered %s",
        month,
        len(overspent),
        len(donors),
        total_covered,
        total_uncovered
    )
    return RebalanceResult(
        month=month,
        overspent_categories=tuple(overspent),
        donor_categories=tuple(donors),
        suggested_moves=tuple(moves),
        total_covered=total_covered,
        total_uncovered=total_uncovered,
        can_fully_cover=total_uncovered == 0,
        alternative_options=tuple(alternatives),
    )


def _new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex}"


def apply_rebalance_moves(
    moves: Sequence[RebalanceMove],
    budget_entries: Sequence[BudgetEntry],
    month: str,
    reason: str = "Cover overspending",
    record_id: Optional[str] = None,
    timestamp: Optional[datetime] = None,
    id_factory: Optional[Callable[[], str]] = None
) -> Tuple[List[BudgetEntry], ReassignmentRecord]:
    """
    Apply moves to the month's budget entries.

    Entries missing on either side are created lazily; donor entries may
    go negative. The returned record captures everything needed to undo.

    Raises:
        ValidationError: If a move amount is not positive
    """
    updated = list(budget_entries)
    created: List[Tuple[str, str]] = []
    factory = id_factory or (lambda: str(uuid.uuid4()))
    for move in moves:
        if move.amount <= 0:
            raise ValidationError("Move amount must be positive", details={"from": move.from_category_id})
        for category_id, delta in ((move.from_category_id, -move.amount), (move.to_category_id, move.amount)):
            updated, was_created = adjust_assigned(updated, category_id, month, delta, factory)
            if was_created:
                created.append((category_id, month))

    record = ReassignmentRecord(
        id=record_id or _new_id("reassignment"),
        month=month,
        timestamp=timestamp or datetime.now(),
        moves=tuple(moves),
        total_amount=sum_money(move.amount for move in moves),
        reason=reason,
        is_reversible=True,
        created_entry_keys=tuple(created),
    )
    logger.info(f"Applied {len(moves)} rebalance moves totalling {record.total_amount} in {month}")
    return updated, record


def reverse_reassignment(
    record: ReassignmentRecord,
    budget_entries: Sequence[BudgetEntry],
    reversal_id: Optional[str] = None,
    timestamp: Optional[datetime] = None
) -> ReversalResult:
    """
    Undo a reassignment by applying the exact inverse deltas.

    Entries the apply step created are removed once they are back at zero.

    Raises:
        RebalanceError: If the record was already reversed or is itself a reversal
    """
    if not record.is_reversible or record.reversed_at is not None:
        raise RebalanceError("Reassignment cannot be reversed again", details={"id": record.id})

    updated = list(budget_entries)
    for move in record.moves:
        updated, _ = adjust_assigned(updated, move.from_category_id, record.month, move.amount)
        updated, _ = adjust_assigned(updated, move.to_category_id, record.month, -move.amount)

    created = set(record.created_entry_keys)
    updated = [entry for entry in updated if not (entry.key in created and entry.assigned == 0)]

    when = timestamp or datetime.now()
    reversal = ReassignmentRecord(
        id=reversal_id or _new_id("reversal"),
        month=record.month,
        timestamp=when,
        moves=tuple(
            replace(
                move,
                from_category_id=move.to_category_id,
                from_category_name=move.to_category_name,
                to_category_id=move.from_category_id,
                to_category_name=move.from_category_name,
                reason=f"Reverse: {move.reason}",
            )
            for move in record.moves
        ),
        total_amount=record.total_amount,
        reason=f"Reverse reassignment: {record.reason}",
        is_reversible=False,
    )
    original = replace(record, is_reversible=False, reversed_at=when, reversed_by=reversal.id)
    logger.info(f"Reversed reassignment {record.id}")
    return ReversalResult(updated_entries=updated, reversal_record=reversal, reversed_original=original)
