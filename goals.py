"""
Savings goal ledger.

Contributions are append-only. Progress, pace and ETA are derived from
the contribution history relative to an explicit ``as_of`` date.
"""

import logging
import math
from dataclasses import dataclass, replace
from datetime import date, timedelta
from decimal import Decimal
from typing import Dict, FrozenSet, Iterable, List, Optional

from exceptions import GoalError, ValidationError
from models import Goal, GoalContribution, GoalStatus
from money import ZERO, coerce_decimal, quantize_money, sum_money
from month_utils import month_key

logger = logging.getLogger(__name__)

CONTRIBUTION_SOURCES = ("RTA", "TRANSFER", "ONE_OFF", "ROUND_UP", "QUICK_CATCH_UP")
MILESTONES = (25, 50, 75, 100)
RECENT_CONTRIBUTION_DAYS = 90
DAYS_PER_MONTH = 30

VALID_TRANSITIONS: Dict[GoalStatus, FrozenSet[GoalStatus]] = {
    GoalStatus.ACTIVE: frozenset({GoalStatus.PAUSED, GoalStatus.COMPLETED, GoalStatus.ARCHIVED}),
    GoalStatus.PAUSED: frozenset({GoalStatus.ACTIVE, GoalStatus.ARCHIVED}),
    GoalStatus.COMPLETED: frozenset({GoalStatus.ACTIVE, GoalStatus.ARCHIVED}),
    GoalStatus.ARCHIVED: frozenset({GoalStatus.ACTIVE}),
}

PRIORITY_LABELS = {5: "Critical", 4: "High", 3: "Medium", 2: "Low", 1: "Someday"}


@dataclass(frozen=True)
class GoalProgress:
    """
    Derived progress of one goal.

    Attributes:
        goal_id: Goal identifier
        saved_amount: Sum of contributions
        progress_percent: Saved share of the target, capped at 100
        eta: Estimated completion date, None when unknown
        is_on_pace: Whether the recent rate reaches the target by its date
        months_remaining: Estimated months to completion
        required_monthly: Monthly amount needed to hit the target date
    """

    goal_id: str
    saved_amount: Decimal
    progress_percent: Decimal
    eta: Optional[date] = None
    is_on_pace: bool = True
    months_remaining: Optional[int] = None
    required_monthly: Optional[Decimal] = None


@dataclass(frozen=True)
class GoalSummary:
    """KPIs across all goals."""

    total_goals: int
    active_goals: int
    completed_goals: int
    total_saved: Decimal
    total_target: Decimal
    overall_progress: Decimal
    this_month_contributed: Decimal
    top_goal_id: Optional[str] = None
    top_goal_name: Optional[str] = None


def priority_label(priority: int) -> str:
    """Human label for a 1-5 priority; unknown values read as Medium."""
    return PRIORITY_LABELS.get(priority, "Medium")


def progress_percent(saved: Decimal, target: Decimal) -> Decimal:
    """Saved share of the target as a percentage capped at 100."""
    if target <= 0:
        return ZERO
    return min(Decimal(100), quantize_money(saved / target * 100))


def add_contribution(
    goal: Goal,
    amount,
    contribution_date: date,
    contribution_id: str,
    source: str = "RTA",
    note: Optional[str] = None
) -> Goal:
    """
    Append a contribution to a goal.

    The goal is marked COMPLETED once its saved amount reaches the target.

    Returns:
        Updated goal

    Raises:
        ValidationError: If the amount is not positive or the source is unknown
        GoalError: If the goal is archived or already completed
    """
    value = coerce_decimal(amount)
    if value <= 0:
        raise ValidationError("Contribution amount must be positive", details={"goal": goal.id})
    if source not in CONTRIBUTION_SOURCES:
        raise ValidationError(f"Unknown contribution source '{source}'", details={"goal": goal.id})
    if goal.status in (GoalStatus.ARCHIVED, GoalStatus.COMPLETED):
        raise GoalError(
            "Cannot contribute to a goal in this state",
            details={"goal": goal.id, "status": goal.status.value}
        )

    contribution = GoalContribution(
        id=contribution_id,
        date=contribution_date,
        amount=value,
        source=source,
        note=note,
    )
    updated = replace(goal, contributions=goal.contributions + (contribution,))
    if goal.target_amount > 0 and updated.saved_amount >= goal.target_amount:
        logger.info(f"Goal {goal.id} reached its target")
        updated = replace(updated, status=GoalStatus.COMPLETED)
    return updated


def change_goal_status(goal: Goal, status: GoalStatus) -> Goal:
    """
    Move a goal to a new lifecycle state.

    Raises:
        GoalError: If the transition is not allowed
    """
    if status is goal.status:
        return goal
    if status not in VALID_TRANSITIONS[goal.status]:
        raise GoalError(
            "Invalid goal status transition",
            details={"goal": goal.id, "from": goal.status.value, "to": status.value}
        )
    return replace(goal, status=status)


def calculate_goal_progress(goal: Goal, as_of: date) -> GoalProgress:
    """
    Compute saved amount, percent, ETA and pace.

    The contribution rate is the sum of the last 90 days of contributions
    spread over three months. Without a target date, or once the target
    is reached, the goal is considered on pace and has no ETA.
    """
    saved = goal.saved_amount
    percent = progress_percent(saved, goal.target_amount)
    if goal.target_date is None or saved >= goal.target_amount:
        return GoalProgress(goal_id=goal.id, saved_amount=saved, progress_percent=percent)

    months_to_target = math.ceil((goal.target_date - as_of).days / DAYS_PER_MONTH)
    if months_to_target <= 0:
        return GoalProgress(
            goal_id=goal.id,
            saved_amount=saved,
            progress_percent=percent,
            eta=None,
            is_on_pace=False,
        )

    remaining = goal.target_amount - saved
    required = quantize_money(remaining / months_to_target)
    window_start = as_of - timedelta(days=RECENT_CONTRIBUTION_DAYS)
    recent = sum_money(c.amount for c in goal.contributions if window_start <= c.date <= as_of)
    monthly_rate = recent / 3

    if monthly_rate <= 0:
        return GoalProgress(
            goal_id=goal.id,
            saved_amount=saved,
            progress_percent=percent,
            eta=goal.target_date,
            is_on_pace=False,
            months_remaining=months_to_target,
            required_monthly=required,
        )

    estimated_months = remaining / monthly_rate
    eta = as_of + timedelta(days=int(math.ceil(estimated_months * DAYS_PER_MONTH)))
    return GoalProgress(
        goal_id=goal.id,
        saved_amount=saved,
        progress_percent=percent,
        eta=eta,
        is_on_pace=estimated_months <= months_to_target,
        months_remaining=int(math.ceil(estimated_months)),
        required_monthly=required,
    )


def should_trigger_milestone(previous_percent, current_percent, milestone_percent) -> bool:
    """True when progress crossed the milestone between two readings."""
    return previous_percent < milestone_percent <= current_percent


def crossed_milestones(previous_percent, current_percent, milestones: Iterable[int] = MILESTONES) -> List[int]:
    """Every milestone crossed between two readings, ascending."""
    return [m for m in sorted(milestones) if should_trigger_milestone(previous_percent, current_percent, m)]


def summarize_goals(goals: Iterable[Goal], as_of: date) -> GoalSummary:
    """
    Aggregate goal KPIs.

    The top goal is the active goal with the highest priority, ties broken
    by progress.
    """
    goal_list = list(goals)
    month = month_key(as_of)
    total_saved = sum_money(goal.saved_amount for goal in goal_list)
    total_target = sum_money(goal.target_amount for goal in goal_list)
    this_month = sum_money(
        contribution.amount
        for goal in goal_list
        for contribution in goal.contributions
        if month_key(contribution.date) == month
    )
    active = [goal for goal in goal_list if goal.status is GoalStatus.ACTIVE]
    top = None
    if active:
        top = max(active, key=lambda goal: (goal.priority, progress_percent(goal.saved_amount, goal.target_amount)))

    return GoalSummary(
        total_goals=len(goal_list),
        active_goals=len(active),
        completed_goals=sum(1 for goal in goal_list if goal.status is GoalStatus.COMPLETED),
        total_saved=total_saved,
        total_target=total_target,
        overall_progress=progress_percent(total_saved, total_target),
        this_month_contributed=this_month,
        top_goal_id=top.id if top else None,
        top_goal_name=top.name if top else None,
    )


def select_goal_progress(goals: Iterable[Goal], as_of: date) -> List[GoalProgress]:
    """Progress of every goal that is not archived."""
    return [calculate_goal_progress(goal, as_of) for goal in goals if goal.status is not GoalStatus.ARCHIVED]
