"""
In-app notification generation.

Builds notifications from a user-data snapshot: bills due soon or overdue,
unassigned or over-allocated income, overspent and underfunded categories,
and goal milestones. Delivery is left to the caller. Seen/dismissed keys
and the last observed goal progress live in an explicit
``NotificationState`` owned by the caller.
"""

import enum
import logging
from dataclasses import dataclass, field, replace
from datetime import date, datetime, time
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Optional, Set

from budgeting import LedgerIndex, select_min_required_by_category
from exceptions import NotificationError
from goals import crossed_milestones, progress_percent
from models import GoalStatus, MonthSummary, ScheduledKind
from money import coerce_decimal
from user_data import UserData

logger = logging.getLogger(__name__)


class NotificationType(enum.Enum):
    """Kinds of in-app notification."""
    BILL_DUE_SOON = "bill_due_soon"
    BILL_OVERDUE = "bill_overdue"
    INCOME_UNASSIGNED = "income_unassigned"
    BUDGET_OVER_ALLOCATED = "budget_over_allocated"
    CATEGORY_OVERSPENT = "category_overspent"
    CATEGORY_UNDERFUNDED = "category_underfunded"
    GOAL_MILESTONE = "goal_milestone"


@dataclass(frozen=True)
class Notification:
    """
    One generated notification.

    Attributes:
        key: Deduplication key
        type: Notification kind
        title: Short headline
        message: Human-readable body
        priority: "low", "medium" or "high"
        context_type: What ``context_id`` refers to ("bill_id", "month", ...)
        context_id: Identifier of the subject
        created_at: Generation timestamp
        expires_at: Optional expiry; expired notifications are dropped
        seen_at: When the user saw it
        dismissed_at: When the user dismissed it
    """

    key: str
    type: NotificationType
    title: str
    message: str
    priority: str
    context_type: str
    context_id: str
    created_at: datetime
    expires_at: Optional[datetime] = None
    seen_at: Optional[datetime] = None
    dismissed_at: Optional[datetime] = None


@dataclass(frozen=True)
class NotificationRule:
    """Enable flag and settings for one notification type."""

    type: NotificationType
    enabled: bool = True
    settings: Dict[str, Any] = field(default_factory=dict)


class NotificationState:
    """
    Per-process notification bookkeeping.

    Holds seen and dismissed keys and the last progress observed per goal,
    so milestone notifications fire once per crossing.
    """

    def __init__(self):
        self.seen: Set[str] = set()
        self.dismissed: Set[str] = set()
        self.goal_progress: Dict[str, Decimal] = {}

    def mark_seen(self, key: str) -> None:
        self.seen.add(key)

    def dismiss(self, key: str) -> None:
        self.dismissed.add(key)
        self.seen.add(key)

    def is_dismissed(self, key: str) -> bool:
        return key in self.dismissed

    def last_progress(self, goal_id: str) -> Decimal:
        return self.goal_progress.get(goal_id, Decimal(0))

    def record_progress(self, goal_id: str, percent: Decimal) -> None:
        self.goal_progress[goal_id] = percent

    def reset(self) -> None:
        """Forget every seen/dismissed key and recorded goal progress."""
        self.seen.clear()
        self.dismissed.clear()
        self.goal_progress.clear()


DEFAULT_SETTINGS: Dict[NotificationType, Dict[str, Any]] = {
    NotificationType.BILL_DUE_SOON: {"days_ahead": 3},
    NotificationType.BILL_OVERDUE: {},
    NotificationType.INCOME_UNASSIGNED: {"threshold": 100, "high_threshold": 500},
    NotificationType.BUDGET_OVER_ALLOCATED: {"tolerance": 0},
    NotificationType.CATEGORY_OVERSPENT: {},
    NotificationType.CATEGORY_UNDERFUNDED: {},
    NotificationType.GOAL_MILESTONE: {"milestones": [25, 50, 75, 100]},
}


def default_rules(config: Optional[Dict[str, Any]] = None) -> List[NotificationRule]:
    """
    Build the rule list, overlaying the ``notifications`` config section.

    The config section may carry ``enabled`` (a mapping of type value to
    bool) plus per-type settings keyed by type value.

    Raises:
        NotificationError: If the config names an unknown notification type
    """
    section = (config or {}).get("notifications", {}) or {}
    enabled = section.get("enabled", {}) or {}
    known = {kind.value for kind in NotificationType}
    for name in list(enabled) + [name for name in section if name not in ("enabled",)]:
        if name not in known:
            raise NotificationError(f"Unknown notification type '{name}'")

    rules = []
    for kind, defaults in DEFAULT_SETTINGS.items():
        settings = dict(defaults)
        settings.update(section.get(kind.value, {}) or {})
        rules.append(NotificationRule(type=kind, enabled=bool(enabled.get(kind.value, True)), settings=settings))
    return rules


@dataclass
class NotificationContext:
    """Everything a rule reads."""

    data: UserData
    month: str
    today: date
    now: datetime
    index: LedgerIndex
    summary: MonthSummary
    state: NotificationState


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def _unpaid_bills(context: NotificationContext):
    return [
        item for item in context.data.scheduled_items
        if item.kind is ScheduledKind.BILL and not item.is_paid and item.next_due is not None
    ]


def _bill_due_soon(context: NotificationContext, settings: Dict[str, Any]) -> List[Notification]:
    days_ahead = int(settings.get("days_ahead", 3))
    notifications = []
    for bill in _unpaid_bills(context):
        days_until = (bill.next_due - context.today).days
        if not 0 <= days_until <= days_ahead:
            continue
        notifications.append(Notification(
            key=f"bill_due_{bill.id}_{context.today.isoformat()}",
            type=NotificationType.BILL_DUE_SOON,
            title="Bill Due Soon",
            message=f"{bill.name or bill.id} (${bill.due_amount:,.2f}) is due in {_plural(days_until, 'day')}",
            priority="high" if days_until <= 1 else "medium",
            context_type="bill_id",
            context_id=bill.id,
            created_at=context.now,
            expires_at=datetime.combine(bill.next_due, time.max),
        ))
    return notifications


def _bill_overdue(context: NotificationContext, settings: Dict[str, Any]) -> List[Notification]:
    notifications = []
    for bill in _unpaid_bills(context):
        days_overdue = (context.today - bill.next_due).days
        if days_overdue <= 0:
            continue
        notifications.append(Notification(
            key=f"bill_overdue_{bill.id}_{context.today.isoformat()}",
            type=NotificationType.BILL_OVERDUE,
            title="Bill Overdue",
            message=f"{bill.name or bill.id} (${bill.due_amount:,.2f}) is {_plural(days_overdue, 'day')} overdue",
            priority="high",
            context_type="bill_id",
            context_id=bill.id,
            created_at=context.now,
        ))
    return notifications


def _income_unassigned(context: NotificationContext, settings: Dict[str, Any]) -> List[Notification]:
    unassigned = context.summary.to_allocate
    if unassigned < coerce_decimal(settings.get("threshold", 100)):
        return []
    return [Notification(
        key=f"income_unassigned_{context.month}_{context.today.isoformat()}",
        type=NotificationType.INCOME_UNASSIGNED,
        title="Income Needs Assignment",
        message=f"You have ${unassigned:,.2f} in Ready to Assign that hasn't been allocated to categories",
        priority="high" if unassigned > coerce_decimal(settings.get("high_threshold", 500)) else "medium",
        context_type="month",
        context_id=context.month,
        created_at=context.now,
    )]


def _budget_over_allocated(context: NotificationContext, settings: Dict[str, Any]) -> List[Notification]:
    to_allocate = context.summary.to_allocate
    if to_allocate >= -coerce_decimal(settings.get("tolerance", 0)):
        return []
    return [Notification(
        key=f"budget_over_allocated_{context.month}_{context.today.isoformat()}",
        type=NotificationType.BUDGET_OVER_ALLOCATED,
        title="Budget Over-Allocated",
        message=f"Your budget is over-allocated by ${abs(to_allocate):,.2f}. You've assigned more than you have.",
        priority="high",
        context_type="month",
        context_id=context.month,
        created_at=context.now,
    )]


def _category_name(context: NotificationContext, category_id: str) -> str:
    category = context.index.categories.get(category_id)
    return category.name if category else category_id


def _category_overspent(context: NotificationContext, settings: Dict[str, Any]) -> List[Notification]:
    return [
        Notification(
            key=f"overspend_{balance.category_id}_{context.month}",
            type=NotificationType.CATEGORY_OVERSPENT,
            title="Category Overspent",
            message=f"{_category_name(context, balance.category_id)} is over budget by ${abs(balance.available):,.2f}",
            priority="high",
            context_type="category_id",
            context_id=balance.category_id,
            created_at=context.now,
        )
        for balance in context.summary.overspends
    ]


def _category_underfunded(context: NotificationContext, settings: Dict[str, Any]) -> List[Notification]:
    notifications = []
    for category_id, category in context.index.categories.items():
        if category.archived:
            continue
        minimum = select_min_required_by_category(context.data.scheduled_items, category_id, context.month)
        assigned = context.index.assigned(category_id, context.month)
        if minimum <= 0 or assigned >= minimum:
            continue
        needed = minimum - assigned
        notifications.append(Notification(
            key=f"category_underfunded_{category_id}_{context.month}",
            type=NotificationType.CATEGORY_UNDERFUNDED,
            title="Category Underfunded",
            message=f"{category.name} needs ${needed:,.2f} more to cover ${minimum:,.2f} of bills",
            priority="medium",
            context_type="category_id",
            context_id=category_id,
            created_at=context.now,
        ))
    return notifications


def _goal_milestone(context: NotificationContext, settings: Dict[str, Any]) -> List[Notification]:
    milestones = settings.get("milestones", [25, 50, 75, 100])
    notifications = []
    for goal in context.data.goals:
        if goal.status not in (GoalStatus.ACTIVE, GoalStatus.COMPLETED):
            continue
        current = progress_percent(goal.saved_amount, goal.target_amount)
        previous = context.state.last_progress(goal.id)
        for milestone in crossed_milestones(previous, current, milestones):
            notifications.append(Notification(
                key=f"goal_milestone_{goal.id}_{milestone}",
                type=NotificationType.GOAL_MILESTONE,
                title="Goal Milestone Reached!",
                message=(
                    f"{goal.name} is {milestone}% complete! You've saved "
                    f"${goal.saved_amount:,.2f} of ${goal.target_amount:,.2f}"
                ),
                priority="high" if milestone == 100 else "medium",
                context_type="goal_milestone",
                context_id=f"{goal.id}_{milestone}",
                created_at=context.now,
            ))
        context.state.record_progress(goal.id, current)
    return notifications


RULE_HANDLERS: Dict[NotificationType, Callable[[NotificationContext, Dict[str, Any]], List[Notification]]] = {
    NotificationType.BILL_DUE_SOON: _bill_due_soon,
    NotificationType.BILL_OVERDUE: _bill_overdue,
    NotificationType.INCOME_UNASSIGNED: _income_unassigned,
    NotificationType.BUDGET_OVER_ALLOCATED: _budget_over_allocated,
    NotificationType.CATEGORY_OVERSPENT: _category_overspent,
    NotificationType.CATEGORY_UNDERFUNDED: _category_underfunded,
    NotificationType.GOAL_MILESTONE: _goal_milestone,
}


def generate_notifications(
    data: UserData,
    month: str,
    today: date,
    state: NotificationState,
    rules: Optional[Iterable[NotificationRule]] = None,
    existing: Iterable[Notification] = (),
    now: Optional[datetime] = None
) -> List[Notification]:
    """
    Generate new notifications for a month.

    Notifications whose key is already present in ``existing`` or was
    dismissed in ``state`` are skipped.

    Args:
        data: User-data snapshot
        month: Budget month (YYYY-MM) the money rules look at
        today: Reference date for bill rules and daily keys
        state: Seen/dismissed bookkeeping, updated with goal progress
        rules: Rule list (defaults to ``default_rules()``)
        existing: Notifications generated earlier
        now: Creation timestamp (defaults to the current time)

    Returns:
        List of new notifications in rule order
    """
    index = LedgerIndex(data.transactions, data.budget_entries, data.categories)
    context = NotificationContext(
        data=data,
        month=month,
        today=today,
        now=now or datetime.now(),
        index=index,
        summary=index.month_summary(month),
        state=state,
    )
    known_keys = {notification.key for notification in existing}
    generated: List[Notification] = []
    for rule in rules if rules is not None else default_rules():
        if not rule.enabled:
            continue
        for notification in RULE_HANDLERS[rule.type](context, rule.settings):
            if notification.key in known_keys or state.is_dismissed(notification.key):
                continue
            known_keys.add(notification.key)
            generated.append(notification)
    logger.debug(f"Generated {len(generated)} notifications for {month}")
    return generated


def mark_seen(notifications: Iterable[Notification], key: str, state: NotificationState,
              when: Optional[datetime] = None) -> List[Notification]:
    """Return the notifications with ``key`` stamped as seen."""
    state.mark_seen(key)
    stamp = when or datetime.now()
    return [replace(n, seen_at=stamp) if n.key == key and n.seen_at is None else n for n in notifications]


def dismiss(notifications: Iterable[Notification], key: str, state: NotificationState,
            when: Optional[datetime] = None) -> List[Notification]:
    """Return the notifications with ``key`` stamped as dismissed."""
    state.dismiss(key)
    stamp = when or datetime.now()
    return [replace(n, dismissed_at=stamp) if n.key == key else n for n in notifications]


def cleanup_expired(notifications: Iterable[Notification], now: Optional[datetime] = None) -> List[Notification]:
    """Drop notifications whose expiry has passed."""
    reference = now or datetime.now()
    return [n for n in notifications if n.expires_at is None or n.expires_at > reference]


def unseen(notifications: Iterable[Notification], state: NotificationState) -> List[Notification]:
    """Notifications the user has neither seen nor dismissed."""
    return [n for n in notifications if n.key not in state.seen and n.key not in state.dismissed]
