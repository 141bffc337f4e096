"""
User-data snapshot loading.

The budget core consumes one consistent snapshot of the user's arrays
(categories, groups, budget entries, transactions, accounts, scheduled
items, debts, goals, forecast overrides). This module maps the loosely
typed metadata blob into the typed records of ``models`` and back.
"""

import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, TypeVar, Union

import yaml

from exceptions import DataLoadError, ValidationError
from models import (
    Account,
    AccountType,
    BudgetEntry,
    Category,
    DebtAccount,
    ForecastOverride,
    Goal,
    GoalContribution,
    GoalStatus,
    Group,
    RolloverNegative,
    RolloverPositive,
    ScheduledItem,
    ScheduledKind,
    Split,
    Transaction,
    TransactionDirection,
)
from month_utils import is_valid_month, parse_date

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass
class UserData:
    """Typed snapshot of every array the budget core reads."""

    categories: List[Category] = field(default_factory=list)
    groups: List[Group] = field(default_factory=list)
    budget_entries: List[BudgetEntry] = field(default_factory=list)
    transactions: List[Transaction] = field(default_factory=list)
    accounts: List[Account] = field(default_factory=list)
    scheduled_items: List[ScheduledItem] = field(default_factory=list)
    debts: List[DebtAccount] = field(default_factory=list)
    goals: List[Goal] = field(default_factory=list)
    forecast_overrides: List[ForecastOverride] = field(default_factory=list)

    def category(self, category_id: str) -> Optional[Category]:
        """Look up a category by id."""
        return next((category for category in self.categories if category.id == category_id), None)

    def group(self, group_id: str) -> Optional[Group]:
        """Look up a group by id."""
        return next((group for group in self.groups if group.id == group_id), None)

    @property
    def bills(self) -> List[ScheduledItem]:
        """Scheduled items of kind bill."""
        return [item for item in self.scheduled_items if item.kind is ScheduledKind.BILL]


def _parse_enum(enum_cls, value, default, aliases: Optional[Dict[str, Any]] = None):
    if value is None or value == "":
        return default
    key = str(value).strip().lower()
    if aliases and key in aliases:
        return aliases[key]
    for member in enum_cls:
        if member.value.lower() == key:
            return member
    raise ValidationError(f"Unknown {enum_cls.__name__} value '{value}'")


def _required_date(raw: Dict[str, Any]):
    value = parse_date(raw.get("date"))
    if value is None:
        raise ValueError("date is required")
    return value


def _category(raw: Dict[str, Any]) -> Category:
    return Category(
        id=str(raw["id"]),
        name=raw.get("name", raw["id"]),
        group_id=raw.get("group_id") or "uncategorized",
        priority=int(raw.get("priority", 3)),
        rollover_positive=_parse_enum(RolloverPositive, raw.get("rollover_positive"), RolloverPositive.CARRY),
        rollover_negative=_parse_enum(
            RolloverNegative,
            raw.get("rollover_negative"),
            RolloverNegative.REDUCE_TA,
            aliases={"prompt": RolloverNegative.IGNORE, "ignore": RolloverNegative.IGNORE},
        ),
        target_type=raw.get("target_type"),
        target_amount=raw.get("target_amount"),
        target_date=parse_date(raw.get("target_date")),
        target_snoozed_until=parse_date(raw.get("snoozed_until")),
        is_savings=bool(raw.get("is_savings", False)),
        archived=bool(raw.get("archived", raw.get("is_archived", False))),
    )


def _group(raw: Dict[str, Any]) -> Group:
    return Group(id=str(raw["id"]), name=raw.get("name", raw["id"]), type=raw.get("type", "other"))


def _month(raw: Dict[str, Any]) -> str:
    month = raw["month"]
    if not isinstance(month, str) or not is_valid_month(month):
        raise ValueError(f"month must use the YYYY-MM format, got {month!r}")
    return month


def _budget_entry(raw: Dict[str, Any]) -> BudgetEntry:
    category_id = raw["category_id"]
    month = _month(raw)
    return BudgetEntry(
        id=str(raw.get("id") or f"{category_id}:{month}"),
        category_id=category_id,
        month=month,
        assigned=raw.get("assigned", 0),
    )


def _transaction(raw: Dict[str, Any]) -> Transaction:
    splits = [
        Split(category_id=split["category_id"], amount=split["amount"], memo=split.get("memo"))
        for split in raw.get("splits") or []
    ]
    return Transaction(
        id=str(raw["id"]),
        date=_required_date(raw),
        amount=raw["amount"],
        direction=_parse_enum(TransactionDirection, raw.get("direction", raw.get("type")), TransactionDirection.OUTFLOW),
        account_id=raw.get("account_id"),
        category_id=raw.get("category_id"),
        inflow_to_budget=bool(raw.get("inflow_to_budget", False)),
        splits=tuple(splits),
        payee=raw.get("payee"),
        memo=raw.get("memo"),
        cleared=bool(raw.get("cleared", False)),
    )


def _account(raw: Dict[str, Any]) -> Account:
    return Account(
        id=str(raw["id"]),
        name=raw.get("name", raw["id"]),
        type=_parse_enum(AccountType, raw.get("type"), AccountType.CHECKING),
        on_budget=bool(raw.get("on_budget", True)),
        balance=raw.get("balance", 0),
        balance_as_of=parse_date(raw.get("balance_as_of")),
    )


def _scheduled_item(raw: Dict[str, Any]) -> ScheduledItem:
    return ScheduledItem(
        id=str(raw["id"]),
        kind=_parse_enum(ScheduledKind, raw.get("kind", raw.get("type")), ScheduledKind.BILL),
        amount=raw.get("amount", 0),
        cadence=raw.get("cadence") or "monthly",
        next_due=parse_date(raw.get("next_due")),
        category_id=raw.get("category_id"),
        name=raw.get("name", ""),
        flexible=bool(raw.get("flexible", False)),
        average_amount=raw.get("average_amount"),
        is_paid=bool(raw.get("is_paid", False)),
    )


def _debt(raw: Dict[str, Any]) -> DebtAccount:
    return DebtAccount(
        id=str(raw["id"]),
        name=raw.get("name", raw["id"]),
        principal_balance=raw.get("principal_balance", raw.get("balance", 0)),
        apr=raw.get("apr", 0),
        min_payment=raw.get("min_payment", 0),
        type=raw.get("type", "other"),
        credit_limit=raw.get("credit_limit"),
        promo_rate=raw.get("promo_rate"),
        promo_ends=raw.get("promo_ends"),
    )


def _goal(raw: Dict[str, Any]) -> Goal:
    contributions = [
        GoalContribution(
            id=str(item.get("id") or f"{raw['id']}-{position}"),
            date=_required_date(item),
            amount=item["amount"],
            source=item.get("source", "RTA"),
            note=item.get("note"),
        )
        for position, item in enumerate(raw.get("contributions") or [])
    ]
    return Goal(
        id=str(raw["id"]),
        name=raw.get("name", raw["id"]),
        target_amount=raw.get("target_amount", 0),
        priority=int(raw.get("priority", 3)),
        status=_parse_enum(GoalStatus, raw.get("status"), GoalStatus.ACTIVE),
        target_date=parse_date(raw.get("target_date")),
        category_id=raw.get("category_id"),
        contributions=tuple(contributions),
    )


def _override(raw: Dict[str, Any]) -> ForecastOverride:
    return ForecastOverride(
        month=_month(raw),
        category_id=raw.get("category_id"),
        delta_amount=raw.get("delta_amount", 0),
        note=raw.get("note"),
    )


_COLLECTIONS: Dict[str, Callable[[Dict[str, Any]], Any]] = {
    "categories": _category,
    "category_groups": _group,
    "budget_entries": _budget_entry,
    "transactions": _transaction,
    "accounts": _account,
    "scheduled_items": _scheduled_item,
    "debts": _debt,
    "goals": _goal,
    "forecast_overrides": _override,
}

_FIELD_NAMES = {"category_groups": "groups"}


def _parse_collection(name: str, items: Any, parser: Callable[[Dict[str, Any]], T]) -> List[T]:
    if items is None:
        return []
    if not isinstance(items, list):
        raise DataLoadError(f"'{name}' must be a list", details={"collection": name})
    parsed: List[T] = []
    for index, item in enumerate(items):
        try:
            parsed.append(parser(item))
        except (KeyError, TypeError, ValueError, ArithmeticError, ValidationError) as exc:
            raise DataLoadError(
                f"Invalid record in '{name}'",
                details={"collection": name, "index": index, "error": exc},
                original_error=exc
            ) from exc
    return parsed


def parse_user_data(raw: Dict[str, Any]) -> UserData:
    """
    Convert a raw user-metadata blob into a typed snapshot.

    Args:
        raw: Dictionary keyed by collection name

    Returns:
        UserData snapshot

    Raises:
        DataLoadError: If the blob or one of its records is malformed
    """
    if not isinstance(raw, dict):
        raise DataLoadError("User data must be a mapping of collections")
    values: Dict[str, List[Any]] = {}
    for name, parser in _COLLECTIONS.items():
        values[_FIELD_NAMES.get(name, name)] = _parse_collection(name, raw.get(name), parser)
    data = UserData(**values)
    logger.debug(
        "Parsed user data: %s categories, %s transactions, %s budget entries",
        len(data.categories),
        len(data.transactions),
        len(data.budget_entries)
    )
    return data


def load_user_data(path: Union[str, Path]) -> UserData:
    """
    Load a user-data snapshot from a JSON or YAML file.

    Raises:
        DataLoadError: If the file is missing or cannot be parsed
    """
    file_path = Path(path)
    if not file_path.exists():
        raise DataLoadError("User data file not found", details={"path": str(file_path)})
    try:
        with open(file_path, "r", encoding="utf-8") as handle:
            if file_path.suffix.lower() in (".yaml", ".yml"):
                raw = yaml.safe_load(handle) or {}
            else:
                raw = json.load(handle)
    except (OSError, UnicodeDecodeError, json.JSONDecodeError, yaml.YAMLError) as exc:
        raise DataLoadError(
            "Could not read user data file",
            details={"path": str(file_path)},
            original_error=exc
        ) from exc
    logger.info(f"Loaded user data from {file_path}")
    return parse_user_data(raw)


def dump_budget_entries(entries: List[BudgetEntry]) -> List[Dict[str, Any]]:
    """Build the write-back payload for the budget entries array."""
    return [
        {
            "id": entry.id,
            "category_id": entry.category_id,
            "month": entry.month,
            "assigned": str(entry.assigned),
        }
        for entry in entries
    ]
