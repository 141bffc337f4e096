"""
Unit tests for the category ledger selectors, month summary and group rollups.
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from budgeting import (
    LedgerIndex,
    build_budget_statuses,
    carryover_amount,
    require_valid_assignment,
    rollover_to_budget,
    select_all_group_rollups,
    select_assigned_by_category,
    select_available_by_category,
    select_carryover,
    select_coverage_pct,
    select_group_rollup,
    select_min_required_by_category,
    select_month_summary,
    select_overspends,
    select_ready_to_assign,
    select_spent_by_category,
    validate_assignment,
    validate_month_close,
)
from conftest import entry, income, outflow
from exceptions import ValidationError
from models import Category, RolloverNegative, RolloverPositive, ScheduledItem, ScheduledKind


class TestSelectors:
    """Test assigned, spent, available and carryover selectors."""

    def test_available_unknown_category_is_zero(self, transactions, budget_entries, categories):
        """Entries for a category that does not exist never hold money."""
        entries = budget_entries + [entry("ghost", "2024-06", 75)]
        index = LedgerIndex(transactions, entries, categories)
        assert index.available("ghost", "2024-06") == Decimal("0")
        assert index.carryover("ghost", "2024-07") == Decimal("0")
        assert select_available_by_category(transactions, entries, categories, "ghost", "2024-06") == Decimal("0")

    def test_last_spend_on_or_before(self, transactions, budget_entries, categories):
        """The lookup spans months and ignores spending after the date."""
        index = LedgerIndex(transactions, budget_entries, categories)
        assert index.last_spend_on_or_before("groceries", date(2024, 7, 3)) == date(2024, 6, 12)
        assert index.last_spend_on_or_before("groceries", date(2024, 6, 10)) == date(2024, 6, 5)
        assert index.last_spend_on_or_before("groceries", date(2024, 6, 1)) is None

    def test_assigned_defaults_to_zero(self, budget_entries):
        """Missing entries read as zero."""
        assert select_assigned_by_category(budget_entries, "rent", "2024-06") == Decimal("1200")
        assert select_assigned_by_category(budget_entries, "rent", "2024-07") == Decimal("0")
        assert select_assigned_by_category(budget_entries, "unknown", "2024-06") == Decimal("0")

    def test_spent_uses_split_portions(self, transactions):
        """Split transactions contribute only their portion to each category."""
        assert select_spent_by_category(transactions, "groceries", "2024-06") == Decimal("350")
        assert select_spent_by_category(transactions, "dining_out", "2024-06") == Decimal("30")

    def test_spent_ignores_inflows_and_other_months(self, transactions):
        """Inflows and outflows from other months never count as spending."""
        extra = transactions + [outflow("late", date(2024, 7, 2), 99, "rent")]
        assert select_spent_by_category(extra, "rent", "2024-06") == Decimal("1200")
        assert select_spent_by_category(extra, "rent", "2024-07") == Decimal("99")

    def test_spent_uses_absolute_amounts(self):
        """Negative recorded amounts are treated by magnitude."""
        txns = [outflow("neg", date(2024, 6, 3), -25, "groceries")]
        assert select_spent_by_category(txns, "groceries", "2024-06") == Decimal("25")

    def test_available_is_assigned_minus_spent(self, transactions, budget_entries, categories):
        """Available = assigned - spent when there is no prior month."""
        assert select_available_by_category(transactions, budget_entries, categories, "utilities", "2024-06") == Decimal("10")
        assert select_available_by_category(transactions, budget_entries, categories, "groceries", "2024-06") == Decimal("-50")

    def test_positive_leftover_carries_forward(self, transactions, budget_entries, categories):
        """Carry categories bring their positive leftover into the next month."""
        assert select_carryover(transactions, budget_entries, categories, "dining_out", "2024-07") == Decimal("170")
        assert select_available_by_category(transactions, budget_entries, categories, "dining_out", "2024-07") == Decimal("170")

    def test_carry_chains_over_several_months(self, categories):
        """Carryover folds across months with no activity."""
        entries = [entry("dining_out", "2024-01", 50), entry("dining_out", "2024-04", 25)]
        index = LedgerIndex([], entries, categories)
        assert index.available("dining_out", "2024-03") == Decimal("50")
        assert index.available("dining_out", "2024-04") == Decimal("75")
        assert index.carryover("dining_out", "2024-04") == Decimal("50")

    def test_months_before_first_activity_are_zero(self, categories):
        """Nothing exists before a category's first assignment or spend."""
        index = LedgerIndex([], [entry("rent", "2024-06", 100)], categories)
        assert index.available("rent", "2024-05") == Decimal("0")
        assert index.carryover("rent", "2024-06") == Decimal("0")

    def test_negative_carry_policy(self):
        """Overspends carry forward only under the carry policy."""
        category = Category(id="fuel", name="Fuel", rollover_negative=RolloverNegative.CARRY)
        txns = [outflow("f", date(2024, 6, 3), 80, "fuel")]
        entries = [entry("fuel", "2024-06", 50), entry("fuel", "2024-07", 100)]
        index = LedgerIndex(txns, entries, [category])
        assert index.available("fuel", "2024-07") == Decimal("70")
        assert index.rollover_effect("2024-07") == Decimal("0")

    def test_duplicate_entries_later_wins(self, categories, caplog):
        """Duplicate (category, month) entries keep the later value and log a warning."""
        entries = [entry("rent", "2024-06", 100), entry("rent", "2024-06", 250)]
        index = LedgerIndex([], entries, categories)
        assert index.assigned("rent", "2024-06") == Decimal("250")
        assert index.total_assigned("2024-06") == Decimal("250")
        assert "Duplicate budget entry" in caplog.text


class TestRolloverPolicies:
    """Test carryover and rollover-to-budget helpers."""

    @pytest.mark.parametrize("prior,expected", [(Decimal("40"), Decimal("40")), (Decimal("-40"), Decimal("0"))])
    def test_default_policy_carries_positive_only(self, prior, expected):
        category = Category(id="c", name="C")
        assert carryover_amount(category, prior) == expected

    def test_return_policy_feeds_ready_to_assign(self):
        category = Category(id="c", name="C", rollover_positive=RolloverPositive.RETURN)
        assert carryover_amount(category, Decimal("40")) == Decimal("0")
        assert rollover_to_budget(category, Decimal("40")) == Decimal("40")

    def test_unknown_category_contributes_nothing(self):
        assert carryover_amount(None, Decimal("40")) == Decimal("0")
        assert rollover_to_budget(None, Decimal("-40")) == Decimal("0")


class TestReadyToAssign:
    """Test Ready to Assign and the rollover effect."""

    def test_ready_to_assign_for_month(self, transactions, budget_entries, categories):
        """RTA = inflows to budget - assigned + rollover effect."""
        assert select_ready_to_assign(transactions, budget_entries, categories, "2024-06") == Decimal("550")

    def test_inflows_not_to_budget_are_ignored(self, budget_entries, categories):
        txns = [replace(income("i", date(2024, 6, 1), 500), inflow_to_budget=False)]
        assert select_ready_to_assign(txns, budget_entries, categories, "2024-06") == Decimal("-1950")

    def test_overspend_reduces_next_month(self, transactions, budget_entries, categories):
        """A reduce_ta overspend of 50 lowers the next month's RTA by 50 and does not carry."""
        index = LedgerIndex(transactions, budget_entries, categories)
        assert index.ready_to_assign("2024-07") == Decimal("-50")
        assert index.carryover("groceries", "2024-07") == Decimal("0")

        baseline_txns = [
            replace(txn, amount=Decimal("150")) if txn.id == "t-groc-1" else txn for txn in transactions
        ]
        baseline = LedgerIndex(baseline_txns, budget_entries, categories)
        assert baseline.ready_to_assign("2024-07") - index.ready_to_assign("2024-07") == Decimal("50")

    def test_return_policy_adds_back_only_positive(self, transactions, budget_entries):
        """Under return with ignore for overspends, a negative leftover adds back nothing."""
        groceries = Category(
            id="groceries",
            name="Groceries",
            rollover_positive=RolloverPositive.RETURN,
            rollover_negative=RolloverNegative.IGNORE,
        )
        index = LedgerIndex(transactions, budget_entries, [groceries])
        assert index.available("groceries", "2024-06") == Decimal("-50")
        assert index.rollover_effect("2024-07") == Decimal("0")

    def test_return_policy_positive_leftover_goes_to_rta(self, transactions, budget_entries, categories):
        """A positive return leftover feeds RTA instead of carrying."""
        entries = [e if e.category_id != "groceries" else replace(e, assigned=Decimal("400")) for e in budget_entries]
        index = LedgerIndex(transactions, entries, categories)
        assert index.available("groceries", "2024-06") == Decimal("50")
        assert index.carryover("groceries", "2024-07") == Decimal("0")
        assert index.rollover_effect("2024-07") == Decimal("50")


class TestMonthSummary:
    """Test the month summary aggregate."""

    def test_summary_figures(self, transactions, budget_entries, categories):
        summary = select_month_summary(transactions, budget_entries, categories, "2024-06")
        assert summary.to_allocate == Decimal("550")
        assert summary.total_assigned == Decimal("1950")
        assert summary.total_spent == Decimal("1760")
        assert summary.total_inflows == Decimal("2500")
        assert [b.category_id for b in summary.overspends] == ["groceries"]

    def test_summary_is_idempotent(self, transactions, budget_entries, categories):
        """Two calls with identical inputs produce identical results."""
        first = select_month_summary(transactions, budget_entries, categories, "2024-06")
        second = select_month_summary(transactions, budget_entries, categories, "2024-06")
        assert first == second
        assert repr(first) == repr(second)

    def test_select_overspends(self, transactions, budget_entries, categories):
        overspends = select_overspends(transactions, budget_entries, categories, "2024-06")
        assert len(overspends) == 1
        assert overspends[0].available == Decimal("-50")

    def test_archived_categories_hidden_when_empty(self, categories):
        archived = Category(id="old", name="Old", archived=True)
        index = LedgerIndex([], [entry("rent", "2024-06", 10)], categories + [archived])
        ids = [b.category_id for b in index.balances("2024-06")]
        assert "old" not in ids
        assert "rent" in ids

    def test_budget_statuses(self, transactions, budget_entries, categories):
        index = LedgerIndex(transactions, budget_entries, categories)
        statuses = {s.category_id: s for s in build_budget_statuses(index, "2024-06")}
        assert statuses["rent"].percentage_used == Decimal("100.00")
        assert statuses["dining_out"].percentage_used == Decimal("15.00")


class TestGroupRollup:
    """Test group rollups and bill minimums."""

    def test_min_required_uses_flexible_average(self, scheduled_items):
        assert select_min_required_by_category(scheduled_items, "utilities", "2024-06") == Decimal("160")
        assert select_min_required_by_category(scheduled_items, "rent", "2024-06") == Decimal("1200")

    def test_min_required_counts_weekly_occurrences(self):
        item = ScheduledItem(
            id="w", kind=ScheduledKind.BILL, amount=Decimal("10"), cadence="weekly",
            next_due=date(2024, 6, 3), category_id="gym",
        )
        assert select_min_required_by_category([item], "gym", "2024-06") == Decimal("40")

    def test_bill_without_due_date_adds_nothing(self):
        item = ScheduledItem(id="x", kind=ScheduledKind.BILL, amount=Decimal("10"), category_id="gym")
        assert select_min_required_by_category([item], "gym", "2024-06") == Decimal("0")

    def test_group_rollup_shortfall(self, transactions, budget_entries, categories, groups, scheduled_items):
        rollup = select_group_rollup(
            transactions, budget_entries, categories, groups, scheduled_items, "bills", "2024-06"
        )
        assert rollup.group_name == "Bills"
        assert rollup.assigned == Decimal("1350")
        assert rollup.spent == Decimal("1340")
        assert rollup.min_required == Decimal("1360")
        assert rollup.shortfall == Decimal("10")

    def test_unknown_group_degrades(self, transactions, budget_entries, categories, scheduled_items):
        rollup = select_group_rollup(transactions, budget_entries, categories, [], scheduled_items, "nope", "2024-06")
        assert rollup.group_name == "Unknown Group"
        assert rollup.group_type == "other"
        assert rollup.assigned == Decimal("0")
        assert rollup.shortfall == Decimal("0")

    def test_all_rollups_include_orphan_groups(self, transactions, budget_entries, categories, groups, scheduled_items):
        orphan = Category(id="misc", name="Misc", group_id="lost")
        rollups = select_all_group_rollups(
            transactions, budget_entries, categories + [orphan], groups, scheduled_items, "2024-06"
        )
        assert [r.group_id for r in rollups] == ["bills", "everyday", "lost"]
        assert rollups[2].group_name == "Unknown Group"

    def test_coverage_pct(self, budget_entries, scheduled_items):
        assert select_coverage_pct(budget_entries, scheduled_items, "2024-06") == Decimal("99.26")

    def test_coverage_pct_nothing_due(self, budget_entries):
        assert select_coverage_pct(budget_entries, [], "2024-06") == Decimal("100")


class TestValidation:
    """Test month-close and assignment validation."""

    def test_month_close_blocked(self, transactions, budget_entries, categories):
        summary = select_month_summary(transactions, budget_entries, categories, "2024-06")
        result = validate_month_close(summary)
        assert not result.is_valid
        assert any("overspent" in error for error in result.errors)
        assert any("Ready to Assign" in error for error in result.errors)

    def test_assignment_within_rta(self, transactions, budget_entries, categories):
        result = validate_assignment(transactions, budget_entries, categories, "groceries", "2024-06", 500)
        assert result.is_valid

    def test_over_assignment_rejected(self, transactions, budget_entries, categories):
        result = validate_assignment(transactions, budget_entries, categories, "groceries", "2024-06", 900)
        assert not result.is_valid
        assert "50.00" in result.errors[0]
        with pytest.raises(ValidationError):
            require_valid_assignment(result)

    def test_over_assignment_allowed_as_warning(self, transactions, budget_entries, categories):
        result = validate_assignment(
            transactions, budget_entries, categories, "groceries", "2024-06", 900, allow_over_assign=True
        )
        assert result.is_valid
        assert result.warnings

    def test_negative_and_unknown_rejected(self, transactions, budget_entries, categories):
        assert not validate_assignment(transactions, budget_entries, categories, "rent", "2024-06", -1).is_valid
        assert not validate_assignment(transactions, budget_entries, categories, "nope", "2024-06", 1).is_valid
