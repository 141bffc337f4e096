"""
Unit tests for goal progress and lifecycle.
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from exceptions import GoalError, ValidationError
from goals import (
    add_contribution,
    calculate_goal_progress,
    change_goal_status,
    crossed_milestones,
    priority_label,
    progress_percent,
    select_goal_progress,
    should_trigger_milestone,
    summarize_goals,
)
from models import Goal, GoalStatus

AS_OF = date(2024, 6, 30)


@pytest.fixture
def vacation(goals):
    return goals[0]


class TestProgress:
    """Test derived progress figures."""

    def test_on_pace_goal(self, vacation):
        progress = calculate_goal_progress(vacation, AS_OF)
        assert progress.saved_amount == Decimal("300")
        assert progress.progress_percent == Decimal("30.00")
        assert progress.required_monthly == Decimal("58.33")
        assert progress.months_remaining == 7
        assert progress.eta == date(2025, 1, 26)
        assert progress.is_on_pace

    def test_no_recent_contributions(self, vacation):
        progress = calculate_goal_progress(vacation, date(2024, 12, 1))
        assert not progress.is_on_pace
        assert progress.eta == vacation.target_date
        assert progress.months_remaining == 7

    def test_past_target_date(self, vacation):
        progress = calculate_goal_progress(vacation, date(2025, 7, 1))
        assert not progress.is_on_pace
        assert progress.eta is None

    def test_no_target_date(self, vacation):
        progress = calculate_goal_progress(replace(vacation, target_date=None), AS_OF)
        assert progress.is_on_pace
        assert progress.eta is None

    def test_percent_is_capped(self):
        assert progress_percent(Decimal("1500"), Decimal("1000")) == Decimal("100")
        assert progress_percent(Decimal("10"), Decimal("0")) == Decimal("0")

    def test_archived_goals_are_hidden(self, vacation):
        archived = replace(vacation, id="old", status=GoalStatus.ARCHIVED)
        assert [p.goal_id for p in select_goal_progress([vacation, archived], AS_OF)] == ["vacation"]


class TestContributions:
    """Test adding contributions."""

    def test_appends_contribution(self, vacation):
        updated = add_contribution(vacation, 50, AS_OF, "c3", source="ROUND_UP")
        assert updated.saved_amount == Decimal("350")
        assert updated.contributions[-1].source == "ROUND_UP"
        assert vacation.saved_amount == Decimal("300")

    def test_reaching_target_completes(self, vacation):
        updated = add_contribution(vacation, 700, AS_OF, "c3")
        assert updated.status is GoalStatus.COMPLETED

    @pytest.mark.parametrize("amount", [0, -5])
    def test_rejects_non_positive(self, vacation, amount):
        with pytest.raises(ValidationError):
            add_contribution(vacation, amount, AS_OF, "c3")

    def test_rejects_unknown_source(self, vacation):
        with pytest.raises(ValidationError):
            add_contribution(vacation, 10, AS_OF, "c3", source="LOTTERY")

    def test_rejects_archived(self, vacation):
        with pytest.raises(GoalError):
            add_contribution(replace(vacation, status=GoalStatus.ARCHIVED), 10, AS_OF, "c3")


class TestStatus:
    """Test lifecycle transitions."""

    def test_pause_and_resume(self, vacation):
        paused = change_goal_status(vacation, GoalStatus.PAUSED)
        assert change_goal_status(paused, GoalStatus.ACTIVE).status is GoalStatus.ACTIVE

    def test_same_status_is_noop(self, vacation):
        assert change_goal_status(vacation, GoalStatus.ACTIVE) is vacation

    def test_invalid_transition(self, vacation):
        archived = change_goal_status(vacation, GoalStatus.ARCHIVED)
        with pytest.raises(GoalError):
            change_goal_status(archived, GoalStatus.COMPLETED)


class TestMilestonesAndSummary:
    """Test milestone crossings and KPIs."""

    def test_should_trigger(self):
        assert should_trigger_milestone(20, 30, 25)
        assert not should_trigger_milestone(25, 30, 25)
        assert should_trigger_milestone(99, 100, 100)

    def test_crossed_milestones(self):
        assert crossed_milestones(10, 80) == [25, 50, 75]
        assert crossed_milestones(80, 80) == []

    def test_priority_label(self):
        assert priority_label(5) == "Critical"
        assert priority_label(9) == "Medium"

    def test_summary(self, vacation):
        laptop = Goal(id="laptop", name="Laptop", target_amount=Decimal("1000"), priority=4)
        done = Goal(id="car", name="Car", target_amount=Decimal("0"), status=GoalStatus.COMPLETED)
        summary = summarize_goals([vacation, laptop, done], AS_OF)
        assert summary.total_goals == 3
        assert summary.active_goals == 2
        assert summary.completed_goals == 1
        assert summary.total_saved == Decimal("300")
        assert summary.overall_progress == Decimal("15.00")
        assert summary.this_month_contributed == Decimal("100")
        assert summary.top_goal_id == "vacation"
