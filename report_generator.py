"""
Report generator module for formatting budget results.

This module turns month summaries, group rollups, runway, forecasts,
payoff schedules, rebalance suggestions, scenario comparisons, target
needs, auto-assign suggestions, goal progress and notifications into pandas DataFrames and text tables.
"""

import logging
from decimal import Decimal
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import pandas as pd
from tabulate import tabulate

from auto_assign import AutoAssignResult
from debt_payoff import PayoffComparison, PayoffResult
from exceptions import ReportError
from forecasting import ForecastMonth
from goals import GoalProgress
from models import GroupBalance, MonthSummary, SavingsRunway
from notifications import Notification
from rebalancing import RebalanceResult
from scenarios import ScenarioComparison
from targets import TargetNeeds

logger = logging.getLogger(__name__)

MONEY_COLUMNS = (
    "Assigned", "Spent", "Available", "Carryover", "Min Required", "Shortfall",
    "Income", "RTA", "Net", "Payment", "Interest", "Balance", "Amount",
    "Base", "Optimistic", "Stress", "Optimistic Delta", "Stress Delta", "Saved",
    "Target", "Needed", "Suggested",
)


class ReportGenerator:
    """
    Generate formatted reports from budget results.

    Frames hold floats so they can be exported or charted; text reports
    format those frames with tabulate.
    """

    def __init__(self, tablefmt: str = "grid", category_names: Optional[Dict[str, str]] = None):
        """
        Initialize the report generator.

        Args:
            tablefmt: tabulate table format
            category_names: Optional id to display-name mapping
        """
        self.tablefmt = tablefmt
        self.category_names = category_names or {}
        logger.debug("Report generator initialized")

    def format_currency(self, amount) -> str:
        """Format amount as currency string."""
        return f"${float(amount):,.2f}"

    def format_percentage(self, percentage) -> str:
        """Format percentage string."""
        return f"{float(percentage):.1f}%"

    def _name(self, category_id: str) -> str:
        return self.category_names.get(category_id, category_id)

    def _table(self, df: pd.DataFrame) -> str:
        display_df = df.copy()
        for column in display_df.columns:
            if column in MONEY_COLUMNS:
                display_df[column] = display_df[column].apply(self.format_currency)
        return tabulate(display_df.values.tolist(), headers=display_df.columns.tolist(), tablefmt=self.tablefmt)

    def _section(self, title: str, body: List[str], width: int = 80) -> str:
        return "\n".join(["=" * width, title, "=" * width, *body, "=" * width])

    # DataFrame builders

    def month_summary_frame(self, summary: MonthSummary) -> pd.DataFrame:
        """One row per category of a month summary."""
        return pd.DataFrame(
            [
                {
                    "Category": self._name(balance.category_id),
                    "Assigned": float(balance.assigned),
                    "Spent": float(balance.spent),
                    "Carryover": float(balance.carryover_from_prior),
                    "Available": float(balance.available),
                }
                for balance in summary.categories
            ],
            columns=["Category", "Assigned", "Spent", "Carryover", "Available"],
        )

    def group_rollup_frame(self, rollups: Sequence[GroupBalance]) -> pd.DataFrame:
        """One row per group."""
        return pd.DataFrame(
            [
                {
                    "Group": rollup.group_name,
                    "Type": rollup.group_type,
                    "Assigned": float(rollup.assigned),
                    "Spent": float(rollup.spent),
                    "Available": float(rollup.available),
                    "Min Required": float(rollup.min_required),
                    "Shortfall": float(rollup.shortfall),
                }
                for rollup in rollups
            ],
            columns=["Group", "Type", "Assigned", "Spent", "Available", "Min Required", "Shortfall"],
        )

    def forecast_frame(self, forecast: Sequence[ForecastMonth]) -> pd.DataFrame:
        """One row per forecast month."""
        return pd.DataFrame(
            [
                {
                    "Month": month.month,
                    "Kind": "actual" if month.is_actual else "forecast",
                    "Income": float(month.income),
                    "Assigned": float(month.total_assigned),
                    "Spent": float(month.total_spent),
                    "RTA": float(month.rta),
                    "Net": float(month.net_cash_flow),
                }
                for month in forecast
            ],
            columns=["Month", "Kind", "Income", "Assigned", "Spent", "RTA", "Net"],
        )

    def payoff_timeline_frame(self, result: PayoffResult) -> pd.DataFrame:
        """One row per month of a payoff timeline."""
        return pd.DataFrame(
            [
                {
                    "Month": step.month,
                    "Payment": float(step.total_payment),
                    "Interest": float(step.total_interest),
                    "Balance": float(step.remaining_debt),
                }
                for step in result.timeline
            ],
            columns=["Month", "Payment", "Interest", "Balance"],
        )

    def rebalance_moves_frame(self, result: RebalanceResult) -> pd.DataFrame:
        """One row per suggested move."""
        return pd.DataFrame(
            [
                {
                    "From": move.from_category_name,
                    "To": move.to_category_name,
                    "Amount": float(move.amount),
                    "Impact": move.impact,
                    "Reason": move.reason,
                }
                for move in result.suggested_moves
            ],
            columns=["From", "To", "Amount", "Impact", "Reason"],
        )

    def scenario_delta_frame(self, comparison: ScenarioComparison) -> pd.DataFrame:
        """Delta table of a scenario comparison."""
        return pd.DataFrame(
            [
                {
                    "Line": row.category_name,
                    "Base": float(row.base_value),
                    "Optimistic": float(row.optimistic_value),
                    "Stress": float(row.stress_value),
                    "Optimistic Delta": float(row.optimistic_delta),
                    "Stress Delta": float(row.stress_delta),
                }
                for row in comparison.delta_table
            ],
            columns=["Line", "Base", "Optimistic", "Stress", "Optimistic Delta", "Stress Delta"],
        )

    def scenario_series_frame(self, comparison: ScenarioComparison, series: str = "net_cash_flow") -> pd.DataFrame:
        """Monthly series per scenario, one column per scenario id."""
        values: Dict[str, List[Decimal]] = getattr(comparison, series)
        frame = pd.DataFrame({scenario_id: [float(v) for v in points] for scenario_id, points in values.items()})
        if not frame.empty:
            frame.insert(0, "Month", comparison.months[:len(frame)])
        return frame

    # Text reports

    def generate_month_summary_report(self, summary: MonthSummary) -> str:
        """Text report for a month summary."""
        body = [
            "",
            f"Ready to Assign:        {self.format_currency(summary.to_allocate):>20}",
            f"Inflows to Budget:      {self.format_currency(summary.total_inflows):>20}",
            f"Total Assigned:         {self.format_currency(summary.total_assigned):>20}",
            f"Total Spent:            {self.format_currency(summary.total_spent):>20}",
            f"Rollover Effect:        {self.format_currency(summary.rollover_effect):>20}",
            "",
        ]
        df = self.month_summary_frame(summary)
        if df.empty:
            body.append("No category activity this month.")
        else:
            body.append(self._table(df))
        if summary.overspends:
            names = ", ".join(self._name(balance.category_id) for balance in summary.overspends)
            body.extend(["", f"Overspent: {names}"])
        return self._section(f"MONTH SUMMARY ({summary.month})", body)

    def generate_group_report(self, rollups: Sequence[GroupBalance], month: str) -> str:
        """Text report for group rollups."""
        df = self.group_rollup_frame(rollups)
        if df.empty:
            return f"\nNo groups found for {month}\n"
        return self._section(f"GROUP ROLLUP ({month})", ["", self._table(df)])

    def generate_runway_report(self, runway: SavingsRunway) -> str:
        """Text report for the savings runway."""
        if runway.is_unbounded:
            runway_text = "unbounded (net cash flow is not negative)"
        else:
            runway_text = f"{runway.runway_months} months (depletes {runway.depletion_month})"
        lines = [
            "",
            f"Liquid Cash:            {self.format_currency(runway.liquid_cash_now):>20}",
            f"Monthly Income:         {self.format_currency(runway.monthly_income_forecast):>20}",
            f"Monthly Bills:          {self.format_currency(runway.monthly_bills_forecast):>20}",
            f"Variable Spending:      {self.format_currency(runway.variable_spend_forecast):>20}",
            f"Planned Contributions:  {self.format_currency(runway.planned_contributions):>20}",
            f"Monthly Outflow:        {self.format_currency(runway.monthly_outflow_forecast):>20}",
            "-" * 80,
            f"Monthly Net:            {self.format_currency(runway.monthly_net_forecast):>20}",
            f"Runway:                 {runway_text}",
        ]
        if runway.is_critical:
            lines.append(f"WARNING: runway is below {runway.warning_threshold_months} months")
        return self._section(f"SAVINGS RUNWAY ({runway.forecast_mode.value})", lines)

    def generate_forecast_report(self, forecast: Sequence[ForecastMonth]) -> str:
        """Text report for a forecast timeline."""
        df = self.forecast_frame(forecast)
        if df.empty:
            return "\nNo forecast months\n"
        return self._section("FORECAST", ["", self._table(df)], width=100)

    def generate_payoff_report(self, result: PayoffResult) -> str:
        """Text report for a payoff schedule."""
        lines = [
            "",
            f"Method:                 {result.method:>20}",
            f"Months to Debt-Free:    {result.months_to_debt_free:>20}",
            f"Total Interest:         {self.format_currency(result.total_interest_paid):>20}",
            f"Total Paid:             {self.format_currency(result.total_paid):>20}",
        ]
        if not result.converged:
            lines.append("WARNING: payments do not pay off the debt within the simulation cap")
        if result.interest_saved is not None:
            lines.append(f"Interest Saved:         {self.format_currency(result.interest_saved):>20}")
            lines.append(f"Months Saved:           {result.months_saved:>20}")
        if result.milestones:
            lines.append("")
            for milestone in result.milestones:
                lines.append(f"  {milestone.month}: {milestone.message}")
        return self._section(f"DEBT PAYOFF ({result.method})", lines)

    def generate_payoff_comparison_report(self, comparison: PayoffComparison) -> str:
        """Side-by-side avalanche vs snowball summary."""
        rows = []
        for result in (comparison.avalanche, comparison.snowball):
            rows.append([
                result.method,
                result.months_to_debt_free,
                self.format_currency(result.total_interest_paid),
                self.format_currency(result.total_paid),
                " > ".join(result.payoff_order),
            ])
        table = tabulate(rows, headers=["Method", "Months", "Interest", "Total Paid", "Payoff Order"],
                         tablefmt=self.tablefmt)
        return self._section("PAYOFF METHOD COMPARISON", ["", table, "", f"Recommended: {comparison.recommended} ({comparison.reason})"])

    def generate_rebalance_report(self, result: RebalanceResult) -> str:
        """Text report for rebalance suggestions."""
        if not result.overspent_categories:
            return f"\nNo overspent categories in {result.month}\n"
        lines = [
            "",
            f"Overspent Categories:   {len(result.overspent_categories):>20}",
            f"Covered:                {self.format_currency(result.total_covered):>20}",
            f"Uncovered:              {self.format_currency(result.total_uncovered):>20}",
            "",
        ]
        df = self.rebalance_moves_frame(result)
        lines.append(self._table(df) if not df.empty else "No donor categories available.")
        for option in result.alternative_options:
            lines.append(f"Alternative: {option.description} ({self.format_currency(option.amount)})")
        return self._section(f"REBALANCE SUGGESTIONS ({result.month})", lines, width=100)

    def generate_scenario_report(self, comparison: ScenarioComparison) -> str:
        """Text report for a scenario comparison."""
        if not comparison.scenarios:
            return "\nNo scenarios to compare\n"
        lines = ["", self._table(self.scenario_series_frame(comparison)), ""]
        delta = self.scenario_delta_frame(comparison)
        if not delta.empty:
            lines.append(self._table(delta))
        return self._section("SCENARIO COMPARISON", lines, width=100)

    def target_needs_frame(self, needs: TargetNeeds) -> pd.DataFrame:
        """One row per targeted category."""
        return pd.DataFrame(
            [
                {
                    "Category": calc.category_name,
                    "Type": calc.target_type,
                    "Target": float(calc.target_amount),
                    "Available": float(calc.current_balance),
                    "Needed": float(calc.needed),
                    "Status": "snoozed" if calc.is_snoozed else ("underfunded" if calc.is_underfunded else "funded"),
                }
                for calc in needs.categories
            ],
            columns=["Category", "Type", "Target", "Available", "Needed", "Status"],
        )

    def generate_target_report(self, needs: TargetNeeds) -> str:
        """Text report for the month's target needs."""
        if not needs.categories:
            return f"\nNo targets set for {needs.month}\n"
        lines = [
            "",
            self._table(self.target_needs_frame(needs)),
            "",
            f"Total Needed:           {self.format_currency(needs.total_needed):>20}",
            f"Underfunded:            {self.format_currency(needs.total_underfunded):>20}",
        ]
        return self._section(f"TARGETS ({needs.month})", lines, width=100)

    def generate_auto_assign_report(self, result: AutoAssignResult) -> str:
        """Text report for auto-assign suggestions."""
        if not result.suggestions:
            return f"\nNo auto-assign suggestions ({result.strategy})\n"
        df = pd.DataFrame(
            [
                {
                    "Category": s.category_name,
                    "Suggested": float(s.suggested_amount),
                    "Reason": s.reason,
                    "Confidence": s.confidence,
                }
                for s in result.suggestions
            ],
            columns=["Category", "Suggested", "Reason", "Confidence"],
        )
        lines = [
            "",
            f"Strategy:               {result.strategy:>20}",
            f"Confidence:             {result.confidence:>19}%",
            f"Remaining RTA:          {self.format_currency(result.remaining_rta):>20}",
            "",
            self._table(df),
        ]
        return self._section("AUTO-ASSIGN SUGGESTIONS", lines, width=100)

    def generate_goal_report(self, progress: Iterable[GoalProgress], names: Dict[str, str]) -> str:
        """Text report for goal progress."""
        rows = [
            [
                names.get(item.goal_id, item.goal_id),
                self.format_currency(item.saved_amount),
                self.format_percentage(item.progress_percent),
                item.eta.isoformat() if item.eta else "-",
                "yes" if item.is_on_pace else "no",
            ]
            for item in progress
        ]
        if not rows:
            return "\nNo goals found\n"
        table = tabulate(rows, headers=["Goal", "Saved", "Progress", "ETA", "On Pace"], tablefmt=self.tablefmt)
        return self._section("GOALS", ["", table])

    def generate_notification_report(self, notifications: Sequence[Notification]) -> str:
        """Text list of notifications, highest priority first."""
        if not notifications:
            return "\nNo new notifications\n"
        order = {"high": 0, "medium": 1, "low": 2}
        rows = [
            [n.priority.upper(), n.title, n.message]
            for n in sorted(notifications, key=lambda n: order.get(n.priority, 3))
        ]
        table = tabulate(rows, headers=["Priority", "Title", "Message"], tablefmt=self.tablefmt)
        return self._section("NOTIFICATIONS", ["", table], width=100)

    def export_to_csv(
        self,
        df: pd.DataFrame,
        output_path: Path,
        report_name: str = "report"
    ) -> None:
        """
        Export DataFrame to CSV file.

        Args:
            df: DataFrame to export
            output_path: Output file path
            report_name: Name of the report for logging

        Raises:
            ReportError: If the file cannot be written
        """
        try:
            df.to_csv(output_path, index=False)
        except OSError as e:
            logger.error(f"Failed to export {report_name}: {e}")
            raise ReportError(
                f"Failed to export {report_name}",
                details={"path": str(output_path)},
                original_error=e
            ) from e
        logger.info(f"Exported {report_name} to {output_path}")
