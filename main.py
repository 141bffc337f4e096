"""
Main module for the envelope budget command-line interface.

This module loads a user-data snapshot and runs one of the calculations:
1. Month summary and group rollups
2. Savings runway and forecast timeline
3. Debt payoff schedules
4. Rebalance suggestions, scenarios, targets, goals and notifications
"""

import argparse
import json
import logging
import sys
from datetime import date
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Optional

from auto_assign import apply_allocation_suggestions, suggest_allocations
from budgeting import LedgerIndex, select_all_group_rollups, validate_month_close
from config_manager import get_section, load_config
from debt_payoff import PAYOFF_METHODS, PayoffOptions, compare_payoff_methods, compute_payoff_schedule
from exceptions import BudgetAppError, ReportError, ScenarioError
from forecasting import ForecastOptions, generate_forecast, select_runway
from goals import select_goal_progress, summarize_goals
from models import BudgetEntry
from month_utils import current_month, is_valid_month, parse_date
from notifications import NotificationState, default_rules, generate_notifications
from rebalancing import analyze_overspending, apply_rebalance_moves
from report_generator import ReportGenerator
from scenarios import (
    apply_scenario_to_plan,
    compare_scenarios,
    create_global_shock_templates,
    create_scenario_templates,
    run_scenarios,
)
from targets import calculate_target_needs
from user_data import UserData, dump_budget_entries, load_user_data
from utils import confirm, resolve_log_path

# Configure module-level logger
logger = logging.getLogger(__name__)


def setup_logging(config: dict) -> None:
    """
    Configure logging based on config settings.

    An unknown level falls back to INFO with a warning.

    Args:
        config: Configuration dictionary with logging settings
    """
    log_config = config.get("logging", {}) or {}
    level_name = str(log_config.get("level", "INFO")).upper()
    log_level = getattr(logging, level_name, None)
    invalid_level = not isinstance(log_level, int)
    if invalid_level:
        log_level = logging.INFO
    log_format = log_config.get("format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    log_file = log_config.get("file")
    stream = sys.stderr if log_config.get("stream") == "stderr" else sys.stdout

    handlers: List[logging.Handler] = [logging.StreamHandler(stream)]
    if log_file:
        try:
            log_path = resolve_log_path(log_file)
        except OSError as exc:
            raise RuntimeError(f"Unable to prepare log file path '{log_file}': {exc}") from exc
        handlers.append(logging.FileHandler(log_path))

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=handlers,
        force=True
    )
    if invalid_level:
        logger.warning(f"Unknown log level '{level_name}', using INFO")


def _write_entries(entries: List[BudgetEntry], output: Optional[str]) -> None:
    """Write budget entries as JSON to ``output`` when given."""
    if not output:
        print("Run with --output to save the updated budget entries.")
        return
    try:
        with open(output, "w", encoding="utf-8") as handle:
            json.dump({"budget_entries": dump_budget_entries(entries)}, handle, indent=2)
    except OSError as exc:
        raise ReportError("Could not write budget entries", details={"path": output}, original_error=exc) from exc
    print(f"Saved {len(entries)} budget entries to {output}")


def _category_names(data: UserData) -> Dict[str, str]:
    return {category.id: category.name for category in data.categories}


def handle_summary_command(args: argparse.Namespace, data: UserData, config: dict) -> None:
    """Print the month summary and month-close validation."""
    index = LedgerIndex(data.transactions, data.budget_entries, data.categories)
    summary = index.month_summary(args.month)
    reporter = ReportGenerator(category_names=_category_names(data))
    print(reporter.generate_month_summary_report(summary))

    result = validate_month_close(summary)
    for error in result.errors:
        print(f"  [!] {error}")
    for warning in result.warnings:
        print(f"  [-] {warning}")
    if args.csv:
        reporter.export_to_csv(reporter.month_summary_frame(summary), Path(args.csv), "month summary")


def handle_groups_command(args: argparse.Namespace, data: UserData, config: dict) -> None:
    """Print group rollups."""
    rollups = select_all_group_rollups(
        data.transactions, data.budget_entries, data.categories, data.groups, data.scheduled_items, args.month
    )
    reporter = ReportGenerator()
    print(reporter.generate_group_report(rollups, args.month))
    if args.csv:
        reporter.export_to_csv(reporter.group_rollup_frame(rollups), Path(args.csv), "group rollup")


def handle_runway_command(args: argparse.Namespace, data: UserData, config: dict) -> None:
    """Print the savings runway."""
    budget_cfg = get_section(config, "budget")
    runway = select_runway(
        data.accounts,
        data.transactions,
        data.scheduled_items,
        data.categories,
        args.month,
        mode=args.mode or budget_cfg.get("forecast_mode", "planned_only"),
        warning_threshold_months=int(budget_cfg.get("warning_threshold_months", 6)),
        as_of=args.as_of,
    )
    print(ReportGenerator().generate_runway_report(runway))


def handle_forecast_command(args: argparse.Namespace, data: UserData, config: dict) -> None:
    """Print the forecast timeline."""
    options = ForecastOptions.from_config(config)
    if args.months:
        options.future_months = args.months
    forecast = generate_forecast(data, args.month, options)
    reporter = ReportGenerator()
    print(reporter.generate_forecast_report(forecast))
    if args.csv:
        reporter.export_to_csv(reporter.forecast_frame(forecast), Path(args.csv), "forecast")


def handle_debts_command(args: argparse.Namespace, data: UserData, config: dict) -> None:
    """Print a payoff schedule or an avalanche/snowball comparison."""
    debt_cfg = get_section(config, "debts")
    options = PayoffOptions(
        method=args.method or debt_cfg.get("default_method", "avalanche"),
        extra_per_month=Decimal(str(args.extra if args.extra is not None else debt_cfg.get("extra_per_month", 0))),
        keep_minimums=bool(debt_cfg.get("keep_minimums", True)),
        start_month=args.month,
        max_months=int(debt_cfg.get("max_months", 600)),
    )
    reporter = ReportGenerator()
    if args.compare:
        print(reporter.generate_payoff_comparison_report(compare_payoff_methods(data.debts, options)))
        return
    result = compute_payoff_schedule(data.debts, options)
    print(reporter.generate_payoff_report(result))
    if args.csv:
        reporter.export_to_csv(reporter.payoff_timeline_frame(result), Path(args.csv), "payoff timeline")


def handle_rebalance_command(args: argparse.Namespace, data: UserData, config: dict) -> None:
    """Print rebalance suggestions and optionally apply them."""
    rebalance_cfg = get_section(config, "rebalance")
    result = analyze_overspending(
        data.categories,
        data.budget_entries,
        data.transactions,
        data.scheduled_items,
        args.month,
        as_of=args.as_of,
        groups=data.groups,
        max_donors=rebalance_cfg.get("max_donors"),
        bill_window_days=int(rebalance_cfg.get("bill_window_days", 7)),
        recent_days=int(rebalance_cfg.get("recent_activity_days", 7)),
    )
    print(ReportGenerator().generate_rebalance_report(result))

    if not args.apply or not result.suggested_moves:
        return
    if not confirm(f"Apply {len(result.suggested_moves)} moves to {args.month}?"):
        print("No changes applied.")
        return
    entries, record = apply_rebalance_moves(result.suggested_moves, data.budget_entries, args.month)
    print(f"Applied reassignment {record.id} ({record.total_amount})")
    _write_entries(entries, args.output)


def handle_scenarios_command(args: argparse.Namespace, data: UserData, config: dict) -> None:
    """Compare base, optimistic and stress scenarios; optionally apply one to the plan."""
    base_forecast = generate_forecast(data, args.month, ForecastOptions.from_config(config))
    templates = create_scenario_templates(args.month)
    shocks = create_global_shock_templates()
    scenarios = run_scenarios(base_forecast, templates, shocks)
    print(ReportGenerator().generate_scenario_report(compare_scenarios(scenarios)))

    if not args.apply:
        return
    scenario = next((item for item in scenarios if item.id == args.apply), None)
    if scenario is None:
        raise ScenarioError("Unknown scenario", details={"scenario": args.apply})
    if not confirm(f"Apply scenario '{scenario.name}' to future budget months? This changes your plan"):
        print("No changes applied.")
        return
    application = apply_scenario_to_plan(scenario, data.budget_entries, data.categories, args.month)
    for warning in application.warnings:
        print(f"  [-] {warning}")
    _write_entries(application.updated_entries, args.output)


def handle_targets_command(args: argparse.Namespace, data: UserData, config: dict) -> None:
    """Print target needs; optionally suggest and apply an auto-assign plan."""
    as_of = args.as_of or date.today()
    index = LedgerIndex(data.transactions, data.budget_entries, data.categories)
    reporter = ReportGenerator()
    print(reporter.generate_target_report(calculate_target_needs(index, args.month, as_of)))

    if not args.auto_assign and not args.apply:
        return
    result = suggest_allocations(index, data.transactions, args.month, as_of, args.lock)
    print(reporter.generate_auto_assign_report(result))

    if not args.apply or not result.suggestions:
        return
    amount = reporter.format_currency(result.total_suggested)
    if not confirm(f"Assign {amount} across {len(result.suggestions)} categories?"):
        print("No changes applied.")
        return
    _write_entries(apply_allocation_suggestions(data.budget_entries, result.suggestions, args.month), args.output)


def handle_goals_command(args: argparse.Namespace, data: UserData, config: dict) -> None:
    """Print goal progress and KPIs."""
    as_of = args.as_of or date.today()
    progress = select_goal_progress(data.goals, as_of)
    names = {goal.id: goal.name for goal in data.goals}
    reporter = ReportGenerator()
    print(reporter.generate_goal_report(progress, names))
    summary = summarize_goals(data.goals, as_of)
    print(
        f"Saved {reporter.format_currency(summary.total_saved)} of "
        f"{reporter.format_currency(summary.total_target)} "
        f"({reporter.format_percentage(summary.overall_progress)}) across {summary.total_goals} goals"
    )


def handle_notifications_command(args: argparse.Namespace, data: UserData, config: dict) -> None:
    """Print notifications generated for the month."""
    notifications = generate_notifications(
        data,
        args.month,
        args.as_of or date.today(),
        NotificationState(),
        rules=default_rules(config),
    )
    print(ReportGenerator().generate_notification_report(notifications))


COMMAND_HANDLERS = {
    "summary": handle_summary_command,
    "groups": handle_groups_command,
    "runway": handle_runway_command,
    "forecast": handle_forecast_command,
    "debts": handle_debts_command,
    "rebalance": handle_rebalance_command,
    "scenarios": handle_scenarios_command,
    "goals": handle_goals_command,
    "notifications": handle_notifications_command,
    "targets": handle_targets_command,
}


def _month_arg(value: str) -> str:
    if not is_valid_month(value):
        raise argparse.ArgumentTypeError(f"invalid month '{value}' (expected YYYY-MM)")
    return value


def _date_arg(value: str) -> date:
    try:
        return parse_date(value)
    except BudgetAppError as exc:
        raise argparse.ArgumentTypeError(str(exc)) from exc


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser with one subparser per command."""
    parser = argparse.ArgumentParser(
        description="Envelope budget calculations",
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    parser.add_argument(
        "--config",
        "-c",
        type=str,
        default="config.yaml",
        help="Path to configuration file (default: config.yaml)"
    )
    parser.add_argument(
        "--data",
        "-d",
        type=str,
        default="user_data.json",
        help="Path to user data file, JSON or YAML (default: user_data.json)"
    )
    parser.add_argument(
        "--month",
        "-m",
        type=_month_arg,
        default=None,
        help="Budget month YYYY-MM (default: current month)"
    )
    parser.add_argument(
        "--as-of",
        type=_date_arg,
        default=None,
        help="Reference date YYYY-MM-DD for date windows (default: today)"
    )

    # Create subparsers for different commands
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    summary_parser = subparsers.add_parser("summary", help="Show the month summary")
    summary_parser.add_argument("--csv", type=str, help="Export category rows to CSV")

    groups_parser = subparsers.add_parser("groups", help="Show group rollups")
    groups_parser.add_argument("--csv", type=str, help="Export group rows to CSV")

    runway_parser = subparsers.add_parser("runway", help="Show the savings runway")
    runway_parser.add_argument(
        "--mode",
        choices=["planned_only", "planned_plus_average"],
        help="Forecast mode (default from config)"
    )

    forecast_parser = subparsers.add_parser("forecast", help="Show the forecast timeline")
    forecast_parser.add_argument("--months", type=int, help="Future months to predict")
    forecast_parser.add_argument("--csv", type=str, help="Export forecast rows to CSV")

    debts_parser = subparsers.add_parser("debts", aliases=["payoff"], help="Simulate debt payoff")
    debts_parser.add_argument("--method", choices=list(PAYOFF_METHODS), help="Payoff method")
    debts_parser.add_argument("--extra", type=float, help="Extra payment per month")
    debts_parser.add_argument("--compare", action="store_true", help="Compare avalanche and snowball")
    debts_parser.add_argument("--csv", type=str, help="Export the timeline to CSV")

    rebalance_parser = subparsers.add_parser("rebalance", help="Suggest moves to cover overspending")
    rebalance_parser.add_argument("--apply", action="store_true", help="Apply the suggested moves")
    rebalance_parser.add_argument("--output", type=str, help="Where to write updated budget entries")

    scenarios_parser = subparsers.add_parser("scenarios", help="Compare what-if scenarios")
    scenarios_parser.add_argument("--apply", type=str, metavar="SCENARIO_ID", help="Apply a scenario to the plan")
    scenarios_parser.add_argument("--output", type=str, help="Where to write updated budget entries")

    targets_parser = subparsers.add_parser("targets", help="Show target needs and auto-assign suggestions")
    targets_parser.add_argument("--auto-assign", action="store_true", help="Suggest how to fund underfunded targets")
    targets_parser.add_argument(
        "--lock", action="append", default=[], metavar="CATEGORY_ID", help="Leave a category out of auto-assign"
    )
    targets_parser.add_argument("--apply", action="store_true", help="Apply the auto-assign suggestions")
    targets_parser.add_argument("--output", type=str, help="Where to write updated budget entries")

    subparsers.add_parser("goals", help="Show goal progress")
    subparsers.add_parser("notifications", aliases=["notify"], help="Show in-app notifications")
    return parser


COMMAND_ALIASES = {"payoff": "debts", "notify": "notifications"}


def main(argv: Optional[List[str]] = None) -> None:
    """Main entry point for the application."""
    parser = build_parser()
    args = parser.parse_args(argv)

    # Handle case where no command is provided
    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        config = load_config(Path(args.config))
    except BudgetAppError as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        sys.exit(1)

    setup_logging(config)
    args.month = args.month or current_month(args.as_of)

    command = COMMAND_ALIASES.get(args.command, args.command)
    handler = COMMAND_HANDLERS[command]
    try:
        data = load_user_data(args.data)
        handler(args, data, config)
    except BudgetAppError as e:
        logger.error(f"{command} command failed: {e}", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
