"""
Scenario engine.

Applies percentage and fixed adjustments, plus named global shocks, to a
baseline forecast timeline to produce comparable alternate timelines
(base, optimistic, stress, custom). Adjustments compound: each percentage
is computed off the running value immediately before it. Forecasts are
always adjusted on a copy; only ``apply_scenario_to_plan`` touches the
real budget, and only future months.
"""

import copy
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from exceptions import ScenarioError, ValidationError
from forecasting import ForecastMonth
from models import BudgetEntry, Category, ValidationResult
from money import ZERO, coerce_decimal, quantize_money, sum_money
from month_utils import add_months, is_valid_month, next_month

logger = logging.getLogger(__name__)

ADJUSTMENT_TYPES = ("percentage", "fixed_amount")
SCENARIO_TYPES = ("base", "optimistic", "stress", "custom")
SPEND_UTILIZATION = Decimal("0.95")
PLAN_HORIZON_MONTHS = 12
LARGE_PERCENTAGE = Decimal(100)
LARGE_FIXED_AMOUNT = Decimal(10000)


@dataclass(frozen=True)
class ScenarioAdjustment:
    """
    Adjustment of income (no category) or one category.

    Attributes:
        category_id: Target category, None for income
        adjustment_type: "percentage" (e.g. 10 for +10%) or "fixed_amount"
        value: Percentage or amount
        start_month: First month affected (defaults to the scenario's next month)
        end_month: Last month affected (open-ended when None)
        note: Free-form note
    """

    category_id: Optional[str]
    adjustment_type: str
    value: Decimal
    start_month: Optional[str] = None
    end_month: Optional[str] = None
    note: Optional[str] = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", coerce_decimal(self.value))


@dataclass(frozen=True)
class GlobalShock:
    """Named template of adjustments sharing a start month."""

    id: str
    name: str
    description: str
    adjustments: Tuple[ScenarioAdjustment, ...]
    start_month: Optional[str] = None


@dataclass
class Scenario:
    """Named set of adjustments and applied shock ids."""

    id: str
    name: str
    type: str
    base_month: str
    description: str = ""
    adjustments: List[ScenarioAdjustment] = field(default_factory=list)
    global_shocks: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    forecast: Optional[List[ForecastMonth]] = None


@dataclass(frozen=True)
class ScenarioDelta:
    """One row of the scenario delta table (category None is total income)."""

    category_id: Optional[str]
    category_name: str
    base_value: Decimal
    optimistic_value: Decimal
    stress_value: Decimal
    optimistic_delta: Decimal
    stress_delta: Decimal


@dataclass
class ScenarioComparison:
    """Per-scenario series plus the delta table."""

    scenarios: List[Scenario]
    months: List[str]
    net_cash_flow: Dict[str, List[Decimal]]
    rta: Dict[str, List[Decimal]]
    total_income: Dict[str, List[Decimal]]
    total_expenses: Dict[str, List[Decimal]]
    delta_table: List[ScenarioDelta]


@dataclass(frozen=True)
class ScenarioImpact:
    """Totals of a scenario relative to a base scenario."""

    total_income_change: Decimal
    total_expense_change: Decimal
    net_cash_flow_change: Decimal
    rta_change: Decimal
    risk_level: str
    months_to_breakeven: Optional[int] = None


@dataclass
class PlanApplication:
    """Outcome of applying a scenario to the real budget."""

    updated_entries: List[BudgetEntry]
    applied_adjustments: List[ScenarioAdjustment]
    warnings: List[str]


def create_scenario_templates(base_month: str) -> List[Scenario]:
    """Base, optimistic and stress templates for a base month."""
    return [
        Scenario(
            id="base",
            name="Base Scenario",
            type="base",
            base_month=base_month,
            description="Current plan with no changes",
        ),
        Scenario(
            id="optimistic",
            name="Optimistic Scenario",
            type="optimistic",
            base_month=base_month,
            description="10% income increase, 5% discretionary reduction",
            adjustments=[ScenarioAdjustment(None, "percentage", Decimal(10), note="Optimistic income growth")],
            global_shocks=["optimistic_spending"],
        ),
        Scenario(
            id="stress",
            name="Stress Test",
            type="stress",
            base_month=base_month,
            description="20% income reduction plus inflation and emergency expenses",
            adjustments=[ScenarioAdjustment(None, "percentage", Decimal(-20), note="Job loss or income reduction")],
            global_shocks=["inflation_shock", "emergency_expenses"],
        ),
    ]


def create_global_shock_templates(start_month: Optional[str] = None) -> List[GlobalShock]:
    """
    Predefined shocks.

    Category ids in the templates are conventional names and only apply
    when the user's categories use them.
    """
    return [
        GlobalShock(
            id="rent_increase",
            name="Rent Increase",
            description="+10% rent",
            adjustments=(ScenarioAdjustment("housing_rent", "percentage", Decimal(10), note="Annual rent increase"),),
            start_month=start_month,
        ),
        GlobalShock(
            id="inflation_shock",
            name="Inflation Shock",
            description="+15% on groceries and utilities",
            adjustments=(
                ScenarioAdjustment("groceries", "percentage", Decimal(15), note="Inflation impact on food costs"),
                ScenarioAdjustment("utilities", "percentage", Decimal(15), note="Inflation impact on utilities"),
            ),
            start_month=start_month,
        ),
        GlobalShock(
            id="emergency_expenses",
            name="Emergency Expenses",
            description="+500/month unexpected expenses",
            adjustments=(
                ScenarioAdjustment("emergency_fund", "fixed_amount", Decimal(500), note="Unexpected monthly expenses"),
            ),
            start_month=start_month,
        ),
        GlobalShock(
            id="optimistic_spending",
            name="Optimistic Spending",
            description="-5% on discretionary categories",
            adjustments=(
                ScenarioAdjustment("entertainment", "percentage", Decimal(-5), note="Reduced entertainment spending"),
                ScenarioAdjustment("dining_out", "percentage", Decimal(-5), note="Reduced dining out"),
            ),
            start_month=start_month,
        ),
    ]


def create_custom_scenario(
    scenario_id: str,
    name: str,
    base_month: str,
    adjustments: Sequence[ScenarioAdjustment],
    global_shocks: Sequence[str] = (),
    description: str = ""
) -> Scenario:
    """Build a custom scenario."""
    return Scenario(
        id=scenario_id,
        name=name,
        type="custom",
        base_month=base_month,
        description=description,
        adjustments=list(adjustments),
        global_shocks=list(global_shocks),
        created_at=datetime.now(),
    )


def _adjustment_amount(adjustment: ScenarioAdjustment, running_value: Decimal) -> Decimal:
    if adjustment.adjustment_type == "percentage":
        return quantize_money(running_value * adjustment.value / 100)
    if adjustment.adjustment_type == "fixed_amount":
        return adjustment.value
    raise ScenarioError("Unknown adjustment type", details={"type": adjustment.adjustment_type})


def apply_adjustment(
    forecast: List[ForecastMonth],
    adjustment: ScenarioAdjustment,
    default_start: str,
    shock_start: Optional[str] = None
) -> None:
    """
    Apply one adjustment in place to every month inside its window.

    Income adjustments move income, Ready to Assign and net cash flow.
    Category adjustments move the category's final amount, total assigned
    and Ready to Assign, and 95% of the change into spending and net.
    """
    start = shock_start or adjustment.start_month or default_start
    for month in forecast:
        if month.month < start:
            continue
        if adjustment.end_month and month.month > adjustment.end_month:
            continue
        if adjustment.category_id is None:
            amount = _adjustment_amount(adjustment, month.income)
            month.income += amount
            month.rta += amount
            month.net_cash_flow += amount
            continue
        line = month.category(adjustment.category_id)
        if line is None:
            continue
        amount = _adjustment_amount(adjustment, line.final)
        spend_effect = quantize_money(amount * SPEND_UTILIZATION)
        line.final += amount
        month.total_assigned += amount
        month.rta -= amount
        month.total_spent += spend_effect
        month.net_cash_flow -= spend_effect


def apply_scenario_to_forecast(
    base_forecast: Sequence[ForecastMonth],
    scenario: Scenario,
    global_shocks: Iterable[GlobalShock] = ()
) -> List[ForecastMonth]:
    """
    Produce the scenario's forecast from a baseline without mutating it.

    Scenario adjustments are applied first, then the referenced shocks in
    the order listed; unknown shock ids are logged and skipped.
    """
    adjusted = copy.deepcopy(list(base_forecast))
    default_start = next_month(scenario.base_month)
    for adjustment in scenario.adjustments:
        apply_adjustment(adjusted, adjustment, default_start)

    shocks = {shock.id: shock for shock in global_shocks}
    for shock_id in scenario.global_shocks:
        shock = shocks.get(shock_id)
        if shock is None:
            logger.warning(f"Unknown global shock '{shock_id}' in scenario {scenario.id}")
            continue
        for adjustment in shock.adjustments:
            apply_adjustment(adjusted, adjustment, default_start, shock.start_month)
    return adjusted


def run_scenarios(
    base_forecast: Sequence[ForecastMonth],
    scenarios: Iterable[Scenario],
    global_shocks: Iterable[GlobalShock] = ()
) -> List[Scenario]:
    """Return copies of the scenarios with their forecasts attached."""
    shocks = list(global_shocks)
    return [
        replace(scenario, forecast=apply_scenario_to_forecast(base_forecast, scenario, shocks))
        for scenario in scenarios
    ]


def _category_total(forecast: Sequence[ForecastMonth], category_id: str) -> Decimal:
    total = ZERO
    for month in forecast:
        line = month.category(category_id)
        if line is not None:
            total += line.final
    return total


def generate_delta_table(scenarios: Sequence[Scenario]) -> List[ScenarioDelta]:
    """
    Compare totals of base, optimistic and stress scenarios.

    Missing optimistic or stress scenarios fall back to base values. Rows
    are sorted by the stress scenario's absolute delta, largest first.
    """
    if len(scenarios) < 2:
        return []
    base = next((scenario for scenario in scenarios if scenario.type == "base"), scenarios[0])
    optimistic = next((scenario for scenario in scenarios if scenario.type == "optimistic"), None)
    stress = next((scenario for scenario in scenarios if scenario.type == "stress"), None)
    if not base.forecast:
        return []

    def income(scenario: Optional[Scenario], fallback: Decimal) -> Decimal:
        if scenario is None or scenario.forecast is None:
            return fallback
        return sum_money(month.income for month in scenario.forecast)

    def category(scenario: Optional[Scenario], category_id: str, fallback: Decimal) -> Decimal:
        if scenario is None or scenario.forecast is None:
            return fallback
        return _category_total(scenario.forecast, category_id)

    rows: List[ScenarioDelta] = []
    base_income = income(base, ZERO)
    optimistic_income = income(optimistic, base_income)
    stress_income = income(stress, base_income)
    rows.append(ScenarioDelta(
        category_id=None,
        category_name="Total Income",
        base_value=base_income,
        optimistic_value=optimistic_income,
        stress_value=stress_income,
        optimistic_delta=optimistic_income - base_income,
        stress_delta=stress_income - base_income,
    ))

    names: Dict[str, str] = {}
    for scenario in scenarios:
        for month in scenario.forecast or []:
            for line in month.categories:
                names.setdefault(line.category_id, line.category_name)

    for category_id, name in names.items():
        base_total = category(base, category_id, ZERO)
        optimistic_total = category(optimistic, category_id, base_total)
        stress_total = category(stress, category_id, base_total)
        rows.append(ScenarioDelta(
            category_id=category_id,
            category_name=name,
            base_value=base_total,
            optimistic_value=optimistic_total,
            stress_value=stress_total,
            optimistic_delta=optimistic_total - base_total,
            stress_delta=stress_total - base_total,
        ))

    return sorted(rows, key=lambda row: abs(row.stress_delta), reverse=True)


def compare_scenarios(scenarios: Sequence[Scenario]) -> ScenarioComparison:
    """Collect monthly series per scenario plus the delta table."""
    scenario_list = list(scenarios)
    if not scenario_list:
        return ScenarioComparison([], [], {}, {}, {}, {}, [])
    months = [month.month for month in scenario_list[0].forecast or []]
    comparison = ScenarioComparison(
        scenarios=scenario_list,
        months=months,
        net_cash_flow={},
        rta={},
        total_income={},
        total_expenses={},
        delta_table=generate_delta_table(scenario_list),
    )
    for scenario in scenario_list:
        if not scenario.forecast:
            continue
        comparison.net_cash_flow[scenario.id] = [month.net_cash_flow for month in scenario.forecast]
        comparison.rta[scenario.id] = [month.rta for month in scenario.forecast]
        comparison.total_income[scenario.id] = [month.income for month in scenario.forecast]
        comparison.total_expenses[scenario.id] = [month.total_spent for month in scenario.forecast]
    return comparison


def calculate_scenario_impact(base: Scenario, comparison: Scenario) -> ScenarioImpact:
    """
    Summarize how a scenario changes income, spending, net and RTA.

    Risk is high when net cash flow drops by more than 1000 over the
    horizon and medium beyond 500.
    """
    if not base.forecast or not comparison.forecast:
        return ScenarioImpact(ZERO, ZERO, ZERO, ZERO, "low")

    def total(forecast: Sequence[ForecastMonth], attribute: str) -> Decimal:
        return sum_money(getattr(month, attribute) for month in forecast)

    cash_flow_change = total(comparison.forecast, "net_cash_flow") - total(base.forecast, "net_cash_flow")
    risk_level = "low"
    if cash_flow_change < -1000:
        risk_level = "high"
    elif cash_flow_change < -500:
        risk_level = "medium"

    breakeven = None
    if cash_flow_change < 0:
        for position, month in enumerate(comparison.forecast):
            if month.net_cash_flow >= 0:
                breakeven = position + 1
                break

    return ScenarioImpact(
        total_income_change=total(comparison.forecast, "income") - total(base.forecast, "income"),
        total_expense_change=total(comparison.forecast, "total_spent") - total(base.forecast, "total_spent"),
        net_cash_flow_change=cash_flow_change,
        rta_change=total(comparison.forecast, "rta") - total(base.forecast, "rta"),
        risk_level=risk_level,
        months_to_breakeven=breakeven,
    )


def validate_scenario(scenario: Scenario) -> ValidationResult:
    """
    Check a scenario before it is saved or run.

    Errors: missing name, unknown adjustment type, malformed months, start
    month not before end month. Warnings: no adjustments, very large values.
    """
    errors: List[str] = []
    warnings: List[str] = []
    if not scenario.name or not scenario.name.strip():
        errors.append("Scenario name is required")
    if scenario.type not in SCENARIO_TYPES:
        errors.append(f"Unknown scenario type '{scenario.type}'")
    if not scenario.adjustments and not scenario.global_shocks:
        warnings.append("Scenario has no adjustments - it will be identical to base")

    for adjustment in scenario.adjustments:
        if adjustment.adjustment_type not in ADJUSTMENT_TYPES:
            errors.append(f"Unknown adjustment type '{adjustment.adjustment_type}'")
            continue
        if adjustment.adjustment_type == "percentage" and abs(adjustment.value) > LARGE_PERCENTAGE:
            warnings.append(f"Large percentage adjustment: {adjustment.value}%")
        if adjustment.adjustment_type == "fixed_amount" and abs(adjustment.value) > LARGE_FIXED_AMOUNT:
            warnings.append(f"Large fixed adjustment: {adjustment.value}")
        for month in (adjustment.start_month, adjustment.end_month):
            if month is not None and not is_valid_month(month):
                errors.append(f"Invalid month '{month}'")
        if adjustment.start_month and adjustment.end_month and adjustment.start_month >= adjustment.end_month:
            errors.append("Start month must be before end month")

    return ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)


def require_valid_scenario(scenario: Scenario) -> ValidationResult:
    """
    Validate a scenario and raise on the first error.

    Raises:
        ValidationError: With the human-readable reason
    """
    result = validate_scenario(scenario)
    if not result.is_valid:
        raise ValidationError(result.errors[0], details={"scenario": scenario.id})
    return result


def apply_scenario_to_plan(
    scenario: Scenario,
    budget_entries: Sequence[BudgetEntry],
    categories: Sequence[Category],
    current_month: str,
    horizon_months: int = PLAN_HORIZON_MONTHS
) -> PlanApplication:
    """
    Destructive: apply a scenario's category adjustments to real budget entries.

    Only existing entries for months after ``current_month`` (up to the
    horizon, and inside each adjustment's window) change; past and current
    months are never touched. Assigned amounts are clamped at zero. Income
    adjustments cannot be applied and are reported as warnings.

    Returns:
        PlanApplication with the new entries and every warning raised
    """
    warnings = [
        "This will modify your actual budget plan",
        "Consider saving a backup scenario first",
    ]
    known = {category.id for category in categories}
    future_months = {add_months(current_month, offset) for offset in range(1, horizon_months + 1)}
    updated = list(budget_entries)
    applied: List[ScenarioAdjustment] = []

    for adjustment in scenario.adjustments:
        if adjustment.category_id is None:
            warnings.append("Income adjustments cannot be applied automatically")
            continue
        if adjustment.category_id not in known:
            warnings.append(f"Category {adjustment.category_id} not found")
            continue
        for position, entry in enumerate(updated):
            if entry.category_id != adjustment.category_id or entry.month not in future_months:
                continue
            if adjustment.start_month and entry.month < adjustment.start_month:
                continue
            if adjustment.end_month and entry.month > adjustment.end_month:
                continue
            amount = _adjustment_amount(adjustment, entry.assigned)
            updated[position] = replace(entry, assigned=max(ZERO, entry.assigned + amount))
        applied.append(adjustment)

    for warning in warnings:
        logger.warning(f"Scenario {scenario.id}: {warning}")
    return PlanApplication(updated_entries=updated, applied_adjustments=applied, warnings=warnings)
