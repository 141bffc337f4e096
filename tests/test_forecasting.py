"""
Unit tests for runway and the forecast timeline.
"""

from dataclasses import replace
from datetime import date
from decimal import Decimal

import pytest

from exceptions import ForecastError
from forecasting import (
    ForecastOptions,
    apply_overrides,
    confidence_multiplier,
    forecast_month_keys,
    generate_forecast,
    group_forecast_by_group,
    seasonality_multiplier,
    select_liquid_cash_now,
    select_monthly_bills_forecast,
    select_monthly_income_forecast,
    select_runway,
    select_trailing_income_average,
    select_variable_spend_forecast,
)
from models import Account, AccountType, ForecastMode, ForecastOverride, ScheduledItem, ScheduledKind
from money import INFINITY

AS_OF = date(2024, 6, 30)


class TestLiquidCash:
    """Test the liquid cash selector."""

    def test_applies_unrecorded_transactions(self, accounts, transactions):
        # Checking has no recorded date so every June transaction applies.
        assert select_liquid_cash_now(accounts, transactions) == Decimal("8740")

    def test_respects_balance_as_of(self, accounts, transactions):
        dated = [replace(accounts[0], balance_as_of=date(2024, 6, 30))] + accounts[1:]
        assert select_liquid_cash_now(dated, transactions) == Decimal("8000")

    def test_skips_credit_and_off_budget(self):
        accounts = [
            Account(id="visa", name="Visa", type=AccountType.CREDIT, balance=Decimal("900")),
            Account(id="brokerage", name="Brokerage", type=AccountType.SAVINGS, on_budget=False, balance=Decimal("100")),
            Account(id="overdrawn", name="Overdrawn", type=AccountType.CHECKING, balance=Decimal("-50")),
        ]
        assert select_liquid_cash_now(accounts, []) == Decimal("0")


class TestIncomeAndOutflow:
    """Test the monthly income and outflow forecasts."""

    def test_flexible_bill_uses_average(self, scheduled_items):
        assert select_monthly_bills_forecast(scheduled_items) == Decimal("1360.00")

    def test_trailing_income_average(self, transactions):
        assert select_trailing_income_average(transactions, AS_OF) == Decimal("833.33")

    def test_planned_plus_average_never_below_planned(self, scheduled_items, transactions):
        income = select_monthly_income_forecast(
            scheduled_items, transactions, "2024-06", ForecastMode.PLANNED_PLUS_AVERAGE, AS_OF
        )
        assert income == Decimal("2500.00")

    def test_average_wins_when_higher(self, transactions):
        salary = ScheduledItem(id="s", kind=ScheduledKind.INCOME, amount=Decimal("300"))
        income = select_monthly_income_forecast([salary], transactions, "2024-06", "planned_plus_average", AS_OF)
        assert income == Decimal("833.33")

    def test_variable_spend_excludes_bill_categories(self, scheduled_items, transactions):
        # groceries 350 + dining 30 + entertainment 40 over three months
        assert select_variable_spend_forecast(scheduled_items, transactions, AS_OF) == Decimal("140.00")


class TestRunway:
    """Test the savings runway."""

    def test_positive_net_is_infinite(self, accounts, transactions, scheduled_items, categories):
        runway = select_runway(
            accounts, transactions, scheduled_items, categories, "2024-06",
            mode="planned_only", as_of=AS_OF,
        )
        assert runway.liquid_cash_now == Decimal("8740")
        assert runway.monthly_outflow_forecast == Decimal("1460.00")
        assert runway.monthly_net_forecast == Decimal("1040.00")
        assert runway.runway_months == INFINITY
        assert runway.depletion_month is None
        assert not runway.is_critical

    def test_planned_plus_average_adds_variable_spend(self, accounts, transactions, scheduled_items, categories):
        runway = select_runway(accounts, transactions, scheduled_items, categories, "2024-06", as_of=AS_OF)
        assert runway.variable_spend_forecast == Decimal("140.00")
        assert runway.monthly_net_forecast == Decimal("900.00")

    def test_negative_net_depletes(self, caplog):
        accounts = [Account(id="checking", name="Checking", type=AccountType.CHECKING, balance=Decimal("1200"))]
        bills = [ScheduledItem(id="rent", kind=ScheduledKind.BILL, amount=Decimal("500"))]
        runway = select_runway(accounts, [], bills, [], "2024-06", mode=ForecastMode.PLANNED_ONLY, as_of=AS_OF)
        assert runway.monthly_net_forecast == Decimal("-500.00")
        assert runway.runway_months == Decimal("2.40")
        assert runway.depletion_month == "2024-09"
        assert runway.is_critical
        assert "Runway" in caplog.text

    def test_rejects_unknown_mode(self, accounts):
        with pytest.raises(ForecastError):
            select_runway(accounts, [], [], [], "2024-06", mode="guesswork", as_of=AS_OF)

    def test_rejects_bad_month(self, accounts):
        with pytest.raises(ForecastError):
            select_runway(accounts, [], [], [], "June", as_of=AS_OF)


class TestForecastTimeline:
    """Test the month-by-month forecast."""

    @pytest.fixture
    def options(self):
        return ForecastOptions(seasonality=False, past_months=1, future_months=2)

    def test_timeline_shape(self, user_data, options):
        timeline = generate_forecast(user_data, "2024-06", options)
        assert forecast_month_keys(timeline) == ["2024-05", "2024-06", "2024-07", "2024-08"]
        assert [month.is_actual for month in timeline] == [True, True, False, False]

    def test_current_month_is_actual(self, user_data, options):
        june = generate_forecast(user_data, "2024-06", options)[1]
        assert june.income == Decimal("2500")
        assert june.total_assigned == Decimal("1950")
        assert june.rta == Decimal("550")
        assert june.total_spent == Decimal("1760")
        assert june.net_cash_flow == Decimal("740")

    def test_predicted_baselines(self, user_data, options):
        july = generate_forecast(user_data, "2024-06", options)[2]
        assert july.income == Decimal("2500.00")
        assert july.category("rent").baseline == Decimal("600.00")
        # Spending outran assignment so the spent average wins.
        assert july.category("groceries").baseline == Decimal("175.00")
        assert july.total_spent == (july.total_assigned * Decimal("0.95")).quantize(Decimal("0.01"))

    def test_overrides_apply_to_future_months_only(self, user_data, options):
        data = replace(user_data, forecast_overrides=[
            ForecastOverride(month="2024-06", category_id="rent", delta_amount=Decimal("999")),
            ForecastOverride(month="2024-07", category_id="rent", delta_amount=Decimal("50")),
            ForecastOverride(month="2024-08", category_id=None, delta_amount=Decimal("100")),
        ])
        timeline = generate_forecast(data, "2024-06", options)
        assert timeline[1].category("rent").final == Decimal("1200")
        assert timeline[2].category("rent").final == Decimal("650.00")
        assert timeline[2].category("rent").override == Decimal("50")
        assert timeline[3].income == Decimal("2600.00")

    def test_overrides_can_be_disabled(self, user_data, options):
        data = replace(user_data, forecast_overrides=[
            ForecastOverride(month="2024-07", category_id="rent", delta_amount=Decimal("50")),
        ])
        timeline = generate_forecast(data, "2024-06", replace(options, include_overrides=False))
        assert timeline[2].category("rent").override is None

    def test_apply_overrides_leaves_input(self, user_data, options):
        timeline = generate_forecast(user_data, "2024-06", options)
        apply_overrides(timeline, [ForecastOverride(month="2024-07", category_id="rent", delta_amount=Decimal("1"))])
        assert timeline[2].category("rent").override is None

    def test_group_forecast_by_group(self, user_data, options):
        grouped = group_forecast_by_group(generate_forecast(user_data, "2024-06", options))
        assert grouped["Bills"] == ["rent", "utilities"]

    def test_options_from_config(self):
        options = ForecastOptions.from_config({"forecast": {"future_months": 3, "seasonality": False}})
        assert options.future_months == 3
        assert not options.seasonality
        assert options.past_months == 6

    def test_bad_month(self, user_data):
        with pytest.raises(ForecastError):
            generate_forecast(user_data, "2024/06")


class TestMultipliers:
    """Test seasonality and confidence factors."""

    def test_seasonality(self):
        assert seasonality_multiplier("Utilities", "2024-01") == Decimal("1.3")
        assert seasonality_multiplier("Holiday gifts", "2024-12") == Decimal("2.0")
        assert seasonality_multiplier("Groceries", "2024-01") == Decimal("1.0")

    def test_confidence(self):
        assert confidence_multiplier("conservative") == Decimal("1.1")
        assert confidence_multiplier("unknown") == Decimal("1.0")
