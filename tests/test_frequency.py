"""
Unit tests for cadence normalization, due-date projection and the money/month helpers.
"""

from datetime import date, datetime
from decimal import Decimal

import pytest

from exceptions import ValidationError
from frequency import due_dates_in_month, monthly_multiplier, normalize_cadence, normalize_to_monthly
from money import ceil_to_multiple, coerce_decimal, quantize_money, sum_money
from month_utils import (
    add_months,
    add_months_to_date,
    current_month,
    is_valid_month,
    month_bounds,
    month_key,
    months_between,
    parse_date,
    previous_month,
)


class TestNormalizeToMonthly:
    """Test monthly equivalents of each cadence."""

    @pytest.mark.parametrize("cadence,expected", [
        ("weekly", Decimal("433.33")),
        ("biweekly", Decimal("216.67")),
        ("semimonthly", Decimal("200.00")),
        ("monthly", Decimal("100.00")),
        ("quarterly", Decimal("33.33")),
        ("yearly", Decimal("8.33")),
        ("oneoff", Decimal("0.00")),
    ])
    def test_cadences(self, cadence, expected):
        assert normalize_to_monthly(100, cadence) == expected

    def test_aliases(self):
        assert normalize_cadence("Annual") == "yearly"
        assert normalize_cadence("bi-weekly") == "biweekly"
        assert normalize_cadence(None) == "monthly"

    def test_unknown_cadence_is_monthly(self, caplog):
        assert monthly_multiplier("fortnightly-ish") == Decimal(1)
        assert "Unknown cadence" in caplog.text


class TestDueDatesInMonth:
    """Test projection of due dates into a month."""

    def test_monthly_clamps_short_months(self):
        assert due_dates_in_month(date(2024, 1, 31), "monthly", "2024-02") == [date(2024, 2, 29)]
        assert due_dates_in_month(date(2024, 1, 31), "monthly", "2024-03") == [date(2024, 3, 31)]

    def test_before_next_due_is_empty(self):
        assert due_dates_in_month(date(2024, 7, 1), "monthly", "2024-06") == []
        assert due_dates_in_month(None, "monthly", "2024-06") == []

    def test_quarterly_skips_months(self):
        assert due_dates_in_month(date(2024, 1, 15), "quarterly", "2024-04") == [date(2024, 4, 15)]
        assert due_dates_in_month(date(2024, 1, 15), "quarterly", "2024-05") == []

    def test_biweekly(self):
        dates = due_dates_in_month(date(2024, 5, 24), "biweekly", "2024-06")
        assert dates == [date(2024, 6, 7), date(2024, 6, 21)]

    def test_semimonthly(self):
        assert due_dates_in_month(date(2024, 6, 1), "semimonthly", "2024-06") == [date(2024, 6, 1), date(2024, 6, 16)]

    def test_oneoff(self):
        assert due_dates_in_month(date(2024, 6, 9), "oneoff", "2024-06") == [date(2024, 6, 9)]
        assert due_dates_in_month(date(2024, 5, 9), "oneoff", "2024-06") == []


class TestMoneyHelpers:
    """Test Decimal helpers."""

    def test_coerce(self):
        assert coerce_decimal(0.1) == Decimal("0.1")
        assert coerce_decimal(None) == Decimal("0")
        with pytest.raises(TypeError):
            coerce_decimal(True)

    def test_quantize_half_up(self):
        assert quantize_money(Decimal("2.345")) == Decimal("2.35")
        assert quantize_money(Decimal("-2.345")) == Decimal("-2.35")

    def test_ceil_to_multiple(self):
        assert ceil_to_multiple(Decimal("143.20"), Decimal("10")) == Decimal("150")
        assert ceil_to_multiple(Decimal("140"), Decimal("10")) == Decimal("140")
        assert ceil_to_multiple(Decimal("143.20"), Decimal("0")) == Decimal("143.20")

    def test_sum_money_empty(self):
        assert isinstance(sum_money([]), Decimal)


class TestMonthHelpers:
    """Test month key helpers."""

    def test_month_arithmetic(self):
        assert add_months("2024-11", 3) == "2025-02"
        assert add_months("2024-01", -1) == "2023-12"
        assert previous_month("2024-03") == "2024-02"

    def test_validation(self):
        assert is_valid_month("2024-06")
        assert not is_valid_month("2024-6")
        with pytest.raises(ValidationError):
            add_months("June", 1)

    def test_bounds_and_ranges(self):
        assert month_bounds("2023-02") == (date(2023, 2, 1), date(2023, 2, 28))
        assert months_between("2024-11", "2025-01") == ["2024-11", "2024-12", "2025-01"]
        assert months_between("2025-01", "2024-11") == []

    def test_keys_and_dates(self):
        assert month_key(date(2024, 6, 5)) == "2024-06"
        assert month_key("2024-06-05T10:00:00") == "2024-06"
        assert current_month(date(2024, 2, 3)) == "2024-02"
        assert add_months_to_date(date(2024, 3, 31), -1) == date(2024, 2, 29)

    def test_parse_date(self):
        assert parse_date("2024-06-05T12:00:00Z") == date(2024, 6, 5)
        assert parse_date(datetime(2024, 6, 5, 8, 0)) == date(2024, 6, 5)
        assert parse_date(None) is None
        with pytest.raises(ValidationError):
            parse_date("06/05/2024")
