"""
Unit tests for the unified exception hierarchy.

Tests exception creation, attributes, string representations, and error context.
"""

import pytest
from exceptions import (
    BudgetAppError,
    BudgetError,
    ConfigError,
    DataLoadError,
    DebtSimulationError,
    ForecastError,
    GoalError,
    LedgerError,
    NonConvergenceError,
    NotFoundError,
    NotificationError,
    RebalanceError,
    ReportError,
    ScenarioError,
    ValidationError,
)


class TestBudgetAppError:
    """Test base BudgetAppError class."""

    def test_basic_exception_creation(self):
        """Test creating a basic BudgetAppError."""
        error = BudgetAppError("Test error message")
        assert str(error) == "Test error message"
        assert error.message == "Test error message"
        assert error.details == {}
        assert error.original_error is None

    def test_exception_with_details(self):
        """Test creating exception with details dictionary."""
        details = {"key1": "value1", "key2": 123}
        error = BudgetAppError("Test error", details=details)
        assert error.details == details
        assert "key1=value1" in str(error)
        assert "key2=123" in str(error)

    def test_exception_with_original_error(self):
        """Test creating exception with original error chaining."""
        original = ValueError("Original error")
        error = BudgetAppError("Wrapped error", original_error=original)
        assert error.original_error is original

    def test_exception_inheritance(self):
        """Test that BudgetAppError is a subclass of Exception."""
        assert isinstance(BudgetAppError("Test"), Exception)


class TestDomainErrors:
    """Test the specific exception classes."""

    @pytest.mark.parametrize("error_cls", [
        ConfigError,
        ValidationError,
        NotFoundError,
        DataLoadError,
        LedgerError,
        BudgetError,
        ForecastError,
        DebtSimulationError,
        RebalanceError,
        ScenarioError,
        GoalError,
        NotificationError,
        ReportError,
    ])
    def test_subclasses_base(self, error_cls):
        """Test that every domain error can be caught as BudgetAppError."""
        with pytest.raises(BudgetAppError):
            raise error_cls("failure", details={"id": "x"})

    def test_non_convergence_is_simulation_error(self):
        """Test that hitting the month cap is a debt simulation failure."""
        error = NonConvergenceError("Debts are not paid off", details={"months": 600})
        assert isinstance(error, DebtSimulationError)
        assert "months=600" in str(error)

    def test_validation_reason(self):
        """Test that validation errors expose a re-prompt reason."""
        error = ValidationError("Assigned amount cannot be negative", details={"category": "rent"})
        assert error.reason == "Assigned amount cannot be negative"
        assert str(error) == "Assigned amount cannot be negative (category=rent)"

    def test_raise_from_keeps_cause(self):
        """Test chaining with raise ... from."""
        original = KeyError("id")
        with pytest.raises(DataLoadError) as exc_info:
            try:
                raise original
            except KeyError as exc:
                raise DataLoadError("Invalid record", original_error=exc) from exc
        assert exc_info.value.__cause__ is original
        assert exc_info.value.original_error is original


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
