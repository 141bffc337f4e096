"""
Unified exception hierarchy for the budget calculation core.

BudgetAppError is the base exception so callers can catch every domain
failure in one place. Validation failures are recoverable rejections: the
caller corrects the input and retries, no state is left half-updated.
"""

from typing import Optional


class BudgetAppError(Exception):
    """
    Base exception class for all budget core errors.

    Attributes:
        message: Human-readable error message
        details: Optional dictionary with additional error context
        original_error: Optional original exception that caused this error
    """

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        original_error: Optional[Exception] = None
    ) -> None:
        """
        Initialize BudgetAppError.

        Args:
            message: Human-readable error message
            details: Optional dictionary with additional error context
            original_error: Optional original exception that caused this error
        """
        super().__init__(message)
        self.message = message
        self.details = details or {}
        self.original_error = original_error

    def __str__(self) -> str:
        """Return string representation of the error."""
        msg = self.message
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            msg = f"{msg} ({detail_str})"
        return msg


class ConfigError(BudgetAppError):
    """Raised when configuration loading or validation fails."""
    pass


class ValidationError(BudgetAppError):
    """Raised when an input is rejected (negative assignment, bad window...)."""

    @property
    def reason(self) -> str:
        """Human-readable rejection reason suitable for re-prompting."""
        return self.message


class NotFoundError(BudgetAppError):
    """Raised when a lookup fails and the absence itself must be reported."""
    pass


class DataLoadError(BudgetAppError):
    """Raised when a user-data snapshot cannot be parsed into records."""
    pass


class LedgerError(BudgetAppError):
    """Raised when a write-side ledger operation cannot be applied."""
    pass


class BudgetError(BudgetAppError):
    """Raised when budget selector inputs are inconsistent."""
    pass


class ForecastError(BudgetAppError):
    """Raised when forecasting inputs are unusable."""
    pass


class DebtSimulationError(BudgetAppError):
    """Raised when the debt payoff simulation fails."""
    pass


class NonConvergenceError(DebtSimulationError):
    """Raised when a payoff plan never clears its debts within the month cap."""
    pass


class RebalanceError(BudgetAppError):
    """Raised when rebalance moves cannot be applied or reversed."""
    pass


class ScenarioError(BudgetAppError):
    """Raised when scenario operations fail."""
    pass


class GoalError(BudgetAppError):
    """Raised when a goal operation is not allowed in the goal's state."""
    pass


class NotificationError(BudgetAppError):
    """Raised when notification rules are misconfigured."""
    pass


class ReportError(BudgetAppError):
    """Raised when report generation fails."""
    pass
