"""
Context Engine - Core Error Types

Defines the exception hierarchy and warning records for the context engine.
All exceptions inherit from ContextEngineError for consistent error handling.

Runtime failures (unavailable upstream data, strategy errors, budget overruns)
are absorbed by the engine and surfaced as EngineWarning records on results.
Only configuration errors raise out of the public API.
"""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorCode(str, Enum):
    """
    Standard error codes for engine diagnostics.

    Used both on raised exceptions and on collected warnings.
    """

    # Upstream collaborators
    DATA_UNAVAILABLE = "DATA_UNAVAILABLE"

    # Budget errors
    BUDGET_OVERRUN = "BUDGET_OVERRUN"

    # Optimization errors
    STRATEGY_FAILURE = "STRATEGY_FAILURE"

    # Cache (expected control path, never raised)
    CACHE_MISS = "CACHE_MISS"

    # Input validation errors
    INVALID_INPUT = "INVALID_INPUT"

    # Startup errors
    CONFIGURATION_ERROR = "CONFIGURATION_ERROR"

    # Internal errors
    INTERNAL_ERROR = "INTERNAL_ERROR"


class ContextEngineError(Exception):
    """Base exception for all context engine errors."""

    code: ErrorCode = ErrorCode.INTERNAL_ERROR

    def __init__(
        self,
        message: str,
        details: dict[str, Any] | None = None,
        code: ErrorCode | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.details = details or {}
        if code is not None:
            self.code = code

    def to_dict(self) -> dict[str, Any]:
        """Convert exception to dictionary for diagnostics."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "message": self.message,
            "details": self.details,
        }

    def to_warning(self) -> "EngineWarning":
        """Downgrade the exception into a collected warning."""
        return EngineWarning(code=self.code, message=self.message, details=self.details)


class ConfigurationError(ContextEngineError):
    """Raised when configuration is invalid or missing."""

    code = ErrorCode.CONFIGURATION_ERROR


class DataUnavailableError(ContextEngineError):
    """Raised by fetch wrappers when an upstream collaborator fails."""

    code = ErrorCode.DATA_UNAVAILABLE

    def __init__(self, source: str, details: dict[str, Any] | None = None):
        message = f"Upstream data unavailable: {source}"
        super().__init__(message, {"source": source, **(details or {})})


class BudgetOverrunError(ContextEngineError):
    """Allocation or optimization output exceeds the total token budget."""

    code = ErrorCode.BUDGET_OVERRUN

    def __init__(self, allocated: int, budget: int, details: dict[str, Any] | None = None):
        message = f"Allocated {allocated} tokens exceeds budget of {budget}"
        super().__init__(message, {"allocated": allocated, "budget": budget, **(details or {})})


class StrategyFailureError(ContextEngineError):
    """An optimization strategy raised while transforming a snapshot."""

    code = ErrorCode.STRATEGY_FAILURE

    def __init__(self, strategy: str, error: Exception):
        message = f"Optimization strategy '{strategy}' failed: {error}"
        super().__init__(message, {"strategy": strategy, "error_type": type(error).__name__})


class EngineWarning(BaseModel):
    """Diagnostic record collected instead of raising."""

    model_config = ConfigDict(frozen=True)

    code: ErrorCode = Field(description="Error taxonomy code")
    message: str = Field(description="Human readable description")
    details: dict[str, Any] = Field(default_factory=dict, description="Structured context")
