"""
Engine exceptions.

Only insufficient-data, no-valid-model and cancellation conditions are meant
to reach callers; everything else is recovered inside the engine.
"""

from typing import Any, Dict, Optional


class AnalyticsError(Exception):
    """Base exception for all engine errors."""

    def __init__(
        self,
        message: str,
        code: str = "ANALYTICS_ERROR",
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(self.message)


class InsufficientDataError(AnalyticsError):
    """Raised when a series is too short (or every fold failed) to produce a result."""

    def __init__(
        self,
        message: str = "Insufficient data",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="INSUFFICIENT_DATA",
            details=details
        )


class NoValidModelError(AnalyticsError):
    """Raised when no candidate model produced a usable score."""

    def __init__(
        self,
        message: str = "No valid model",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="NO_VALID_MODEL",
            details=details
        )


class ForecastError(AnalyticsError):
    """Raised by a forecast model that cannot fit or produced non-finite output."""

    def __init__(
        self,
        message: str = "Forecast failed",
        details: Optional[Dict[str, Any]] = None
    ):
        super().__init__(
            message=message,
            code="FORECAST_FAILED",
            details=details
        )


class FormulaSyntaxError(AnalyticsError):
    """Raised when a formula expression cannot be parsed."""

    def __init__(self, message: str = "Invalid formula", position: Optional[int] = None):
        super().__init__(
            message=message,
            code="FORMULA_SYNTAX",
            details={'position': position} if position is not None else None
        )
        self.position = position


class OperationCancelledError(AnalyticsError):
    """Raised at a loop boundary once the caller cancelled the run."""

    def __init__(self, message: str = "Operation cancelled"):
        super().__init__(message=message, code="CANCELLED")
