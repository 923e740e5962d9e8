"""
Error Hierarchy for the ARIMA Forecasting and Strategy Pipeline
===============================================================

Every failure raised by the pipeline derives from ForecastingError and
carries the context (timestamps, window bounds, model order) needed to
reproduce it from the input data alone.

Propagation:
    - InsufficientDataError / InvalidSeriesError abort before forecasting
    - ModelSelectionError aborts before the rolling run
    - ConvergenceError is handled by the configured convergence policy
    - UndefinedSharpeError keeps the already computed partial summary
"""

from __future__ import annotations

from typing import Any, List, Optional


class ForecastingError(Exception):
    """Base class for all pipeline errors."""

    def __init__(self, message: str, **context: Any):
        self.context = {k: v for k, v in context.items() if v is not None}
        self.message = message
        super().__init__(self._render())

    def _render(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} [{details}]"

    def __getattr__(self, name: str) -> Any:
        # Context keys read as attributes (err.timestamp, err.window_length)
        context = self.__dict__.get("context", {})
        if name in context:
            return context[name]
        raise AttributeError(name)


class ConfigurationError(ForecastingError, ValueError):
    """Invalid or unsupported configuration value."""


class InvalidSeriesError(ForecastingError, ValueError):
    """Series violates ordering rules (duplicate, unsorted, look-ahead)."""


class InsufficientDataError(ForecastingError):
    """Window too short for sanitization, testing or model fitting."""


class ModelSelectionError(ForecastingError):
    """Order search found no viable candidate."""


class ConvergenceError(ForecastingError):
    """A specific model fit failed to converge."""


class UndefinedSharpeError(ForecastingError):
    """Strategy returns have zero variance."""

    def __init__(self, message: str, partial_summary: Optional[Any] = None, **context: Any):
        self.partial_summary = partial_summary
        super().__init__(message, **context)


class ForecastCancelledError(ForecastingError):
    """Rolling forecast stopped between steps on request."""

    def __init__(self, message: str, partial_records: Optional[List[Any]] = None, **context: Any):
        self.partial_records = list(partial_records or [])
        super().__init__(message, **context)


__all__ = [
    'ForecastingError',
    'ConfigurationError',
    'InvalidSeriesError',
    'InsufficientDataError',
    'ModelSelectionError',
    'ConvergenceError',
    'UndefinedSharpeError',
    'ForecastCancelledError',
]
