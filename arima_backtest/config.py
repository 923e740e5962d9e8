"""
Configuration Module for the ARIMA Forecasting Strategy

Calendar constants, policy enums and the ForecastConfig dataclass that
carries every recognized pipeline option.

ForecastConfig is frozen and validated on construction; an invalid value
raises ConfigurationError before any data is touched. Options arriving as
plain strings (CLI, JSON) go through ForecastConfig.from_mapping.
"""

from __future__ import annotations

from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from arima_backtest.errors import ConfigurationError


# =============================================================================
# CALENDAR CONSTANTS
# =============================================================================

TRADING_DAYS_YEAR: int = 252      # Standard US equity trading days
TRADING_WEEKS_YEAR: int = 52
MONTHS_YEAR: int = 12

# Largest differencing degree the pipeline will ever apply
MAX_SUPPORTED_DIFFERENCING: int = 2

MONTHLY_RULES = ("M", "ME", "MS", "BM", "BME", "BMS")


def annualization_for_rule(rule: Optional[str]) -> int:
    """Periods per year for a pandas resample rule (daily when unresampled)."""
    if not rule:
        return TRADING_DAYS_YEAR
    base = rule.upper().split("-")[0]
    if base == "W":
        return TRADING_WEEKS_YEAR
    if base in MONTHLY_RULES:
        return MONTHS_YEAR
    return TRADING_DAYS_YEAR


# =============================================================================
# ENUMERATIONS
# =============================================================================

class ConvergencePolicy(Enum):
    """What the rolling forecaster does when a single-step fit fails."""
    ABORT = "abort"                    # Propagate ConvergenceError
    CARRY_FORWARD = "carry-forward"    # Reuse the previous step's prediction


class InformationCriterion(Enum):
    """Score used to rank candidate model orders (lower is better)."""
    AIC = "aic"
    BIC = "bic"


# =============================================================================
# FORECAST CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class ForecastConfig:
    """Recognized options for the forecasting pipeline."""

    # Train/test split
    train_fraction: float = 0.8

    # Model family (non-seasonal only)
    seasonal: bool = False

    # Order search bounds
    max_p: int = 5
    max_q: int = 5
    max_d: int = 1                     # One-shot differencing by default
    max_order: int = 5                 # Bound on p + q
    start_p: int = 2
    start_q: int = 2
    stepwise: bool = True
    information_criterion: InformationCriterion = InformationCriterion.AIC
    n_jobs: int = 1

    # Stationarity
    differencing_significance: float = 0.05

    # Rolling forecast
    convergence_policy: ConvergencePolicy = ConvergencePolicy.ABORT
    progress_every: int = 10
    forecast_alpha: float = 0.05       # 95% intervals

    # Evaluation
    annualization_factor: int = TRADING_DAYS_YEAR

    # Input shaping
    resample_rule: Optional[str] = None  # e.g. "W-FRI" for weekly closes

    def __post_init__(self) -> None:
        if not 0.0 < self.train_fraction < 1.0:
            raise ConfigurationError(
                "train_fraction must lie strictly between 0 and 1",
                train_fraction=self.train_fraction,
            )
        if self.seasonal:
            raise ConfigurationError("Seasonal ARIMA models are not supported", seasonal=True)

        for name in ("max_p", "max_q", "max_d", "max_order", "start_p", "start_q"):
            if getattr(self, name) < 0:
                raise ConfigurationError(f"{name} must be non-negative", **{name: getattr(self, name)})

        if self.max_d > MAX_SUPPORTED_DIFFERENCING:
            raise ConfigurationError(
                f"max_d above {MAX_SUPPORTED_DIFFERENCING} is not supported",
                max_d=self.max_d,
            )
        if self.start_p > self.max_p or self.start_q > self.max_q:
            raise ConfigurationError(
                "Stepwise start order exceeds the search bounds",
                start_p=self.start_p, start_q=self.start_q,
                max_p=self.max_p, max_q=self.max_q,
            )
        if not 0.0 < self.differencing_significance < 1.0:
            raise ConfigurationError(
                "differencing_significance must lie strictly between 0 and 1",
                differencing_significance=self.differencing_significance,
            )
        if not 0.0 < self.forecast_alpha < 1.0:
            raise ConfigurationError("forecast_alpha must lie strictly between 0 and 1",
                                     forecast_alpha=self.forecast_alpha)
        if self.annualization_factor < 1:
            raise ConfigurationError("annualization_factor must be at least 1",
                                     annualization_factor=self.annualization_factor)
        if self.n_jobs < 1:
            raise ConfigurationError("n_jobs must be at least 1", n_jobs=self.n_jobs)
        if self.progress_every < 1:
            raise ConfigurationError("progress_every must be at least 1",
                                     progress_every=self.progress_every)

    @classmethod
    def from_mapping(cls, values: Mapping[str, Any]) -> "ForecastConfig":
        """
        Build a configuration from a plain mapping.

        Enum-valued options accept either the enum member or its string
        value. Unknown keys are rejected.
        """
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ConfigurationError(f"Unknown configuration keys: {', '.join(unknown)}")

        kwargs: Dict[str, Any] = dict(values)
        try:
            if "convergence_policy" in kwargs:
                kwargs["convergence_policy"] = ConvergencePolicy(kwargs["convergence_policy"])
            if "information_criterion" in kwargs:
                kwargs["information_criterion"] = InformationCriterion(
                    str(getattr(kwargs["information_criterion"], "value",
                                kwargs["information_criterion"])).lower()
                )
        except ValueError as e:
            raise ConfigurationError(str(e)) from e

        return cls(**kwargs)

    def with_overrides(self, **overrides: Any) -> "ForecastConfig":
        """Return a copy with the given options replaced."""
        return replace(self, **overrides)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            out[f.name] = value.value if isinstance(value, Enum) else value
        return out


# =============================================================================
# GLOBAL CONFIGURATION INSTANCES
# =============================================================================

DEFAULT_CONFIG = ForecastConfig()


__all__ = [
    'TRADING_DAYS_YEAR',
    'TRADING_WEEKS_YEAR',
    'MONTHS_YEAR',
    'MAX_SUPPORTED_DIFFERENCING',
    'annualization_for_rule',
    'ConvergencePolicy',
    'InformationCriterion',
    'ForecastConfig',
    'DEFAULT_CONFIG',
]
