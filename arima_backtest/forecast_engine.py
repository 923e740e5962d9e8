"""
ARIMA Forecast Engine
=====================

Fits ARIMA(p, d, q) to one window and forecasts ahead on the price scale.

NUMERIC SEMANTICS
-----------------
    1. Difference the window d times:      w_d = Δ^d w
    2. Fit ARMA(p, q) to w_d by exact maximum likelihood (constant only
       when d = 0)
    3. Forecast w_d h steps ahead
    4. Integrate back with the last value of every differencing level:
       the caller always receives prices, never differences

Forecast intervals follow the MA(∞) representation of the integrated
process:

    ψ_int = cumsum^d(ψ_ARMA)
    Var(e_{t+h}) = σ² Σ_{j<h} ψ_int[j]²

A FittedModel is created for one window, used for one forecast and then
discarded. It holds no reference back to the window it was fitted on.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.tsa.arima_process import arma2ma

from arima_backtest.errors import ConvergenceError, InsufficientDataError
from arima_backtest.order_selection import ModelOrder, fit_arima_results, min_observations
from arima_backtest.stationarity import difference, integrate, last_anchors

logger = logging.getLogger(__name__)


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class FittedModel:
    """An ARIMA fit bound to one window. Supports forecasting only."""
    order: ModelOrder
    results: object                      # statsmodels ARIMAResults on Δ^d window
    anchors: Tuple[float, ...]           # last value at each differencing level
    n_obs: int
    window_end: Optional[pd.Timestamp] = None

    @property
    def aic(self) -> float:
        return float(self.results.aic)

    @property
    def sigma2(self) -> float:
        names = list(self.results.model.param_names)
        return float(np.asarray(self.results.params)[names.index('sigma2')])


@dataclass(frozen=True)
class ForecastInterval:
    """Point forecasts with symmetric normal intervals on the price scale."""
    mean: np.ndarray
    lower: np.ndarray
    upper: np.ndarray
    alpha: float


# =============================================================================
# FORECAST ENGINE
# =============================================================================

class ForecastEngine:
    """
    Stateless ARIMA fitter/forecaster.

    Usage:
        engine = ForecastEngine()
        model = engine.fit(window, ModelOrder(1, 1, 0))
        next_price = engine.forecast(model, horizon=1)[0]
    """

    def fit(self, window, order: ModelOrder) -> FittedModel:
        """
        Fit the order to the window.

        Raises:
            InsufficientDataError: window shorter than the order requires
            ConvergenceError: maximum likelihood did not converge
        """
        values = np.asarray(window, dtype=float)
        window_end = window.index[-1] if isinstance(window, pd.Series) and len(window) else None

        if len(values) < min_observations(order):
            raise InsufficientDataError(
                f"{order} needs at least {min_observations(order)} observations",
                window_length=len(values), window_end=window_end, order=order,
            )

        diffed = difference(values, order.d)

        try:
            results = fit_arima_results(diffed, (order.p, 0, order.q), order.trend)
        except ConvergenceError as e:
            raise ConvergenceError(
                e.message, order=order, window_length=len(values), window_end=window_end,
            ) from e

        return FittedModel(
            order=order,
            results=results,
            anchors=tuple(last_anchors(values, order.d)),
            n_obs=len(values),
            window_end=window_end,
        )

    def forecast(self, model: FittedModel, horizon: int = 1) -> np.ndarray:
        """Point forecasts for the next `horizon` steps, on the price scale."""
        self._check_horizon(horizon)
        diffed_forecast = np.asarray(model.results.forecast(steps=horizon), dtype=float)
        return integrate(diffed_forecast, model.anchors)

    def forecast_interval(
        self,
        model: FittedModel,
        horizon: int = 1,
        alpha: float = 0.05,
    ) -> ForecastInterval:
        """Point forecasts with (1 - alpha) intervals on the price scale."""
        self._check_horizon(horizon)
        mean = self.forecast(model, horizon)

        ar = np.r_[1.0, -np.asarray(model.results.arparams, dtype=float)]
        ma = np.r_[1.0, np.asarray(model.results.maparams, dtype=float)]
        psi = arma2ma(ar, ma, lags=horizon)
        for _ in range(model.order.d):
            psi = np.cumsum(psi)

        std_err = np.sqrt(model.sigma2 * np.cumsum(psi ** 2))
        z = stats.norm.ppf(1 - alpha / 2)

        return ForecastInterval(
            mean=mean,
            lower=mean - z * std_err,
            upper=mean + z * std_err,
            alpha=alpha,
        )

    @staticmethod
    def _check_horizon(horizon: int) -> None:
        if int(horizon) != horizon or horizon < 1:
            raise ValueError(f"Forecast horizon must be a positive integer, got {horizon}")


__all__ = [
    'FittedModel',
    'ForecastInterval',
    'ForecastEngine',
]
