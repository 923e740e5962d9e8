"""Pytest configuration and shared fixtures."""

from typing import List, Sequence

import numpy as np
import pandas as pd
import pytest

from arima_backtest.errors import ConvergenceError
from arima_backtest.forecast_engine import ForecastInterval


def make_series(values: Sequence[float], start: str = "2024-01-05", freq: str = "W-FRI") -> pd.Series:
    """Weekly price series from plain values."""
    return pd.Series(
        np.asarray(values, dtype=float),
        index=pd.date_range(start, periods=len(values), freq=freq),
        name="price",
    )


class SpyEngine:
    """
    Naive engine recording every window it is fitted on.

    The "model" is the window itself; the forecast is its last value.
    """

    def __init__(self, fail_on_calls: Sequence[int] = ()):
        self.windows: List[pd.Series] = []
        self.fail_on_calls = set(fail_on_calls)

    def fit(self, window, order):
        self.windows.append(window.copy())
        if len(self.windows) in self.fail_on_calls:
            raise ConvergenceError("forced failure", order=order, window_length=len(window))
        return window

    def forecast(self, model, horizon=1):
        return np.repeat(float(model.iloc[-1]), horizon)

    def forecast_interval(self, model, horizon=1, alpha=0.05):
        mean = self.forecast(model, horizon)
        return ForecastInterval(mean=mean, lower=mean - 1.0, upper=mean + 1.0, alpha=alpha)


@pytest.fixture
def random_walk_prices() -> pd.Series:
    """Seeded weekly random walk around 100."""
    rng = np.random.default_rng(42)
    return make_series(100.0 + np.cumsum(rng.normal(0.0, 1.0, size=120)))


@pytest.fixture
def white_noise() -> pd.Series:
    """Seeded stationary series."""
    rng = np.random.default_rng(7)
    return make_series(rng.normal(0.0, 1.0, size=300))


@pytest.fixture
def small_prices() -> pd.Series:
    """Five-point series used for step-by-step rolling checks."""
    return make_series([100.0, 101.0, 99.0, 102.0, 104.0])


@pytest.fixture
def spy_engine() -> SpyEngine:
    return SpyEngine()
