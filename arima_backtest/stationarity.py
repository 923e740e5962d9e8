"""
Stationarity Testing and Differencing Arithmetic
================================================

Augmented Dickey-Fuller unit-root testing drives the differencing degree d
of the ARIMA model:

    H0: series has a unit root (non-stationary)
    p_value < significance  =>  reject H0, series treated as stationary

The minimum degree that achieves stationarity, bounded by max_d, becomes d.
With the default bound of 1 this reproduces the test-once, difference-once
procedure; a series that still fails the test at the bound keeps d = max_d
and the decision is flagged with reached_bound.

Differencing / integration
--------------------------
    difference(x, d)         d-fold first differences, length n - d
    integrate(dx, anchors)   inverse of one differenced segment, given the
                             value preceding it at every differencing level
    undifference(dx, head)   full inverse: head = the first d original values

Reference:
    Dickey, D.A. & Fuller, W.A. (1979). "Distribution of the Estimators for
    Autoregressive Time Series with a Unit Root." JASA, 74(366).
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from numpy.linalg import LinAlgError
from statsmodels.tsa.stattools import adfuller

from arima_backtest.errors import InsufficientDataError, InvalidSeriesError

logger = logging.getLogger(__name__)

ArrayLike = Union[np.ndarray, pd.Series, Sequence[float]]

# adfuller needs room for the lagged regression
MIN_ADF_OBSERVATIONS: int = 10


# =============================================================================
# DIFFERENCING ARITHMETIC
# =============================================================================

def difference(values: ArrayLike, d: int = 1) -> np.ndarray:
    """Apply first differencing d times, dropping the undefined leading entries."""
    arr = np.asarray(values, dtype=float)
    if d < 0:
        raise ValueError("Differencing degree must be non-negative")
    if d == 0:
        return arr.copy()
    if len(arr) <= d:
        raise InsufficientDataError(
            f"Cannot difference {len(arr)} values {d} time(s)",
            window_length=len(arr), d=d,
        )
    return np.diff(arr, n=d)


def last_anchors(values: ArrayLike, d: int) -> List[float]:
    """
    Last value of the series at each differencing level 0..d-1.

    These are the anchors needed to integrate a forecast made on the
    d-times differenced scale back to the original scale.
    """
    arr = np.asarray(values, dtype=float)
    return [float(np.diff(arr, n=k)[-1]) if k else float(arr[-1]) for k in range(d)]


def integrate(diffed: ArrayLike, anchors: Sequence[float]) -> np.ndarray:
    """
    Invert d-fold differencing for a segment.

    anchors[k] is the value of the k-times differenced series immediately
    before the segment starts; len(anchors) is the degree d.
    """
    out = np.asarray(diffed, dtype=float).copy()
    for k in reversed(range(len(anchors))):
        out = anchors[k] + np.cumsum(out)
    return out


def undifference(diffed: ArrayLike, head: ArrayLike) -> np.ndarray:
    """
    Rebuild the original series from its d-fold differences and its first
    d values (d = len(head)).
    """
    head = np.asarray(head, dtype=float)
    d = len(head)
    if d == 0:
        return np.asarray(diffed, dtype=float).copy()

    # Anchor at level k is the last head value of the k-times differenced head
    anchors = [float(np.diff(head, n=k)[-1]) if k else float(head[-1]) for k in range(d)]
    return np.concatenate([head, integrate(diffed, anchors)])


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class StationarityResult:
    """Outcome of one augmented Dickey-Fuller test."""
    statistic: float
    p_value: float
    lags_used: int
    n_obs: int
    critical_values: Dict[str, float]
    significance: float
    d: int = 0

    @property
    def is_stationary(self) -> bool:
        return self.p_value < self.significance


@dataclass(frozen=True)
class DifferencingDecision:
    """Minimum differencing degree found and the tests that led to it."""
    d: int
    results: List[StationarityResult] = field(default_factory=list)
    reached_bound: bool = False

    @property
    def is_stationary(self) -> bool:
        return bool(self.results) and self.results[-1].is_stationary

    @property
    def p_values(self) -> List[float]:
        return [r.p_value for r in self.results]


# =============================================================================
# STATIONARITY TESTER
# =============================================================================

class StationarityTester:
    """
    ADF unit-root tester and differencing-degree search.

    Usage:
        tester = StationarityTester(significance=0.05)
        p = tester.test(train)
        decision = tester.determine_differencing(train, max_d=1)
    """

    def __init__(self, significance: float = 0.05, autolag: Optional[str] = 'AIC'):
        self.significance = significance
        self.autolag = autolag

    def test(self, series: ArrayLike) -> float:
        """Return the ADF p-value of the series."""
        return self.run(series).p_value

    def is_stationary(self, series: ArrayLike) -> bool:
        return self.run(series).is_stationary

    def run(self, series: ArrayLike, d: int = 0) -> StationarityResult:
        """Run the ADF test and return the full result."""
        values = np.asarray(series, dtype=float)
        n = len(values)
        if not np.all(np.isfinite(values)):
            raise InvalidSeriesError("Series contains missing or non-finite values",
                                     window_length=n, d=d)

        if n < MIN_ADF_OBSERVATIONS:
            raise InsufficientDataError(
                f"Need at least {MIN_ADF_OBSERVATIONS} observations for the ADF test",
                window_length=n, d=d,
            )

        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                adf_result = adfuller(values, autolag=self.autolag)
        except (ValueError, LinAlgError) as e:
            raise InsufficientDataError(
                f"ADF test could not run: {e}", window_length=n, d=d,
            ) from e

        result = StationarityResult(
            statistic=float(adf_result[0]),
            p_value=float(adf_result[1]),
            lags_used=int(adf_result[2]),
            n_obs=int(adf_result[3]),
            critical_values={k: float(v) for k, v in adf_result[4].items()},
            significance=self.significance,
            d=d,
        )
        logger.debug(f"ADF d={d}: stat={result.statistic:.3f}, p={result.p_value:.4f}")
        return result

    def determine_differencing(self, series: ArrayLike, max_d: int = 1) -> DifferencingDecision:
        """
        Find the minimum d in 0..max_d for which the differenced series
        passes the ADF test.

        The search stops at max_d. If the series is still non-stationary
        there, d = max_d is returned with reached_bound set.
        """
        values = np.asarray(series, dtype=float)
        results: List[StationarityResult] = []

        for d in range(max_d + 1):
            result = self.run(difference(values, d), d=d)
            results.append(result)
            if result.is_stationary:
                logger.info(f"Stationary at d={d} (ADF p={result.p_value:.4f})")
                return DifferencingDecision(d=d, results=results, reached_bound=False)

        logger.warning(
            f"Series still non-stationary at max_d={max_d} "
            f"(ADF p={results[-1].p_value:.4f}); using d={max_d}"
        )
        return DifferencingDecision(d=max_d, results=results, reached_bound=True)


__all__ = [
    'MIN_ADF_OBSERVATIONS',
    'difference',
    'last_anchors',
    'integrate',
    'undifference',
    'StationarityResult',
    'DifferencingDecision',
    'StationarityTester',
]
