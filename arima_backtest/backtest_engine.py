#!/usr/bin/env python3
"""
Strategy Evaluation Engine
==========================

Performance and risk measurement for the forecast-driven directional
strategy and its buy-and-hold benchmark.

METRICS DELIVERED
-----------------
    1. Cumulative return     cum[i] = cum[i-1] * (1 + r[i]),  cum[-1] = 1
    2. Drawdown              cum[i] / max(1, max(cum[0..i])) - 1   (always <= 0)
    3. Maximum drawdown      min(drawdown)
    4. Sharpe ratio          mean(r) * A / (std(r) * sqrt(A))
    + Total return, annualized volatility, hit rate, forecast accuracy

The benchmark holds the asset every period (signal always +1), so its
returns are the actual returns.

Risk Metrics:
    Sharpe, W.F. (1994). "The Sharpe Ratio." Journal of Portfolio Management.

ARCHITECTURE
------------
    Layer 1: Metrics Calculators
        - ReturnCalculator: cumulative and total return
        - RiskCalculator: drawdown series, maximum drawdown, volatility
        - RiskAdjustedCalculator: annualized Sharpe ratio
        - AccuracyCalculator: RMSE, MAE, MAPE, directional accuracy

    Layer 2: Evaluation
        - StrategyEvaluator: PerformanceSummary from SignalRecords

    Layer 3: Output
        - format_performance_report: human-readable text
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd

from arima_backtest.config import TRADING_DAYS_YEAR
from arima_backtest.errors import InsufficientDataError, UndefinedSharpeError
from arima_backtest.rolling_forecaster import ForecastRecord
from arima_backtest.signals import SignalRecord

logger = logging.getLogger(__name__)

# Standard deviations at or below this are treated as zero
ZERO_VOLATILITY_TOLERANCE: float = 1e-12


# =============================================================================
# SECTION 1: DATA STRUCTURES
# =============================================================================

@dataclass
class PerformanceSummary:
    """
    Strategy vs benchmark performance.

    sharpe_ratio is None when the strategy returns have zero variance;
    every other field is still valid in that case.
    """
    strategy_returns: pd.Series
    benchmark_returns: pd.Series
    strategy_cumulative: pd.Series
    benchmark_cumulative: pd.Series
    strategy_drawdown: pd.Series
    benchmark_drawdown: pd.Series
    strategy_max_drawdown: float
    benchmark_max_drawdown: float
    sharpe_ratio: Optional[float]
    annualization_factor: int = TRADING_DAYS_YEAR

    # Additional statistics
    strategy_total_return: float = 0.0
    benchmark_total_return: float = 0.0
    strategy_volatility: float = 0.0
    benchmark_volatility: float = 0.0
    benchmark_sharpe_ratio: Optional[float] = None
    hit_rate: float = 0.0
    long_periods: int = 0
    short_periods: int = 0

    @property
    def n_periods(self) -> int:
        return len(self.strategy_returns)

    @property
    def excess_return(self) -> float:
        return self.strategy_total_return - self.benchmark_total_return

    @property
    def sharpe_defined(self) -> bool:
        return self.sharpe_ratio is not None


@dataclass(frozen=True)
class ForecastAccuracy:
    """Point-forecast error statistics over the test horizon."""
    rmse: float
    mae: float
    mape: float
    directional_accuracy: float
    n: int


# =============================================================================
# SECTION 2: RETURN CALCULATOR
# =============================================================================

class ReturnCalculator:
    """Compounded return metrics."""

    @staticmethod
    def cumulative(returns: pd.Series) -> pd.Series:
        """cum[i] = cum[i-1] * (1 + r[i]) starting from 1 before the first period."""
        return (1.0 + returns).cumprod()

    @staticmethod
    def total_return(cumulative: pd.Series) -> float:
        if len(cumulative) == 0:
            return 0.0
        return float(cumulative.iloc[-1] - 1.0)


# =============================================================================
# SECTION 3: RISK CALCULATOR
# =============================================================================

class RiskCalculator:
    """
    Drawdown and volatility.

    Maximum Drawdown Formula:
        DD = (Current - Running Peak) / Running Peak
        Max DD = min(all drawdowns)

    The running peak is floored at 1, the value before the first period.
    """

    @staticmethod
    def calculate_drawdown_series(cumulative: pd.Series) -> pd.Series:
        running_max = cumulative.cummax().clip(lower=1.0)
        return cumulative / running_max - 1.0

    @staticmethod
    def max_drawdown(drawdown: pd.Series) -> float:
        """Most negative drawdown (0 for an empty series)."""
        if len(drawdown) == 0:
            return 0.0
        return float(drawdown.min())

    @staticmethod
    def annual_volatility(returns: pd.Series, annualization_factor: int) -> float:
        if len(returns) < 2:
            return 0.0
        return float(returns.std(ddof=1) * np.sqrt(annualization_factor))


# =============================================================================
# SECTION 4: RISK-ADJUSTED CALCULATOR
# =============================================================================

class RiskAdjustedCalculator:
    """
    Annualized Sharpe ratio without a risk-free rate:

        SR = mean(r) * A / (std(r) * sqrt(A))

    std is the sample standard deviation (ddof=1).
    """

    @staticmethod
    def sharpe_ratio(returns: pd.Series, annualization_factor: int = TRADING_DAYS_YEAR) -> float:
        """
        Raises:
            UndefinedSharpeError: fewer than two returns or zero volatility
        """
        context = {}
        if len(returns) > 0 and isinstance(returns.index, pd.DatetimeIndex):
            context = {'window_start': returns.index[0], 'window_end': returns.index[-1]}

        if len(returns) < 2:
            raise UndefinedSharpeError(
                "Sharpe ratio needs at least two returns",
                window_length=len(returns), **context,
            )

        std = float(returns.std(ddof=1))
        if not np.isfinite(std) or std <= ZERO_VOLATILITY_TOLERANCE:
            raise UndefinedSharpeError(
                "Sharpe ratio undefined: returns have zero standard deviation",
                window_length=len(returns), **context,
            )

        mean = float(returns.mean())
        return (mean * annualization_factor) / (std * np.sqrt(annualization_factor))


# =============================================================================
# SECTION 5: ACCURACY CALCULATOR
# =============================================================================

class AccuracyCalculator:
    """Forecast error statistics from ForecastRecords."""

    @staticmethod
    def calculate(records: Sequence[ForecastRecord]) -> ForecastAccuracy:
        actual = np.array([r.actual for r in records], dtype=float)
        predicted = np.array([r.predicted for r in records], dtype=float)
        n = len(actual)

        if n == 0:
            return ForecastAccuracy(rmse=0.0, mae=0.0, mape=0.0, directional_accuracy=0.0, n=0)

        errors = predicted - actual
        rmse = float(np.sqrt(np.mean(errors ** 2)))
        mae = float(np.mean(np.abs(errors)))

        nonzero = actual != 0
        mape = float(np.mean(np.abs(errors[nonzero] / actual[nonzero]))) if nonzero.any() else 0.0

        # Direction of forecast vs previous actual, as seen at forecast time
        if n > 1:
            predicted_move = np.sign(predicted[1:] - actual[:-1])
            actual_move = np.sign(actual[1:] - actual[:-1])
            directional = float(np.mean(predicted_move == actual_move))
        else:
            directional = 0.0

        return ForecastAccuracy(rmse=rmse, mae=mae, mape=mape, directional_accuracy=directional, n=n)


# =============================================================================
# SECTION 6: STRATEGY EVALUATOR
# =============================================================================

class StrategyEvaluator:
    """
    Builds the PerformanceSummary for strategy and benchmark.

    Usage:
        evaluator = StrategyEvaluator(annualization_factor=252)
        try:
            summary = evaluator.evaluate(signal_records)
        except UndefinedSharpeError as e:
            summary = e.partial_summary
    """

    def __init__(self, annualization_factor: int = TRADING_DAYS_YEAR):
        self.annualization_factor = annualization_factor

    def evaluate(self, records: Sequence[SignalRecord]) -> PerformanceSummary:
        """
        Raises:
            InsufficientDataError: no signal records
            UndefinedSharpeError: zero-variance strategy returns; the
                exception's partial_summary holds every other metric
        """
        if len(records) == 0:
            raise InsufficientDataError("No signal records to evaluate", window_length=0)

        index = pd.DatetimeIndex([r.timestamp for r in records], name='timestamp')
        strategy_returns = pd.Series([r.strategy_return for r in records], index=index, name='strategy')
        benchmark_returns = pd.Series([r.actual_return for r in records], index=index, name='benchmark')

        strategy_cum = ReturnCalculator.cumulative(strategy_returns)
        benchmark_cum = ReturnCalculator.cumulative(benchmark_returns)
        strategy_dd = RiskCalculator.calculate_drawdown_series(strategy_cum)
        benchmark_dd = RiskCalculator.calculate_drawdown_series(benchmark_cum)

        a = self.annualization_factor
        summary = PerformanceSummary(
            strategy_returns=strategy_returns,
            benchmark_returns=benchmark_returns,
            strategy_cumulative=strategy_cum,
            benchmark_cumulative=benchmark_cum,
            strategy_drawdown=strategy_dd,
            benchmark_drawdown=benchmark_dd,
            strategy_max_drawdown=RiskCalculator.max_drawdown(strategy_dd),
            benchmark_max_drawdown=RiskCalculator.max_drawdown(benchmark_dd),
            sharpe_ratio=None,
            annualization_factor=a,
            strategy_total_return=ReturnCalculator.total_return(strategy_cum),
            benchmark_total_return=ReturnCalculator.total_return(benchmark_cum),
            strategy_volatility=RiskCalculator.annual_volatility(strategy_returns, a),
            benchmark_volatility=RiskCalculator.annual_volatility(benchmark_returns, a),
            benchmark_sharpe_ratio=self._optional_sharpe(benchmark_returns),
            hit_rate=sum(1 for r in records if r.is_hit) / len(records),
            long_periods=sum(1 for r in records if r.signal > 0),
            short_periods=sum(1 for r in records if r.signal < 0),
        )

        try:
            summary.sharpe_ratio = RiskAdjustedCalculator.sharpe_ratio(strategy_returns, a)
        except UndefinedSharpeError as e:
            raise UndefinedSharpeError(e.message, partial_summary=summary, **e.context) from e

        return summary

    def _optional_sharpe(self, returns: pd.Series) -> Optional[float]:
        try:
            return RiskAdjustedCalculator.sharpe_ratio(returns, self.annualization_factor)
        except UndefinedSharpeError:
            logger.debug("Benchmark Sharpe ratio undefined")
            return None


# =============================================================================
# SECTION 7: OUTPUT FORMATTING
# =============================================================================

def format_performance_report(
    summary: PerformanceSummary,
    accuracy: Optional[ForecastAccuracy] = None,
    title: str = "STRATEGY PERFORMANCE REPORT",
) -> str:
    """Format a PerformanceSummary as a human-readable text report."""
    sharpe = f"{summary.sharpe_ratio:.3f}" if summary.sharpe_ratio is not None else "undefined"
    bench_sharpe = (f"{summary.benchmark_sharpe_ratio:.3f}"
                    if summary.benchmark_sharpe_ratio is not None else "undefined")

    lines = [
        "=" * 70,
        title,
        "=" * 70,
        f"Periods:             {summary.n_periods} "
        f"({summary.long_periods} long / {summary.short_periods} short)",
        f"Annualization:       {summary.annualization_factor}",
        "",
        "-" * 70,
        "KEY METRICS                    STRATEGY      BUY & HOLD",
        "-" * 70,
        f"  Total Return:      {summary.strategy_total_return:>+18.2%} {summary.benchmark_total_return:>+15.2%}",
        f"  Max Drawdown:      {summary.strategy_max_drawdown:>18.2%} {summary.benchmark_max_drawdown:>15.2%}",
        f"  Annual Volatility: {summary.strategy_volatility:>18.2%} {summary.benchmark_volatility:>15.2%}",
        f"  Sharpe Ratio:      {sharpe:>18} {bench_sharpe:>15}",
        "",
        f"Excess Return:       {summary.excess_return:+.2%}",
        f"Hit Rate:            {summary.hit_rate:.1%}",
    ]

    if accuracy is not None and accuracy.n > 0:
        lines.extend([
            "",
            "-" * 70,
            "FORECAST ACCURACY",
            "-" * 70,
            f"RMSE:                {accuracy.rmse:.4f}",
            f"MAE:                 {accuracy.mae:.4f}",
            f"MAPE:                {accuracy.mape:.2%}",
            f"Direction Accuracy:  {accuracy.directional_accuracy:.1%}",
        ])

    lines.append("=" * 70)
    return "\n".join(lines)


# =============================================================================
# SECTION 8: MODULE EXPORTS
# =============================================================================

__all__ = [
    'ZERO_VOLATILITY_TOLERANCE',
    'PerformanceSummary',
    'ForecastAccuracy',
    'ReturnCalculator',
    'RiskCalculator',
    'RiskAdjustedCalculator',
    'AccuracyCalculator',
    'StrategyEvaluator',
    'format_performance_report',
]
