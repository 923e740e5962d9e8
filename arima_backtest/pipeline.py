"""
ARIMA Forecast Strategy Pipeline

Orchestrates the complete run on one price series.

PIPELINE ARCHITECTURE
    Stage 1 - SANITIZE
        Validate ordering, optional resampling, forward-fill gaps.

    Stage 2 - SPLIT
        Chronological train/test split at train_fraction.

    Stage 3 - IDENTIFY (training window only)
        ADF-driven differencing degree, then information-criterion order
        search with d fixed.

    Stage 4 - FORECAST
        Expanding-window one-step-ahead forecasts over the test horizon with
        the selected order held fixed.

    Stage 5 - SIGNAL
        Forecast direction -> long/short signal per period.

    Stage 6 - EVALUATE
        Strategy vs buy-and-hold: cumulative returns, drawdowns, Sharpe,
        forecast accuracy.

Sanitization, split and identification errors abort before any forecasting.
An undefined Sharpe ratio is logged and the remaining metrics are kept.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import List, Optional

import pandas as pd

from arima_backtest.backtest_engine import (
    AccuracyCalculator,
    ForecastAccuracy,
    PerformanceSummary,
    StrategyEvaluator,
    format_performance_report,
)
from arima_backtest.config import ForecastConfig
from arima_backtest.data_collector import (
    SanitizationReport,
    SeriesSanitizer,
    resample_prices,
    split_train_test,
    validate_price_series,
)
from arima_backtest.errors import UndefinedSharpeError
from arima_backtest.forecast_engine import ForecastEngine
from arima_backtest.order_selection import OrderSelector, SelectionResult
from arima_backtest.rolling_forecaster import (
    ForecastObserver,
    LoggingProgressObserver,
    RollingForecaster,
    RollingForecastResult,
)
from arima_backtest.signals import SignalGenerator, SignalRecord
from arima_backtest.stationarity import DifferencingDecision, StationarityTester

logger = logging.getLogger(__name__)

PIPELINE_VERSION: str = "1.0.0"


# =============================================================================
# PIPELINE OUTPUT
# =============================================================================

@dataclass
class PipelineResult:
    """Everything a presentation layer needs, read-only by convention."""
    symbol: str
    config: ForecastConfig
    prices: pd.Series
    train: pd.Series
    test: pd.Series
    sanitization: SanitizationReport
    differencing: DifferencingDecision
    selection: SelectionResult
    forecasts: RollingForecastResult
    signals: List[SignalRecord]
    performance: PerformanceSummary
    accuracy: ForecastAccuracy
    sharpe_error: Optional[str] = None
    processing_time_ms: float = 0.0
    version: str = PIPELINE_VERSION

    @property
    def order(self):
        return self.selection.order


# =============================================================================
# PIPELINE
# =============================================================================

class ForecastPipeline:
    """
    Complete forecasting and evaluation pipeline.

    Usage:
        pipeline = ForecastPipeline(ForecastConfig(train_fraction=0.8))
        result = pipeline.run(prices, symbol='SPY')
        print(format_pipeline_report(result))
    """

    def __init__(
        self,
        config: Optional[ForecastConfig] = None,
        engine: Optional[ForecastEngine] = None,
        observer: Optional[ForecastObserver] = None,
        cancel_event=None,
    ):
        self.config = config or ForecastConfig()

        # Components
        self.sanitizer = SeriesSanitizer()
        self.tester = StationarityTester(self.config.differencing_significance)
        self.selector = OrderSelector.from_config(self.config)
        self.forecaster = RollingForecaster(
            engine=engine or ForecastEngine(),
            policy=self.config.convergence_policy,
            observer=observer or LoggingProgressObserver(self.config.progress_every),
            cancel_event=cancel_event,
            alpha=self.config.forecast_alpha,
        )
        self.signal_generator = SignalGenerator()
        self.evaluator = StrategyEvaluator(self.config.annualization_factor)

    def run(self, prices: pd.Series, symbol: str = "UNKNOWN") -> PipelineResult:
        t0 = time.perf_counter()
        cfg = self.config

        # =====================================================================
        # STAGE 1: SANITIZE
        # =====================================================================
        logger.info(f"Stage 1: Sanitizing {len(prices)} records for {symbol}...")

        series = validate_price_series(prices, name=symbol)
        if cfg.resample_rule:
            series = resample_prices(series, cfg.resample_rule)
        series, sanitization = self.sanitizer.sanitize_with_report(series)

        # =====================================================================
        # STAGE 2: SPLIT
        # =====================================================================
        train, test = split_train_test(series, cfg.train_fraction)
        logger.info(f"Stage 2: {len(train)} train / {len(test)} test records "
                    f"(split at {test.index[0]:%Y-%m-%d})")

        # =====================================================================
        # STAGE 3: IDENTIFY
        # =====================================================================
        logger.info("Stage 3: Identifying model order on the training window...")

        differencing = self.tester.determine_differencing(train, cfg.max_d)
        selection = self.selector.search(train, d=differencing.d)

        # =====================================================================
        # STAGE 4: FORECAST
        # =====================================================================
        logger.info(f"Stage 4: Rolling forecast with {selection.order}...")

        forecasts = self.forecaster.run(train, test, selection.order)

        # =====================================================================
        # STAGE 5: SIGNAL
        # =====================================================================
        logger.info("Stage 5: Generating signals...")

        signals = self.signal_generator.generate(forecasts.records)

        # =====================================================================
        # STAGE 6: EVALUATE
        # =====================================================================
        logger.info("Stage 6: Evaluating strategy...")

        sharpe_error = None
        try:
            performance = self.evaluator.evaluate(signals)
        except UndefinedSharpeError as e:
            logger.warning(f"Sharpe ratio not reported: {e}")
            performance = e.partial_summary
            sharpe_error = str(e)

        accuracy = AccuracyCalculator.calculate(forecasts.records)

        processing_time = (time.perf_counter() - t0) * 1000
        logger.info(f"Pipeline complete in {processing_time:.0f}ms")

        return PipelineResult(
            symbol=symbol,
            config=cfg,
            prices=series,
            train=train,
            test=test,
            sanitization=sanitization,
            differencing=differencing,
            selection=selection,
            forecasts=forecasts,
            signals=signals,
            performance=performance,
            accuracy=accuracy,
            sharpe_error=sharpe_error,
            processing_time_ms=processing_time,
        )


# =============================================================================
# OUTPUT FORMATTING
# =============================================================================

def format_pipeline_report(result: PipelineResult) -> str:
    """Model identification summary followed by the performance report."""
    diff = result.differencing
    adf = ", ".join(f"d={r.d}: p={r.p_value:.4f}" for r in diff.results)

    lines = [
        "=" * 70,
        f"ARIMA FORECAST STRATEGY: {result.symbol}",
        "=" * 70,
        f"Period:              {result.prices.index[0]:%Y-%m-%d} to {result.prices.index[-1]:%Y-%m-%d}",
        f"Records:             {len(result.prices)} ({result.sanitization.filled_count} forward-filled)",
        f"Train / Test:        {len(result.train)} / {len(result.test)}",
        f"ADF tests:           {adf}",
        f"Differencing:        d={diff.d}" + (" (bound reached, still non-stationary)" if diff.reached_bound else ""),
        f"Selected Order:      {result.selection.order} "
        f"({result.selection.criterion}={result.selection.score:.2f}, "
        f"{result.selection.n_evaluated} candidates)",
        f"Fallback Forecasts:  {result.forecasts.fallback_count}",
    ]
    if result.sharpe_error:
        lines.append(f"Sharpe:              {result.sharpe_error}")

    report = format_performance_report(result.performance, result.accuracy)
    lines.extend([report, f"Processing Time: {result.processing_time_ms:.0f}ms | Version: {result.version}"])
    return "\n".join(lines)


def run_forecast_backtest(
    prices: pd.Series,
    symbol: str = "UNKNOWN",
    config: Optional[ForecastConfig] = None,
) -> PipelineResult:
    """Convenience function for a complete run with default components."""
    return ForecastPipeline(config).run(prices, symbol=symbol)


__all__ = [
    'PIPELINE_VERSION',
    'PipelineResult',
    'ForecastPipeline',
    'format_pipeline_report',
    'run_forecast_backtest',
]
