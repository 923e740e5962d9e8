"""End-to-end tests for the pipeline and the command-line runner."""

import json

import numpy as np
import pandas as pd
import pytest

from arima_backtest.config import ConvergencePolicy, ForecastConfig
from arima_backtest.errors import InsufficientDataError
from arima_backtest.pipeline import (
    ForecastPipeline,
    format_pipeline_report,
    run_forecast_backtest,
)

import run_demo

from conftest import SpyEngine, make_series

SMALL_CONFIG = ForecastConfig(
    max_p=1,
    max_q=1,
    max_order=2,
    start_p=1,
    start_q=1,
    convergence_policy=ConvergencePolicy.CARRY_FORWARD,
    annualization_factor=52,
)


class TestForecastPipeline:
    """Test ForecastPipeline."""

    def test_end_to_end(self, random_walk_prices):
        """Test a full run with real ARIMA fits."""
        result = run_forecast_backtest(random_walk_prices, symbol="TEST", config=SMALL_CONFIG)

        assert len(result.train) == 96
        assert len(result.test) == 24
        assert len(result.forecasts) == len(result.test)
        assert len(result.signals) == len(result.test) - 1
        assert result.order.d == result.differencing.d
        assert result.order.p <= 1 and result.order.q <= 1
        assert result.performance.n_periods == len(result.signals)
        assert result.accuracy.n == len(result.test)
        assert all(np.isfinite(r.predicted) for r in result.forecasts)
        for record in result.forecasts:
            if not record.fallback:
                assert record.lower < record.predicted < record.upper

        report = format_pipeline_report(result)
        assert "ARIMA FORECAST STRATEGY: TEST" in report
        assert str(result.order) in report

    def test_injected_engine_sees_no_future_data(self, random_walk_prices):
        """Test every rolling fit ends before its target timestamp."""
        engine = SpyEngine()
        result = ForecastPipeline(SMALL_CONFIG, engine=engine).run(random_walk_prices)

        assert len(engine.windows) == len(result.test)
        for window, record in zip(engine.windows, result.forecasts):
            assert window.index[-1] < record.timestamp
        assert len(engine.windows[0]) == len(result.train)

    def test_gaps_are_filled(self, random_walk_prices):
        """Test missing prices are forward-filled before modelling."""
        prices = random_walk_prices.copy()
        prices.iloc[[10, 50]] = np.nan

        result = ForecastPipeline(SMALL_CONFIG, engine=SpyEngine()).run(prices)

        assert result.sanitization.filled_count == 2
        assert not result.prices.isna().any()

    def test_too_short_for_identification(self):
        """Test a series too short for the stationarity test."""
        with pytest.raises(InsufficientDataError):
            ForecastPipeline(SMALL_CONFIG).run(make_series([100.0, 101.0, 99.0, 102.0, 103.0, 101.0]))


class TestRunDemo:
    """Test the command-line runner."""

    def test_writes_outputs(self, tmp_path, random_walk_prices):
        """Test a CLI run writes forecasts, signals and summary."""
        csv = tmp_path / "test.csv"
        random_walk_prices.rename("Adj Close").rename_axis("Date").to_csv(csv)
        out_dir = tmp_path / "out"

        code = run_demo.main([
            "--csv", str(csv), "--max-p", "1", "--max-q", "1",
            "--on-convergence-error", "carry-forward", "--resample", "W-FRI",
            "--output", str(out_dir),
        ])

        assert code == 0
        forecasts = pd.read_csv(out_dir / "test_forecasts.csv")
        assert {"lower", "upper"} <= set(forecasts.columns)
        assert (out_dir / "test_signals.csv").exists()
        summary = json.loads((out_dir / "test_summary.json").read_text())
        assert summary["metadata"]["symbol"] == "TEST"
        assert summary["period"]["test_records"] == 24
        assert summary["metadata"]["config"]["annualization_factor"] == 52

    def test_missing_file(self, tmp_path):
        """Test a missing CSV returns a failure code."""
        assert run_demo.main(["--csv", str(tmp_path / "missing.csv")]) == 1

    def test_invalid_option(self, tmp_path):
        """Test a configuration error returns a failure code."""
        csv = tmp_path / "x.csv"
        csv.write_text("Date,Adj Close\n2024-01-02,1\n")

        assert run_demo.main(["--csv", str(csv), "--train-fraction", "1.5"]) == 1
