#!/usr/bin/env python3
"""
ARIMA Forecast Strategy - Demo Runner

Runs the complete pipeline on an adjusted-close CSV export:

    1. Sanitize and (optionally) resample the price series
    2. Identify the ARIMA order on the training window
    3. Rolling one-step-ahead forecasts over the test horizon
    4. Long/short signals from forecast direction
    5. Strategy vs buy-and-hold evaluation

EXECUTION
    python run_demo.py --csv spy.csv
    python run_demo.py --csv spy.csv --resample W-FRI
    python run_demo.py --csv spy.csv --on-convergence-error carry-forward --output outputs

OUTPUT ARTIFACTS (with --output DIR)
    DIR/{symbol}_forecasts.csv     actual vs predicted per test period
    DIR/{symbol}_signals.csv       returns, signals, strategy returns
    DIR/{symbol}_summary.json      model identification and performance
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import threading
from datetime import datetime
from pathlib import Path
from typing import Any, Dict

from arima_backtest.config import ForecastConfig, annualization_for_rule
from arima_backtest.data_collector import load_price_csv
from arima_backtest.errors import ForecastCancelledError, ForecastingError
from arima_backtest.pipeline import (
    PIPELINE_VERSION,
    ForecastPipeline,
    PipelineResult,
    format_pipeline_report,
)
from arima_backtest.signals import signals_to_frame


# =============================================================================
# CONSTANTS
# =============================================================================

VERSION: str = PIPELINE_VERSION
DEFAULT_DATE_COLUMN: str = "Date"
DEFAULT_VALUE_COLUMN: str = "Adj Close"


# =============================================================================
# OUTPUT GENERATION
# =============================================================================

def generate_json_summary(result: PipelineResult) -> Dict[str, Any]:
    """Model identification and performance as plain JSON-ready values."""
    perf = result.performance
    acc = result.accuracy

    return {
        "metadata": {
            "symbol": result.symbol,
            "generated_at": datetime.now().isoformat(),
            "version": result.version,
            "config": result.config.to_dict(),
        },
        "period": {
            "start": result.prices.index[0],
            "end": result.prices.index[-1],
            "records": len(result.prices),
            "forward_filled": result.sanitization.filled_count,
            "train_records": len(result.train),
            "test_records": len(result.test),
        },
        "model": {
            "order": list(result.order.as_tuple()),
            "criterion": result.selection.criterion,
            "score": result.selection.score,
            "candidates_evaluated": result.selection.n_evaluated,
            "adf_p_values": result.differencing.p_values,
            "differencing_bound_reached": result.differencing.reached_bound,
            "fallback_forecasts": result.forecasts.fallback_count,
        },
        "performance": {
            "strategy_total_return": perf.strategy_total_return,
            "benchmark_total_return": perf.benchmark_total_return,
            "strategy_max_drawdown": perf.strategy_max_drawdown,
            "benchmark_max_drawdown": perf.benchmark_max_drawdown,
            "sharpe_ratio": perf.sharpe_ratio,
            "benchmark_sharpe_ratio": perf.benchmark_sharpe_ratio,
            "sharpe_error": result.sharpe_error,
            "hit_rate": perf.hit_rate,
        },
        "accuracy": {
            "rmse": acc.rmse,
            "mae": acc.mae,
            "mape": acc.mape,
            "directional_accuracy": acc.directional_accuracy,
        },
    }


def write_outputs(result: PipelineResult, output_dir: Path) -> None:
    """Write forecasts, signals and summary files."""
    output_dir.mkdir(parents=True, exist_ok=True)
    prefix = result.symbol.lower()

    result.forecasts.to_frame().to_csv(output_dir / f"{prefix}_forecasts.csv")
    signals_to_frame(result.signals).to_csv(output_dir / f"{prefix}_signals.csv")

    with open(output_dir / f"{prefix}_summary.json", 'w') as f:
        json.dump(generate_json_summary(result), f, indent=2, default=str)


# =============================================================================
# MAIN
# =============================================================================

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="ARIMA Forecast Strategy - Demo Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_demo.py --csv spy.csv
  python run_demo.py --csv spy.csv --resample W-FRI
  python run_demo.py --csv spy.csv --criterion bic --jobs 4 --output outputs
        """
    )
    parser.add_argument("--csv", required=True, type=Path,
                        help="CSV file with a date column and an adjusted close column")
    parser.add_argument("--symbol", "-s", default=None,
                        help="Symbol label (default: CSV file name)")
    parser.add_argument("--date-column", default=DEFAULT_DATE_COLUMN,
                        help=f"Date column (default: {DEFAULT_DATE_COLUMN})")
    parser.add_argument("--value-column", default=DEFAULT_VALUE_COLUMN,
                        help=f"Price column (default: {DEFAULT_VALUE_COLUMN})")
    parser.add_argument("--resample", default=None,
                        help="Resampling rule, e.g. W-FRI for weekly closes")
    parser.add_argument("--train-fraction", type=float, default=0.8,
                        help="Share of observations used for training (default: 0.8)")
    parser.add_argument("--max-p", type=int, default=5)
    parser.add_argument("--max-q", type=int, default=5)
    parser.add_argument("--max-d", type=int, default=1,
                        help="Maximum differencing degree (default: 1)")
    parser.add_argument("--criterion", choices=["aic", "bic"], default="aic")
    parser.add_argument("--exhaustive", action="store_true",
                        help="Evaluate the whole order grid instead of the stepwise search")
    parser.add_argument("--on-convergence-error", choices=["abort", "carry-forward"],
                        default="abort", help="Policy when a rolling fit fails")
    parser.add_argument("--annualization", type=int, default=None,
                        help="Periods per year for the Sharpe ratio (default: inferred from --resample)")
    parser.add_argument("--jobs", "-j", type=int, default=1,
                        help="Worker processes for the order search")
    parser.add_argument("--output", "-o", type=Path, default=None,
                        help="Directory for CSV/JSON outputs")
    parser.add_argument("--verbose", "-v", action="store_true",
                        help="Enable verbose logging")
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    return parser


def main(argv=None) -> int:
    """
    Command-line entry point.

    Returns:
        0 on success, 1 on failure, 130 when interrupted
    """
    args = build_parser().parse_args(argv)

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="  %(asctime)s │ %(levelname)s │ %(message)s",
        datefmt="%H:%M:%S"
    )
    logger = logging.getLogger(__name__)

    symbol = args.symbol or args.csv.stem.upper()

    try:
        config = ForecastConfig.from_mapping({
            "train_fraction": args.train_fraction,
            "max_p": args.max_p,
            "max_q": args.max_q,
            "max_d": args.max_d,
            "start_p": min(2, args.max_p),
            "start_q": min(2, args.max_q),
            "stepwise": not args.exhaustive,
            "information_criterion": args.criterion,
            "convergence_policy": args.on_convergence_error,
            "annualization_factor": args.annualization or annualization_for_rule(args.resample),
            "n_jobs": args.jobs,
            "resample_rule": args.resample,
        })
        prices = load_price_csv(args.csv, args.date_column, args.value_column)
    except (ForecastingError, OSError) as e:
        logger.error(f"Setup failed: {e}")
        return 1

    # Ctrl-C stops the rolling loop at the next step boundary
    cancel = threading.Event()
    pipeline = ForecastPipeline(config, cancel_event=cancel)

    try:
        result = pipeline.run(prices, symbol=symbol)
    except KeyboardInterrupt:
        cancel.set()
        logger.warning("Interrupted")
        return 130
    except ForecastCancelledError as e:
        logger.warning(f"{e} ({len(e.partial_records)} records completed)")
        return 130
    except ForecastingError as e:
        logger.error(f"Pipeline failed: {e}")
        return 1

    print(format_pipeline_report(result))

    if args.output is not None:
        write_outputs(result, args.output)
        logger.info(f"Outputs written to {args.output}")

    return 0


if __name__ == "__main__":
    sys.exit(main())
