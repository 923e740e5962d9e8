"""
Rolling (Expanding-Window) One-Step-Ahead Forecaster
====================================================

Walk-forward evaluation of a fixed ARIMA order over the test horizon:

    window = train
    for each test point t_i:
        fit the order on window            (data strictly before t_i only)
        predict t_i
        window = window + [t_i]            (actual revealed AFTER predicting)

The loop is a fold over an immutable window value. Each step is the pure
function

    forecast_step(window, point, order, engine) -> (ForecastRecord, new_window)

so the no-look-ahead property can be checked on a single step in isolation.
Appending produces a new Series; no window is modified after creation.

Cost: one refit per test point on a window that keeps growing, so total
cost grows roughly quadratically with the horizon.

CONVERGENCE POLICY
------------------
    ABORT           ConvergenceError propagates with the failing timestamp
    CARRY_FORWARD   the previous step's prediction is reused (the last
                    observed price on the very first step) and the record is
                    flagged fallback=True; no period is ever skipped

Progress is reported only through an injected ForecastObserver, and a
threading.Event-style cancel token is checked between steps.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from arima_backtest.config import ConvergencePolicy
from arima_backtest.data_collector import TimePoint, iter_points
from arima_backtest.errors import (
    ConvergenceError,
    ForecastCancelledError,
    InsufficientDataError,
    InvalidSeriesError,
)
from arima_backtest.forecast_engine import ForecastEngine
from arima_backtest.order_selection import ModelOrder

logger = logging.getLogger(__name__)


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass(frozen=True)
class ForecastRecord:
    """Actual and predicted price for one test timestamp."""
    timestamp: pd.Timestamp
    actual: float
    predicted: float
    window_length: int = 0       # observations the prediction was fitted on
    fallback: bool = False       # prediction substituted after a failed fit
    lower: Optional[float] = None   # prediction interval bounds, when requested
    upper: Optional[float] = None


@dataclass(frozen=True)
class RollingForecastResult:
    """Ordered ForecastRecords of one rolling run. Behaves as a sequence."""
    records: Tuple[ForecastRecord, ...]
    order: ModelOrder
    fallback_count: int = 0

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[ForecastRecord]:
        return iter(self.records)

    def __getitem__(self, index):
        return self.records[index]

    def to_frame(self) -> pd.DataFrame:
        return records_to_frame(self.records)


# =============================================================================
# OBSERVERS
# =============================================================================

class ForecastObserver:
    """Progress callbacks for a rolling run. All methods are no-ops."""

    def on_start(self, total: int, order: ModelOrder) -> None:
        pass

    def on_step(self, index: int, total: int, record: ForecastRecord) -> None:
        pass

    def on_fallback(self, index: int, record: ForecastRecord, error: ConvergenceError) -> None:
        pass

    def on_complete(self, records: Sequence[ForecastRecord]) -> None:
        pass


class LoggingProgressObserver(ForecastObserver):
    """Logs progress every `every` steps."""

    def __init__(self, every: int = 10, log: Optional[logging.Logger] = None):
        self.every = max(1, every)
        self.log = log or logger

    def on_start(self, total: int, order: ModelOrder) -> None:
        self.log.info(f"Rolling forecast: {total} steps with {order}")

    def on_step(self, index: int, total: int, record: ForecastRecord) -> None:
        done = index + 1
        if done % self.every == 0 or done == total:
            self.log.info(f"  step {done}/{total} ({done / total:.0%}) "
                          f"{record.timestamp:%Y-%m-%d} predicted={record.predicted:.4f}")

    def on_fallback(self, index: int, record: ForecastRecord, error: ConvergenceError) -> None:
        self.log.warning(f"Fit failed at {record.timestamp:%Y-%m-%d}; "
                         f"carried forward {record.predicted:.4f} ({error.message})")

    def on_complete(self, records: Sequence[ForecastRecord]) -> None:
        fallbacks = sum(1 for r in records if r.fallback)
        self.log.info(f"Rolling forecast complete: {len(records)} records, {fallbacks} fallback(s)")


# =============================================================================
# STEP FUNCTIONS
# =============================================================================

def append_point(window: pd.Series, point: TimePoint) -> pd.Series:
    """New window with the point appended. The input window is untouched."""
    if len(window) and point.timestamp <= window.index[-1]:
        raise InvalidSeriesError(
            "Appended point must be later than the window end",
            timestamp=point.timestamp, window_end=window.index[-1],
        )
    addition = pd.Series([float(point.value)], index=pd.DatetimeIndex([point.timestamp]), name=window.name)
    return pd.concat([window, addition])


def forecast_step(
    window: pd.Series,
    point: TimePoint,
    order: ModelOrder,
    engine: ForecastEngine,
    alpha: Optional[float] = None,
) -> Tuple[ForecastRecord, pd.Series]:
    """
    Predict `point` from `window`, then reveal it.

    With alpha set, the record also carries the (1 - alpha) prediction
    interval from engine.forecast_interval.

    Raises:
        InvalidSeriesError: window reaches point.timestamp (look-ahead)
        ConvergenceError: the fit failed (timestamp attached)
    """
    if len(window) and window.index[-1] >= point.timestamp:
        raise InvalidSeriesError(
            "Forecast window must end strictly before the predicted timestamp",
            timestamp=point.timestamp, window_end=window.index[-1],
        )

    try:
        model = engine.fit(window, order)
        if alpha is None:
            prediction = float(engine.forecast(model, horizon=1)[0])
            lower = upper = None
        else:
            interval = engine.forecast_interval(model, horizon=1, alpha=alpha)
            prediction = float(interval.mean[0])
            lower, upper = float(interval.lower[0]), float(interval.upper[0])
    except ConvergenceError as e:
        context = dict(e.context)
        context['timestamp'] = point.timestamp
        context.setdefault('window_length', len(window))
        if len(window):
            context.setdefault('window_start', window.index[0])
        raise ConvergenceError(e.message, **context) from e

    record = ForecastRecord(
        timestamp=point.timestamp,
        actual=float(point.value),
        predicted=prediction,
        window_length=len(window),
        lower=lower,
        upper=upper,
    )
    return record, append_point(window, point)


# =============================================================================
# ROLLING FORECASTER
# =============================================================================

class RollingForecaster:
    """
    Expanding-window forecaster with a fixed model order.

    Usage:
        forecaster = RollingForecaster(policy=ConvergencePolicy.CARRY_FORWARD)
        result = forecaster.run(train, test, ModelOrder(1, 1, 0))
    """

    def __init__(
        self,
        engine: Optional[ForecastEngine] = None,
        policy: ConvergencePolicy = ConvergencePolicy.ABORT,
        observer: Optional[ForecastObserver] = None,
        cancel_event=None,
        alpha: Optional[float] = None,
    ):
        """
        Args:
            engine: Fitter/forecaster (anything with fit/forecast, plus
                forecast_interval when alpha is set)
            policy: What to do when a single-step fit fails
            observer: Progress callbacks
            cancel_event: Object with is_set(), checked between steps
            alpha: Prediction interval level per record; None for point
                forecasts only
        """
        self.engine = engine or ForecastEngine()
        self.policy = policy
        self.observer = observer or ForecastObserver()
        self.cancel_event = cancel_event
        self.alpha = alpha

    def step(self, window: pd.Series, point: TimePoint, order: ModelOrder) -> Tuple[ForecastRecord, pd.Series]:
        return forecast_step(window, point, order, self.engine, self.alpha)

    def run(self, train: pd.Series, test: pd.Series, order: ModelOrder) -> RollingForecastResult:
        """
        Forecast every test point one step ahead.

        Raises:
            InsufficientDataError: empty training window
            InvalidSeriesError: test does not start after train
            ConvergenceError: a fit failed under the ABORT policy
            ForecastCancelledError: cancel_event was set between steps
        """
        if len(train) == 0:
            raise InsufficientDataError("Training window is empty", window_length=0)
        if len(test) and test.index[0] <= train.index[-1]:
            raise InvalidSeriesError(
                "Test horizon must start after the training window",
                timestamp=test.index[0], window_end=train.index[-1],
            )

        points = iter_points(test)
        total = len(points)
        window = train.copy()
        records: List[ForecastRecord] = []
        fallback_count = 0

        self.observer.on_start(total, order)

        for i, point in enumerate(points):
            if self.cancel_event is not None and self.cancel_event.is_set():
                raise ForecastCancelledError(
                    f"Rolling forecast cancelled after {i} of {total} steps",
                    partial_records=records, timestamp=point.timestamp,
                )

            try:
                record, window = self.step(window, point, order)
            except ConvergenceError as e:
                if self.policy is ConvergencePolicy.ABORT:
                    raise
                record = self._carry_forward(window, point, records)
                window = append_point(window, point)
                fallback_count += 1
                self.observer.on_fallback(i, record, e)

            records.append(record)
            self.observer.on_step(i, total, record)

        self.observer.on_complete(records)

        return RollingForecastResult(
            records=tuple(records),
            order=order,
            fallback_count=fallback_count,
        )

    @staticmethod
    def _carry_forward(window: pd.Series, point: TimePoint, records: List[ForecastRecord]) -> ForecastRecord:
        previous = records[-1].predicted if records else float(window.iloc[-1])
        return ForecastRecord(
            timestamp=point.timestamp,
            actual=float(point.value),
            predicted=previous,
            window_length=len(window),
            fallback=True,
        )


def records_to_frame(records: Sequence[ForecastRecord]) -> pd.DataFrame:
    """ForecastRecords as a DataFrame indexed by timestamp."""
    df = pd.DataFrame(
        {
            'actual': [r.actual for r in records],
            'predicted': [r.predicted for r in records],
            'window_length': [r.window_length for r in records],
            'fallback': [r.fallback for r in records],
            'lower': [np.nan if r.lower is None else r.lower for r in records],
            'upper': [np.nan if r.upper is None else r.upper for r in records],
        },
        index=pd.DatetimeIndex([r.timestamp for r in records], name='timestamp'),
    )
    return df


__all__ = [
    'ForecastRecord',
    'RollingForecastResult',
    'ForecastObserver',
    'LoggingProgressObserver',
    'append_point',
    'forecast_step',
    'RollingForecaster',
    'records_to_frame',
]
