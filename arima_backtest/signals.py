"""
Directional Signals from Price Forecasts

For consecutive ForecastRecords (i >= 1):

    predicted_return[i] = predicted[i] / predicted[i-1] - 1
    actual_return[i]    = actual[i] / actual[i-1] - 1
    signal[i]           = +1 if predicted_return[i] >= 0 else -1
    strategy_return[i]  = signal[i] * actual_return[i]

The first record has no predecessor and produces no SignalRecord. Records
must arrive in strictly increasing timestamp order.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Sequence

import pandas as pd

from arima_backtest.errors import InvalidSeriesError
from arima_backtest.rolling_forecaster import ForecastRecord

logger = logging.getLogger(__name__)


class SignalType(Enum):
    """Position taken for one period."""
    LONG = 1
    SHORT = -1


@dataclass(frozen=True)
class SignalRecord:
    """ForecastRecord extended with returns, signal and strategy return."""
    timestamp: pd.Timestamp
    actual: float
    predicted: float
    predicted_return: float
    actual_return: float
    signal: int
    strategy_return: float

    @property
    def signal_type(self) -> SignalType:
        return SignalType(self.signal)

    @property
    def is_hit(self) -> bool:
        """Signal direction matched the realized move."""
        return self.strategy_return > 0


class SignalGenerator:
    """Stateless one-pass conversion of forecasts into long/short signals."""

    def generate(self, records: Sequence[ForecastRecord]) -> List[SignalRecord]:
        out: List[SignalRecord] = []

        for prev, curr in zip(records, records[1:]):
            if curr.timestamp <= prev.timestamp:
                raise InvalidSeriesError(
                    "Forecast records must be in strictly increasing timestamp order",
                    timestamp=curr.timestamp,
                )
            if prev.predicted == 0 or prev.actual == 0:
                raise InvalidSeriesError("Cannot compute a return from a zero price",
                                         timestamp=curr.timestamp)

            predicted_return = curr.predicted / prev.predicted - 1
            actual_return = curr.actual / prev.actual - 1
            signal = SignalType.LONG.value if predicted_return >= 0 else SignalType.SHORT.value

            out.append(SignalRecord(
                timestamp=curr.timestamp,
                actual=curr.actual,
                predicted=curr.predicted,
                predicted_return=predicted_return,
                actual_return=actual_return,
                signal=signal,
                strategy_return=signal * actual_return,
            ))

        longs = sum(1 for r in out if r.signal > 0)
        logger.debug(f"Generated {len(out)} signals ({longs} long / {len(out) - longs} short)")
        return out


def signals_to_frame(records: Sequence[SignalRecord]) -> pd.DataFrame:
    """SignalRecords as a DataFrame indexed by timestamp."""
    columns = ['actual', 'predicted', 'predicted_return', 'actual_return', 'signal', 'strategy_return']
    return pd.DataFrame(
        [[getattr(r, c) for c in columns] for r in records],
        columns=columns,
        index=pd.DatetimeIndex([r.timestamp for r in records], name='timestamp'),
    )


__all__ = [
    'SignalType',
    'SignalRecord',
    'SignalGenerator',
    'signals_to_frame',
]
