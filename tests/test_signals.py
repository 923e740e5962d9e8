"""Tests for forecast-to-signal conversion."""

import pandas as pd
import pytest

from arima_backtest.errors import InvalidSeriesError
from arima_backtest.rolling_forecaster import ForecastRecord
from arima_backtest.signals import SignalGenerator, SignalType, signals_to_frame


def records(actual, predicted, start="2024-01-05"):
    index = pd.date_range(start, periods=len(actual), freq="W-FRI")
    return [ForecastRecord(ts, a, p) for ts, a, p in zip(index, actual, predicted)]


class TestSignalGenerator:
    """Test SignalGenerator."""

    def test_first_record_dropped(self):
        """Test n records produce n - 1 signals."""
        out = SignalGenerator().generate(records([100, 101, 103], [100, 102, 101]))

        assert len(out) == 2
        assert out[0].timestamp == pd.Timestamp("2024-01-12")

    def test_long_and_short(self):
        """Test signal direction and strategy return."""
        out = SignalGenerator().generate(records([100, 101, 103], [100, 102, 101]))

        assert out[0].predicted_return == pytest.approx(0.02)
        assert out[0].actual_return == pytest.approx(0.01)
        assert out[0].signal == 1
        assert out[0].signal_type is SignalType.LONG
        assert out[0].strategy_return == pytest.approx(0.01)
        assert out[0].is_hit

        assert out[1].signal == -1
        assert out[1].signal_type is SignalType.SHORT
        assert out[1].strategy_return == pytest.approx(-(103 / 101 - 1))
        assert not out[1].is_hit

    def test_flat_forecast_goes_long(self):
        """Test a zero predicted return maps to +1."""
        out = SignalGenerator().generate(records([100, 99], [100, 100]))

        assert out[0].predicted_return == 0.0
        assert out[0].signal == 1

    def test_signal_domain(self):
        """Test every signal is +1 or -1."""
        actual = [100, 102, 101, 105, 104, 104, 103]
        predicted = [101, 100, 103, 103, 106, 102, 102]
        out = SignalGenerator().generate(records(actual, predicted))

        assert {r.signal for r in out} <= {1, -1}
        for r in out:
            assert r.strategy_return == pytest.approx(r.signal * r.actual_return)

    def test_unordered_records(self):
        """Test records out of timestamp order are rejected."""
        recs = records([100, 101, 102], [100, 101, 102])
        recs[1], recs[2] = recs[2], recs[1]

        with pytest.raises(InvalidSeriesError):
            SignalGenerator().generate(recs)

    def test_zero_prediction(self):
        """Test a zero predicted price is rejected with its timestamp."""
        recs = records([100, 101, 102], [100, 0, 102])

        with pytest.raises(InvalidSeriesError) as exc:
            SignalGenerator().generate(recs)

        assert exc.value.timestamp == recs[2].timestamp

    def test_too_few_records(self):
        """Test zero or one record yields no signals."""
        assert SignalGenerator().generate([]) == []
        assert SignalGenerator().generate(records([100], [100])) == []

    def test_to_frame(self):
        """Test conversion to a DataFrame."""
        out = SignalGenerator().generate(records([100, 101, 103], [100, 102, 101]))
        frame = signals_to_frame(out)

        assert len(frame) == 2
        assert list(frame['signal']) == [1, -1]
