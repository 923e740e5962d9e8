"""Tests for price series intake."""

import numpy as np
import pandas as pd
import pytest

from arima_backtest.data_collector import (
    SeriesSanitizer,
    TimePoint,
    iter_points,
    load_price_csv,
    resample_prices,
    split_train_test,
    validate_price_series,
)
from arima_backtest.errors import InsufficientDataError, InvalidSeriesError

from conftest import make_series


class TestValidatePriceSeries:
    """Test ordering and type validation."""

    def test_valid_series_passes(self):
        """Test a clean series is returned as float."""
        out = validate_price_series(make_series([1, 2, 3]), name="SPY")

        assert out.dtype == float
        assert out.name == "SPY"
        assert list(out) == [1.0, 2.0, 3.0]

    def test_duplicate_timestamps(self):
        """Test duplicate timestamps are rejected."""
        idx = pd.DatetimeIndex(["2024-01-01", "2024-01-02", "2024-01-02"])
        with pytest.raises(InvalidSeriesError) as exc:
            validate_price_series(pd.Series([1.0, 2.0, 3.0], index=idx))

        assert exc.value.timestamp == pd.Timestamp("2024-01-02")

    def test_decreasing_timestamps(self):
        """Test out-of-order timestamps are rejected."""
        idx = pd.DatetimeIndex(["2024-01-01", "2024-01-03", "2024-01-02"])
        with pytest.raises(InvalidSeriesError):
            validate_price_series(pd.Series([1.0, 2.0, 3.0], index=idx))

    def test_non_numeric_values(self):
        """Test text values are rejected."""
        series = pd.Series(["1.0", "abc"], index=pd.date_range("2024-01-01", periods=2))
        with pytest.raises(InvalidSeriesError):
            validate_price_series(series)

    def test_timezone_removed(self):
        """Test timezone-aware indices become naive."""
        idx = pd.date_range("2024-01-01", periods=3, tz="UTC")
        out = validate_price_series(pd.Series([1.0, 2.0, 3.0], index=idx))

        assert out.index.tz is None

    def test_missing_values_allowed(self):
        """Test NaN passes validation for the sanitizer to handle."""
        out = validate_price_series(make_series([1.0, np.nan, 3.0]))

        assert out.isna().sum() == 1


class TestSeriesSanitizer:
    """Test forward-fill sanitization."""

    def test_forward_fills_gap(self):
        """Test a missing middle value takes the previous value."""
        series = make_series([100.0, np.nan, np.nan, 103.0])
        cleaned, report = SeriesSanitizer().sanitize_with_report(series)

        assert list(cleaned) == [100.0, 100.0, 100.0, 103.0]
        assert report.filled_count == 2
        assert report.filled_timestamps == tuple(series.index[1:3])
        assert report.total_records == 4
        assert report.completeness_pct == pytest.approx(50.0)

    def test_input_not_mutated(self):
        """Test the original series keeps its missing value."""
        series = make_series([100.0, np.nan, 103.0])
        SeriesSanitizer().sanitize(series)

        assert series.isna().sum() == 1

    def test_leading_missing_value(self):
        """Test a missing first value cannot be filled."""
        series = make_series([np.nan, 100.0, 101.0])
        with pytest.raises(InsufficientDataError) as exc:
            SeriesSanitizer().sanitize(series)

        assert exc.value.timestamp == series.index[0]

    def test_empty_series(self):
        """Test an empty series is rejected."""
        with pytest.raises(InsufficientDataError):
            SeriesSanitizer().sanitize(make_series([]))

    def test_complete_series_unchanged(self):
        """Test a fully populated series passes through."""
        series = make_series([1.0, 2.0, 3.0])
        cleaned, report = SeriesSanitizer().sanitize_with_report(series)

        pd.testing.assert_series_equal(cleaned, series)
        assert report.filled_count == 0


class TestSplitAndResample:
    """Test train/test split, resampling and CSV loading."""

    def test_split_at_floor(self):
        """Test the split point is floor(n * fraction)."""
        train, test = split_train_test(make_series(range(1, 11)), 0.75)

        assert len(train) == 7
        assert len(test) == 3
        assert train.index[-1] < test.index[0]

    def test_split_with_empty_side(self):
        """Test a split leaving no training data."""
        with pytest.raises(InsufficientDataError):
            split_train_test(make_series(range(1, 11)), 0.05)

    def test_resample_keeps_empty_periods(self):
        """Test weekly resampling leaves a NaN for a week without data."""
        days = pd.bdate_range("2024-01-01", "2024-01-19")
        days = days[(days < "2024-01-08") | (days > "2024-01-12")]
        series = pd.Series(np.arange(len(days), dtype=float), index=days)

        weekly = resample_prices(series, "W-FRI")

        assert len(weekly) == 3
        assert weekly.iloc[0] == 4.0
        assert np.isnan(weekly.iloc[1])
        assert weekly.iloc[2] == float(len(days) - 1)

    def test_iter_points(self):
        """Test conversion to TimePoints preserves order."""
        series = make_series([1.0, 2.0])
        points = iter_points(series)

        assert points == [TimePoint(series.index[0], 1.0), TimePoint(series.index[1], 2.0)]

    def test_load_price_csv(self, tmp_path):
        """Test CSV loading sorts by date."""
        path = tmp_path / "spy.csv"
        path.write_text(
            "Date,Open,Adj Close\n"
            "2024-01-03,1,101.5\n"
            "2024-01-02,1,100.0\n"
            "2024-01-04,1,102.25\n"
        )

        series = load_price_csv(path)

        assert list(series) == [100.0, 101.5, 102.25]
        assert series.index.is_monotonic_increasing

    def test_load_price_csv_missing_column(self, tmp_path):
        """Test a CSV without the price column."""
        path = tmp_path / "bad.csv"
        path.write_text("Date,Close\n2024-01-02,100\n")

        with pytest.raises(InvalidSeriesError):
            load_price_csv(path)
