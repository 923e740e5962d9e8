"""
Price Series Intake for the ARIMA Forecasting Pipeline

Stage 1 of the pipeline: everything between the injected market data and
the statistical model.

    LOAD
        Adjusted-close prices from a CSV export (the market-data collaborator
        is external; this is the file-based entry point used by run_demo.py).

    VALIDATE
        DatetimeIndex, strictly increasing and unique timestamps, numeric
        values. Violations raise InvalidSeriesError.

    RESAMPLE
        Optional aggregation to a lower frequency (e.g. weekly closes). Empty
        periods stay missing so the sanitizer decides how to fill them.

    SANITIZE
        Forward-fill of missing values. A missing leading value cannot be
        filled and raises InsufficientDataError.

    SPLIT
        Chronological train/test split at floor(n * train_fraction).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, NamedTuple, Tuple, Union

import numpy as np
import pandas as pd

from arima_backtest.errors import InsufficientDataError, InvalidSeriesError

logger = logging.getLogger(__name__)


# =============================================================================
# DATA STRUCTURES
# =============================================================================

class TimePoint(NamedTuple):
    """A single (timestamp, value) observation."""
    timestamp: pd.Timestamp
    value: float


@dataclass(frozen=True)
class SanitizationReport:
    """What the sanitizer changed. Observability only."""
    filled_count: int
    filled_timestamps: Tuple[pd.Timestamp, ...] = field(default_factory=tuple)
    total_records: int = 0

    @property
    def completeness_pct(self) -> float:
        if self.total_records == 0:
            return 0.0
        return (1 - self.filled_count / self.total_records) * 100


# =============================================================================
# VALIDATION
# =============================================================================

def validate_price_series(series: pd.Series, name: str = "price") -> pd.Series:
    """
    Normalize and validate an ordered price series.

    Returns a new float Series with a timezone-naive DatetimeIndex. Missing
    values are allowed here; the sanitizer handles them.

    Raises:
        InvalidSeriesError: duplicate or decreasing timestamps, or
            non-numeric values
    """
    if not isinstance(series, pd.Series):
        raise InvalidSeriesError(f"Expected a pandas Series, got {type(series).__name__}")

    out = series.copy()

    # Ensure DatetimeIndex
    if not isinstance(out.index, pd.DatetimeIndex):
        try:
            out.index = pd.to_datetime(out.index)
        except (ValueError, TypeError) as e:
            raise InvalidSeriesError("Index cannot be parsed as timestamps") from e

    # Remove timezone
    if out.index.tz is not None:
        out.index = out.index.tz_localize(None)

    duplicated = out.index[out.index.duplicated()]
    if len(duplicated) > 0:
        raise InvalidSeriesError(
            f"Series has {len(duplicated)} duplicate timestamp(s)",
            timestamp=duplicated[0],
        )

    if not out.index.is_monotonic_increasing:
        positions = np.flatnonzero(np.diff(out.index.asi8) < 0)
        raise InvalidSeriesError(
            "Timestamps must be strictly increasing",
            timestamp=out.index[positions[0] + 1],
        )

    try:
        out = pd.to_numeric(out, errors='raise').astype(float)
    except (ValueError, TypeError) as e:
        raise InvalidSeriesError("Series contains non-numeric values") from e

    out.name = name
    return out


# =============================================================================
# LOADING & RESAMPLING
# =============================================================================

def load_price_csv(
    path: Union[str, Path],
    date_column: str = "Date",
    value_column: str = "Adj Close",
) -> pd.Series:
    """
    Load an adjusted-close price series from CSV.

    Args:
        path: CSV file with at least a date and a price column
        date_column: Name of the timestamp column
        value_column: Name of the adjusted close column

    Returns:
        Validated price series (may still contain missing values)
    """
    path = Path(path)
    df = pd.read_csv(path)

    missing = [col for col in (date_column, value_column) if col not in df.columns]
    if missing:
        raise InvalidSeriesError(f"Missing required columns: {missing}", path=str(path))

    series = pd.Series(
        df[value_column].values,
        index=pd.to_datetime(df[date_column]),
        name=value_column,
    )
    series = validate_price_series(series.sort_index())

    logger.info(f"Loaded {len(series)} records from {path.name}")
    return series


def resample_prices(series: pd.Series, rule: str) -> pd.Series:
    """
    Aggregate to a lower frequency keeping the last close of each period.

    Periods without any observation are left as NaN.
    """
    resampled = series.resample(rule).last()
    logger.debug(f"Resampled {len(series)} -> {len(resampled)} records ({rule})")
    return resampled


# =============================================================================
# SANITIZATION
# =============================================================================

class SeriesSanitizer:
    """
    Forward-fill sanitizer for price series.

    Each missing value takes the most recent preceding valid value. The
    first observation has nothing to fill from, so a missing leading value
    is an error rather than a silent drop.
    """

    def sanitize(self, series: pd.Series) -> pd.Series:
        """Return a fully populated copy of the series."""
        cleaned, _ = self.sanitize_with_report(series)
        return cleaned

    def sanitize_with_report(self, series: pd.Series) -> Tuple[pd.Series, SanitizationReport]:
        """Return the filled series and a report of what was filled."""
        if len(series) == 0:
            raise InsufficientDataError("Cannot sanitize an empty series", window_length=0)

        if pd.isna(series.iloc[0]):
            raise InsufficientDataError(
                "Leading value is missing; no prior value to fill from",
                timestamp=series.index[0],
                window_length=len(series),
            )

        missing_mask = series.isna()
        filled_timestamps: List[pd.Timestamp] = list(series.index[missing_mask])

        cleaned = series.ffill()

        if filled_timestamps:
            logger.info(f"Sanitizer forward-filled {len(filled_timestamps)} missing value(s)")
        else:
            logger.debug("Sanitizer found no missing values")

        report = SanitizationReport(
            filled_count=len(filled_timestamps),
            filled_timestamps=tuple(filled_timestamps),
            total_records=len(series),
        )
        return cleaned, report


# =============================================================================
# TRAIN / TEST SPLIT
# =============================================================================

def split_train_test(series: pd.Series, train_fraction: float) -> Tuple[pd.Series, pd.Series]:
    """
    Split chronologically: the first floor(n * train_fraction) observations
    form the training window, the rest the test horizon.
    """
    n = len(series)
    split = int(np.floor(n * train_fraction))

    if split < 1 or split >= n:
        raise InsufficientDataError(
            "Train/test split leaves an empty side",
            window_length=n,
            train_fraction=train_fraction,
        )

    train = series.iloc[:split].copy()
    test = series.iloc[split:].copy()

    logger.debug(f"Split {n} records into {len(train)} train / {len(test)} test")
    return train, test


def iter_points(series: pd.Series) -> List[TimePoint]:
    """Series as an ordered list of TimePoints."""
    return [TimePoint(ts, float(v)) for ts, v in series.items()]


__all__ = [
    'TimePoint',
    'SanitizationReport',
    'validate_price_series',
    'load_price_csv',
    'resample_prices',
    'SeriesSanitizer',
    'split_train_test',
    'iter_points',
]
