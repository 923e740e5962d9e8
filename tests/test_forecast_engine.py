"""Tests for single-window ARIMA fitting and forecasting."""

import numpy as np
import pytest

from arima_backtest.errors import InsufficientDataError
from arima_backtest.forecast_engine import ForecastEngine
from arima_backtest.order_selection import ModelOrder

from conftest import make_series


class TestForecastEngine:
    """Test fit / forecast on the price scale."""

    def test_ar1_differenced_forecast(self, random_walk_prices):
        """Test an ARIMA(1,1,0) forecast is a finite price."""
        engine = ForecastEngine()
        model = engine.fit(random_walk_prices, ModelOrder(1, 1, 0))
        forecast = engine.forecast(model, horizon=1)

        assert forecast.shape == (1,)
        assert np.isfinite(forecast[0])
        # one step ahead stays near the last observed price
        assert abs(forecast[0] - random_walk_prices.iloc[-1]) < 5.0

    def test_random_walk_model_repeats_last_price(self, random_walk_prices):
        """Test ARIMA(0,1,0) without drift forecasts the last price."""
        engine = ForecastEngine()
        model = engine.fit(random_walk_prices, ModelOrder(0, 1, 0))

        np.testing.assert_allclose(
            engine.forecast(model, horizon=3),
            np.repeat(random_walk_prices.iloc[-1], 3),
        )

    def test_fitted_model_metadata(self, random_walk_prices):
        """Test the fitted model keeps anchors and window bounds only."""
        model = ForecastEngine().fit(random_walk_prices, ModelOrder(1, 1, 0))

        assert model.anchors == (float(random_walk_prices.iloc[-1]),)
        assert model.n_obs == len(random_walk_prices)
        assert model.window_end == random_walk_prices.index[-1]
        assert model.sigma2 > 0
        assert np.isfinite(model.aic)

    def test_undifferenced_model(self, white_noise):
        """Test a d=0 model forecasts around the series mean."""
        engine = ForecastEngine()
        series = white_noise + 50.0
        model = engine.fit(series, ModelOrder(1, 0, 0))

        assert model.anchors == ()
        assert abs(engine.forecast(model)[0] - 50.0) < 1.0

    @pytest.mark.parametrize("horizon", [0, -1, 1.5])
    def test_invalid_horizon(self, random_walk_prices, horizon):
        """Test the horizon must be a positive integer."""
        engine = ForecastEngine()
        model = engine.fit(random_walk_prices, ModelOrder(0, 1, 0))

        with pytest.raises(ValueError):
            engine.forecast(model, horizon=horizon)

    def test_window_too_short(self):
        """Test fitting needs enough observations for the order."""
        with pytest.raises(InsufficientDataError) as exc:
            ForecastEngine().fit(make_series([1.0, 2.0, 3.0]), ModelOrder(2, 1, 1))

        assert exc.value.window_length == 3

    def test_interval_brackets_mean(self, random_walk_prices):
        """Test intervals contain the point forecast and widen with horizon."""
        engine = ForecastEngine()
        model = engine.fit(random_walk_prices, ModelOrder(1, 1, 0))
        interval = engine.forecast_interval(model, horizon=4, alpha=0.05)

        np.testing.assert_allclose(interval.mean, engine.forecast(model, horizon=4))
        assert np.all(interval.lower < interval.mean)
        assert np.all(interval.upper > interval.mean)
        widths = interval.upper - interval.lower
        assert np.all(np.diff(widths) > 0)

    def test_random_walk_interval_width(self, random_walk_prices):
        """Test ARIMA(0,1,0) interval variance grows linearly with horizon."""
        engine = ForecastEngine()
        model = engine.fit(random_walk_prices, ModelOrder(0, 1, 0))
        interval = engine.forecast_interval(model, horizon=4)

        half_width = (interval.upper - interval.mean)
        np.testing.assert_allclose(half_width ** 2 / half_width[0] ** 2, [1.0, 2.0, 3.0, 4.0])
