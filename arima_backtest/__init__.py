"""
ARIMA forecast-driven directional strategy backtesting.

    from arima_backtest.pipeline import ForecastPipeline
    result = ForecastPipeline().run(prices, symbol='SPY')
"""

__version__ = "1.0.0"
