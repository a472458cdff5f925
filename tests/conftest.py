"""Shared fixtures: seeded synthetic prices and small model configurations."""

import numpy as np
import pandas as pd
import pytest

from vix_shock.config import AnalysisConfig, SamplerConfig, ShockModelConfig
from vix_shock.data_collector import simulate_price_series, simulate_vix_series
from vix_shock.returns import PriceSeries, monthly_returns


@pytest.fixture
def index_prices():
    """Ten years of simulated daily index closes (120 months)."""
    return simulate_price_series("2000-01-01", "2009-12-31", symbol="^GSPC")


@pytest.fixture
def vix_prices(index_prices):
    return simulate_vix_series(index_prices, symbol="^VIX")


@pytest.fixture
def index_returns(index_prices):
    return monthly_returns(index_prices)


@pytest.fixture
def vix_returns(vix_prices):
    return monthly_returns(vix_prices)


@pytest.fixture
def small_shock_config():
    """ARMA(<=1, <=1) on levels: four candidates, fast to fit."""
    return ShockModelConfig(max_ar=1, max_ma=1, differencing=(0,))


@pytest.fixture
def fast_sampler():
    return SamplerConfig(chains=2, iterations=800, warmup=400, seed=7)


@pytest.fixture
def small_analysis_config(small_shock_config):
    return AnalysisConfig(shock_model=small_shock_config)


@pytest.fixture
def make_prices():
    """Build a PriceSeries from {date string: close}."""
    def _make(points, symbol="TEST"):
        series = pd.Series(
            list(points.values()),
            index=pd.to_datetime(list(points.keys())),
            dtype=float,
        )
        return PriceSeries(series, symbol=symbol)
    return _make


@pytest.fixture
def rng():
    return np.random.default_rng(2024)
