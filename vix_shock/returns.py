"""
Monthly Return Aggregation

Turns a daily closing-price series into a monthly percentage-return series.

    1. Non-finite and non-positive daily prices are removed (counted,
       never filled) before months are formed.
    2. Each calendar month is represented by its last observed close and
       stamped at the month end ("last of month").
    3. Months with no observation stay undefined on the grid, so a return
       is never computed across a gap.
    4. return_t = (p_t - p_{t-1}) / p_{t-1} * 100 (or the log variant).
       Undefined returns (gaps) are dropped and counted.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd

from vix_shock.config import RETURNS, ReturnConfig, ReturnMethod
from vix_shock.exceptions import InsufficientDataError

logger = logging.getLogger(__name__)

MONTH_END: str = "ME"


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class PriceSeries:
    """
    Ordered (timestamp, close) observations.

    Timestamps must be strictly increasing with no duplicates. The series
    is copied on construction so later changes to the caller's data do
    not leak in.
    """
    prices: pd.Series
    symbol: str = ""

    def __post_init__(self):
        prices = pd.Series(self.prices, dtype=float, copy=True)
        if not isinstance(prices.index, pd.DatetimeIndex):
            prices.index = pd.to_datetime(prices.index)
        if prices.index.tz is not None:
            prices.index = prices.index.tz_localize(None)
        if prices.index.has_duplicates:
            raise ValueError(f"{self.symbol or 'Price series'}: duplicate timestamps")
        if not prices.index.is_monotonic_increasing:
            raise ValueError(f"{self.symbol or 'Price series'}: timestamps must be increasing")
        prices.index.name = "date"
        prices.name = "close"
        object.__setattr__(self, "prices", prices)

    def __len__(self) -> int:
        return len(self.prices)

    @classmethod
    def from_frame(
        cls,
        df: pd.DataFrame,
        column: str = "Close",
        symbol: str = ""
    ) -> "PriceSeries":
        """Build from an OHLCV frame indexed by date (or with a 'date' column)."""
        if column not in df.columns:
            matches = [c for c in df.columns if str(c).lower() == column.lower()]
            if not matches:
                raise ValueError(f"DataFrame must have '{column}' column")
            column = matches[0]
        frame = df
        if not isinstance(frame.index, pd.DatetimeIndex) and "date" in frame.columns:
            frame = frame.set_index("date")
        return cls(frame[column], symbol=symbol)


@dataclass(frozen=True)
class ReturnSeries:
    """Monthly percentage returns stamped at the month end."""
    values: pd.Series
    symbol: str = ""
    method: ReturnMethod = ReturnMethod.SIMPLE
    dropped_prices: int = 0       # Non-finite or non-positive closes removed before grouping
    dropped_returns: int = 0      # Undefined monthly returns removed

    def __len__(self) -> int:
        return len(self.values)

    @property
    def dates(self) -> pd.DatetimeIndex:
        return self.values.index

    def to_numpy(self) -> np.ndarray:
        return self.values.to_numpy(dtype=float, copy=True)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"date": self.values.index, "return": self.values.to_numpy()})

    def summary(self) -> Dict[str, Any]:
        return {
            "symbol": self.symbol,
            "method": self.method.value,
            "observations": len(self),
            "start": str(self.values.index[0].date()) if len(self) else None,
            "end": str(self.values.index[-1].date()) if len(self) else None,
            "dropped_prices": self.dropped_prices,
            "dropped_returns": self.dropped_returns,
        }


# =============================================================================
# AGGREGATION
# =============================================================================

def _valid_prices(prices: PriceSeries) -> pd.Series:
    """Finite, strictly positive closes; anything else cannot anchor a return."""
    raw = prices.prices
    values = raw.to_numpy()
    with np.errstate(invalid="ignore"):
        keep = np.isfinite(values) & (values > 0)
    return raw[keep]


def _month_end_grid(observed: pd.Series) -> pd.Series:
    """Last close per calendar month; months without data are NaN."""
    return observed.resample(MONTH_END).last()


def to_monthly(prices: PriceSeries) -> PriceSeries:
    """
    Representative month-end prices of the observed months.

    Applying this to its own output returns the same series.
    """
    grid = _month_end_grid(_valid_prices(prices))
    return PriceSeries(grid.dropna(), symbol=prices.symbol)


def monthly_returns(
    prices: PriceSeries,
    config: Optional[ReturnConfig] = None
) -> ReturnSeries:
    """
    Convert a daily price series into monthly percentage returns.

    Args:
        prices: Daily closing prices
        config: Return method and scale (default: simple, x100)

    Returns:
        ReturnSeries; its length is the number of months minus one, less
        any undefined returns (reported in dropped_returns)

    Raises:
        InsufficientDataError: fewer than two monthly observations, or no
            defined return at all
    """
    config = config or RETURNS
    label = prices.symbol or "series"

    observed = _valid_prices(prices)
    dropped_prices = len(prices) - len(observed)
    if dropped_prices:
        logger.warning(f"{label}: dropped {dropped_prices} non-finite or non-positive daily prices")

    grid = _month_end_grid(observed)
    n_months = int(grid.notna().sum())
    if n_months < config.min_months:
        raise InsufficientDataError(
            f"{label}: need at least {config.min_months} monthly observations, got {n_months}"
        )

    previous = grid.shift(1)

    with np.errstate(divide="ignore", invalid="ignore"):
        if config.method == ReturnMethod.LOG:
            raw = np.log(grid / previous) * config.scale
        else:
            raw = (grid - previous) / previous * config.scale

    # The first month has no prior reference
    raw = raw.iloc[1:]
    defined = raw[np.isfinite(raw.to_numpy())]
    dropped_returns = len(raw) - len(defined)

    if dropped_returns:
        logger.warning(f"{label}: dropped {dropped_returns} undefined monthly returns")
    if len(defined) == 0:
        raise InsufficientDataError(f"{label}: no defined monthly return")

    defined = defined.astype(float)
    defined.index.name = "date"
    defined.name = "return"

    logger.info(
        f"{label}: {len(defined)} monthly returns "
        f"({defined.index[0].date()} to {defined.index[-1].date()})"
    )

    return ReturnSeries(
        values=defined,
        symbol=prices.symbol,
        method=config.method,
        dropped_prices=dropped_prices,
        dropped_returns=dropped_returns,
    )
