"""
Market Data Acquisition

Thin collaborator that supplies the two daily price series the analysis
needs: the S&P 500 index (^GSPC) and the CBOE Volatility Index (^VIX).

    - Yahoo Finance download with retry and exponential backoff
    - Parquet cache so repeated runs do not refetch
    - Provenance record (source, fetch time, SHA-256 of the closes)
    - Seeded synthetic data for offline runs and tests
"""

from __future__ import annotations

import hashlib
import logging
import time
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import numpy as np
import pandas as pd

from vix_shock.alignment import X_COLUMN, Y_COLUMN
from vix_shock.persistence import write_parquet
from vix_shock.returns import PriceSeries

logger = logging.getLogger(__name__)


# =============================================================================
# DATA PROVENANCE
# =============================================================================

@dataclass
class DataProvenance:
    """
    Tracks the origin of a fetched series for auditability.
    """
    source: str                     # Data source identifier
    symbol: str                     # Ticker symbol
    fetch_timestamp: str            # ISO format timestamp
    date_range: Tuple[str, str]     # (start, end) dates
    record_count: int               # Number of records fetched
    data_hash: str                  # SHA-256 hash of Close prices

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "source": self.source,
            "symbol": self.symbol,
            "fetch_timestamp": self.fetch_timestamp,
            "date_range": list(self.date_range),
            "record_count": self.record_count,
            "data_hash": self.data_hash,
        }


def hash_closes(closes: pd.Series) -> str:
    """Short SHA-256 fingerprint of a close-price series."""
    if len(closes) == 0:
        return ""
    return hashlib.sha256(
        pd.util.hash_pandas_object(closes).values.tobytes()
    ).hexdigest()[:16]


# =============================================================================
# CACHE MANAGER
# =============================================================================

class CacheManager:
    """Parquet-based data caching."""

    def __init__(self, cache_dir: Union[str, Path] = "data/raw_data"):
        self.cache_dir = Path(cache_dir)

    def _path(self, name: str) -> Path:
        return self.cache_dir / f"{name}.parquet"

    def save(self, df: pd.DataFrame, name: str) -> Path:
        """Save a date-indexed DataFrame to Parquet."""
        return write_parquet(df.reset_index(), self._path(name))

    def load(self, name: str) -> Optional[pd.DataFrame]:
        """Load a DataFrame from the Parquet cache."""
        path = self._path(name)
        if not path.exists():
            return None
        df = pd.read_parquet(path)
        if "date" in df.columns:
            df = df.set_index("date")
        return df

    def exists(self, name: str) -> bool:
        return self._path(name).exists()


# =============================================================================
# DATA ACQUISITION
# =============================================================================

class DataAcquisition:
    """
    Yahoo Finance downloads with retry logic.

    Fetches are logged with provenance information.
    """

    def __init__(
        self,
        max_retries: int = 3,
        timeout: int = 30,
        cache: Optional[CacheManager] = None
    ):
        """
        Initialize data acquisition.

        Args:
            max_retries: Maximum retry attempts for failed fetches
            timeout: Request timeout in seconds
            cache: Optional parquet cache consulted before downloading
        """
        self._yf = None
        self.max_retries = max_retries
        self.timeout = timeout
        self.cache = cache

    def _get_yf(self):
        """Lazy load yfinance to avoid import overhead."""
        if self._yf is None:
            import yfinance as yf
            self._yf = yf
        return self._yf

    @staticmethod
    def cache_name(symbol: str, start: str, end: str) -> str:
        clean = symbol.replace("^", "").lower()
        return f"{clean}_{start}_{end}"

    def _download(self, symbol: str, start: str, end: str) -> pd.DataFrame:
        yf = self._get_yf()
        logger.info(f"Fetching {symbol} ({start} to {end})")

        for attempt in range(self.max_retries):
            try:
                data = yf.download(
                    symbol,
                    start=start,
                    end=end,
                    auto_adjust=False,
                    progress=False,
                    timeout=self.timeout,
                )
                if data is None or len(data) == 0:
                    raise ValueError(f"No data returned for {symbol}")
                return data
            except Exception as e:
                if attempt < self.max_retries - 1:
                    wait_time = 2 ** attempt
                    logger.warning(f"Fetch failed: {e}, retrying in {wait_time}s...")
                    time.sleep(wait_time)
                else:
                    raise

        raise ValueError(f"No data returned for {symbol}")

    @staticmethod
    def _normalize_dataframe(df: pd.DataFrame) -> pd.DataFrame:
        """Flatten columns, drop timezone, ensure a DatetimeIndex."""
        df = df.copy()
        if isinstance(df.columns, pd.MultiIndex):
            df.columns = df.columns.get_level_values(0)
        if not isinstance(df.index, pd.DatetimeIndex):
            df.index = pd.to_datetime(df.index)
        if df.index.tz is not None:
            df.index = df.index.tz_localize(None)
        df.index.name = "date"
        df = df.dropna(how="all")
        if "Close" not in df.columns:
            raise ValueError(f"Missing 'Close' column; got {list(df.columns)}")
        return df

    def fetch_close(
        self,
        symbol: str,
        start: str,
        end: str
    ) -> Tuple[PriceSeries, DataProvenance]:
        """
        Daily closes for one symbol.

        Returns:
            Tuple of (price series, provenance record)
        """
        name = self.cache_name(symbol, start, end)
        source = "yahoo_finance"

        df = self.cache.load(name) if self.cache is not None else None
        if df is not None:
            source = "cache"
            logger.info(f"Loaded {symbol} from cache ({len(df):,} rows)")
        else:
            df = self._normalize_dataframe(self._download(symbol, start, end))
            if self.cache is not None:
                self.cache.save(df, name)

        prices = PriceSeries.from_frame(df, column="Close", symbol=symbol)
        provenance = DataProvenance(
            source=source,
            symbol=symbol,
            fetch_timestamp=datetime.now().isoformat(),
            date_range=(start, end),
            record_count=len(prices),
            data_hash=hash_closes(prices.prices),
        )
        return prices, provenance


# =============================================================================
# SYNTHETIC DATA
# =============================================================================

def simulate_price_series(
    start: str = "1993-01-01",
    end: str = "2023-12-31",
    initial_price: float = 100.0,
    annual_drift: float = 0.07,
    annual_volatility: float = 0.18,
    seed: int = 100,
    symbol: str = "SIM"
) -> PriceSeries:
    """
    Seeded geometric random walk on business days.

    Used for offline demo runs and tests; not a market model.
    """
    rng = np.random.default_rng(seed)
    dates = pd.bdate_range(start, end)
    dt = 1.0 / 252
    log_steps = rng.normal(
        (annual_drift - 0.5 * annual_volatility ** 2) * dt,
        annual_volatility * np.sqrt(dt),
        size=len(dates),
    )
    prices = initial_price * np.exp(np.cumsum(log_steps))
    return PriceSeries(pd.Series(prices, index=dates), symbol=symbol)


def simulate_vix_series(
    index_prices: PriceSeries,
    base_level: float = 19.0,
    sensitivity: float = -4.0,
    noise: float = 0.06,
    mean_reversion: float = 0.05,
    seed: int = 101,
    symbol: str = "SIMVIX"
) -> PriceSeries:
    """
    Volatility-index proxy that rises when the simulated index falls.

    Log level follows a mean-reverting process driven by the index's
    daily log returns plus independent noise.
    """
    rng = np.random.default_rng(seed)
    closes = index_prices.prices.to_numpy()
    index_returns = np.concatenate([[0.0], np.diff(np.log(closes))])

    log_base = np.log(base_level)
    level = np.empty(len(closes))
    current = log_base
    for t, r in enumerate(index_returns):
        current += mean_reversion * (log_base - current) + sensitivity * r + noise * rng.normal()
        level[t] = current

    return PriceSeries(
        pd.Series(np.exp(level), index=index_prices.prices.index),
        symbol=symbol,
    )


def simulate_detail_pair(
    n: int = 185,
    slope: float = 0.5,
    sd: float = 2.0,
    seed: int = 100
) -> pd.DataFrame:
    """
    Simulated level-1 coefficient table.

    Market_Return_Detail ~ N(0, sd); VIX_Detail = N(0, sd) + slope * Market_Return_Detail.
    """
    rng = np.random.default_rng(seed)
    x = rng.normal(0.0, sd, size=n)
    y = rng.normal(0.0, sd, size=n) + slope * x
    return pd.DataFrame({X_COLUMN: x, Y_COLUMN: y})
