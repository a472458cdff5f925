"""
Lag Scan

Repeats decomposition, alignment and regression with the volatility
series shifted forward by each lag, to find the horizon at which market
shocks are most strongly associated with volatility.

For lag k the pairs are (shock[t], volatility[t + k]) for
t = 0 .. m - 1, with m = min(len(shock), len(volatility) - k); the
non-overlapping tail is dropped. A failing lag is recorded with its
stage and message and the scan carries on; only if every lag fails does
the scan itself fail.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np

from vix_shock.alignment import AlignedPair, align_details
from vix_shock.config import LAG_SCAN, REGRESSION, LagScanConfig
from vix_shock.exceptions import InsufficientDataError, LagScanError, ShockAnalysisError
from vix_shock.regression import OLSRegressor, RegressionResult, Regressor
from vix_shock.returns import ReturnSeries
from vix_shock.shock_model import ShockSeries
from vix_shock.wavelet import HaarDecomposer

logger = logging.getLogger(__name__)

SeriesInput = Union[ShockSeries, ReturnSeries, Sequence[float], np.ndarray]


@dataclass
class LagOutcome:
    """Result (or failure) of one lag."""
    lag: int
    result: Optional[RegressionResult] = None
    pair: Optional[AlignedPair] = None
    error: Optional[str] = None
    failed_stage: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.result is not None

    @property
    def r_squared(self) -> float:
        return self.result.r_squared if self.result is not None else float("nan")


@dataclass
class LagScanResult:
    """Per-lag outcomes in ascending lag order plus the best lag."""
    outcomes: Dict[int, LagOutcome] = field(default_factory=dict)
    best_lag: Optional[int] = None

    @property
    def results(self) -> Dict[int, RegressionResult]:
        """Successful lags only, in ascending lag order."""
        return {lag: o.result for lag, o in self.outcomes.items() if o.succeeded}

    @property
    def failures(self) -> Dict[int, LagOutcome]:
        return {lag: o for lag, o in self.outcomes.items() if not o.succeeded}

    @property
    def best(self) -> Optional[RegressionResult]:
        if self.best_lag is None:
            return None
        return self.outcomes[self.best_lag].result

    def r_squared_table(self) -> List[Tuple[int, float]]:
        return [(lag, o.r_squared) for lag, o in self.outcomes.items()]

    def to_dict(self) -> Dict[str, object]:
        return {
            "best_lag": self.best_lag,
            "lags": {
                str(lag): {
                    "r_squared": o.r_squared if o.succeeded else None,
                    "n_obs": o.result.n_obs if o.succeeded else None,
                    "result": o.result.to_dict() if o.succeeded else None,
                    "error": o.error,
                    "failed_stage": o.failed_stage,
                }
                for lag, o in self.outcomes.items()
            },
        }


def _values(series: SeriesInput) -> np.ndarray:
    if isinstance(series, (ShockSeries, ReturnSeries)):
        return series.to_numpy()
    return np.asarray(series, dtype=float).ravel()


def shift_pair(shocks: np.ndarray, volatility: np.ndarray, lag: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Pair shock[t] with volatility[t + lag] over the common overlap.

    Raises:
        InsufficientDataError: the lag leaves fewer than two pairs
    """
    if lag < 0:
        raise ValueError(f"Lag must be non-negative, got {lag}")
    m = min(len(shocks), len(volatility) - lag)
    if m < 2:
        raise InsufficientDataError(
            f"Lag {lag} leaves {max(m, 0)} overlapping observations",
            stage="lag_scan",
        )
    return shocks[:m], volatility[lag:lag + m]


def select_best_lag(outcomes: Dict[int, LagOutcome]) -> Optional[int]:
    """Lag with the highest R^2; ties go to the smallest lag."""
    best_lag: Optional[int] = None
    best_r2 = -np.inf
    for lag in sorted(outcomes):
        outcome = outcomes[lag]
        if not outcome.succeeded or not np.isfinite(outcome.r_squared):
            continue
        if outcome.r_squared > best_r2:
            best_lag, best_r2 = lag, outcome.r_squared
    return best_lag


class LagScanner:
    """
    Decompose/align/regress across a set of lags.

    Usage:
        scanner = LagScanner(regressor=BayesianRegressor())
        scan = scanner.scan(shocks, vix_returns)
        print(scan.best_lag, scan.best.summary())
    """

    def __init__(
        self,
        decomposer: Optional[HaarDecomposer] = None,
        regressor: Optional[Regressor] = None,
        level: int = REGRESSION.target_level,
        config: Optional[LagScanConfig] = None
    ):
        self.decomposer = decomposer or HaarDecomposer()
        self.regressor = regressor or OLSRegressor()
        self.level = level
        self.config = config or LAG_SCAN

    def run_lag(self, shocks: np.ndarray, volatility: np.ndarray, lag: int) -> LagOutcome:
        """
        Fit one lag; pipeline and numerical library errors are captured
        on the outcome with the stage that raised them.
        """
        stage = "lag_scan"
        try:
            x_series, y_series = shift_pair(shocks, volatility, lag)
            stage = "decomposition"
            x_dec = self.decomposer.decompose(x_series)
            y_dec = self.decomposer.decompose(y_series)
            stage = "alignment"
            pair = align_details(x_dec, y_dec, level=self.level)
            stage = "regression"
            result = self.regressor.fit(pair)
        except ShockAnalysisError as e:
            logger.warning(f"Lag {lag} failed at {e.stage}: {e}")
            return LagOutcome(lag=lag, error=str(e), failed_stage=e.stage)
        except (ValueError, np.linalg.LinAlgError) as e:
            logger.warning(f"Lag {lag} failed at {stage}: {type(e).__name__}: {e}")
            return LagOutcome(lag=lag, error=f"{type(e).__name__}: {e}", failed_stage=stage)

        result.lag = lag
        return LagOutcome(lag=lag, result=result, pair=pair)

    def scan(
        self,
        shocks: SeriesInput,
        volatility: SeriesInput,
        lags: Optional[Sequence[int]] = None
    ) -> LagScanResult:
        """
        Scan the configured lags.

        Raises:
            LagScanError: every lag failed
        """
        lags = sorted(set(lags if lags is not None else self.config.lags))
        x = _values(shocks)
        y = _values(volatility)

        outcomes: Dict[int, LagOutcome] = {}
        for lag in lags:
            outcome = self.run_lag(x, y, lag)
            outcomes[lag] = outcome
            if outcome.succeeded:
                logger.info(f"Lag {lag}: R2={outcome.r_squared:.4f} (n={outcome.result.n_obs})")

        best_lag = select_best_lag(outcomes)
        if best_lag is None:
            failures = {lag: f"{o.failed_stage}: {o.error}" for lag, o in outcomes.items()}
            raise LagScanError(f"All {len(lags)} lags failed", failures=failures)

        logger.info(f"Best lag: {best_lag} (R2={outcomes[best_lag].r_squared:.4f})")
        return LagScanResult(outcomes=outcomes, best_lag=best_lag)


def scan_lags(
    shocks: SeriesInput,
    volatility: SeriesInput,
    lags: Sequence[int] = LAG_SCAN.lags,
    regressor: Optional[Regressor] = None
) -> LagScanResult:
    """Convenience wrapper around LagScanner.scan."""
    return LagScanner(regressor=regressor).scan(shocks, volatility, lags)
