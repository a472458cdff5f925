"""
Market Shock Extraction

Fits an ARIMA(p, d, q) model to a monthly return series and keeps the
residuals: the part of each month's return that the series' own history
does not explain.

Order selection
---------------
    d: chosen by repeated KPSS tests (H0 = stationary) at kpss_alpha,
       capped at max_differencing, unless explicit candidates are given.
    p, q: exhaustive search over the configured grid; every candidate is
       fitted by exact maximum likelihood (statsmodels state space) and
       ranked by the information criterion (AICc by default). Ties go to
       the model with fewer parameters, then the smaller (p, q).
    A mean term is estimated when d = 0.

Residuals at the start of the sample
------------------------------------
    KALMAN       one-step-ahead prediction errors of the fitted model;
                 the ARMA part starts from its stationary distribution,
                 the integrated part from a diffuse prior.
    CONDITIONAL  pre-sample shocks are zero and pre-sample (differenced)
                 values sit at the fitted mean; the first d residuals are 0.

Both rules are deterministic: the optimizer starts from fixed start
parameters and no random numbers are drawn.
"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd

from vix_shock.config import (
    SHOCK_MODEL,
    InformationCriterion,
    InitializationRule,
    ShockModelConfig,
)
from vix_shock.exceptions import InsufficientDataError, ModelFitError
from vix_shock.returns import ReturnSeries

logger = logging.getLogger(__name__)


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class ArimaOrder:
    """ARIMA order with the mean-term flag."""
    p: int
    d: int
    q: int

    @property
    def include_mean(self) -> bool:
        return self.d == 0

    @property
    def n_params(self) -> int:
        # AR + MA + mean + innovation variance
        return self.p + self.q + int(self.include_mean) + 1

    def as_tuple(self) -> Tuple[int, int, int]:
        return (self.p, self.d, self.q)

    def __str__(self) -> str:
        return f"ARIMA({self.p},{self.d},{self.q})"


@dataclass
class CandidateFit:
    """One fitted candidate of the order search."""
    order: ArimaOrder
    criterion_value: float
    log_likelihood: float
    results: object

    @property
    def rank_key(self) -> Tuple[float, int, int, int, int]:
        o = self.order
        return (self.criterion_value, o.n_params, o.p, o.q, o.d)


@dataclass(frozen=True)
class ShockSeries:
    """
    Residuals of the selected model, aligned one-to-one with the returns.

    values[t] = observed[t] - fitted[t]
    """
    values: pd.Series
    fitted: pd.Series
    order: ArimaOrder
    mean: float
    ar_params: Tuple[float, ...]
    ma_params: Tuple[float, ...]
    sigma2: float
    criterion: InformationCriterion
    criterion_value: float
    log_likelihood: float
    initialization: InitializationRule
    candidates_tried: int
    candidates_failed: int
    symbol: str = ""

    def __len__(self) -> int:
        return len(self.values)

    @property
    def dates(self) -> pd.DatetimeIndex:
        return self.values.index

    def to_numpy(self) -> np.ndarray:
        return self.values.to_numpy(dtype=float, copy=True)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({
            "date": self.values.index,
            "fitted": self.fitted.to_numpy(),
            "shock": self.values.to_numpy(),
        })

    def summary(self) -> Dict[str, object]:
        return {
            "symbol": self.symbol,
            "order": list(self.order.as_tuple()),
            "include_mean": self.order.include_mean,
            "mean": self.mean,
            "ar_params": list(self.ar_params),
            "ma_params": list(self.ma_params),
            "sigma2": self.sigma2,
            "criterion": self.criterion.value,
            "criterion_value": self.criterion_value,
            "log_likelihood": self.log_likelihood,
            "initialization": self.initialization.value,
            "candidates_tried": self.candidates_tried,
            "candidates_failed": self.candidates_failed,
        }


# =============================================================================
# RESIDUAL RECURSION
# =============================================================================

def conditional_residuals(
    y: Sequence[float],
    ar: Sequence[float] = (),
    ma: Sequence[float] = (),
    mean: float = 0.0,
    d: int = 0
) -> np.ndarray:
    """
    ARMA residuals with zero pre-sample shocks.

    With w = diff(y, d) and z = w - mean:

        e_t = z_t - sum_i ar[i] * z_{t-1-i} - sum_j ma[j] * e_{t-1-j}

    where pre-sample z and e are zero. The first d positions (no
    differenced value exists) are 0, so the output has len(y) entries.
    """
    y = np.asarray(y, dtype=float)
    ar = np.asarray(ar, dtype=float)
    ma = np.asarray(ma, dtype=float)

    w = np.diff(y, n=d) if d > 0 else y
    z = w - mean
    e = np.zeros(len(w))

    for t in range(len(w)):
        value = z[t]
        for i in range(min(len(ar), t)):
            value -= ar[i] * z[t - 1 - i]
        for j in range(min(len(ma), t)):
            value -= ma[j] * e[t - 1 - j]
        e[t] = value

    return np.concatenate([np.zeros(min(d, len(y))), e])


# =============================================================================
# SHOCK EXTRACTOR
# =============================================================================

class ShockExtractor:
    """
    Automatic ARIMA order search with residual extraction.

    Usage:
        extractor = ShockExtractor()
        shocks = extractor.extract(monthly_index_returns)
    """

    MIN_OBSERVATIONS: int = 3

    def __init__(self, config: Optional[ShockModelConfig] = None):
        self.config = config or SHOCK_MODEL

    # -------------------------------------------------------------------------
    # Differencing
    # -------------------------------------------------------------------------

    def select_differencing(self, y: np.ndarray) -> Tuple[int, ...]:
        """Differencing orders to search."""
        if self.config.differencing is not None:
            return tuple(sorted(set(self.config.differencing)))

        from statsmodels.tsa.stattools import kpss

        d = 0
        x = np.asarray(y, dtype=float)
        while d < self.config.max_differencing and len(x) > 3:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                p_value = float(kpss(x, regression="c", nlags="auto")[1])
            if p_value >= self.config.kpss_alpha:
                break
            d += 1
            x = np.diff(x)
            logger.debug(f"KPSS p={p_value:.3f}: differencing to d={d}")

        return (d,)

    # -------------------------------------------------------------------------
    # Candidate fitting
    # -------------------------------------------------------------------------

    def _fit_candidate(self, y: np.ndarray, order: ArimaOrder) -> Optional[CandidateFit]:
        """Fit one order; None when the fit raises or does not converge."""
        from statsmodels.tsa.arima.model import ARIMA

        if len(y) - order.d <= order.n_params:
            return None

        try:
            with warnings.catch_warnings():
                warnings.simplefilter("ignore")
                model = ARIMA(
                    y,
                    order=order.as_tuple(),
                    trend="c" if order.include_mean else "n",
                )
                results = model.fit(method_kwargs={"maxiter": self.config.max_iterations})
        except (ValueError, np.linalg.LinAlgError) as e:
            logger.debug(f"{order} failed: {e}")
            return None

        retvals = getattr(results, "mle_retvals", None) or {}
        if not retvals.get("converged", True):
            logger.debug(f"{order} did not converge")
            return None

        value = float(getattr(results, self.config.criterion.value))
        llf = float(results.llf)
        if not (np.isfinite(value) and np.isfinite(llf)):
            logger.debug(f"{order} produced a non-finite criterion")
            return None

        logger.debug(f"{order}: {self.config.criterion.value}={value:.3f}")
        return CandidateFit(order=order, criterion_value=value, log_likelihood=llf, results=results)

    def search(self, y: np.ndarray) -> Tuple[CandidateFit, int, int]:
        """
        Fit every candidate order and return (best, tried, failed).

        Raises:
            ModelFitError: no candidate could be fitted
        """
        fits: List[CandidateFit] = []
        tried = 0

        for d in self.select_differencing(y):
            for p in self.config.ar_orders:
                for q in self.config.ma_orders:
                    tried += 1
                    fit = self._fit_candidate(y, ArimaOrder(p, d, q))
                    if fit is not None:
                        fits.append(fit)

        failed = tried - len(fits)
        if not fits:
            raise ModelFitError(f"Order search failed for all {tried} candidate orders")

        best = min(fits, key=lambda f: f.rank_key)
        return best, tried, failed

    # -------------------------------------------------------------------------
    # Residuals
    # -------------------------------------------------------------------------

    def _residuals(self, y: np.ndarray, best: CandidateFit, params: Dict[str, float]) -> np.ndarray:
        if self.config.initialization == InitializationRule.CONDITIONAL:
            results = best.results
            return conditional_residuals(
                y,
                ar=np.asarray(results.arparams) if best.order.p else (),
                ma=np.asarray(results.maparams) if best.order.q else (),
                mean=params.get("const", 0.0),
                d=best.order.d,
            )
        return np.asarray(best.results.resid, dtype=float)

    def extract(self, returns: ReturnSeries) -> ShockSeries:
        """
        Fit the shock model and return residuals aligned with the input.

        Raises:
            InsufficientDataError: fewer than MIN_OBSERVATIONS returns
            ModelFitError: every candidate order failed
        """
        label = returns.symbol or "series"
        y = returns.to_numpy()

        if len(y) < self.MIN_OBSERVATIONS:
            raise InsufficientDataError(
                f"{label}: need at least {self.MIN_OBSERVATIONS} returns to fit a shock model, got {len(y)}",
                stage="shock_model",
            )

        best, tried, failed = self.search(y)
        if failed:
            logger.warning(f"{label}: {failed}/{tried} candidate orders failed to fit")

        results = best.results
        params = dict(zip(results.model.param_names, np.asarray(results.params, dtype=float)))
        resid = self._residuals(y, best, params)

        logger.info(
            f"{label}: selected {best.order} "
            f"({self.config.criterion.value}={best.criterion_value:.2f}, "
            f"{tried} candidates)"
        )

        index = returns.dates
        return ShockSeries(
            values=pd.Series(resid, index=index, name="shock"),
            fitted=pd.Series(y - resid, index=index, name="fitted"),
            order=best.order,
            mean=float(params.get("const", 0.0)),
            ar_params=tuple(float(v) for v in (results.arparams if best.order.p else ())),
            ma_params=tuple(float(v) for v in (results.maparams if best.order.q else ())),
            sigma2=float(params.get("sigma2", np.nan)),
            criterion=self.config.criterion,
            criterion_value=best.criterion_value,
            log_likelihood=best.log_likelihood,
            initialization=self.config.initialization,
            candidates_tried=tried,
            candidates_failed=failed,
            symbol=returns.symbol,
        )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def fit_shock_model(
    series: ReturnSeries,
    order_bounds: Optional[ShockModelConfig] = None
) -> ShockSeries:
    """
    Extract market shocks from a return series.

    Example:
        >>> shocks = fit_shock_model(sp500_returns)
        >>> print(shocks.order, len(shocks) == len(sp500_returns))
    """
    return ShockExtractor(order_bounds).extract(series)
