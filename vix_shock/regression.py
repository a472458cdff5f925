"""
Shock-Volatility Regression

Fits the volatility detail coefficients on the market-shock detail
coefficients:

    y_i   ~ Normal(mu_i, sigma^2)
    mu_i  = b0 + b1 * x_i
    b0    ~ Normal(0, 10)
    b1    ~ Normal(0, 10)
    sigma ~ Exponential(1)

Two interchangeable strategies share the Regressor interface and the
RegressionResult type:

    OLSRegressor        ordinary least squares (statsmodels). Priors are
                        accepted for interface compatibility but have no
                        effect; the result says so (priors_applied=False).
    BayesianRegressor   random-walk Metropolis over (b0, b1, log sigma),
                        started at the posterior mode. Chains are seeded,
                        so repeated fits are identical.

Reported for both: slope, intercept, their spread (standard error or
MAD-SD), 95% interval, sigma, R^2, n, log-likelihood, AIC and BIC. The
Bayesian fit adds WAIC, split R-hat and the acceptance rate.
"""

from __future__ import annotations

import json
import logging
import warnings
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
from scipy import stats
from scipy.optimize import minimize
from scipy.special import logsumexp

from vix_shock.alignment import AlignedPair
from vix_shock.config import (
    PRIORS,
    REGRESSION,
    SAMPLER,
    RegressionConfig,
    RegressionPriors,
    SamplerConfig,
)
from vix_shock.exceptions import DegenerateInputError, InsufficientSampleError

logger = logging.getLogger(__name__)

RESULT_VERSION: str = "1.0.0"
LOG_2PI: float = float(np.log(2 * np.pi))


# =============================================================================
# ENUMERATIONS
# =============================================================================

class RegressionMethod(Enum):
    """Estimation strategy."""
    OLS = "ols"
    BAYESIAN = "bayesian"


# =============================================================================
# RESULT
# =============================================================================

@dataclass
class RegressionResult:
    """
    Fitted shock-volatility regression.

    For OLS the *_se fields are standard errors and the intervals are
    confidence intervals; for the Bayesian fit point estimates are
    posterior medians, *_se are MAD-SD spreads and the intervals are
    central credible intervals.
    """
    method: RegressionMethod
    intercept: float
    slope: float
    intercept_se: float
    slope_se: float
    sigma: float
    r_squared: float
    n_obs: int
    log_likelihood: float
    aic: float
    bic: float
    intercept_ci: Tuple[float, float]
    slope_ci: Tuple[float, float]

    # OLS only
    adj_r_squared: Optional[float] = None
    intercept_p_value: Optional[float] = None
    slope_p_value: Optional[float] = None

    # Bayesian only
    waic: Optional[float] = None
    p_waic: Optional[float] = None
    acceptance_rate: Optional[float] = None
    r_hat: Optional[Dict[str, float]] = None
    draws: Optional[int] = None

    priors: Optional[Dict[str, float]] = None
    priors_applied: bool = False
    level: int = 1
    lag: Optional[int] = None
    notes: List[str] = field(default_factory=list)
    version: str = RESULT_VERSION

    @property
    def is_bayesian(self) -> bool:
        return self.method == RegressionMethod.BAYESIAN

    def predict(self, x: Union[float, Sequence[float], np.ndarray]) -> np.ndarray:
        """Expected volatility detail for shock detail(s) x."""
        return self.intercept + self.slope * np.asarray(x, dtype=float)

    # -------------------------------------------------------------------------
    # Serialization
    # -------------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        out: Dict[str, Any] = {}
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, Enum):
                value = value.value
            elif isinstance(value, tuple):
                value = [float(v) for v in value]
            elif isinstance(value, (np.floating, np.integer)):
                value = value.item()
            out[f.name] = value
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RegressionResult":
        known = {f.name for f in fields(cls)}
        kwargs = {k: v for k, v in data.items() if k in known}
        kwargs["method"] = RegressionMethod(kwargs["method"])
        kwargs["intercept_ci"] = tuple(kwargs["intercept_ci"])
        kwargs["slope_ci"] = tuple(kwargs["slope_ci"])
        kwargs["notes"] = list(kwargs.get("notes") or [])
        return cls(**kwargs)

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), indent=2)

    @classmethod
    def from_json(cls, text: str) -> "RegressionResult":
        return cls.from_dict(json.loads(text))

    def summary(self) -> str:
        """One-line summary for logs and console reports."""
        spread = "MAD-SD" if self.is_bayesian else "SE"
        line = (
            f"{self.method.value}: b1={self.slope:+.4f} ({spread} {self.slope_se:.4f}), "
            f"b0={self.intercept:+.4f}, R2={self.r_squared:.4f}, n={self.n_obs}"
        )
        if self.waic is not None:
            line += f", WAIC={self.waic:.1f}"
        return line


# =============================================================================
# STRATEGY INTERFACE
# =============================================================================

class Regressor(ABC):
    """Common interface of the regression strategies."""

    method: RegressionMethod

    def __init__(
        self,
        priors: Optional[RegressionPriors] = None,
        min_points: int = REGRESSION.min_points
    ):
        self.priors = priors or PRIORS
        self.min_points = min_points

    def _validate(self, pair: AlignedPair) -> Tuple[np.ndarray, np.ndarray]:
        x = np.asarray(pair.x, dtype=float)
        y = np.asarray(pair.y, dtype=float)

        if len(x) < self.min_points:
            raise InsufficientSampleError(
                f"Regression needs at least {self.min_points} aligned points, got {len(x)}"
            )
        if not (np.all(np.isfinite(x)) and np.all(np.isfinite(y))):
            raise DegenerateInputError("Aligned coefficients contain non-finite values")
        if np.ptp(x) == 0:
            raise DegenerateInputError("Independent variable has zero variance")
        return x, y

    def fit(self, pair: AlignedPair) -> RegressionResult:
        """
        Fit y on x.

        Raises:
            InsufficientSampleError: fewer than min_points pairs
            DegenerateInputError: constant or non-finite x
        """
        x, y = self._validate(pair)
        result = self._fit(x, y)
        result.level = pair.level
        logger.debug(f"Level {pair.level} regression: {result.summary()}")
        return result

    @abstractmethod
    def _fit(self, x: np.ndarray, y: np.ndarray) -> RegressionResult:
        ...


# =============================================================================
# OLS
# =============================================================================

class OLSRegressor(Regressor):
    """Least-squares fit; priors are recorded but not applied."""

    method = RegressionMethod.OLS

    def __init__(
        self,
        priors: Optional[RegressionPriors] = None,
        min_points: int = REGRESSION.min_points,
        alpha: float = 0.05
    ):
        super().__init__(priors, min_points)
        self.alpha = alpha
        self._priors_given = priors is not None
        if self._priors_given:
            logger.info("OLS regression ignores the supplied priors")

    def _fit(self, x: np.ndarray, y: np.ndarray) -> RegressionResult:
        import statsmodels.api as sm

        X = sm.add_constant(x, has_constant="add")
        with warnings.catch_warnings(), np.errstate(divide="ignore", invalid="ignore"):
            warnings.simplefilter("ignore")
            model = sm.OLS(y, X).fit()
            conf = np.asarray(model.conf_int(alpha=self.alpha))
            p_values = np.asarray(model.pvalues, dtype=float)
            llf = float(model.llf)
            aic = float(model.aic)
            bic = float(model.bic)

        params = np.asarray(model.params, dtype=float)
        bse = np.asarray(model.bse, dtype=float)

        notes = ["Least-squares fit: priors not applied"]

        return RegressionResult(
            method=self.method,
            intercept=float(params[0]),
            slope=float(params[1]),
            intercept_se=float(bse[0]),
            slope_se=float(bse[1]),
            sigma=float(np.sqrt(model.scale)),
            r_squared=float(model.rsquared),
            adj_r_squared=float(model.rsquared_adj),
            n_obs=int(model.nobs),
            log_likelihood=llf,
            aic=aic,
            bic=bic,
            intercept_ci=(float(conf[0, 0]), float(conf[0, 1])),
            slope_ci=(float(conf[1, 0]), float(conf[1, 1])),
            intercept_p_value=float(p_values[0]),
            slope_p_value=float(p_values[1]),
            priors=self.priors.to_dict() if self._priors_given else None,
            priors_applied=False,
            notes=notes,
        )


# =============================================================================
# BAYESIAN (RANDOM-WALK METROPOLIS)
# =============================================================================

def _normal_loglik(y: np.ndarray, mu: np.ndarray, sigma) -> np.ndarray:
    """Pointwise Gaussian log-density; broadcasts over draws."""
    z = (y - mu) / sigma
    return -0.5 * LOG_2PI - np.log(sigma) - 0.5 * z * z


def split_r_hat(chains: np.ndarray) -> float:
    """
    Split R-hat (Gelman et al., 2013) for one parameter.

    Args:
        chains: Array of shape (n_chains, n_draws)
    """
    n_draws = chains.shape[1] // 2
    if n_draws < 2:
        return float("nan")
    halves = np.concatenate([chains[:, :n_draws], chains[:, n_draws:2 * n_draws]], axis=0)
    within = np.mean(np.var(halves, axis=1, ddof=1))
    between = n_draws * np.var(np.mean(halves, axis=1), ddof=1)
    if within <= 0:
        return float("nan")
    var_hat = (n_draws - 1) / n_draws * within + between / n_draws
    return float(np.sqrt(var_hat / within))


class BayesianRegressor(Regressor):
    """
    Sampling-based Bayesian linear regression.

    Parameters are sampled on (b0, b1, log sigma) so the sampler moves on
    an unconstrained space; the log-Jacobian of the sigma transform is
    added to the log posterior.

    Usage:
        regressor = BayesianRegressor()
        result = regressor.fit(aligned_pair)
        print(result.slope, result.slope_ci, result.waic)
    """

    method = RegressionMethod.BAYESIAN

    PARAM_NAMES: Tuple[str, str, str] = ("intercept", "slope", "sigma")
    # Optimal random-walk scale for a 3-dimensional target (Roberts et al., 1997)
    PROPOSAL_SCALE: float = 2.38 ** 2 / 3
    R_HAT_WARNING: float = 1.05

    def __init__(
        self,
        priors: Optional[RegressionPriors] = None,
        sampler: Optional[SamplerConfig] = None,
        min_points: int = REGRESSION.min_points
    ):
        super().__init__(priors, min_points)
        self.sampler = sampler or SAMPLER

    def log_posterior(self, theta: np.ndarray, x: np.ndarray, y: np.ndarray) -> float:
        """Unnormalized log posterior of (b0, b1, log sigma)."""
        b0, b1, log_sigma = theta
        sigma = np.exp(log_sigma)
        if not np.isfinite(sigma) or sigma <= 0:
            return -np.inf

        ll = float(np.sum(_normal_loglik(y, b0 + b1 * x, sigma)))
        pr = self.priors
        coefs = np.array([b0, b1])
        lp = (
            float(np.sum(_normal_loglik(coefs, pr.coef_loc, pr.coef_scale)))
            + np.log(pr.sigma_rate) - pr.sigma_rate * sigma
            + log_sigma
        )
        return ll + float(lp)

    def _posterior_mode(
        self,
        x: np.ndarray,
        y: np.ndarray,
        intercept: float,
        slope: float,
        resid_sd: float
    ) -> Tuple[np.ndarray, np.ndarray]:
        """MAP estimate and a proposal covariance from the inverse Hessian."""
        start = np.array([intercept, slope, np.log(resid_sd)])
        result = minimize(
            lambda t: -self.log_posterior(t, x, y),
            start,
            method="BFGS",
        )
        mode = result.x if np.all(np.isfinite(result.x)) else start

        cov = np.asarray(getattr(result, "hess_inv", np.eye(3)), dtype=float)
        if not np.all(np.isfinite(cov)) or np.any(np.linalg.eigvalsh((cov + cov.T) / 2) <= 0):
            se = resid_sd / np.sqrt(len(x))
            cov = np.diag([se ** 2, (se / max(np.std(x), 1e-12)) ** 2, 0.5 / len(x)])
        cov = (cov + cov.T) / 2
        return mode, cov

    def _run_chain(
        self,
        chain: int,
        mode: np.ndarray,
        cov: np.ndarray,
        x: np.ndarray,
        y: np.ndarray
    ) -> Tuple[np.ndarray, float]:
        cfg = self.sampler
        rng = np.random.default_rng(cfg.seed + chain)
        proposal_cov = self.PROPOSAL_SCALE * cov

        current = mode + rng.multivariate_normal(np.zeros(3), 0.25 * cov)
        current_lp = self.log_posterior(current, x, y)
        if not np.isfinite(current_lp):
            current, current_lp = mode.copy(), self.log_posterior(mode, x, y)

        steps = rng.multivariate_normal(np.zeros(3), proposal_cov, size=cfg.iterations)
        log_u = np.log(rng.uniform(size=cfg.iterations))

        samples = np.empty((cfg.iterations, 3))
        accepted = 0
        for i in range(cfg.iterations):
            proposal = current + steps[i]
            proposal_lp = self.log_posterior(proposal, x, y)
            if log_u[i] < proposal_lp - current_lp:
                current, current_lp = proposal, proposal_lp
                if i >= cfg.warmup:
                    accepted += 1
            samples[i] = current

        kept = samples[cfg.warmup:]
        return kept, accepted / len(kept)

    def _exact_fit(self, x: np.ndarray, y: np.ndarray, intercept: float, slope: float) -> RegressionResult:
        """
        Noise-free data: sigma has no posterior mode (the density grows
        without bound as sigma -> 0), so the limiting point is reported
        with zero spread instead of sampling.
        """
        message = "Zero residual variance: exact least-squares line reported, no posterior draws"
        logger.warning(message)
        n = len(x)
        return RegressionResult(
            method=self.method,
            intercept=float(intercept),
            slope=float(slope),
            intercept_se=0.0,
            slope_se=0.0,
            sigma=0.0,
            r_squared=1.0,
            n_obs=n,
            log_likelihood=float("inf"),
            aic=float("-inf"),
            bic=float("-inf"),
            intercept_ci=(float(intercept), float(intercept)),
            slope_ci=(float(slope), float(slope)),
            draws=0,
            priors=self.priors.to_dict(),
            priors_applied=False,
            notes=[message],
        )

    def _fit(self, x: np.ndarray, y: np.ndarray) -> RegressionResult:
        cfg = self.sampler
        slope, intercept = np.polyfit(x, y, 1)
        resid_sd = float(np.std(y - (intercept + slope * x)))
        if resid_sd <= 1e-12 * max(1.0, float(np.std(y))):
            return self._exact_fit(x, y, intercept, slope)

        mode, cov = self._posterior_mode(x, y, intercept, slope, resid_sd)

        runs = [self._run_chain(c, mode, cov, x, y) for c in range(cfg.chains)]
        chains = np.stack([r[0] for r in runs])          # (chains, draws, 3)
        acceptance = float(np.mean([r[1] for r in runs]))
        chains[..., 2] = np.exp(chains[..., 2])          # log sigma -> sigma

        draws = chains.reshape(-1, 3)
        b0, b1, sigma = draws[:, 0], draws[:, 1], draws[:, 2]
        n = len(x)

        medians = np.median(draws, axis=0)
        mad_sd = stats.median_abs_deviation(draws, axis=0, scale="normal")
        tail = (1 - cfg.credible_mass) / 2
        lower = np.quantile(draws, tail, axis=0)
        upper = np.quantile(draws, 1 - tail, axis=0)

        # Bayesian R^2 (Gelman et al., 2019), one value per draw
        mu = b0[:, None] + b1[:, None] * x[None, :]
        var_fit = np.var(mu, axis=1)
        var_res = np.var(y[None, :] - mu, axis=1)
        r2 = float(np.median(var_fit / (var_fit + var_res)))

        # WAIC from the pointwise log-likelihood matrix (draws x n)
        pointwise = _normal_loglik(y[None, :], mu, sigma[:, None])
        lppd = float(np.sum(logsumexp(pointwise, axis=0) - np.log(len(draws))))
        p_waic = float(np.sum(np.var(pointwise, axis=0, ddof=1)))
        waic = -2.0 * (lppd - p_waic)

        llf = float(np.sum(_normal_loglik(y, medians[0] + medians[1] * x, medians[2])))
        k = 3

        r_hat = {
            name: split_r_hat(chains[:, :, j])
            for j, name in enumerate(self.PARAM_NAMES)
        }
        notes: List[str] = []
        unconverged = [name for name, v in r_hat.items() if np.isfinite(v) and v > self.R_HAT_WARNING]
        if unconverged:
            message = f"R-hat above {self.R_HAT_WARNING} for {', '.join(unconverged)}"
            logger.warning(message)
            notes.append(message)

        logger.info(
            f"Sampled {cfg.chains} chains x {cfg.iterations - cfg.warmup} draws "
            f"(acceptance {acceptance:.0%})"
        )

        return RegressionResult(
            method=self.method,
            intercept=float(medians[0]),
            slope=float(medians[1]),
            intercept_se=float(mad_sd[0]),
            slope_se=float(mad_sd[1]),
            sigma=float(medians[2]),
            r_squared=r2,
            n_obs=n,
            log_likelihood=llf,
            aic=float(2 * k - 2 * llf),
            bic=float(k * np.log(n) - 2 * llf),
            intercept_ci=(float(lower[0]), float(upper[0])),
            slope_ci=(float(lower[1]), float(upper[1])),
            waic=waic,
            p_waic=p_waic,
            acceptance_rate=acceptance,
            r_hat=r_hat,
            draws=int(len(draws)),
            priors=self.priors.to_dict(),
            priors_applied=True,
            notes=notes,
        )


# =============================================================================
# FACTORY
# =============================================================================

def make_regressor(
    method: Union[str, RegressionMethod] = RegressionMethod.OLS,
    config: Optional[RegressionConfig] = None
) -> Regressor:
    """Build a regressor for the given method name."""
    config = config or REGRESSION
    method = RegressionMethod(method)
    if method == RegressionMethod.BAYESIAN:
        return BayesianRegressor(config.priors, config.sampler, config.min_points)
    return OLSRegressor(config.priors, min_points=config.min_points)


def fit_regression(
    pair: AlignedPair,
    method: Union[str, RegressionMethod] = RegressionMethod.OLS,
    config: Optional[RegressionConfig] = None
) -> RegressionResult:
    """
    Convenience wrapper: regress volatility details on shock details.

    Example:
        >>> result = fit_regression(pair, method="bayesian")
        >>> print(result.summary())
    """
    return make_regressor(method, config).fit(pair)
