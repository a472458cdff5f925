"""
Configuration Module for the Market Shock / VIX Wavelet Analysis

This module centralizes all configuration constants, model bounds,
prior parameters and output settings used throughout the pipeline.

All "magic numbers" and configuration values are defined here to ensure:
1. Single source of truth for all constants
2. Easy modification without touching analysis code
3. Transparency in assumptions and thresholds
4. Consistency across all modules

Every configuration object is a frozen dataclass; the module-level
instances at the bottom are the defaults used when a caller passes nothing.
"""

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Optional, Tuple

from vix_shock.exceptions import ConfigurationError


# =============================================================================
# ENUMERATIONS
# =============================================================================

class ReturnMethod(Enum):
    """How consecutive monthly prices are turned into a return."""
    SIMPLE = "simple"   # (p_t - p_{t-1}) / p_{t-1}
    LOG = "log"         # log(p_t / p_{t-1}), continuously compounded


class InformationCriterion(Enum):
    """Criterion used to rank candidate ARIMA orders."""
    AIC = "aic"
    AICC = "aicc"
    BIC = "bic"


class InitializationRule(Enum):
    """Convention for the residuals at the start of the sample."""
    KALMAN = "kalman"            # one-step-ahead errors of the state-space filter
    CONDITIONAL = "conditional"  # zero pre-sample shocks, pre-sample values at the mean


class BoundaryPolicy(Enum):
    """How an odd-length level input is made even before pairing."""
    ZERO_PAD = "zero_pad"   # append 0; energy preserved for every length
    PERIODIC = "periodic"   # append the first element (circular wrap)


class WaveletFilter(Enum):
    """Wavelet filter. Only Haar is supported."""
    HAAR = "haar"


class AnalysisStage(Enum):
    """Enumeration of analysis pipeline steps."""
    AGGREGATION = "Return Aggregation"
    SHOCK_MODEL = "Shock Extraction"
    DECOMPOSITION = "Wavelet Decomposition"
    ALIGNMENT = "Coefficient Alignment"
    REGRESSION = "Shock-Volatility Regression"
    LAG_SCAN = "Lag Scan"
    EXPORT = "Artifact Export"


# =============================================================================
# RETURN AGGREGATION
# =============================================================================

@dataclass(frozen=True)
class ReturnConfig:
    """Monthly return construction."""

    method: ReturnMethod = ReturnMethod.SIMPLE
    scale: float = 100.0           # Percentage returns
    min_months: int = 2            # Need a prior reference month

    def __post_init__(self):
        if self.scale <= 0:
            raise ConfigurationError(f"Return scale must be positive, got {self.scale}")
        if self.min_months < 2:
            raise ConfigurationError("At least two monthly prices are needed for one return")


# =============================================================================
# SHOCK MODEL (ARIMA ORDER SEARCH)
# =============================================================================

@dataclass(frozen=True)
class ShockModelConfig:
    """Bounds and rules for the automatic ARIMA order search."""

    max_ar: int = 5
    max_ma: int = 5
    min_ar: int = 0
    min_ma: int = 0
    # None = choose d by a KPSS unit-root test, otherwise search these values
    differencing: Optional[Tuple[int, ...]] = None
    max_differencing: int = 1
    kpss_alpha: float = 0.05
    criterion: InformationCriterion = InformationCriterion.AICC
    initialization: InitializationRule = InitializationRule.KALMAN
    max_iterations: int = 200

    def __post_init__(self):
        if min(self.min_ar, self.min_ma, self.max_ar, self.max_ma) < 0:
            raise ConfigurationError("ARMA order bounds must be non-negative")
        if self.min_ar > self.max_ar or self.min_ma > self.max_ma:
            raise ConfigurationError(
                f"Empty order range: AR {self.min_ar}-{self.max_ar}, "
                f"MA {self.min_ma}-{self.max_ma}"
            )
        if self.differencing is not None:
            if len(self.differencing) == 0 or min(self.differencing) < 0:
                raise ConfigurationError("Differencing candidates must be non-negative and non-empty")
        if not 0 < self.kpss_alpha < 1:
            raise ConfigurationError(f"kpss_alpha must lie in (0, 1), got {self.kpss_alpha}")

    @property
    def ar_orders(self) -> range:
        return range(self.min_ar, self.max_ar + 1)

    @property
    def ma_orders(self) -> range:
        return range(self.min_ma, self.max_ma + 1)


# =============================================================================
# WAVELET DECOMPOSITION
# =============================================================================

@dataclass(frozen=True)
class DecompositionConfig:
    """Haar transform settings."""

    filter: WaveletFilter = WaveletFilter.HAAR
    boundary: BoundaryPolicy = BoundaryPolicy.ZERO_PAD
    max_level: int = 7

    def __post_init__(self):
        if self.max_level < 1:
            raise ConfigurationError(f"max_level must be >= 1, got {self.max_level}")


# =============================================================================
# REGRESSION
# =============================================================================

@dataclass(frozen=True)
class RegressionPriors:
    """
    Priors for y ~ Normal(b0 + b1 * x, sigma^2).

    b0, b1 ~ Normal(coef_loc, coef_scale); sigma ~ Exponential(sigma_rate).
    Only the Bayesian strategy uses them.
    """

    coef_loc: float = 0.0
    coef_scale: float = 10.0
    sigma_rate: float = 1.0

    def __post_init__(self):
        if self.coef_scale <= 0:
            raise ConfigurationError(f"coef_scale must be positive, got {self.coef_scale}")
        if self.sigma_rate <= 0:
            raise ConfigurationError(f"sigma_rate must be positive, got {self.sigma_rate}")

    def to_dict(self) -> Dict[str, float]:
        return {
            "coef_loc": self.coef_loc,
            "coef_scale": self.coef_scale,
            "sigma_rate": self.sigma_rate,
        }


@dataclass(frozen=True)
class SamplerConfig:
    """Random-walk Metropolis settings for the Bayesian regressor."""

    chains: int = 4
    iterations: int = 2000        # Per chain, warm-up included
    warmup: int = 1000
    seed: int = 42
    credible_mass: float = 0.95

    def __post_init__(self):
        if self.chains < 1:
            raise ConfigurationError("Need at least one chain")
        if self.warmup >= self.iterations:
            raise ConfigurationError(
                f"warmup ({self.warmup}) must be smaller than iterations ({self.iterations})"
            )
        if not 0 < self.credible_mass < 1:
            raise ConfigurationError("credible_mass must lie in (0, 1)")


@dataclass(frozen=True)
class RegressionConfig:
    """Regression stage settings."""

    target_level: int = 1          # Level-1 details: 2-month cycle on monthly data
    min_points: int = 3
    priors: RegressionPriors = field(default_factory=RegressionPriors)
    sampler: SamplerConfig = field(default_factory=SamplerConfig)

    def __post_init__(self):
        if self.target_level < 1:
            raise ConfigurationError(f"target_level must be >= 1, got {self.target_level}")
        if self.min_points < 3:
            raise ConfigurationError("A two-coefficient regression needs at least 3 points")


# =============================================================================
# LAG SCAN
# =============================================================================

@dataclass(frozen=True)
class LagScanConfig:
    """Lags (in months) by which volatility is shifted forward."""

    lags: Tuple[int, ...] = (0, 1, 2, 3, 4)

    def __post_init__(self):
        if len(self.lags) == 0:
            raise ConfigurationError("Lag set must not be empty")
        if min(self.lags) < 0:
            raise ConfigurationError(f"Lags must be non-negative, got {self.lags}")


# =============================================================================
# OUTPUT CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class OutputConfig:
    """Configuration for artifact generation."""

    directory: Path = Path("outputs")
    detail_decimal_places: int = 3   # Persisted detail coefficients are rounded

    returns_file: str = "monthly_returns.parquet"
    shocks_file: str = "market_shocks.parquet"
    details_file: str = "detail_coefficients.parquet"
    aligned_file: str = "aligned_details.parquet"
    lag_scan_file: str = "lag_scan.json"
    model_file: str = "market_shock_regression.json"
    metadata_file: str = "run_metadata.json"


# =============================================================================
# COMBINED CONFIGURATION
# =============================================================================

@dataclass(frozen=True)
class AnalysisConfig:
    """Everything the pipeline needs, in one object."""

    returns: ReturnConfig = field(default_factory=ReturnConfig)
    shock_model: ShockModelConfig = field(default_factory=ShockModelConfig)
    decomposition: DecompositionConfig = field(default_factory=DecompositionConfig)
    regression: RegressionConfig = field(default_factory=RegressionConfig)
    lag_scan: LagScanConfig = field(default_factory=LagScanConfig)
    output: OutputConfig = field(default_factory=OutputConfig)

    def __post_init__(self):
        if self.regression.target_level > self.decomposition.max_level:
            raise ConfigurationError(
                f"Target level {self.regression.target_level} exceeds "
                f"max decomposition level {self.decomposition.max_level}"
            )


# =============================================================================
# GLOBAL CONFIGURATION INSTANCES
# =============================================================================

RETURNS = ReturnConfig()
SHOCK_MODEL = ShockModelConfig()
DECOMPOSITION = DecompositionConfig()
PRIORS = RegressionPriors()
SAMPLER = SamplerConfig()
REGRESSION = RegressionConfig()
LAG_SCAN = LagScanConfig()
OUTPUT = OutputConfig()
ANALYSIS = AnalysisConfig()

# Default tickers and sample windows
INDEX_SYMBOL: str = "^GSPC"
VIX_SYMBOL: str = "^VIX"
INDEX_START: str = "1993-01-01"
INDEX_END: str = "2023-12-31"
VIX_START: str = "1993-03-01"
VIX_END: str = "2024-02-29"
