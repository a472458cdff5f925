"""
Exception hierarchy for the shock/volatility analysis pipeline.

Every error carries the name of the pipeline stage that raised it so the
driver can report where a run (or a single lag of a scan) failed. Each
class has a default stage; a raise site that belongs to another stage
passes its own, e.g. ``InsufficientDataError(msg, stage="shock_model")``.
"""

from typing import Optional


class ShockAnalysisError(Exception):
    """Base exception for all pipeline errors."""

    stage = "pipeline"

    def __init__(self, message: str = "", stage: Optional[str] = None):
        super().__init__(message)
        if stage is not None:
            self.stage = stage


class ConfigurationError(ShockAnalysisError):
    """Invalid analysis configuration."""

    stage = "configuration"


class InsufficientDataError(ShockAnalysisError):
    """Too few observations for the requested operation."""

    stage = "aggregation"


class ModelFitError(ShockAnalysisError):
    """Order search or optimizer failed for every candidate."""

    stage = "shock_model"


class InvalidLengthError(ShockAnalysisError):
    """Wavelet transform given a degenerate-length input (0 or 1)."""

    stage = "decomposition"


class NonFiniteInputError(ShockAnalysisError):
    """Wavelet transform given NaN or infinite values."""

    stage = "decomposition"


class EmptyAlignmentError(ShockAnalysisError):
    """Coefficient alignment given an empty input or no shared level."""

    stage = "alignment"


class InsufficientSampleError(ShockAnalysisError):
    """Regression given fewer aligned points than it needs."""

    stage = "regression"


class DegenerateInputError(ShockAnalysisError):
    """Regression given an independent variable with zero variance."""

    stage = "regression"


class LagScanError(ModelFitError):
    """Every lag of a scan failed."""

    stage = "lag_scan"

    def __init__(self, message: str, failures=None):
        super().__init__(message)
        self.failures = dict(failures or {})
