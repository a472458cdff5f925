"""
Detail Coefficient Alignment

Pairs detail coefficients of the market-shock series with those of the
volatility series. Alignment is positional: both sequences are cut to
the first N = min(len(a), len(b)) coefficients. No timestamp matching
is attempted; both inputs are expected to cover the same calendar
window from their first element.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import List, Sequence, Union

import numpy as np
import pandas as pd

from vix_shock.exceptions import EmptyAlignmentError
from vix_shock.wavelet import DecompositionResult, DetailLevel

logger = logging.getLogger(__name__)

# Column names used by the persisted coefficient table
X_COLUMN: str = "Market_Return_Detail"
Y_COLUMN: str = "VIX_Detail"

# The cleaned-data checks treat anything outside +/-100 as corrupt
DETAIL_BOUND: float = 100.0


@dataclass(frozen=True)
class AlignedPair:
    """Equal-length (x_i, y_i) pairs; x = shock details, y = volatility details."""
    x: np.ndarray
    y: np.ndarray
    level: int = 1
    truncated_x: int = 0    # Coefficients cut from the end of x
    truncated_y: int = 0

    def __post_init__(self):
        if len(self.x) != len(self.y):
            raise ValueError(f"Aligned sequences differ in length: {len(self.x)} vs {len(self.y)}")

    def __len__(self) -> int:
        return len(self.x)

    @property
    def n(self) -> int:
        return len(self.x)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({X_COLUMN: self.x, Y_COLUMN: self.y})


DetailInput = Union[DetailLevel, Sequence[float], np.ndarray]


def _coefficients(detail: DetailInput) -> np.ndarray:
    if isinstance(detail, DetailLevel):
        return np.asarray(detail.coefficients, dtype=float)
    return np.asarray(detail, dtype=float).ravel()


def align_coefficients(x_detail: DetailInput, y_detail: DetailInput, level: int = 1) -> AlignedPair:
    """
    Truncate two detail sequences to their common length.

    Raises:
        EmptyAlignmentError: either sequence is empty
    """
    x = _coefficients(x_detail)
    y = _coefficients(y_detail)
    if len(x) == 0 or len(y) == 0:
        raise EmptyAlignmentError(
            f"Cannot align empty detail sequences (lengths {len(x)} and {len(y)})"
        )

    n = min(len(x), len(y))
    if len(x) != len(y):
        logger.debug(f"Level {level}: truncating {len(x)}/{len(y)} coefficients to {n}")

    return AlignedPair(
        x=x[:n].copy(),
        y=y[:n].copy(),
        level=level,
        truncated_x=len(x) - n,
        truncated_y=len(y) - n,
    )


def align_details(
    shocks: DecompositionResult,
    volatility: DecompositionResult,
    level: int = 1
) -> AlignedPair:
    """
    Align one detail level of two decompositions.

    Raises:
        EmptyAlignmentError: the level is missing from either decomposition
    """
    if not (shocks.has_level(level) and volatility.has_level(level)):
        raise EmptyAlignmentError(
            f"No shared level {level}: decompositions have "
            f"{shocks.levels} and {volatility.levels} levels"
        )
    return align_coefficients(shocks.detail(level), volatility.detail(level), level=level)


def check_detail_quality(pair: AlignedPair, bound: float = DETAIL_BOUND) -> List[str]:
    """
    Sanity checks on an aligned coefficient table.

    Returns:
        List of issues; empty when the table passes
    """
    issues: List[str] = []
    frame = pair.to_frame()

    for column in (X_COLUMN, Y_COLUMN):
        values = frame[column].to_numpy()
        missing = int(np.sum(~np.isfinite(values)))
        if missing:
            issues.append(f"{column}: {missing} missing values")
        finite = values[np.isfinite(values)]
        outside = int(np.sum(np.abs(finite) >= bound))
        if outside:
            issues.append(f"{column}: {outside} values outside +/-{bound:g}")

    if pair.n == 0:
        issues.append("No aligned observations")

    return issues
