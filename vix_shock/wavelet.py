"""
Discrete Haar Wavelet Decomposition

Multi-level Haar transform built on PyWavelets, one ``pywt.dwt`` call per
level so odd-length levels can be extended explicitly.

At each level the input a is split into pairs (a_{2i}, a_{2i+1}):

    detail_i        = (a_{2i} - a_{2i+1}) / sqrt(2)
    approximation_i = (a_{2i} + a_{2i+1}) / sqrt(2)

and the transform recurses on the approximation. When a level's input
has odd length it is extended by one element before pairing:

    ZERO_PAD  (default)  append 0; the last element pairs with zero
    PERIODIC             append the first element (circular wrap)

Either way level k has ceil(N / 2^k) coefficients and reconstruction is
exact for every length. Under ZERO_PAD the padding adds no energy, so the
sum of squared coefficients equals the sum of squared inputs for every
N. Under PERIODIC that holds only for dyadic lengths.

Level 1 captures the shortest cycle (2 periods, bi-monthly on monthly
data); each further level doubles the scale.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

import numpy as np
import pywt

from vix_shock.config import DECOMPOSITION, BoundaryPolicy, DecompositionConfig, WaveletFilter
from vix_shock.exceptions import InvalidLengthError, NonFiniteInputError

logger = logging.getLogger(__name__)

# pywt extension mode used once a level has been made even-length;
# for the two-tap Haar filter it pairs (a_0, a_1), (a_2, a_3), ...
PYWT_MODE: str = "periodization"


# =============================================================================
# DATA CLASSES
# =============================================================================

@dataclass(frozen=True)
class DetailLevel:
    """Detail coefficients of one decomposition level (1 = finest)."""
    level: int
    coefficients: np.ndarray

    def __len__(self) -> int:
        return len(self.coefficients)

    @property
    def period_scale(self) -> int:
        """Length of the cycle (in input periods) this level resolves."""
        return 2 ** self.level


@dataclass
class DecompositionResult:
    """
    Output of a multi-level Haar transform.

    Attributes
    ----------
    details : List[DetailLevel]
        Level 1 (finest) first.
    approximation : np.ndarray
        Approximation after the coarsest level.
    original_length : int
        Length of the transformed input.
    level_input_lengths : List[int]
        Length of the sequence entering each level; used to drop the
        boundary extension on reconstruction.
    """
    details: List[DetailLevel]
    approximation: np.ndarray
    original_length: int
    level_input_lengths: List[int] = field(default_factory=list)
    boundary: BoundaryPolicy = BoundaryPolicy.ZERO_PAD
    filter: WaveletFilter = WaveletFilter.HAAR

    @property
    def levels(self) -> int:
        return len(self.details)

    @property
    def detail_lengths(self) -> List[int]:
        return [len(d) for d in self.details]

    def has_level(self, level: int) -> bool:
        return 1 <= level <= self.levels

    def detail(self, level: int) -> DetailLevel:
        """Detail coefficients for a level (1-based)."""
        if not self.has_level(level):
            raise KeyError(f"Level {level} not in decomposition (1..{self.levels})")
        return self.details[level - 1]

    def energy(self) -> float:
        """Sum of squares of all details plus the final approximation."""
        total = float(np.sum(self.approximation ** 2))
        for d in self.details:
            total += float(np.sum(d.coefficients ** 2))
        return total

    def reconstruct(self) -> np.ndarray:
        """Invert the transform back to the original sequence."""
        approx = np.asarray(self.approximation, dtype=float)
        for d, n_in in zip(reversed(self.details), reversed(self.level_input_lengths)):
            restored = pywt.idwt(approx, d.coefficients, self.filter.value, mode=PYWT_MODE)
            # Drop the boundary extension of odd-length levels
            approx = restored[:n_in]
        return approx


# =============================================================================
# HAAR DECOMPOSER
# =============================================================================

class HaarDecomposer:
    """
    Multi-level discrete Haar transform.

    Usage:
        decomposer = HaarDecomposer(DecompositionConfig(max_level=7))
        result = decomposer.decompose(shocks.to_numpy())
        level1 = result.detail(1).coefficients
    """

    def __init__(self, config: Optional[DecompositionConfig] = None):
        self.config = config or DECOMPOSITION
        if self.config.filter != WaveletFilter.HAAR:
            raise ValueError(f"Unsupported wavelet filter: {self.config.filter}")

    @staticmethod
    def extend(a: np.ndarray, boundary: BoundaryPolicy) -> np.ndarray:
        """Make an odd-length level input even according to the boundary policy."""
        if len(a) % 2 == 0:
            return a
        if boundary == BoundaryPolicy.ZERO_PAD:
            return np.append(a, 0.0)
        if boundary == BoundaryPolicy.PERIODIC:
            return np.append(a, a[0])
        raise ValueError(f"Unsupported boundary policy: {boundary}")

    @staticmethod
    def step(a: np.ndarray, boundary: BoundaryPolicy = BoundaryPolicy.ZERO_PAD):
        """One analysis level: returns (detail, approximation)."""
        a = HaarDecomposer.extend(np.asarray(a, dtype=float), boundary)
        approx, detail = pywt.dwt(a, WaveletFilter.HAAR.value, mode=PYWT_MODE)
        return detail, approx

    def decompose(
        self,
        series: Sequence[float],
        boundary: Optional[BoundaryPolicy] = None
    ) -> DecompositionResult:
        """
        Decompose a numeric sequence.

        Depth is min(max_level, number of halvings until one coefficient
        is left).

        Raises:
            InvalidLengthError: input of length 0 or 1
            NonFiniteInputError: input contains NaN or infinite values
        """
        boundary = boundary or self.config.boundary
        x = np.asarray(series, dtype=float).ravel()
        n = len(x)
        if n < 2:
            raise InvalidLengthError(f"Haar transform needs at least 2 values, got {n}")
        if not np.all(np.isfinite(x)):
            bad = int(np.sum(~np.isfinite(x)))
            raise NonFiniteInputError(f"Haar transform input contains {bad} non-finite value(s)")

        details: List[DetailLevel] = []
        input_lengths: List[int] = []
        approx = x

        while len(details) < self.config.max_level and len(approx) > 1:
            input_lengths.append(len(approx))
            detail, approx = self.step(approx, boundary)
            details.append(DetailLevel(level=len(details) + 1, coefficients=detail))

        logger.debug(f"Haar decomposition of {n} values: {len(details)} levels {[len(d) for d in details]}")

        return DecompositionResult(
            details=details,
            approximation=approx,
            original_length=n,
            level_input_lengths=input_lengths,
            boundary=boundary,
            filter=self.config.filter,
        )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def decompose(
    series: Sequence[float],
    policy: BoundaryPolicy = BoundaryPolicy.ZERO_PAD,
    max_level: int = DECOMPOSITION.max_level
) -> DecompositionResult:
    """
    Haar-decompose a sequence.

    Example:
        >>> result = decompose([2, 2, 2, 2])
        >>> result.detail(1).coefficients
        array([0., 0.])
    """
    config = DecompositionConfig(max_level=max_level, boundary=policy)
    return HaarDecomposer(config).decompose(series)


def expected_detail_lengths(n: int, levels: int) -> List[int]:
    """ceil(n / 2^k) for k = 1..levels."""
    return [int(-(-n // (2 ** k))) for k in range(1, levels + 1)]
