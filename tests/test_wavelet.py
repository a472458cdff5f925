"""Unit tests for the Haar decomposition."""

import numpy as np
import pytest

from vix_shock.config import BoundaryPolicy, DecompositionConfig
from vix_shock.exceptions import InvalidLengthError, NonFiniteInputError
from vix_shock.wavelet import (
    HaarDecomposer,
    decompose,
    expected_detail_lengths,
)

SQRT2 = np.sqrt(2.0)


class TestHaarStep:
    """Test suite for a single analysis level."""

    def test_two_values(self):
        detail, approx = HaarDecomposer.step(np.array([4.0, 0.0]))
        np.testing.assert_allclose(detail, [4 / SQRT2])
        np.testing.assert_allclose(approx, [4 / SQRT2])

    def test_odd_length_pads_with_zero(self):
        detail, approx = HaarDecomposer.step(np.array([1.0, 2.0, 3.0]))
        # Pairs: (1, 2), (3, 0)
        np.testing.assert_allclose(detail, [-1 / SQRT2, 3 / SQRT2])
        np.testing.assert_allclose(approx, [3 / SQRT2, 3 / SQRT2])

    def test_periodic_odd_length_wraps_to_first_element(self):
        detail, approx = HaarDecomposer.step(np.array([1.0, 2.0, 3.0]), BoundaryPolicy.PERIODIC)
        # Pairs: (1, 2), (3, 1)
        np.testing.assert_allclose(detail, [-1 / SQRT2, 2 / SQRT2])
        np.testing.assert_allclose(approx, [3 / SQRT2, 4 / SQRT2])


class TestHaarDecomposer:
    """Test suite for multi-level decomposition."""

    def test_constant_series(self):
        result = decompose([2.0, 2.0, 2.0, 2.0])

        assert result.levels == 2
        np.testing.assert_allclose(result.detail(1).coefficients, [0.0, 0.0])
        np.testing.assert_allclose(result.detail(2).coefficients, [0.0])
        np.testing.assert_allclose(result.approximation, [4.0])

    def test_level_one_approximation_of_constant_series(self):
        result = decompose([2.0, 2.0, 2.0, 2.0], max_level=1)
        np.testing.assert_allclose(result.approximation, [2 * SQRT2, 2 * SQRT2])

    @pytest.mark.parametrize("n", [2, 3, 7, 16, 119, 185, 372])
    def test_level_lengths(self, n):
        result = decompose(np.arange(n, dtype=float))
        assert result.detail_lengths == expected_detail_lengths(n, result.levels)

    def test_monthly_sample_lengths(self):
        result = decompose(np.ones(185))
        assert result.detail_lengths == [93, 47, 24, 12, 6, 3, 2]
        assert len(result.approximation) == 2

    def test_depth_capped_by_max_level(self, rng):
        result = HaarDecomposer(DecompositionConfig(max_level=3)).decompose(rng.normal(size=64))
        assert result.levels == 3

    def test_depth_stops_at_single_coefficient(self):
        result = decompose(np.ones(8), max_level=7)
        assert result.levels == 3
        assert len(result.approximation) == 1

    @pytest.mark.parametrize("n", [3, 16, 64, 128, 185, 371])
    def test_energy_preserved(self, rng, n):
        x = rng.normal(size=n)
        result = decompose(x)
        assert result.energy() == pytest.approx(float(np.sum(x ** 2)))

    def test_energy_of_short_odd_series(self):
        result = decompose([1.0, 2.0, 3.0])
        assert result.detail_lengths == [2, 1]
        np.testing.assert_allclose(result.detail(2).coefficients, [0.0], atol=1e-12)
        np.testing.assert_allclose(result.approximation, [3.0])
        assert result.energy() == pytest.approx(14.0)

    def test_periodic_policy_reconstructs(self, rng):
        x = rng.normal(size=37)
        result = decompose(x, policy=BoundaryPolicy.PERIODIC)
        assert result.boundary == BoundaryPolicy.PERIODIC
        assert result.detail_lengths == expected_detail_lengths(37, result.levels)
        np.testing.assert_allclose(result.reconstruct(), x, atol=1e-10)

    @pytest.mark.parametrize("n", [2, 5, 7, 16, 119, 185])
    def test_reconstruction_exact(self, rng, n):
        x = rng.normal(size=n)
        np.testing.assert_allclose(decompose(x).reconstruct(), x, atol=1e-10)

    def test_linear_in_input(self, rng):
        a, b = rng.normal(size=37), rng.normal(size=37)
        combined = decompose(2 * a + b).detail(1).coefficients
        separate = 2 * decompose(a).detail(1).coefficients + decompose(b).detail(1).coefficients
        np.testing.assert_allclose(combined, separate)

    @pytest.mark.parametrize("values", [[], [1.0]])
    def test_too_short(self, values):
        with pytest.raises(InvalidLengthError) as exc_info:
            decompose(values)
        assert exc_info.value.stage == "decomposition"

    @pytest.mark.parametrize("bad", [np.nan, np.inf])
    def test_non_finite_input(self, bad):
        with pytest.raises(NonFiniteInputError, match="non-finite") as exc_info:
            decompose([1.0, bad, 2.0])
        assert exc_info.value.stage == "decomposition"

    def test_missing_level_lookup(self):
        result = decompose([1.0, 2.0])
        assert not result.has_level(2)
        with pytest.raises(KeyError):
            result.detail(2)

    def test_metadata(self):
        result = decompose(np.ones(10))
        assert result.boundary == BoundaryPolicy.ZERO_PAD
        assert result.original_length == 10
        assert result.detail(2).period_scale == 4


class TestExpectedDetailLengths:
    """Test suite for expected_detail_lengths."""

    def test_ceiling_halving(self):
        assert expected_detail_lengths(119, 4) == [60, 30, 15, 8]
