"""Unit tests for the shock-volatility regression strategies."""

import numpy as np
import pytest

from vix_shock.alignment import X_COLUMN, Y_COLUMN, AlignedPair
from vix_shock.config import RegressionConfig, RegressionPriors
from vix_shock.data_collector import simulate_detail_pair
from vix_shock.exceptions import DegenerateInputError, InsufficientSampleError
from vix_shock.regression import (
    BayesianRegressor,
    OLSRegressor,
    RegressionMethod,
    RegressionResult,
    fit_regression,
    make_regressor,
    split_r_hat,
)


@pytest.fixture
def simulated_pair():
    """The 185-row simulated coefficient table (true slope 0.5)."""
    frame = simulate_detail_pair()
    return AlignedPair(x=frame[X_COLUMN].to_numpy(), y=frame[Y_COLUMN].to_numpy())


@pytest.fixture
def exact_pair():
    x = np.array([-2.0, -1.0, 0.5, 1.0, 3.0])
    return AlignedPair(x=x, y=2.0 * x)


class TestOLSRegressor:
    """Test suite for OLSRegressor."""

    def test_exact_line(self, exact_pair):
        result = OLSRegressor().fit(exact_pair)

        assert result.slope == pytest.approx(2.0)
        assert result.intercept == pytest.approx(0.0, abs=1e-10)
        assert result.r_squared == pytest.approx(1.0)
        assert result.n_obs == 5

    def test_simulated_slope(self, simulated_pair):
        result = OLSRegressor().fit(simulated_pair)

        assert result.slope_ci[0] < result.slope < result.slope_ci[1]
        assert abs(result.slope - 0.5) < 0.25
        assert 0.0 <= result.r_squared <= 1.0
        assert result.slope_p_value < 0.05

    def test_information_criteria(self, simulated_pair):
        result = OLSRegressor().fit(simulated_pair)
        k = 2   # statsmodels counts the mean parameters only
        assert result.aic == pytest.approx(2 * k - 2 * result.log_likelihood)
        assert result.bic > result.aic

    def test_priors_not_applied(self, simulated_pair):
        priors = RegressionPriors(coef_scale=0.01)
        with_priors = OLSRegressor(priors=priors).fit(simulated_pair)
        without = OLSRegressor().fit(simulated_pair)

        assert with_priors.priors_applied is False
        assert with_priors.priors == priors.to_dict()
        assert with_priors.slope == without.slope
        assert any("priors not applied" in note for note in with_priors.notes)

    def test_constant_x(self):
        pair = AlignedPair(x=np.ones(5), y=np.arange(5.0))
        with pytest.raises(DegenerateInputError) as exc_info:
            OLSRegressor().fit(pair)
        assert exc_info.value.stage == "regression"

    def test_too_few_points(self):
        pair = AlignedPair(x=np.array([1.0, 2.0]), y=np.array([1.0, 3.0]))
        with pytest.raises(InsufficientSampleError):
            OLSRegressor().fit(pair)

    def test_non_finite_values(self):
        pair = AlignedPair(x=np.array([1.0, 2.0, 3.0]), y=np.array([1.0, np.nan, 3.0]))
        with pytest.raises(DegenerateInputError):
            OLSRegressor().fit(pair)

    def test_level_recorded(self, exact_pair):
        pair = AlignedPair(x=exact_pair.x, y=exact_pair.y, level=3)
        assert OLSRegressor().fit(pair).level == 3

    def test_predict(self, exact_pair):
        result = OLSRegressor().fit(exact_pair)
        np.testing.assert_allclose(result.predict([1.0, -1.0]), [2.0, -2.0], atol=1e-9)


class TestBayesianRegressor:
    """Test suite for BayesianRegressor."""

    def test_recovers_slope(self, simulated_pair, fast_sampler):
        bayes = BayesianRegressor(sampler=fast_sampler).fit(simulated_pair)
        ols = OLSRegressor().fit(simulated_pair)

        assert bayes.method == RegressionMethod.BAYESIAN
        assert bayes.slope == pytest.approx(ols.slope, abs=0.05)
        assert bayes.slope_ci[0] < bayes.slope < bayes.slope_ci[1]
        assert bayes.intercept_ci[0] < bayes.intercept < bayes.intercept_ci[1]

    def test_diagnostics(self, simulated_pair, fast_sampler):
        result = BayesianRegressor(sampler=fast_sampler).fit(simulated_pair)

        assert result.priors_applied is True
        assert result.draws == fast_sampler.chains * (fast_sampler.iterations - fast_sampler.warmup)
        assert 0.05 < result.acceptance_rate < 0.95
        assert set(result.r_hat) == {"intercept", "slope", "sigma"}
        assert np.isfinite(result.waic)
        assert result.p_waic > 0
        assert 0.0 < result.r_squared < 1.0
        assert result.sigma > 0

    def test_deterministic(self, simulated_pair, fast_sampler):
        first = BayesianRegressor(sampler=fast_sampler).fit(simulated_pair)
        second = BayesianRegressor(sampler=fast_sampler).fit(simulated_pair)

        assert first.slope == second.slope
        assert first.intercept == second.intercept
        assert first.waic == second.waic

    def test_exact_line(self, exact_pair, fast_sampler):
        result = BayesianRegressor(sampler=fast_sampler).fit(exact_pair)

        assert result.slope == pytest.approx(2.0)
        assert result.intercept == pytest.approx(0.0, abs=1e-10)
        assert result.r_squared == pytest.approx(1.0)
        assert result.sigma == 0.0
        assert result.slope_ci == (result.slope, result.slope)
        assert result.draws == 0
        assert any("Zero residual variance" in note for note in result.notes)

    def test_exact_line_matches_ols(self, exact_pair, fast_sampler):
        bayes = BayesianRegressor(sampler=fast_sampler).fit(exact_pair)
        ols = OLSRegressor().fit(exact_pair)
        assert bayes.slope == pytest.approx(ols.slope)
        assert bayes.intercept == pytest.approx(ols.intercept, abs=1e-10)

    def test_log_posterior_rejects_infinite_sigma(self, simulated_pair):
        regressor = BayesianRegressor()
        theta = np.array([0.0, 0.0, 1e6])
        assert regressor.log_posterior(theta, simulated_pair.x, simulated_pair.y) == -np.inf


class TestSplitRHat:
    """Test suite for split_r_hat."""

    def test_identical_chains_near_one(self, rng):
        draws = rng.normal(size=(4, 1000))
        assert split_r_hat(draws) == pytest.approx(1.0, abs=0.02)

    def test_separated_chains_flagged(self, rng):
        draws = rng.normal(size=(2, 500))
        draws[1] += 10.0
        assert split_r_hat(draws) > 1.5


class TestRegressionResult:
    """Test suite for RegressionResult serialization."""

    def test_json_round_trip(self, simulated_pair):
        result = OLSRegressor().fit(simulated_pair)
        result.lag = 2

        restored = RegressionResult.from_json(result.to_json())

        assert restored == result
        assert restored.method == RegressionMethod.OLS
        assert isinstance(restored.slope_ci, tuple)

    def test_bayesian_round_trip(self, simulated_pair, fast_sampler):
        result = BayesianRegressor(sampler=fast_sampler).fit(simulated_pair)
        restored = RegressionResult.from_dict(result.to_dict())
        assert restored == result

    def test_summary_mentions_spread(self, simulated_pair):
        assert "SE" in OLSRegressor().fit(simulated_pair).summary()


class TestFactory:
    """Test suite for make_regressor / fit_regression."""

    def test_make_regressor(self):
        assert isinstance(make_regressor("ols"), OLSRegressor)
        assert isinstance(make_regressor(RegressionMethod.BAYESIAN), BayesianRegressor)

    def test_ols_factory_records_priors(self, simulated_pair):
        priors = RegressionPriors(coef_scale=2.5)
        regressor = make_regressor("ols", RegressionConfig(priors=priors))
        result = regressor.fit(simulated_pair)

        assert result.priors == priors.to_dict()
        assert result.priors_applied is False

    def test_ols_factory_default_priors(self, simulated_pair):
        result = make_regressor("ols").fit(simulated_pair)
        assert result.priors == RegressionPriors().to_dict()

    def test_unknown_method(self):
        with pytest.raises(ValueError):
            make_regressor("ridge")

    def test_config_min_points(self):
        config = RegressionConfig(min_points=10)
        pair = AlignedPair(x=np.arange(5.0), y=np.arange(5.0) * 2 + 1)
        with pytest.raises(InsufficientSampleError):
            fit_regression(pair, "ols", config)
