"""End-to-end tests for the analysis pipeline and artifact export."""

import numpy as np
import pandas as pd
import pytest

from vix_shock.alignment import X_COLUMN, Y_COLUMN
from vix_shock.exceptions import InsufficientDataError
from vix_shock.persistence import load_result, read_json, read_parquet
from vix_shock.pipeline import ShockVolatilityPipeline, details_frame, run_analysis
from vix_shock.regression import RegressionMethod
from vix_shock.returns import PriceSeries
from vix_shock.wavelet import decompose


@pytest.fixture
def output(index_prices, vix_prices, small_analysis_config):
    return ShockVolatilityPipeline(small_analysis_config).run(index_prices, vix_prices)


class TestShockVolatilityPipeline:
    """Test suite for ShockVolatilityPipeline.run."""

    def test_stage_outputs_consistent(self, output):
        assert len(output.shocks) == len(output.index_returns) == 119
        assert output.shock_decomposition.original_length == 119
        assert output.vix_decomposition.original_length == len(output.vix_returns)

        level1 = min(
            len(output.shock_decomposition.detail(1)),
            len(output.vix_decomposition.detail(1)),
        )
        assert output.aligned.n == level1 == 60
        assert output.regression.n_obs == 60

    def test_lag_zero_model(self, output):
        assert output.regression.lag == 0
        assert output.regression.level == 1
        assert output.regression.method == RegressionMethod.OLS

    def test_lag_scan(self, output):
        assert list(output.lag_scan.outcomes) == [0, 1, 2, 3, 4]
        assert output.lag_scan.best_lag in output.lag_scan.outcomes
        assert all(o.succeeded for o in output.lag_scan.outcomes.values())

    def test_shocks_drive_simulated_vix(self, output):
        assert output.regression.slope < 0

    def test_deterministic(self, index_prices, vix_prices, small_analysis_config):
        pipeline = ShockVolatilityPipeline(small_analysis_config)
        first = pipeline.run(index_prices, vix_prices)
        second = pipeline.run(index_prices, vix_prices)

        np.testing.assert_array_equal(first.aligned.x, second.aligned.x)
        assert first.regression.slope == second.regression.slope
        assert first.lag_scan.r_squared_table() == second.lag_scan.r_squared_table()

    def test_error_carries_stage(self, vix_prices, small_analysis_config, make_prices):
        too_short = make_prices({"2020-01-02": 100.0})
        with pytest.raises(InsufficientDataError) as exc_info:
            ShockVolatilityPipeline(small_analysis_config).run(too_short, vix_prices)
        assert exc_info.value.stage == "aggregation"

    def test_short_index_fails_in_shock_model(self, vix_prices, small_analysis_config, make_prices):
        # Three months give two returns, one short of a shock model
        short = make_prices({"2020-01-31": 100.0, "2020-02-28": 102.0, "2020-03-31": 99.0})
        with pytest.raises(InsufficientDataError) as exc_info:
            ShockVolatilityPipeline(small_analysis_config).run(short, vix_prices)
        assert exc_info.value.stage == "shock_model"

    def test_method_by_name(self, small_analysis_config):
        pipeline = ShockVolatilityPipeline(small_analysis_config, method="bayesian")
        assert pipeline.method == RegressionMethod.BAYESIAN
        assert pipeline.scanner.regressor is pipeline.regressor


class TestExport:
    """Test suite for ShockVolatilityPipeline.export."""

    def test_writes_all_artifacts(self, output, small_analysis_config, tmp_path):
        paths = ShockVolatilityPipeline(small_analysis_config).export(output, tmp_path)

        assert set(paths) == {"returns", "shocks", "details", "aligned", "lag_scan", "model", "metadata"}
        assert all(path.exists() for path in paths.values())
        assert not list(tmp_path.glob("*.tmp"))

    def test_aligned_table_rounded(self, output, small_analysis_config, tmp_path):
        paths = ShockVolatilityPipeline(small_analysis_config).export(output, tmp_path)
        table = read_parquet(paths["aligned"])

        assert list(table.columns) == [X_COLUMN, Y_COLUMN]
        assert len(table) == output.aligned.n
        np.testing.assert_allclose(table[X_COLUMN], np.round(output.aligned.x, 3))

    def test_model_and_metadata(self, output, small_analysis_config, tmp_path):
        paths = ShockVolatilityPipeline(small_analysis_config).export(output, tmp_path)

        assert load_result(paths["model"]) == output.regression
        metadata = read_json(paths["metadata"])
        assert metadata["best_lag"] == output.lag_scan.best_lag
        assert metadata["aligned"]["n"] == output.aligned.n
        assert metadata["shock_model"]["order"] == list(output.shocks.order.as_tuple())
        assert read_json(paths["lag_scan"])["best_lag"] == output.lag_scan.best_lag

    def test_returns_table(self, output, small_analysis_config, tmp_path):
        paths = ShockVolatilityPipeline(small_analysis_config).export(output, tmp_path)
        table = read_parquet(paths["returns"])
        assert {"date", "index_return", "vix_return"} <= set(table.columns)
        assert len(table) == 119


class TestHelpers:
    """Test suite for module-level helpers."""

    def test_details_frame(self):
        frame = details_frame(decompose([2.0, 2.0, 2.0, 2.0]), "x")
        assert list(frame["level"]) == [1, 1, 2]
        assert list(frame["position"]) == [0, 1, 0]
        assert (frame["series"] == "x").all()

    def test_run_analysis(self, index_prices, vix_prices, small_analysis_config):
        result = run_analysis(index_prices, vix_prices, config=small_analysis_config)
        assert result.lag_scan.best_lag is not None
