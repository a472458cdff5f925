"""Smoke tests for the command-line driver."""

import sys

import pytest

import run_demo


class TestMain:
    """Test suite for run_demo.main."""

    def test_simulated_run(self, tmp_path, monkeypatch, capsys):
        monkeypatch.setattr(sys, "argv", [
            "run_demo.py", "--simulate",
            "--start", "2015-01-01", "--end", "2019-12-31",
            "--output", str(tmp_path),
        ])

        assert run_demo.main() == 0

        printed = capsys.readouterr().out
        assert "Lag Scan" in printed
        assert (tmp_path / "market_shock_regression.json").exists()
        assert (tmp_path / "run_metadata.json").exists()

    def test_failure_reports_stage(self, tmp_path, monkeypatch, caplog):
        # Two weeks of data: not enough for a monthly return
        monkeypatch.setattr(sys, "argv", [
            "run_demo.py", "--simulate",
            "--start", "2020-01-01", "--end", "2020-01-14",
            "--output", str(tmp_path),
        ])

        assert run_demo.main() == 1
        assert "aggregation" in caplog.text

    def test_method_aliases(self):
        assert run_demo.METHODS["bayes"] == run_demo.METHODS["bayesian"] == "bayesian"
