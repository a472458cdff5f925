"""
Market Shock / VIX Wavelet Pipeline

Orchestrates the complete analysis. Every stage takes its inputs as
arguments and returns new values; nothing is shared between stages.

    Stage 1 - AGGREGATE   daily closes -> monthly % returns (index and VIX)
    Stage 2 - EXTRACT     ARIMA residuals of index returns = market shocks
    Stage 3 - DECOMPOSE   Haar transform of shocks and of VIX returns
    Stage 4 - ALIGN       first-N truncation of the target detail level
    Stage 5 - REGRESS     VIX details on shock details (lag 0 model)
    Stage 6 - SCAN        repeat stages 3-5 with VIX shifted by each lag

export() publishes the artifacts: parquet tables for returns, shocks and
detail coefficients, JSON for the lag scan, the lag-0 model and run
metadata.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import pandas as pd

from vix_shock.alignment import AlignedPair, align_details, check_detail_quality
from vix_shock.config import ANALYSIS, AnalysisConfig, AnalysisStage
from vix_shock.lag_scan import LagScanner, LagScanResult
from vix_shock.persistence import rounded, save_result, write_json, write_parquet
from vix_shock.regression import RegressionMethod, RegressionResult, make_regressor
from vix_shock.returns import PriceSeries, ReturnSeries, monthly_returns
from vix_shock.shock_model import ShockExtractor, ShockSeries
from vix_shock.wavelet import DecompositionResult, HaarDecomposer

logger = logging.getLogger(__name__)

PIPELINE_VERSION: str = "1.0.0"


# =============================================================================
# OUTPUT
# =============================================================================

@dataclass
class PipelineOutput:
    """Everything one run produces."""
    index_returns: ReturnSeries
    vix_returns: ReturnSeries
    shocks: ShockSeries
    shock_decomposition: DecompositionResult
    vix_decomposition: DecompositionResult
    aligned: AlignedPair
    regression: RegressionResult
    lag_scan: LagScanResult
    quality_issues: List[str] = field(default_factory=list)
    processing_time_ms: float = 0.0
    generated_at: str = ""
    pipeline_version: str = PIPELINE_VERSION
    provenance: Dict[str, Any] = field(default_factory=dict)


def details_frame(decomposition: DecompositionResult, series: str) -> pd.DataFrame:
    """Long-format table of every detail level: series, level, position, coefficient."""
    frames = [
        pd.DataFrame({
            "series": series,
            "level": d.level,
            "position": range(len(d)),
            "coefficient": d.coefficients,
        })
        for d in decomposition.details
    ]
    return pd.concat(frames, ignore_index=True)


# =============================================================================
# PIPELINE
# =============================================================================

class ShockVolatilityPipeline:
    """
    Runs the six analysis stages.

    Usage:
        pipeline = ShockVolatilityPipeline(method="bayesian")
        output = pipeline.run(sp500_prices, vix_prices)
        pipeline.export(output, Path("outputs"))
    """

    def __init__(
        self,
        config: Optional[AnalysisConfig] = None,
        method: Union[str, RegressionMethod] = RegressionMethod.OLS
    ):
        self.config = config or ANALYSIS
        self.method = RegressionMethod(method)

        self.extractor = ShockExtractor(self.config.shock_model)
        self.decomposer = HaarDecomposer(self.config.decomposition)
        self.regressor = make_regressor(self.method, self.config.regression)
        self.scanner = LagScanner(
            decomposer=self.decomposer,
            regressor=self.regressor,
            level=self.config.regression.target_level,
            config=self.config.lag_scan,
        )

    def run(
        self,
        index_prices: PriceSeries,
        vix_prices: PriceSeries,
        provenance: Optional[Dict[str, Any]] = None
    ) -> PipelineOutput:
        """
        Execute the complete pipeline.

        Raises:
            ShockAnalysisError subclasses; the exception's `stage` names
            the failing stage
        """
        t0 = time.perf_counter()
        level = self.config.regression.target_level

        # =====================================================================
        # STAGE 1: AGGREGATE
        # =====================================================================
        logger.info(f"Stage 1: {AnalysisStage.AGGREGATION.value}...")
        index_returns = monthly_returns(index_prices, self.config.returns)
        vix_returns = monthly_returns(vix_prices, self.config.returns)

        # =====================================================================
        # STAGE 2: EXTRACT SHOCKS
        # =====================================================================
        logger.info(f"Stage 2: {AnalysisStage.SHOCK_MODEL.value}...")
        shocks = self.extractor.extract(index_returns)

        # =====================================================================
        # STAGE 3: DECOMPOSE
        # =====================================================================
        logger.info(f"Stage 3: {AnalysisStage.DECOMPOSITION.value}...")
        shock_dec = self.decomposer.decompose(shocks.to_numpy())
        vix_dec = self.decomposer.decompose(vix_returns.to_numpy())
        logger.info(f"Levels: shocks {shock_dec.detail_lengths}, VIX {vix_dec.detail_lengths}")

        # =====================================================================
        # STAGE 4: ALIGN
        # =====================================================================
        logger.info(f"Stage 4: {AnalysisStage.ALIGNMENT.value} (level {level})...")
        aligned = align_details(shock_dec, vix_dec, level=level)
        issues = check_detail_quality(aligned)
        for issue in issues:
            logger.warning(f"Detail quality: {issue}")
        logger.info(f"Aligned {aligned.n} coefficient pairs")

        # =====================================================================
        # STAGE 5: REGRESS
        # =====================================================================
        logger.info(f"Stage 5: {AnalysisStage.REGRESSION.value} ({self.method.value})...")
        regression = self.regressor.fit(aligned)
        regression.lag = 0
        logger.info(regression.summary())

        # =====================================================================
        # STAGE 6: LAG SCAN
        # =====================================================================
        logger.info(f"Stage 6: {AnalysisStage.LAG_SCAN.value} {list(self.config.lag_scan.lags)}...")
        scan = self.scanner.scan(shocks, vix_returns)

        processing_time = (time.perf_counter() - t0) * 1000
        logger.info(f"Pipeline complete in {processing_time:.0f}ms")

        return PipelineOutput(
            index_returns=index_returns,
            vix_returns=vix_returns,
            shocks=shocks,
            shock_decomposition=shock_dec,
            vix_decomposition=vix_dec,
            aligned=aligned,
            regression=regression,
            lag_scan=scan,
            quality_issues=issues,
            processing_time_ms=processing_time,
            generated_at=datetime.now().isoformat(),
            provenance=dict(provenance or {}),
        )

    def export(self, output: PipelineOutput, output_dir: Optional[Path] = None) -> Dict[str, Path]:
        """Publish all artifacts; returns artifact name -> path."""
        out = self.config.output
        directory = Path(output_dir) if output_dir is not None else out.directory
        logger.info(f"{AnalysisStage.EXPORT.value}: {directory}...")

        index_frame = output.index_returns.to_frame().rename(columns={"return": "index_return"})
        vix_frame = output.vix_returns.to_frame().rename(columns={"return": "vix_return"})
        returns = index_frame.merge(vix_frame, on="date", how="outer").sort_values("date")

        details = pd.concat([
            details_frame(output.shock_decomposition, "market_shock"),
            details_frame(output.vix_decomposition, "vix"),
        ], ignore_index=True)

        paths = {
            "returns": write_parquet(returns, directory / out.returns_file),
            "shocks": write_parquet(output.shocks.to_frame(), directory / out.shocks_file),
            "details": write_parquet(details, directory / out.details_file),
            "aligned": write_parquet(
                rounded(output.aligned.to_frame(), out.detail_decimal_places),
                directory / out.aligned_file,
            ),
            "lag_scan": write_json(output.lag_scan.to_dict(), directory / out.lag_scan_file),
            "model": save_result(output.regression, directory / out.model_file),
        }

        metadata = {
            "version": output.pipeline_version,
            "generated_at": output.generated_at,
            "processing_time_ms": output.processing_time_ms,
            "method": self.method.value,
            "index_returns": output.index_returns.summary(),
            "vix_returns": output.vix_returns.summary(),
            "shock_model": output.shocks.summary(),
            "decomposition": {
                "filter": output.shock_decomposition.filter.value,
                "boundary": output.shock_decomposition.boundary.value,
                "shock_levels": output.shock_decomposition.detail_lengths,
                "vix_levels": output.vix_decomposition.detail_lengths,
            },
            "aligned": {
                "level": output.aligned.level,
                "n": output.aligned.n,
                "truncated_shock": output.aligned.truncated_x,
                "truncated_vix": output.aligned.truncated_y,
                "quality_issues": output.quality_issues,
            },
            "best_lag": output.lag_scan.best_lag,
            "provenance": output.provenance,
        }
        paths["metadata"] = write_json(metadata, directory / out.metadata_file)
        return paths


def run_analysis(
    index_prices: PriceSeries,
    vix_prices: PriceSeries,
    method: Union[str, RegressionMethod] = RegressionMethod.OLS,
    config: Optional[AnalysisConfig] = None
) -> PipelineOutput:
    """Convenience function: build the pipeline and run it."""
    return ShockVolatilityPipeline(config, method).run(index_prices, vix_prices)
