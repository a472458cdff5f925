#!/usr/bin/env python3
"""
Market Shocks and Volatility - Demo Runner

Do unexpected moves in the S&P 500 explain short-cycle movements in the
VIX? This script runs the complete analysis:

    Phase 1: Daily closes for ^GSPC and ^VIX (Yahoo Finance or simulated)
    Phase 2: Monthly returns, ARIMA market shocks, Haar decomposition,
             level-1 alignment, regression and the lag scan
    Phase 3: Artifact export and console report

EXECUTION
    python run_demo.py
    python run_demo.py --simulate
    python run_demo.py --method bayes --start 2000-01-01 --end 2020-12-31

OUTPUT ARTIFACTS
    data/raw_data/
        {symbol}_{start}_{end}.parquet   Cached daily prices
    outputs/
        monthly_returns.parquet          Index and VIX monthly % returns
        market_shocks.parquet            ARIMA residuals (market shocks)
        detail_coefficients.parquet      All detail levels, long format
        aligned_details.parquet          Level-1 pairs, 3 decimals
        lag_scan.json                    R^2 per lag, best lag
        market_shock_regression.json     Lag-0 model
        run_metadata.json                Orders, lengths, provenance

Version: 1.0.0
"""

from __future__ import annotations

import argparse
import logging
import sys
import time
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

from vix_shock.config import (
    ANALYSIS,
    INDEX_END,
    INDEX_START,
    INDEX_SYMBOL,
    VIX_END,
    VIX_START,
    VIX_SYMBOL,
)
from vix_shock.exceptions import LagScanError, ShockAnalysisError
from vix_shock.pipeline import PipelineOutput, ShockVolatilityPipeline
from vix_shock.returns import PriceSeries


# =============================================================================
# CONSTANTS
# =============================================================================

VERSION: str = "1.0.0"

DATA_DIR = Path("data") / "raw_data"
OUTPUT_DIR = ANALYSIS.output.directory

# CLI spelling -> RegressionMethod value
METHODS: Dict[str, str] = {
    "ols": "ols",
    "bayes": "bayesian",
    "bayesian": "bayesian",
}


# =============================================================================
# DISPLAY COMPONENTS
# =============================================================================

BANNER = r'''
┌───────────────────────────────────────────────────────────────────────────────┐
│                                                                               │
│   MARKET SHOCKS  x  VOLATILITY                                                │
│   ARIMA shocks | Haar wavelets | shock-volatility regression | lag scan      │
│                                                                               │
└───────────────────────────────────────────────────────────────────────────────┘
'''


def print_section_header(title: str, char: str = "═") -> None:
    """Print a formatted section header."""
    width = 79
    print()
    print(char * width)
    print(f"  {title}")
    print(char * width)
    print()


def print_subsection(title: str) -> None:
    """Print a subsection divider."""
    print()
    print(f"  {'─' * 75}")
    print(f"  {title}")
    print(f"  {'─' * 75}")


def format_interval(interval: Tuple[float, float], precision: int = 4) -> str:
    return f"[{interval[0]:+.{precision}f}, {interval[1]:+.{precision}f}]"


# =============================================================================
# PHASE 1: DATA
# =============================================================================

def load_prices(
    simulate: bool,
    start: Optional[str],
    end: Optional[str],
    logger: logging.Logger
) -> Tuple[PriceSeries, PriceSeries, Dict[str, Any]]:
    """
    Daily closes for the index and the VIX.

    With --simulate, both series come from the seeded generators in
    vix_shock.data_collector and nothing is downloaded.
    """
    print_section_header("PHASE 1: PRICE DATA")

    if simulate:
        from vix_shock.data_collector import simulate_price_series, simulate_vix_series

        index_prices = simulate_price_series(start or INDEX_START, end or INDEX_END, symbol=INDEX_SYMBOL)
        vix_prices = simulate_vix_series(index_prices, symbol=VIX_SYMBOL)
        logger.info(f"Simulated {len(index_prices):,} business days")
        return index_prices, vix_prices, {"source": "simulated"}

    from vix_shock.data_collector import CacheManager, DataAcquisition

    acquisition = DataAcquisition(cache=CacheManager(DATA_DIR))
    index_prices, index_prov = acquisition.fetch_close(
        INDEX_SYMBOL, start or INDEX_START, end or INDEX_END
    )
    vix_prices, vix_prov = acquisition.fetch_close(
        VIX_SYMBOL, start or VIX_START, end or VIX_END
    )
    logger.info(f"{INDEX_SYMBOL}: {len(index_prices):,} closes, {VIX_SYMBOL}: {len(vix_prices):,} closes")
    return index_prices, vix_prices, {
        "index": index_prov.to_dict(),
        "vix": vix_prov.to_dict(),
    }


# =============================================================================
# PHASE 3: REPORT
# =============================================================================

def print_report(output: PipelineOutput) -> None:
    """Console summary of a completed run."""
    print_section_header("RESULTS")

    shocks = output.shocks
    print_subsection("Monthly Returns")
    for returns in (output.index_returns, output.vix_returns):
        s = returns.summary()
        print(f"    {s['symbol'] or 'series':<8} {s['observations']:>5} months  "
              f"{s['start']} to {s['end']}  (dropped {s['dropped_returns']})")

    print_subsection("Market Shock Model")
    print(f"    Order:        {shocks.order}  mean={shocks.mean:+.4f}")
    print(f"    {shocks.criterion.value.upper():<13} {shocks.criterion_value:.2f}")
    print(f"    Sigma^2:      {shocks.sigma2:.4f}")
    print(f"    Candidates:   {shocks.candidates_tried} tried, {shocks.candidates_failed} failed")

    print_subsection("Haar Decomposition")
    print(f"    Shock details: {output.shock_decomposition.detail_lengths}")
    print(f"    VIX details:   {output.vix_decomposition.detail_lengths}")
    print(f"    Level {output.aligned.level} pairs: {output.aligned.n} "
          f"(cut {output.aligned.truncated_x} shock / {output.aligned.truncated_y} VIX)")
    for issue in output.quality_issues:
        print(f"    ! {issue}")

    r = output.regression
    print_subsection(f"Regression (lag 0, {r.method.value})")
    interval = "95% CrI" if r.is_bayesian else "95% CI"
    print(f"    Slope:      {r.slope:+.4f}  {interval} {format_interval(r.slope_ci)}")
    print(f"    Intercept:  {r.intercept:+.4f}  {interval} {format_interval(r.intercept_ci)}")
    print(f"    Sigma:      {r.sigma:.4f}")
    print(f"    R^2:        {r.r_squared:.4f}   n = {r.n_obs}")
    print(f"    AIC / BIC:  {r.aic:.2f} / {r.bic:.2f}")
    if r.waic is not None:
        print(f"    WAIC:       {r.waic:.2f}  (acceptance {r.acceptance_rate:.0%})")
    for note in r.notes:
        print(f"    Note: {note}")

    print_subsection("Lag Scan")
    for lag, outcome in output.lag_scan.outcomes.items():
        marker = "  <- best" if lag == output.lag_scan.best_lag else ""
        if outcome.succeeded:
            res = outcome.result
            print(f"    Lag {lag}:  R^2={res.r_squared:.4f}  slope={res.slope:+.4f}  n={res.n_obs}{marker}")
        else:
            print(f"    Lag {lag}:  failed at {outcome.failed_stage}: {outcome.error}")


# =============================================================================
# MAIN
# =============================================================================

def main() -> int:
    """
    Main entry point for the demo runner.

    Returns
    -------
    int
        Exit code (0 for success, 1 for failure)
    """
    start_time = time.time()

    parser = argparse.ArgumentParser(
        description="Market Shocks and Volatility - Demo Runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python run_demo.py                        # Yahoo Finance, OLS
  python run_demo.py --simulate             # Offline, simulated prices
  python run_demo.py --method bayes         # Bayesian regression
  python run_demo.py --start 2000-01-01 --end 2020-12-31
        """
    )

    parser.add_argument(
        "--simulate",
        action="store_true",
        help="Use seeded simulated prices instead of downloading"
    )

    parser.add_argument(
        "--start", "-t",
        type=str,
        default=None,
        help=f"Start date YYYY-MM-DD (default: {INDEX_START} index, {VIX_START} VIX)"
    )

    parser.add_argument(
        "--end", "-e",
        type=str,
        default=None,
        help=f"End date YYYY-MM-DD (default: {INDEX_END} index, {VIX_END} VIX)"
    )

    parser.add_argument(
        "--method", "-m",
        choices=sorted(METHODS),
        default="ols",
        help="Regression strategy (default: ols)"
    )

    parser.add_argument(
        "--output", "-o",
        type=Path,
        default=OUTPUT_DIR,
        help=f"Artifact directory (default: {OUTPUT_DIR})"
    )

    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging"
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {VERSION}"
    )

    args = parser.parse_args()

    log_level = logging.DEBUG if args.verbose else logging.INFO
    logging.basicConfig(
        level=log_level,
        format="  %(asctime)s │ %(levelname)s │ %(message)s",
        datefmt="%H:%M:%S"
    )
    logger = logging.getLogger(__name__)

    print(BANNER)
    print(f"  Execution Started: {datetime.now().strftime('%Y-%m-%d %H:%M:%S')}")
    print(f"  Data:              {'simulated' if args.simulate else 'Yahoo Finance'}")
    print(f"  Method:            {METHODS[args.method]}")
    print(f"  Output:            {args.output}")
    print(f"  Version:           {VERSION}")
    print()

    # ==========================================================================
    # PHASE 1: DATA
    # ==========================================================================

    try:
        index_prices, vix_prices, provenance = load_prices(
            args.simulate, args.start, args.end, logger
        )
    except (ShockAnalysisError, ValueError) as e:
        logger.error(f"Data acquisition failed: {e}")
        return 1

    # ==========================================================================
    # PHASE 2: ANALYSIS
    # ==========================================================================

    print_section_header("PHASE 2: ANALYSIS")

    pipeline = ShockVolatilityPipeline(method=METHODS[args.method])
    try:
        output = pipeline.run(index_prices, vix_prices, provenance=provenance)
    except LagScanError as e:
        logger.error(f"Failed at stage '{e.stage}': {e}")
        for lag, reason in e.failures.items():
            logger.error(f"  lag {lag}: {reason}")
        return 1
    except ShockAnalysisError as e:
        logger.error(f"Failed at stage '{e.stage}': {e}")
        return 1

    # ==========================================================================
    # PHASE 3: EXPORT AND REPORT
    # ==========================================================================

    print_section_header("PHASE 3: ARTIFACTS")

    try:
        paths = pipeline.export(output, args.output)
    except OSError as e:
        logger.error(f"Failed at stage 'export': {e}")
        return 1

    print_report(output)

    total_time = time.time() - start_time
    print("\n" + "=" * 79)
    print("  GENERATED ARTIFACTS")
    print("=" * 79)
    for name, path in paths.items():
        print(f"    {name:<10} {path}")
    print(f"\n  Completed in {total_time:.1f}s")
    print("=" * 79)

    return 0


if __name__ == "__main__":
    sys.exit(main())
