"""
Stationarity diagnostics for the monthly consumption series.

This script evaluates the raw series and its regular / seasonal differences
using ADF and KPSS tests, and suggests the differencing orders (d, D) that the
SARIMA grid search should cover.
"""

from __future__ import annotations

import argparse
import math
import warnings
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pandas as pd
from statsmodels.tsa.stattools import adfuller, kpss

from config import AnalysisConfig
from data_loader import load_series
from decomposition import seasonal_strength, stl_decomposition


def _run_adf(series: pd.Series) -> Dict[str, Optional[float]]:
    """Execute the Augmented Dickey-Fuller test, returning metrics or NaNs if invalid."""
    try:
        with warnings.catch_warnings():
            warnings.filterwarnings("ignore")
            stat, pvalue, used_lag, n_obs, crit_values, _ = adfuller(series.dropna(), autolag="AIC")
        return {
            "adf_stat": float(stat),
            "adf_pvalue": float(pvalue),
            "adf_lags": int(used_lag),
            "adf_nobs": int(n_obs),
        }
    except Exception as exc:  # statsmodels raises ValueError for small samples, LinAlgError, etc.
        return {
            "adf_stat": math.nan,
            "adf_pvalue": math.nan,
            "adf_lags": math.nan,
            "adf_nobs": math.nan,
            "adf_error": str(exc),
        }


def _run_kpss(series: pd.Series, regression: str = "c") -> Dict[str, Optional[float]]:
    """Execute the KPSS test, returning metrics or NaNs if invalid."""
    try:
        with warnings.catch_warnings():
            # KPSS warns when the p-value falls outside its lookup table
            warnings.filterwarnings("ignore")
            stat, pvalue, lags, crit_values = kpss(series.dropna(), regression=regression, nlags="auto")
        return {
            "kpss_stat": float(stat),
            "kpss_pvalue": float(pvalue),
            "kpss_lags": int(lags),
        }
    except Exception as exc:
        return {
            "kpss_stat": math.nan,
            "kpss_pvalue": math.nan,
            "kpss_lags": math.nan,
            "kpss_error": str(exc),
        }


def _diagnose_series(series: pd.Series, min_obs: int, alpha: float = 0.05) -> Dict[str, Optional[float]]:
    """Collect stationarity metrics for a single time series."""
    clean_series = series.dropna()
    n_obs = int(clean_series.shape[0])
    result: Dict[str, Optional[float]] = {"n_obs": n_obs, "is_constant": False, "notes": ""}

    if n_obs < min_obs:
        result["notes"] = f"Insufficient observations (<{min_obs})."
        return result

    if clean_series.nunique() <= 1:
        result["is_constant"] = True
        result["notes"] = "Series is constant; stationarity tests are not informative."
        return result

    adf_metrics = _run_adf(clean_series)
    kpss_metrics = _run_kpss(clean_series)

    result.update(adf_metrics)
    result.update(kpss_metrics)

    adf_pvalue = adf_metrics.get("adf_pvalue")
    if adf_pvalue is not None and not math.isnan(adf_pvalue):
        result["adf_stationary"] = adf_pvalue < alpha
    else:
        result["adf_stationary"] = None

    kpss_pvalue = kpss_metrics.get("kpss_pvalue")
    if kpss_pvalue is not None and not math.isnan(kpss_pvalue):
        result["kpss_stationary"] = kpss_pvalue > alpha
    else:
        result["kpss_stationary"] = None

    notes: List[str] = []
    if "adf_error" in adf_metrics:
        notes.append(f"ADF: {adf_metrics['adf_error']}")
    if "kpss_error" in kpss_metrics:
        notes.append(f"KPSS: {kpss_metrics['kpss_error']}")
    if notes:
        result["notes"] = " | ".join(notes)

    return result


def build_transformations(series: pd.Series, period: int = 12) -> Dict[str, pd.Series]:
    """Raw series plus the regular, seasonal and combined differences."""
    seasonal_diff = series.diff(period)
    return {
        "original": series,
        "diff_1": series.diff(),
        "seasonal_diff": seasonal_diff,
        "seasonal_then_diff_1": seasonal_diff.diff(),
    }


def run_stationarity_checks(
    series: pd.Series,
    period: int = 12,
    min_obs: int = 24,
    alpha: float = 0.05,
) -> pd.DataFrame:
    """Generate a long-form DataFrame with stationarity diagnostics per transformation."""
    records: List[Dict[str, Optional[float]]] = []
    for name, transformed in build_transformations(series, period).items():
        record: Dict[str, Optional[float]] = {"transformation": name}
        record.update(_diagnose_series(transformed, min_obs=min_obs, alpha=alpha))
        records.append(record)
    return pd.DataFrame.from_records(records)


def suggest_differencing(
    series: pd.Series,
    period: int = 12,
    alpha: float = 0.05,
    seasonal_threshold: float = 0.64,
    max_d: int = 2,
    min_obs: int = 24,
) -> Tuple[int, int]:
    """
    Suggest (d, D): one seasonal difference when STL seasonal strength exceeds
    the threshold, then regular differences while KPSS rejects level stationarity.
    """
    working = series.dropna()

    seasonal_order = 0
    try:
        strength = seasonal_strength(stl_decomposition(working, period=period))
    except ValueError:
        strength = math.nan
    if not math.isnan(strength) and strength > seasonal_threshold:
        seasonal_order = 1
        working = working.diff(period).dropna()

    regular_order = 0
    while regular_order < max_d and len(working) >= min_obs and working.nunique() > 1:
        kpss_pvalue = _run_kpss(working).get("kpss_pvalue")
        if kpss_pvalue is None or math.isnan(kpss_pvalue) or kpss_pvalue > alpha:
            break
        regular_order += 1
        working = working.diff().dropna()

    return regular_order, seasonal_order


def parse_args() -> argparse.Namespace:
    config = AnalysisConfig()
    parser = argparse.ArgumentParser(description="Run stationarity diagnostics on the consumption series.")
    parser.add_argument(
        "--data-path",
        type=Path,
        default=Path(config.DATA_FILE),
        help="Path to the transposed consumption spreadsheet (xlsx or csv).",
    )
    parser.add_argument(
        "--output-path",
        type=Path,
        default=Path(config.STATIONARITY_FILE),
        help="Where to write the diagnostics.",
    )
    parser.add_argument(
        "--period",
        type=int,
        default=config.SEASONAL_PERIOD,
        help="Seasonal period used for the seasonal difference.",
    )
    parser.add_argument(
        "--min-observations",
        type=int,
        default=config.STATIONARITY_MIN_OBSERVATIONS,
        help="Minimum non-null observations required before running tests.",
    )
    parser.add_argument(
        "--alpha",
        type=float,
        default=config.SIGNIFICANCE_LEVEL,
        help="Significance level for the ADF/KPSS verdicts.",
    )
    return parser.parse_args()


def main() -> None:
    args = parse_args()

    series = load_series(args.data_path)
    results = run_stationarity_checks(
        series,
        period=args.period,
        min_obs=args.min_observations,
        alpha=args.alpha,
    )

    output_path: Path = args.output_path
    output_path.parent.mkdir(parents=True, exist_ok=True)
    results.to_csv(output_path, index=False)

    print(f"Saved stationarity diagnostics to {output_path.resolve()}")
    print(results.to_string(index=False))

    d, seasonal_d = suggest_differencing(series, period=args.period, alpha=args.alpha)
    print(f"\nSuggested differencing: d={d}, D={seasonal_d}")


if __name__ == "__main__":
    main()
