"""
SARIMA analysis pipeline for the Spanish electricity consumption series
Chains loading, diagnostics, order search, evaluation and the final forecast
"""

import warnings
from pathlib import Path
from typing import Any, Dict, Optional

import numpy as np
import pandas as pd

from check_stationarity import run_stationarity_checks, suggest_differencing
from config import AnalysisConfig
from data_loader import SeriesSplit, load_series, train_test_split
from decomposition import analyze_seasonality, classical_decomposition, seasonal_strength
from forecast_evaluation import evaluate_candidates, forecast_sarima
from residual_diagnostics import ResidualDiagnostics, diagnose_fit, print_diagnostics
from sarima_grid_search import (
    ModelSpecification,
    fit_specification,
    results_to_specs,
    run_grid_search,
)


class SARIMAAnalysis:
    """
    End-to-end analysis of one monthly series with explicit hand-offs between steps
    """

    def __init__(self, config=None, series: Optional[pd.Series] = None):
        self.config = config or AnalysisConfig()
        self.series = series

    @staticmethod
    def _banner(title):
        print("\n" + "=" * 50)
        print(title)
        print("=" * 50)

    def load_data(self) -> pd.Series:
        """Load the series unless one was supplied up front"""
        if self.series is not None:
            print(f"Using supplied series with {len(self.series)} observations")
            return self.series

        print(f"Loading data from {self.config.DATA_FILE}...")
        series = load_series(self.config.DATA_FILE, sheet_name=self.config.SHEET_NAME)
        print(
            f"Loaded {len(series)} monthly observations "
            f"({series.index[0].strftime('%Y-%m')} to {series.index[-1].strftime('%Y-%m')})"
        )
        return series

    def split_data(self, series: pd.Series) -> SeriesSplit:
        """Split data into train and test sets"""
        split = train_test_split(series, test_size=self.config.TEST_SIZE)
        print(f"Train: {len(split.train)} observations, Test: {len(split.test)} observations")
        return split

    def analyze_seasonality(self, series: pd.Series) -> Dict[str, Any]:
        summary = analyze_seasonality(
            series,
            period=self.config.SEASONAL_PERIOD,
            threshold=self.config.SEASONALITY_THRESHOLD,
            robust=self.config.STL_ROBUST,
        )
        try:
            classical = classical_decomposition(series, period=self.config.SEASONAL_PERIOD)
            summary["classical_seasonal_strength"] = seasonal_strength(classical)
        except ValueError as exc:
            print(f"Warning: classical decomposition unavailable: {exc}")
            summary["classical_seasonal_strength"] = np.nan
        return summary

    def check_stationarity(self, series: pd.Series) -> pd.DataFrame:
        """ADF/KPSS on the raw and differenced series"""
        results = run_stationarity_checks(
            series,
            period=self.config.SEASONAL_PERIOD,
            min_obs=self.config.STATIONARITY_MIN_OBSERVATIONS,
            alpha=self.config.SIGNIFICANCE_LEVEL,
        )
        columns = [c for c in ("transformation", "n_obs", "adf_pvalue", "kpss_pvalue",
                               "adf_stationary", "kpss_stationary") if c in results.columns]
        print(results[columns].to_string(index=False))

        d, seasonal_d = suggest_differencing(
            series,
            period=self.config.SEASONAL_PERIOD,
            alpha=self.config.SIGNIFICANCE_LEVEL,
            seasonal_threshold=self.config.SEASONALITY_THRESHOLD,
        )
        print(f"Suggested differencing: d={d}, D={seasonal_d}")
        results.attrs["suggested_d"] = d
        results.attrs["suggested_D"] = seasonal_d
        return results

    def search_orders(self, train: pd.Series) -> pd.DataFrame:
        for line in self.config.describe():
            print(f"  - {line}")
        return run_grid_search(
            train,
            self.config,
            results_path=self.config.RESULTS_FILE,
            use_cache=self.config.USE_CACHED_RESULTS,
        )

    def fit_model(self, series: pd.Series, spec: ModelSpecification):
        """Fit a chosen specification; returns None when estimation fails"""
        try:
            with warnings.catch_warnings():
                warnings.filterwarnings("ignore")
                fitted = fit_specification(
                    series,
                    spec,
                    maxiter=self.config.MAXITER,
                    enforce_stationarity=self.config.ENFORCE_STATIONARITY,
                    enforce_invertibility=self.config.ENFORCE_INVERTIBILITY,
                )
        except Exception as exc:
            print(f"Error fitting SARIMA{spec.label}: {exc}")
            return None
        print(f"Model fitted successfully for SARIMA{spec.label}")
        print(f"AICc: {fitted.aicc:.2f}")
        return fitted

    def diagnose(self, fitted, spec: ModelSpecification) -> ResidualDiagnostics:
        diagnostics = diagnose_fit(
            fitted,
            spec,
            lags=self.config.LJUNG_BOX_LAGS,
            alpha=self.config.SIGNIFICANCE_LEVEL,
        )
        print_diagnostics(diagnostics, f"SARIMA{spec.label}")
        return diagnostics

    def forecast_future(self, series: pd.Series, spec: ModelSpecification) -> Optional[pd.DataFrame]:
        """Refit on the complete history and forecast beyond the sample"""
        print(f"Refitting SARIMA{spec.label} on full history prior to final forecast...")
        fitted = self.fit_model(series, spec)
        if fitted is None:
            return None

        print(f"Generating {self.config.FORECAST_MONTHS}-month forecast...")
        forecast = forecast_sarima(fitted, self.config.FORECAST_MONTHS, self.config.CONFIDENCE_LEVEL)
        forecast.insert(0, "model", spec.label)
        return forecast

    def _save(self, frame: Optional[pd.DataFrame], path: str, index: bool = False) -> None:
        if not self.config.SAVE_RESULTS or frame is None or frame.empty:
            return
        output_path = Path(path)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        frame.to_csv(output_path, index=index)
        print(f"Saved {output_path}")

    def run(self) -> Dict[str, Any]:
        """Main method to run the complete analysis"""
        print("Starting SARIMA analysis pipeline...")
        print("=" * 50)

        series = self.load_data()
        split = self.split_data(series)

        self._banner("SEASONALITY")
        seasonality = self.analyze_seasonality(split.train)

        self._banner("STATIONARITY")
        stationarity = self.check_stationarity(split.train)

        self._banner("SARIMA ORDER SEARCH")
        ranking = self.search_orders(split.train)
        if ranking.empty:
            print("\n[ERROR] No SARIMA candidate could be estimated. Check data and search ranges.")
            return {
                "series": series,
                "split": split,
                "seasonality": seasonality,
                "stationarity": stationarity,
                "ranking": ranking,
            }

        top_specs = results_to_specs(ranking.head(self.config.TOP_K_CANDIDATES))
        print(f"\nTop {len(top_specs)} candidates by AICc:")
        print(ranking.head(self.config.TOP_K_CANDIDATES).to_string(index=False))

        candidates = evaluate_candidates(split, top_specs, self.config)

        best_spec = top_specs[0]
        self._banner(f"DIAGNOSTICS SARIMA{best_spec.label}")
        best_fit = self.fit_model(split.train, best_spec)
        diagnostics = self.diagnose(best_fit, best_spec) if best_fit is not None else None

        self._banner("FINAL FORECAST")
        forecast = self.forecast_future(series, best_spec)

        self._save(stationarity, self.config.STATIONARITY_FILE)
        self._save(candidates, self.config.CANDIDATES_FILE)
        self._save(forecast, self.config.FORECAST_FILE, index=True)

        results = {
            "series": series,
            "split": split,
            "seasonality": seasonality,
            "stationarity": stationarity,
            "ranking": ranking,
            "candidates": candidates,
            "best_spec": best_spec,
            "diagnostics": diagnostics,
            "forecast": forecast,
        }
        self.print_summary(results)
        return results

    def print_summary(self, results: Dict[str, Any]) -> None:
        """Print summary of analysis results"""
        self._banner("ANALYSIS SUMMARY")

        ranking = results.get("ranking")
        print(f"Candidates ranked: {0 if ranking is None else len(ranking)}")

        best_spec = results.get("best_spec")
        if best_spec is not None:
            print(f"Best AICc model: SARIMA{best_spec.label} (AICc={ranking['aicc'].iloc[0]:.2f})")

        candidates = results.get("candidates")
        if candidates is not None and not candidates.empty:
            print("\nHold-out performance (sorted by RMSE):")
            print("-" * 25)

            def format_metric(value, digits=2, suffix=""):
                if value is None or pd.isna(value):
                    return "N/A"
                return f"{float(value):.{digits}f}{suffix}"

            for row in candidates.itertuples(index=False):
                print(
                    f"{row.model}: RMSE={format_metric(row.rmse)}, "
                    f"MAPE={format_metric(row.mape, suffix='%')}, "
                    f"MASE={format_metric(row.mase, digits=3)}"
                )

        forecast = results.get("forecast")
        if forecast is not None:
            print(f"\nNext {len(forecast)}-month forecast generated.")

        print("=" * 50)


__all__ = ["SARIMAAnalysis"]
