"""
Held-out forecast evaluation.

Refits the top-ranked SARIMA specifications on the training series, forecasts
the test window and scores them next to ETS, STL, Theta and seasonal-naive
benchmarks. Every function receives the series / specification it works on;
nothing is read from shared state.
"""

from __future__ import annotations

import warnings
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from statsmodels.tsa.arima.model import ARIMA
from statsmodels.tsa.forecasting.stl import STLForecast
from statsmodels.tsa.forecasting.theta import ThetaModel
from statsmodels.tsa.holtwinters import ExponentialSmoothing

from data_loader import SeriesSplit
from residual_diagnostics import diagnose_fit
from sarima_grid_search import ModelSpecification, fit_specification

METRIC_COLUMNS = ("rmse", "mae", "mape", "mase", "bias_percent", "mae_percent")


def calculate_metrics(
    actual: Sequence[float],
    predicted: Sequence[float],
    label: Optional[str] = None,
    train: Optional[Sequence[float]] = None,
    season_length: int = 12,
) -> Dict[str, float]:
    """Calculate forecast accuracy metrics for summary and exports."""
    actual = np.asarray(actual, dtype=float)
    predicted = np.asarray(predicted, dtype=float)
    if actual.shape != predicted.shape:
        raise ValueError(f"actual and predicted differ in shape: {actual.shape} vs {predicted.shape}")

    # Remove any NaN values
    mask = ~(np.isnan(actual) | np.isnan(predicted))
    actual_clean = actual[mask]
    predicted_clean = predicted[mask]

    if len(actual_clean) == 0:
        return {column: np.nan for column in METRIC_COLUMNS}

    errors = predicted_clean - actual_clean
    rmse = float(np.sqrt(np.mean(errors ** 2)))
    mae = float(np.mean(np.abs(errors)))

    # Mean Absolute Percentage Error (ignore zero actuals)
    nonzero_mask = actual_clean != 0
    if np.any(nonzero_mask):
        mape = float(np.mean(np.abs(errors[nonzero_mask] / actual_clean[nonzero_mask])) * 100)
    else:
        mape = np.nan

    mean_actual = np.mean(actual_clean)
    bias_percent = float(np.mean(errors) / mean_actual * 100) if mean_actual != 0 else np.nan

    # MAE% defined as total absolute error divided by total actual demand
    total_actual = np.sum(np.abs(actual_clean))
    mae_percent = float(np.sum(np.abs(errors)) / total_actual * 100) if total_actual != 0 else np.nan

    # MASE scaled by the in-sample seasonal naive error
    mase = np.nan
    if train is not None:
        history = np.asarray(train, dtype=float)
        history = history[~np.isnan(history)]
        if len(history) > season_length:
            scale = np.mean(np.abs(history[season_length:] - history[:-season_length]))
            if scale > 0:
                mase = float(mae / scale)

    if label:
        print(
            f"{label} - RMSE: {rmse:.2f}, MAE: {mae:.2f}, MAPE: {mape:.2f}%, "
            f"MASE: {mase:.3f}, Bias%: {bias_percent:.2f}%"
        )

    return {
        "rmse": rmse,
        "mae": mae,
        "mape": mape,
        "mase": mase,
        "bias_percent": bias_percent,
        "mae_percent": mae_percent,
    }


def _forecast_index(history: pd.Series, steps: int) -> pd.Index:
    if isinstance(history.index, pd.DatetimeIndex) and len(history):
        return pd.date_range(start=history.index[-1] + pd.DateOffset(months=1), periods=steps, freq="MS")
    start = len(history)
    return pd.RangeIndex(start, start + steps)


def forecast_sarima(fit: Any, steps: int, confidence_level: float = 0.95) -> pd.DataFrame:
    """Generate forecast with confidence intervals"""
    forecast_result = fit.get_forecast(steps=steps)
    forecast_mean = forecast_result.predicted_mean
    conf_int = forecast_result.conf_int(alpha=1 - confidence_level)
    return pd.DataFrame(
        {
            "forecast": np.asarray(forecast_mean, dtype=float),
            "lower": np.asarray(conf_int)[:, 0],
            "upper": np.asarray(conf_int)[:, 1],
        },
        index=getattr(forecast_mean, "index", None),
    )


def seasonal_naive_forecast(train: pd.Series, steps: int, season_length: int = 12) -> pd.Series:
    """Repeat the last observed season."""
    if len(train) < season_length:
        raise ValueError(f"Need at least {season_length} observations for a seasonal naive forecast")
    last_season = np.asarray(train.iloc[-season_length:], dtype=float)
    values = np.resize(last_season, steps)
    return pd.Series(values, index=_forecast_index(train, steps), name="seasonal_naive")


def fit_ets(
    train: pd.Series,
    season_length: int = 12,
    trend: Optional[str] = "add",
    seasonal: Optional[str] = "mul",
    damped: bool = True,
) -> Any:
    """Fit a Holt-Winters model; multiplicative seasonality needs positive data."""
    if seasonal == "mul" and (np.asarray(train) <= 0).any():
        print("Warning: Non-positive values present; switching ETS seasonality to additive.")
        seasonal = "add"
    if seasonal is not None and len(train) < 2 * season_length:
        print("Warning: Not enough data for seasonal ETS component; disabling seasonality.")
        seasonal = None

    model = ExponentialSmoothing(
        train,
        trend=trend,
        damped_trend=damped if trend is not None else False,
        seasonal=seasonal,
        seasonal_periods=season_length if seasonal is not None else None,
        initialization_method="estimated",
    )
    return model.fit(optimized=True)


def _arima_trend_for(order: Tuple[int, int, int]) -> str:
    d = order[1]
    if d == 0:
        return "c"
    if d == 1:
        return "t"
    return "n"


def fit_stl_forecast(
    train: pd.Series,
    period: int = 12,
    arima_order: Tuple[int, int, int] = (1, 1, 0),
    robust: bool = True,
) -> Any:
    """STL decomposition with an ARIMA model on the seasonally adjusted series."""
    model = STLForecast(
        train,
        ARIMA,
        model_kwargs={"order": tuple(arima_order), "trend": _arima_trend_for(tuple(arima_order))},
        period=period,
        robust=robust,
    )
    return model.fit()


def fit_theta(train: pd.Series, period: int = 12) -> Any:
    return ThetaModel(train, period=period).fit()


def _benchmark_forecasts(split: SeriesSplit, config: Any) -> Dict[str, Callable[[], pd.Series]]:
    train, steps = split.train, len(split.test)
    period = config.SEASONAL_PERIOD

    def ets() -> pd.Series:
        fitted = fit_ets(
            train,
            season_length=period,
            trend=config.ETS_TREND,
            seasonal=config.ETS_SEASONAL,
            damped=config.ETS_DAMPED,
        )
        return fitted.forecast(steps)

    def stl() -> pd.Series:
        fitted = fit_stl_forecast(train, period=period, arima_order=config.STL_ARIMA_ORDER, robust=config.STL_ROBUST)
        return fitted.forecast(steps)

    def theta() -> pd.Series:
        return fit_theta(train, period=period).forecast(steps)

    def naive() -> pd.Series:
        return seasonal_naive_forecast(train, steps, season_length=period)

    return {
        "ETS": ets,
        "STL-ARIMA": stl,
        "Theta": theta,
        "SeasonalNaive": naive,
    }


def evaluate_candidates(
    split: SeriesSplit,
    specs: Sequence[ModelSpecification],
    config: Any,
    include_benchmarks: bool = True,
) -> pd.DataFrame:
    """Score SARIMA candidates and benchmarks on the test window, sorted by RMSE."""
    print("\n" + "=" * 50)
    print("HOLD-OUT FORECAST EVALUATION")
    print("=" * 50)

    train, test = split.train, split.test
    steps = len(test)
    period = config.SEASONAL_PERIOD
    records: List[Dict[str, Any]] = []

    for spec in specs:
        label = f"SARIMA{spec.label}"
        try:
            with warnings.catch_warnings():
                warnings.filterwarnings("ignore")
                fit = fit_specification(
                    train,
                    spec,
                    maxiter=config.MAXITER,
                    enforce_stationarity=config.ENFORCE_STATIONARITY,
                    enforce_invertibility=config.ENFORCE_INVERTIBILITY,
                )
            forecast = forecast_sarima(fit, steps, confidence_level=config.CONFIDENCE_LEVEL)
        except Exception as exc:
            print(f"Warning: Unable to refit {label}: {exc}")
            continue

        metrics = calculate_metrics(test.values, forecast["forecast"].values, label, train.values, period)
        diagnostics = diagnose_fit(fit, spec, lags=config.LJUNG_BOX_LAGS, alpha=config.SIGNIFICANCE_LEVEL)
        coverage = float(np.mean((test.values >= forecast["lower"].values) & (test.values <= forecast["upper"].values)))

        record: Dict[str, Any] = {"model": label, "family": "SARIMA", "aicc": float(fit.aicc)}
        record.update(metrics)
        record["interval_coverage"] = coverage
        record["ljung_box_pvalue"] = diagnostics.min_ljung_box_pvalue
        record["jarque_bera_pvalue"] = diagnostics.jarque_bera_pvalue
        record["white_noise"] = diagnostics.is_white_noise
        record["normal"] = diagnostics.is_normal
        records.append(record)

    if include_benchmarks:
        for name, build_forecast in _benchmark_forecasts(split, config).items():
            try:
                with warnings.catch_warnings():
                    warnings.filterwarnings("ignore")
                    predicted = build_forecast()
            except Exception as exc:
                print(f"Warning: {name} benchmark failed: {exc}")
                continue
            metrics = calculate_metrics(test.values, np.asarray(predicted, dtype=float), name, train.values, period)
            record = {"model": name, "family": "benchmark", "aicc": np.nan}
            record.update(metrics)
            records.append(record)

    columns = [
        "model", "family", "aicc", *METRIC_COLUMNS, "interval_coverage",
        "ljung_box_pvalue", "jarque_bera_pvalue", "white_noise", "normal",
    ]
    results = pd.DataFrame.from_records(records, columns=columns)
    if results.empty:
        return results
    return results.sort_values("rmse", kind="mergesort", na_position="last").reset_index(drop=True)


__all__ = [
    "calculate_metrics",
    "evaluate_candidates",
    "fit_ets",
    "fit_stl_forecast",
    "fit_theta",
    "forecast_sarima",
    "seasonal_naive_forecast",
]
