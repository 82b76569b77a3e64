"""
Seasonal decomposition of the consumption series.

Classical and STL decompositions, plus the seasonal/trend strength measures
used to decide whether a seasonal difference is warranted.
"""

from __future__ import annotations

from typing import Dict, Optional

import numpy as np
import pandas as pd
from statsmodels.tsa.seasonal import STL, seasonal_decompose

COMPONENT_COLUMNS = ("observed", "trend", "seasonal", "resid")


def _components_frame(result) -> pd.DataFrame:
    return pd.DataFrame(
        {
            "observed": result.observed,
            "trend": result.trend,
            "seasonal": result.seasonal,
            "resid": result.resid,
        }
    )


def classical_decomposition(series: pd.Series, period: int = 12, model: str = "additive") -> pd.DataFrame:
    """Moving-average decomposition; multiplicative requires positive data."""
    valid = series.dropna()
    if model == "multiplicative" and (valid <= 0).any():
        raise ValueError("Multiplicative decomposition requires strictly positive values")
    if len(valid) < 2 * period:
        raise ValueError(f"Need at least {2 * period} observations for period={period}")
    result = seasonal_decompose(valid, model=model, period=period)
    return _components_frame(result)


def stl_decomposition(series: pd.Series, period: int = 12, robust: bool = True) -> pd.DataFrame:
    """STL decomposition (LOESS based)."""
    valid = series.dropna()
    if len(valid) < 2 * period:
        raise ValueError(f"Need at least {2 * period} observations for period={period}")
    result = STL(valid, period=period, robust=robust).fit()
    return _components_frame(result)


def _strength(component: pd.Series, resid: pd.Series) -> float:
    frame = pd.concat([component, resid], axis=1).dropna()
    if frame.empty:
        return float("nan")
    combined_var = np.var(frame.iloc[:, 0] + frame.iloc[:, 1])
    if combined_var <= 0:
        return 0.0
    return float(max(0.0, 1.0 - np.var(frame.iloc[:, 1]) / combined_var))


def seasonal_strength(components: pd.DataFrame) -> float:
    """max(0, 1 - Var(R) / Var(S + R))"""
    return _strength(components["seasonal"], components["resid"])


def trend_strength(components: pd.DataFrame) -> float:
    """max(0, 1 - Var(R) / Var(T + R))"""
    return _strength(components["trend"], components["resid"])


def analyze_seasonality(
    series: pd.Series,
    period: int = 12,
    threshold: float = 0.64,
    robust: bool = True,
    label: Optional[str] = None,
) -> Dict[str, object]:
    """Analyze seasonality patterns in the data"""
    display_name = label or (series.name if series.name is not None else "series")
    print(f"Analyzing seasonality for {display_name}...")

    summary: Dict[str, object] = {
        "period": period,
        "seasonal_strength": float("nan"),
        "trend_strength": float("nan"),
        "is_seasonal": False,
        "peak_month": None,
        "trough_month": None,
        "notes": "",
    }

    try:
        components = stl_decomposition(series, period=period, robust=robust)
    except ValueError as exc:
        print(f"Warning: seasonal analysis skipped for {display_name}: {exc}")
        summary["notes"] = str(exc)
        return summary

    s_strength = seasonal_strength(components)
    t_strength = trend_strength(components)
    summary["seasonal_strength"] = s_strength
    summary["trend_strength"] = t_strength
    summary["is_seasonal"] = bool(s_strength > threshold)

    if isinstance(components.index, pd.DatetimeIndex):
        monthly_profile = components["seasonal"].groupby(components.index.month).mean()
        summary["peak_month"] = int(monthly_profile.idxmax())
        summary["trough_month"] = int(monthly_profile.idxmin())

    print(f"Seasonal strength for {display_name}: {s_strength:.3f}")
    print(f"Trend strength for {display_name}: {t_strength:.3f}")
    print(f"{display_name} is {'seasonal' if summary['is_seasonal'] else 'not strongly seasonal'}")

    return summary


__all__ = [
    "analyze_seasonality",
    "classical_decomposition",
    "seasonal_strength",
    "stl_decomposition",
    "trend_strength",
]
