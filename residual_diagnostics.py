"""
Residual diagnostics for a fitted SARIMA specification.

Whiteness is checked with Ljung-Box at seasonal lags and normality with
Jarque-Bera. The first d + D*s residuals are dropped before testing because
they only absorb the differencing start-up.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Sequence

import numpy as np
from statsmodels.stats.diagnostic import acorr_ljungbox
from statsmodels.stats.stattools import jarque_bera

from sarima_grid_search import ModelSpecification


@dataclass(frozen=True)
class ResidualDiagnostics:
    """Summary of residual whiteness and normality."""

    n_obs: int
    ljung_box_pvalues: Dict[int, float] = field(default_factory=dict)
    jarque_bera_stat: float = math.nan
    jarque_bera_pvalue: float = math.nan
    mean: float = math.nan
    std: float = math.nan
    skewness: float = math.nan
    kurtosis: float = math.nan
    alpha: float = 0.05

    @property
    def min_ljung_box_pvalue(self) -> float:
        finite = [value for value in self.ljung_box_pvalues.values() if np.isfinite(value)]
        return min(finite) if finite else math.nan

    @property
    def is_white_noise(self) -> Optional[bool]:
        pvalue = self.min_ljung_box_pvalue
        if math.isnan(pvalue):
            return None
        return pvalue > self.alpha

    @property
    def is_normal(self) -> Optional[bool]:
        if math.isnan(self.jarque_bera_pvalue):
            return None
        return self.jarque_bera_pvalue > self.alpha

    def to_dict(self) -> Dict[str, Any]:
        record: Dict[str, Any] = {
            "n_resid": self.n_obs,
            "ljung_box_pvalue": self.min_ljung_box_pvalue,
            "jarque_bera_pvalue": self.jarque_bera_pvalue,
            "resid_mean": self.mean,
            "resid_std": self.std,
            "resid_skewness": self.skewness,
            "resid_kurtosis": self.kurtosis,
            "white_noise": self.is_white_noise,
            "normal": self.is_normal,
        }
        for lag, pvalue in self.ljung_box_pvalues.items():
            record[f"lb_pvalue_lag{lag}"] = pvalue
        return record


def diagnose_residuals(
    residuals: Sequence[float],
    lags: Sequence[int] = (12, 24),
    alpha: float = 0.05,
    burn_in: int = 0,
    model_df: int = 0,
) -> ResidualDiagnostics:
    """Run Ljung-Box and Jarque-Bera on a residual sequence."""
    resid = np.asarray(residuals, dtype=float)
    resid = resid[max(0, int(burn_in)):]
    resid = resid[np.isfinite(resid)]
    n_obs = int(resid.size)

    if n_obs < 3:
        return ResidualDiagnostics(n_obs=n_obs, alpha=alpha)

    # Ljung-Box needs lags below the sample size and above the fitted df
    usable_lags = sorted({int(lag) for lag in lags if model_df < int(lag) < n_obs})
    lb_pvalues: Dict[int, float] = {}
    if usable_lags:
        lb = acorr_ljungbox(resid, lags=usable_lags, model_df=model_df, return_df=True)
        lb_pvalues = {int(lag): float(pvalue) for lag, pvalue in zip(usable_lags, lb["lb_pvalue"])}

    jb_stat, jb_pvalue, skewness, kurtosis = jarque_bera(resid)

    return ResidualDiagnostics(
        n_obs=n_obs,
        ljung_box_pvalues=lb_pvalues,
        jarque_bera_stat=float(jb_stat),
        jarque_bera_pvalue=float(jb_pvalue),
        mean=float(np.mean(resid)),
        std=float(np.std(resid, ddof=1)),
        skewness=float(skewness),
        kurtosis=float(kurtosis),
        alpha=alpha,
    )


def diagnose_fit(
    fit: Any,
    spec: ModelSpecification,
    lags: Sequence[int] = (12, 24),
    alpha: float = 0.05,
) -> ResidualDiagnostics:
    """Diagnostics for a fitted specification, skipping the differencing burn-in."""
    burn_in = spec.d + spec.D * spec.s
    return diagnose_residuals(
        fit.resid,
        lags=lags,
        alpha=alpha,
        burn_in=burn_in,
        model_df=spec.complexity,
    )


def print_diagnostics(diagnostics: ResidualDiagnostics, label: str) -> None:
    """Print a compact diagnostics block."""
    def format_value(value: float, digits: int = 4) -> str:
        if value is None or (isinstance(value, float) and math.isnan(value)):
            return "N/A"
        return f"{float(value):.{digits}f}"

    print(f"\nResidual diagnostics for {label}:")
    print("-" * 30)
    print(f"  Residuals used: {diagnostics.n_obs}")
    for lag, pvalue in diagnostics.ljung_box_pvalues.items():
        print(f"  Ljung-Box p-value (lag {lag}): {format_value(pvalue)}")
    print(f"  Jarque-Bera p-value: {format_value(diagnostics.jarque_bera_pvalue)}")
    print(f"  Mean: {format_value(diagnostics.mean)}, Std: {format_value(diagnostics.std)}")
    print(f"  Skewness: {format_value(diagnostics.skewness)}, Kurtosis: {format_value(diagnostics.kurtosis)}")
    whiteness = diagnostics.is_white_noise
    normality = diagnostics.is_normal
    print(f"  White noise: {'N/A' if whiteness is None else ('yes' if whiteness else 'no')}")
    print(f"  Normal: {'N/A' if normality is None else ('yes' if normality else 'no')}")


__all__ = [
    "ResidualDiagnostics",
    "diagnose_fit",
    "diagnose_residuals",
    "print_diagnostics",
]
