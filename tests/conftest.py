"""Shared fixtures for the test suite.

Provides small synthetic monthly series shaped like the consumption data
(upward trend, yearly seasonality, mild noise) so the search and the
diagnostics can be exercised without the real workbook.
"""

import sys
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

# Ensure project root is on the path for imports
PROJECT_ROOT = Path(__file__).resolve().parent.parent
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))


# ---------------------------------------------------------------------------
#  Sample series
# ---------------------------------------------------------------------------

def _make_monthly_series(n_rows: int, seed: int = 42) -> pd.Series:
    """Trend + 12-month seasonal cycle + noise, indexed by month start."""
    rng = np.random.default_rng(seed)
    dates = pd.date_range("2004-01-01", periods=n_rows, freq="MS")
    t = np.arange(n_rows)
    values = (
        20000
        + 15 * t
        + 1500 * np.sin(2 * np.pi * t / 12)
        + 600 * np.cos(4 * np.pi * t / 12)
        + rng.normal(0, 150, n_rows)
    )
    return pd.Series(values, index=dates, name="consumption")


@pytest.fixture
def monthly_series() -> pd.Series:
    """100 monthly observations."""
    return _make_monthly_series(100)


@pytest.fixture
def long_monthly_series() -> pd.Series:
    """140 monthly observations, enough for a 40-month hold-out."""
    return _make_monthly_series(140, seed=7)


@pytest.fixture
def short_series() -> pd.Series:
    """30 monthly observations."""
    return _make_monthly_series(30, seed=3)


@pytest.fixture
def white_noise() -> np.ndarray:
    rng = np.random.default_rng(0)
    return rng.normal(0, 1, 240)


# ---------------------------------------------------------------------------
#  Sample files
# ---------------------------------------------------------------------------

@pytest.fixture
def transposed_csv(tmp_path, monthly_series) -> Path:
    """Write the series in the workbook's transposed layout."""
    labels = ["Fecha"] + monthly_series.index.strftime("%Y-%m").tolist()
    values = ["Consumo"] + [f"{value:.3f}" for value in monthly_series.values]
    path = tmp_path / "transposed.csv"
    path.write_text(",".join(labels) + "\n" + ",".join(values) + "\n")
    return path


@pytest.fixture
def long_csv(tmp_path, monthly_series) -> Path:
    """Write the series as label/value columns with a header row."""
    frame = pd.DataFrame({
        "period": monthly_series.index.strftime("%Y-%m"),
        "consumption": monthly_series.values,
    })
    path = tmp_path / "long.csv"
    frame.to_csv(path, index=False)
    return path
