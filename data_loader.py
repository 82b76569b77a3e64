"""
Helpers for loading the monthly electricity consumption series.

The source workbook stores the series transposed: one row of ``YYYY-MM``
period labels followed by one row of consumption values. These helpers turn
that layout (or the equivalent two-column layout) into a month-start indexed
series and perform the fixed train/test split used throughout the analysis.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from pathlib import Path
from typing import Optional, Union

import numpy as np
import pandas as pd

PERIOD_FORMAT = "%Y-%m"
EXCEL_SUFFIXES = (".xlsx", ".xlsm", ".xls")


@dataclass(frozen=True)
class SeriesSplit:
    """Chronological split of a monthly series."""

    train: pd.Series
    test: pd.Series

    @property
    def split_point(self) -> pd.Timestamp:
        return self.test.index[0]


def _read_raw_table(path: Path, sheet_name: Optional[Union[str, int]] = 0) -> pd.DataFrame:
    """Read the file without assuming a header row."""
    if path.suffix.lower() in EXCEL_SUFFIXES:
        return pd.read_excel(path, sheet_name=sheet_name if sheet_name is not None else 0, header=None)
    return pd.read_csv(path, header=None)


def _parse_period_labels(labels: pd.Series) -> pd.DatetimeIndex:
    """Parse ``YYYY-MM`` labels (or spreadsheet dates) into month starts."""
    as_text = labels.astype(str).str.strip()
    parsed = pd.to_datetime(as_text, format=PERIOD_FORMAT, errors="coerce")

    # Spreadsheets frequently convert "2004-01" into a real date cell; only those
    # cells may bypass the strict format, text labels never do.
    date_cells = labels.map(lambda value: isinstance(value, (date, np.datetime64)))
    fallback_mask = parsed.isna() & date_cells
    if fallback_mask.any():
        parsed.loc[fallback_mask] = pd.to_datetime(labels[fallback_mask], errors="coerce")

    if parsed.isna().any():
        samples = as_text[parsed.isna()].unique().tolist()
        preview = ", ".join(samples[:5])
        raise ValueError(f"Unable to parse period labels as YYYY-MM: {preview}")

    return pd.DatetimeIndex(parsed).to_period("M").to_timestamp()


def _extract_label_value_pairs(raw: pd.DataFrame) -> pd.DataFrame:
    """Return a two column frame (label, value) from either orientation."""
    raw = raw.dropna(how="all").dropna(axis=1, how="all")
    if raw.empty:
        raise ValueError("Input table is empty")

    n_rows, n_cols = raw.shape
    if n_rows <= n_cols:
        # Transposed layout: first row labels, second row values
        if n_rows < 2:
            raise ValueError("Transposed layout requires a label row and a value row")
        pairs = pd.DataFrame({"label": raw.iloc[0].values, "value": raw.iloc[1].values})
    else:
        if n_cols < 2:
            raise ValueError("Long layout requires a label column and a value column")
        pairs = pd.DataFrame({"label": raw.iloc[:, 0].values, "value": raw.iloc[:, 1].values})

    pairs = pairs.dropna(how="all")

    # Skip a leading header cell such as "Fecha" / "Consumo"
    first_value = pd.to_numeric(pd.Series([pairs["value"].iloc[0]]), errors="coerce").iloc[0]
    if pd.isna(first_value):
        pairs = pairs.iloc[1:]

    return pairs.reset_index(drop=True)


def series_from_table(raw: pd.DataFrame, name: str = "consumption") -> pd.Series:
    """Build a contiguous month-start series from a raw label/value table."""
    pairs = _extract_label_value_pairs(raw)
    if pairs.empty:
        raise ValueError("Input table holds no observations")

    index = _parse_period_labels(pairs["label"])
    values = pd.to_numeric(pairs["value"], errors="coerce")
    if values.isna().any():
        bad = pairs.loc[values.isna(), "label"].astype(str).tolist()
        raise ValueError(f"Non-numeric values for periods: {', '.join(bad[:5])}")

    series = pd.Series(values.to_numpy(dtype=float), index=index, name=name)

    if series.index.has_duplicates:
        dupes = series.index[series.index.duplicated()].strftime(PERIOD_FORMAT).tolist()
        raise ValueError(f"Duplicate periods in input: {', '.join(dupes[:5])}")

    series = series.sort_index()
    expected = pd.date_range(start=series.index[0], end=series.index[-1], freq="MS")
    if len(expected) != len(series):
        missing = expected.difference(series.index)
        preview = ", ".join(missing.strftime(PERIOD_FORMAT).tolist()[:5])
        raise ValueError(f"Series is not contiguous monthly; missing periods: {preview}")

    series.index = expected
    if not np.isfinite(series.to_numpy()).all():
        raise ValueError("Series contains non-finite values")
    return series


def load_series(
    path: Union[str, Path],
    sheet_name: Optional[Union[str, int]] = 0,
    name: str = "consumption",
) -> pd.Series:
    """
    Load the monthly series from a spreadsheet or CSV file.

    Both the transposed layout (labels on the first row) and the long layout
    (labels in the first column) are accepted.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Data file not found: {path}")
    raw = _read_raw_table(path, sheet_name=sheet_name)
    return series_from_table(raw, name=name)


def train_test_split(series: pd.Series, test_size: int = 40) -> SeriesSplit:
    """Split into training (all but the last ``test_size`` points) and test."""
    if test_size < 1:
        raise ValueError("test_size must be at least 1")
    if len(series) <= test_size:
        raise ValueError(
            f"Series has {len(series)} observations; need more than test_size={test_size}"
        )
    split_point = len(series) - test_size
    train = series.iloc[:split_point].copy()
    test = series.iloc[split_point:].copy()
    return SeriesSplit(train=train, test=test)


__all__ = [
    "SeriesSplit",
    "load_series",
    "series_from_table",
    "train_test_split",
]
