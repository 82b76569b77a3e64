"""Tests for data_loader.py: layouts, validation and the train/test split."""

import pandas as pd
import pytest

from data_loader import SeriesSplit, load_series, series_from_table, train_test_split


class TestLoadSeries:
    """Reading both supported layouts from disk."""

    def test_transposed_layout(self, transposed_csv, monthly_series):
        series = load_series(transposed_csv)
        assert len(series) == len(monthly_series)
        assert series.index[0] == pd.Timestamp("2004-01-01")
        assert series.index.freqstr == "MS"
        assert series.values == pytest.approx(monthly_series.values, abs=1e-3)

    def test_long_layout(self, long_csv, monthly_series):
        series = load_series(long_csv)
        assert len(series) == len(monthly_series)
        assert series.index[-1] == monthly_series.index[-1]
        assert series.name == "consumption"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_series(tmp_path / "nope.xlsx")


class TestSeriesFromTable:
    """Validation of raw label/value tables."""

    def test_unordered_labels_are_sorted(self):
        raw = pd.DataFrame([["2020-03", "2020-01", "2020-02"], [3.0, 1.0, 2.0]])
        series = series_from_table(raw)
        assert series.tolist() == [1.0, 2.0, 3.0]

    def test_gap_raises(self):
        raw = pd.DataFrame([["2020-01", "2020-02", "2020-04"], [1.0, 2.0, 4.0]])
        with pytest.raises(ValueError, match="2020-03"):
            series_from_table(raw)

    def test_duplicate_period_raises(self):
        raw = pd.DataFrame([["2020-01", "2020-01", "2020-02"], [1.0, 1.5, 2.0]])
        with pytest.raises(ValueError, match="Duplicate"):
            series_from_table(raw)

    def test_non_numeric_value_raises(self):
        raw = pd.DataFrame([["2020-01", "2020-02", "2020-03"], [1.0, "n/a", 3.0]])
        with pytest.raises(ValueError, match="Non-numeric"):
            series_from_table(raw)

    def test_bad_label_raises(self):
        raw = pd.DataFrame([["2020-01", "not a month", "2020-03"], [1.0, 2.0, 3.0]])
        with pytest.raises(ValueError, match="period labels"):
            series_from_table(raw)

    def test_date_cells_are_accepted(self):
        """Spreadsheets often store the labels as real dates."""
        raw = pd.DataFrame([
            [pd.Timestamp("2021-01-01"), pd.Timestamp("2021-02-01"), pd.Timestamp("2021-03-01")],
            [10.0, 11.0, 12.0],
        ])
        series = series_from_table(raw)
        assert series.index[1] == pd.Timestamp("2021-02-01")

    def test_day_level_text_labels_are_rejected(self):
        """Only real date cells may skip the strict YYYY-MM format."""
        raw = pd.DataFrame([["2004-01-15", "2004-02-20", "2004-03-31"], [1.0, 2.0, 3.0]])
        with pytest.raises(ValueError, match="2004-01-15"):
            series_from_table(raw)

    def test_empty_table_raises(self):
        with pytest.raises(ValueError):
            series_from_table(pd.DataFrame())


class TestTrainTestSplit:
    """Fixed-size chronological hold-out."""

    def test_default_split_sizes(self, long_monthly_series):
        split = train_test_split(long_monthly_series)
        assert isinstance(split, SeriesSplit)
        assert len(split.train) == 100
        assert len(split.test) == 40
        assert split.train.index[-1] < split.test.index[0]
        assert split.split_point == long_monthly_series.index[100]

    def test_split_returns_copies(self, long_monthly_series):
        split = train_test_split(long_monthly_series, test_size=10)
        split.train.iloc[0] = -1.0
        assert long_monthly_series.iloc[0] != -1.0

    @pytest.mark.parametrize("test_size", [0, 140, 200])
    def test_invalid_sizes(self, long_monthly_series, test_size):
        with pytest.raises(ValueError):
            train_test_split(long_monthly_series, test_size=test_size)
