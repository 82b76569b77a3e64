"""Tests for sarima_grid_search.py: enumeration, ranking, failures and persistence."""

import dataclasses
import json

import numpy as np
import pandas as pd
import pytest

from config import AnalysisConfig
from sarima_grid_search import (
    FitOutcome,
    GridSearchReport,
    ModelSpecification,
    SARIMAGridSearch,
    SearchPreconditionError,
    load_cached_results,
    load_results,
    results_to_specs,
    run_grid_search,
    save_results,
    search_settings,
)


class _TwoOrderConfig(AnalysisConfig):
    """p in {0, 2}; everything else fixed, cap wide enough for both."""

    P_RANGE = [0, 2]
    D_RANGE = [1]
    Q_RANGE = [0]
    SEASONAL_P_RANGE = [0]
    SEASONAL_D_RANGE = [1]
    SEASONAL_Q_RANGE = [0]
    COMPLEXITY_CAP = 6


class _CapZeroConfig(_TwoOrderConfig):
    COMPLEXITY_CAP = 0


def _search(series, **overrides):
    """Small search with quiet output unless overridden."""
    kwargs = dict(
        p_range=[0, 1],
        d_range=[0, 1],
        q_range=[0, 1],
        seasonal_p_range=[0],
        seasonal_d_range=[1],
        seasonal_q_range=[0],
        complexity_cap=1,
        verbose=False,
    )
    kwargs.update(overrides)
    return SARIMAGridSearch(series, **kwargs)


# ---------------------------------------------------------------------------
#  ModelSpecification
# ---------------------------------------------------------------------------

class TestModelSpecification:
    """Orders, labels and derived quantities."""

    def test_label_format(self):
        spec = ModelSpecification(1, 1, 2, 0, 1, 1, 12)
        assert spec.label == "(1,1,2)(0,1,1)[12]"
        assert str(spec) == spec.label

    def test_label_round_trip(self):
        spec = ModelSpecification(2, 0, 1, 1, 1, 0, 12)
        assert ModelSpecification.from_label(spec.label) == spec

    def test_from_label_tolerates_spaces(self):
        spec = ModelSpecification.from_label("(1, 0, 1)(0, 1, 1)[12]")
        assert spec.order == (1, 0, 1)
        assert spec.seasonal_order == (0, 1, 1, 12)

    @pytest.mark.parametrize("label", ["SARIMA(1,0,1)", "(1,0)(0,1,1)[12]", "", "(a,0,1)(0,1,1)[12]"])
    def test_from_label_rejects_garbage(self, label):
        with pytest.raises(ValueError):
            ModelSpecification.from_label(label)

    def test_complexity_excludes_differencing(self):
        spec = ModelSpecification(1, 2, 1, 1, 3, 0, 12)
        assert spec.complexity == 3

    def test_required_observations(self):
        assert ModelSpecification(0, 0, 0, 0, 1, 0, 12).required_observations == 13
        # 12 (D) + 24 (P*s) + 2 (P) + 1
        assert ModelSpecification(0, 0, 0, 2, 1, 0, 12).required_observations == 39


# ---------------------------------------------------------------------------
#  Candidate enumeration
# ---------------------------------------------------------------------------

class TestEnumeration:
    """Cartesian product filtered by p + q + P + Q <= cap."""

    def test_scenario_count(self, monthly_series):
        """p,q,P,Q in {0,1,2}, d in {0,1}, D = 1, cap 4 gives 100 candidates."""
        search = _search(
            monthly_series,
            p_range=range(3), d_range=range(2), q_range=range(3),
            seasonal_p_range=range(3), seasonal_d_range=[1], seasonal_q_range=range(3),
            complexity_cap=4,
        )
        candidates = search.enumerate_candidates()
        assert len(candidates) == 100
        assert all(spec.complexity <= 4 for spec in candidates)

    def test_enumeration_has_no_duplicates(self, monthly_series):
        search = _search(monthly_series, p_range=[0, 1, 1, 0], complexity_cap=3)
        candidates = search.enumerate_candidates()
        assert len(candidates) == len(set(candidates))

    def test_cap_zero_keeps_only_zero_orders(self, monthly_series):
        search = _search(
            monthly_series,
            p_range=range(3), q_range=range(3),
            seasonal_p_range=range(3), seasonal_q_range=range(3),
            complexity_cap=0,
        )
        candidates = search.enumerate_candidates()
        assert len(candidates) == 2  # d in {0, 1}
        assert all(spec.complexity == 0 for spec in candidates)

    def test_differencing_does_not_count_against_cap(self, monthly_series):
        search = _search(monthly_series, d_range=[0, 1, 2], seasonal_d_range=[1, 2], complexity_cap=0)
        candidates = search.enumerate_candidates()
        assert {(spec.d, spec.D) for spec in candidates} == {(0, 1), (0, 2), (1, 1), (1, 2), (2, 1), (2, 2)}

    def test_generation_order_is_lexicographic(self, monthly_series):
        candidates = _search(monthly_series).enumerate_candidates()
        keys = [(s.p, s.d, s.q, s.P, s.D, s.Q) for s in candidates]
        assert keys == sorted(keys)

    @pytest.mark.parametrize("bad_range", [[-1, 0], [], [0.5], None])
    def test_invalid_ranges_raise(self, monthly_series, bad_range):
        with pytest.raises(SearchPreconditionError):
            _search(monthly_series, q_range=bad_range).enumerate_candidates()

    @pytest.mark.parametrize("bad_cap", [-1, 1.5, True])
    def test_invalid_cap_raises(self, monthly_series, bad_cap):
        with pytest.raises(SearchPreconditionError):
            _search(monthly_series, complexity_cap=bad_cap).enumerate_candidates()

    def test_season_length_below_two_raises(self, monthly_series):
        with pytest.raises(SearchPreconditionError):
            _search(monthly_series, season_length=1).enumerate_candidates()


# ---------------------------------------------------------------------------
#  Search preconditions
# ---------------------------------------------------------------------------

class TestPreconditions:
    """Errors raised before any model is fitted."""

    def test_empty_series_raises(self):
        with pytest.raises(SearchPreconditionError):
            _search(pd.Series([], dtype=float)).run()

    def test_too_short_series_raises(self):
        with pytest.raises(SearchPreconditionError):
            _search(pd.Series([1.0, 2.0])).run()

    @pytest.mark.parametrize("values", [[1.0, np.nan, 3.0, 4.0], [1.0, np.inf, 3.0, 4.0], [1.0, "x", 3.0, 4.0]])
    def test_non_numeric_or_non_finite_raises(self, values):
        with pytest.raises(SearchPreconditionError):
            _search(pd.Series(values)).run()

    def test_no_candidate_under_cap_raises(self, monthly_series):
        search = _search(monthly_series, p_range=[1], d_range=[0], q_range=[1], complexity_cap=1)
        with pytest.raises(SearchPreconditionError):
            search.run()

    def test_precondition_error_is_value_error(self):
        assert issubclass(SearchPreconditionError, ValueError)


# ---------------------------------------------------------------------------
#  Running the search
# ---------------------------------------------------------------------------

class TestRun:
    """End-to-end search on small grids."""

    def test_ranking_sorted_ascending(self, monthly_series):
        report = _search(monthly_series).run()
        table = report.to_dataframe()
        assert list(table.columns) == ["aicc", "model"]
        assert not table.empty
        assert table["aicc"].is_monotonic_increasing
        assert np.isfinite(table["aicc"]).all()

    def test_every_candidate_is_ranked_or_failed(self, monthly_series):
        report = _search(monthly_series).run()
        assert len(report.ranked) + len(report.failures) == report.n_candidates == 6
        ranked_labels = {outcome.spec.label for outcome in report.ranked}
        failed_labels = {outcome.spec.label for outcome in report.failures}
        assert not ranked_labels & failed_labels

    def test_ranked_models_respect_cap(self, monthly_series):
        report = _search(monthly_series, complexity_cap=1).run()
        for spec in results_to_specs(report.to_dataframe()):
            assert spec.complexity <= 1

    def test_search_is_idempotent(self, monthly_series):
        first = _search(monthly_series).run().to_dataframe()
        second = _search(monthly_series).run().to_dataframe()
        assert first["model"].tolist() == second["model"].tolist()
        assert first["aicc"].tolist() == pytest.approx(second["aicc"].tolist())

    def test_best_and_top(self, monthly_series):
        report = _search(monthly_series).run()
        assert report.best is report.ranked[0]
        assert report.top(2) == [outcome.spec for outcome in report.ranked[:2]]
        assert report.top(0) == []

    def test_short_series_excludes_demanding_candidates(self, short_series):
        """Seasonal AR order 2 needs more history than 30 months provide."""
        report = _search(
            short_series,
            p_range=[0], d_range=[0], q_range=[0],
            seasonal_p_range=[0, 2], seasonal_d_range=[1], seasonal_q_range=[0],
            complexity_cap=2,
        ).run()
        ranked = report.to_dataframe()["model"].tolist()
        failed = {outcome.spec.label: outcome.error for outcome in report.failures}

        assert "(0,0,0)(0,1,0)[12]" in ranked
        assert "(0,0,0)(2,1,0)[12]" not in ranked
        assert failed["(0,0,0)(2,1,0)[12]"].startswith("insufficient observations")

    @pytest.mark.slow
    def test_scenario_search(self, monthly_series):
        """Full scenario grid: non-empty ranking, best entry within the cap."""
        report = _search(
            monthly_series,
            p_range=range(3), d_range=range(2), q_range=range(3),
            seasonal_p_range=range(3), seasonal_d_range=[1], seasonal_q_range=range(3),
            complexity_cap=4,
        ).run()
        assert report.n_candidates == 100
        assert report.ranked
        assert report.best.spec.complexity <= 4
        assert report.to_dataframe()["aicc"].is_monotonic_increasing

    def test_cap_zero_run_ranks_only_zero_orders(self, monthly_series):
        report = _search(
            monthly_series,
            p_range=range(3), q_range=range(3),
            seasonal_p_range=range(3), seasonal_q_range=range(3),
            complexity_cap=0,
        ).run()
        specs = results_to_specs(report.to_dataframe())
        assert specs
        for spec in specs:
            assert (spec.p, spec.q, spec.P, spec.Q) == (0, 0, 0, 0)

    def test_outcomes_are_immutable(self, monthly_series):
        report = _search(monthly_series).run()
        outcome = report.ranked[0]
        assert isinstance(outcome, FitOutcome)
        with pytest.raises(dataclasses.FrozenInstanceError):
            outcome.aicc = -1.0
        assert isinstance(outcome.params, tuple)
        assert isinstance(outcome.warnings, tuple)

    def test_successful_outcomes_carry_parameters(self, monthly_series):
        report = _search(monthly_series).run()
        for outcome in report.ranked:
            assert outcome.converged
            assert "sigma2" in outcome.param_dict

    def test_accepts_plain_sequence(self, monthly_series):
        report = _search(monthly_series.tolist(), d_range=[1], complexity_cap=0).run()
        assert report.n_candidates == 1

    def test_parallel_matches_sequential(self, monthly_series):
        grid = dict(p_range=[0, 1], d_range=[1], q_range=[0, 1], complexity_cap=1)
        sequential = _search(monthly_series, **grid).run().to_dataframe()
        parallel = _search(monthly_series, n_jobs=2, **grid).run().to_dataframe()
        assert parallel["model"].tolist() == sequential["model"].tolist()
        assert parallel["aicc"].tolist() == pytest.approx(sequential["aicc"].tolist())

    def test_progress_lines(self, monthly_series, capsys):
        _search(monthly_series, progress_every=2, verbose=True).run()
        out = capsys.readouterr().out
        assert "Running SARIMA grid search..." in out
        assert "[1/6]" in out
        assert "[2/6]" in out
        assert "[4/6]" in out
        assert "[6/6]" in out
        assert "[3/6]" not in out

    def test_quiet_search_prints_nothing(self, monthly_series, capsys):
        _search(monthly_series).run()
        assert capsys.readouterr().out == ""


# ---------------------------------------------------------------------------
#  Persistence and configuration
# ---------------------------------------------------------------------------

class TestPersistence:
    """CSV round trip and cache reuse."""

    def test_save_and_load(self, tmp_path):
        table = pd.DataFrame({
            "aicc": [120.5, 100.25],
            "model": ["(1,0,0)(0,1,0)[12]", "(0,1,1)(0,1,1)[12]"],
        })
        path = save_results(table, tmp_path / "nested" / "results.csv")
        assert path.exists()

        loaded = load_results(path)
        assert loaded["model"].tolist() == ["(0,1,1)(0,1,1)[12]", "(1,0,0)(0,1,0)[12]"]
        assert loaded["aicc"].tolist() == pytest.approx([100.25, 120.5])

    def test_load_rejects_missing_columns(self, tmp_path):
        path = tmp_path / "bad.csv"
        pd.DataFrame({"score": [1.0], "model": ["(0,0,0)(0,1,0)[12]"]}).to_csv(path, index=False)
        with pytest.raises(ValueError, match="aicc"):
            load_results(path)

    def test_load_rejects_bad_labels(self, tmp_path):
        path = tmp_path / "bad.csv"
        pd.DataFrame({"aicc": [1.0], "model": ["ARIMA(1,1,1)"]}).to_csv(path, index=False)
        with pytest.raises(ValueError):
            load_results(path)

    def test_run_grid_search_reuses_matching_cache(self, tmp_path, monthly_series, capsys):
        cached = tmp_path / "cached.csv"
        settings = search_settings(SARIMAGridSearch.from_config(monthly_series, _TwoOrderConfig()))
        table = pd.DataFrame({"aicc": [50.0], "model": ["(2,1,0)(0,1,0)[12]"]})
        save_results(table, cached, settings=settings)

        result = run_grid_search(monthly_series, _TwoOrderConfig(), results_path=cached, use_cache=True)
        assert result["model"].tolist() == ["(2,1,0)(0,1,0)[12]"]
        assert "Reusing cached grid search results" in capsys.readouterr().out

    def test_cache_from_wider_cap_is_recomputed(self, tmp_path, monthly_series, capsys):
        """Lowering the cap must not hand back models the new cap forbids."""
        path = tmp_path / "r.csv"
        settings = search_settings(SARIMAGridSearch.from_config(monthly_series, _TwoOrderConfig()))
        table = pd.DataFrame({"aicc": [40.0, 45.0], "model": ["(2,1,0)(0,1,0)[12]", "(0,1,0)(0,1,0)[12]"]})
        save_results(table, path, settings=settings)

        result = run_grid_search(monthly_series, _CapZeroConfig(), results_path=path, use_cache=True)
        specs = results_to_specs(result)
        assert specs
        assert all(spec.complexity <= 0 for spec in specs)
        assert "ignoring cached results" in capsys.readouterr().out

        # The rewritten cache now belongs to the cap-0 search
        stored = json.loads((tmp_path / "r.csv.settings.json").read_text())
        assert stored["complexity_cap"] == 0

    def test_cache_without_settings_is_recomputed(self, tmp_path, monthly_series):
        path = tmp_path / "legacy.csv"
        pd.DataFrame({"aicc": [1.0], "model": ["(2,1,0)(0,1,0)[12]"]}).to_csv(path, index=False)

        result = run_grid_search(monthly_series, _CapZeroConfig(), results_path=path, use_cache=True, verbose=False)
        assert result["model"].tolist() == ["(0,1,0)(0,1,0)[12]"]

    def test_cache_with_models_outside_grid_is_rejected(self, tmp_path, monthly_series):
        path = tmp_path / "edited.csv"
        candidates = SARIMAGridSearch.from_config(monthly_series, _CapZeroConfig()).enumerate_candidates()
        settings = search_settings(SARIMAGridSearch.from_config(monthly_series, _CapZeroConfig()))
        save_results(pd.DataFrame({"aicc": [1.0], "model": ["(2,1,0)(0,1,0)[12]"]}), path, settings=settings)

        cached, reason = load_cached_results(path, settings, candidates)
        assert cached is None
        assert "(2,1,0)(0,1,0)[12]" in reason

    def test_cache_for_another_series_is_rejected(self, tmp_path, monthly_series):
        path = tmp_path / "r.csv"
        settings = search_settings(SARIMAGridSearch.from_config(monthly_series, _CapZeroConfig()))
        save_results(pd.DataFrame({"aicc": [1.0], "model": ["(0,1,0)(0,1,0)[12]"]}), path, settings=settings)

        shorter = SARIMAGridSearch.from_config(monthly_series.iloc[:-12], _CapZeroConfig())
        cached, reason = load_cached_results(path, search_settings(shorter), shorter.enumerate_candidates())
        assert cached is None
        assert "n_obs" in reason

    def test_run_grid_search_writes_results(self, tmp_path, monthly_series):
        class SmallConfig(AnalysisConfig):
            P_RANGE = [0, 1]
            D_RANGE = [1]
            Q_RANGE = [0]
            SEASONAL_P_RANGE = [0]
            SEASONAL_D_RANGE = [1]
            SEASONAL_Q_RANGE = [0]
            COMPLEXITY_CAP = 1

        path = tmp_path / "results.csv"
        result = run_grid_search(monthly_series, SmallConfig(), results_path=path, use_cache=False, verbose=False)
        assert path.exists()
        assert load_results(path)["model"].tolist() == result["model"].tolist()

    def test_from_config_uses_config_ranges(self, monthly_series):
        class TinyConfig(AnalysisConfig):
            P_RANGE = [0]
            D_RANGE = [0, 1]
            Q_RANGE = [0]
            SEASONAL_P_RANGE = [0]
            SEASONAL_D_RANGE = [1]
            SEASONAL_Q_RANGE = [0]
            COMPLEXITY_CAP = 0

        search = SARIMAGridSearch.from_config(monthly_series, TinyConfig(), verbose=False)
        assert [spec.label for spec in search.enumerate_candidates()] == [
            "(0,0,0)(0,1,0)[12]",
            "(0,1,0)(0,1,0)[12]",
        ]

    def test_empty_report_frames(self):
        report = GridSearchReport(ranked=(), failures=(), n_candidates=0)
        assert report.best is None
        assert list(report.to_dataframe().columns) == ["aicc", "model"]
        assert list(report.failures_to_dataframe().columns) == ["model", "error"]
