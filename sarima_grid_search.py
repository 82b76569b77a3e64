"""
Exhaustive SARIMA order search for a single monthly series.

The search follows the workflow used in the consumption report:
  * Enumerate the Cartesian product of the (p, d, q)(P, D, Q) ranges
  * Drop combinations whose p + q + P + Q exceeds the complexity cap
  * Fit each survivor without a drift term and score it by AICc
  * Keep failed fits for diagnostics but leave them out of the ranking
  * Sort ascending by AICc and optionally persist the table as CSV
"""

from __future__ import annotations

import itertools
import json
import re
import warnings
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from statsmodels.tools.sm_exceptions import ConvergenceWarning
from statsmodels.tsa.statespace.sarimax import SARIMAX

MIN_SERIES_LENGTH = 3
RESULT_COLUMNS: Tuple[str, ...] = ("aicc", "model")
PARAMETER_NAMES: Tuple[str, ...] = ("p", "d", "q", "P", "D", "Q")
_LABEL_PATTERN = re.compile(r"^\((\d+),(\d+),(\d+)\)\((\d+),(\d+),(\d+)\)\[(\d+)\]$")


class SearchPreconditionError(ValueError):
    """The search as a whole cannot run (unusable series or empty grid)."""


@dataclass(frozen=True)
class ModelSpecification:
    """Non-seasonal and seasonal SARIMA orders plus the seasonal period."""

    p: int
    d: int
    q: int
    P: int
    D: int
    Q: int
    s: int = 12

    @property
    def order(self) -> Tuple[int, int, int]:
        return (self.p, self.d, self.q)

    @property
    def seasonal_order(self) -> Tuple[int, int, int, int]:
        return (self.P, self.D, self.Q, self.s)

    @property
    def complexity(self) -> int:
        # Differencing orders add no estimated coefficients, so d and D are excluded.
        return self.p + self.q + self.P + self.Q

    @property
    def required_observations(self) -> int:
        """Smallest training length for which this specification is estimable."""
        ar_span = self.p + self.P * self.s
        ma_span = self.q + self.Q * self.s
        return self.d + self.D * self.s + max(ar_span, ma_span) + self.complexity + 1

    @property
    def label(self) -> str:
        return f"({self.p},{self.d},{self.q})({self.P},{self.D},{self.Q})[{self.s}]"

    def __str__(self) -> str:
        return self.label

    @classmethod
    def from_label(cls, label: str) -> "ModelSpecification":
        """Parse ``(p,d,q)(P,D,Q)[s]`` back into a specification."""
        compact = re.sub(r"\s+", "", str(label))
        match = _LABEL_PATTERN.match(compact)
        if not match:
            raise ValueError(f"invalid model label '{label}'")
        p, d, q, P, D, Q, s = (int(value) for value in match.groups())
        return cls(p=p, d=d, q=q, P=P, D=D, Q=Q, s=s)


@dataclass(frozen=True)
class FitOutcome:
    """Result of one fit attempt: a score on success, a reason on failure."""

    spec: ModelSpecification
    index: int
    aicc: Optional[float] = None
    params: Tuple[Tuple[str, float], ...] = ()
    converged: bool = False
    error: Optional[str] = None
    warnings: Tuple[str, ...] = ()

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.aicc is not None

    @property
    def param_dict(self) -> Dict[str, float]:
        return dict(self.params)

    def to_dict(self) -> Dict[str, Any]:
        """Row for the persisted results table."""
        return {"aicc": self.aicc, "model": self.spec.label}


@dataclass(frozen=True)
class GridSearchReport:
    """Ranked successes and the failures collected during one search."""

    ranked: Tuple[FitOutcome, ...]
    failures: Tuple[FitOutcome, ...]
    n_candidates: int

    @property
    def best(self) -> Optional[FitOutcome]:
        return self.ranked[0] if self.ranked else None

    def top(self, k: int) -> List[ModelSpecification]:
        return [outcome.spec for outcome in self.ranked[: max(0, int(k))]]

    def to_dataframe(self) -> pd.DataFrame:
        """Ranked table with columns ``aicc`` and ``model``."""
        rows = [outcome.to_dict() for outcome in self.ranked]
        return pd.DataFrame(rows, columns=list(RESULT_COLUMNS))

    def failures_to_dataframe(self) -> pd.DataFrame:
        rows = [{"model": outcome.spec.label, "error": outcome.error} for outcome in self.failures]
        return pd.DataFrame(rows, columns=["model", "error"])


def fit_specification(
    series: pd.Series,
    spec: ModelSpecification,
    *,
    maxiter: int = 200,
    enforce_stationarity: bool = True,
    enforce_invertibility: bool = True,
) -> Any:
    """Fit one SARIMA specification (no drift) and return the statsmodels results."""
    model = SARIMAX(
        series,
        order=spec.order,
        seasonal_order=spec.seasonal_order,
        trend="n",
        enforce_stationarity=enforce_stationarity,
        enforce_invertibility=enforce_invertibility,
    )
    return model.fit(disp=False, maxiter=maxiter)


def _fit_candidate(
    series: pd.Series,
    spec: ModelSpecification,
    index: int,
    settings: Dict[str, Any],
) -> FitOutcome:
    """Fit a candidate and capture warnings; never raises for estimation problems."""
    outcome = FitOutcome(spec=spec, index=index)

    n_obs = len(series)
    if spec.required_observations > n_obs:
        return replace(
            outcome,
            error=f"insufficient observations: need {spec.required_observations}, have {n_obs}",
        )

    fit_error = None
    with warnings.catch_warnings(record=True) as caught:
        warnings.simplefilter("always")
        try:
            fit_result = fit_specification(series, spec, **settings)
        except Exception as exc:  # statsmodels raises ValueError, LinAlgError, IndexError, etc.
            fit_error = f"fit_error: {exc}"
            fit_result = None

    outcome = replace(outcome, warnings=tuple(dict.fromkeys(str(warning.message) for warning in caught)))
    if fit_result is None:
        return replace(outcome, error=fit_error)

    retvals = getattr(fit_result, "mle_retvals", None) or {}
    converged = bool(retvals.get("converged", False))
    if not converged:
        convergence_messages = [
            str(warning.message) for warning in caught if issubclass(warning.category, ConvergenceWarning)
        ]
        detail = f": {convergence_messages[0]}" if convergence_messages else ""
        return replace(outcome, error=f"not_converged{detail}")

    aicc = float(getattr(fit_result, "aicc", np.nan))
    if not np.isfinite(aicc):
        return replace(outcome, converged=True, error="non_finite_aicc")

    names = list(getattr(fit_result.model, "param_names", []))
    values = np.asarray(fit_result.params, dtype=float)
    return replace(
        outcome,
        aicc=aicc,
        converged=True,
        params=tuple((str(name), float(value)) for name, value in zip(names, values)),
    )


class SARIMAGridSearch:
    """Brute-force SARIMA order search scored by AICc."""

    def __init__(
        self,
        series: Union[pd.Series, Sequence[float]],
        *,
        p_range: Iterable[int],
        d_range: Iterable[int],
        q_range: Iterable[int],
        seasonal_p_range: Iterable[int],
        seasonal_d_range: Iterable[int],
        seasonal_q_range: Iterable[int],
        complexity_cap: int,
        season_length: int = 12,
        maxiter: int = 200,
        enforce_stationarity: bool = True,
        enforce_invertibility: bool = True,
        progress_every: int = 50,
        n_jobs: int = 1,
        verbose: bool = True,
    ) -> None:
        self.series = series
        # Ranges are read more than once (enumeration, cache settings), so iterators are materialised.
        self.raw_ranges = {
            name: None if values is None else list(values)
            for name, values in zip(
                PARAMETER_NAMES,
                (p_range, d_range, q_range, seasonal_p_range, seasonal_d_range, seasonal_q_range),
            )
        }
        self.complexity_cap = complexity_cap
        self.season_length = season_length
        self.maxiter = maxiter
        self.enforce_stationarity = enforce_stationarity
        self.enforce_invertibility = enforce_invertibility
        self.progress_every = max(0, int(progress_every))
        self.n_jobs = max(1, int(n_jobs))
        self.verbose = verbose

    @classmethod
    def from_config(cls, series: pd.Series, config: Any, **overrides: Any) -> "SARIMAGridSearch":
        """Build a search from an ``AnalysisConfig``-style object."""
        space = config.search_space()
        kwargs: Dict[str, Any] = {
            "p_range": space["p"],
            "d_range": space["d"],
            "q_range": space["q"],
            "seasonal_p_range": space["P"],
            "seasonal_d_range": space["D"],
            "seasonal_q_range": space["Q"],
            "complexity_cap": config.COMPLEXITY_CAP,
            "season_length": config.SEASONAL_PERIOD,
            "maxiter": config.MAXITER,
            "enforce_stationarity": config.ENFORCE_STATIONARITY,
            "enforce_invertibility": config.ENFORCE_INVERTIBILITY,
            "progress_every": config.PROGRESS_EVERY,
            "n_jobs": config.N_JOBS,
        }
        kwargs.update(overrides)
        return cls(series, **kwargs)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------
    def enumerate_candidates(self) -> List[ModelSpecification]:
        """Cartesian product of the ranges, filtered by the complexity cap."""
        if isinstance(self.complexity_cap, bool) or not isinstance(self.complexity_cap, (int, np.integer)):
            raise SearchPreconditionError("complexity_cap must be an integer")
        if self.complexity_cap < 0:
            raise SearchPreconditionError("complexity_cap must be non-negative")
        if self.season_length < 2:
            raise SearchPreconditionError("season_length must be at least 2")

        ranges = [self._normalize_range(name, self.raw_ranges[name]) for name in PARAMETER_NAMES]

        candidates: List[ModelSpecification] = []
        for p, d, q, P, D, Q in itertools.product(*ranges):
            spec = ModelSpecification(p=p, d=d, q=q, P=P, D=D, Q=Q, s=self.season_length)
            if spec.complexity <= self.complexity_cap:
                candidates.append(spec)
        return candidates

    def run(self) -> GridSearchReport:
        """Evaluate every candidate and return the AICc ranking."""
        series = self._validated_series()
        candidates = self.enumerate_candidates()
        if not candidates:
            raise SearchPreconditionError(
                f"No candidates satisfy p+q+P+Q <= {self.complexity_cap} for the given ranges"
            )

        total = len(candidates)
        if self.verbose:
            print("Running SARIMA grid search...")
            print(f"  - Observations: {len(series)}")
            print(f"  - Candidates after complexity cap ({self.complexity_cap}): {total}")

        outcomes = self._evaluate(series, candidates)

        ranked = [outcome for outcome in outcomes if outcome.succeeded]
        failures = [outcome for outcome in outcomes if not outcome.succeeded]
        # Python's sort is stable, so equal scores keep generation order.
        ranked.sort(key=lambda outcome: outcome.aicc)

        if self.verbose:
            print(f"Grid search finished: {len(ranked)} fitted, {len(failures)} discarded")
            if ranked:
                print(f"Best model: SARIMA{ranked[0].spec.label} (AICc={ranked[0].aicc:.2f})")

        return GridSearchReport(ranked=tuple(ranked), failures=tuple(failures), n_candidates=total)

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------
    @staticmethod
    def _normalize_range(name: str, values: Iterable[int]) -> List[int]:
        """De-duplicate a range while keeping its order; reject negatives."""
        if values is None:
            raise SearchPreconditionError(f"range for {name} is missing")
        normalized: List[int] = []
        for value in values:
            if isinstance(value, bool) or not isinstance(value, (int, np.integer)):
                raise SearchPreconditionError(f"range for {name} holds non-integer value {value!r}")
            value = int(value)
            if value < 0:
                raise SearchPreconditionError(f"range for {name} holds negative value {value}")
            if value not in normalized:
                normalized.append(value)
        if not normalized:
            raise SearchPreconditionError(f"range for {name} is empty")
        return normalized

    def _validated_series(self) -> pd.Series:
        """Check the training series before any fitting starts."""
        series = self.series
        if series is None:
            raise SearchPreconditionError("Training series is missing")
        if not isinstance(series, pd.Series):
            series = pd.Series(list(series), dtype=object)
        if series.empty:
            raise SearchPreconditionError("Training series is empty")

        numeric = pd.to_numeric(series, errors="coerce")
        if numeric.isna().any():
            raise SearchPreconditionError("Training series holds missing or non-numeric values")
        values = numeric.to_numpy(dtype=float)
        if not np.isfinite(values).all():
            raise SearchPreconditionError("Training series holds non-finite values")
        if len(values) < MIN_SERIES_LENGTH:
            raise SearchPreconditionError(
                f"Training series has {len(values)} observations; at least {MIN_SERIES_LENGTH} are required"
            )
        return pd.Series(values, index=series.index, name=series.name)

    def _settings(self) -> Dict[str, Any]:
        return {
            "maxiter": self.maxiter,
            "enforce_stationarity": self.enforce_stationarity,
            "enforce_invertibility": self.enforce_invertibility,
        }

    def _should_report(self, position: int, total: int) -> bool:
        if position in (1, total):
            return True
        return bool(self.progress_every) and position % self.progress_every == 0

    def _report_progress(self, position: int, total: int, spec: ModelSpecification) -> None:
        if self.verbose and self._should_report(position, total):
            print(f"  [{position}/{total}] SARIMA{spec.label}")

    def _report_failure(self, outcome: FitOutcome) -> None:
        if self.verbose and not outcome.succeeded:
            print(f"    Warning: discarded SARIMA{outcome.spec.label}: {outcome.error}")

    def _evaluate(self, series: pd.Series, candidates: List[ModelSpecification]) -> List[FitOutcome]:
        """Fit all candidates, sequentially or across a process pool."""
        if self.n_jobs == 1:
            return self._evaluate_sequential(series, candidates)
        return self._evaluate_parallel(series, candidates)

    def _evaluate_sequential(self, series: pd.Series, candidates: List[ModelSpecification]) -> List[FitOutcome]:
        settings = self._settings()
        total = len(candidates)
        outcomes: List[FitOutcome] = []
        for index, spec in enumerate(candidates, start=1):
            self._report_progress(index, total, spec)
            outcome = _fit_candidate(series, spec, index, settings)
            self._report_failure(outcome)
            outcomes.append(outcome)
        return outcomes

    def _evaluate_parallel(self, series: pd.Series, candidates: List[ModelSpecification]) -> List[FitOutcome]:
        settings = self._settings()
        total = len(candidates)
        collected: Dict[int, FitOutcome] = {}

        with ProcessPoolExecutor(max_workers=self.n_jobs) as executor:
            futures = [
                executor.submit(_fit_candidate, series, spec, index, settings)
                for index, spec in enumerate(candidates, start=1)
            ]
            try:
                for position, future in enumerate(as_completed(futures), start=1):
                    outcome = future.result()
                    self._report_progress(position, total, outcome.spec)
                    self._report_failure(outcome)
                    collected[outcome.index] = outcome
            except KeyboardInterrupt:
                # Only fits already running are allowed to finish.
                for future in futures:
                    future.cancel()
                raise

        # Restore generation order so ties rank exactly as in a sequential run.
        return [collected[index] for index in sorted(collected)]


def _settings_path(path: Path) -> Path:
    return path.with_name(path.name + ".settings.json")


def search_settings(search: "SARIMAGridSearch") -> Dict[str, Any]:
    """Everything that determines a ranked table: ranges, cap, period and the series span."""
    settings: Dict[str, Any] = {
        name: search._normalize_range(name, search.raw_ranges[name]) for name in PARAMETER_NAMES
    }
    settings["complexity_cap"] = int(search.complexity_cap)
    settings["season_length"] = int(search.season_length)
    series = search.series
    settings["n_obs"] = len(series)
    if isinstance(series, pd.Series) and len(series):
        settings["first_index"] = str(series.index[0])
        settings["last_index"] = str(series.index[-1])
    return settings


def save_results(
    results: pd.DataFrame,
    path: Union[str, Path],
    settings: Optional[Dict[str, Any]] = None,
) -> Path:
    """Persist the ranked table as CSV, plus a JSON sidecar of the search settings when given."""
    output_path = Path(path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    results.loc[:, list(RESULT_COLUMNS)].to_csv(output_path, index=False)
    if settings is not None:
        _settings_path(output_path).write_text(json.dumps(settings, indent=2, sort_keys=True))
    return output_path


def load_results(path: Union[str, Path]) -> pd.DataFrame:
    """Read a persisted ranked table, validating columns and model labels."""
    df = pd.read_csv(path)
    missing = [column for column in RESULT_COLUMNS if column not in df.columns]
    if missing:
        raise ValueError(f"Results file {path} is missing column(s): {', '.join(missing)}")
    df = df.loc[:, list(RESULT_COLUMNS)].copy()
    df["aicc"] = pd.to_numeric(df["aicc"], errors="raise").astype(float)
    for label in df["model"]:
        ModelSpecification.from_label(label)
    return df.sort_values("aicc", kind="mergesort").reset_index(drop=True)


def results_to_specs(results: pd.DataFrame) -> List[ModelSpecification]:
    return [ModelSpecification.from_label(label) for label in results["model"]]


def load_cached_results(
    path: Union[str, Path],
    settings: Dict[str, Any],
    candidates: Sequence[ModelSpecification],
) -> Tuple[Optional[pd.DataFrame], str]:
    """
    Return the cached table only when it was produced by the same search.

    The sidecar settings must equal ``settings`` and every cached model must be
    one of ``candidates``; otherwise ``(None, reason)`` is returned.
    """
    path = Path(path)
    if not path.exists():
        return None, "no cached results"
    sidecar = _settings_path(path)
    if not sidecar.exists():
        return None, f"no settings file {sidecar.name} next to the cached results"
    try:
        stored = json.loads(sidecar.read_text())
    except json.JSONDecodeError as exc:
        return None, f"unreadable settings file: {exc}"
    if stored != settings:
        changed = sorted(key for key in set(stored) | set(settings) if stored.get(key) != settings.get(key))
        return None, f"search settings changed ({', '.join(changed)})"

    cached = load_results(path)
    allowed = set(candidates)
    stray = [spec.label for spec in results_to_specs(cached) if spec not in allowed]
    if stray:
        return None, f"cached models outside the current grid: {', '.join(stray[:3])}"
    return cached, ""


def run_grid_search(
    series: pd.Series,
    config: Any,
    *,
    results_path: Optional[Union[str, Path]] = None,
    use_cache: Optional[bool] = None,
    verbose: bool = True,
) -> pd.DataFrame:
    """Convenience wrapper: reuse a matching persisted table when allowed, otherwise search and save."""
    path = Path(results_path or config.RESULTS_FILE)
    if use_cache is None:
        use_cache = bool(getattr(config, "USE_CACHED_RESULTS", False))

    search = SARIMAGridSearch.from_config(series, config, verbose=verbose)
    candidates = search.enumerate_candidates()
    settings = search_settings(search)

    if use_cache and path.exists():
        cached, reason = load_cached_results(path, settings, candidates)
        if cached is not None:
            if verbose:
                print(f"Reusing cached grid search results from {path}")
            return cached
        if verbose:
            print(f"Warning: ignoring cached results at {path}: {reason}; recomputing")

    report = search.run()
    results_df = report.to_dataframe()
    if getattr(config, "SAVE_RESULTS", True):
        saved = save_results(results_df, path, settings=settings)
        if verbose:
            print(f"Grid search results saved to {saved}")
    return results_df


__all__ = [
    "FitOutcome",
    "GridSearchReport",
    "ModelSpecification",
    "SARIMAGridSearch",
    "SearchPreconditionError",
    "fit_specification",
    "load_cached_results",
    "load_results",
    "results_to_specs",
    "run_grid_search",
    "save_results",
    "search_settings",
]
