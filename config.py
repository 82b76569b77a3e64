"""
SARIMA Analysis Configuration
Easily adjustable parameters for the electricity consumption analysis
"""

from __future__ import annotations

from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, Union


class AnalysisConfig:
    """Configuration class for the SARIMA order search and the surrounding analysis."""

    BASE_DIR = Path(__file__).resolve().parent
    DATA_DIR = BASE_DIR / "data"
    OUTPUT_DIR = BASE_DIR / "outputs"
    SEARCH_PARAMETER_NAMES: Tuple[str, ...] = ("p", "d", "q", "P", "D", "Q")

    # Data configuration
    DATA_FILE = str(DATA_DIR / "spain_electricity_consumption.xlsx")
    SHEET_NAME: Optional[Union[str, int]] = 0
    TEST_SIZE = 40  # Last 40 months are held out
    FORECAST_MONTHS = 12
    SEASONAL_PERIOD = 12

    # Grid search space (inclusive ranges)
    P_RANGE: Sequence[int] = range(0, 6)
    D_RANGE: Sequence[int] = range(0, 6)
    Q_RANGE: Sequence[int] = range(0, 6)
    SEASONAL_P_RANGE: Sequence[int] = range(0, 6)
    SEASONAL_D_RANGE: Sequence[int] = range(1, 4)  # One seasonal difference is already required
    SEASONAL_Q_RANGE: Sequence[int] = range(0, 6)
    COMPLEXITY_CAP = 6  # Max p + q + P + Q; d and D are not counted

    # Estimation settings
    MAXITER = 200
    ENFORCE_STATIONARITY = True
    ENFORCE_INVERTIBILITY = True
    PROGRESS_EVERY = 50
    N_JOBS = 1
    USE_CACHED_RESULTS = True

    # Model evaluation parameters
    TOP_K_CANDIDATES = 5
    LJUNG_BOX_LAGS: Sequence[int] = (12, 24)
    SIGNIFICANCE_LEVEL = 0.05
    CONFIDENCE_LEVEL = 0.95
    STATIONARITY_MIN_OBSERVATIONS = 24

    # Seasonality detection thresholds
    SEASONALITY_THRESHOLD = 0.64  # Seasonal strength above which a seasonal difference is suggested
    STL_ROBUST = True

    # Benchmark models
    ETS_TREND = "add"
    ETS_SEASONAL = "mul"
    ETS_DAMPED = True
    STL_ARIMA_ORDER = (1, 1, 0)

    # Output configuration
    SAVE_RESULTS = True
    RESULTS_FILE = str(OUTPUT_DIR / "sarima_grid_results.csv")
    STATIONARITY_FILE = str(OUTPUT_DIR / "stationarity_results.csv")
    CANDIDATES_FILE = str(OUTPUT_DIR / "candidate_evaluation.csv")
    FORECAST_FILE = str(OUTPUT_DIR / "sarima_forecast.csv")

    def search_space(self) -> Dict[str, List[int]]:
        """Return the six grid ranges keyed by parameter name."""
        ranges = (
            self.P_RANGE,
            self.D_RANGE,
            self.Q_RANGE,
            self.SEASONAL_P_RANGE,
            self.SEASONAL_D_RANGE,
            self.SEASONAL_Q_RANGE,
        )
        return {
            name: [int(value) for value in values]
            for name, values in zip(self.SEARCH_PARAMETER_NAMES, ranges)
        }

    def describe(self) -> List[str]:
        """Human readable lines summarising the active configuration."""
        space = self.search_space()
        lines = [
            f"Data file: {self.DATA_FILE}",
            f"Test split: {self.TEST_SIZE} months",
            f"Seasonal period: {self.SEASONAL_PERIOD}",
            f"Complexity cap (p+q+P+Q): {self.COMPLEXITY_CAP}",
        ]
        for name, values in space.items():
            lines.append(f"Range {name}: {self._format_range(values)}")
        lines.append(f"Workers: {self.N_JOBS}")
        return lines

    @staticmethod
    def _format_range(values: Sequence[int]) -> str:
        if not values:
            return "(empty)"
        ordered = sorted(values)
        if ordered == list(range(ordered[0], ordered[-1] + 1)) and len(ordered) > 1:
            return f"{ordered[0]}-{ordered[-1]}"
        return ",".join(str(value) for value in ordered)

    @staticmethod
    def _parse_range(raw_value: Optional[Union[str, int, Iterable[int]]]) -> List[int]:
        """
        Accept "0-5", "0,1,2", a single integer or an iterable of integers.
        Dash ranges are inclusive on both ends.
        """
        if raw_value is None:
            return []

        if isinstance(raw_value, int):
            return [raw_value]

        if not isinstance(raw_value, str):
            return [int(value) for value in raw_value]

        text = raw_value.strip()
        if not text:
            return []

        values: List[int] = []
        for part in text.split(","):
            part = part.strip()
            if not part:
                continue
            if "-" in part:
                start_text, _, end_text = part.partition("-")
                try:
                    start, end = int(start_text), int(end_text)
                except ValueError as exc:
                    raise ValueError(f"invalid range '{part}'") from exc
                if end < start:
                    raise ValueError(f"range '{part}' ends before it starts")
                values.extend(range(start, end + 1))
            else:
                try:
                    values.append(int(part))
                except ValueError as exc:
                    raise ValueError(f"invalid range value '{part}'") from exc
        return values
