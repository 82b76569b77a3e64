"""
Command-line helper to run the exhaustive SARIMA order search on the training series.
"""

import argparse
import time
from pathlib import Path
from typing import List, Optional, Sequence

from config import AnalysisConfig
from data_loader import load_series, train_test_split
from sarima_grid_search import SARIMAGridSearch, SearchPreconditionError, save_results, search_settings


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    config = AnalysisConfig()
    parser = argparse.ArgumentParser(description="Rank SARIMA specifications by AICc.")
    parser.add_argument("--data-path", type=Path, default=Path(config.DATA_FILE),
                        help="Consumption spreadsheet (xlsx or csv).")
    parser.add_argument("--output-path", type=Path, default=Path(config.RESULTS_FILE),
                        help="Where to write the ranked table.")
    parser.add_argument("--test-size", type=int, default=config.TEST_SIZE,
                        help="Months held out from the end of the series before searching.")
    parser.add_argument("--p", default=None, help='Range for p, e.g. "0-5" or "0,1,2".')
    parser.add_argument("--d", default=None, help="Range for d.")
    parser.add_argument("--q", default=None, help="Range for q.")
    parser.add_argument("--seasonal-p", default=None, help="Range for P.")
    parser.add_argument("--seasonal-d", default=None, help="Range for D.")
    parser.add_argument("--seasonal-q", default=None, help="Range for Q.")
    parser.add_argument("--cap", type=int, default=config.COMPLEXITY_CAP,
                        help="Maximum p + q + P + Q.")
    parser.add_argument("--period", type=int, default=config.SEASONAL_PERIOD,
                        help="Seasonal period.")
    parser.add_argument("--n-jobs", type=int, default=config.N_JOBS,
                        help="Worker processes used for fitting.")
    parser.add_argument("--progress-every", type=int, default=config.PROGRESS_EVERY,
                        help="Print a progress line every N candidates (0 disables).")
    return parser.parse_args(argv)


def _range_or_default(raw: Optional[str], default: Sequence[int]) -> List[int]:
    if raw is None:
        return list(default)
    return AnalysisConfig._parse_range(raw)


def main(argv: Optional[Sequence[str]] = None) -> None:
    args = parse_args(argv)
    config = AnalysisConfig()
    space = config.search_space()

    series = load_series(args.data_path, sheet_name=config.SHEET_NAME)
    train = train_test_split(series, test_size=args.test_size).train if args.test_size else series

    search = SARIMAGridSearch(
        train,
        p_range=_range_or_default(args.p, space["p"]),
        d_range=_range_or_default(args.d, space["d"]),
        q_range=_range_or_default(args.q, space["q"]),
        seasonal_p_range=_range_or_default(args.seasonal_p, space["P"]),
        seasonal_d_range=_range_or_default(args.seasonal_d, space["D"]),
        seasonal_q_range=_range_or_default(args.seasonal_q, space["Q"]),
        complexity_cap=args.cap,
        season_length=args.period,
        maxiter=config.MAXITER,
        progress_every=args.progress_every,
        n_jobs=args.n_jobs,
    )

    start_time = time.perf_counter()
    try:
        report = search.run()
    except SearchPreconditionError as exc:
        print(f"\nCannot run order search: {exc}")
        raise SystemExit(2) from exc
    elapsed = time.perf_counter() - start_time

    output_path = save_results(report.to_dataframe(), args.output_path, settings=search_settings(search))
    print(f"\nSelection results written to {output_path.resolve()}")

    if report.ranked:
        print("\nTop specifications by AICc:")
        print(report.to_dataframe().head(10).to_string(index=False))
    else:
        print("\nNo SARIMA specification could be estimated; check the discarded fits above.")

    print(f"\nOrder search runtime: {elapsed:0.1f} seconds (~{elapsed/60:0.1f} minutes)")


if __name__ == "__main__":
    main()
