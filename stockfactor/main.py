"""StockFactor — command-line entry point.

Reads an OHLCV CSV, runs the prediction pipeline and optionally a price
simulation, and prints the result as JSON::

    python -m stockfactor.main --csv prices.csv --symbol ACME --future-days 5
"""

import argparse
import dataclasses
import json
import logging
import math
import pathlib
import sys
from datetime import date
from enum import Enum
from typing import Any, Mapping, Optional

from stockfactor.analysis.factors import ContextFlags
from stockfactor.analysis.parsing import parse_csv
from stockfactor.analysis.scoring import FACTOR_DESCRIPTIONS
from stockfactor.analysis.signals import analyze_signals
from stockfactor.analysis.stats import factor_summary, score_summary
from stockfactor.config import EngineConfig, load_config
from stockfactor.errors import InvalidConfiguration
from stockfactor.forecast.models import SimulationParameters, SimulationResult
from stockfactor.forecast.simulation import simulate
from stockfactor.pipeline import (
    SeriesAnalysis,
    analyze_series,
    generate_predictions,
    sort_predictions,
)

logger = logging.getLogger("stockfactor")


def _to_jsonable(value: Any) -> Any:
    """Dataclasses, enums and dates to plain JSON types; NaN becomes null."""
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _to_jsonable(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, Mapping):
        return {str(_to_jsonable(k)): _to_jsonable(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_to_jsonable(v) for v in value]
    return value


def load_context(path: Optional[str]) -> Optional[ContextFlags]:
    """Context flags from a JSON file of ``{date: [factor, ...]}``."""
    if not path:
        return None
    with open(path, "r", encoding="utf-8") as f:
        return ContextFlags.from_mapping(json.load(f))


def run_simulation(
    analysis: SeriesAnalysis,
    horizon: int,
    config: EngineConfig,
    monte_carlo: bool = False,
) -> SimulationResult:
    """Simulate from the latest known close and that day's factor states."""
    last = len(analysis.series) - 1
    while last >= 0 and not math.isfinite(analysis.series[last].close):
        last -= 1
    if last < 0:
        raise InvalidConfiguration("Cannot simulate without price data")
    latest = analysis.series[last]
    parameters = SimulationParameters(
        symbol=analysis.symbol,
        initial_price=latest.close,
        time_horizon_days=horizon,
        threshold=analysis.score_config.threshold,
        factor_states={f.value: True for f in analysis.factors[last].predictive},
        start_date=latest.date,
    )
    return simulate(
        parameters,
        history=analysis.history[:last],
        signals=analyze_signals(analysis.series, analysis.indicators, last),
        strategy=config.strategy(monte_carlo=monte_carlo),
        max_days=config.max_simulation_days,
    )


def run(args: argparse.Namespace, config: EngineConfig) -> dict:
    text = pathlib.Path(args.csv).read_text(encoding="utf-8")
    parsed = parse_csv(text)
    analysis = analyze_series(
        args.symbol,
        parsed,
        context=load_context(args.context),
        score_config=config.score_config(),
        factor_config=config.factor_config(),
    )
    batch = generate_predictions(
        analysis,
        days=args.days,
        future_days=args.future_days,
        history_years=config.history_years,
    )

    output: dict[str, Any] = {
        "symbol": args.symbol,
        "points": len(analysis.series),
        "skipped": analysis.skipped,
        "factor_summary": factor_summary(analysis.factors),
        "score_summary": score_summary(analysis.scores),
        "factor_descriptions": FACTOR_DESCRIPTIONS,
        "predictions": sort_predictions(batch.predictions, args.order_by),
        "errors": batch.errors,
    }
    if args.simulate:
        output["simulation"] = run_simulation(
            analysis, args.simulate, config, monte_carlo=args.monte_carlo
        )
    return _to_jsonable(output)


def _run_cli(argv: Optional[list[str]] = None) -> int:
    """Parse CLI arguments, run the pipeline and print JSON."""
    parser = argparse.ArgumentParser(description="StockFactor OHLCV analysis")
    parser.add_argument("--csv", required=True, help="OHLCV CSV file with a header row")
    parser.add_argument("--symbol", required=True, help="Ticker symbol for the output")
    parser.add_argument("--context", help="JSON file of {date: [context factors]}")
    parser.add_argument("--days", type=int, default=4, help="Recent days to predict (max 4)")
    parser.add_argument(
        "--future-days", type=int, default=0,
        help="Business days to project past the last date (max 30)",
    )
    parser.add_argument(
        "--order-by",
        choices=["date", "score", "confidence", "prediction"],
        default="date",
    )
    parser.add_argument("--simulate", type=int, metavar="DAYS", help="Simulate a price path")
    parser.add_argument(
        "--monte-carlo", action="store_true",
        help="Use the Monte Carlo strategy for --simulate",
    )
    parser.add_argument("--env", help="Path to a .env file")
    args = parser.parse_args(argv)

    config = load_config(args.env)
    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        stream=sys.stderr,
    )

    try:
        result = run(args, config)
    except (InvalidConfiguration, OSError) as exc:
        logger.error("%s", exc)
        return 2

    json.dump(result, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(_run_cli())
