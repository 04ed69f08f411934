"""Multi-day price simulation with pluggable path strategies.

The expected daily move is a hybrid of three methods:

* **score** (40%): the scored factor states through the single-day
  estimator's score-to-return model,
* **factor** (40%): each active factor's weight times its historical
  average return,
* **pattern** (20%): similarity-weighted return of matching prior days.

Methods with no data drop out and the remaining weights are rescaled.
A ``PathStrategy`` then turns that move into a price path with bands.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import Optional, Protocol, Sequence, runtime_checkable

import numpy as np

from stockfactor.analysis.models import (
    DailyScore,
    FactorSet,
    HistoryDay,
    PREDICTIVE_FACTORS,
)
from stockfactor.analysis.patterns import PatternMatch, find_similar_days
from stockfactor.analysis.scoring import ScoreConfig, build_score_config, score_day
from stockfactor.analysis.signals import TechnicalSignals
from stockfactor.analysis.stats import correlate_factors_with_returns
from stockfactor.errors import InvalidConfiguration
from stockfactor.forecast.estimator import (
    MAX_DAILY_CHANGE_PCT,
    calibrate,
    clamp_change,
    estimate_ohlc,
    expected_change_percent,
)
from stockfactor.forecast.models import (
    Calibration,
    ConfidenceInterval,
    FactorContribution,
    PathPoint,
    Scenario,
    SimulationParameters,
    SimulationResult,
)

logger = logging.getLogger("stockfactor.simulation")

METHOD_WEIGHTS = {"score": 0.4, "factor": 0.4, "pattern": 0.2}

# name -> (change multiplier, probability)
SCENARIOS = {
    "optimistic": (1.2, 0.25),
    "base": (1.0, 0.5),
    "pessimistic": (0.8, 0.25),
}

PATTERN_MATCHES = 10
MIN_PRICE = 0.01
DEFAULT_MAX_SIMULATION_DAYS = 365
DEFAULT_PATHS = 1000

# Standard normal quantiles for the 68% / 95% bands.
Z_68 = 1.0
Z_95 = 2.0


@dataclass(frozen=True)
class PathInputs:
    """Everything a strategy needs to lay out a path."""

    initial_price: float
    daily_change_percent: float
    volatility: float
    dates: tuple[date, ...]
    above_threshold: bool = False
    support: Optional[float] = None
    resistance: Optional[float] = None


@dataclass(frozen=True)
class PathOutcome:
    points: tuple[PathPoint, ...]
    final_prices: tuple[float, ...]  # samples the final-price intervals use


@runtime_checkable
class PathStrategy(Protocol):
    name: str

    def generate(self, inputs: PathInputs) -> PathOutcome:
        ...


# ── Strategies ───────────────────────────────────────────────────────────


class DeterministicPathStrategy:
    """Repeated single-day estimates, bands widening with √day × volatility.

    Each day's close becomes the next day's baseline.
    """

    name = "deterministic"

    def generate(self, inputs: PathInputs) -> PathOutcome:
        points: list[PathPoint] = []
        price = inputs.initial_price
        for day, when in enumerate(inputs.dates, start=1):
            _, _, _, close, _, _ = estimate_ohlc(
                price,
                inputs.daily_change_percent,
                inputs.volatility,
                gap=inputs.above_threshold,
                support=inputs.support,
                resistance=inputs.resistance,
            )
            close = max(MIN_PRICE, close)
            spread = inputs.volatility * math.sqrt(day) / 100
            points.append(
                PathPoint(
                    day=day,
                    date=when,
                    mean=close,
                    median=close,
                    lower_68=max(MIN_PRICE, close * (1 - Z_68 * spread)),
                    upper_68=close * (1 + Z_68 * spread),
                    lower_95=max(MIN_PRICE, close * (1 - Z_95 * spread)),
                    upper_95=close * (1 + Z_95 * spread),
                    change_percent=(close - price) / price * 100,
                )
            )
            price = close
        return PathOutcome(points=tuple(points), final_prices=())


class MonteCarloPathStrategy:
    """Ensemble of random-walk paths drawn with ``numpy.random.default_rng``.

    Daily moves are normal around the expected change with the calibrated
    volatility as scale, clipped to ±10%.  Prices stay within
    support/resistance when those are given.
    """

    name = "monte_carlo"

    def __init__(self, paths: int = DEFAULT_PATHS, seed: Optional[int] = None) -> None:
        if paths < 2:
            raise InvalidConfiguration(f"Monte Carlo needs at least 2 paths, got {paths}")
        self.paths = paths
        self.seed = seed

    def generate(self, inputs: PathInputs) -> PathOutcome:
        rng = np.random.default_rng(self.seed)
        horizon = len(inputs.dates)
        moves = rng.normal(
            loc=inputs.daily_change_percent,
            scale=max(inputs.volatility, 0.0),
            size=(self.paths, horizon),
        )
        moves = np.clip(moves, -MAX_DAILY_CHANGE_PCT, MAX_DAILY_CHANGE_PCT)

        prices = np.empty((self.paths, horizon))
        current = np.full(self.paths, inputs.initial_price, dtype=float)
        low = inputs.support if inputs.support is not None else MIN_PRICE
        high = inputs.resistance if inputs.resistance is not None else np.inf
        for d in range(horizon):
            current = np.clip(current * (1 + moves[:, d] / 100), low, high)
            current = np.maximum(current, MIN_PRICE)
            prices[:, d] = current

        mean = prices.mean(axis=0)
        median = np.median(prices, axis=0)
        p = np.percentile(prices, [2.5, 16, 84, 97.5], axis=0)

        points: list[PathPoint] = []
        prev = inputs.initial_price
        for d, when in enumerate(inputs.dates):
            points.append(
                PathPoint(
                    day=d + 1,
                    date=when,
                    mean=float(mean[d]),
                    median=float(median[d]),
                    lower_68=float(p[1, d]),
                    upper_68=float(p[2, d]),
                    lower_95=float(p[0, d]),
                    upper_95=float(p[3, d]),
                    change_percent=(float(mean[d]) - prev) / prev * 100,
                )
            )
            prev = float(mean[d])

        finals = tuple(float(x) for x in prices[:, -1]) if horizon else ()
        return PathOutcome(points=tuple(points), final_prices=finals)


def build_strategy(
    name: str = "deterministic", paths: int = DEFAULT_PATHS, seed: Optional[int] = None
) -> PathStrategy:
    """Strategy by name: ``deterministic`` or ``monte_carlo``."""
    key = name.strip().lower().replace("-", "_")
    if key == DeterministicPathStrategy.name:
        return DeterministicPathStrategy()
    if key == MonteCarloPathStrategy.name:
        return MonteCarloPathStrategy(paths=paths, seed=seed)
    raise InvalidConfiguration(
        f"Unknown simulation strategy '{name}'. Available: deterministic, monte_carlo"
    )


# ── Hybrid daily change ──────────────────────────────────────────────────


def _factor_avg_returns(history: Sequence[HistoryDay]) -> dict[str, Optional[float]]:
    if not history:
        return {}
    stats = correlate_factors_with_returns(
        [d.factors for d in history], [d.pct_change for d in history]
    )
    return {name: entry["avg_return"] for name, entry in stats.items()}


def _pattern_change(matches: Sequence[PatternMatch]) -> Optional[float]:
    usable = [m for m in matches if m.price_change is not None]
    total = sum(m.similarity for m in usable)
    if total <= 0:
        return None
    return sum(m.similarity * m.price_change for m in usable) / total


def factor_breakdown(
    factors: FactorSet,
    config: ScoreConfig,
    avg_returns: dict[str, Optional[float]],
) -> list[FactorContribution]:
    """Contribution of each predictive factor, largest absolute first."""
    rows: list[FactorContribution] = []
    for factor in PREDICTIVE_FACTORS:
        weight = config.weight(factor)
        avg = avg_returns.get(factor.value)
        active = factors.is_active(factor)
        contribution = weight * avg if active and avg is not None else 0.0
        rows.append(FactorContribution(factor, active, weight, avg, contribution))
    rows.sort(key=lambda r: abs(r.contribution), reverse=True)
    return rows


def hybrid_daily_change(
    daily: DailyScore,
    calibration: Calibration,
    breakdown: Sequence[FactorContribution],
    matches: Sequence[PatternMatch],
    trend_direction: Optional[str] = None,
) -> float:
    """Blend the score, factor and pattern methods; clamped to ±10%."""
    parts: dict[str, float] = {
        "score": expected_change_percent(
            daily.score, daily.threshold, calibration, trend_direction
        )
    }
    if any(r.active and r.historical_avg_return is not None for r in breakdown):
        parts["factor"] = sum(r.contribution for r in breakdown)
    pattern = _pattern_change(matches)
    if pattern is not None:
        parts["pattern"] = pattern

    total_weight = sum(METHOD_WEIGHTS[k] for k in parts)
    change = sum(METHOD_WEIGHTS[k] * v for k, v in parts.items()) / total_weight
    logger.debug("Hybrid change %.4f%% from %s", change, sorted(parts))
    return clamp_change(change)


# ── Scenarios and intervals ──────────────────────────────────────────────


def build_scenarios(
    initial_price: float, base_changes: Sequence[float]
) -> list[Scenario]:
    """Scale the base path's daily changes per scenario and re-compound."""
    scenarios: list[Scenario] = []
    for name, (multiplier, probability) in SCENARIOS.items():
        price = initial_price
        prices: list[float] = []
        for change in base_changes:
            price = max(MIN_PRICE, price * (1 + change * multiplier / 100))
            prices.append(price)
        final = prices[-1] if prices else initial_price
        scenarios.append(
            Scenario(
                name=name,
                multiplier=multiplier,
                probability=probability,
                prices=tuple(prices),
                final_price=final,
                total_return=final - initial_price,
                total_return_percent=(final - initial_price) / initial_price * 100,
            )
        )
    return scenarios


def confidence_intervals(final_prices: Sequence[float]) -> list[ConfidenceInterval]:
    """68% / 95% intervals as mean ± 1σ / 2σ (population), floored at 0."""
    if not final_prices:
        return []
    values = np.asarray(final_prices, dtype=float)
    mean = float(values.mean())
    sigma = float(values.std())
    return [
        ConfidenceInterval(0.68, max(0.0, mean - Z_68 * sigma), mean + Z_68 * sigma),
        ConfidenceInterval(0.95, max(0.0, mean - Z_95 * sigma), mean + Z_95 * sigma),
    ]


def business_days_after(start: date, count: int) -> tuple[date, ...]:
    """The *count* weekdays following *start*."""
    offsets = np.arange(1, count + 1)
    days = np.busday_offset(np.datetime64(start, "D"), offsets, roll="backward")
    return tuple(days.tolist())


# ── Entry point ──────────────────────────────────────────────────────────


def _validate(parameters: SimulationParameters, max_days: int) -> None:
    if not parameters.symbol:
        raise InvalidConfiguration("symbol is required")
    price = parameters.initial_price
    if price is None or not math.isfinite(price) or price <= 0:
        raise InvalidConfiguration(f"initial_price must be positive, got {price}")
    horizon = parameters.time_horizon_days
    if not isinstance(horizon, int) or not 1 <= horizon <= max_days:
        raise InvalidConfiguration(
            f"time_horizon_days must be within [1, {max_days}], got {horizon}"
        )


def _usable_levels(
    initial_price: float, signals: Optional[TechnicalSignals]
) -> tuple[Optional[float], Optional[float]]:
    if signals is None or signals.support_resistance is None:
        return None, None
    sr = signals.support_resistance
    if not sr.support <= initial_price <= sr.resistance:
        logger.info(
            "Initial price %.4f outside support/resistance %.4f-%.4f, not bounding path",
            initial_price, sr.support, sr.resistance,
        )
        return None, None
    return sr.support, sr.resistance


def simulate(
    parameters: SimulationParameters,
    history: Optional[Sequence[HistoryDay]] = None,
    signals: Optional[TechnicalSignals] = None,
    strategy: Optional[PathStrategy] = None,
    max_days: int = DEFAULT_MAX_SIMULATION_DAYS,
) -> SimulationResult:
    """Project a price path from factor states and (optional) history.

    Args:
        parameters: Symbol, start price, horizon and scoring overrides.
        history: Scored prior days, oldest first.  Without it the
            factor and pattern methods drop out and defaults calibrate
            the score method.
        signals: Latest technical signals; the trend signs the move and
            support/resistance bound the path.
        strategy: Path strategy, ``DeterministicPathStrategy`` by default.
        max_days: Upper bound on ``time_horizon_days``.

    Raises:
        InvalidConfiguration: on bad parameters or score overrides.
    """
    _validate(parameters, max_days)
    history = list(history or [])
    strategy = strategy or DeterministicPathStrategy()

    config = build_score_config(parameters.factor_weights, parameters.threshold)
    start = parameters.start_date or date.today()
    factors = FactorSet.from_mapping(start, parameters.factor_states or {})
    daily = score_day(factors, config)

    calibration = calibrate(history, len(history))
    breakdown = factor_breakdown(factors, config, _factor_avg_returns(history))
    matches = find_similar_days(factors.predictive, history, max_matches=PATTERN_MATCHES)
    trend = signals.trend.direction if signals is not None and signals.trend else None
    change = hybrid_daily_change(daily, calibration, breakdown, matches, trend)

    support, resistance = _usable_levels(parameters.initial_price, signals)
    outcome = strategy.generate(
        PathInputs(
            initial_price=parameters.initial_price,
            daily_change_percent=change,
            volatility=calibration.volatility,
            dates=business_days_after(start, parameters.time_horizon_days),
            above_threshold=daily.above_threshold,
            support=support,
            resistance=resistance,
        )
    )

    scenarios = build_scenarios(
        parameters.initial_price, [p.change_percent for p in outcome.points]
    )
    finals = outcome.final_prices or (
        *(s.final_price for s in scenarios),
        outcome.points[-1].mean,
    )

    logger.info(
        "Simulated %s over %d days (%s): %.4f%%/day, final %.4f",
        parameters.symbol, parameters.time_horizon_days, strategy.name,
        change, outcome.points[-1].mean,
    )
    return SimulationResult(
        symbol=parameters.symbol,
        initial_price=parameters.initial_price,
        time_horizon_days=parameters.time_horizon_days,
        daily_change_percent=change,
        score=daily,
        path=outcome.points,
        scenarios=tuple(scenarios),
        confidence_intervals=tuple(confidence_intervals(finals)),
        factor_breakdown=tuple(breakdown),
        pattern_matches=tuple(matches),
        calibration=calibration,
        parameters=parameters,
        method=f"hybrid/{strategy.name}",
    )
