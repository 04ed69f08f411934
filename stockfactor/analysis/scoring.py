"""Daily scoring — weighted factor score, probability tier and confidence.

Pure functions, no I/O.  A ``ScoreConfig`` is built once per run through
``build_score_config`` and never mutated afterwards.
"""

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Mapping, Optional, Sequence, Union

from stockfactor.analysis.models import (
    DailyScore,
    Factor,
    FactorSet,
    PREDICTIVE_FACTORS,
    Prediction,
    parse_factor,
)
from stockfactor.errors import InvalidConfiguration

# Weights are fractions of 1; heavier configurations are rescaled.
MIN_NORMALISER = 1.0
MODERATE_FRACTION = 0.5
SCORE_DECIMALS = 4


def _validate_weight(factor: Factor, weight: float) -> float:
    if factor not in PREDICTIVE_FACTORS:
        raise InvalidConfiguration(
            f"'{factor.value}' is a result factor and cannot be weighted"
        )
    try:
        value = float(weight)
    except (TypeError, ValueError):
        raise InvalidConfiguration(
            f"Weight for '{factor.value}' is not a number: {weight!r}"
        ) from None
    if not math.isfinite(value) or value <= 0:
        raise InvalidConfiguration(
            f"Weight for '{factor.value}' must be positive, got {weight}"
        )
    return value


def _validate_threshold(threshold: float) -> float:
    try:
        value = float(threshold)
    except (TypeError, ValueError):
        raise InvalidConfiguration(f"Threshold is not a number: {threshold!r}") from None
    if not 0 < value < 1:
        raise InvalidConfiguration(f"Threshold must be within (0, 1), got {threshold}")
    return value


@dataclass(frozen=True)
class ScoreConfig:
    """Factor weights and the HIGH_PROBABILITY cutoff for one scoring run.

    Keys may be given as names; they are resolved to ``Factor`` and the
    weights frozen.  Invalid entries raise ``InvalidConfiguration``.
    """

    weights: Mapping[Factor, float] = field(default_factory=dict)
    threshold: float = 0.45

    def __post_init__(self) -> None:
        resolved: dict[Factor, float] = {}
        for name, weight in dict(self.weights).items():
            factor = parse_factor(name)
            resolved[factor] = _validate_weight(factor, weight)
        object.__setattr__(self, "weights", MappingProxyType(resolved))
        object.__setattr__(self, "threshold", _validate_threshold(self.threshold))

    @property
    def total_weight(self) -> float:
        return sum(self.weights.values())

    def weight(self, factor: Factor) -> float:
        return self.weights.get(factor, 0.0)


_DEFAULT_WEIGHTS: dict[Factor, float] = {
    Factor.VOLUME_SPIKE: 0.20,
    Factor.BREAK_MA50: 0.15,
    Factor.BREAK_MA200: 0.15,
    Factor.RSI_OVER_60: 0.10,
    Factor.MARKET_UP: 0.10,
    Factor.SECTOR_UP: 0.10,
    Factor.SHORT_COVERING: 0.05,
    Factor.EARNINGS_WINDOW: 0.05,
    Factor.MACRO_TAILWIND: 0.05,
    Factor.NEWS_POSITIVE: 0.05,
}

DEFAULT_SCORE_CONFIG = ScoreConfig(weights=_DEFAULT_WEIGHTS, threshold=0.45)


def build_score_config(
    weights: Optional[Mapping[Union[str, Factor], float]] = None,
    threshold: Optional[float] = None,
    base: ScoreConfig = DEFAULT_SCORE_CONFIG,
) -> ScoreConfig:
    """Merge overrides onto *base* and validate the result.

    Raises:
        InvalidConfiguration: on an unknown factor, a weight for the
            ``strong_move`` result factor, a non-positive weight, or a
            threshold outside (0, 1).
    """
    merged: dict[Union[str, Factor], float] = dict(base.weights)
    for name, weight in (weights or {}).items():
        merged[parse_factor(name)] = weight

    chosen = base.threshold if threshold is None else threshold
    return ScoreConfig(weights=merged, threshold=chosen)


# ── Classification ───────────────────────────────────────────────────────


def classify_score(score: float, threshold: float) -> Prediction:
    """``≥ threshold`` is HIGH, ``≥ threshold/2`` is MODERATE, else LOW."""
    if score >= threshold:
        return Prediction.HIGH_PROBABILITY
    if score >= threshold * MODERATE_FRACTION:
        return Prediction.MODERATE
    return Prediction.LOW_PROBABILITY


def confidence_for(score: float, active_count: int) -> int:
    """Confidence on a 0–100 scale.

    ``min(100, round(score × 70 + min(active_count, 5) × 6))``: score
    carries most of the weight, and up to five agreeing factors add 6
    points each.  Monotonic non-decreasing in both arguments.
    """
    raw = score * 70 + min(max(active_count, 0), 5) * 6
    return int(min(100, max(0, round(raw))))


def score_day(factor_set: FactorSet, config: ScoreConfig = DEFAULT_SCORE_CONFIG) -> DailyScore:
    """Score one day's factors under *config*.

    ``strong_move`` is never counted, whatever the configuration.
    """
    active = factor_set.predictive
    weighted = sum(config.weight(f) for f in active)
    normaliser = max(config.total_weight, MIN_NORMALISER)
    score = round(min(1.0, max(0.0, weighted / normaliser)), SCORE_DECIMALS)

    prediction = classify_score(score, config.threshold)
    return DailyScore(
        date=factor_set.date,
        score=score,
        prediction=prediction,
        confidence=confidence_for(score, len(active)),
        above_threshold=prediction is Prediction.HIGH_PROBABILITY,
        threshold=config.threshold,
        active_factors=active,
    )


def score_days(
    factor_sets: Sequence[FactorSet], config: ScoreConfig = DEFAULT_SCORE_CONFIG
) -> list[DailyScore]:
    return [score_day(fs, config) for fs in factor_sets]


# ── Human-readable output ────────────────────────────────────────────────


@dataclass(frozen=True)
class FactorDescription:
    name: str
    description: str


FACTOR_DESCRIPTIONS: dict[Factor, FactorDescription] = {
    Factor.VOLUME_SPIKE: FactorDescription(
        "Volume Spike", "Volume well above its 20-day average"
    ),
    Factor.BREAK_MA50: FactorDescription(
        "Break MA50", "Close above the 50-day moving average on a solid up day"
    ),
    Factor.BREAK_MA200: FactorDescription(
        "Break MA200", "Close above the 200-day moving average on a solid up day"
    ),
    Factor.RSI_OVER_60: FactorDescription(
        "RSI > 60", "Relative Strength Index above 60, momentum building"
    ),
    Factor.MARKET_UP: FactorDescription(
        "Market Up", "Broad market index closed higher"
    ),
    Factor.SECTOR_UP: FactorDescription(
        "Sector Up", "Sector index closed higher"
    ),
    Factor.SHORT_COVERING: FactorDescription(
        "Short Covering", "Elevated short interest likely being covered"
    ),
    Factor.EARNINGS_WINDOW: FactorDescription(
        "Earnings Window", "Within the window around an earnings release"
    ),
    Factor.MACRO_TAILWIND: FactorDescription(
        "Macro Tailwind", "Favourable macroeconomic event"
    ),
    Factor.NEWS_POSITIVE: FactorDescription(
        "Positive News", "Positive news sentiment for the symbol"
    ),
    Factor.STRONG_MOVE: FactorDescription(
        "Strong Move", "Realised gain of at least 4% on the day"
    ),
}


def recommendations_for(daily: DailyScore) -> list[str]:
    """Plain-language follow-ups for a scored day."""
    recs: list[str] = []
    if daily.prediction is Prediction.HIGH_PROBABILITY:
        recs.append("Strong setup: several predictive factors line up")
        recs.append("Consider a position sized to your risk limits")
    elif daily.prediction is Prediction.MODERATE:
        recs.append("Partial setup: watch for confirming factors")
    else:
        recs.append("Weak setup: no action suggested")

    active = set(daily.active_factors)
    if Factor.VOLUME_SPIKE in active:
        recs.append("Heavy volume confirms participation in the move")
    if Factor.BREAK_MA200 in active:
        recs.append("Long-term resistance broken at MA200")
    elif Factor.BREAK_MA50 in active:
        recs.append("Medium-term resistance broken at MA50")
    if Factor.EARNINGS_WINDOW in active:
        recs.append("Earnings nearby: expect wider price swings")
    if Factor.RSI_OVER_60 in active and not (active & {Factor.MARKET_UP, Factor.SECTOR_UP}):
        recs.append("Momentum is stock-specific; market and sector are not confirming")
    return recs


def interpretation_for(symbol: str, daily: DailyScore) -> str:
    if daily.prediction is Prediction.HIGH_PROBABILITY:
        return f"{symbol} shows high probability of strong upward movement based on current factors"
    if daily.prediction is Prediction.MODERATE:
        return f"{symbol} shows moderate potential for price movement"
    return f"{symbol} shows low probability of significant movement today"
