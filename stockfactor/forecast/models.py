"""Forecast data models — calibration, single-day estimates, simulated paths."""

from dataclasses import dataclass, field
from datetime import date
from typing import Mapping, Optional

from stockfactor.analysis.models import DailyScore, Factor
from stockfactor.analysis.patterns import PatternMatch

DEFAULT_RETURN_PER_SCORE = 2.0  # % move per score point
DEFAULT_VOLATILITY = 2.0  # % daily


@dataclass(frozen=True)
class Calibration:
    """Score-to-return calibration from recent history.

    ``calibrated`` is ``False`` when the defaults were used.
    """

    avg_return_per_score: float = DEFAULT_RETURN_PER_SCORE
    volatility: float = DEFAULT_VOLATILITY
    sample_size: int = 0
    calibrated: bool = False


DEFAULT_CALIBRATION = Calibration()


@dataclass(frozen=True)
class PriceEstimate:
    """Estimated OHLC for one future day."""

    current_price: float
    open: float
    high: float
    low: float
    close: float
    change: float  # close - open
    change_percent: float
    expected_change_percent: float
    calibration: Calibration = DEFAULT_CALIBRATION
    clamped_to_support: bool = False
    clamped_to_resistance: bool = False


@dataclass(frozen=True)
class SimulationParameters:
    """Caller-supplied inputs to ``simulate``.

    Weight and threshold overrides are merged onto the default score
    configuration; ``factor_states`` maps factor names to booleans.
    """

    symbol: str
    initial_price: float
    time_horizon_days: int
    factor_weights: Optional[Mapping[str, float]] = None
    threshold: Optional[float] = None
    factor_states: Mapping[str, bool] = field(default_factory=dict)
    start_date: Optional[date] = None


@dataclass(frozen=True)
class PathPoint:
    """One simulated day.  Bands are price levels, not percentages."""

    day: int
    date: date
    mean: float
    median: float
    lower_68: float
    upper_68: float
    lower_95: float
    upper_95: float
    change_percent: float  # mean vs. the previous day's mean


@dataclass(frozen=True)
class Scenario:
    name: str  # optimistic | base | pessimistic
    multiplier: float
    probability: float
    prices: tuple[float, ...]
    final_price: float
    total_return: float
    total_return_percent: float


@dataclass(frozen=True)
class ConfidenceInterval:
    level: float  # 0.68 or 0.95
    lower: float
    upper: float


@dataclass(frozen=True)
class FactorContribution:
    factor: Factor
    active: bool
    weight: float
    historical_avg_return: Optional[float]
    contribution: float


@dataclass(frozen=True)
class SimulationResult:
    symbol: str
    initial_price: float
    time_horizon_days: int
    daily_change_percent: float
    score: DailyScore
    path: tuple[PathPoint, ...]
    scenarios: tuple[Scenario, ...]
    confidence_intervals: tuple[ConfidenceInterval, ...]
    factor_breakdown: tuple[FactorContribution, ...]
    pattern_matches: tuple[PatternMatch, ...]
    calibration: Calibration
    parameters: SimulationParameters
    method: str
