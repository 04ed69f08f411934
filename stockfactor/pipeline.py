"""Prediction pipeline — composes indicators, factors, scores, signals,
patterns and price estimates for one symbol.

``analyze_series`` does the full-series pass once; ``generate_predictions``
then builds per-day predictions from that snapshot.  A failure on one date
is recorded next to the results and never stops the run.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Optional, Sequence, Union

from stockfactor.analysis.factors import (
    DEFAULT_FACTOR_CONFIG,
    ContextFlags,
    FactorConfig,
    extract_factors,
)
from stockfactor.analysis.indicators import LOOKBACK_POINTS, compute_indicators
from stockfactor.analysis.models import (
    DailyScore,
    FactorSet,
    HistoryDay,
    IndicatorRow,
    Prediction,
    TimeSeries,
)
from stockfactor.analysis.parsing import ParseResult
from stockfactor.analysis.patterns import PatternRecognition, match_patterns
from stockfactor.analysis.scoring import (
    DEFAULT_SCORE_CONFIG,
    ScoreConfig,
    interpretation_for,
    recommendations_for,
    score_day,
    score_days,
)
from stockfactor.analysis.signals import TechnicalSignals, analyze_signals
from stockfactor.errors import InvalidConfiguration, SkippedRecord
from stockfactor.forecast.estimator import estimate_future_price
from stockfactor.forecast.models import PriceEstimate
from stockfactor.forecast.simulation import business_days_after

logger = logging.getLogger("stockfactor.pipeline")

MAX_DAYS_TO_PROCESS = 4
MAX_FUTURE_DAYS = 30
BASELINE_SEARCH_DAYS = 10
DEFAULT_HISTORY_YEARS = 3


@dataclass(frozen=True)
class SeriesAnalysis:
    """Full-series snapshot: one entry per point in every per-day tuple."""

    symbol: str
    series: TimeSeries
    indicators: tuple[IndicatorRow, ...]
    factors: tuple[FactorSet, ...]
    scores: tuple[DailyScore, ...]
    history: tuple[HistoryDay, ...]
    skipped: tuple[SkippedRecord, ...] = ()
    score_config: ScoreConfig = DEFAULT_SCORE_CONFIG
    factor_config: FactorConfig = DEFAULT_FACTOR_CONFIG


@dataclass(frozen=True)
class PriceData:
    """Recorded prices of a past day."""

    current_price: float
    open: Optional[float]
    high: Optional[float]
    low: Optional[float]
    close: float
    change_percent: Optional[float]


@dataclass(frozen=True)
class DayPrediction:
    symbol: str
    date: date
    score: DailyScore
    signals: Optional[TechnicalSignals]
    patterns: Optional[PatternRecognition]
    price: Union[PriceData, PriceEstimate, None]
    recommendations: tuple[str, ...] = ()
    interpretation: str = ""
    is_future: bool = False


@dataclass(frozen=True)
class PredictionError:
    date: str
    error: str


@dataclass(frozen=True)
class PredictionBatch:
    predictions: tuple[DayPrediction, ...] = ()
    errors: tuple[PredictionError, ...] = ()


def analyze_series(
    symbol: str,
    series: Union[TimeSeries, ParseResult],
    context: Optional[ContextFlags] = None,
    score_config: ScoreConfig = DEFAULT_SCORE_CONFIG,
    factor_config: FactorConfig = DEFAULT_FACTOR_CONFIG,
) -> SeriesAnalysis:
    """Indicators, factors and scores for every point of *series*.

    A ``ParseResult`` may be passed directly; its skipped records are
    carried through to the analysis.
    """
    skipped: tuple[SkippedRecord, ...] = ()
    if isinstance(series, ParseResult):
        skipped = series.skipped
        series = series.series

    if 0 < len(series) < LOOKBACK_POINTS:
        logger.warning(
            "%s has %d points, fewer than the %d recommended for MA200",
            symbol, len(series), LOOKBACK_POINTS,
        )

    indicators = compute_indicators(series)
    factors = extract_factors(series, indicators, context, factor_config)
    scores = score_days(factors, score_config)
    history = tuple(
        HistoryDay(
            date=point.date,
            factors=fs,
            score=sc.score,
            pct_change=row.pct_change,
            close=point.close,
        )
        for point, row, fs, sc in zip(series, indicators, factors, scores)
    )

    logger.info(
        "Analysed %s: %d points, %d skipped records", symbol, len(series), len(skipped)
    )
    return SeriesAnalysis(
        symbol=symbol,
        series=series,
        indicators=tuple(indicators),
        factors=tuple(factors),
        scores=tuple(scores),
        history=history,
        skipped=skipped,
        score_config=score_config,
        factor_config=factor_config,
    )


def _years_before(day: date, years: int) -> date:
    try:
        return day.replace(year=day.year - years)
    except ValueError:  # 29 February
        return day.replace(year=day.year - years, day=28)


def _window_start(analysis: SeriesAnalysis, years: int) -> int:
    cutoff = _years_before(analysis.series[-1].date, years)
    for i, point in enumerate(analysis.series):
        if point.date >= cutoff:
            return i
    return len(analysis.series)


def _recorded_price(analysis: SeriesAnalysis, index: int) -> PriceData:
    point = analysis.series[index]
    return PriceData(
        current_price=point.close,
        open=point.open,
        high=point.high,
        low=point.low,
        close=point.close,
        change_percent=analysis.indicators[index].pct_change,
    )


def _predict_day(analysis: SeriesAnalysis, index: int, start: int) -> DayPrediction:
    point = analysis.series[index]
    row = analysis.indicators[index]
    factors = analysis.factors[index]
    daily = analysis.scores[index]

    signals = analyze_signals(analysis.series, analysis.indicators, index)
    patterns = match_patterns(
        factors.predictive,
        analysis.history[start:index],
        close=point.close,
        ma50=row.ma50,
        pct_change=row.pct_change,
    )
    return DayPrediction(
        symbol=analysis.symbol,
        date=point.date,
        score=daily,
        signals=signals,
        patterns=patterns,
        price=_recorded_price(analysis, index),
        recommendations=tuple(recommendations_for(daily)),
        interpretation=interpretation_for(analysis.symbol, daily),
    )


def find_baseline_index(analysis: SeriesAnalysis, start: int = 0) -> int:
    """Most recent of the last 10 days with an active predictive factor.

    Falls back to the latest day.
    """
    last = len(analysis.series) - 1
    for i in range(last, max(start, last - BASELINE_SEARCH_DAYS + 1) - 1, -1):
        if analysis.factors[i].predictive:
            return i
    logger.warning(
        "No active factors in the last %d days of %s, future scores will be 0",
        BASELINE_SEARCH_DAYS, analysis.symbol,
    )
    return last


def _predict_future_day(
    analysis: SeriesAnalysis,
    when: date,
    baseline: int,
    start: int,
    signals: TechnicalSignals,
    patterns: PatternRecognition,
) -> DayPrediction:
    factors = FactorSet(date=when, active=analysis.factors[baseline].active)
    daily = score_day(factors, analysis.score_config)
    close = analysis.series[baseline].close

    price: Optional[PriceEstimate] = None
    if close > 0:
        price = estimate_future_price(
            close, daily, signals, analysis.history[start:], baseline - start
        )
    return DayPrediction(
        symbol=analysis.symbol,
        date=when,
        score=daily,
        signals=signals,
        patterns=patterns,
        price=price,
        recommendations=tuple(recommendations_for(daily)),
        interpretation=interpretation_for(analysis.symbol, daily),
        is_future=True,
    )


def generate_predictions(
    analysis: SeriesAnalysis,
    days: int = MAX_DAYS_TO_PROCESS,
    future_days: int = 0,
    history_years: int = DEFAULT_HISTORY_YEARS,
) -> PredictionBatch:
    """Predictions for recent or upcoming days.

    With ``future_days == 0`` the most recent *days* (at most
    ``MAX_DAYS_TO_PROCESS``) are predicted, newest first.  Otherwise up to
    ``MAX_FUTURE_DAYS`` business days after the last date are projected
    from a baseline day's factors.  Only the last *history_years* of data
    feed patterns and calibration.

    Raises:
        InvalidConfiguration: for a non-positive *days* or negative
            *future_days*.
    """
    if days < 1:
        raise InvalidConfiguration(f"days must be at least 1, got {days}")
    if future_days < 0:
        raise InvalidConfiguration(f"future_days must not be negative, got {future_days}")

    if not analysis.series:
        return PredictionBatch(
            errors=(PredictionError("N/A", "No price data available"),)
        )

    start = _window_start(analysis, history_years)
    last = len(analysis.series) - 1
    predictions: list[DayPrediction] = []
    errors: list[PredictionError] = []

    if future_days == 0:
        count = min(days, MAX_DAYS_TO_PROCESS, last - start + 1)
        for index in range(last, last - count, -1):
            label = analysis.series[index].date.isoformat()
            try:
                predictions.append(_predict_day(analysis, index, start))
            except Exception as exc:
                logger.error("Prediction for %s %s failed: %s", analysis.symbol, label, exc)
                errors.append(PredictionError(label, str(exc)))
        return PredictionBatch(tuple(predictions), tuple(errors))

    horizon = min(future_days, MAX_FUTURE_DAYS)
    baseline = find_baseline_index(analysis, start)
    baseline_row = analysis.indicators[baseline]
    signals = analyze_signals(analysis.series, analysis.indicators, baseline)
    patterns = match_patterns(
        analysis.factors[baseline].predictive,
        analysis.history[start:baseline],
        close=analysis.series[baseline].close,
        ma50=baseline_row.ma50,
        pct_change=baseline_row.pct_change,
    )
    logger.info(
        "Projecting %s %d days from baseline %s",
        analysis.symbol, horizon, analysis.series[baseline].date.isoformat(),
    )

    for when in business_days_after(analysis.series[last].date, horizon):
        try:
            predictions.append(
                _predict_future_day(analysis, when, baseline, start, signals, patterns)
            )
        except Exception as exc:
            logger.error(
                "Future prediction for %s %s failed: %s", analysis.symbol, when, exc
            )
            errors.append(PredictionError(when.isoformat(), str(exc)))

    return PredictionBatch(tuple(predictions), tuple(errors))


_TIER_RANK = {
    Prediction.HIGH_PROBABILITY: 3,
    Prediction.MODERATE: 2,
    Prediction.LOW_PROBABILITY: 1,
}

_SORT_KEYS = {
    "date": lambda p: p.date,
    "score": lambda p: p.score.score,
    "confidence": lambda p: p.score.confidence,
    "prediction": lambda p: _TIER_RANK[p.score.prediction],
}


def sort_predictions(
    predictions: Sequence[DayPrediction],
    order_by: str = "date",
    descending: bool = True,
) -> list[DayPrediction]:
    """Stable sort by ``date``, ``score``, ``confidence`` or ``prediction`` tier."""
    key = _SORT_KEYS.get(order_by)
    if key is None:
        raise InvalidConfiguration(
            f"Cannot order by '{order_by}'. Available: {', '.join(_SORT_KEYS)}"
        )
    return sorted(predictions, key=key, reverse=descending)
