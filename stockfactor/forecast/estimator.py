"""Single-day price estimation — pure functions, no I/O.

Turns a day's score, trend and recent score/return history into an
estimated open/high/low/close for the next session, bounded by the
current support and resistance levels.
"""

import logging
from typing import Optional, Sequence

import numpy as np

from stockfactor.analysis.models import DailyScore, HistoryDay
from stockfactor.analysis.signals import TechnicalSignals
from stockfactor.forecast.models import (
    DEFAULT_CALIBRATION,
    Calibration,
    PriceEstimate,
)

logger = logging.getLogger("stockfactor.estimator")

CALIBRATION_LOOKBACK = 60
MAX_DAILY_CHANGE_PCT = 10.0
BELOW_THRESHOLD_FACTOR = 0.5
GAP_FRACTION = 0.1  # share of the expected move taken as the opening gap
RANGE_MOVE_MULTIPLIER = 1.5
RANGE_VOLATILITY_MULTIPLIER = 0.5


# ── Calibration ──────────────────────────────────────────────────────────


def calibrate(
    history: Sequence[HistoryDay],
    index: int,
    lookback: int = CALIBRATION_LOOKBACK,
) -> Calibration:
    """Return-per-score and volatility over the *lookback* days before *index*.

    Only days with both a score and a percent change count.  Returns
    ``DEFAULT_CALIBRATION`` when there are none or the mean score is 0.
    """
    window = history[max(0, index - lookback) : max(0, index)]
    pairs = [(d.score, abs(d.pct_change)) for d in window
             if d.score is not None and d.pct_change is not None]
    if not pairs:
        logger.debug("No score/return pairs before index %d, using defaults", index)
        return DEFAULT_CALIBRATION

    scores = np.array([s for s, _ in pairs], dtype=float)
    moves = np.array([m for _, m in pairs], dtype=float)
    mean_score = float(np.mean(scores))
    if mean_score <= 0:
        logger.debug("Mean score is zero before index %d, using defaults", index)
        return DEFAULT_CALIBRATION

    return Calibration(
        avg_return_per_score=float(np.mean(moves)) / mean_score,
        volatility=float(np.std(moves)),
        sample_size=len(pairs),
        calibrated=True,
    )


# ── Expected move ────────────────────────────────────────────────────────


def clamp_change(change_percent: float, limit: float = MAX_DAILY_CHANGE_PCT) -> float:
    return max(-limit, min(limit, change_percent))


def expected_change_percent(
    score: float,
    threshold: float,
    calibration: Calibration,
    trend_direction: Optional[str] = None,
) -> float:
    """``score × return-per-score``, halved below threshold, signed by trend.

    A bearish trend makes the move negative and a bullish one positive;
    neutral or unknown trends leave the sign alone.  Clamped to ±10%.
    """
    change = score * calibration.avg_return_per_score
    if score < threshold:
        change *= BELOW_THRESHOLD_FACTOR

    if trend_direction == "bearish":
        change = -abs(change)
    elif trend_direction == "bullish":
        change = abs(change)
    return clamp_change(change)


# ── OHLC ─────────────────────────────────────────────────────────────────


def _clamp_to_levels(
    open_: float,
    high: float,
    low: float,
    close: float,
    support: Optional[float],
    resistance: Optional[float],
) -> tuple[float, float, float, float, bool, bool]:
    """Fit an OHLC bar between *support* and *resistance*.

    The open is clipped into the band and the bar is moved with it.  A
    low under support (or high over resistance) is pulled onto the level
    and the close is compressed by the same ratio, so
    ``low <= open, close <= high`` still holds.
    """
    if support is not None and resistance is not None and support > resistance:
        logger.warning(
            "Support %.4f above resistance %.4f, skipping clamp", support, resistance
        )
        return open_, high, low, close, False, False

    up = high - open_
    down = open_ - low
    move = close - open_

    new_open = open_
    if support is not None:
        new_open = max(new_open, support)
    if resistance is not None:
        new_open = min(new_open, resistance)

    high = new_open + up
    low = new_open - down
    close = new_open + move
    hit_support = hit_resistance = False

    if support is not None and low < support:
        ratio = (new_open - support) / down if down > 0 else 0.0
        low = support
        if close < new_open:
            close = new_open + move * ratio
        hit_support = True

    if resistance is not None and high > resistance:
        ratio = (resistance - new_open) / up if up > 0 else 0.0
        high = resistance
        if close > new_open:
            close = new_open + move * ratio
        hit_resistance = True

    close = min(max(close, low), high)
    return new_open, high, low, close, hit_support, hit_resistance


def estimate_ohlc(
    baseline_price: float,
    change_percent: float,
    volatility: float,
    gap: bool,
    support: Optional[float] = None,
    resistance: Optional[float] = None,
) -> tuple[float, float, float, float, bool, bool]:
    """Open/high/low/close for a day expected to move *change_percent*.

    Returns ``(open, high, low, close, hit_support, hit_resistance)``.
    """
    gap_percent = change_percent * GAP_FRACTION if gap else 0.0
    open_ = baseline_price * (1 + gap_percent / 100)
    close = open_ * (1 + change_percent / 100)

    range_percent = (
        RANGE_MOVE_MULTIPLIER * abs(change_percent)
        + RANGE_VOLATILITY_MULTIPLIER * volatility
    )
    high = max(open_, close) * (1 + range_percent / 200)
    low = min(open_, close) * (1 - range_percent / 200)

    return _clamp_to_levels(open_, high, low, close, support, resistance)


def _levels(signals: Optional[TechnicalSignals]) -> tuple[Optional[float], Optional[float]]:
    if signals is None or signals.support_resistance is None:
        return None, None
    sr = signals.support_resistance
    return sr.support, sr.resistance


def _trend_direction(signals: Optional[TechnicalSignals]) -> Optional[str]:
    if signals is None or signals.trend is None:
        return None
    return signals.trend.direction


def project_day(
    baseline_price: float,
    daily_score: DailyScore,
    signals: Optional[TechnicalSignals],
    calibration: Calibration = DEFAULT_CALIBRATION,
) -> PriceEstimate:
    """Estimate the next session from an already computed calibration."""
    if baseline_price <= 0:
        raise ValueError(f"baseline_price must be positive, got {baseline_price}")

    expected = expected_change_percent(
        daily_score.score,
        daily_score.threshold,
        calibration,
        _trend_direction(signals),
    )
    support, resistance = _levels(signals)
    open_, high, low, close, hit_s, hit_r = estimate_ohlc(
        baseline_price,
        expected,
        calibration.volatility,
        gap=daily_score.score >= daily_score.threshold,
        support=support,
        resistance=resistance,
    )

    change = close - open_
    return PriceEstimate(
        current_price=baseline_price,
        open=open_,
        high=high,
        low=low,
        close=close,
        change=change,
        change_percent=change / open_ * 100,
        expected_change_percent=expected,
        calibration=calibration,
        clamped_to_support=hit_s,
        clamped_to_resistance=hit_r,
    )


def estimate_future_price(
    baseline_price: float,
    daily_score: DailyScore,
    signals: Optional[TechnicalSignals],
    history: Sequence[HistoryDay],
    index: int,
) -> PriceEstimate:
    """Estimated OHLC for the session after the baseline.

    Args:
        baseline_price: Last known close.
        daily_score: Score of the day being projected.
        signals: Trend and support/resistance of the baseline day.
        history: Scored days, oldest first.
        index: Position in *history* the estimate is made at; only the
            60 days before it feed the calibration.
    """
    return project_day(baseline_price, daily_score, signals, calibrate(history, index))
