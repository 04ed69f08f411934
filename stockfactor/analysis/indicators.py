"""Technical indicators — SMA, Wilder RSI, percent change.  Pure functions, no I/O.

Every series returned here has the same length as its input.  Entries
without enough lookback are ``None`` (never 0 and never NaN), so callers
can tell "not computable yet" apart from a real value.
"""

import math
from collections import deque
from typing import Optional, Sequence

from stockfactor.analysis.models import IndicatorRow, TimeSeries

MA_PERIODS = (20, 50, 200)
RSI_PERIOD = 14

# MA200 plus a buffer: the minimum history worth asking the store for.
LOOKBACK_POINTS = 210


def _usable(value: Optional[float]) -> bool:
    return value is not None and math.isfinite(value)


def calculate_sma(
    closes: Sequence[Optional[float]], period: int
) -> list[Optional[float]]:
    """Simple moving average of the trailing *period* closes.

    Single forward pass with a rolling sum.  Missing closes (``None`` or
    NaN) are left out of the window and get a ``None`` entry of their own.
    Entry *i* is defined once *period* usable closes up to and including
    *i* exist.
    """
    if period <= 0:
        raise ValueError(f"SMA period must be positive, got {period}")

    result: list[Optional[float]] = [None] * len(closes)
    window: deque[float] = deque()
    running = 0.0

    for i, close in enumerate(closes):
        if not _usable(close):
            continue
        window.append(close)
        running += close
        if len(window) > period:
            running -= window.popleft()
        if len(window) == period:
            result[i] = running / period

    return result


def _rsi_from_avgs(avg_gain: float, avg_loss: float) -> float:
    if avg_loss == 0:
        return 100.0
    rs = avg_gain / avg_loss
    rsi = 100.0 - 100.0 / (1.0 + rs)
    return max(0.0, min(100.0, rsi))


def calculate_rsi(
    closes: Sequence[Optional[float]], period: int = RSI_PERIOD
) -> list[Optional[float]]:
    """Calculate Wilder's Relative Strength Index.

    Algorithm (Wilder-smoothed):
        1. delta = close[i] - close[i-1]
        2. Separate gains (positive) and losses (|negative|).
        3. Seed average gain/loss = SMA of the first *period* deltas.
        4. Subsequent: avg = (prev_avg × (period-1) + current) / period
        5. RSI = 100 - 100 / (1 + avg_gain / avg_loss), 100 when avg_loss is 0.

    The first value appears once *period* deltas exist, i.e. the first
    *period* points are always ``None``.  Values are clamped to [0, 100].
    """
    if period <= 0:
        raise ValueError(f"RSI period must be positive, got {period}")

    result: list[Optional[float]] = [None] * len(closes)
    prev: Optional[float] = None
    deltas_seen = 0
    gain_sum = 0.0
    loss_sum = 0.0
    avg_gain = 0.0
    avg_loss = 0.0

    for i, close in enumerate(closes):
        if not _usable(close):
            continue
        if prev is None:
            prev = close
            continue

        delta = close - prev
        prev = close
        gain = max(delta, 0.0)
        loss = max(-delta, 0.0)
        deltas_seen += 1

        if deltas_seen < period:
            gain_sum += gain
            loss_sum += loss
            continue
        if deltas_seen == period:
            avg_gain = (gain_sum + gain) / period
            avg_loss = (loss_sum + loss) / period
        else:
            avg_gain = (avg_gain * (period - 1) + gain) / period
            avg_loss = (avg_loss * (period - 1) + loss) / period

        result[i] = _rsi_from_avgs(avg_gain, avg_loss)

    return result


def calculate_pct_change(closes: Sequence[Optional[float]]) -> list[Optional[float]]:
    """Day-over-day percent change of consecutive closes.

    ``None`` for the first point and wherever the previous close is zero
    or missing (or the current one is missing).
    """
    result: list[Optional[float]] = [None] * len(closes)
    for i in range(1, len(closes)):
        prev = closes[i - 1]
        cur = closes[i]
        if not _usable(prev) or not _usable(cur) or prev == 0:
            continue
        result[i] = (cur - prev) * 100.0 / prev
    return result


def compute_indicators(series: TimeSeries) -> list[IndicatorRow]:
    """One ``IndicatorRow`` per point of *series*, in the same order."""
    closes: list[Optional[float]] = [p.close for p in series]

    pct = calculate_pct_change(closes)
    ma20, ma50, ma200 = (calculate_sma(closes, n) for n in MA_PERIODS)
    rsi = calculate_rsi(closes, RSI_PERIOD)

    return [
        IndicatorRow(
            date=point.date,
            pct_change=pct[i],
            ma20=ma20[i],
            ma50=ma50[i],
            ma200=ma200[i],
            rsi=rsi[i],
        )
        for i, point in enumerate(series)
    ]
