"""Technical signal summary — trend, momentum, MA position, S/R, volume.

Pure functions, no I/O.  Each sub-signal is ``None`` when its inputs are
not available for the requested day; one missing input never blanks the
whole bundle.
"""

import math
from dataclasses import dataclass
from datetime import date
from typing import Optional, Sequence

from stockfactor.analysis.models import IndicatorRow, TimeSeries

# Price within ±1% of an MA counts as "at" it.
MA_DEADBAND = 0.01

SR_WINDOW = 20
VOLUME_WINDOW = 20
HIGH_VOLUME_RATIO = 1.5
LOW_VOLUME_RATIO = 0.7

RSI_OVERBOUGHT = 70.0
RSI_OVERSOLD = 30.0
RSI_STRONG = 60.0


@dataclass(frozen=True)
class TrendSignal:
    direction: str  # bullish | bearish | neutral
    strength: str  # strong | moderate | weak
    description: str


@dataclass(frozen=True)
class MomentumSignal:
    rsi: float
    signal: str  # overbought | oversold | neutral
    approaching_overbought: bool
    description: str


@dataclass(frozen=True)
class MovingAverageSignal:
    ma20: Optional[float]
    ma50: Optional[float]
    ma200: Optional[float]
    price_vs_ma20: Optional[str]  # above | below | at
    price_vs_ma50: Optional[str]
    price_vs_ma200: Optional[str]
    alignment: Optional[str]  # bullish | bearish | mixed
    description: str


@dataclass(frozen=True)
class SupportResistance:
    support: float
    resistance: float
    distance_to_support: Optional[float]  # % above support
    distance_to_resistance: Optional[float]  # % below resistance
    description: str


@dataclass(frozen=True)
class VolumeSignal:
    current_volume: float
    average_volume: float
    ratio: float
    signal: str  # high | normal | low
    description: str


@dataclass(frozen=True)
class TechnicalSignals:
    """Descriptive signal bundle for one date."""

    date: date
    trend: Optional[TrendSignal] = None
    momentum: Optional[MomentumSignal] = None
    moving_averages: Optional[MovingAverageSignal] = None
    support_resistance: Optional[SupportResistance] = None
    volume: Optional[VolumeSignal] = None


# ── Trend ────────────────────────────────────────────────────────────────


def analyze_trend(
    close: Optional[float],
    ma20: Optional[float],
    ma50: Optional[float],
    ma200: Optional[float],
) -> Optional[TrendSignal]:
    """Trend from close vs. the three MAs and the MAs' own ordering."""
    if close is None or ma20 is None or ma50 is None or ma200 is None:
        return None

    above20 = close > ma20
    above50 = close > ma50
    above200 = close > ma200
    ma20_over_50 = ma20 > ma50
    ma50_over_200 = ma50 > ma200

    if above20 and above50 and above200 and ma20_over_50 and ma50_over_200:
        return TrendSignal(
            "bullish", "strong",
            "Strong bullish trend: price above all MAs with proper alignment",
        )
    if above20 and above50 and above200:
        return TrendSignal("bullish", "moderate", "Moderate bullish trend: price above all MAs")
    if above20 and above50:
        return TrendSignal("bullish", "weak", "Weak bullish trend: price above MA50 and MA20")
    if not (above20 or above50 or above200 or ma20_over_50 or ma50_over_200):
        return TrendSignal(
            "bearish", "strong",
            "Strong bearish trend: price below all MAs with proper alignment",
        )
    if not (above20 or above50 or above200):
        return TrendSignal("bearish", "moderate", "Moderate bearish trend: price below all MAs")
    return TrendSignal(
        "neutral", "moderate",
        "Mixed signals: price position relative to MAs is inconsistent",
    )


# ── Momentum ─────────────────────────────────────────────────────────────


def analyze_momentum(rsi: Optional[float]) -> Optional[MomentumSignal]:
    if rsi is None:
        return None
    if rsi > RSI_OVERBOUGHT:
        return MomentumSignal(
            rsi, "overbought", False,
            f"RSI {rsi:.1f} indicates overbought conditions, pullback risk",
        )
    if rsi < RSI_OVERSOLD:
        return MomentumSignal(
            rsi, "oversold", False,
            f"RSI {rsi:.1f} indicates oversold conditions, bounce possible",
        )
    if rsi > RSI_STRONG:
        return MomentumSignal(
            rsi, "overbought", True,
            f"RSI {rsi:.1f} shows strong momentum but approaching overbought",
        )
    return MomentumSignal(rsi, "neutral", False, f"RSI {rsi:.1f} indicates neutral momentum")


# ── Moving averages ──────────────────────────────────────────────────────


def price_vs_ma(close: Optional[float], ma: Optional[float]) -> Optional[str]:
    """``above`` / ``below`` / ``at`` with a ±1% deadband around *ma*."""
    if close is None or ma is None:
        return None
    if close > ma * (1 + MA_DEADBAND):
        return "above"
    if close < ma * (1 - MA_DEADBAND):
        return "below"
    return "at"


def analyze_moving_averages(
    close: Optional[float], row: IndicatorRow
) -> Optional[MovingAverageSignal]:
    if close is None or (row.ma20 is None and row.ma50 is None and row.ma200 is None):
        return None

    alignment: Optional[str] = None
    description = "Not enough history for a full MA alignment"
    if row.ma20 is not None and row.ma50 is not None and row.ma200 is not None:
        if row.ma20 > row.ma50 > row.ma200 and close > row.ma20:
            alignment = "bullish"
            description = (
                f"Bullish MA alignment: price ({close:.2f}) > MA20 ({row.ma20:.2f}) "
                f"> MA50 ({row.ma50:.2f}) > MA200 ({row.ma200:.2f})"
            )
        elif row.ma20 < row.ma50 < row.ma200 and close < row.ma20:
            alignment = "bearish"
            description = (
                f"Bearish MA alignment: price ({close:.2f}) < MA20 ({row.ma20:.2f}) "
                f"< MA50 ({row.ma50:.2f}) < MA200 ({row.ma200:.2f})"
            )
        else:
            alignment = "mixed"
            description = (
                f"Mixed MA signals: price {close:.2f}, MA20 {row.ma20:.2f}, "
                f"MA50 {row.ma50:.2f}, MA200 {row.ma200:.2f}"
            )

    return MovingAverageSignal(
        ma20=row.ma20,
        ma50=row.ma50,
        ma200=row.ma200,
        price_vs_ma20=price_vs_ma(close, row.ma20),
        price_vs_ma50=price_vs_ma(close, row.ma50),
        price_vs_ma200=price_vs_ma(close, row.ma200),
        alignment=alignment,
        description=description,
    )


# ── Support / resistance ─────────────────────────────────────────────────


def support_resistance_levels(
    series: TimeSeries, index: int, window: int = SR_WINDOW
) -> tuple[Optional[float], Optional[float]]:
    """Min Low / max High over the *window* days ending at *index* (inclusive)."""
    start = max(0, index - window + 1)
    recent = series.points[start : index + 1]
    lows = [p.low for p in recent if p.low is not None]
    highs = [p.high for p in recent if p.high is not None]
    return (min(lows) if lows else None, max(highs) if highs else None)


def analyze_support_resistance(
    series: TimeSeries, index: int
) -> Optional[SupportResistance]:
    close = series[index].close
    support, resistance = support_resistance_levels(series, index)
    if support is None or resistance is None:
        return None

    to_support = to_resistance = None
    if math.isfinite(close):
        if support > 0:
            to_support = (close - support) / support * 100
        if close > 0:
            to_resistance = (resistance - close) / close * 100

    parts = [f"Support: {support:.2f}"]
    if to_support is not None:
        parts[0] += f" ({to_support:+.1f}%)"
    parts.append(f"Resistance: {resistance:.2f}")
    if to_resistance is not None:
        parts[1] += f" ({to_resistance:+.1f}%)"

    return SupportResistance(
        support=support,
        resistance=resistance,
        distance_to_support=to_support,
        distance_to_resistance=to_resistance,
        description=", ".join(parts),
    )


# ── Volume ───────────────────────────────────────────────────────────────


def average_prior_volume(
    series: TimeSeries, index: int, window: int = VOLUME_WINDOW
) -> Optional[float]:
    """Mean of the positive volumes among the *window* days before *index*."""
    recent = series.points[max(0, index - window) : index]
    volumes = [p.volume for p in recent if p.volume is not None and p.volume > 0]
    if not volumes:
        return None
    return sum(volumes) / len(volumes)


def analyze_volume(series: TimeSeries, index: int) -> Optional[VolumeSignal]:
    current = series[index].volume
    average = average_prior_volume(series, index)
    if not current or average is None:
        return None

    ratio = current / average
    if ratio > HIGH_VOLUME_RATIO:
        signal = "high"
        description = f"High volume: {ratio:.2f}x average, strong interest"
    elif ratio < LOW_VOLUME_RATIO:
        signal = "low"
        description = f"Low volume: {ratio:.2f}x average, weak participation"
    else:
        signal = "normal"
        description = f"Normal volume: {ratio:.2f}x average"
    return VolumeSignal(current, average, ratio, signal, description)


def analyze_signals(
    series: TimeSeries, indicators: Sequence[IndicatorRow], index: int
) -> TechnicalSignals:
    """Signal bundle for the day at *index*.

    Raises ``IndexError`` when *index* is outside the series.
    """
    if not 0 <= index < len(series):
        raise IndexError(f"index {index} outside series of length {len(series)}")

    point = series[index]
    row = indicators[index]
    close = point.close if math.isfinite(point.close) else None

    return TechnicalSignals(
        date=point.date,
        trend=analyze_trend(close, row.ma20, row.ma50, row.ma200),
        momentum=analyze_momentum(row.rsi),
        moving_averages=analyze_moving_averages(close, row),
        support_resistance=analyze_support_resistance(series, index),
        volume=analyze_volume(series, index),
    )
