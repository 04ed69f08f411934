"""Pattern matching — factor-overlap similarity search over prior days.

Pure functions, no I/O.
"""

from dataclasses import dataclass
from datetime import date
from typing import Iterable, Optional, Sequence

from stockfactor.analysis.models import Factor, HistoryDay

PATTERN_LOOKBACK_DAYS = 756  # ~3 years of trading days
MIN_SIMILARITY = 0.5
MAX_MATCHES = 5

REVERSAL_DROP_PCT = -2.0
CONSOLIDATION_BAND_PCT = 1.0


@dataclass(frozen=True)
class PatternMatch:
    """A prior day whose active factors overlap the query day's."""

    date: date
    score: Optional[float]
    price_change: Optional[float]
    factors: tuple[Factor, ...]
    similarity: float  # 0–1


@dataclass(frozen=True)
class PatternClassification:
    pattern_type: str  # breakout | continuation | reversal | consolidation | unknown
    strength: str  # strong | moderate | weak
    description: str


UNKNOWN_PATTERN = PatternClassification("unknown", "weak", "No recognisable pattern")


@dataclass(frozen=True)
class PatternRecognition:
    matches: tuple[PatternMatch, ...] = ()
    pattern_type: str = UNKNOWN_PATTERN.pattern_type
    pattern_strength: str = UNKNOWN_PATTERN.strength
    description: str = UNKNOWN_PATTERN.description
    historical_accuracy: Optional[float] = None  # % of matches that closed up


def similarity(target: Iterable[Factor], candidate: Iterable[Factor]) -> float:
    """``|T ∩ H| / max(|T|, |H|, 1)``."""
    t = set(target)
    h = set(candidate)
    return len(t & h) / max(len(t), len(h), 1)


def find_similar_days(
    target_factors: Iterable[Factor],
    history: Sequence[HistoryDay],
    lookback: int = PATTERN_LOOKBACK_DAYS,
    min_similarity: float = MIN_SIMILARITY,
    max_matches: int = MAX_MATCHES,
) -> list[PatternMatch]:
    """Best matches among the last *lookback* days of *history*.

    Sorted by similarity, most recent first on ties.  Only predictive
    factors are compared; an empty target matches nothing.
    """
    target = {f for f in target_factors if f is not Factor.STRONG_MOVE}
    if not target or max_matches <= 0:
        return []

    window = history[-lookback:] if lookback > 0 else []
    matches: list[PatternMatch] = []
    for day in window:
        candidate = day.factors.predictive
        sim = similarity(target, candidate)
        if sim < min_similarity:
            continue
        matches.append(
            PatternMatch(
                date=day.date,
                score=day.score,
                price_change=day.pct_change,
                factors=candidate,
                similarity=round(sim, 4),
            )
        )

    matches.sort(key=lambda m: (m.similarity, m.date), reverse=True)
    return matches[:max_matches]


def historical_accuracy(matches: Sequence[PatternMatch]) -> Optional[float]:
    """Percent of *matches* with a positive realised change; ``None`` if empty."""
    if not matches:
        return None
    wins = sum(1 for m in matches if m.price_change is not None and m.price_change > 0)
    return wins / len(matches) * 100


def classify_pattern(
    active: Iterable[Factor],
    close: Optional[float],
    ma50: Optional[float],
    pct_change: Optional[float],
) -> PatternClassification:
    """Rule-based pattern type from MA breaks, volume spike and the day's move."""
    if close is None or ma50 is None or pct_change is None:
        return UNKNOWN_PATTERN

    factors = set(active)
    broke50 = Factor.BREAK_MA50 in factors
    broke200 = Factor.BREAK_MA200 in factors
    spike = Factor.VOLUME_SPIKE in factors

    if (broke50 or broke200) and pct_change > 0:
        level = "MA200" if broke200 else "MA50"
        return PatternClassification(
            "breakout",
            "strong" if spike else "moderate",
            f"Breakout pattern detected: {level} break with "
            f"{'high' if spike else 'normal'} volume",
        )
    if close > ma50 and pct_change > 0:
        return PatternClassification(
            "continuation",
            "moderate" if spike else "weak",
            "Continuation pattern: price maintaining upward momentum",
        )
    if pct_change < REVERSAL_DROP_PCT and spike:
        return PatternClassification(
            "reversal", "moderate",
            "Potential reversal pattern: significant decline with high volume",
        )
    if abs(pct_change) < CONSOLIDATION_BAND_PCT and not spike:
        return PatternClassification(
            "consolidation", "weak",
            "Consolidation pattern: sideways movement with low volatility",
        )
    return UNKNOWN_PATTERN


def match_patterns(
    target_factors: Iterable[Factor],
    history: Sequence[HistoryDay],
    close: Optional[float] = None,
    ma50: Optional[float] = None,
    pct_change: Optional[float] = None,
    max_matches: int = MAX_MATCHES,
) -> PatternRecognition:
    """Similar prior days plus the query day's pattern classification.

    *history* must hold only days before the query day, oldest first.
    *max_matches* can lower the number of matches but never raise it
    above ``MAX_MATCHES``.
    """
    target = tuple(target_factors)
    matches = find_similar_days(
        target, history, max_matches=min(max_matches, MAX_MATCHES)
    )
    kind = classify_pattern(target, close, ma50, pct_change)
    return PatternRecognition(
        matches=tuple(matches),
        pattern_type=kind.pattern_type,
        pattern_strength=kind.strength,
        description=kind.description,
        historical_accuracy=historical_accuracy(matches),
    )
