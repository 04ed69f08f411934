"""Factor statistics — frequency, factor/return correlation, score summary."""

import logging
from typing import Optional, Sequence

import numpy as np

from stockfactor.analysis.models import (
    DailyScore,
    Factor,
    FactorSet,
    Prediction,
)

logger = logging.getLogger("stockfactor.stats")


def factor_summary(factor_sets: Sequence[FactorSet]) -> dict:
    """Per-factor activation counts and frequencies.

    Returns:
        Dict with ``total_days``, ``factor_counts``, ``factor_frequency``
        (0–1 per factor) and ``average_factors_per_day``.
    """
    total = len(factor_sets)
    counts = {f.value: 0 for f in Factor}
    active_total = 0
    for fs in factor_sets:
        active_total += len(fs.active)
        for f in fs.active:
            counts[f.value] += 1

    return {
        "total_days": total,
        "factor_counts": counts,
        "factor_frequency": {
            k: round(v / total, 4) if total else 0.0 for k, v in counts.items()
        },
        "average_factors_per_day": round(active_total / total, 4) if total else 0.0,
    }


def _pearson(x: np.ndarray, y: np.ndarray) -> Optional[float]:
    # Undefined when either side is constant.
    if len(x) < 2 or np.std(x) == 0 or np.std(y) == 0:
        return None
    r = float(np.corrcoef(x, y)[0, 1])
    return round(r, 4) if np.isfinite(r) else None


def correlate_factors_with_returns(
    factor_sets: Sequence[FactorSet],
    returns: Sequence[Optional[float]],
) -> dict[str, dict]:
    """Per factor: occurrences, average return when active, Pearson r.

    *returns* holds each day's percent change, aligned with
    *factor_sets*; days without one are left out.  ``avg_return`` is
    ``None`` for a factor that never fires, ``correlation`` is ``None``
    when it cannot be computed.
    """
    if len(factor_sets) != len(returns):
        raise ValueError(
            f"Factor sets ({len(factor_sets)}) do not match returns "
            f"({len(returns)})"
        )

    pairs = [
        (fs, pct)
        for fs, pct in zip(factor_sets, returns)
        if pct is not None
    ]
    values = np.array([p for _, p in pairs], dtype=float)

    result: dict[str, dict] = {}
    for factor in Factor:
        flags = np.array([1.0 if fs.is_active(factor) else 0.0 for fs, _ in pairs])
        occurrences = int(flags.sum()) if len(flags) else 0
        avg_return = (
            round(float(values[flags == 1.0].mean()), 4) if occurrences else None
        )
        result[factor.value] = {
            "occurrences": occurrences,
            "avg_return": avg_return,
            "correlation": _pearson(flags, values) if len(pairs) else None,
        }

    logger.debug("Correlated %d factors over %d days", len(result), len(pairs))
    return result


def score_summary(scores: Sequence[DailyScore]) -> dict:
    """Tier counts, days above threshold, average and max score."""
    tiers = {p.value: 0 for p in Prediction}
    for s in scores:
        tiers[s.prediction.value] += 1

    values = [s.score for s in scores]
    return {
        "total_days": len(scores),
        "days_above_threshold": sum(1 for s in scores if s.above_threshold),
        "predictions": tiers,
        "average_score": round(sum(values) / len(values), 4) if values else 0.0,
        "max_score": max(values) if values else 0.0,
    }
