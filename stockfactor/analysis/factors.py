"""Factor extraction — boolean per-day factors from indicators and context.

Price-derived factors are computed here; market, sector, earnings, macro
and news factors are injected by the caller through ``ContextFlags``.
"""

import math
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Iterable, Mapping, Optional, Sequence, Union

from stockfactor.analysis.models import (
    CONTEXT_FACTORS,
    Factor,
    FactorSet,
    IndicatorRow,
    TimeSeries,
    parse_factor,
)
from stockfactor.analysis.parsing import parse_date
from stockfactor.errors import InvalidConfiguration

VOLUME_LOOKBACK = 20


@dataclass(frozen=True)
class FactorConfig:
    """Tunable thresholds for the price-derived factors."""

    volume_spike_multiplier: float = 1.5
    volume_lookback: int = VOLUME_LOOKBACK
    break_min_pct_change: float = 1.0  # minimum day gain for an MA break
    strong_move_pct_change: float = 4.0
    rsi_threshold: float = 60.0

    def __post_init__(self) -> None:
        if not math.isfinite(self.volume_spike_multiplier) or self.volume_spike_multiplier <= 0:
            raise InvalidConfiguration(
                f"volume_spike_multiplier must be positive, got {self.volume_spike_multiplier}"
            )
        if self.volume_lookback < 1:
            raise InvalidConfiguration(
                f"volume_lookback must be at least 1, got {self.volume_lookback}"
            )
        if not math.isfinite(self.break_min_pct_change):
            raise InvalidConfiguration("break_min_pct_change must be finite")
        if not math.isfinite(self.strong_move_pct_change) or self.strong_move_pct_change <= 0:
            raise InvalidConfiguration(
                f"strong_move_pct_change must be positive, got {self.strong_move_pct_change}"
            )
        if not 0 < self.rsi_threshold < 100:
            raise InvalidConfiguration(
                f"rsi_threshold must be within (0, 100), got {self.rsi_threshold}"
            )


DEFAULT_FACTOR_CONFIG = FactorConfig()


@dataclass(frozen=True)
class ContextFlags:
    """Externally computed factors per date (market, sector, earnings, …)."""

    flags: Mapping[date, frozenset[Factor]] = field(default_factory=dict)

    def for_date(self, day: date) -> frozenset[Factor]:
        return self.flags.get(day, frozenset())

    @classmethod
    def from_mapping(
        cls,
        raw: Mapping[Union[str, date], Union[Iterable[str], Mapping[str, Any]]],
    ) -> "ContextFlags":
        """Parse ``{date: [factor, ...]}`` or ``{date: {factor: bool}}``.

        Raises ``InvalidConfiguration`` for unknown factor names, for
        price-derived factors, and for unparseable dates.
        """
        parsed: dict[date, frozenset[Factor]] = {}
        for raw_day, states in raw.items():
            try:
                day = parse_date(raw_day)
            except ValueError as exc:
                raise InvalidConfiguration(
                    f"Invalid context date '{raw_day}': {exc}"
                ) from None

            if isinstance(states, Mapping):
                names = [k for k, v in states.items() if bool(v)]
            else:
                names = list(states)

            factors = set()
            for name in names:
                factor = parse_factor(name)
                if factor not in CONTEXT_FACTORS:
                    raise InvalidConfiguration(
                        f"Factor '{factor.value}' is computed from prices "
                        f"and cannot be supplied as context"
                    )
                factors.add(factor)
            parsed[day] = parsed.get(day, frozenset()) | frozenset(factors)
        return cls(flags=parsed)


def _trailing_average_volume(
    volumes: Sequence[Optional[float]], index: int, lookback: int
) -> Optional[float]:
    """Average of the *lookback* volumes before *index*, ``None`` if short."""
    if index < lookback:
        return None
    window = volumes[index - lookback : index]
    usable = [v for v in window if v is not None]
    if len(usable) < lookback:
        return None
    return sum(usable) / lookback


def is_volume_spike(
    volumes: Sequence[Optional[float]],
    index: int,
    config: FactorConfig = DEFAULT_FACTOR_CONFIG,
) -> bool:
    """True when volume exceeds ``multiplier × trailing average``.

    Fewer than ``volume_lookback`` prior volumes yields ``False``.
    """
    current = volumes[index]
    if current is None:
        return False
    average = _trailing_average_volume(volumes, index, config.volume_lookback)
    if average is None or average <= 0:
        return False
    return current > config.volume_spike_multiplier * average


def _breaks_ma(
    close: float,
    ma: Optional[float],
    pct_change: Optional[float],
    min_pct_change: float,
) -> bool:
    if ma is None or pct_change is None:
        return False
    return close > ma and pct_change >= min_pct_change


def _day_factors(
    close: float,
    row: IndicatorRow,
    volumes: Sequence[Optional[float]],
    index: int,
    context: Optional[ContextFlags],
    config: FactorConfig,
) -> FactorSet:
    active: set[Factor] = set()

    if is_volume_spike(volumes, index, config):
        active.add(Factor.VOLUME_SPIKE)
    if close is not None and math.isfinite(close):
        if _breaks_ma(close, row.ma50, row.pct_change, config.break_min_pct_change):
            active.add(Factor.BREAK_MA50)
        if _breaks_ma(close, row.ma200, row.pct_change, config.break_min_pct_change):
            active.add(Factor.BREAK_MA200)
    if row.rsi is not None and row.rsi > config.rsi_threshold:
        active.add(Factor.RSI_OVER_60)
    if row.pct_change is not None and row.pct_change >= config.strong_move_pct_change:
        active.add(Factor.STRONG_MOVE)
    if context is not None:
        active |= context.for_date(row.date)

    return FactorSet(date=row.date, active=frozenset(active))


def extract_factors(
    series: TimeSeries,
    indicators: Sequence[IndicatorRow],
    context: Optional[ContextFlags] = None,
    config: FactorConfig = DEFAULT_FACTOR_CONFIG,
) -> list[FactorSet]:
    """One ``FactorSet`` per point of *series*.

    Args:
        series: The price series the indicators were computed from.
        indicators: Output of ``compute_indicators(series)``.
        context: Injected market / sector / earnings / macro / news flags.
        config: Factor thresholds for this run.

    Raises ``ValueError`` if *indicators* does not line up with *series*.
    """
    if len(indicators) != len(series):
        raise ValueError(
            f"Indicator rows ({len(indicators)}) do not match series "
            f"length ({len(series)})"
        )

    volumes = [p.volume for p in series]
    result: list[FactorSet] = []
    for i, (point, row) in enumerate(zip(series, indicators)):
        if row.date != point.date:
            raise ValueError(
                f"Indicator row {row.date.isoformat()} does not match "
                f"series date {point.date.isoformat()}"
            )
        result.append(_day_factors(point.close, row, volumes, i, context, config))
    return result
