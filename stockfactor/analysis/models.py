"""Analysis data models — typed records shared across the pipeline."""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Iterable, Iterator, Mapping, Optional, Union

from stockfactor.errors import InvalidConfiguration


@dataclass(frozen=True)
class PricePoint:
    """One trading day's OHLCV summary.

    Only ``close`` is mandatory; supplemental records may omit the rest.
    A NaN close marks a day whose close was missing from the source.
    """

    date: date
    close: float
    open: Optional[float] = None
    high: Optional[float] = None
    low: Optional[float] = None
    volume: Optional[float] = None


@dataclass(frozen=True)
class TimeSeries:
    """An ordered OHLCV sequence with strictly increasing, unique dates.

    Gaps (non-trading days) are allowed and never interpolated.
    """

    points: tuple[PricePoint, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "points", tuple(self.points))
        for prev, cur in zip(self.points, self.points[1:]):
            if cur.date <= prev.date:
                raise ValueError(
                    f"TimeSeries dates must be strictly increasing: "
                    f"{prev.date.isoformat()} then {cur.date.isoformat()}"
                )

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[PricePoint]:
        return iter(self.points)

    def __getitem__(self, index: int) -> PricePoint:
        return self.points[index]

    @property
    def closes(self) -> list[float]:
        return [p.close for p in self.points]

    @property
    def dates(self) -> list[date]:
        return [p.date for p in self.points]


@dataclass(frozen=True)
class IndicatorRow:
    """Per-date indicators.  ``None`` means not enough lookback, never 0."""

    date: date
    pct_change: Optional[float] = None
    ma20: Optional[float] = None
    ma50: Optional[float] = None
    ma200: Optional[float] = None
    rsi: Optional[float] = None


# ── Factors ──────────────────────────────────────────────────────────────


class Factor(str, Enum):
    """Named boolean signals describing one aspect of a trading day."""

    VOLUME_SPIKE = "volume_spike"
    BREAK_MA50 = "break_ma50"
    BREAK_MA200 = "break_ma200"
    RSI_OVER_60 = "rsi_over_60"
    MARKET_UP = "market_up"
    SECTOR_UP = "sector_up"
    SHORT_COVERING = "short_covering"
    EARNINGS_WINDOW = "earnings_window"
    MACRO_TAILWIND = "macro_tailwind"
    NEWS_POSITIVE = "news_positive"
    STRONG_MOVE = "strong_move"


# strong_move describes the realised outcome, so it is never a scoring input.
PREDICTIVE_FACTORS: tuple[Factor, ...] = tuple(
    f for f in Factor if f is not Factor.STRONG_MOVE
)

# Supplied by the caller, not computed from prices.
CONTEXT_FACTORS: frozenset[Factor] = frozenset({
    Factor.SHORT_COVERING,
    Factor.EARNINGS_WINDOW,
    Factor.MARKET_UP,
    Factor.SECTOR_UP,
    Factor.MACRO_TAILWIND,
    Factor.NEWS_POSITIVE,
})


def parse_factor(name: Union[str, Factor]) -> Factor:
    """Resolve a factor name, rejecting anything outside the enum."""
    if isinstance(name, Factor):
        return name
    try:
        return Factor(str(name).strip().lower())
    except ValueError:
        raise InvalidConfiguration(
            f"Unknown factor '{name}'. "
            f"Available: {', '.join(f.value for f in Factor)}"
        ) from None


def _factor_order(factors: Iterable[Factor]) -> tuple[Factor, ...]:
    wanted = set(factors)
    return tuple(f for f in Factor if f in wanted)


@dataclass(frozen=True)
class FactorSet:
    """Active factors for one date.  Anything not listed is ``False``."""

    date: Optional[date]
    active: frozenset[Factor] = frozenset()

    def __post_init__(self) -> None:
        object.__setattr__(self, "active", frozenset(self.active))

    @classmethod
    def from_mapping(
        cls,
        day: Optional[date],
        states: Mapping[Union[str, Factor], bool],
    ) -> "FactorSet":
        """Build from a ``{factor_name: bool}`` mapping (unknown names rejected)."""
        active = {parse_factor(k) for k, v in states.items() if bool(v)}
        return cls(date=day, active=frozenset(active))

    def is_active(self, factor: Factor) -> bool:
        return factor in self.active

    @property
    def active_list(self) -> tuple[Factor, ...]:
        """Active factors in declaration order."""
        return _factor_order(self.active)

    @property
    def predictive(self) -> tuple[Factor, ...]:
        """Active factors usable as scoring inputs (no result factors)."""
        return tuple(f for f in self.active_list if f is not Factor.STRONG_MOVE)


# ── Scores ───────────────────────────────────────────────────────────────


class Prediction(str, Enum):
    """Three-tier probability band."""

    HIGH_PROBABILITY = "HIGH_PROBABILITY"
    MODERATE = "MODERATE"
    LOW_PROBABILITY = "LOW_PROBABILITY"


@dataclass(frozen=True)
class DailyScore:
    """Score and classification for one date."""

    date: Optional[date]
    score: float  # 0–1
    prediction: Prediction
    confidence: float  # 0–100
    above_threshold: bool
    threshold: float
    active_factors: tuple[Factor, ...] = ()


@dataclass(frozen=True)
class HistoryDay:
    """A prior day as seen by pattern matching and price calibration."""

    date: date
    factors: FactorSet
    score: Optional[float] = None
    pct_change: Optional[float] = None
    close: Optional[float] = None
