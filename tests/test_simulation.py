"""Tests for the multi-day simulation and its path strategies."""

import math
from datetime import date, timedelta

import pytest

from stockfactor.analysis.models import Factor, FactorSet, HistoryDay
from stockfactor.analysis.signals import SupportResistance, TechnicalSignals
from stockfactor.errors import InvalidConfiguration
from stockfactor.forecast.models import SimulationParameters
from stockfactor.forecast.simulation import (
    DeterministicPathStrategy,
    MonteCarloPathStrategy,
    PathStrategy,
    build_scenarios,
    build_strategy,
    business_days_after,
    confidence_intervals,
    simulate,
)

FRIDAY = date(2024, 1, 5)
STATES = {"volume_spike": True, "break_ma50": True, "market_up": True}


def _params(**overrides) -> SimulationParameters:
    kwargs = dict(
        symbol="ACME",
        initial_price=100.0,
        time_horizon_days=5,
        factor_states=STATES,
        start_date=FRIDAY,
    )
    kwargs.update(overrides)
    return SimulationParameters(**kwargs)


def _history(n: int = 30) -> list[HistoryDay]:
    days = []
    for i in range(n):
        day = FRIDAY - timedelta(days=n - i)
        active = frozenset({Factor.VOLUME_SPIKE, Factor.BREAK_MA50}) if i % 2 else frozenset()
        days.append(HistoryDay(
            date=day,
            factors=FactorSet(date=day, active=active),
            score=0.2 if i % 2 else 0.1,
            pct_change=1.0 if i % 2 else -0.5,
        ))
    return days


def _levels(support: float, resistance: float) -> TechnicalSignals:
    sr = SupportResistance(support, resistance, None, None, "")
    return TechnicalSignals(date=FRIDAY, support_resistance=sr)


class TestValidation:
    @pytest.mark.parametrize("overrides", [
        {"symbol": ""},
        {"initial_price": 0.0},
        {"initial_price": -5.0},
        {"initial_price": math.nan},
        {"time_horizon_days": 0},
        {"time_horizon_days": 366},
        {"time_horizon_days": 2.5},
        {"factor_weights": {"volume_spike": -1.0}},
        {"factor_weights": {"strong_move": 0.3}},
        {"threshold": 1.2},
        {"factor_states": {"moon_phase": True}},
    ])
    def test_rejected(self, overrides):
        with pytest.raises(InvalidConfiguration):
            simulate(_params(**overrides))

    def test_custom_max_days(self):
        with pytest.raises(InvalidConfiguration):
            simulate(_params(time_horizon_days=20), max_days=10)


class TestDeterministic:
    def test_path_without_history(self):
        result = simulate(_params())
        # 0.20 + 0.15 + 0.10 = 0.45, at threshold, default 2% per score point
        assert result.score.score == pytest.approx(0.45)
        assert result.daily_change_percent == pytest.approx(0.9)
        assert len(result.path) == 5
        assert [p.date for p in result.path] == [FRIDAY + timedelta(days=d) for d in range(3, 8)]
        assert all(p.day == i + 1 for i, p in enumerate(result.path))
        assert result.path[-1].mean > result.path[0].mean > 100.0
        assert result.method == "hybrid/deterministic"

    def test_bands_widen(self):
        path = simulate(_params(time_horizon_days=10)).path
        widths = [p.upper_95 - p.lower_95 for p in path]
        assert widths == sorted(widths)
        assert all(p.lower_95 <= p.lower_68 <= p.mean <= p.upper_68 <= p.upper_95 for p in path)

    def test_scenarios_ordered(self):
        result = simulate(_params())
        finals = {s.name: s.final_price for s in result.scenarios}
        assert finals["optimistic"] > finals["base"] > finals["pessimistic"]
        assert sum(s.probability for s in result.scenarios) == pytest.approx(1.0)

    def test_history_adds_factor_and_pattern_methods(self):
        result = simulate(_params(), history=_history())
        assert result.calibration.calibrated is True
        assert result.factor_breakdown[0].factor is Factor.VOLUME_SPIKE
        assert result.factor_breakdown[0].historical_avg_return == pytest.approx(1.0)
        assert result.pattern_matches
        assert all(m.similarity >= 0.5 for m in result.pattern_matches)

    def test_no_active_factors(self):
        result = simulate(_params(factor_states={}))
        assert result.score.score == 0
        assert result.daily_change_percent == pytest.approx(0.0)


class TestMonteCarlo:
    def test_seeded_runs_reproducible(self):
        first = simulate(_params(), strategy=MonteCarloPathStrategy(paths=200, seed=7))
        second = simulate(_params(), strategy=MonteCarloPathStrategy(paths=200, seed=7))
        assert [p.mean for p in first.path] == [p.mean for p in second.path]
        assert first.method == "hybrid/monte_carlo"

    def test_prices_kept_within_levels(self):
        result = simulate(
            _params(time_horizon_days=20),
            signals=_levels(95.0, 105.0),
            strategy=MonteCarloPathStrategy(paths=300, seed=1),
        )
        assert all(95.0 <= p.lower_95 and p.upper_95 <= 105.0 for p in result.path)

    def test_needs_two_paths(self):
        with pytest.raises(InvalidConfiguration):
            MonteCarloPathStrategy(paths=1)


class TestStrategies:
    def test_protocol(self):
        assert isinstance(DeterministicPathStrategy(), PathStrategy)
        assert isinstance(MonteCarloPathStrategy(), PathStrategy)

    def test_build_by_name(self):
        assert isinstance(build_strategy("monte-carlo", paths=50, seed=3), MonteCarloPathStrategy)
        assert isinstance(build_strategy(), DeterministicPathStrategy)
        with pytest.raises(InvalidConfiguration):
            build_strategy("garch")


class TestHelpers:
    def test_business_days_skip_weekend(self):
        assert business_days_after(FRIDAY, 3) == (
            date(2024, 1, 8), date(2024, 1, 9), date(2024, 1, 10),
        )

    def test_business_days_from_saturday(self):
        assert business_days_after(date(2024, 1, 6), 1) == (date(2024, 1, 8),)

    def test_confidence_intervals(self):
        intervals = confidence_intervals([1.0, 3.0])
        assert (intervals[0].level, intervals[0].lower, intervals[0].upper) == (0.68, 1.0, 3.0)
        assert (intervals[1].lower, intervals[1].upper) == (0.0, 4.0)

    def test_confidence_intervals_empty(self):
        assert confidence_intervals([]) == []

    def test_flat_scenarios(self):
        scenarios = build_scenarios(50.0, [0.0, 0.0])
        assert all(s.final_price == 50.0 and s.total_return == 0.0 for s in scenarios)
