"""Tests for factor extraction and context flags."""

from datetime import date, timedelta

import pytest

from stockfactor.analysis.factors import (
    ContextFlags,
    FactorConfig,
    extract_factors,
    is_volume_spike,
)
from stockfactor.analysis.indicators import compute_indicators
from stockfactor.analysis.models import Factor, FactorSet, PricePoint, TimeSeries
from stockfactor.errors import InvalidConfiguration

START = date(2023, 1, 2)


def _series(closes: list[float], volumes: list[float] | None = None) -> TimeSeries:
    volumes = volumes or [1000.0] * len(closes)
    return TimeSeries(tuple(
        PricePoint(date=START + timedelta(days=i), close=c, volume=v)
        for i, (c, v) in enumerate(zip(closes, volumes))
    ))


def _factors(series: TimeSeries, **kwargs) -> list[FactorSet]:
    return extract_factors(series, compute_indicators(series), **kwargs)


class TestVolumeSpike:
    def test_spike_after_20_days(self):
        volumes = [1000.0] * 20 + [1600.0]
        assert is_volume_spike(volumes, 20) is True

    def test_below_multiplier(self):
        volumes = [1000.0] * 20 + [1400.0]
        assert is_volume_spike(volumes, 20) is False

    def test_fewer_than_20_prior_volumes(self):
        volumes = [1000.0] * 10 + [9000.0]
        assert is_volume_spike(volumes, 10) is False

    def test_custom_multiplier(self):
        volumes = [1000.0] * 20 + [1400.0]
        config = FactorConfig(volume_spike_multiplier=1.2)
        assert is_volume_spike(volumes, 20, config) is True

    def test_missing_current_volume(self):
        volumes = [1000.0] * 20 + [None]
        assert is_volume_spike(volumes, 20) is False


class TestPriceFactors:
    def test_break_ma50_needs_min_gain(self):
        # 50 flat days then a 2% jump above the MA
        closes = [100.0] * 50 + [102.0]
        fs = _factors(_series(closes))[-1]
        assert fs.is_active(Factor.BREAK_MA50)
        assert not fs.is_active(Factor.BREAK_MA200)

    def test_small_gain_is_no_break(self):
        closes = [100.0] * 50 + [100.5]
        fs = _factors(_series(closes))[-1]
        assert not fs.is_active(Factor.BREAK_MA50)

    def test_min_pct_change_override(self):
        closes = [100.0] * 50 + [100.5]
        config = FactorConfig(break_min_pct_change=0.4)
        fs = _factors(_series(closes), config=config)[-1]
        assert fs.is_active(Factor.BREAK_MA50)

    def test_strong_move(self):
        closes = [100.0, 104.0, 105.0]
        sets = _factors(_series(closes))
        assert sets[1].is_active(Factor.STRONG_MOVE)
        assert not sets[2].is_active(Factor.STRONG_MOVE)

    def test_rsi_over_60(self):
        closes = [100.0 + i for i in range(20)]
        sets = _factors(_series(closes))
        assert not sets[13].is_active(Factor.RSI_OVER_60)  # RSI undefined
        assert sets[19].is_active(Factor.RSI_OVER_60)

    def test_one_set_per_point(self):
        series = _series([100.0] * 10)
        sets = _factors(series)
        assert [fs.date for fs in sets] == series.dates
        assert all(not fs.active for fs in sets)

    def test_mismatched_indicators(self):
        series = _series([100.0] * 5)
        with pytest.raises(ValueError):
            extract_factors(series, compute_indicators(series)[:3])


class TestContextFlags:
    def test_passthrough(self):
        series = _series([100.0] * 3)
        context = ContextFlags.from_mapping({
            "2023-01-03": ["market_up", "sector_up"],
            "2023-01-04": {"earnings_window": True, "news_positive": False},
        })
        sets = _factors(series, context=context)
        assert sets[0].active == frozenset()
        assert sets[1].active == {Factor.MARKET_UP, Factor.SECTOR_UP}
        assert sets[2].active == {Factor.EARNINGS_WINDOW}

    def test_unknown_factor_rejected(self):
        with pytest.raises(InvalidConfiguration, match="Unknown factor"):
            ContextFlags.from_mapping({"2023-01-03": ["moon_phase"]})

    def test_price_factor_rejected(self):
        with pytest.raises(InvalidConfiguration, match="computed from prices"):
            ContextFlags.from_mapping({"2023-01-03": ["volume_spike"]})

    def test_bad_date_rejected(self):
        with pytest.raises(InvalidConfiguration):
            ContextFlags.from_mapping({"soon": ["market_up"]})


class TestFactorConfig:
    @pytest.mark.parametrize("kwargs", [
        {"volume_spike_multiplier": 0},
        {"volume_lookback": 0},
        {"strong_move_pct_change": -1},
        {"rsi_threshold": 120},
    ])
    def test_invalid_values(self, kwargs):
        with pytest.raises(InvalidConfiguration):
            FactorConfig(**kwargs)
