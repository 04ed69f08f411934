"""Deterministic tests for daily scoring and score configuration."""

from datetime import date

import pytest

from stockfactor.analysis.models import Factor, FactorSet, Prediction
from stockfactor.analysis.scoring import (
    DEFAULT_SCORE_CONFIG,
    FACTOR_DESCRIPTIONS,
    ScoreConfig,
    build_score_config,
    classify_score,
    confidence_for,
    interpretation_for,
    recommendations_for,
    score_day,
    score_days,
)
from stockfactor.errors import InvalidConfiguration

DAY = date(2024, 5, 6)


def _fs(*factors: Factor) -> FactorSet:
    return FactorSet(date=DAY, active=frozenset(factors))


class TestScoreDay:
    def test_single_weight_scenario(self):
        config = ScoreConfig(weights={"volume_spike": 0.5}, threshold=0.45)
        result = score_day(_fs(Factor.VOLUME_SPIKE), config)
        assert result.score == 0.5
        assert result.prediction is Prediction.HIGH_PROBABILITY
        assert result.above_threshold is True

    def test_no_active_factors(self):
        result = score_day(_fs())
        assert result.score == 0
        assert result.prediction is Prediction.LOW_PROBABILITY
        assert result.above_threshold is False

    def test_default_weights_sum(self):
        all_factors = _fs(*DEFAULT_SCORE_CONFIG.weights)
        assert score_day(all_factors).score == pytest.approx(1.0)

    def test_strong_move_never_scored(self):
        with_move = score_day(_fs(Factor.VOLUME_SPIKE, Factor.STRONG_MOVE))
        without = score_day(_fs(Factor.VOLUME_SPIKE))
        assert with_move.score == without.score
        assert Factor.STRONG_MOVE not in with_move.active_factors

    def test_heavy_weights_rescaled(self):
        config = ScoreConfig(
            weights={Factor.VOLUME_SPIKE: 2.0, Factor.MARKET_UP: 2.0}, threshold=0.45
        )
        assert score_day(_fs(Factor.VOLUME_SPIKE), config).score == 0.5

    def test_moderate_band(self):
        # break_ma50 (0.15) + rsi_over_60 (0.10) = 0.25 ∈ [0.225, 0.45)
        result = score_day(_fs(Factor.BREAK_MA50, Factor.RSI_OVER_60))
        assert result.score == pytest.approx(0.25)
        assert result.prediction is Prediction.MODERATE

    def test_idempotent(self):
        fs = _fs(Factor.VOLUME_SPIKE, Factor.MARKET_UP, Factor.NEWS_POSITIVE)
        assert score_day(fs) == score_day(fs)
        assert repr(score_day(fs)) == repr(score_day(fs))

    def test_score_days_maps(self):
        results = score_days([_fs(), _fs(Factor.SECTOR_UP)])
        assert [r.score for r in results] == [0.0, 0.1]


class TestClassification:
    @pytest.mark.parametrize("score,expected", [
        (0.45, Prediction.HIGH_PROBABILITY),
        (0.4499, Prediction.MODERATE),
        (0.225, Prediction.MODERATE),
        (0.2249, Prediction.LOW_PROBABILITY),
        (0.0, Prediction.LOW_PROBABILITY),
    ])
    def test_boundaries(self, score, expected):
        assert classify_score(score, 0.45) is expected


class TestConfidence:
    def test_range(self):
        assert confidence_for(0.0, 0) == 0
        assert confidence_for(1.0, 10) == 100

    def test_monotonic_in_score(self):
        values = [confidence_for(s / 10, 2) for s in range(11)]
        assert values == sorted(values)

    def test_monotonic_in_count(self):
        values = [confidence_for(0.3, n) for n in range(8)]
        assert values == sorted(values)

    def test_formula(self):
        assert confidence_for(0.5, 2) == 47


class TestBuildScoreConfig:
    def test_merges_defaults(self):
        config = build_score_config({"volume_spike": 0.3})
        assert config.weight(Factor.VOLUME_SPIKE) == 0.3
        assert config.weight(Factor.BREAK_MA50) == 0.15
        assert config.threshold == DEFAULT_SCORE_CONFIG.threshold

    def test_threshold_override(self):
        assert build_score_config(threshold=0.6).threshold == 0.6

    @pytest.mark.parametrize("weights,threshold", [
        ({"volume_spike": 0}, None),
        ({"volume_spike": -0.2}, None),
        ({"strong_move": 0.2}, None),
        ({"moon_phase": 0.2}, None),
        (None, 0.0),
        (None, 1.0),
        (None, 1.5),
    ])
    def test_rejects_invalid(self, weights, threshold):
        with pytest.raises(InvalidConfiguration):
            build_score_config(weights, threshold)

    def test_config_is_immutable(self):
        config = build_score_config()
        with pytest.raises(TypeError):
            config.weights[Factor.VOLUME_SPIKE] = 1.0


class TestTextOutput:
    def test_every_factor_described(self):
        assert set(FACTOR_DESCRIPTIONS) == set(Factor)

    def test_interpretation_by_tier(self):
        high = score_day(_fs(*DEFAULT_SCORE_CONFIG.weights))
        low = score_day(_fs())
        assert "high probability" in interpretation_for("ACME", high)
        assert interpretation_for("ACME", low).startswith("ACME shows low probability")

    def test_recommendations_mention_volume(self):
        recs = recommendations_for(score_day(_fs(Factor.VOLUME_SPIKE)))
        assert any("volume" in r.lower() for r in recs)
