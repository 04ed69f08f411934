"""Tests for BatchAnalyzer — concurrent per-symbol runs with isolated failures."""

from datetime import date, timedelta

import pytest

from stockfactor.analysis.factors import ContextFlags
from stockfactor.analysis.models import PricePoint, TimeSeries
from stockfactor.batch import BatchAnalyzer
from stockfactor.config import EngineConfig


def _make_series(n: int = 40, base: float = 50.0) -> TimeSeries:
    start = date(2024, 3, 1)
    return TimeSeries(tuple(
        PricePoint(
            date=start + timedelta(days=i),
            close=base + (i % 3),
            high=base + 3,
            low=base - 1,
            volume=500.0,
        )
        for i in range(n)
    ))


class TestAnalyzeOne:
    def test_result_populated(self):
        result = BatchAnalyzer(days=2).analyze_one("AAA", _make_series())
        assert result.ok
        assert result.analysis.symbol == "AAA"
        assert len(result.batch.predictions) == 2

    def test_config_threshold_applied(self):
        analyzer = BatchAnalyzer(config=EngineConfig(score_threshold=0.05))
        series = _make_series()
        context = ContextFlags.from_mapping({series[-1].date.isoformat(): ["market_up"]})
        result = analyzer.analyze_one("AAA", series, context)
        assert result.batch.predictions[0].score.above_threshold is True


class TestRunAll:
    @pytest.mark.asyncio
    async def test_all_symbols_returned_in_order(self):
        analyzer = BatchAnalyzer(future_days=3)
        results = await analyzer.run_all({
            "AAA": _make_series(),
            "BBB": _make_series(base=80.0),
        })
        assert list(results) == ["AAA", "BBB"]
        assert all(r.ok for r in results.values())
        assert all(len(r.batch.predictions) == 3 for r in results.values())

    @pytest.mark.asyncio
    async def test_failure_isolated(self, monkeypatch):
        analyzer = BatchAnalyzer()
        real = analyzer.analyze_one

        def flaky(symbol, series, context=None):
            if symbol == "BAD":
                raise RuntimeError("feed corrupted")
            return real(symbol, series, context)

        monkeypatch.setattr(analyzer, "analyze_one", flaky)
        results = await analyzer.run_all({"GOOD": _make_series(), "BAD": _make_series()})
        assert results["GOOD"].ok
        assert not results["BAD"].ok
        assert results["BAD"].error == "feed corrupted"
        assert results["BAD"].batch is None

    @pytest.mark.asyncio
    async def test_empty_input(self):
        assert await BatchAnalyzer().run_all({}) == {}
