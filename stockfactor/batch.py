"""BatchAnalyzer — runs the prediction pipeline for many symbols concurrently.

Each symbol gets its own worker thread (the pipeline is CPU-bound and
pure), driven by ``asyncio``.  One symbol's failure is logged and
reported for that symbol only.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Mapping, Optional, Union

from stockfactor.analysis.factors import ContextFlags
from stockfactor.analysis.models import TimeSeries
from stockfactor.analysis.parsing import ParseResult
from stockfactor.config import EngineConfig
from stockfactor.pipeline import (
    PredictionBatch,
    SeriesAnalysis,
    analyze_series,
    generate_predictions,
)

logger = logging.getLogger("stockfactor.batch")


@dataclass(frozen=True)
class SymbolResult:
    """Outcome for one symbol: an analysis and predictions, or an error."""

    symbol: str
    analysis: Optional[SeriesAnalysis] = None
    batch: Optional[PredictionBatch] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class BatchAnalyzer:
    """Concurrent per-symbol analysis.

    Args:
        config:      Engine settings (factor and score configuration).
        days:        Historical days to predict per symbol.
        future_days: Future business days to project (0 = historical mode).
    """

    def __init__(
        self,
        config: Optional[EngineConfig] = None,
        days: int = 4,
        future_days: int = 0,
    ) -> None:
        self._config = config or EngineConfig()
        self._days = days
        self._future_days = future_days
        self._factor_config = self._config.factor_config()
        self._score_config = self._config.score_config()

    def analyze_one(
        self,
        symbol: str,
        series: Union[TimeSeries, ParseResult],
        context: Optional[ContextFlags] = None,
    ) -> SymbolResult:
        """Synchronous single-symbol run; exceptions propagate."""
        analysis = analyze_series(
            symbol,
            series,
            context=context,
            score_config=self._score_config,
            factor_config=self._factor_config,
        )
        batch = generate_predictions(
            analysis,
            days=self._days,
            future_days=self._future_days,
            history_years=self._config.history_years,
        )
        return SymbolResult(symbol=symbol, analysis=analysis, batch=batch)

    async def run_all(
        self,
        inputs: Mapping[str, Union[TimeSeries, ParseResult]],
        contexts: Optional[Mapping[str, ContextFlags]] = None,
    ) -> dict[str, SymbolResult]:
        """Analyse every symbol concurrently.

        Returns:
            ``{symbol: SymbolResult}`` in input order.
        """
        contexts = contexts or {}

        async def _run_symbol(symbol: str, series) -> SymbolResult:
            logger.info("Starting analysis for '%s'.", symbol)
            return await asyncio.to_thread(
                self.analyze_one, symbol, series, contexts.get(symbol)
            )

        tasks = {
            symbol: asyncio.create_task(_run_symbol(symbol, series))
            for symbol, series in inputs.items()
        }

        results: dict[str, SymbolResult] = {}
        for symbol, task in tasks.items():
            try:
                results[symbol] = await task
            except Exception as exc:
                logger.error("Analysis for '%s' failed: %s", symbol, exc)
                results[symbol] = SymbolResult(symbol=symbol, error=str(exc))

        ok = sum(1 for r in results.values() if r.ok)
        logger.info("Batch finished: %d/%d symbols succeeded.", ok, len(results))
        return results
