"""Analyse a directory of OHLCV CSV files, one symbol per file.

Usage (from the repository root):
    python -m scripts.run_batch --data-dir data/ --future-days 5

The file stem is used as the symbol (``data/ACME.csv`` → ``ACME``).
"""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

# Ensure project root is on path
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from stockfactor.analysis.parsing import parse_csv
from stockfactor.batch import BatchAnalyzer
from stockfactor.config import load_config

logger = logging.getLogger("stockfactor.scripts.run_batch")


async def _main(data_dir: Path, days: int, future_days: int) -> int:
    config = load_config()
    inputs = {
        path.stem.upper(): parse_csv(path.read_text(encoding="utf-8"))
        for path in sorted(data_dir.glob("*.csv"))
    }
    if not inputs:
        logger.error("No CSV files found in %s", data_dir)
        return 1

    analyzer = BatchAnalyzer(config, days=days, future_days=future_days)
    results = await analyzer.run_all(inputs)

    for symbol, result in results.items():
        if not result.ok:
            logger.warning("%s: failed (%s)", symbol, result.error)
            continue
        for p in result.batch.predictions:
            logger.info(
                "%s %s  score=%.4f  %s  confidence=%d",
                symbol, p.date.isoformat(), p.score.score,
                p.score.prediction.value, p.score.confidence,
            )
        for err in result.batch.errors:
            logger.warning("%s %s: %s", symbol, err.date, err.error)
    return 0


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Batch factor analysis over CSV files")
    parser.add_argument("--data-dir", type=Path, default=Path("data"))
    parser.add_argument("--days", type=int, default=4)
    parser.add_argument("--future-days", type=int, default=0)
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    sys.exit(asyncio.run(_main(args.data_dir, args.days, args.future_days)))
