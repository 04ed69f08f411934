"""StockFactor — engine configuration.

Loads .env variables into a typed config object.  Every variable is
optional; a malformed value raises ``ValueError`` naming the variable.
"""

import os
from dataclasses import dataclass

from dotenv import load_dotenv

from stockfactor.analysis.factors import FactorConfig
from stockfactor.analysis.scoring import DEFAULT_SCORE_CONFIG, ScoreConfig, build_score_config
from stockfactor.forecast.simulation import PathStrategy, build_strategy


@dataclass(frozen=True)
class EngineConfig:
    """Typed configuration loaded from environment variables."""

    log_level: str = "INFO"
    volume_spike_multiplier: float = 1.5
    break_min_pct_change: float = 1.0
    strong_move_pct_change: float = 4.0
    score_threshold: float = DEFAULT_SCORE_CONFIG.threshold
    history_years: int = 3
    max_simulation_days: int = 365
    simulation_strategy: str = "deterministic"  # or "monte_carlo"
    simulation_paths: int = 1000
    simulation_seed: int | None = None

    def factor_config(self) -> FactorConfig:
        return FactorConfig(
            volume_spike_multiplier=self.volume_spike_multiplier,
            break_min_pct_change=self.break_min_pct_change,
            strong_move_pct_change=self.strong_move_pct_change,
        )

    def score_config(self) -> ScoreConfig:
        return build_score_config(threshold=self.score_threshold)

    def strategy(self, monte_carlo: bool = False) -> PathStrategy:
        """Path strategy from settings; *monte_carlo* forces the ensemble."""
        name = "monte_carlo" if monte_carlo else self.simulation_strategy
        return build_strategy(name, paths=self.simulation_paths, seed=self.simulation_seed)


def _env(name: str, default: str, cast):
    raw = os.environ.get(name, "").strip()
    if not raw:
        raw = default
    try:
        return cast(raw)
    except ValueError:
        raise ValueError(f"Invalid value for {name}: {raw!r}") from None


def load_config(env_path: str | None = None) -> EngineConfig:
    """Load configuration from environment variables (and *env_path*)."""
    load_dotenv(dotenv_path=env_path)

    seed = os.environ.get("SIMULATION_SEED", "").strip()
    config = EngineConfig(
        log_level=os.environ.get("LOG_LEVEL", "INFO").upper(),
        volume_spike_multiplier=_env("VOLUME_SPIKE_MULTIPLIER", "1.5", float),
        break_min_pct_change=_env("BREAK_MIN_PCT_CHANGE", "1.0", float),
        strong_move_pct_change=_env("STRONG_MOVE_PCT_CHANGE", "4.0", float),
        score_threshold=_env("SCORE_THRESHOLD", "0.45", float),
        history_years=_env("HISTORY_YEARS", "3", int),
        max_simulation_days=_env("MAX_SIMULATION_DAYS", "365", int),
        simulation_strategy=os.environ.get("SIMULATION_STRATEGY", "deterministic").strip(),
        simulation_paths=_env("SIMULATION_PATHS", "1000", int),
        simulation_seed=_env("SIMULATION_SEED", seed, int) if seed else None,
    )

    if config.history_years < 1:
        raise ValueError(f"HISTORY_YEARS must be at least 1, got {config.history_years}")
    if config.max_simulation_days < 1:
        raise ValueError(
            f"MAX_SIMULATION_DAYS must be at least 1, got {config.max_simulation_days}"
        )
    return config
