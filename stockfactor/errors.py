"""Error kinds raised or reported by the analysis engine.

Per-date problems never abort a run: they are collected as
``SkippedRecord`` entries next to the partial result.  Only configuration
errors are raised, and only at configuration-build time.
"""

from dataclasses import dataclass


class InvalidConfiguration(ValueError):
    """Weights, thresholds or other run parameters are unusable."""


class InvalidRecord(ValueError):
    """A raw input record has an unparseable date or price."""

    def __init__(self, date: str, reason: str) -> None:
        super().__init__(f"{date or '<missing>'}: {reason}")
        self.date = date
        self.reason = reason


@dataclass(frozen=True)
class SkippedRecord:
    """A record (or date) left out of a result, with the reason why."""

    date: str
    reason: str

    @classmethod
    def from_error(cls, error: InvalidRecord) -> "SkippedRecord":
        return cls(date=error.date, reason=error.reason)
