"""Exception hierarchy for market data retrieval."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Sequence

from marketdata.domain import DataSource, Timeframe


class MarketDataError(Exception):
    """Base class for all market data failures."""

    code = "market_data_error"


class SourceFetchError(MarketDataError):
    """A single upstream source failed to produce candles for one attempt."""

    code = "source_fetch_failed"

    def __init__(self, source: DataSource | str, symbol: str, timeframe: Timeframe | str, reason: str) -> None:
        self.source = source
        self.symbol = symbol
        self.timeframe = timeframe
        self.reason = reason
        super().__init__(f"{source} failed for {symbol} {timeframe}: {reason}")


@dataclass(frozen=True, slots=True)
class SourceAttempt:
    source: DataSource
    error: str


class NoDataAvailable(MarketDataError):
    """Every candidate source failed for one symbol/timeframe."""

    code = "no_data_available"

    def __init__(self, symbol: str, timeframe: Timeframe, attempts: Sequence[SourceAttempt]) -> None:
        self.symbol = symbol
        self.timeframe = timeframe
        self.attempts = tuple(attempts)
        tried = ", ".join(f"{attempt.source.value}: {attempt.error}" for attempt in self.attempts) or "none"
        super().__init__(f"No candles available for {symbol} {timeframe.value} (attempted {tried})")

    def to_dict(self) -> dict[str, object]:
        return {
            "symbol": self.symbol,
            "timeframe": self.timeframe.value,
            "attempts": [{"source": a.source.value, "error": a.error} for a in self.attempts],
        }


class AllTimeframesFailed(MarketDataError):
    """Every timeframe in a batch request failed to resolve."""

    code = "all_timeframes_failed"

    def __init__(self, symbol: str, failures: Mapping[Timeframe, BaseException]) -> None:
        self.symbol = symbol
        self.failures = dict(failures)
        summary = "; ".join(f"{tf.value}: {exc}" for tf, exc in self.failures.items())
        super().__init__(f"Failed to load all timeframes for {symbol}: {summary}")

    def to_dict(self) -> dict[str, object]:
        return {
            "symbol": self.symbol,
            "failures": {tf.value: str(exc) for tf, exc in self.failures.items()},
        }


class UnknownTaskError(MarketDataError):
    """Raised when the task trigger receives an unrecognised task name."""

    code = "unknown_task"

    def __init__(self, task: str, known: Sequence[str]) -> None:
        self.task = task
        self.known = tuple(known)
        super().__init__(f"Unknown task {task!r}; expected one of {', '.join(self.known)}")


__all__ = [
    "AllTimeframesFailed",
    "MarketDataError",
    "NoDataAvailable",
    "SourceAttempt",
    "SourceFetchError",
    "UnknownTaskError",
]
