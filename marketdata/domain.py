"""Core market data types shared by the cache, fetcher and orchestrator."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Mapping, NamedTuple

SECOND_MS = 1000
MINUTE_MS = 60 * SECOND_MS
HOUR_MS = 60 * MINUTE_MS
DAY_MS = 24 * HOUR_MS


class Timeframe(str, Enum):
    """Candle aggregation intervals supported by the dashboard."""

    M3 = "3m"
    M5 = "5m"
    M15 = "15m"
    H1 = "1H"
    H4 = "4H"
    D1 = "1D"

    @classmethod
    def parse(cls, value: "Timeframe | str") -> "Timeframe":
        """Resolve a timeframe regardless of case or surrounding whitespace."""

        if isinstance(value, cls):
            return value
        normalised = str(value).strip().lower()
        for member in cls:
            if member.value.lower() == normalised:
                return member
        raise ValueError(f"Unsupported timeframe: {value!r}")

    @classmethod
    def try_parse(cls, value: object) -> "Timeframe | None":
        try:
            return cls.parse(value)  # type: ignore[arg-type]
        except ValueError:
            return None

    def __str__(self) -> str:
        return self.value


class DataSource(str, Enum):
    """Upstream providers able to produce candles."""

    BINANCE = "binance"
    BYBIT = "bybit"
    LIVECOINWATCH = "livecoinwatch"
    COINMARKETCAP = "coinmarketcap"

    def __str__(self) -> str:
        return self.value


ALL_TIMEFRAMES: tuple[Timeframe, ...] = (
    Timeframe.D1,
    Timeframe.H4,
    Timeframe.H1,
    Timeframe.M15,
    Timeframe.M5,
    Timeframe.M3,
)

DEFAULT_SOURCE_PRECEDENCE: tuple[DataSource, ...] = (
    DataSource.BINANCE,
    DataSource.BYBIT,
    DataSource.LIVECOINWATCH,
    DataSource.COINMARKETCAP,
)

TIMEFRAME_MS: Mapping[Timeframe, int] = {
    Timeframe.M3: 3 * MINUTE_MS,
    Timeframe.M5: 5 * MINUTE_MS,
    Timeframe.M15: 15 * MINUTE_MS,
    Timeframe.H1: HOUR_MS,
    Timeframe.H4: 4 * HOUR_MS,
    Timeframe.D1: DAY_MS,
}

# How long a cached snapshot may be re-used without going upstream.
CACHE_TTL_MS: Mapping[Timeframe, int] = {
    Timeframe.M3: 10 * SECOND_MS,
    Timeframe.M5: 10 * SECOND_MS,
    Timeframe.M15: 30 * SECOND_MS,
    Timeframe.H1: MINUTE_MS,
    Timeframe.H4: 5 * MINUTE_MS,
    Timeframe.D1: 15 * MINUTE_MS,
}

# How old a snapshot may be before a viewer should see it flagged as stale.
FRESHNESS_THRESHOLD_MS: Mapping[Timeframe, int] = {
    Timeframe.M3: 30 * SECOND_MS,
    Timeframe.M5: 30 * SECOND_MS,
    Timeframe.M15: MINUTE_MS,
    Timeframe.H1: 2 * MINUTE_MS,
    Timeframe.H4: 10 * MINUTE_MS,
    Timeframe.D1: 30 * MINUTE_MS,
}
DEFAULT_FRESHNESS_THRESHOLD_MS = MINUTE_MS

AUTO_SYNC_INTERVAL_MS: Mapping[Timeframe, int] = {
    Timeframe.M3: 5 * SECOND_MS,
    Timeframe.M5: 10 * SECOND_MS,
    Timeframe.M15: 30 * SECOND_MS,
    Timeframe.H1: MINUTE_MS,
    Timeframe.H4: 5 * MINUTE_MS,
    Timeframe.D1: 15 * MINUTE_MS,
}


def _check_ttl_within_freshness() -> None:
    for timeframe in Timeframe:
        ttl = CACHE_TTL_MS[timeframe]
        threshold = FRESHNESS_THRESHOLD_MS[timeframe]
        if ttl > threshold:
            raise AssertionError(
                f"Cache TTL for {timeframe} ({ttl}ms) exceeds its freshness threshold ({threshold}ms)"
            )


_check_ttl_within_freshness()


@dataclass(frozen=True, slots=True)
class Candle:
    """Single OHLCV bar keyed by its opening time in epoch milliseconds."""

    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True, slots=True)
class MarketSnapshot:
    """Immutable bundle of candles for one symbol/timeframe at a point in time."""

    symbol: str
    timeframe: Timeframe
    candles: tuple[Candle, ...]
    last_updated: int
    source: DataSource

    @property
    def key(self) -> "CacheKey":
        return CacheKey.of(self.symbol, self.timeframe)

    @property
    def latest(self) -> Candle | None:
        return self.candles[-1] if self.candles else None


class CacheKey(NamedTuple):
    """Composite cache address for one symbol/timeframe pair."""

    symbol: str
    timeframe: Timeframe

    @classmethod
    def of(cls, symbol: str, timeframe: Timeframe | str) -> "CacheKey":
        return cls(symbol.strip().upper(), Timeframe.parse(timeframe))

    def __str__(self) -> str:
        return f"{self.symbol}:{self.timeframe.value}"


__all__ = [
    "ALL_TIMEFRAMES",
    "AUTO_SYNC_INTERVAL_MS",
    "CACHE_TTL_MS",
    "Candle",
    "CacheKey",
    "DataSource",
    "DEFAULT_FRESHNESS_THRESHOLD_MS",
    "DEFAULT_SOURCE_PRECEDENCE",
    "FRESHNESS_THRESHOLD_MS",
    "MarketSnapshot",
    "TIMEFRAME_MS",
    "Timeframe",
]
