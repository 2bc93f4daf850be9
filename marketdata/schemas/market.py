"""Pydantic schemas for market data APIs."""
from __future__ import annotations

from typing import Dict, List

from pydantic import BaseModel, Field

from marketdata.domain import DataSource, MarketSnapshot, Timeframe
from marketdata.services.cache import CacheStats
from marketdata.services.orchestrator import FreshnessVerdict, TimeframeLoad


class CandleOut(BaseModel):
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float


class SnapshotOut(BaseModel):
    symbol: str
    timeframe: Timeframe
    source: DataSource
    last_updated: int
    candles: List[CandleOut]

    @classmethod
    def from_snapshot(cls, snapshot: MarketSnapshot) -> "SnapshotOut":
        return cls(
            symbol=snapshot.symbol,
            timeframe=snapshot.timeframe,
            source=snapshot.source,
            last_updated=snapshot.last_updated,
            candles=[
                CandleOut(
                    timestamp=c.timestamp, open=c.open, high=c.high, low=c.low, close=c.close, volume=c.volume
                )
                for c in snapshot.candles
            ],
        )


class FreshnessOut(BaseModel):
    is_fresh: bool
    age_ms: int
    threshold_ms: int

    @classmethod
    def from_verdict(cls, verdict: FreshnessVerdict) -> "FreshnessOut":
        return cls(is_fresh=verdict.is_fresh, age_ms=verdict.age_ms, threshold_ms=verdict.threshold_ms)


class TimeframesResponse(BaseModel):
    symbol: str
    snapshots: Dict[str, SnapshotOut]
    failures: Dict[str, str]
    freshness: Dict[str, FreshnessOut]

    @classmethod
    def from_load(cls, load: TimeframeLoad, verdicts: dict[Timeframe, FreshnessVerdict]) -> "TimeframesResponse":
        return cls(
            symbol=load.symbol,
            snapshots={tf.value: SnapshotOut.from_snapshot(snap) for tf, snap in load.snapshots.items()},
            failures={tf.value: str(exc) for tf, exc in load.failures.items()},
            freshness={tf.value: FreshnessOut.from_verdict(verdict) for tf, verdict in verdicts.items()},
        )


class RefreshRequest(BaseModel):
    timeframes: List[str] = Field(default_factory=lambda: [tf.value for tf in Timeframe], min_length=1)


class CacheEntryOut(BaseModel):
    symbol: str
    timeframe: Timeframe
    expires_in_ms: int


class CacheStatsResponse(BaseModel):
    size: int
    entries: List[CacheEntryOut]

    @classmethod
    def from_stats(cls, stats: CacheStats) -> "CacheStatsResponse":
        return cls(
            size=stats.size,
            entries=[
                CacheEntryOut(
                    symbol=entry.key.symbol,
                    timeframe=entry.key.timeframe,
                    expires_in_ms=entry.expires_in_ms,
                )
                for entry in stats.entries
            ],
        )


class CacheClearResponse(BaseModel):
    cleared: int


class SymbolOut(BaseModel):
    symbol: str
    display_name: str


__all__ = [
    "CacheClearResponse",
    "CacheEntryOut",
    "CacheStatsResponse",
    "CandleOut",
    "FreshnessOut",
    "RefreshRequest",
    "SnapshotOut",
    "SymbolOut",
    "TimeframesResponse",
]
