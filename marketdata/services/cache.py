"""In-process snapshot cache with per-timeframe expiry."""
from __future__ import annotations

from dataclasses import dataclass, field

from loguru import logger

from marketdata.core.metrics import record_cache_lookup
from marketdata.domain import CACHE_TTL_MS, CacheKey, MarketSnapshot, Timeframe
from marketdata.utils.time import Clock, now_ms


@dataclass(frozen=True, slots=True)
class CacheEntry:
    snapshot: MarketSnapshot
    expires_at: int


@dataclass(frozen=True, slots=True)
class CacheEntryStats:
    key: CacheKey
    expires_in_ms: int


@dataclass(frozen=True, slots=True)
class CacheStats:
    size: int
    entries: list[CacheEntryStats] = field(default_factory=list)


class SnapshotCache:
    """Maps ``(symbol, timeframe)`` to the most recently fetched snapshot.

    Entries expire lazily: a read past ``expires_at`` evicts the entry and
    reports a miss. :meth:`clear_expired` can be scheduled to bound memory but
    is not needed for correctness. Nothing here awaits, so callers on the event
    loop never interleave inside a read or write.
    """

    def __init__(self, clock: Clock = now_ms) -> None:
        self._clock = clock
        self._entries: dict[CacheKey, CacheEntry] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def put(self, snapshot: MarketSnapshot, ttl_ms: int | None = None) -> None:
        """Store ``snapshot``, replacing any existing entry for its key."""

        if ttl_ms is None:
            ttl_ms = CACHE_TTL_MS[snapshot.timeframe]
        elif ttl_ms < 0:
            raise ValueError("ttl_ms must be non-negative")
        key = snapshot.key
        expires_at = self._clock() + ttl_ms
        self._entries[key] = CacheEntry(snapshot=snapshot, expires_at=expires_at)
        logger.debug("snapshot_cache_store", key=str(key), ttl_ms=ttl_ms, expires_at=expires_at)

    def get(self, symbol: str, timeframe: Timeframe | str) -> MarketSnapshot | None:
        key = CacheKey.of(symbol, timeframe)
        entry = self._entries.get(key)
        if entry is None:
            record_cache_lookup(key.timeframe.value, "miss")
            logger.debug("snapshot_cache_miss", key=str(key))
            return None
        if self._clock() > entry.expires_at:
            del self._entries[key]
            record_cache_lookup(key.timeframe.value, "expired")
            logger.debug("snapshot_cache_expired", key=str(key))
            return None
        record_cache_lookup(key.timeframe.value, "hit")
        logger.debug("snapshot_cache_hit", key=str(key))
        return entry.snapshot

    def clear(self) -> int:
        cleared = len(self._entries)
        self._entries.clear()
        logger.info("snapshot_cache_cleared", entries=cleared)
        return cleared

    def clear_expired(self) -> int:
        """Evict every entry whose expiry has passed and return how many were removed."""

        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now > entry.expires_at]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.info("snapshot_cache_swept", entries=len(expired))
        return len(expired)

    def stats(self) -> CacheStats:
        now = self._clock()
        entries = [
            CacheEntryStats(key=key, expires_in_ms=max(0, entry.expires_at - now))
            for key, entry in self._entries.items()
        ]
        return CacheStats(size=len(self._entries), entries=entries)


__all__ = ["CacheEntry", "CacheEntryStats", "CacheStats", "SnapshotCache"]
