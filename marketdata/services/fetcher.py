"""Cache-fronted candle retrieval with ranked source fallback."""
from __future__ import annotations

import asyncio
import time
from collections.abc import Iterable, Mapping
from typing import NamedTuple

from loguru import logger

from marketdata.core.metrics import record_source_fetch
from marketdata.domain import DEFAULT_SOURCE_PRECEDENCE, CacheKey, DataSource, MarketSnapshot, Timeframe
from marketdata.errors import NoDataAvailable, SourceAttempt
from marketdata.services.cache import SnapshotCache
from marketdata.services.sources.base import CandleSource, normalize_candles
from marketdata.utils.time import Clock, now_ms

DEFAULT_CANDLE_LIMIT = 500


class _FlightKey(NamedTuple):
    key: CacheKey
    preferred_source: DataSource | None
    limit: int


class CandleFetcher:
    """Resolve a snapshot for one symbol/timeframe.

    Reads go to the cache first unless bypassed. On a miss the configured
    sources are tried in order (a preferred source first when given) and the
    first non-empty result is normalised, written to the cache and returned.
    """

    def __init__(
        self,
        cache: SnapshotCache,
        sources: Mapping[DataSource, CandleSource],
        *,
        precedence: Iterable[DataSource] = DEFAULT_SOURCE_PRECEDENCE,
        clock: Clock = now_ms,
        single_flight: bool = False,
    ) -> None:
        self._cache = cache
        self._sources = dict(sources)
        self._precedence = tuple(dict.fromkeys(DataSource(source) for source in precedence))
        self._clock = clock
        self._single_flight = single_flight
        self._inflight: dict[_FlightKey, asyncio.Task[MarketSnapshot]] = {}

    @property
    def cache(self) -> SnapshotCache:
        return self._cache

    @property
    def sources(self) -> Mapping[DataSource, CandleSource]:
        return self._sources

    def candidates(self, preferred_source: DataSource | str | None = None) -> list[DataSource]:
        """Return the ordered, de-duplicated list of sources to try."""

        ordered: list[DataSource] = []
        if preferred_source is not None:
            ordered.append(DataSource(preferred_source))
        ordered.extend(source for source in self._precedence if source not in ordered)
        return ordered

    async def get_candles(
        self,
        symbol: str,
        timeframe: Timeframe | str,
        *,
        preferred_source: DataSource | str | None = None,
        use_cache: bool = True,
        limit: int = DEFAULT_CANDLE_LIMIT,
    ) -> MarketSnapshot:
        if limit < 1:
            raise ValueError("limit must be at least 1")
        key = CacheKey.of(symbol, timeframe)

        if use_cache:
            cached = self._cache.get(key.symbol, key.timeframe)
            if cached is not None:
                return cached

        if not self._single_flight:
            return await self._fetch_upstream(key, preferred_source, limit)

        # Only identical requests share a task; a different preference or limit fetches on its own.
        flight = _FlightKey(key, DataSource(preferred_source) if preferred_source is not None else None, limit)
        task = self._inflight.get(flight)
        if task is None:
            task = asyncio.create_task(self._fetch_upstream(key, preferred_source, limit))
            self._inflight[flight] = task
            task.add_done_callback(lambda done, flight=flight: self._forget(flight, done))
        else:
            logger.debug("candle_fetch_joined", key=str(key), preferred_source=preferred_source, limit=limit)
        return await asyncio.shield(task)

    def _forget(self, flight: _FlightKey, task: asyncio.Task[MarketSnapshot]) -> None:
        if self._inflight.get(flight) is task:
            del self._inflight[flight]

    async def _fetch_upstream(
        self, key: CacheKey, preferred_source: DataSource | str | None, limit: int
    ) -> MarketSnapshot:
        log = logger.bind(symbol=key.symbol, timeframe=key.timeframe.value)
        attempts: list[SourceAttempt] = []

        for source_name in self.candidates(preferred_source):
            source = self._sources.get(source_name)
            if source is None:
                attempts.append(SourceAttempt(source=source_name, error="no adapter configured"))
                log.warning("candle_source_unavailable", source=source_name.value)
                continue

            started = time.perf_counter()
            try:
                raw = await source.fetch_candles(key.symbol, key.timeframe, limit)
                candles = normalize_candles(raw, limit)
                if not candles:
                    raise ValueError("empty result")
            except Exception as exc:
                record_source_fetch(source_name.value, "error", time.perf_counter() - started)
                attempts.append(SourceAttempt(source=source_name, error=str(exc) or type(exc).__name__))
                log.warning("candle_source_failed", source=source_name.value, error=str(exc))
                continue

            record_source_fetch(source_name.value, "success", time.perf_counter() - started)
            snapshot = MarketSnapshot(
                symbol=key.symbol,
                timeframe=key.timeframe,
                candles=candles,
                last_updated=self._clock(),
                source=source_name,
            )
            self._cache.put(snapshot)
            log.info("candle_source_succeeded", source=source_name.value, candles=len(candles))
            return snapshot

        log.error("candle_sources_exhausted", attempts=len(attempts))
        raise NoDataAvailable(key.symbol, key.timeframe, attempts)


__all__ = ["CandleFetcher", "DEFAULT_CANDLE_LIMIT"]
