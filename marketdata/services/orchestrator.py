"""Multi-timeframe loading, freshness verdicts and periodic auto-sync."""
from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable, Hashable, Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any, TypeVar

from loguru import logger

from marketdata.domain import (
    ALL_TIMEFRAMES,
    AUTO_SYNC_INTERVAL_MS,
    DEFAULT_FRESHNESS_THRESHOLD_MS,
    FRESHNESS_THRESHOLD_MS,
    DataSource,
    MarketSnapshot,
    Timeframe,
)
from marketdata.errors import AllTimeframesFailed
from marketdata.services.fetcher import DEFAULT_CANDLE_LIMIT, CandleFetcher
from marketdata.utils.time import Clock, now_ms

K = TypeVar("K", bound=Hashable)

UpdateCallback = Callable[[MarketSnapshot], Awaitable[None] | None]
ErrorCallback = Callable[[BaseException, str, Timeframe], Awaitable[None] | None]


@dataclass(frozen=True, slots=True)
class FreshnessVerdict:
    is_fresh: bool
    age_ms: int
    threshold_ms: int


@dataclass(slots=True)
class TimeframeLoad:
    """Outcome of a fan-out across timeframes for one symbol."""

    symbol: str
    snapshots: dict[Timeframe, MarketSnapshot] = field(default_factory=dict)
    failures: dict[Timeframe, BaseException] = field(default_factory=dict)


class AutoSyncHandle:
    """Owns the background refresh tasks started by :meth:`TimeframeOrchestrator.start_auto_sync`."""

    def __init__(self, symbol: str, tasks: dict[Timeframe, asyncio.Task[None]]) -> None:
        self.symbol = symbol
        self._tasks = tasks

    @property
    def timeframes(self) -> tuple[Timeframe, ...]:
        return tuple(self._tasks)

    @property
    def running(self) -> bool:
        return any(not task.done() for task in self._tasks.values())

    async def stop(self) -> None:
        for task in self._tasks.values():
            task.cancel()
        await asyncio.gather(*self._tasks.values(), return_exceptions=True)
        logger.info("auto_sync_stopped", symbol=self.symbol)


def _dedupe_timeframes(timeframes: Iterable[Timeframe | str]) -> list[Timeframe]:
    resolved = list(dict.fromkeys(Timeframe.parse(tf) for tf in timeframes))
    if not resolved:
        raise ValueError("At least one timeframe is required")
    return resolved


async def _invoke(callback: Callable[..., Any] | None, *args: Any) -> None:
    if callback is None:
        return
    try:
        result = callback(*args)
        if inspect.isawaitable(result):
            await result
    except Exception:
        logger.exception("auto_sync_callback_failed")


class TimeframeOrchestrator:
    """Coordinates concurrent per-timeframe fetches for a symbol."""

    def __init__(
        self,
        fetcher: CandleFetcher,
        *,
        clock: Clock = now_ms,
        auto_sync_intervals: Mapping[Timeframe, int] | None = None,
        default_limit: int = DEFAULT_CANDLE_LIMIT,
    ) -> None:
        self._fetcher = fetcher
        self._clock = clock
        self._auto_sync_intervals = dict(auto_sync_intervals or AUTO_SYNC_INTERVAL_MS)
        self._default_limit = default_limit

    @property
    def fetcher(self) -> CandleFetcher:
        return self._fetcher

    @property
    def default_limit(self) -> int:
        return self._default_limit

    async def load_timeframes(
        self,
        symbol: str,
        timeframes: Iterable[Timeframe | str] = ALL_TIMEFRAMES,
        *,
        use_cache: bool = True,
        limit: int | None = None,
    ) -> TimeframeLoad:
        """Fetch every requested timeframe concurrently and collect per-timeframe outcomes.

        Raises :class:`AllTimeframesFailed` only when no timeframe produced a
        snapshot; partial failures are reported in ``failures``.
        """

        requested = _dedupe_timeframes(timeframes)
        symbol = symbol.strip().upper()
        limit = limit or self._default_limit
        results = await asyncio.gather(
            *(
                self._fetcher.get_candles(symbol, timeframe, use_cache=use_cache, limit=limit)
                for timeframe in requested
            ),
            return_exceptions=True,
        )

        load = TimeframeLoad(symbol=symbol)
        for timeframe, result in zip(requested, results):
            if isinstance(result, MarketSnapshot):
                load.snapshots[timeframe] = result
            elif isinstance(result, asyncio.CancelledError):
                raise result
            else:
                load.failures[timeframe] = result
                logger.warning(
                    "timeframe_load_failed", symbol=symbol, timeframe=timeframe.value, error=str(result)
                )

        if not load.snapshots:
            raise AllTimeframesFailed(symbol, load.failures)
        logger.info(
            "timeframes_loaded",
            symbol=symbol,
            loaded=[tf.value for tf in load.snapshots],
            failed=[tf.value for tf in load.failures],
            use_cache=use_cache,
        )
        return load

    async def load_all_timeframes(
        self, symbol: str, timeframes: Iterable[Timeframe | str] = ALL_TIMEFRAMES
    ) -> dict[Timeframe, MarketSnapshot]:
        load = await self.load_timeframes(symbol, timeframes)
        return load.snapshots

    async def refresh_timeframes(
        self, symbol: str, timeframes: Iterable[Timeframe | str] = ALL_TIMEFRAMES
    ) -> dict[Timeframe, MarketSnapshot]:
        """Like :meth:`load_all_timeframes` but always bypasses cache reads."""

        load = await self.load_timeframes(symbol, timeframes, use_cache=False)
        return load.snapshots

    async def load_single_timeframe(
        self,
        symbol: str,
        timeframe: Timeframe | str,
        preferred_source: DataSource | str | None = None,
    ) -> MarketSnapshot:
        return await self._fetcher.get_candles(
            symbol, timeframe, preferred_source=preferred_source, limit=self._default_limit
        )

    def check_freshness(self, snapshots: Mapping[K, MarketSnapshot]) -> dict[K, FreshnessVerdict]:
        now = self._clock()
        verdicts: dict[K, FreshnessVerdict] = {}
        for key, snapshot in snapshots.items():
            threshold = FRESHNESS_THRESHOLD_MS.get(snapshot.timeframe, DEFAULT_FRESHNESS_THRESHOLD_MS)
            age = now - snapshot.last_updated
            verdicts[key] = FreshnessVerdict(is_fresh=age < threshold, age_ms=age, threshold_ms=threshold)
        return verdicts

    def start_auto_sync(
        self,
        symbol: str,
        timeframes: Iterable[Timeframe | str],
        on_update: UpdateCallback | None = None,
        on_error: ErrorCallback | None = None,
    ) -> AutoSyncHandle:
        """Spawn one refresh loop per timeframe; must be called from a running loop."""

        requested = _dedupe_timeframes(timeframes)
        symbol = symbol.strip().upper()
        tasks = {
            timeframe: asyncio.create_task(
                self._auto_sync_loop(symbol, timeframe, on_update, on_error),
                name=f"auto-sync:{symbol}:{timeframe.value}",
            )
            for timeframe in requested
        }
        logger.info("auto_sync_started", symbol=symbol, timeframes=[tf.value for tf in requested])
        return AutoSyncHandle(symbol, tasks)

    async def _auto_sync_loop(
        self,
        symbol: str,
        timeframe: Timeframe,
        on_update: UpdateCallback | None,
        on_error: ErrorCallback | None,
    ) -> None:
        interval_seconds = self._auto_sync_intervals.get(timeframe, AUTO_SYNC_INTERVAL_MS[timeframe]) / 1000
        while True:
            try:
                snapshot = await self._fetcher.get_candles(
                    symbol, timeframe, use_cache=False, limit=self._default_limit
                )
            except Exception as exc:
                logger.warning("auto_sync_failed", symbol=symbol, timeframe=timeframe.value, error=str(exc))
                await _invoke(on_error, exc, symbol, timeframe)
            else:
                logger.debug("auto_sync_updated", symbol=symbol, timeframe=timeframe.value)
                await _invoke(on_update, snapshot)
            await asyncio.sleep(interval_seconds)


__all__ = ["AutoSyncHandle", "FreshnessVerdict", "TimeframeLoad", "TimeframeOrchestrator"]
