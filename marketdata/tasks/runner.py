"""Named sync and analytics tasks runnable on demand or on a schedule."""
from __future__ import annotations

import asyncio
import datetime as dt
import time
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from loguru import logger
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from marketdata.core.metrics import record_task_run
from marketdata.domain import ALL_TIMEFRAMES, TIMEFRAME_MS, DataSource, MarketSnapshot, Timeframe
from marketdata.errors import UnknownTaskError
from marketdata.models.market import MarketCandle, MarketPrice
from marketdata.services.fetcher import CandleFetcher
from marketdata.services.sources.quotes import Quote, QuoteSource
from marketdata.services.sync_status import mark_error, mark_success, mark_syncing
from marketdata.symbols import CANONICAL_SYMBOLS, parse_symbol
from marketdata.tasks.analytics import AnalyticsHook, get_analytics_hook
from marketdata.utils.time import ms_to_datetime, utcnow

SYNC_PRICES = "sync-prices"
FETCH_CANDLES = "fetch-candles"
CALCULATE_INDICATORS = "calculate-indicators"
DETECT_PATTERNS = "detect-patterns"
GENERATE_SIGNALS = "generate-signals"

KNOWN_TASKS: tuple[str, ...] = (
    SYNC_PRICES,
    FETCH_CANDLES,
    CALCULATE_INDICATORS,
    DETECT_PATTERNS,
    GENERATE_SIGNALS,
)

PRICE_SYNC_INTERVAL = dt.timedelta(minutes=5)
CANDLE_PREFERRED_SOURCE = DataSource.BYBIT


class TaskStatus(str, Enum):
    SUCCESS = "success"
    PARTIAL = "partial"
    ERROR = "error"
    SKIPPED = "skipped"


@dataclass(slots=True)
class TaskResult:
    task: str
    status: TaskStatus
    duration_ms: float
    details: dict[str, Any] = field(default_factory=dict)
    error: str | None = None


@dataclass(slots=True)
class TaskRunReport:
    requested: str | None
    started_at: dt.datetime
    finished_at: dt.datetime | None = None
    results: list[TaskResult] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return all(result.status is not TaskStatus.ERROR for result in self.results)


async def upsert_candles(
    session: AsyncSession, snapshot: MarketSnapshot, *, source: str | None = None
) -> int:
    """Insert or update every bar of ``snapshot``; returns the number of rows written."""

    source = source or snapshot.source.value
    timestamps = [candle.timestamp for candle in snapshot.candles]
    stmt = select(MarketCandle).where(
        MarketCandle.symbol == snapshot.symbol,
        MarketCandle.timeframe == snapshot.timeframe.value,
        MarketCandle.source == source,
        MarketCandle.timestamp.in_(timestamps),
    )
    existing = {row.timestamp: row for row in (await session.execute(stmt)).scalars().all()}
    for candle in snapshot.candles:
        row = existing.get(candle.timestamp)
        if row is None:
            session.add(
                MarketCandle(
                    symbol=snapshot.symbol,
                    timeframe=snapshot.timeframe.value,
                    timestamp=candle.timestamp,
                    source=source,
                    open=candle.open,
                    high=candle.high,
                    low=candle.low,
                    close=candle.close,
                    volume=candle.volume,
                )
            )
            continue
        row.open = candle.open
        row.high = candle.high
        row.low = candle.low
        row.close = candle.close
        row.volume = candle.volume
    await session.flush()
    return len(snapshot.candles)


async def upsert_price(
    session: AsyncSession, *, symbol: str, source: str, quote: Quote, multiplier: int = 1
) -> MarketPrice:
    stmt = select(MarketPrice).where(MarketPrice.symbol == symbol, MarketPrice.source == source)
    record = (await session.execute(stmt)).scalar_one_or_none()
    if record is None:
        record = MarketPrice(symbol=symbol, source=source, price=0.0)
        session.add(record)
    record.price = quote.price * multiplier
    record.volume_24h = quote.volume_24h
    record.market_cap = quote.market_cap
    record.change_24h = quote.change_24h
    record.change_7d = quote.change_7d
    record.change_30d = quote.change_30d
    record.last_updated = ms_to_datetime(quote.last_updated) if quote.last_updated else utcnow()
    await session.flush()
    return record


class TaskRunner:
    """Runs one named task, or every known task in order when none is given."""

    def __init__(
        self,
        fetcher: CandleFetcher,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        price_source: QuoteSource | None,
        symbols: Sequence[str] = CANONICAL_SYMBOLS,
        timeframes: Sequence[Timeframe] = ALL_TIMEFRAMES,
        candle_limit: int = 500,
        analytics_hook: AnalyticsHook | None = None,
    ) -> None:
        self._fetcher = fetcher
        self._session_factory = session_factory
        self._price_source = price_source
        self._symbols = tuple(symbol.upper() for symbol in symbols)
        self._timeframes = tuple(dict.fromkeys(timeframes))
        self._candle_limit = candle_limit
        self._analytics_hook = analytics_hook
        self._handlers: dict[str, Callable[[], Awaitable[TaskResult]]] = {
            SYNC_PRICES: self.sync_prices,
            FETCH_CANDLES: self.fetch_candles,
            CALCULATE_INDICATORS: lambda: self._run_analytics(CALCULATE_INDICATORS),
            DETECT_PATTERNS: lambda: self._run_analytics(DETECT_PATTERNS),
            GENERATE_SIGNALS: lambda: self._run_analytics(GENERATE_SIGNALS),
        }

    @property
    def analytics_hook(self) -> AnalyticsHook:
        return self._analytics_hook or get_analytics_hook()

    async def run(self, task: str | None = None) -> TaskRunReport:
        if task is not None and task not in self._handlers:
            raise UnknownTaskError(task, KNOWN_TASKS)
        selected = [task] if task is not None else list(KNOWN_TASKS)
        report = TaskRunReport(requested=task, started_at=utcnow())
        logger.info("task_run_started", tasks=selected)

        for name in selected:
            started = time.perf_counter()
            try:
                result = await self._handlers[name]()
            except Exception as exc:
                logger.exception("task_failed", task=name)
                result = TaskResult(
                    task=name,
                    status=TaskStatus.ERROR,
                    duration_ms=0.0,
                    error=str(exc) or exc.__class__.__name__,
                )
            result.duration_ms = round((time.perf_counter() - started) * 1000, 2)
            record_task_run(name, result.status.value)
            report.results.append(result)

        report.finished_at = utcnow()
        logger.info(
            "task_run_finished",
            tasks=selected,
            statuses={result.task: result.status.value for result in report.results},
        )
        return report

    async def sync_prices(self) -> TaskResult:
        """Refresh latest quotes for tracked symbols from the listing provider."""

        source = self._price_source
        source_name = source.name.value if source is not None else DataSource.LIVECOINWATCH.value
        async with self._session_factory() as session:
            for symbol in self._symbols:
                await mark_syncing(session, data_type="prices", symbol=symbol, timeframe=None, source=source_name)
            await session.commit()

        try:
            if source is None or not source.configured:
                raise RuntimeError(f"{source_name} API key not configured")
            quotes = await source.list_quotes()
        except Exception as exc:
            message = str(exc) or exc.__class__.__name__
            async with self._session_factory() as session:
                for symbol in self._symbols:
                    await mark_error(
                        session,
                        data_type="prices",
                        symbol=symbol,
                        timeframe=None,
                        source=source_name,
                        error_message=message,
                    )
                await session.commit()
            raise

        # Listings are rank-ordered; a reused ticker further down is a different coin.
        by_code: dict[str, Quote] = {}
        for listed in quotes:
            by_code.setdefault(listed.code, listed)
        updated: list[str] = []
        missing: list[str] = []
        async with self._session_factory() as session:
            for symbol in self._symbols:
                info = parse_symbol(symbol)
                quote = by_code.get(info.base)
                if quote is None:
                    missing.append(symbol)
                    await mark_error(
                        session,
                        data_type="prices",
                        symbol=symbol,
                        timeframe=None,
                        source=source_name,
                        error_message=f"{info.base} not present in listing",
                    )
                    continue
                await upsert_price(
                    session, symbol=symbol, source=source_name, quote=quote, multiplier=info.multiplier
                )
                await mark_success(
                    session,
                    data_type="prices",
                    symbol=symbol,
                    timeframe=None,
                    source=source_name,
                    next_sync_in=PRICE_SYNC_INTERVAL,
                    metadata={"coins_updated": len(quotes)},
                )
                updated.append(symbol)
            await session.commit()

        status = TaskStatus.SUCCESS if not missing else TaskStatus.PARTIAL if updated else TaskStatus.ERROR
        return TaskResult(
            task=SYNC_PRICES,
            status=status,
            duration_ms=0.0,
            details={"updated": updated, "missing": missing},
            error="no tracked symbols present in listing" if status is TaskStatus.ERROR else None,
        )

    async def fetch_candles(self) -> TaskResult:
        """Force-refresh candles for every tracked symbol and timeframe and persist them."""

        preferred = CANDLE_PREFERRED_SOURCE.value
        succeeded = 0
        failed: dict[str, str] = {}

        for symbol in self._symbols:
            async with self._session_factory() as session:
                for timeframe in self._timeframes:
                    await mark_syncing(
                        session, data_type="candles", symbol=symbol, timeframe=timeframe.value, source=preferred
                    )
                await session.commit()

            results = await asyncio.gather(
                *(
                    self._fetcher.get_candles(
                        symbol,
                        timeframe,
                        preferred_source=CANDLE_PREFERRED_SOURCE,
                        use_cache=False,
                        limit=self._candle_limit,
                    )
                    for timeframe in self._timeframes
                ),
                return_exceptions=True,
            )

            async with self._session_factory() as session:
                for timeframe, result in zip(self._timeframes, results):
                    if isinstance(result, BaseException):
                        if isinstance(result, asyncio.CancelledError):
                            raise result
                        failed[f"{symbol}:{timeframe.value}"] = str(result)
                        await mark_error(
                            session,
                            data_type="candles",
                            symbol=symbol,
                            timeframe=timeframe.value,
                            source=preferred,
                            error_message=str(result),
                        )
                        continue
                    written = await upsert_candles(session, result)
                    await mark_success(
                        session,
                        data_type="candles",
                        symbol=symbol,
                        timeframe=timeframe.value,
                        source=preferred,
                        next_sync_in=dt.timedelta(milliseconds=TIMEFRAME_MS[timeframe]),
                        metadata={"candles_updated": written, "served_by": result.source.value},
                    )
                    succeeded += 1
                await session.commit()

        if not failed:
            status = TaskStatus.SUCCESS
        elif succeeded:
            status = TaskStatus.PARTIAL
        else:
            status = TaskStatus.ERROR
        return TaskResult(
            task=FETCH_CANDLES,
            status=status,
            duration_ms=0.0,
            details={"targets": succeeded + len(failed), "succeeded": succeeded, "failed": failed},
            error="all candle targets failed" if status is TaskStatus.ERROR else None,
        )

    async def _run_analytics(self, task: str) -> TaskResult:
        summary = await self.analytics_hook.run(task, symbols=self._symbols, timeframes=self._timeframes)
        if summary is None:
            return TaskResult(
                task=task,
                status=TaskStatus.SKIPPED,
                duration_ms=0.0,
                details={"reason": "no analytics backend configured"},
            )
        return TaskResult(task=task, status=TaskStatus.SUCCESS, duration_ms=0.0, details=summary)


__all__ = [
    "KNOWN_TASKS",
    "TaskResult",
    "TaskRunReport",
    "TaskRunner",
    "TaskStatus",
    "upsert_candles",
    "upsert_price",
]
