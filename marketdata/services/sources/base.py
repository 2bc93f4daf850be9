"""Shared contract and helpers for upstream candle sources."""
from __future__ import annotations

import asyncio
import random
from collections.abc import Awaitable, Callable, Iterable, Sequence
from typing import Any, Protocol, TypeVar, runtime_checkable

from loguru import logger

from marketdata.domain import Candle, DataSource, Timeframe
from marketdata.utils.time import to_epoch_ms

T = TypeVar("T")


@runtime_checkable
class CandleSource(Protocol):
    """Protocol describing an upstream candle provider.

    Implementations parse their provider's schema into :class:`Candle` values
    and raise :class:`~marketdata.errors.SourceFetchError` on any failure.
    """

    name: DataSource

    async def fetch_candles(self, symbol: str, timeframe: Timeframe, limit: int) -> Sequence[Candle]:
        """Return candles for ``symbol`` on ``timeframe``, at most ``limit`` bars."""

    async def aclose(self) -> None:
        """Release network resources held by the source."""


def _coerce_float(value: Any) -> float:
    if value is None or value == "":
        raise ValueError("missing numeric field")
    return float(value)


def candle_from_row(row: Sequence[Any] | dict[str, Any]) -> Candle:
    """Build a candle from either a ``[ts, o, h, l, c, v, ...]`` row or a mapping."""

    if isinstance(row, dict):
        timestamp = row.get("timestamp", row.get("time", row.get("start")))
        if timestamp is None:
            raise ValueError("candle row has no timestamp")
        return Candle(
            timestamp=to_epoch_ms(timestamp),
            open=_coerce_float(row.get("open")),
            high=_coerce_float(row.get("high")),
            low=_coerce_float(row.get("low")),
            close=_coerce_float(row.get("close")),
            volume=_coerce_float(row.get("volume", 0.0)),
        )
    if len(row) < 5:
        raise ValueError(f"candle row too short: {row!r}")
    volume = row[5] if len(row) > 5 and row[5] is not None else 0.0
    return Candle(
        timestamp=to_epoch_ms(row[0]),
        open=_coerce_float(row[1]),
        high=_coerce_float(row[2]),
        low=_coerce_float(row[3]),
        close=_coerce_float(row[4]),
        volume=_coerce_float(volume),
    )


def normalize_candles(candles: Iterable[Candle], limit: int | None = None) -> tuple[Candle, ...]:
    """Return bars in chronological order with strictly increasing timestamps.

    When two bars share a timestamp the later one in the input wins, matching
    how exchanges revise the still-open bar.
    """

    by_timestamp: dict[int, Candle] = {}
    for candle in candles:
        by_timestamp[int(candle.timestamp)] = candle
    ordered = tuple(by_timestamp[ts] for ts in sorted(by_timestamp))
    if limit is not None and len(ordered) > limit:
        ordered = ordered[-limit:]
    return ordered


def aggregate_candles(candles: Sequence[Candle], interval_ms: int) -> list[Candle]:
    """Resample finer bars into ``interval_ms`` buckets aligned to the epoch."""

    buckets: dict[int, list[Candle]] = {}
    for candle in normalize_candles(candles):
        bucket = candle.timestamp - candle.timestamp % interval_ms
        buckets.setdefault(bucket, []).append(candle)

    aggregated = [
        Candle(
            timestamp=bucket,
            open=chunk[0].open,
            high=max(c.high for c in chunk),
            low=min(c.low for c in chunk),
            close=chunk[-1].close,
            volume=sum(c.volume for c in chunk),
        )
        for bucket, chunk in sorted(buckets.items())
    ]
    logger.debug("candles_aggregated", source_bars=len(candles), bars=len(aggregated), interval_ms=interval_ms)
    return aggregated


def backoff_delay(base_delay: float, attempt: int, factor: float = 2.0, cap: float = 20.0) -> float:
    if base_delay <= 0:
        return 0.0
    jitter = random.uniform(0, base_delay)
    return min(cap, base_delay * factor ** (attempt - 1) + jitter)


async def with_retries(
    func: Callable[[], Awaitable[T]],
    *,
    description: str,
    max_attempts: int,
    base_delay: float,
    should_retry: Callable[[Exception], bool],
) -> T:
    """Await ``func`` with exponential backoff on retryable failures."""

    for attempt in range(1, max_attempts + 1):
        try:
            return await func()
        except Exception as exc:
            if not should_retry(exc) or attempt == max_attempts:
                raise
            sleep_for = backoff_delay(base_delay, attempt)
            logger.warning(
                "source_retry",
                description=description,
                attempt=attempt,
                max_attempts=max_attempts,
                sleep_seconds=round(sleep_for, 2),
                error=str(exc),
            )
            await asyncio.sleep(sleep_for)
    raise RuntimeError(f"{description}: retry loop exhausted")


__all__ = [
    "CandleSource",
    "aggregate_candles",
    "backoff_delay",
    "candle_from_row",
    "normalize_candles",
    "with_retries",
]
