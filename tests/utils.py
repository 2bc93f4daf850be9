from __future__ import annotations

import asyncio
from typing import Sequence

from marketdata.domain import MINUTE_MS, Candle, DataSource, MarketSnapshot, Timeframe

START_MS = 1_700_000_000_000


class FakeClock:
    """Millisecond clock that only moves when told to."""

    def __init__(self, start: int = START_MS) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> None:
        self.now += ms


def make_candles(
    count: int, *, start: int = START_MS, interval: int = MINUTE_MS, price: float = 100.0
) -> list[Candle]:
    return [
        Candle(
            timestamp=start + index * interval,
            open=price + index,
            high=price + index + 1,
            low=price + index - 1,
            close=price + index + 0.5,
            volume=10.0 + index,
        )
        for index in range(count)
    ]


def make_snapshot(
    symbol: str = "BTCUSDT",
    timeframe: Timeframe = Timeframe.H1,
    *,
    last_updated: int = START_MS,
    source: DataSource = DataSource.BINANCE,
    candles: Sequence[Candle] | None = None,
) -> MarketSnapshot:
    return MarketSnapshot(
        symbol=symbol,
        timeframe=timeframe,
        candles=tuple(candles if candles is not None else make_candles(3)),
        last_updated=last_updated,
        source=source,
    )


class FakeSource:
    """Candle source returning canned bars and recording every call."""

    def __init__(
        self,
        name: DataSource,
        candles: Sequence[Candle] | None = None,
        *,
        error: Exception | None = None,
        fail_timeframes: Sequence[Timeframe] = (),
        delay: float = 0.0,
    ) -> None:
        self.name = name
        self.candles = list(candles if candles is not None else make_candles(5))
        self.error = error
        self.fail_timeframes = set(fail_timeframes)
        self.delay = delay
        self.calls: list[tuple[str, Timeframe, int]] = []
        self.closed = False

    async def fetch_candles(self, symbol: str, timeframe: Timeframe, limit: int) -> list[Candle]:
        self.calls.append((symbol, timeframe, limit))
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        if timeframe in self.fail_timeframes:
            raise RuntimeError(f"{self.name.value} has no {timeframe.value} data")
        return list(self.candles)

    async def aclose(self) -> None:
        self.closed = True


class GatedSource(FakeSource):
    """Blocks every fetch until :attr:`release` is set."""

    def __init__(self, name: DataSource, candles: Sequence[Candle] | None = None) -> None:
        super().__init__(name, candles)
        self.release = asyncio.Event()
        self.started = 0

    async def fetch_candles(self, symbol: str, timeframe: Timeframe, limit: int) -> list[Candle]:
        self.calls.append((symbol, timeframe, limit))
        self.started += 1
        await self.release.wait()
        return list(self.candles)
