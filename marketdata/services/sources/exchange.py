"""Exchange-backed candle sources wrapping ccxt."""
from __future__ import annotations

import asyncio
from typing import Any, Literal, Sequence

import ccxt
from ccxt.base.errors import (
    DDoSProtection,
    ExchangeNotAvailable,
    NetworkError,
    RateLimitExceeded,
    RequestTimeout,
)
from loguru import logger

from marketdata.domain import TIMEFRAME_MS, Candle, DataSource, Timeframe
from marketdata.errors import SourceFetchError
from marketdata.services.sources.base import aggregate_candles, candle_from_row, with_retries
from marketdata.symbols import parse_symbol

MarketType = Literal["spot", "linear"]

# ccxt's unified timeframe strings are lower case throughout.
_CCXT_TIMEFRAMES: dict[Timeframe, str] = {
    Timeframe.M3: "3m",
    Timeframe.M5: "5m",
    Timeframe.M15: "15m",
    Timeframe.H1: "1h",
    Timeframe.H4: "4h",
    Timeframe.D1: "1d",
}

_RETRYABLE = (
    NetworkError,
    DDoSProtection,
    RateLimitExceeded,
    RequestTimeout,
    ExchangeNotAvailable,
)


def _should_retry(exc: Exception) -> bool:
    return isinstance(exc, _RETRYABLE)


class ExchangeCandleSource:
    """Fetch OHLCV bars from a ccxt exchange.

    ccxt's synchronous client is used and each blocking call is pushed onto a
    worker thread. ``spot`` markets unwrap contract-style symbols such as
    ``1000PEPEUSDT`` into the underlying asset and rescale prices; ``linear``
    markets trade the contract directly.
    """

    def __init__(
        self,
        name: DataSource,
        exchange: Any,
        *,
        market_type: MarketType = "spot",
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
    ) -> None:
        self.name = name
        self._exchange = exchange
        self._market_type = market_type
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds

    @classmethod
    def binance(cls, *, timeout_seconds: float = 10.0, **kwargs: Any) -> "ExchangeCandleSource":
        exchange = ccxt.binance(
            {
                "enableRateLimit": True,
                "timeout": int(timeout_seconds * 1000),
                "options": {"defaultType": "spot"},
            }
        )
        return cls(DataSource.BINANCE, exchange, market_type="spot", **kwargs)

    @classmethod
    def bybit(cls, *, timeout_seconds: float = 10.0, **kwargs: Any) -> "ExchangeCandleSource":
        exchange = ccxt.bybit(
            {
                "enableRateLimit": True,
                "timeout": int(timeout_seconds * 1000),
                "options": {"defaultType": "swap"},
            }
        )
        return cls(DataSource.BYBIT, exchange, market_type="linear", **kwargs)

    def market_symbol(self, symbol: str) -> tuple[str, int]:
        """Return the ccxt market symbol and the price multiplier to apply."""

        info = parse_symbol(symbol)
        if self._market_type == "linear":
            base = info.symbol[: -len(info.quote)]
            return f"{base}/{info.quote}:{info.quote}", 1
        return f"{info.base}/{info.quote}", info.multiplier

    def _supports(self, ccxt_timeframe: str) -> bool:
        timeframes = getattr(self._exchange, "timeframes", None)
        if not timeframes:
            return True
        return ccxt_timeframe in timeframes

    async def fetch_candles(self, symbol: str, timeframe: Timeframe, limit: int) -> Sequence[Candle]:
        try:
            market, multiplier = self.market_symbol(symbol)
        except ValueError as exc:
            raise SourceFetchError(self.name, symbol, timeframe, str(exc)) from exc

        ccxt_timeframe = _CCXT_TIMEFRAMES[timeframe]
        resample = False
        request_limit = limit
        if not self._supports(ccxt_timeframe):
            if timeframe is not Timeframe.M3 or not self._supports("1m"):
                raise SourceFetchError(self.name, symbol, timeframe, f"timeframe {ccxt_timeframe} not offered")
            ccxt_timeframe = "1m"
            request_limit = min(limit * 3, 1000)
            resample = True

        try:
            rows = await with_retries(
                lambda: asyncio.to_thread(
                    self._exchange.fetch_ohlcv, market, ccxt_timeframe, None, request_limit
                ),
                description=f"{self.name.value}:fetch_ohlcv:{market}:{ccxt_timeframe}",
                max_attempts=self._max_attempts,
                base_delay=self._backoff_seconds,
                should_retry=_should_retry,
            )
        except ccxt.BaseError as exc:
            logger.warning(
                "exchange_fetch_failed",
                source=self.name.value,
                market=market,
                timeframe=ccxt_timeframe,
                error=str(exc),
            )
            raise SourceFetchError(self.name, symbol, timeframe, f"{type(exc).__name__}: {exc}") from exc

        try:
            candles = [candle_from_row(row) for row in rows or []]
        except (TypeError, ValueError) as exc:
            raise SourceFetchError(self.name, symbol, timeframe, f"malformed candle row: {exc}") from exc
        if resample:
            candles = aggregate_candles(candles, TIMEFRAME_MS[Timeframe.M3])
        if multiplier != 1:
            candles = [
                Candle(
                    timestamp=c.timestamp,
                    open=c.open * multiplier,
                    high=c.high * multiplier,
                    low=c.low * multiplier,
                    close=c.close * multiplier,
                    volume=c.volume / multiplier,
                )
                for c in candles
            ]
        return candles

    async def aclose(self) -> None:
        close = getattr(self._exchange, "close", None)
        if callable(close):
            await asyncio.to_thread(close)


__all__ = ["ExchangeCandleSource", "MarketType"]
