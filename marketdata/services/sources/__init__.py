"""Upstream candle source adapters."""
from __future__ import annotations

import httpx

from marketdata.core.config import Settings
from marketdata.domain import DataSource
from marketdata.services.sources.base import CandleSource, aggregate_candles, normalize_candles
from marketdata.services.sources.exchange import ExchangeCandleSource
from marketdata.services.sources.quotes import CoinMarketCapSource, LiveCoinWatchSource, Quote, QuoteSource
from marketdata.utils.time import Clock, now_ms


def build_default_sources(
    settings: Settings, http_client: httpx.AsyncClient, *, clock: Clock = now_ms
) -> dict[DataSource, CandleSource]:
    """Instantiate one adapter per provider from application settings."""

    retry = {"max_attempts": settings.source_max_retries, "backoff_seconds": settings.source_backoff_seconds}
    return {
        DataSource.BINANCE: ExchangeCandleSource.binance(timeout_seconds=settings.http_timeout_seconds, **retry),
        DataSource.BYBIT: ExchangeCandleSource.bybit(timeout_seconds=settings.http_timeout_seconds, **retry),
        DataSource.LIVECOINWATCH: LiveCoinWatchSource(
            http_client,
            settings.livecoinwatch_api_key,
            base_url=settings.livecoinwatch_base_url,
            clock=clock,
            **retry,
        ),
        DataSource.COINMARKETCAP: CoinMarketCapSource(
            http_client,
            settings.coinmarketcap_api_key,
            base_url=settings.coinmarketcap_base_url,
            clock=clock,
            **retry,
        ),
    }


__all__ = [
    "CandleSource",
    "CoinMarketCapSource",
    "ExchangeCandleSource",
    "LiveCoinWatchSource",
    "Quote",
    "QuoteSource",
    "aggregate_candles",
    "build_default_sources",
    "normalize_candles",
]
