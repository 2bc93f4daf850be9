"""Quote-only providers (LiveCoinWatch, CoinMarketCap) exposed as candle sources."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Sequence

import httpx
from loguru import logger
from pydantic import SecretStr

from marketdata.domain import TIMEFRAME_MS, Candle, DataSource, Timeframe
from marketdata.errors import SourceFetchError
from marketdata.services.sources.base import with_retries
from marketdata.symbols import parse_symbol
from marketdata.utils.time import Clock, now_ms, to_epoch_ms


@dataclass(frozen=True, slots=True)
class Quote:
    """Latest price data for one asset as reported by a listing endpoint."""

    code: str
    price: float
    volume_24h: float | None = None
    market_cap: float | None = None
    change_24h: float | None = None
    change_7d: float | None = None
    change_30d: float | None = None
    last_updated: int | None = None


def _optional_float(value: Any) -> float | None:
    if value is None:
        return None
    return float(value)


def _should_retry(exc: Exception) -> bool:
    if isinstance(exc, httpx.TransportError):
        return True
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status == 429 or status >= 500
    return False


class QuoteSource:
    """Base class for listing providers that only publish the latest quote.

    Subclasses implement :meth:`_request_listing` and :meth:`_parse_listing`.
    As a candle source the provider yields a single bar anchored at the start
    of the current timeframe bucket.
    """

    name: DataSource
    listing_limit: int = 100

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_key: SecretStr | str | None,
        *,
        base_url: str,
        clock: Clock = now_ms,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
    ) -> None:
        self._client = client
        if isinstance(api_key, SecretStr):
            api_key = api_key.get_secret_value()
        self._api_key = api_key or None
        self._base_url = base_url.rstrip("/")
        self._clock = clock
        self._max_attempts = max_attempts
        self._backoff_seconds = backoff_seconds

    @property
    def configured(self) -> bool:
        return self._api_key is not None

    async def _request_listing(self, limit: int) -> httpx.Response:
        raise NotImplementedError

    def _parse_listing(self, payload: Any) -> list[Quote]:
        raise NotImplementedError

    async def list_quotes(self, limit: int | None = None) -> list[Quote]:
        """Fetch and parse the provider's ranked listing."""

        if not self.configured:
            raise RuntimeError(f"{self.name.value} API key is not configured")
        limit = limit or self.listing_limit

        async def _call() -> httpx.Response:
            response = await self._request_listing(limit)
            response.raise_for_status()
            return response

        response = await with_retries(
            _call,
            description=f"{self.name.value}:listing",
            max_attempts=self._max_attempts,
            base_delay=self._backoff_seconds,
            should_retry=_should_retry,
        )
        quotes = self._parse_listing(response.json())
        logger.debug("quote_listing_fetched", source=self.name.value, quotes=len(quotes))
        return quotes

    async def fetch_candles(self, symbol: str, timeframe: Timeframe, limit: int) -> Sequence[Candle]:
        try:
            info = parse_symbol(symbol)
        except ValueError as exc:
            raise SourceFetchError(self.name, symbol, timeframe, str(exc)) from exc
        if not self.configured:
            raise SourceFetchError(self.name, symbol, timeframe, "API key not configured")

        try:
            quotes = await self.list_quotes()
        except httpx.HTTPStatusError as exc:
            raise SourceFetchError(
                self.name, symbol, timeframe, f"HTTP {exc.response.status_code}"
            ) from exc
        except httpx.HTTPError as exc:
            raise SourceFetchError(self.name, symbol, timeframe, f"{type(exc).__name__}: {exc}") from exc
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            raise SourceFetchError(self.name, symbol, timeframe, f"malformed payload: {exc}") from exc

        quote = next((q for q in quotes if q.code.upper() == info.base), None)
        if quote is None:
            raise SourceFetchError(self.name, symbol, timeframe, f"{info.base} not present in listing")

        interval = TIMEFRAME_MS[timeframe]
        now = self._clock()
        price = quote.price * info.multiplier
        return [
            Candle(
                timestamp=now - now % interval,
                open=price,
                high=price,
                low=price,
                close=price,
                volume=quote.volume_24h or 0.0,
            )
        ]

    async def aclose(self) -> None:
        # The HTTP client is owned by the container.
        return None


class LiveCoinWatchSource(QuoteSource):
    name = DataSource.LIVECOINWATCH

    async def _request_listing(self, limit: int) -> httpx.Response:
        return await self._client.post(
            f"{self._base_url}/coins/list",
            headers={"content-type": "application/json", "x-api-key": self._api_key or ""},
            json={
                "currency": "USD",
                "sort": "rank",
                "order": "ascending",
                "offset": 0,
                "limit": limit,
                "meta": False,
            },
        )

    def _parse_listing(self, payload: Any) -> list[Quote]:
        if not isinstance(payload, list):
            raise ValueError("expected a JSON array of coins")
        quotes: list[Quote] = []
        for coin in payload:
            if coin.get("rate") is None:
                continue
            delta = coin.get("delta") or {}
            quotes.append(
                Quote(
                    code=str(coin["code"]).upper(),
                    price=float(coin["rate"]),
                    volume_24h=_optional_float(coin.get("volume")),
                    market_cap=_optional_float(coin.get("cap")),
                    change_24h=_optional_float(delta.get("day")),
                    change_7d=_optional_float(delta.get("week")),
                    change_30d=_optional_float(delta.get("month")),
                )
            )
        return quotes


class CoinMarketCapSource(QuoteSource):
    name = DataSource.COINMARKETCAP
    listing_limit = 200

    async def _request_listing(self, limit: int) -> httpx.Response:
        return await self._client.get(
            f"{self._base_url}/v1/cryptocurrency/listings/latest",
            headers={"X-CMC_PRO_API_KEY": self._api_key or "", "Accept": "application/json"},
            params={"limit": limit, "convert": "USD"},
        )

    def _parse_listing(self, payload: Any) -> list[Quote]:
        status = payload.get("status") or {}
        if status.get("error_code"):
            raise ValueError(status.get("error_message") or f"error_code {status['error_code']}")
        quotes: list[Quote] = []
        for entry in payload["data"]:
            usd = (entry.get("quote") or {}).get("USD") or {}
            if usd.get("price") is None:
                continue
            last_updated = usd.get("last_updated")
            quotes.append(
                Quote(
                    code=str(entry["symbol"]).upper(),
                    price=float(usd["price"]),
                    volume_24h=_optional_float(usd.get("volume_24h")),
                    market_cap=_optional_float(usd.get("market_cap")),
                    change_24h=_optional_float(usd.get("percent_change_24h")),
                    change_7d=_optional_float(usd.get("percent_change_7d")),
                    change_30d=_optional_float(usd.get("percent_change_30d")),
                    last_updated=to_epoch_ms(last_updated) if last_updated else None,
                )
            )
        return quotes


__all__ = ["CoinMarketCapSource", "LiveCoinWatchSource", "Quote", "QuoteSource"]
