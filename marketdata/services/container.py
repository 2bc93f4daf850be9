"""Process-wide wiring of the cache, sources, fetcher and orchestrator."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

import httpx
from loguru import logger

from marketdata.core.config import Settings
from marketdata.domain import DataSource
from marketdata.services.cache import SnapshotCache
from marketdata.services.fetcher import CandleFetcher
from marketdata.services.orchestrator import TimeframeOrchestrator
from marketdata.services.sources import CandleSource, build_default_sources
from marketdata.utils.time import Clock, now_ms


@dataclass(slots=True)
class MarketDataContainer:
    settings: Settings
    cache: SnapshotCache
    sources: Mapping[DataSource, CandleSource]
    fetcher: CandleFetcher
    orchestrator: TimeframeOrchestrator
    http_client: httpx.AsyncClient | None = None

    async def aclose(self) -> None:
        for source in self.sources.values():
            try:
                await source.aclose()
            except Exception:
                logger.exception("source_close_failed", source=source.name.value)
        if self.http_client is not None:
            await self.http_client.aclose()


def build_container(
    settings: Settings,
    *,
    sources: Mapping[DataSource, CandleSource] | None = None,
    clock: Clock = now_ms,
) -> MarketDataContainer:
    """Build the service graph; ``sources`` replaces the network adapters when given."""

    http_client: httpx.AsyncClient | None = None
    if sources is None:
        http_client = httpx.AsyncClient(timeout=settings.http_timeout_seconds)
        sources = build_default_sources(settings, http_client, clock=clock)

    cache = SnapshotCache(clock=clock)
    fetcher = CandleFetcher(
        cache,
        sources,
        precedence=settings.source_precedence,
        clock=clock,
        single_flight=settings.single_flight,
    )
    orchestrator = TimeframeOrchestrator(fetcher, clock=clock, default_limit=settings.default_candle_limit)
    logger.info(
        "market_data_container_built",
        sources=[source.value for source in sources],
        precedence=[source.value for source in settings.source_precedence],
        single_flight=settings.single_flight,
    )
    return MarketDataContainer(
        settings=settings,
        cache=cache,
        sources=sources,
        fetcher=fetcher,
        orchestrator=orchestrator,
        http_client=http_client,
    )


_container: MarketDataContainer | None = None


def configure_container(container: MarketDataContainer | None) -> None:
    """Install the container used by scheduled jobs and request handlers."""

    global _container
    _container = container


def get_container() -> MarketDataContainer:
    if _container is None:
        raise RuntimeError("Market data container has not been configured")
    return _container


__all__ = ["MarketDataContainer", "build_container", "configure_container", "get_container"]
