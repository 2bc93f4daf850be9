"""Background job implementations for APScheduler."""
from __future__ import annotations

from loguru import logger

from marketdata.core.database import get_session_factory
from marketdata.core.health import record_scheduler_tick
from marketdata.domain import DataSource
from marketdata.services.container import MarketDataContainer, get_container
from marketdata.services.sources.quotes import QuoteSource
from marketdata.tasks.runner import TaskRunner


def build_task_runner(container: MarketDataContainer | None = None) -> TaskRunner:
    """Create a runner bound to the configured container and database."""

    container = container or get_container()
    settings = container.settings
    price_source = container.sources.get(DataSource.LIVECOINWATCH)
    return TaskRunner(
        container.fetcher,
        get_session_factory(),
        price_source=price_source if isinstance(price_source, QuoteSource) else None,
        symbols=settings.tracked_symbols,
        timeframes=settings.sync_timeframes,
        candle_limit=settings.default_candle_limit,
    )


async def run_task_job(task: str) -> None:
    report = await build_task_runner().run(task)
    for result in report.results:
        logger.bind(task=result.task, status=result.status.value).info("scheduled_task_completed")
    await record_scheduler_tick(task, ok=report.success)


async def sweep_cache_job() -> None:
    evicted = get_container().cache.clear_expired()
    logger.debug("cache_sweep_completed", evicted=evicted)
    await record_scheduler_tick("cache-sweep")


__all__ = ["build_task_runner", "run_task_job", "sweep_cache_job"]
