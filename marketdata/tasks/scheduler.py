"""Scheduler orchestration for recurring jobs."""
from __future__ import annotations

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from marketdata.core.config import get_settings
from marketdata.tasks import jobs
from marketdata.tasks.runner import (
    CALCULATE_INDICATORS,
    DETECT_PATTERNS,
    FETCH_CANDLES,
    GENERATE_SIGNALS,
    SYNC_PRICES,
)

# Task name -> interval in minutes.
TASK_INTERVALS_MINUTES: dict[str, int] = {
    SYNC_PRICES: 1,
    FETCH_CANDLES: 3,
    CALCULATE_INDICATORS: 5,
    DETECT_PATTERNS: 15,
    GENERATE_SIGNALS: 60,
}

_scheduler = AsyncIOScheduler(timezone="UTC")
_configured = False


def configure_scheduler() -> None:
    global _configured
    settings = get_settings()
    if not settings.scheduler_enabled or _configured:
        return

    logger.info(
        "scheduler_configure",
        tasks=TASK_INTERVALS_MINUTES,
        cache_sweep_seconds=settings.cache_sweep_interval_seconds,
    )

    for task, minutes in TASK_INTERVALS_MINUTES.items():
        _scheduler.add_job(
            jobs.run_task_job,
            IntervalTrigger(minutes=minutes),
            args=[task],
            id=task,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=60,
        )

    _scheduler.add_job(
        jobs.sweep_cache_job,
        IntervalTrigger(seconds=settings.cache_sweep_interval_seconds),
        id="cache-sweep",
        max_instances=1,
        coalesce=True,
        misfire_grace_time=30,
    )

    _configured = True


def start_scheduler() -> None:
    settings = get_settings()
    if not settings.scheduler_enabled:
        logger.info("scheduler_disabled")
        return

    configure_scheduler()
    if not _scheduler.running:
        _scheduler.start()
        logger.bind(jobs=[job.id for job in _scheduler.get_jobs()]).info("scheduler_started")


async def shutdown_scheduler() -> None:
    if _scheduler.running:
        _scheduler.shutdown(wait=False)
        logger.info("scheduler_stopped")


def get_scheduler() -> AsyncIOScheduler:
    return _scheduler


__all__ = ["TASK_INTERVALS_MINUTES", "configure_scheduler", "get_scheduler", "shutdown_scheduler", "start_scheduler"]
