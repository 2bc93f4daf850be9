"""Pluggable analytics backend for the indicator, pattern and signal tasks."""
from __future__ import annotations

from typing import Any, Protocol, Sequence

from loguru import logger

from marketdata.domain import Timeframe


class AnalyticsHook(Protocol):
    """Protocol describing an analytics backend.

    ``run`` returns a JSON-serialisable summary, or ``None`` when the task was
    not performed.
    """

    async def run(
        self, task: str, *, symbols: Sequence[str], timeframes: Sequence[Timeframe]
    ) -> dict[str, Any] | None:
        """Execute ``task`` over the given symbols and timeframes."""


class DefaultAnalyticsHook:
    """Default hook that performs no analytics and reports the task as skipped."""

    async def run(
        self, task: str, *, symbols: Sequence[str], timeframes: Sequence[Timeframe]
    ) -> dict[str, Any] | None:
        logger.warning(
            "analytics_hook_default",
            task=task,
            message="No analytics backend configured; skipping task.",
        )
        return None


_analytics_hook: AnalyticsHook = DefaultAnalyticsHook()


def configure_analytics_hook(hook: AnalyticsHook) -> None:
    """Override the default analytics hook implementation."""

    global _analytics_hook
    _analytics_hook = hook


def get_analytics_hook() -> AnalyticsHook:
    return _analytics_hook


__all__ = ["AnalyticsHook", "DefaultAnalyticsHook", "configure_analytics_hook", "get_analytics_hook"]
