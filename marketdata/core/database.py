"""Async engine, sessions and schema bootstrap for the market data tables."""
from __future__ import annotations

from collections.abc import AsyncGenerator
from functools import lru_cache
from typing import Any

from loguru import logger
from sqlalchemy import text
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from marketdata.core.config import get_settings
from marketdata.models import Base


def _engine_options(url: str) -> dict[str, Any]:
    if url.startswith("sqlite"):
        # Scheduled jobs and request handlers share one file; wait for the writer lock.
        return {"connect_args": {"timeout": 30}}
    return {"pool_pre_ping": True, "pool_size": 5, "max_overflow": 10}


@lru_cache
def get_engine() -> AsyncEngine:
    url = get_settings().db_url
    engine = create_async_engine(url, echo=False, **_engine_options(url))
    logger.bind(backend=engine.url.get_backend_name()).info("database_engine_created")
    return engine


@lru_cache
def get_session_factory() -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(get_engine(), expire_on_commit=False)


async def get_db_session() -> AsyncGenerator[AsyncSession, None]:
    """Yield a request-scoped session; handlers commit their own writes."""

    async with get_session_factory()() as session:
        yield session


async def init_models() -> None:
    """Create the sync-status, candle and price tables if they do not exist."""

    async with get_engine().begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    logger.bind(tables=sorted(Base.metadata.tables)).debug("database_schema_ready")


async def dispose_engine() -> None:
    """Close pooled connections; the engine reconnects lazily on next use."""

    await get_engine().dispose()


async def check_connection() -> None:
    async with get_engine().connect() as connection:
        await connection.execute(text("SELECT 1"))


__all__ = [
    "check_connection",
    "dispose_engine",
    "get_db_session",
    "get_engine",
    "get_session_factory",
    "init_models",
]
