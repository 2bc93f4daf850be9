from __future__ import annotations

import os
from pathlib import Path
from typing import AsyncIterator, Iterator, cast

import pytest
from httpx import ASGITransport, AsyncClient
from loguru import logger
from sqlalchemy import delete
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.types import ASGIApp

# Configure environment for tests before importing the app
os.environ.setdefault("DB_URL", "sqlite+aiosqlite:///./test_marketdata.db")
os.environ.setdefault("ENV", "local")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("CORS_ALLOWED_ORIGINS", '["http://testserver"]')
os.environ.setdefault("LOGURU_LEVEL", "ERROR")
logger.remove()

from marketdata.core.config import Settings  # noqa: E402
from marketdata.core.database import dispose_engine, get_session_factory, init_models  # noqa: E402
from marketdata.core.metrics import reset_metrics  # noqa: E402
from marketdata.domain import DataSource, Timeframe  # noqa: E402
from marketdata.main import app  # noqa: E402
from marketdata.models import Base  # noqa: E402
from marketdata.services.container import MarketDataContainer, build_container, configure_container  # noqa: E402
from tests.utils import FakeClock, FakeSource  # noqa: E402


@pytest.fixture(scope="session", autouse=True)
def database_file() -> Iterator[None]:
    db_path = Path("test_marketdata.db")
    if db_path.exists():
        db_path.unlink()
    yield
    if db_path.exists():
        db_path.unlink()


@pytest.fixture(autouse=True)
def fresh_metrics() -> None:
    reset_metrics()


@pytest.fixture()
async def db() -> AsyncIterator[None]:
    await init_models()
    yield
    session_factory = get_session_factory()
    async with session_factory() as session:
        for table in reversed(Base.metadata.sorted_tables):
            await session.execute(delete(table))
        await session.commit()
    await dispose_engine()


@pytest.fixture()
async def session(db: None) -> AsyncIterator[AsyncSession]:
    session_factory = get_session_factory()
    async with session_factory() as session:
        yield session


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def test_settings() -> Settings:
    return Settings(
        tracked_symbols=["BTCUSDT", "1000PEPEUSDT"],
        sync_timeframes=[Timeframe.H1, Timeframe.M15],
        default_candle_limit=100,
        source_backoff_seconds=0,
    )


@pytest.fixture()
def fake_sources() -> dict[DataSource, FakeSource]:
    return {source: FakeSource(source) for source in DataSource}


@pytest.fixture()
def container(
    test_settings: Settings, fake_sources: dict[DataSource, FakeSource], clock: FakeClock
) -> Iterator[MarketDataContainer]:
    built = build_container(test_settings, sources=fake_sources, clock=clock)
    configure_container(built)
    yield built
    configure_container(None)


@pytest.fixture()
async def client(db: None, container: MarketDataContainer) -> AsyncIterator[AsyncClient]:
    app.state.container = container
    transport = ASGITransport(app=cast(ASGIApp, app))  # type: ignore[arg-type]
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client
    app.state.container = None
