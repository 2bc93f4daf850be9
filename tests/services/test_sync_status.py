from __future__ import annotations

import datetime as dt

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from marketdata.models.sync_status import SyncState
from marketdata.services.sync_status import (
    error_backoff,
    get_sync_status,
    list_sync_statuses,
    mark_error,
    mark_success,
    mark_syncing,
)

TARGET = {"data_type": "candles", "symbol": "BTCUSDT", "timeframe": "1H", "source": "bybit"}


def _aware(value: dt.datetime) -> dt.datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=dt.timezone.utc)


@pytest.mark.parametrize(
    ("retry_count", "expected"),
    [
        (1, dt.timedelta(seconds=60)),
        (2, dt.timedelta(seconds=120)),
        (5, dt.timedelta(seconds=960)),
        (6, dt.timedelta(minutes=30)),
        (20, dt.timedelta(minutes=30)),
    ],
)
def test_error_backoff_doubles_and_caps(retry_count: int, expected: dt.timedelta) -> None:
    assert error_backoff(retry_count) == expected


async def test_sync_lifecycle(session: AsyncSession) -> None:
    record = await mark_syncing(session, **TARGET)
    await session.commit()
    assert record.status is SyncState.SYNCING
    assert record.retry_count == 0

    record = await mark_error(session, **TARGET, error_message="rate limited")
    await session.commit()
    assert record.status is SyncState.ERROR
    assert record.retry_count == 1
    assert record.error_message == "rate limited"
    gap = _aware(record.next_sync_at) - _aware(record.last_sync_at)
    assert gap == dt.timedelta(seconds=60)

    record = await mark_error(session, **TARGET, error_message="rate limited")
    assert record.retry_count == 2

    record = await mark_success(
        session, **TARGET, next_sync_in=dt.timedelta(hours=1), metadata={"candles_updated": 200}
    )
    await session.commit()
    assert record.status is SyncState.SUCCESS
    assert record.retry_count == 0
    assert record.error_message is None
    assert record.details == {"candles_updated": 200}
    assert _aware(record.next_sync_at) - _aware(record.last_sync_at) == dt.timedelta(hours=1)

    rows = await list_sync_statuses(session)
    assert len(rows) == 1


async def test_targets_are_unique_per_timeframe_and_source(session: AsyncSession) -> None:
    await mark_syncing(session, **TARGET)
    await mark_syncing(session, **{**TARGET, "timeframe": "4H"})
    await mark_syncing(session, **{**TARGET, "source": "binance"})
    await mark_syncing(session, data_type="prices", symbol="BTCUSDT", timeframe=None, source="livecoinwatch")
    await session.commit()

    assert len(await list_sync_statuses(session)) == 4
    assert len(await list_sync_statuses(session, data_type="prices")) == 1
    price = await get_sync_status(session, data_type="prices", symbol="BTCUSDT", timeframe=None)
    assert price is not None
    assert price.source == "livecoinwatch"


async def test_get_sync_status_returns_none_for_unknown_target(session: AsyncSession) -> None:
    assert await get_sync_status(session, data_type="candles", symbol="ETHUSDT", timeframe="1D") is None
