"""Bookkeeping for scheduled sync targets."""
from __future__ import annotations

import datetime as dt
from typing import Any

from loguru import logger
from sqlalchemy import Select, select
from sqlalchemy.ext.asyncio import AsyncSession

from marketdata.models.sync_status import SyncState, SyncStatus
from marketdata.utils.time import utcnow

ERROR_BACKOFF_BASE = dt.timedelta(seconds=60)
ERROR_BACKOFF_CAP = dt.timedelta(minutes=30)


def error_backoff(retry_count: int) -> dt.timedelta:
    """Delay before retrying a target that has failed ``retry_count`` times in a row."""

    exponent = max(retry_count - 1, 0)
    return min(ERROR_BACKOFF_BASE * (2**exponent), ERROR_BACKOFF_CAP)


def _target_clause(
    stmt: Select[tuple[SyncStatus]], *, data_type: str, symbol: str, timeframe: str | None, source: str | None
) -> Select[tuple[SyncStatus]]:
    stmt = stmt.where(SyncStatus.data_type == data_type, SyncStatus.symbol == symbol)
    if timeframe is None:
        stmt = stmt.where(SyncStatus.timeframe.is_(None))
    else:
        stmt = stmt.where(SyncStatus.timeframe == timeframe)
    if source is not None:
        stmt = stmt.where(SyncStatus.source == source)
    return stmt


async def get_sync_status(
    session: AsyncSession,
    *,
    data_type: str,
    symbol: str,
    timeframe: str | None,
    source: str | None = None,
) -> SyncStatus | None:
    stmt = _target_clause(
        select(SyncStatus), data_type=data_type, symbol=symbol, timeframe=timeframe, source=source
    )
    stmt = stmt.order_by(SyncStatus.last_sync_at.desc()).limit(1)
    return (await session.execute(stmt)).scalar_one_or_none()


async def list_sync_statuses(
    session: AsyncSession, *, data_type: str | None = None, symbol: str | None = None
) -> list[SyncStatus]:
    stmt = select(SyncStatus)
    if data_type is not None:
        stmt = stmt.where(SyncStatus.data_type == data_type)
    if symbol is not None:
        stmt = stmt.where(SyncStatus.symbol == symbol)
    stmt = stmt.order_by(SyncStatus.last_sync_at.desc(), SyncStatus.id.asc())
    return list((await session.execute(stmt)).scalars().all())


async def _get_or_create(
    session: AsyncSession, *, data_type: str, symbol: str, timeframe: str | None, source: str
) -> SyncStatus:
    record = await get_sync_status(
        session, data_type=data_type, symbol=symbol, timeframe=timeframe, source=source
    )
    if record is None:
        record = SyncStatus(
            data_type=data_type,
            symbol=symbol,
            timeframe=timeframe,
            source=source,
            status=SyncState.PENDING,
            retry_count=0,
        )
        session.add(record)
    return record


async def mark_syncing(
    session: AsyncSession, *, data_type: str, symbol: str, timeframe: str | None, source: str
) -> SyncStatus:
    record = await _get_or_create(
        session, data_type=data_type, symbol=symbol, timeframe=timeframe, source=source
    )
    record.status = SyncState.SYNCING
    record.last_sync_at = utcnow()
    await session.flush()
    return record


async def mark_success(
    session: AsyncSession,
    *,
    data_type: str,
    symbol: str,
    timeframe: str | None,
    source: str,
    next_sync_in: dt.timedelta | None = None,
    metadata: dict[str, Any] | None = None,
) -> SyncStatus:
    record = await _get_or_create(
        session, data_type=data_type, symbol=symbol, timeframe=timeframe, source=source
    )
    now = utcnow()
    record.status = SyncState.SUCCESS
    record.retry_count = 0
    record.error_message = None
    record.last_sync_at = now
    record.next_sync_at = now + next_sync_in if next_sync_in is not None else None
    if metadata is not None:
        record.details = metadata
    await session.flush()
    logger.info("sync_status_success", data_type=data_type, symbol=symbol, timeframe=timeframe, source=source)
    return record


async def mark_error(
    session: AsyncSession,
    *,
    data_type: str,
    symbol: str,
    timeframe: str | None,
    source: str,
    error_message: str,
) -> SyncStatus:
    record = await _get_or_create(
        session, data_type=data_type, symbol=symbol, timeframe=timeframe, source=source
    )
    now = utcnow()
    record.status = SyncState.ERROR
    record.retry_count = (record.retry_count or 0) + 1
    record.error_message = error_message
    record.last_sync_at = now
    record.next_sync_at = now + error_backoff(record.retry_count)
    await session.flush()
    logger.warning(
        "sync_status_error",
        data_type=data_type,
        symbol=symbol,
        timeframe=timeframe,
        source=source,
        retry_count=record.retry_count,
        error=error_message,
    )
    return record


__all__ = [
    "error_backoff",
    "get_sync_status",
    "list_sync_statuses",
    "mark_error",
    "mark_success",
    "mark_syncing",
]
