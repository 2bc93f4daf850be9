"""Read-only access to scheduled sync bookkeeping."""
from __future__ import annotations

from typing import List

from fastapi import APIRouter, HTTPException, Query, status

from marketdata.core.dependencies import DBSession
from marketdata.domain import Timeframe
from marketdata.schemas.sync_status import SyncStatusOut
from marketdata.services.sync_status import get_sync_status, list_sync_statuses

router = APIRouter(prefix="/sync-status")


@router.get("", response_model=List[SyncStatusOut])
async def list_statuses(
    session: DBSession,
    data_type: str | None = Query(None),
    symbol: str | None = Query(None),
) -> List[SyncStatusOut]:
    records = await list_sync_statuses(
        session, data_type=data_type, symbol=symbol.upper() if symbol else None
    )
    return [SyncStatusOut.model_validate(record) for record in records]


@router.get("/{symbol}/{timeframe}", response_model=SyncStatusOut)
async def get_status(
    symbol: str,
    timeframe: str,
    session: DBSession,
    data_type: str = Query("candles"),
    source: str | None = Query(None),
) -> SyncStatusOut:
    parsed = Timeframe.try_parse(timeframe)
    if parsed is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": {"code": "invalid_timeframe", "message": f"Unsupported timeframe {timeframe!r}."}},
        )
    record = await get_sync_status(
        session, data_type=data_type, symbol=symbol.upper(), timeframe=parsed.value, source=source
    )
    if record is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": {"code": "not_found", "message": "No sync status recorded for this target."}},
        )
    return SyncStatusOut.model_validate(record)
