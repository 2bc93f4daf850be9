"""Candle, multi-timeframe and refresh endpoints."""
from __future__ import annotations

from typing import Iterable

from fastapi import APIRouter, HTTPException, Query, status

from marketdata.core.dependencies import Orchestrator
from marketdata.domain import ALL_TIMEFRAMES, DataSource, Timeframe
from marketdata.schemas.market import RefreshRequest, SnapshotOut, TimeframesResponse

router = APIRouter(prefix="/market")


def _parse_timeframe(value: str) -> Timeframe:
    timeframe = Timeframe.try_parse(value)
    if timeframe is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": {"code": "invalid_timeframe", "message": f"Unsupported timeframe {value!r}."}},
        )
    return timeframe


def _parse_timeframes(values: Iterable[str]) -> list[Timeframe]:
    items = [item.strip() for value in values for item in value.split(",") if item.strip()]
    if not items:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"error": {"code": "invalid_timeframe", "message": "At least one timeframe is required."}},
        )
    return [_parse_timeframe(item) for item in items]


@router.get("/{symbol}/candles", response_model=SnapshotOut)
async def get_candles(
    symbol: str,
    orchestrator: Orchestrator,
    timeframe: str = Query(...),
    preferred_source: DataSource | None = Query(None),
    use_cache: bool = Query(True),
    limit: int | None = Query(None, ge=1, le=1000),
) -> SnapshotOut:
    snapshot = await orchestrator.fetcher.get_candles(
        symbol,
        _parse_timeframe(timeframe),
        preferred_source=preferred_source,
        use_cache=use_cache,
        limit=limit or orchestrator.default_limit,
    )
    return SnapshotOut.from_snapshot(snapshot)


@router.get("/{symbol}/timeframes", response_model=TimeframesResponse)
async def get_timeframes(
    symbol: str,
    orchestrator: Orchestrator,
    timeframes: list[str] | None = Query(None),
) -> TimeframesResponse:
    requested = _parse_timeframes(timeframes) if timeframes else list(ALL_TIMEFRAMES)
    load = await orchestrator.load_timeframes(symbol, requested)
    return TimeframesResponse.from_load(load, orchestrator.check_freshness(load.snapshots))


@router.post("/{symbol}/refresh", response_model=TimeframesResponse)
async def refresh(symbol: str, payload: RefreshRequest, orchestrator: Orchestrator) -> TimeframesResponse:
    load = await orchestrator.load_timeframes(symbol, _parse_timeframes(payload.timeframes), use_cache=False)
    return TimeframesResponse.from_load(load, orchestrator.check_freshness(load.snapshots))
