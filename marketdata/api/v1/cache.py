"""Snapshot cache diagnostics."""
from __future__ import annotations

from fastapi import APIRouter

from marketdata.core.dependencies import Container
from marketdata.schemas.market import CacheClearResponse, CacheStatsResponse

router = APIRouter(prefix="/cache")


@router.get("/stats", response_model=CacheStatsResponse)
async def cache_stats(container: Container) -> CacheStatsResponse:
    return CacheStatsResponse.from_stats(container.cache.stats())


@router.delete("", response_model=CacheClearResponse)
async def clear_cache(container: Container) -> CacheClearResponse:
    return CacheClearResponse(cleared=container.cache.clear())
