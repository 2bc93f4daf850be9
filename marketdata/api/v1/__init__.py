"""API v1 package."""
from fastapi import APIRouter

from marketdata.api.v1 import cache, market, symbols, sync_status, tasks

api_router = APIRouter(prefix="/api/v1")
api_router.include_router(market.router, tags=["market"])
api_router.include_router(cache.router, tags=["cache"])
api_router.include_router(sync_status.router, tags=["sync-status"])
api_router.include_router(tasks.router, tags=["tasks"])
api_router.include_router(symbols.router, tags=["symbols"])

__all__ = ["api_router"]
