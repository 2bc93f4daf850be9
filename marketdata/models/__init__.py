"""Database models package."""
from marketdata.models.base import Base
from marketdata.models.market import MarketCandle, MarketPrice
from marketdata.models.sync_status import SyncState, SyncStatus

__all__ = [
    "Base",
    "MarketCandle",
    "MarketPrice",
    "SyncState",
    "SyncStatus",
]
