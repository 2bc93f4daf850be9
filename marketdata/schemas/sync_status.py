"""Pydantic schemas for sync status APIs."""
from __future__ import annotations

import datetime as dt
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from marketdata.models.sync_status import SyncState


class SyncStatusOut(BaseModel):
    data_type: str
    symbol: str
    timeframe: Optional[str]
    source: str
    status: SyncState
    last_sync_at: Optional[dt.datetime]
    next_sync_at: Optional[dt.datetime]
    retry_count: int
    error_message: Optional[str]
    metadata: Optional[Dict[str, Any]] = Field(default=None, validation_alias="details")

    model_config = ConfigDict(from_attributes=True, populate_by_name=True)


__all__ = ["SyncStatusOut"]
