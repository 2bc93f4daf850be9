"""Persisted synchronisation state for scheduled fetch tasks."""
from __future__ import annotations

import datetime as dt
from enum import Enum
from typing import Any

from sqlalchemy import JSON, DateTime, Enum as PgEnum, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from marketdata.models.base import Base, TimestampMixin


class SyncState(str, Enum):
    """Lifecycle of a single sync target."""

    PENDING = "pending"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"


class SyncStatus(TimestampMixin, Base):
    """One row per (data_type, symbol, timeframe, source) sync target."""

    __tablename__ = "data_sync_status"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    data_type: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    symbol: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    timeframe: Mapped[str | None] = mapped_column(String(8), nullable=True)
    source: Mapped[str] = mapped_column(String(32), nullable=False)
    status: Mapped[SyncState] = mapped_column(
        PgEnum(SyncState, name="sync_state", values_callable=lambda enum: [item.value for item in enum]),
        nullable=False,
        default=SyncState.PENDING,
    )
    last_sync_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    next_sync_at: Mapped[dt.datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    # ``metadata`` is reserved on declarative classes.
    details: Mapped[dict[str, Any] | None] = mapped_column("metadata", JSON, nullable=True)

    __table_args__ = (
        UniqueConstraint("data_type", "symbol", "timeframe", "source", name="uq_data_sync_status_target"),
    )
