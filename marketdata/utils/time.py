"""Time helpers for millisecond epoch arithmetic."""
from __future__ import annotations

import datetime as dt
import time
from typing import Callable

Clock = Callable[[], int]


def now_ms() -> int:
    """Return the current wall-clock time in epoch milliseconds."""

    return time.time_ns() // 1_000_000


def utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def ms_to_datetime(value: int) -> dt.datetime:
    return dt.datetime.fromtimestamp(value / 1000, tz=dt.timezone.utc)


def to_epoch_ms(value: float | int | str | dt.datetime) -> int:
    """Coerce provider timestamps (seconds, milliseconds or ISO strings) to ms."""

    if isinstance(value, dt.datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=dt.timezone.utc)
        return int(value.timestamp() * 1000)
    if isinstance(value, str):
        stripped = value.strip()
        try:
            numeric = float(stripped)
        except ValueError:
            parsed = dt.datetime.fromisoformat(stripped.replace("Z", "+00:00"))
            return to_epoch_ms(parsed)
        return to_epoch_ms(numeric)
    numeric = float(value)
    # Anything below 1e12 is a seconds-resolution epoch.
    if numeric < 1e12:
        numeric *= 1000
    return int(numeric)


__all__ = ["Clock", "ms_to_datetime", "now_ms", "to_epoch_ms", "utcnow"]
