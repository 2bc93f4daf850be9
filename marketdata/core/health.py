"""Liveness data for ``/health``: database reachability, job ticks and cache size."""
from __future__ import annotations

import asyncio
import datetime as dt
from dataclasses import dataclass
from typing import Any

from loguru import logger

from marketdata.core.database import check_connection
from marketdata.utils.time import utcnow

_STARTED_AT = utcnow()


@dataclass(slots=True)
class JobProbe:
    """Last completion of one scheduled job."""

    name: str
    runs: int = 0
    last_tick: dt.datetime | None = None
    last_ok: bool | None = None

    def as_dict(self, now: dt.datetime) -> dict[str, Any]:
        lag = None
        if self.last_tick is not None:
            lag = round(max((now - self.last_tick).total_seconds(), 0.0), 2)
        return {
            "runs": self.runs,
            "last_tick": self.last_tick.isoformat() if self.last_tick else None,
            "last_ok": self.last_ok,
            "lag_seconds": lag,
        }


class JobProbes:
    def __init__(self) -> None:
        self._probes: dict[str, JobProbe] = {}
        self._lock = asyncio.Lock()

    async def record(self, name: str, *, ok: bool, timestamp: dt.datetime | None = None) -> None:
        async with self._lock:
            probe = self._probes.get(name)
            if probe is None:
                probe = self._probes[name] = JobProbe(name)
            probe.runs += 1
            probe.last_ok = ok
            probe.last_tick = timestamp or utcnow()

    async def snapshot(self) -> dict[str, dict[str, Any]]:
        now = utcnow()
        async with self._lock:
            return {name: probe.as_dict(now) for name, probe in sorted(self._probes.items())}


_JOB_PROBES = JobProbes()


async def record_scheduler_tick(name: str, *, ok: bool = True, timestamp: dt.datetime | None = None) -> None:
    await _JOB_PROBES.record(name, ok=ok, timestamp=timestamp)
    logger.bind(job=name, ok=ok).debug("scheduler_tick_recorded")


async def scheduler_snapshot() -> dict[str, dict[str, Any]]:
    return await _JOB_PROBES.snapshot()


def get_uptime_seconds() -> float:
    return round((utcnow() - _STARTED_AT).total_seconds(), 2)


async def database_health(timeout_seconds: float = 2.0) -> dict[str, str]:
    try:
        await asyncio.wait_for(check_connection(), timeout=timeout_seconds)
    except asyncio.TimeoutError:
        logger.bind(timeout=timeout_seconds).warning("database_health_timeout")
        return {"state": "degraded", "reason": f"no answer within {timeout_seconds}s"}
    except Exception as exc:
        logger.bind(error=str(exc)).warning("database_health_failed")
        return {"state": "down", "reason": str(exc)}
    return {"state": "ok"}


async def build_health_payload(version: str | None, *, cache_size: int | None = None) -> dict[str, Any]:
    """Compose the ``/health`` body; ``status`` follows the database probe."""

    db = await database_health()
    return {
        "status": "ok" if db["state"] == "ok" else "degraded",
        "version": version or "unknown",
        "uptime_seconds": get_uptime_seconds(),
        "db_status": db,
        "scheduler_status": await scheduler_snapshot(),
        "cache_entries": cache_size,
    }


__all__ = [
    "JobProbe",
    "build_health_payload",
    "database_health",
    "get_uptime_seconds",
    "record_scheduler_tick",
    "scheduler_snapshot",
]
