from __future__ import annotations

import pytest
from freezegun import freeze_time
from httpx import AsyncClient

from marketdata.core.health import record_scheduler_tick
from marketdata.core.metrics import record_source_fetch


async def test_health_reports_scheduler_and_cache(client: AsyncClient) -> None:
    with freeze_time("2024-05-01T12:00:00Z"):
        await record_scheduler_tick("fetch-candles")
    await client.get("/api/v1/market/BTCUSDT/candles", params={"timeframe": "1H"})

    response = await client.get("/health")

    assert response.status_code == 200
    payload = response.json()
    assert "uptime_seconds" in payload
    assert payload["db_status"]["state"] == "ok"
    scheduler = payload["scheduler_status"]["fetch-candles"]
    assert scheduler["last_tick"].startswith("2024-05-01")
    assert scheduler["lag_seconds"] >= 0
    assert scheduler["runs"] == 1
    assert scheduler["last_ok"] is True
    assert payload["status"] == "ok"
    assert payload["cache_entries"] == 1


async def test_health_reports_database_failure(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
    async def _broken_connection() -> None:
        raise RuntimeError("db offline")

    monkeypatch.setattr("marketdata.core.health.check_connection", _broken_connection)
    response = await client.get("/health")

    assert response.status_code == 200
    payload = response.json()
    assert payload["db_status"]["state"] == "down"
    assert payload["status"] == "degraded"
    assert "db offline" in payload["db_status"]["reason"]


async def test_metrics_expose_counters(client: AsyncClient) -> None:
    await client.get("/api/v1/market/BTCUSDT/candles", params={"timeframe": "1H"})
    await client.get("/api/v1/market/BTCUSDT/candles", params={"timeframe": "1H"})
    record_source_fetch("bybit", "error", 0.2)

    response = await client.get("/metrics")

    assert response.status_code == 200
    body = response.text
    assert 'marketdata_snapshot_cache_lookups_total{timeframe="1H",outcome="miss"} 1.0' in body
    assert 'marketdata_snapshot_cache_lookups_total{timeframe="1H",outcome="hit"} 1.0' in body
    assert 'marketdata_source_fetches_total{source="bybit",outcome="error"} 1.0' in body
    assert 'marketdata_http_requests_total{path="/api/v1/market/{symbol}/candles",method="GET",status="200"} 2.0' in body


async def test_request_id_is_echoed(client: AsyncClient) -> None:
    response = await client.get("/api/v1/symbols", headers={"X-Request-ID": "abc123"})

    assert response.headers["x-request-id"] == "abc123"
    generated = await client.get("/api/v1/symbols")
    assert len(generated.headers["x-request-id"]) == 32
