from __future__ import annotations

from httpx import AsyncClient

from marketdata.domain import DataSource, Timeframe
from tests.utils import FakeSource


async def test_candles_are_served_from_first_source(
    client: AsyncClient, fake_sources: dict[DataSource, FakeSource]
) -> None:
    response = await client.get("/api/v1/market/btcusdt/candles", params={"timeframe": "1h", "limit": 3})

    assert response.status_code == 200
    payload = response.json()
    assert payload["symbol"] == "BTCUSDT"
    assert payload["timeframe"] == "1H"
    assert payload["source"] == "binance"
    assert len(payload["candles"]) == 3
    assert fake_sources[DataSource.BINANCE].calls == [("BTCUSDT", Timeframe.H1, 3)]


async def test_candles_honour_preferred_source(
    client: AsyncClient, fake_sources: dict[DataSource, FakeSource]
) -> None:
    response = await client.get(
        "/api/v1/market/BTCUSDT/candles", params={"timeframe": "4H", "preferred_source": "bybit"}
    )

    assert response.status_code == 200
    assert response.json()["source"] == "bybit"
    assert fake_sources[DataSource.BINANCE].calls == []


async def test_no_data_available_maps_to_503(
    client: AsyncClient, fake_sources: dict[DataSource, FakeSource]
) -> None:
    for source in fake_sources.values():
        source.error = RuntimeError("upstream down")

    response = await client.get("/api/v1/market/BTCUSDT/candles", params={"timeframe": "15m"})

    assert response.status_code == 503
    error = response.json()["error"]
    assert error["code"] == "no_data_available"
    assert [attempt["source"] for attempt in error["details"]["attempts"]] == [
        "binance",
        "bybit",
        "livecoinwatch",
        "coinmarketcap",
    ]


async def test_invalid_timeframe_is_rejected(client: AsyncClient) -> None:
    response = await client.get("/api/v1/market/BTCUSDT/candles", params={"timeframe": "2h"})

    assert response.status_code == 400
    assert response.json()["error"]["code"] == "invalid_timeframe"


async def test_timeframes_default_to_every_timeframe(client: AsyncClient) -> None:
    response = await client.get("/api/v1/market/BTCUSDT/timeframes")

    assert response.status_code == 200
    payload = response.json()
    assert set(payload["snapshots"]) == {"3m", "5m", "15m", "1H", "4H", "1D"}
    assert payload["failures"] == {}
    assert all(verdict["is_fresh"] for verdict in payload["freshness"].values())


async def test_timeframes_report_partial_failures(
    client: AsyncClient, fake_sources: dict[DataSource, FakeSource]
) -> None:
    for source in fake_sources.values():
        source.fail_timeframes = {Timeframe.M3}

    response = await client.get("/api/v1/market/BTCUSDT/timeframes", params={"timeframes": "3m,1H"})

    assert response.status_code == 200
    payload = response.json()
    assert list(payload["snapshots"]) == ["1H"]
    assert "3m" in payload["failures"]
    assert "3m" not in payload["freshness"]


async def test_timeframes_all_failing_maps_to_503(
    client: AsyncClient, fake_sources: dict[DataSource, FakeSource]
) -> None:
    for source in fake_sources.values():
        source.error = RuntimeError("offline")

    response = await client.get(
        "/api/v1/market/BTCUSDT/timeframes", params=[("timeframes", "1H"), ("timeframes", "4H")]
    )

    assert response.status_code == 503
    error = response.json()["error"]
    assert error["code"] == "all_timeframes_failed"
    assert set(error["details"]["failures"]) == {"1H", "4H"}


async def test_refresh_bypasses_cached_snapshots(
    client: AsyncClient, fake_sources: dict[DataSource, FakeSource]
) -> None:
    binance = fake_sources[DataSource.BINANCE]
    for _ in range(2):
        await client.get("/api/v1/market/BTCUSDT/candles", params={"timeframe": "1H"})
    assert len(binance.calls) == 1

    response = await client.post("/api/v1/market/BTCUSDT/refresh", json={"timeframes": ["1H"]})

    assert response.status_code == 200
    assert list(response.json()["snapshots"]) == ["1H"]
    assert len(binance.calls) == 2


async def test_refresh_requires_timeframes(client: AsyncClient) -> None:
    response = await client.post("/api/v1/market/BTCUSDT/refresh", json={"timeframes": []})

    assert response.status_code == 422
    assert response.json()["error"]["code"] == "validation_error"
