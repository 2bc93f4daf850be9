from __future__ import annotations

import asyncio

import pytest

from marketdata.domain import ALL_TIMEFRAMES, FRESHNESS_THRESHOLD_MS, SECOND_MS, DataSource, Timeframe
from marketdata.errors import AllTimeframesFailed, NoDataAvailable
from marketdata.services.cache import SnapshotCache
from marketdata.services.fetcher import CandleFetcher
from marketdata.services.orchestrator import TimeframeOrchestrator
from tests.utils import FakeClock, FakeSource, GatedSource, make_snapshot


def _orchestrator(clock: FakeClock, source: FakeSource, **kwargs: object) -> TimeframeOrchestrator:
    fetcher = CandleFetcher(
        SnapshotCache(clock=clock), {source.name: source}, precedence=[source.name], clock=clock
    )
    return TimeframeOrchestrator(fetcher, clock=clock, **kwargs)  # type: ignore[arg-type]


async def test_load_all_timeframes_returns_every_requested_timeframe(clock: FakeClock) -> None:
    source = FakeSource(DataSource.BINANCE)
    orchestrator = _orchestrator(clock, source)

    snapshots = await orchestrator.load_all_timeframes("btcusdt")

    assert set(snapshots) == set(ALL_TIMEFRAMES)
    assert all(snapshot.symbol == "BTCUSDT" for snapshot in snapshots.values())


async def test_partial_failure_drops_only_failed_timeframes(clock: FakeClock) -> None:
    source = FakeSource(DataSource.BINANCE, fail_timeframes=[Timeframe.M3])
    orchestrator = _orchestrator(clock, source)

    load = await orchestrator.load_timeframes("BTCUSDT", [Timeframe.H1, Timeframe.M3])

    assert list(load.snapshots) == [Timeframe.H1]
    assert isinstance(load.failures[Timeframe.M3], NoDataAvailable)


async def test_total_failure_raises_all_timeframes_failed(clock: FakeClock) -> None:
    source = FakeSource(DataSource.BINANCE, error=RuntimeError("offline"))
    orchestrator = _orchestrator(clock, source)

    with pytest.raises(AllTimeframesFailed) as excinfo:
        await orchestrator.load_all_timeframes("BTCUSDT", ["1H", "4H"])

    assert set(excinfo.value.failures) == {Timeframe.H1, Timeframe.H4}


async def test_empty_timeframe_list_is_rejected(clock: FakeClock) -> None:
    orchestrator = _orchestrator(clock, FakeSource(DataSource.BINANCE))
    with pytest.raises(ValueError):
        await orchestrator.load_all_timeframes("BTCUSDT", [])


async def test_duplicate_timeframes_are_fetched_once(clock: FakeClock) -> None:
    source = FakeSource(DataSource.BINANCE)
    orchestrator = _orchestrator(clock, source)

    snapshots = await orchestrator.refresh_timeframes("BTCUSDT", ["1H", "1h", Timeframe.H1])

    assert list(snapshots) == [Timeframe.H1]
    assert len(source.calls) == 1


async def test_fetches_fan_out_before_any_completes(clock: FakeClock) -> None:
    source = GatedSource(DataSource.BINANCE)
    orchestrator = _orchestrator(clock, source)

    task = asyncio.create_task(orchestrator.load_all_timeframes("BTCUSDT"))
    while source.started < len(ALL_TIMEFRAMES):
        await asyncio.sleep(0)
    assert not task.done()
    source.release.set()

    snapshots = await task
    assert len(snapshots) == len(ALL_TIMEFRAMES)


async def test_refresh_bypasses_cache_reads(clock: FakeClock) -> None:
    source = FakeSource(DataSource.BINANCE)
    orchestrator = _orchestrator(clock, source)

    first = (await orchestrator.load_all_timeframes("BTCUSDT", [Timeframe.H1]))[Timeframe.H1]
    await orchestrator.load_all_timeframes("BTCUSDT", [Timeframe.H1])
    assert len(source.calls) == 1

    clock.advance(SECOND_MS)
    refreshed = (await orchestrator.refresh_timeframes("BTCUSDT", [Timeframe.H1]))[Timeframe.H1]
    assert len(source.calls) == 2
    assert refreshed is not first
    assert refreshed.last_updated == clock.now

    cached = await orchestrator.fetcher.get_candles("BTCUSDT", Timeframe.H1)
    assert cached is refreshed
    assert len(source.calls) == 2


async def test_load_single_timeframe_propagates_no_data(clock: FakeClock) -> None:
    orchestrator = _orchestrator(clock, FakeSource(DataSource.BINANCE, error=RuntimeError("x")))
    with pytest.raises(NoDataAvailable):
        await orchestrator.load_single_timeframe("BTCUSDT", "15m")


def test_check_freshness_is_strict_below_threshold(clock: FakeClock) -> None:
    orchestrator = _orchestrator(clock, FakeSource(DataSource.BINANCE))
    threshold = FRESHNESS_THRESHOLD_MS[Timeframe.M5]
    snapshots = {
        "edge": make_snapshot(timeframe=Timeframe.M5, last_updated=clock.now - threshold),
        "fresh": make_snapshot(timeframe=Timeframe.M5, last_updated=clock.now - threshold + 1),
        "daily": make_snapshot(timeframe=Timeframe.D1, last_updated=clock.now - 20 * 60 * SECOND_MS),
    }

    verdicts = orchestrator.check_freshness(snapshots)

    assert verdicts["edge"].is_fresh is False
    assert verdicts["edge"].age_ms == threshold
    assert verdicts["fresh"].is_fresh is True
    assert verdicts["daily"].is_fresh is True


def test_check_freshness_is_independent_of_cache_ttl(clock: FakeClock) -> None:
    orchestrator = _orchestrator(clock, FakeSource(DataSource.BINANCE))
    snapshot = make_snapshot(timeframe=Timeframe.M3, last_updated=clock.now - 20 * SECOND_MS)

    verdict = orchestrator.check_freshness({Timeframe.M3: snapshot})[Timeframe.M3]

    assert verdict.is_fresh is True
    assert verdict.threshold_ms == 30 * SECOND_MS


async def test_auto_sync_refreshes_and_reports_errors(clock: FakeClock) -> None:
    source = FakeSource(DataSource.BINANCE, fail_timeframes=[Timeframe.M5])
    orchestrator = _orchestrator(
        clock, source, auto_sync_intervals={Timeframe.M3: 1, Timeframe.M5: 1}
    )
    updates: list[Timeframe] = []
    errors: list[tuple[str, Timeframe]] = []

    async def on_update(snapshot) -> None:
        updates.append(snapshot.timeframe)

    def on_error(exc: BaseException, symbol: str, timeframe: Timeframe) -> None:
        errors.append((symbol, timeframe))

    handle = orchestrator.start_auto_sync("btcusdt", ["3m", "5m"], on_update=on_update, on_error=on_error)
    for _ in range(100):
        if updates.count(Timeframe.M3) >= 2 and errors:
            break
        await asyncio.sleep(0.01)
    await handle.stop()

    assert updates.count(Timeframe.M3) >= 2
    assert ("BTCUSDT", Timeframe.M5) in errors
    assert handle.running is False
    calls_after_stop = len(source.calls)
    await asyncio.sleep(0.02)
    assert len(source.calls) == calls_after_stop
