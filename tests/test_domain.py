from __future__ import annotations

import pytest

from marketdata.domain import (
    ALL_TIMEFRAMES,
    CACHE_TTL_MS,
    FRESHNESS_THRESHOLD_MS,
    CacheKey,
    DataSource,
    Timeframe,
)
from marketdata.errors import AllTimeframesFailed, NoDataAvailable, SourceAttempt
from tests.utils import make_snapshot


@pytest.mark.parametrize("raw", ["1h", "1H", " 1H ", "1h\n"])
def test_timeframe_parse_is_case_and_whitespace_insensitive(raw: str) -> None:
    assert Timeframe.parse(raw) is Timeframe.H1


def test_timeframe_parse_rejects_unknown_values() -> None:
    with pytest.raises(ValueError):
        Timeframe.parse("2h")
    assert Timeframe.try_parse("weekly") is None


def test_cache_ttl_never_exceeds_freshness_threshold() -> None:
    for timeframe in Timeframe:
        assert CACHE_TTL_MS[timeframe] <= FRESHNESS_THRESHOLD_MS[timeframe]


def test_default_timeframe_order_is_longest_first() -> None:
    assert [tf.value for tf in ALL_TIMEFRAMES] == ["1D", "4H", "1H", "15m", "5m", "3m"]


def test_cache_key_normalises_symbol_and_timeframe() -> None:
    assert CacheKey.of("btcusdt", "1h") == CacheKey.of(" BTCUSDT", "1H")
    assert hash(CacheKey.of("btcusdt", "1h")) == hash(CacheKey("BTCUSDT", Timeframe.H1))
    assert str(CacheKey.of("ethusdt", "15M")) == "ETHUSDT:15m"


def test_cache_key_separators_cannot_collide() -> None:
    assert CacheKey.of("A:B", "1H") != CacheKey.of("A", "1H")


def test_snapshot_exposes_key_and_latest_bar() -> None:
    snapshot = make_snapshot("ethusdt", Timeframe.M5)
    assert snapshot.key == CacheKey("ETHUSDT", Timeframe.M5)
    assert snapshot.latest == snapshot.candles[-1]


def test_no_data_available_lists_attempts_in_order() -> None:
    error = NoDataAvailable(
        "BTCUSDT",
        Timeframe.H1,
        [
            SourceAttempt(DataSource.BINANCE, "timeout"),
            SourceAttempt(DataSource.BYBIT, "rate limited"),
        ],
    )
    payload = error.to_dict()
    assert [attempt["source"] for attempt in payload["attempts"]] == ["binance", "bybit"]
    assert "timeout" in str(error)


def test_all_timeframes_failed_carries_per_timeframe_errors() -> None:
    error = AllTimeframesFailed("BTCUSDT", {Timeframe.H1: RuntimeError("down")})
    assert error.to_dict() == {"symbol": "BTCUSDT", "failures": {"1H": "down"}}
