from __future__ import annotations

import pytest

from marketdata.core.config import Settings
from marketdata.domain import DEFAULT_SOURCE_PRECEDENCE, DataSource, Timeframe


def test_list_settings_accept_comma_separated_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRACKED_SYMBOLS", "btcusdt, ethusdt")
    monkeypatch.setenv("SYNC_TIMEFRAMES", "1h,15M")
    monkeypatch.setenv("SOURCE_PRECEDENCE", "bybit,binance")

    settings = Settings()

    assert settings.tracked_symbols == ["BTCUSDT", "ETHUSDT"]
    assert settings.sync_timeframes == [Timeframe.H1, Timeframe.M15]
    assert settings.source_precedence == [DataSource.BYBIT, DataSource.BINANCE]


def test_list_settings_accept_json_arrays(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("TRACKED_SYMBOLS", '["solusdt"]')
    settings = Settings()
    assert settings.tracked_symbols == ["SOLUSDT"]


def test_defaults(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("SOURCE_PRECEDENCE", "MARKETDATA_SINGLE_FLIGHT", "DEFAULT_CANDLE_LIMIT"):
        monkeypatch.delenv(name, raising=False)
    settings = Settings()
    assert tuple(settings.source_precedence) == DEFAULT_SOURCE_PRECEDENCE
    assert settings.single_flight is False
    assert settings.default_candle_limit == 500


def test_single_flight_flag_is_read_from_environment(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MARKETDATA_SINGLE_FLIGHT", "true")
    assert Settings().single_flight is True


def test_production_requires_provider_keys() -> None:
    settings = Settings(env="prod", livecoinwatch_api_key=None, coinmarketcap_api_key="cmc")
    with pytest.raises(ValueError, match="LIVECOINWATCH_API_KEY"):
        settings.require_production_secrets()


def test_local_environment_skips_secret_checks() -> None:
    Settings(env="local").require_production_secrets()
