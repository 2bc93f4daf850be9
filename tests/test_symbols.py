from __future__ import annotations

import pytest

from marketdata.symbols import CANONICAL_SYMBOLS, display_name, parse_symbol


def test_parse_symbol_splits_base_and_quote() -> None:
    info = parse_symbol("ethusdt")
    assert (info.symbol, info.base, info.quote, info.multiplier) == ("ETHUSDT", "ETH", "USDT", 1)


def test_parse_symbol_unwraps_contract_multiplier() -> None:
    info = parse_symbol("1000PEPEUSDT")
    assert info.base == "PEPE"
    assert info.multiplier == 1000


def test_parse_symbol_rejects_unknown_quote() -> None:
    with pytest.raises(ValueError):
        parse_symbol("BTCEUR")


def test_display_name_uses_alias_for_scaled_contracts() -> None:
    assert display_name("1000PEPEUSDT") == "PEPE"
    assert display_name("btcusdt") == "BTCUSDT"


def test_every_canonical_symbol_parses() -> None:
    for symbol in CANONICAL_SYMBOLS:
        assert parse_symbol(symbol).quote == "USDT"


def test_parse_symbol_prefers_the_longest_quote_asset() -> None:
    info = parse_symbol("BTCBUSD")
    assert (info.base, info.quote) == ("BTC", "BUSD")
    assert parse_symbol("BTCUSD").quote == "USD"
