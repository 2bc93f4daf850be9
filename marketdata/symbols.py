"""Canonical trading symbols and their display aliases."""
from __future__ import annotations

import re
from dataclasses import dataclass

CANONICAL_SYMBOLS: tuple[str, ...] = (
    "BTCUSDT",
    "ETHUSDT",
    "CAKEUSDT",
    "AVAXUSDT",
    "SUIUSDT",
    "SEIUSDT",
    "1000PEPEUSDT",
)

# Longest first so BUSD is not read as a USD pair.
QUOTE_ASSETS: tuple[str, ...] = ("USDT", "USDC", "BUSD", "USD")

_MULTIPLIER_PREFIX = re.compile(r"^(?P<multiplier>1(?:0{3})+)(?P<asset>[A-Z]+)$")


@dataclass(frozen=True, slots=True)
class SymbolInfo:
    """Parsed representation of a concatenated pair such as ``BTCUSDT``."""

    symbol: str
    base: str
    quote: str
    multiplier: int = 1


def parse_symbol(symbol: str) -> SymbolInfo:
    """Split a pair into base and quote assets.

    Contract-style prefixes (``1000PEPEUSDT``) are unwrapped into the spot asset
    and a price multiplier so quote-only providers can be consulted.
    """

    normalised = symbol.strip().upper()
    for quote in QUOTE_ASSETS:
        if normalised.endswith(quote) and len(normalised) > len(quote):
            base = normalised[: -len(quote)]
            multiplier = 1
            match = _MULTIPLIER_PREFIX.match(base)
            if match:
                base = match.group("asset")
                multiplier = int(match.group("multiplier"))
            return SymbolInfo(symbol=normalised, base=base, quote=quote, multiplier=multiplier)
    raise ValueError(f"Cannot determine quote asset for symbol {symbol!r}")


def display_name(symbol: str) -> str:
    """Return the label shown in the dashboard (``1000PEPEUSDT`` -> ``PEPE``)."""

    try:
        info = parse_symbol(symbol)
    except ValueError:
        return symbol.strip().upper()
    if info.multiplier != 1:
        return info.base
    return info.symbol


__all__ = ["CANONICAL_SYMBOLS", "SymbolInfo", "display_name", "parse_symbol"]
