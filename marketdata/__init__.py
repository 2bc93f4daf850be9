"""Market data caching and multi-source candle service."""

__version__ = "1.0.0"
