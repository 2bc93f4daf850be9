"""Core infrastructure: configuration, logging, metrics, database."""
