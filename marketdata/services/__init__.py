"""Cache, source adapters, fetcher and orchestrator."""
