"""Execution engine: cancellation, statement helpers, estimation, caching, streaming and routing."""
