# src/querydeck/__init__.py
"""
querydeck - query execution and streaming pagination engine

Usage:
    # CLI
    $ querydeck run "SELECT * FROM 'events.parquet'"
    $ querydeck detect "SELECT * FROM `proj.ds.events`"

    # Python API - Route and execute
    import asyncio
    import querydeck

    async def main():
        router = querydeck.router()
        result = await router.run("SELECT * FROM range(1000000)")
        if isinstance(result, querydeck.StreamHandle):
            async for chunk in result.chunks():
                print(chunk.start_index, chunk.end_index)
        else:
            print(result.to_polars())
        await router.close()

    asyncio.run(main())

    # Python API - Dialect detection
    detection = querydeck.detect("SELECT SAFE_DIVIDE(a, b) FROM `p.d.t`")
    print(detection.engine, detection.confidence)
"""

from typing import Optional

from querydeck.version import VERSION as __version__

from querydeck.config import QueryDeckSettings, load_settings
from querydeck.connectors import CC, Connector, ConnectorCapabilities, create_connector, register_connector
from querydeck.detection import EngineDetection, EngineDetectorRegistry, default_registry, detect_query_engine
from querydeck.engine.cancellation import CancellationToken
from querydeck.engine.count_cache import CountEstimator, RowCount
from querydeck.engine.router import ExecutionRouter, QueryResult, QueryState, RouterHooks, StreamHandle
from querydeck.engine.streaming import DataChunk, StreamingExecutor, StreamOptions
from querydeck.errors import (
    ConnectorError,
    ConnectorNotRegisteredError,
    ConnectorUnavailableError,
    EngineSuggestionError,
    QueryCancelledError,
    QueryDeckError,
    ReadOnlyDatabaseWriteError,
    RoutingError,
)
from querydeck.logging import configure_logging, get_logger


def detect(sql: str) -> EngineDetection:
    """Classify `sql` with the built-in BigQuery and DuckDB detectors."""
    return detect_query_engine(sql)


def router(
    config: Optional[str] = None,
    settings: Optional[QueryDeckSettings] = None,
    hooks: Optional[RouterHooks] = None,
) -> ExecutionRouter:
    """
    Build a router from querydeck.yml (or explicit settings).

    When no connector is configured for the active connector id, a default
    instance of that connector type is registered (an in-memory DuckDB
    database for the default settings).
    """
    settings = settings or load_settings(config)
    r = ExecutionRouter.from_settings(settings, hooks=hooks)
    if settings.active_connector not in r.connectors:
        r.register_connector(create_connector(settings.active_connector), name=settings.active_connector)
    return r


__all__ = [
    "__version__",
    # Core functions
    "detect",
    "router",
    "load_settings",
    "configure_logging",
    "get_logger",
    # Engine
    "CancellationToken",
    "CountEstimator",
    "DataChunk",
    "ExecutionRouter",
    "QueryResult",
    "QueryState",
    "RouterHooks",
    "RowCount",
    "StreamHandle",
    "StreamOptions",
    "StreamingExecutor",
    # Connectors
    "CC",
    "Connector",
    "ConnectorCapabilities",
    "create_connector",
    "register_connector",
    # Detection
    "EngineDetection",
    "EngineDetectorRegistry",
    "default_registry",
    # Config
    "QueryDeckSettings",
    # Errors
    "ConnectorError",
    "ConnectorNotRegisteredError",
    "ConnectorUnavailableError",
    "EngineSuggestionError",
    "QueryCancelledError",
    "QueryDeckError",
    "ReadOnlyDatabaseWriteError",
    "RoutingError",
]
