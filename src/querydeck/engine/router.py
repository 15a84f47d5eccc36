# src/querydeck/engine/router.py
"""
Execution router.

Flow for run(sql, hint)
-----------------------
  1) Dialect routing (settings.detection.mode): keep the hinted connector,
     auto-switch to the detected engine, or block and suggest it
  2) Non-SELECT / administrative statements: execute once, return the full
     result, fire schema / attach / detach hooks
  3) EXACT_METADATA connectors: execute directly; the connector reports the
     total row count itself
  4) Everything else: estimate the row count, then either execute fully in
     memory (QueryResult) or hand back a StreamHandle

Every call registers one ActiveQueryHandle under its query id. The handle is
removed exactly once: on completion, failure or cancellation. A StreamHandle
keeps the registration until it is exhausted, fails, is cancelled or closed.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import time
import uuid
from contextlib import aclosing
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional, Set, Union

import polars as pl

from querydeck import constants as C
from querydeck.config.models import QueryDeckSettings
from querydeck.connectors.base import Connector, QueryOptions, QueryStats, Row, validate_capabilities
from querydeck.connectors.capabilities import ConnectorCapabilities as CC
from querydeck.connectors.registry import create_connector
from querydeck.detection import EngineDetection, EngineDetectorRegistry, confidence_at_least, default_registry
from querydeck.engine.cancellation import CancellationToken
from querydeck.engine.count_cache import CountEstimator, RowCount
from querydeck.engine.result_cache import ResultChunkCache, SQLiteChunkStore
from querydeck.engine.statements import (
    AttachInfo,
    extract_target_database,
    is_aggregation_query,
    is_ddl_statement,
    is_non_select_statement,
    parse_attach_statement,
    parse_detach_statement,
    trailing_limit,
)
from querydeck.engine.streaming import (
    ColumnMetadata,
    DataChunk,
    StreamingExecutor,
    StreamOptions,
    chunk_cache_key,
)
from querydeck.errors import (
    ConnectorNotRegisteredError,
    ConnectorUnavailableError,
    EngineSuggestionError,
    QueryCancelledError,
    QueryDeckError,
)
from querydeck.logging import get_logger, log_exception

_logger = get_logger(__name__)


# --------------------------------- State ------------------------------------ #


class QueryState(str, Enum):
    PENDING = "pending"
    ESTIMATING = "estimating"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in _TERMINAL


_TERMINAL = {QueryState.COMPLETED, QueryState.FAILED, QueryState.CANCELLED}

_TRANSITIONS: Dict[QueryState, Set[QueryState]] = {
    QueryState.PENDING: {QueryState.ESTIMATING, QueryState.EXECUTING, QueryState.FAILED, QueryState.CANCELLED},
    QueryState.ESTIMATING: {QueryState.EXECUTING, QueryState.FAILED, QueryState.CANCELLED},
    QueryState.EXECUTING: {QueryState.COMPLETED, QueryState.FAILED, QueryState.CANCELLED},
    QueryState.COMPLETED: set(),
    QueryState.FAILED: set(),
    QueryState.CANCELLED: set(),
}


class InvalidStateTransition(QueryDeckError):
    """A query handle was moved along an edge the state machine does not allow."""


@dataclass
class ActiveQueryHandle:
    query_id: str
    sql: str
    connector_id: str
    token: CancellationToken = field(default_factory=CancellationToken)
    state: QueryState = QueryState.PENDING
    started_at: float = field(default_factory=time.time)

    def transition(self, new_state: QueryState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise InvalidStateTransition(
                f"Query '{self.query_id}' cannot move from {self.state.value} to {new_state.value}"
            )
        self.state = new_state

    def finish(self, new_state: QueryState) -> None:
        """Move to a terminal state unless one was already reached."""
        if not self.state.is_terminal:
            self.transition(new_state)


# --------------------------------- Results ---------------------------------- #


@dataclass
class QueryResult:
    """A fully materialized result."""

    query_id: str
    connector_id: str
    rows: List[Row]
    columns: List[ColumnMetadata]
    execution_time_ms: float
    total_rows: Optional[int] = None
    query_stats: Optional[QueryStats] = None
    schema_changed: bool = False
    target_database: Optional[str] = None
    attached: Optional[AttachInfo] = None
    detached: Optional[str] = None
    switched_from: Optional[str] = None

    @property
    def row_count(self) -> int:
        return len(self.rows)

    def to_polars(self) -> pl.DataFrame:
        if self.rows:
            return pl.from_dicts(self.rows, infer_schema_length=None)
        return pl.DataFrame({c.name: [] for c in self.columns})


@dataclass(frozen=True)
class MemoryEstimate:
    estimated_rows: int
    estimated_bytes: int
    estimated_mb: float
    is_large: bool
    recommendation: str


Hook = Callable[..., Any]


@dataclass
class RouterHooks:
    """
    Callbacks for events the router cannot act on itself.

    Each may be a plain function or a coroutine function. Failures are logged
    and never interrupt the query.

      on_notice(message, level)          routing notices ("info" | "warning")
      on_schema_changed(database)        DDL ran; database is None for the default one
      on_database_attached(AttachInfo)
      on_database_detached(alias)
    """

    on_notice: Optional[Hook] = None
    on_schema_changed: Optional[Hook] = None
    on_database_attached: Optional[Hook] = None
    on_database_detached: Optional[Hook] = None


class StreamHandle:
    """
    Lazily executed, single-use stream of a large result.

    The statement runs when chunks() is first iterated. The handle stays
    registered with the router until the stream finishes, fails, is
    cancelled or closed.
    """

    def __init__(
        self,
        router: "ExecutionRouter",
        handle: ActiveQueryHandle,
        connector: Connector,
        options: StreamOptions,
        estimate: RowCount,
        switched_from: Optional[str] = None,
    ):
        self._router = router
        self._handle = handle
        self._connector = connector
        self._options = options
        self.estimate = estimate
        self.switched_from = switched_from
        self._consumed = False

    @property
    def query_id(self) -> str:
        return self._handle.query_id

    @property
    def sql(self) -> str:
        return self._handle.sql

    @property
    def connector_id(self) -> str:
        return self._handle.connector_id

    @property
    def state(self) -> QueryState:
        return self._handle.state

    @property
    def estimated_count(self) -> int:
        return self.estimate.count

    @property
    def is_estimated(self) -> bool:
        return self.estimate.is_estimated

    async def chunks(self) -> AsyncIterator[DataChunk]:
        if self._consumed:
            raise RuntimeError(f"Stream for query '{self.query_id}' has already been consumed")
        self._consumed = True

        outcome = QueryState.CANCELLED
        stream = self._router.executor.stream(self.sql, self._connector, self._options, self._handle.token)
        try:
            async with aclosing(stream) as it:
                async for chunk in it:
                    yield chunk
            outcome = QueryState.COMPLETED
        except QueryCancelledError:
            _logger.info("Query %s cancelled", self.query_id)
            raise
        except Exception:
            outcome = QueryState.FAILED
            raise
        finally:
            self._router._release(self._handle, outcome)

    async def collect(self) -> List[Row]:
        rows: List[Row] = []
        async for chunk in self.chunks():
            rows.extend(chunk.rows)
        return rows

    async def get_page(self, offset: int, page_size: int) -> DataChunk:
        return await self._router.get_page(self.sql, offset, page_size, connector_id=self.connector_id)

    def cancel(self) -> bool:
        return self._router.cancel(self.query_id)

    async def close(self) -> None:
        if not self._handle.state.is_terminal:
            self._handle.token.cancel("Stream closed")
            self._router._release(self._handle, QueryState.CANCELLED)

    def __repr__(self) -> str:
        return (
            f"StreamHandle(query_id={self.query_id!r}, connector={self.connector_id!r}, "
            f"estimate={self.estimate.count}, state={self.state.value})"
        )


# --------------------------------- Router ----------------------------------- #


class ExecutionRouter:
    """
    Orchestrates:
      - Connector ownership and selection
      - Dialect routing
      - Row-count estimation and delivery-mode choice
      - Active query registry and cancellation
    """

    def __init__(
        self,
        settings: Optional[QueryDeckSettings] = None,
        detector: Optional[EngineDetectorRegistry] = None,
        estimator: Optional[CountEstimator] = None,
        result_cache: Optional[ResultChunkCache] = None,
        hooks: Optional[RouterHooks] = None,
    ):
        self.settings = settings or QueryDeckSettings()
        det = self.settings.detection
        ex = self.settings.execution
        self.detector = detector or default_registry(
            high_confidence_score=det.high_confidence_score,
            medium_confidence_score=det.medium_confidence_score,
            min_score_difference=det.min_score_difference,
        )
        self.estimator = estimator or CountEstimator(
            ttl=ex.count_cache_ttl_seconds,
            timeout=ex.estimation_timeout_seconds,
        )
        if result_cache is None and self.settings.cache.enabled:
            result_cache = ResultChunkCache(
                SQLiteChunkStore(self.settings.cache.path),
                max_age=self.settings.cache.max_age_seconds,
            )
        self.result_cache = result_cache
        self.executor = StreamingExecutor(result_cache)
        self.hooks = hooks or RouterHooks()

        self._connectors: Dict[str, Connector] = {}
        self._active: Dict[str, ActiveQueryHandle] = {}
        self._background: Set[asyncio.Task] = set()
        self.active_connector_id = self.settings.active_connector

    @classmethod
    def from_settings(cls, settings: QueryDeckSettings, **kwargs: Any) -> "ExecutionRouter":
        """Router with every connector declared in settings.connectors registered."""
        router = cls(settings, **kwargs)
        for name, cfg in settings.connectors.items():
            connector = create_connector(cfg.type, **cfg.params)
            router.register_connector(connector, name=name)
        return router

    # ------------------------------ Connectors --------------------------------

    def register_connector(self, connector: Connector, *, name: Optional[str] = None, activate: bool = False) -> None:
        """
        Register (or replace) a connector under `name` (default: its connector_id).

        Raises:
            ValueError: advertised capabilities don't match implemented methods.
        """
        validate_capabilities(connector)
        key = name or connector.connector_id
        self._connectors[key] = connector
        if activate:
            self.active_connector_id = key
        _logger.debug("Registered connector %s as '%s'", connector, key)

    def get_connector(self, connector_id: Optional[str] = None) -> Connector:
        key = connector_id or self.active_connector_id
        connector = self._connectors.get(key)
        if connector is None:
            raise ConnectorNotRegisteredError(
                f"Connector '{key}' is not registered. "
                f"Registered connectors: {', '.join(self._connectors) or '(none)'}"
            )
        return connector

    def set_active_connector(self, connector_id: str) -> None:
        self.get_connector(connector_id)
        self.active_connector_id = connector_id

    def is_available(self, connector_id: str) -> bool:
        return connector_id in self._connectors

    @property
    def connectors(self) -> List[str]:
        return list(self._connectors)

    async def close(self) -> None:
        self.cancel_all()
        for connector in self._connectors.values():
            try:
                await connector.close()
            except Exception as e:
                log_exception(_logger, f"Closing connector '{connector.connector_id}' failed", e)
        if self.result_cache is not None:
            self.result_cache.close()

    # ------------------------------ Hooks -------------------------------------

    async def _emit(self, hook_name: str, *args: Any) -> None:
        hook = getattr(self.hooks, hook_name)
        if hook is None:
            return
        try:
            out = hook(*args)
            if inspect.isawaitable(out):
                await out
        except Exception as e:
            log_exception(_logger, f"Hook {hook_name} failed", e)

    # ------------------------------ Routing -----------------------------------

    def detect_dialect(self, sql: str) -> EngineDetection:
        return self.detector.detect(sql)

    def target_engine(self, detection: EngineDetection, source_id: str) -> str:
        """
        Detected engine when confident enough. Otherwise the default engine,
        unless `source_id` is an engine the detector has no plugin for (e.g.
        postgres), which keeps its statements.
        """
        det = self.settings.detection
        if not detection.is_unknown and confidence_at_least(detection.confidence, det.min_switch_confidence):
            return detection.engine
        if source_id not in self.detector:
            return source_id
        return det.default_engine

    async def _route(self, sql: str, source_id: str) -> str:
        mode = self.settings.detection.mode
        if mode == "off":
            return source_id

        detection = self.detect_dialect(sql)
        target = self.target_engine(detection, source_id)
        if target == source_id:
            return source_id

        summary = f" ({', '.join(detection.signals[:2])})" if detection.signals and target == detection.engine else ""
        if not self.is_available(target):
            raise ConnectorUnavailableError(
                f"Detected {target} syntax{summary}, but {target} is not connected.\n\n"
                f"Register a '{target}' connector or disable dialect detection:\n"
                "  export QUERYDECK_DETECTION_MODE=off",
                target_engine=target,
                signals=detection.signals,
            )

        if mode == "suggest":
            raise EngineSuggestionError(
                f"This looks like {target} syntax{summary or ' (default)'}. Switch connector to run.",
                target_engine=target,
                signals=detection.signals,
            )

        self.active_connector_id = target
        await self._emit("on_notice", f"Auto-switched to {target}{summary or ' (default)'}", "info")
        _logger.info("Auto-switched from %s to %s", source_id, target)
        return target

    # ------------------------------ Registry ----------------------------------

    def _register(self, query_id: Optional[str], sql: str, connector_id: str) -> ActiveQueryHandle:
        query_id = query_id or uuid.uuid4().hex[:12]
        if query_id in self._active:
            raise ValueError(f"Query '{query_id}' is already running")
        handle = ActiveQueryHandle(query_id=query_id, sql=sql, connector_id=connector_id)
        self._active[query_id] = handle
        return handle

    def _release(self, handle: ActiveQueryHandle, state: QueryState) -> None:
        handle.finish(state)
        if self._active.get(handle.query_id) is handle:
            del self._active[handle.query_id]

    def active_queries(self) -> List[ActiveQueryHandle]:
        return list(self._active.values())

    def _interrupt(self, connector_id: str) -> None:
        """Best-effort driver interrupt once no other query uses the connector."""
        if any(h.connector_id == connector_id for h in self._active.values()):
            return
        connector = self._connectors.get(connector_id)
        if connector is None:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        task = loop.create_task(connector.cancel())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    def cancel(self, query_id: str) -> bool:
        """Cancel one query. Returns False if no such query is active."""
        handle = self._active.pop(query_id, None)
        if handle is None:
            return False
        handle.token.cancel()
        handle.finish(QueryState.CANCELLED)
        self._interrupt(handle.connector_id)
        _logger.info("Cancelled query %s", query_id)
        return True

    def cancel_all(self) -> int:
        handles = list(self._active.values())
        self._active.clear()
        for handle in handles:
            handle.token.cancel()
            handle.finish(QueryState.CANCELLED)
        for connector_id in {h.connector_id for h in handles}:
            self._interrupt(connector_id)
        if handles:
            _logger.info("Cancelled %d queries", len(handles))
        return len(handles)

    # ------------------------------ Execution ---------------------------------

    def should_stream(self, sql: str, estimate: int) -> bool:
        """
        Streamed delivery: unbounded with a large or unknown count, or a
        trailing LIMIT above the safe threshold. Aggregations never stream.
        """
        if is_aggregation_query(sql):
            return False
        ex = self.settings.execution
        limit = trailing_limit(sql)
        if limit is None:
            return estimate == C.UNKNOWN_COUNT or estimate >= ex.virtual_table_threshold
        return limit > ex.large_limit_threshold

    async def _execute_full(self, handle: ActiveQueryHandle, connector: Connector) -> QueryResult:
        start = time.perf_counter()
        options = StreamOptions(chunk_size=self.settings.execution.chunk_size)
        rows: List[Row] = []
        last: Optional[DataChunk] = None
        async with aclosing(self.executor.stream(handle.sql, connector, options, handle.token)) as it:
            async for chunk in it:
                rows.extend(chunk.rows)
                last = chunk
        return QueryResult(
            query_id=handle.query_id,
            connector_id=handle.connector_id,
            rows=rows,
            columns=(last.columns or []) if last else [],
            execution_time_ms=(time.perf_counter() - start) * 1000,
            total_rows=last.total_rows if last else None,
            query_stats=last.query_stats if last else None,
        )

    async def _after_statement(self, result: QueryResult, sql: str) -> None:
        attach = parse_attach_statement(sql)
        if attach is not None:
            result.attached = attach
            result.schema_changed = True
            await self._emit("on_database_attached", attach)
            return
        alias = parse_detach_statement(sql)
        if alias is not None:
            result.detached = alias
            result.schema_changed = True
            await self._emit("on_database_detached", alias)
            return
        if is_ddl_statement(sql):
            result.schema_changed = True
            result.target_database = extract_target_database(sql)
            await self._emit("on_schema_changed", result.target_database)

    async def run(
        self,
        sql: str,
        hint: Optional[str] = None,
        query_id: Optional[str] = None,
    ) -> Union[QueryResult, StreamHandle]:
        """
        Route and execute `sql`.

        Raises:
            ConnectorNotRegisteredError: `hint` names no registered connector.
            ConnectorUnavailableError / EngineSuggestionError: routing refused.
            QueryCancelledError: the query was cancelled before it finished.
        """
        source_id = hint or self.active_connector_id
        target_id = await self._route(sql, source_id)
        connector = self.get_connector(target_id)
        switched_from = source_id if target_id != source_id else None

        handle = self._register(query_id, sql, target_id)
        try:
            await handle.token.guard(connector.connect())

            if is_non_select_statement(sql):
                handle.transition(QueryState.EXECUTING)
                result = await self._execute_full(handle, connector)
                await self._after_statement(result, sql)
            elif connector.has(CC.EXACT_METADATA):
                handle.transition(QueryState.EXECUTING)
                result = await self._execute_full(handle, connector)
            else:
                handle.transition(QueryState.ESTIMATING)
                estimate = await self.estimator.estimate(sql, connector, handle.token)
                handle.transition(QueryState.EXECUTING)
                if self.should_stream(sql, estimate.count):
                    _logger.debug("Streaming query %s (estimate=%d)", handle.query_id, estimate.count)
                    options = StreamOptions(
                        chunk_size=self.settings.execution.chunk_size,
                        cache_results=self.result_cache is not None,
                    )
                    return StreamHandle(self, handle, connector, options, estimate, switched_from)
                result = await self._execute_full(handle, connector)
                if result.total_rows is None and not estimate.is_estimated:
                    result.total_rows = estimate.count
        except QueryCancelledError:
            _logger.info("Query %s cancelled", handle.query_id)
            self._release(handle, QueryState.CANCELLED)
            raise
        except asyncio.CancelledError:
            handle.token.cancel()
            self._release(handle, QueryState.CANCELLED)
            raise
        except Exception:
            self._release(handle, QueryState.FAILED)
            raise

        result.switched_from = switched_from
        self._release(handle, QueryState.COMPLETED)
        return result

    async def execute(self, sql: str, connector_id: Optional[str] = None) -> QueryResult:
        """Run `sql` on one connector and load the whole result, without routing."""
        connector = self.get_connector(connector_id)
        handle = self._register(None, sql, connector_id or self.active_connector_id)
        try:
            await handle.token.guard(connector.connect())
            handle.transition(QueryState.EXECUTING)
            result = await self._execute_full(handle, connector)
            if is_non_select_statement(sql):
                await self._after_statement(result, sql)
        except QueryCancelledError:
            self._release(handle, QueryState.CANCELLED)
            raise
        except asyncio.CancelledError:
            handle.token.cancel()
            self._release(handle, QueryState.CANCELLED)
            raise
        except Exception:
            self._release(handle, QueryState.FAILED)
            raise
        self._release(handle, QueryState.COMPLETED)
        return result

    def stream(
        self,
        sql: str,
        connector_id: Optional[str] = None,
        options: Optional[StreamOptions] = None,
    ) -> StreamHandle:
        """Stream `sql` on one connector regardless of its estimated size."""
        connector = self.get_connector(connector_id)
        opts = options or StreamOptions(
            chunk_size=self.settings.execution.chunk_size,
            cache_results=self.result_cache is not None,
        )
        handle = self._register(None, sql, connector_id or self.active_connector_id)
        handle.transition(QueryState.EXECUTING)
        return StreamHandle(self, handle, connector, opts, RowCount(C.UNKNOWN_COUNT, True))

    # ------------------------------ Facade ------------------------------------

    async def get_row_count(
        self,
        sql: str,
        connector_id: Optional[str] = None,
        token: Optional[CancellationToken] = None,
    ) -> RowCount:
        connector = self.get_connector(connector_id)
        await connector.connect()
        return await self.estimator.estimate(sql, connector, token)

    async def get_page(
        self,
        sql: str,
        offset: int,
        page_size: int,
        connector_id: Optional[str] = None,
    ) -> DataChunk:
        """
        One page of rows [offset, offset + page_size).

        Pages aligned on page_size are served from the result cache when
        possible. Connectors without PAGINATION (or statements with their own
        LIMIT) are read from the start and sliced.

        `done` is set only when the page is known to end the result: a short
        page, or a full page whose end was seen while streaming. A full page
        fetched with LIMIT/OFFSET reports done=False.
        """
        if offset < 0 or page_size < 1:
            raise ValueError("offset must be >= 0 and page_size >= 1")
        connector = self.get_connector(connector_id)

        if self.result_cache is not None and offset % page_size == 0:
            key = chunk_cache_key(sql, page_size, connector.connector_id)
            try:
                cached = await self.result_cache.get_entry(key, offset // page_size)
            except Exception as e:
                log_exception(_logger, "Result cache read failed, executing instead", e)
                cached = None
            if cached is not None:
                _logger.debug("Result cache hit for page at offset %d", offset)
                return DataChunk(
                    rows=cached.rows,
                    start_index=offset,
                    end_index=offset + len(cached.rows) - 1,
                    done=cached.done or len(cached.rows) < page_size,
                )

        options = StreamOptions(
            limit=page_size,
            offset=offset,
            chunk_size=page_size,
            paginate=True,
            cache_results=self.result_cache is not None,
        )
        rewritten = StreamingExecutor.prepare_sql(sql, connector, options) != sql
        if not rewritten:
            options = StreamOptions(chunk_size=page_size, cache_results=options.cache_results)

        handle = self._register(None, sql, connector_id or self.active_connector_id)
        try:
            await handle.token.guard(connector.connect())
            handle.transition(QueryState.EXECUTING)
            page = await self._read_page(handle, connector, options, offset, page_size)
        except QueryCancelledError:
            self._release(handle, QueryState.CANCELLED)
            raise
        except Exception:
            self._release(handle, QueryState.FAILED)
            raise
        self._release(handle, QueryState.COMPLETED)
        return page

    async def _read_page(
        self,
        handle: ActiveQueryHandle,
        connector: Connector,
        options: StreamOptions,
        offset: int,
        page_size: int,
    ) -> DataChunk:
        rows: List[Row] = []
        columns: Optional[List[ColumnMetadata]] = None
        total_rows: Optional[int] = None
        done = False
        async with aclosing(self.executor.stream(handle.sql, connector, options, handle.token)) as it:
            async for chunk in it:
                columns = columns or chunk.columns
                total_rows = chunk.total_rows
                lo = max(offset - chunk.start_index, 0)
                hi = offset + page_size - chunk.start_index
                if hi > 0:
                    rows.extend(chunk.rows[lo:hi])
                if chunk.done:
                    done = chunk.end_index < offset + page_size
                    break
                # One row past the page proves there is more
                if chunk.end_index >= offset + page_size:
                    break
        if options.paginate:
            done = len(rows) < page_size
        return DataChunk(
            rows=rows,
            start_index=offset,
            end_index=offset + len(rows) - 1,
            done=done,
            columns=columns,
            total_rows=total_rows,
        )

    async def estimate_memory_usage(self, sql: str, connector_id: Optional[str] = None) -> MemoryEstimate:
        unknown = MemoryEstimate(-1, -1, -1.0, True, "Unable to estimate - use virtual scrolling for safety")
        try:
            count = (await self.get_row_count(sql, connector_id)).count
        except QueryCancelledError:
            raise
        except Exception as e:
            log_exception(_logger, "Memory estimation failed", e)
            return unknown
        if count <= 0:
            return unknown

        connector = self.get_connector(connector_id)
        avg_row_size = C.DEFAULT_ROW_SIZE_BYTES
        sample = min(C.MEMORY_SAMPLE_ROWS, count)
        try:
            sizes: List[int] = []
            options = QueryOptions(chunk_size=sample, max_rows=sample)
            async with aclosing(connector.query(sql, options)) as it:
                async for chunk in it:
                    sizes.extend(len(json.dumps(r, default=str, separators=(",", ":"))) for r in chunk.rows)
                    if sizes or chunk.done:
                        break
            if sizes:
                avg_row_size = -(-sum(sizes) // len(sizes))
        except Exception as e:
            log_exception(_logger, "Could not sample rows for size estimation, using default", e)

        estimated_bytes = count * avg_row_size
        estimated_mb = estimated_bytes / (1024 * 1024)
        is_large = estimated_mb > C.LARGE_RESULT_MB or count > C.LARGE_RESULT_ROWS
        if estimated_mb > C.HUGE_RESULT_MB:
            recommendation = "Very large result set (>500MB). Consider adding WHERE clause to filter data."
        elif estimated_mb > C.VERY_LARGE_RESULT_MB:
            recommendation = "Large result set. Virtual scrolling recommended."
        elif is_large:
            recommendation = "Moderate size. Virtual scrolling will be used for optimal performance."
        else:
            recommendation = "Small result set. Regular display will be used."
        return MemoryEstimate(count, estimated_bytes, round(estimated_mb, 1), is_large, recommendation)

    def __repr__(self) -> str:
        return (
            f"ExecutionRouter(active={self.active_connector_id!r}, connectors={self.connectors}, "
            f"running={len(self._active)})"
        )
