# src/querydeck/engine/streaming.py
"""
Streaming executor.

Turns a connector's native chunks (whatever size the backend produces) into
DataChunks of exactly `chunk_size` rows with absolute start/end indices:

  1. optionally rewrite the statement with LIMIT/OFFSET (server-side paging)
  2. pull native chunks, capturing columns from the first schema-bearing
     chunk (or inferring them from the first row)
  3. re-buffer and emit full chunks (done=False), caching each one
  4. emit the remainder as the single done=True chunk with payload stats

A full chunk is emitted as soon as the buffer holds `chunk_size` rows, so a
result that is an exact multiple of `chunk_size` ends with an empty done chunk.

The cancellation token is checked at every native-chunk boundary and before
every emitted chunk.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Tuple

from querydeck import constants as C
from querydeck.connectors.base import Connector, QueryChunk, QueryOptions, QueryStats, Row
from querydeck.connectors.capabilities import ConnectorCapabilities as CC
from querydeck.engine.cancellation import CancellationToken
from querydeck.engine.result_cache import ResultChunkCache
from querydeck.engine.statements import apply_pagination, has_user_limit, hash_query, is_non_select_statement
from querydeck.errors import wrap_connector_error
from querydeck.logging import get_logger, log_exception

_logger = get_logger(__name__)


@dataclass(frozen=True)
class ColumnMetadata:
    name: str
    type: str
    nullable: Optional[bool] = None
    comment: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"name": self.name, "type": self.type}
        if self.nullable is not None:
            d["nullable"] = self.nullable
        if self.comment is not None:
            d["comment"] = self.comment
        return d


@dataclass
class DataChunk:
    rows: List[Row]
    start_index: int
    end_index: int
    done: bool
    columns: Optional[List[ColumnMetadata]] = None
    total_rows: Optional[int] = None
    query_stats: Optional[QueryStats] = None

    def __len__(self) -> int:
        return len(self.rows)


@dataclass(frozen=True)
class StreamOptions:
    limit: Optional[int] = None
    offset: int = 0
    chunk_size: int = C.DEFAULT_CHUNK_SIZE
    paginate: bool = False
    cache_results: bool = False


def chunk_cache_key(sql: str, chunk_size: int, connector_id: str) -> str:
    """Result-cache key for `sql` run on `connector_id` in chunks of `chunk_size` rows."""
    return f"{connector_id}:{hash_query(sql)}-{chunk_size}"


def columns_from_chunk(chunk: QueryChunk) -> Optional[List[ColumnMetadata]]:
    """Column metadata from a native chunk's schema, else from its first row."""
    if chunk.schema is not None and chunk.schema.columns:
        return [ColumnMetadata(c.name, c.type, c.nullable, c.comment) for c in chunk.schema.columns]
    if chunk.rows:
        first = chunk.rows[0]
        return [ColumnMetadata(name, type(value).__name__) for name, value in first.items()]
    return None


@dataclass
class _StreamState:
    current_index: int
    buffer: List[Row] = field(default_factory=list)
    columns: Optional[List[ColumnMetadata]] = None
    total_rows: Optional[int] = None
    query_stats: Optional[QueryStats] = None
    first_chunk: bool = True
    last_cached: Optional[Tuple[int, List[Row]]] = None


class StreamingExecutor:
    def __init__(self, cache: Optional[ResultChunkCache] = None):
        self.cache = cache

    @staticmethod
    def prepare_sql(sql: str, connector: Connector, options: StreamOptions) -> str:
        """Append LIMIT/OFFSET when paging is requested and safe for this statement."""
        if not options.paginate or not connector.has(CC.PAGINATION):
            return sql
        if has_user_limit(sql) or is_non_select_statement(sql):
            return sql
        return apply_pagination(sql, options.limit, options.offset)

    async def _cache_chunk(self, query_hash: str, chunk_index: int, rows: List[Row], done: bool = False) -> None:
        try:
            await self.cache.cache_chunk(query_hash, chunk_index, rows, done=done)
        except Exception as e:
            log_exception(_logger, "Result cache write failed", e)

    async def stream(
        self,
        sql: str,
        connector: Connector,
        options: Optional[StreamOptions] = None,
        token: Optional[CancellationToken] = None,
    ) -> AsyncIterator[DataChunk]:
        """
        Yield the result of `sql` as DataChunks.

        Raises:
            QueryCancelledError: `token` fired; nothing further is yielded or cached.
            ReadOnlyDatabaseWriteError: the statement wrote to a read-only database.
        """
        opts = options or StreamOptions()
        token = token or CancellationToken()
        token.raise_if_cancelled()

        size = opts.chunk_size
        use_cache = opts.cache_results and self.cache is not None
        query_hash = chunk_cache_key(sql, size, connector.connector_id)
        exec_sql = self.prepare_sql(sql, connector, opts)
        limited = exec_sql != sql and opts.limit is not None
        if exec_sql != sql:
            _logger.debug("Paginated statement: %s", exec_sql)

        state = _StreamState(current_index=opts.offset)
        native = connector.query(exec_sql, QueryOptions(chunk_size=size))
        try:
            while True:
                token.raise_if_cancelled()
                try:
                    chunk = await token.guard(native.__anext__())
                except StopAsyncIteration:
                    break
                token.raise_if_cancelled()

                if chunk.query_stats is not None:
                    state.query_stats = chunk.query_stats
                if state.first_chunk and chunk.total_rows is not None:
                    state.total_rows = chunk.total_rows
                if state.columns is None:
                    state.columns = columns_from_chunk(chunk)
                state.first_chunk = False

                state.buffer.extend(chunk.rows)
                while len(state.buffer) >= size:
                    token.raise_if_cancelled()
                    rows = state.buffer[:size]
                    del state.buffer[:size]
                    if use_cache and state.current_index % size == 0:
                        await self._cache_chunk(query_hash, state.current_index // size, rows)
                        state.last_cached = (state.current_index // size, rows)
                    yield DataChunk(
                        rows=rows,
                        start_index=state.current_index,
                        end_index=state.current_index + len(rows) - 1,
                        done=False,
                        columns=state.columns,
                        total_rows=state.total_rows,
                    )
                    state.current_index += len(rows)

                if chunk.done:
                    break

            token.raise_if_cancelled()
            rows = state.buffer
            state.buffer = []
            if use_cache and state.current_index % size == 0:
                # A stream cut short by the paging LIMIT says nothing about the rest of the result
                complete = not (limited and state.current_index + len(rows) - opts.offset >= opts.limit)
                index = state.current_index // size
                if rows and complete:
                    await self._cache_chunk(query_hash, index, rows, done=True)
                elif complete and state.last_cached is not None and state.last_cached[0] == index - 1:
                    await self._cache_chunk(query_hash, index - 1, state.last_cached[1], done=True)
            yield DataChunk(
                rows=rows,
                start_index=state.current_index,
                end_index=state.current_index + len(rows) - 1,
                done=True,
                columns=state.columns,
                total_rows=state.total_rows,
                query_stats=state.query_stats,
            )
        except Exception as e:
            wrapped = wrap_connector_error(e)
            if wrapped is not None:
                raise wrapped from e
            raise
        finally:
            await native.aclose()
