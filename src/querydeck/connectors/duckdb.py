# src/querydeck/connectors/duckdb.py
"""
DuckDB connector.

Results are pulled as Arrow record batches (cursor.fetch_record_batch), so a
large result never has to be materialized in one piece. Each statement runs
on its own cursor, which lets several queries stream concurrently from the
same database. Blocking DuckDB calls are pushed to worker threads with
asyncio.to_thread.
"""

from __future__ import annotations

import asyncio
import json
import os
import re
from typing import Any, AsyncIterator, Dict, List, Optional, Set

import duckdb
import pyarrow as pa

from querydeck import constants as C
from querydeck.connectors.base import (
    ColumnInfo,
    Connector,
    QueryChunk,
    QueryOptions,
    QueryStats,
    Row,
    Schema,
    TableInfo,
)
from querydeck.connectors.capabilities import ConnectorCapabilities as CC
from querydeck.connectors.registry import register_connector
from querydeck.logging import get_logger, log_exception

_logger = get_logger(__name__)

# Tried in order against the EXPLAIN text; the first hit wins
_CARDINALITY_PATTERNS = (
    re.compile(r"~(\d+)\s+Rows", re.IGNORECASE),
    re.compile(r"EC:\s*(\d+)", re.IGNORECASE),
    re.compile(r"estimated[_\s]cardinality[:\s]+(\d+)", re.IGNORECASE),
    re.compile(r"Cardinality:\s*(\d+)", re.IGNORECASE),
    re.compile(r"SEQ_SCAN.*?(\d{3,})", re.IGNORECASE | re.DOTALL),
)


def parse_explain_cardinality(explain_text: str) -> int:
    """Row estimate from DuckDB EXPLAIN output, or -1 if none is present."""
    for pattern in _CARDINALITY_PATTERNS:
        m = pattern.search(explain_text or "")
        if m:
            return int(m.group(1))
    return C.UNKNOWN_COUNT


class PayloadStats:
    """Accumulates QueryStats over the rows of one statement."""

    def __init__(self, large_row_threshold: int = C.LARGE_ROW_THRESHOLD_BYTES):
        self.large_row_threshold = large_row_threshold
        self.total_rows = 0
        self.total_bytes = 0
        self.large_row_count = 0
        self.max_row_size = 0
        self.chunk_count = 0

    def add(self, rows: List[Row]) -> None:
        if not rows:
            return
        self.chunk_count += 1
        for row in rows:
            size = len(json.dumps(row, default=str))
            self.total_rows += 1
            self.total_bytes += size
            if size > self.max_row_size:
                self.max_row_size = size
            if size > self.large_row_threshold:
                self.large_row_count += 1

    def finish(self) -> QueryStats:
        avg = round(self.total_bytes / self.total_rows) if self.total_rows else 0
        return QueryStats(
            total_rows=self.total_rows,
            total_bytes=self.total_bytes,
            large_row_count=self.large_row_count,
            max_row_size=self.max_row_size,
            chunk_count=self.chunk_count,
            avg_row_size=avg,
        )


def _schema_from_description(description: Any) -> Optional[Schema]:
    if not description:
        return None
    columns = [ColumnInfo(name=d[0], type=str(d[1]), nullable=True) for d in description]
    return Schema(tables=[TableInfo(name="query_result", columns=columns)])


def _next_batch(reader: pa.RecordBatchReader) -> Optional[pa.RecordBatch]:
    try:
        return reader.read_next_batch()
    except StopIteration:
        return None


def _configure_threads(con: duckdb.DuckDBPyConnection, threads: Optional[int]) -> None:
    """Apply an explicit thread count, or QUERYDECK_DUCKDB_THREADS when set."""
    env_threads = os.getenv("QUERYDECK_DUCKDB_THREADS")
    if threads is None and env_threads:
        try:
            threads = int(env_threads)
        except ValueError:
            _logger.warning("Ignoring invalid QUERYDECK_DUCKDB_THREADS=%r", env_threads)
    if threads:
        con.execute(f"SET threads = {int(threads)}")


@register_connector("duckdb")
class DuckDBConnector(Connector):
    capabilities = CC.PAGINATION | CC.PLAN_ESTIMATE | CC.SCHEMA

    def __init__(
        self,
        database: str = ":memory:",
        read_only: bool = False,
        config: Optional[Dict[str, str]] = None,
        threads: Optional[int] = None,
        large_row_threshold: int = C.LARGE_ROW_THRESHOLD_BYTES,
    ):
        self.database = database
        self.read_only = read_only
        self.config = dict(config or {})
        self.threads = threads
        self.large_row_threshold = large_row_threshold
        self._con: Optional[duckdb.DuckDBPyConnection] = None
        self._cursors: Set[duckdb.DuckDBPyConnection] = set()

    # ------------------------------ Lifecycle ---------------------------------

    def _open(self) -> duckdb.DuckDBPyConnection:
        con = duckdb.connect(self.database, read_only=self.read_only, config=self.config)
        _configure_threads(con, self.threads)
        return con

    async def connect(self) -> None:
        if self._con is None:
            self._con = await asyncio.to_thread(self._open)
            _logger.debug("Opened DuckDB database %s", self.database)

    async def close(self) -> None:
        if self._con is not None:
            con, self._con = self._con, None
            await asyncio.to_thread(con.close)

    @property
    def is_connected(self) -> bool:
        return self._con is not None

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        if self._con is None:
            raise ConnectionError(
                "DuckDB connector is not connected.\n\n"
                "Call `await connector.connect()` before running statements."
            )
        return self._con

    # ------------------------------ Execution ---------------------------------

    async def query(self, sql: str, options: Optional[QueryOptions] = None) -> AsyncIterator[QueryChunk]:
        opts = options or QueryOptions()
        await self.connect()
        cursor = self.connection.cursor()
        self._cursors.add(cursor)
        stats = PayloadStats(self.large_row_threshold)
        try:
            await asyncio.to_thread(cursor.execute, sql)
            schema = _schema_from_description(cursor.description)

            if schema is None or opts.max_rows == 0:
                yield QueryChunk(rows=[], done=True, schema=schema, query_stats=stats.finish())
                return

            reader = await asyncio.to_thread(cursor.fetch_record_batch, opts.chunk_size)
            remaining = opts.max_rows
            while True:
                batch = await asyncio.to_thread(_next_batch, reader)
                if batch is None:
                    break
                rows = batch.to_pylist()
                if remaining is not None:
                    rows = rows[:remaining]
                    remaining -= len(rows)
                stats.add(rows)
                if rows:
                    yield QueryChunk(rows=rows, done=False, schema=schema)
                if remaining is not None and remaining <= 0:
                    break

            yield QueryChunk(rows=[], done=True, schema=schema, query_stats=stats.finish())
        finally:
            self._cursors.discard(cursor)
            cursor.close()

    async def cancel(self) -> None:
        for cursor in list(self._cursors):
            try:
                cursor.interrupt()
            except duckdb.Error as e:
                log_exception(_logger, "DuckDB interrupt failed", e)

    # ------------------------------ Estimation --------------------------------

    def _explain(self, sql: str) -> str:
        cursor = self.connection.cursor()
        try:
            rows = cursor.execute(f"EXPLAIN {sql.strip().rstrip(';')}").fetchall()
        finally:
            cursor.close()
        return "\n".join(str(value) for row in rows for value in row if value is not None)

    async def estimate_row_count(self, sql: str) -> int:
        await self.connect()
        text = await asyncio.to_thread(self._explain, sql)
        return parse_explain_cardinality(text)

    # ------------------------------ Introspection -----------------------------

    def _fetch_schema(self) -> Schema:
        cursor = self.connection.cursor()
        try:
            table_rows = cursor.execute(
                """
                SELECT table_schema, table_name, table_type
                FROM information_schema.tables
                WHERE table_schema NOT IN ('information_schema', 'pg_catalog')
                ORDER BY table_schema, table_name
                """
            ).fetchall()

            tables: List[TableInfo] = []
            for schema_name, table_name, table_type in table_rows:
                columns: List[ColumnInfo] = []
                try:
                    col_rows = cursor.execute(
                        """
                        SELECT column_name, data_type, is_nullable
                        FROM information_schema.columns
                        WHERE table_schema = ? AND table_name = ?
                        ORDER BY ordinal_position
                        """,
                        [schema_name, table_name],
                    ).fetchall()
                    columns = [ColumnInfo(name=c, type=t, nullable=(n == "YES")) for c, t, n in col_rows]
                except duckdb.Error as e:
                    log_exception(_logger, f"Could not read columns for {schema_name}.{table_name}", e)
                tables.append(
                    TableInfo(
                        name=table_name,
                        schema=schema_name,
                        type=(table_type or "table").lower(),
                        columns=columns,
                    )
                )
        finally:
            cursor.close()
        return Schema(tables=tables, database=self.database)

    async def get_schema(self) -> Schema:
        await self.connect()
        return await asyncio.to_thread(self._fetch_schema)

    def __repr__(self) -> str:
        return f"DuckDBConnector(database={self.database!r}, read_only={self.read_only})"
