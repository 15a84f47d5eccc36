import asyncio
import re
from typing import Any, Dict, List, Optional

import pytest

from querydeck.config.models import QueryDeckSettings
from querydeck.connectors.base import (
    ColumnInfo,
    Connector,
    QueryChunk,
    QueryOptions,
    QueryStats,
    Schema,
    TableInfo,
)
from querydeck.connectors.capabilities import ConnectorCapabilities as CC
from querydeck.connectors.duckdb import DuckDBConnector
from querydeck.engine.result_cache import ResultChunkCache
from querydeck.engine.router import ExecutionRouter


def run(coro):
    """Run a coroutine to completion on a fresh event loop."""
    return asyncio.run(coro)


async def collect(agen) -> List[Any]:
    return [item async for item in agen]


_PAGING_RE = re.compile(r"\bLIMIT (\d+)(?: OFFSET (\d+))?\s*$", re.IGNORECASE)


def make_rows(n: int, start: int = 0) -> List[Dict[str, Any]]:
    return [{"id": i, "name": f"row{i}"} for i in range(start, start + n)]


class FakeConnector(Connector):
    """
    In-memory connector with scripted behaviour.

    Rows are served in native chunks of `native_chunk` rows (default: the
    requested chunk size). A trailing LIMIT/OFFSET slices the rows. Every
    statement and estimate call is recorded.
    """

    def __init__(
        self,
        rows: Optional[List[Dict[str, Any]]] = None,
        *,
        connector_id: str = "fake",
        capabilities: CC = CC.PAGINATION | CC.PLAN_ESTIMATE,
        native_chunk: Optional[int] = None,
        estimate: Any = -1,
        estimate_delay: float = 0.0,
        chunk_delay: float = 0.0,
        fail_with: Optional[BaseException] = None,
        report_total: bool = False,
        with_schema: bool = False,
    ):
        self.connector_id = connector_id
        self.capabilities = capabilities
        self.rows = list(rows or [])
        self.native_chunk = native_chunk
        self.estimate = estimate
        self.estimate_delay = estimate_delay
        self.chunk_delay = chunk_delay
        self.fail_with = fail_with
        self.report_total = report_total
        self.with_schema = with_schema

        self.connected = False
        self.queries: List[str] = []
        self.query_options: List[QueryOptions] = []
        self.estimate_calls = 0
        self.cancel_calls = 0
        self.closed_streams = 0

    async def connect(self) -> None:
        self.connected = True

    async def close(self) -> None:
        self.connected = False

    @property
    def is_connected(self) -> bool:
        return self.connected

    def _schema(self) -> Optional[Schema]:
        if not self.with_schema:
            return None
        return Schema([TableInfo("query_result", columns=[ColumnInfo("id", "BIGINT"), ColumnInfo("name", "VARCHAR")])])

    async def query(self, sql: str, options: Optional[QueryOptions] = None):
        opts = options or QueryOptions()
        self.queries.append(sql)
        self.query_options.append(opts)
        try:
            if self.fail_with is not None:
                raise self.fail_with
            total = len(self.rows) if self.report_total else None
            schema = self._schema()
            if opts.max_rows == 0:
                yield QueryChunk(rows=[], done=True, schema=schema, total_rows=total)
                return

            rows = self.rows
            m = _PAGING_RE.search(sql)
            if m:
                start = int(m.group(2) or 0)
                rows = rows[start : start + int(m.group(1))]
            if opts.max_rows is not None:
                rows = rows[: opts.max_rows]
            size = self.native_chunk or opts.chunk_size
            first = True
            for i in range(0, len(rows), size):
                if self.chunk_delay:
                    await asyncio.sleep(self.chunk_delay)
                yield QueryChunk(rows=rows[i : i + size], schema=schema, total_rows=total if first else None)
                first = False
            stats = QueryStats(len(rows), 0, 0, 0, max(1, -(-len(rows) // size)), 0)
            yield QueryChunk(rows=[], done=True, schema=schema, total_rows=total if first else None, query_stats=stats)
        finally:
            self.closed_streams += 1

    async def estimate_row_count(self, sql: str) -> int:
        self.estimate_calls += 1
        if self.estimate_delay:
            await asyncio.sleep(self.estimate_delay)
        if isinstance(self.estimate, BaseException):
            raise self.estimate
        return self.estimate

    async def get_schema(self) -> Schema:
        return Schema([TableInfo("t", columns=[ColumnInfo("id", "BIGINT")])])

    async def cancel(self) -> None:
        self.cancel_calls += 1


class GatedConnector(FakeConnector):
    """Serves one native chunk, then blocks until `gate` is set."""

    def __init__(self, rows=None, **kwargs):
        super().__init__(rows, **kwargs)
        self.gate = asyncio.Event()

    async def query(self, sql: str, options: Optional[QueryOptions] = None):
        opts = options or QueryOptions()
        self.queries.append(sql)
        size = self.native_chunk or opts.chunk_size
        try:
            yield QueryChunk(rows=self.rows[:size])
            await self.gate.wait()
            yield QueryChunk(rows=self.rows[size:], done=True)
        finally:
            self.closed_streams += 1


class ExactConnector(FakeConnector):
    """Reports total_rows from response metadata (BigQuery-like)."""

    def __init__(self, rows=None, **kwargs):
        kwargs.setdefault("connector_id", "exact")
        kwargs.setdefault("capabilities", CC.EXACT_METADATA | CC.SCHEMA)
        kwargs.setdefault("report_total", True)
        super().__init__(rows, **kwargs)


@pytest.fixture
def fake_connector():
    return FakeConnector(make_rows(250))


@pytest.fixture
def settings():
    s = QueryDeckSettings()
    s.cache.enabled = False
    return s


@pytest.fixture
def router(settings):
    return ExecutionRouter(settings)


@pytest.fixture
def result_cache():
    cache = ResultChunkCache()
    yield cache
    cache.close()


@pytest.fixture
def duckdb_connector():
    con = DuckDBConnector()
    yield con
    run(con.close())
