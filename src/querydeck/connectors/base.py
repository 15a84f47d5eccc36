# src/querydeck/connectors/base.py
"""
Connector interface.

A connector is a uniform chunked-streaming view over one query-capable
backend. The only mandatory operation is query(), an async iterator of
QueryChunk. Everything else is optional and advertised through
ConnectorCapabilities:

  PAGINATION      statements may be rewritten with LIMIT/OFFSET
  EXACT_METADATA  query(sql, max_rows=0) reports total_rows exactly
  PLAN_ESTIMATE   estimate_row_count(sql) -> planner cardinality
  COST_ESTIMATE   estimate_query_cost(sql) -> CostEstimate
  SCHEMA          get_schema() -> Schema

validate_capabilities() checks that each advertised optional capability is
backed by an override of the matching method.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional

from querydeck import constants as C
from querydeck.connectors.capabilities import ConnectorCapabilities as CC

Row = Dict[str, Any]


@dataclass(frozen=True)
class ColumnInfo:
    name: str
    type: str
    nullable: Optional[bool] = None
    comment: Optional[str] = None


@dataclass
class TableInfo:
    name: str
    schema: Optional[str] = None
    type: str = "table"
    columns: List[ColumnInfo] = field(default_factory=list)


@dataclass
class Schema:
    tables: List[TableInfo] = field(default_factory=list)
    database: Optional[str] = None

    @property
    def columns(self) -> List[ColumnInfo]:
        """Columns of the first table (the result set for query chunks)."""
        return self.tables[0].columns if self.tables else []


@dataclass(frozen=True)
class QueryStats:
    """Payload statistics reported with a connector's terminal chunk."""

    total_rows: int
    total_bytes: int
    large_row_count: int
    max_row_size: int
    chunk_count: int
    avg_row_size: int

    def to_dict(self) -> Dict[str, int]:
        return {
            "total_rows": self.total_rows,
            "total_bytes": self.total_bytes,
            "large_row_count": self.large_row_count,
            "max_row_size": self.max_row_size,
            "chunk_count": self.chunk_count,
            "avg_row_size": self.avg_row_size,
        }


@dataclass
class QueryChunk:
    """One native chunk as produced by a connector."""

    rows: List[Row]
    done: bool = False
    schema: Optional[Schema] = None
    total_rows: Optional[int] = None
    query_stats: Optional[QueryStats] = None


@dataclass(frozen=True)
class QueryOptions:
    chunk_size: int = C.DEFAULT_CHUNK_SIZE
    max_rows: Optional[int] = None
    timeout: Optional[float] = None


@dataclass(frozen=True)
class CostEstimate:
    estimated_bytes: int
    estimated_cost_usd: Optional[float] = None
    caching_possible: bool = False


@dataclass(frozen=True)
class ConnectionTestResult:
    success: bool
    latency_ms: float
    error: Optional[str] = None


class Connector(ABC):
    """Base class for all connectors."""

    connector_id: str = "connector"
    capabilities: CC = CC.NONE

    @abstractmethod
    async def connect(self) -> None:
        """Open the underlying connection. Idempotent."""
        ...

    async def close(self) -> None:
        return None

    @property
    def is_connected(self) -> bool:
        return True

    @abstractmethod
    def query(self, sql: str, options: Optional[QueryOptions] = None) -> AsyncIterator[QueryChunk]:
        """
        Execute `sql` and yield its rows in native chunks.

        The last chunk has done=True. Implementations are async generators,
        so callers can stop early with aclose().
        """
        ...

    async def estimate_row_count(self, sql: str) -> int:
        """Planner cardinality for `sql`, or -1 when the plan has none."""
        raise NotImplementedError(f"{self.connector_id} does not support row estimates")

    async def estimate_query_cost(self, sql: str) -> CostEstimate:
        raise NotImplementedError(f"{self.connector_id} does not support cost estimates")

    async def get_schema(self) -> Schema:
        raise NotImplementedError(f"{self.connector_id} does not support schema introspection")

    async def cancel(self) -> None:
        """Best-effort interruption of in-flight work on this connector."""
        return None

    async def test_connection(self) -> ConnectionTestResult:
        start = time.perf_counter()
        try:
            await self.connect()
            async for chunk in self.query("SELECT 1", QueryOptions(chunk_size=1)):
                if chunk.done:
                    break
        except Exception as e:
            return ConnectionTestResult(False, (time.perf_counter() - start) * 1000, str(e))
        return ConnectionTestResult(True, (time.perf_counter() - start) * 1000)

    def has(self, capability: CC) -> bool:
        return bool(self.capabilities & capability)

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.connector_id!r}, caps={self.capabilities!r})"


# capability -> method that must be overridden to claim it
_CAPABILITY_METHODS = {
    CC.PLAN_ESTIMATE: "estimate_row_count",
    CC.COST_ESTIMATE: "estimate_query_cost",
    CC.SCHEMA: "get_schema",
}


def validate_capabilities(connector: Connector) -> None:
    """
    Check advertised capabilities against implemented methods.

    Raises:
        ValueError: a capability is advertised without its method, or
                    EXACT_METADATA and PLAN_ESTIMATE are both claimed.
    """
    caps = connector.capabilities
    missing = []
    for flag, method in _CAPABILITY_METHODS.items():
        if caps & flag and getattr(type(connector), method) is getattr(Connector, method):
            missing.append(f"{flag.name} requires {method}()")
    if missing:
        raise ValueError(
            f"Connector '{connector.connector_id}' advertises capabilities it does not implement:\n  "
            + "\n  ".join(missing)
        )
    if caps & CC.EXACT_METADATA and caps & CC.PLAN_ESTIMATE:
        raise ValueError(
            f"Connector '{connector.connector_id}' cannot advertise both EXACT_METADATA and PLAN_ESTIMATE."
        )
