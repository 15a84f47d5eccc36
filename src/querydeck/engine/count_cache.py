# src/querydeck/engine/count_cache.py
"""
Row-count estimation with a short-lived cache.

Strategy is chosen from the connector's declared capabilities:

  EXACT_METADATA  run the statement with max_rows=0 and read total_rows from
                  the response metadata (exact, is_estimated=False)
  PLAN_ESTIMATE   ask the planner for a cardinality (is_estimated=True)
  otherwise       RowCount(-1, True)

Only positive counts are cached. Entries live for `ttl` seconds and are
evicted lazily the next time they are read.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from querydeck import constants as C
from querydeck.connectors.base import Connector, QueryOptions
from querydeck.connectors.capabilities import ConnectorCapabilities as CC
from querydeck.engine.cancellation import CancellationToken
from querydeck.engine.statements import hash_query
from querydeck.errors import QueryCancelledError
from querydeck.logging import get_logger, log_exception

_logger = get_logger(__name__)


@dataclass(frozen=True)
class RowCount:
    count: int
    is_estimated: bool

    @property
    def is_known(self) -> bool:
        return self.count >= 0


UNKNOWN = RowCount(C.UNKNOWN_COUNT, True)


@dataclass(frozen=True)
class CountCacheEntry:
    count: int
    is_estimated: bool
    timestamp: float


class CountEstimator:
    def __init__(
        self,
        ttl: float = C.COUNT_CACHE_TTL_SECONDS,
        timeout: Optional[float] = C.ESTIMATION_TIMEOUT_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl = ttl
        self.timeout = timeout
        self._clock = clock
        self._cache: Dict[str, CountCacheEntry] = {}
        # Number of estimations that actually reached a connector
        self.lookups = 0

    # ------------------------------ Cache -------------------------------------

    @staticmethod
    def cache_key(sql: str, connector: Connector) -> str:
        return f"{connector.connector_id}:{hash_query(sql)}"

    def get_cached(self, sql: str, connector: Connector) -> Optional[RowCount]:
        key = self.cache_key(sql, connector)
        entry = self._cache.get(key)
        if entry is None:
            return None
        if self._clock() - entry.timestamp >= self.ttl:
            del self._cache[key]
            return None
        return RowCount(entry.count, entry.is_estimated)

    def _store(self, sql: str, connector: Connector, result: RowCount) -> None:
        if result.count > 0:
            self._cache[self.cache_key(sql, connector)] = CountCacheEntry(
                result.count, result.is_estimated, self._clock()
            )

    def invalidate(self, sql: Optional[str] = None, connector: Optional[Connector] = None) -> int:
        """Drop cached counts: one statement (needs connector) or everything."""
        if sql is None:
            n = len(self._cache)
            self._cache.clear()
            return n
        if connector is None:
            suffix = f":{hash_query(sql)}"
            keys = [k for k in self._cache if k.endswith(suffix)]
        else:
            keys = [self.cache_key(sql, connector)]
        return sum(1 for k in keys if self._cache.pop(k, None) is not None)

    def __len__(self) -> int:
        return len(self._cache)

    # ------------------------------ Estimation --------------------------------

    async def _exact_count(self, sql: str, connector: Connector, token: CancellationToken) -> RowCount:
        stream = connector.query(sql, QueryOptions(max_rows=0))
        try:
            while True:
                token.raise_if_cancelled()
                try:
                    chunk = await token.guard(stream.__anext__())
                except StopAsyncIteration:
                    break
                if chunk.total_rows is not None:
                    return RowCount(int(chunk.total_rows), False)
                if chunk.done:
                    break
        finally:
            await stream.aclose()
        return UNKNOWN

    async def _plan_estimate(self, sql: str, connector: Connector, token: CancellationToken) -> RowCount:
        count = await token.guard(connector.estimate_row_count(sql))
        return RowCount(int(count), True)

    async def estimate(
        self,
        sql: str,
        connector: Connector,
        token: Optional[CancellationToken] = None,
        timeout: Optional[float] = None,
    ) -> RowCount:
        """
        Row count for `sql` on `connector`.

        Raises:
            QueryCancelledError: `token` was cancelled (not on timeout; a
                                 timed-out estimation returns RowCount(-1, True)).
        """
        parent = token or CancellationToken()
        parent.raise_if_cancelled()

        cached = self.get_cached(sql, connector)
        if cached is not None:
            _logger.debug("Using cached count for %s: %s", connector.connector_id, cached)
            return cached

        if connector.has(CC.EXACT_METADATA):
            strategy = self._exact_count
        elif connector.has(CC.PLAN_ESTIMATE):
            strategy = self._plan_estimate
        else:
            _logger.warning("Connector '%s' cannot estimate row counts; treating as unknown", connector.connector_id)
            return UNKNOWN

        step = parent.with_timeout(self.timeout if timeout is None else timeout)
        self.lookups += 1
        try:
            result = await strategy(sql, connector, step)
        except QueryCancelledError:
            if parent.cancelled:
                raise
            _logger.warning("Row count estimation timed out on '%s'; treating as unknown", connector.connector_id)
            return UNKNOWN
        except Exception as e:
            log_exception(_logger, "Could not get row count", e)
            return UNKNOWN
        finally:
            step.detach()

        self._store(sql, connector, result)
        return result
