# src/querydeck/engine/result_cache.py
"""
Local cache of fetched result chunks.

Streamed chunks are written under "{query_hash}_{chunk_index}" so that
re-paging through a result the user has already seen doesn't re-run the
statement. Entries older than `max_age` are deleted after every write via a
range scan on the timestamp index.

The store is SQLite: one table, two secondary indexes. The default database
is in-memory; pass a path to keep the cache across processes. Losing it only
forces re-execution.

result_chunks
├── id           TEXT PRIMARY KEY   "{query_hash}_{chunk_index}"
├── query_hash   TEXT               (indexed)
├── chunk_index  INTEGER
├── rows         TEXT               JSON array of row objects
├── done         INTEGER            1 when this is the last chunk of the result
└── timestamp    REAL               epoch seconds (indexed)
"""

from __future__ import annotations

import asyncio
import json
import os
import sqlite3
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional

from querydeck import constants as C
from querydeck.connectors.base import Row
from querydeck.logging import get_logger, log_exception

_logger = get_logger(__name__)


@dataclass(frozen=True)
class ResultCacheEntry:
    query_hash: str
    chunk_index: int
    rows: List[Row]
    timestamp: float
    done: bool = False

    @property
    def id(self) -> str:
        return f"{self.query_hash}_{self.chunk_index}"


class ChunkStore(ABC):
    """Synchronous key-value storage behind ResultChunkCache."""

    @abstractmethod
    def put(self, entry: ResultCacheEntry) -> None:
        """Insert or overwrite the entry with the same id."""
        ...

    @abstractmethod
    def get(self, query_hash: str, chunk_index: int) -> Optional[ResultCacheEntry]:
        ...

    @abstractmethod
    def delete_older_than(self, cutoff: float) -> int:
        """Delete entries with timestamp < cutoff. Returns number deleted."""
        ...

    @abstractmethod
    def clear(self, query_hash: Optional[str] = None) -> int:
        ...

    @abstractmethod
    def count(self) -> int:
        ...

    def close(self) -> None:
        return None


class SQLiteChunkStore(ChunkStore):
    def __init__(self, path: Optional[str] = None):
        self.path = os.path.expanduser(path) if path else ":memory:"
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._conn = sqlite3.connect(self.path, check_same_thread=False)
        self._ensure_table()

    def _ensure_table(self) -> None:
        with self._lock, self._conn:
            self._conn.execute(
                """
                CREATE TABLE IF NOT EXISTS result_chunks (
                    id TEXT PRIMARY KEY,
                    query_hash TEXT NOT NULL,
                    chunk_index INTEGER NOT NULL,
                    rows TEXT NOT NULL,
                    timestamp REAL NOT NULL,
                    done INTEGER NOT NULL DEFAULT 0
                )
                """
            )
            # Cache files written before the done column existed
            columns = {r[1] for r in self._conn.execute("PRAGMA table_info(result_chunks)")}
            if "done" not in columns:
                self._conn.execute("ALTER TABLE result_chunks ADD COLUMN done INTEGER NOT NULL DEFAULT 0")
            self._conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_result_chunks_query_hash ON result_chunks (query_hash)"
            )
            self._conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_result_chunks_timestamp ON result_chunks (timestamp)"
            )

    def put(self, entry: ResultCacheEntry) -> None:
        payload = json.dumps(entry.rows, default=str)
        with self._lock, self._conn:
            self._conn.execute(
                "INSERT OR REPLACE INTO result_chunks (id, query_hash, chunk_index, rows, timestamp, done) "
                "VALUES (?, ?, ?, ?, ?, ?)",
                (entry.id, entry.query_hash, entry.chunk_index, payload, entry.timestamp, int(entry.done)),
            )

    def get(self, query_hash: str, chunk_index: int) -> Optional[ResultCacheEntry]:
        with self._lock:
            row = self._conn.execute(
                "SELECT rows, timestamp, done FROM result_chunks WHERE id = ?",
                (f"{query_hash}_{chunk_index}",),
            ).fetchone()
        if row is None:
            return None
        return ResultCacheEntry(query_hash, chunk_index, json.loads(row[0]), row[1], bool(row[2]))

    def delete_older_than(self, cutoff: float) -> int:
        with self._lock, self._conn:
            cur = self._conn.execute("DELETE FROM result_chunks WHERE timestamp < ?", (cutoff,))
            return cur.rowcount

    def clear(self, query_hash: Optional[str] = None) -> int:
        with self._lock, self._conn:
            if query_hash is None:
                cur = self._conn.execute("DELETE FROM result_chunks")
            else:
                cur = self._conn.execute("DELETE FROM result_chunks WHERE query_hash = ?", (query_hash,))
            return cur.rowcount

    def count(self) -> int:
        with self._lock:
            return self._conn.execute("SELECT COUNT(*) FROM result_chunks").fetchone()[0]

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def __repr__(self) -> str:
        return f"SQLiteChunkStore(path={self.path})"


class ResultChunkCache:
    """
    Async facade over a ChunkStore.

    Reads and writes are pushed to a worker thread. Eviction after a write is
    advisory: failures are logged and never reach the caller.
    """

    def __init__(
        self,
        store: Optional[ChunkStore] = None,
        max_age: float = C.RESULT_CACHE_MAX_AGE_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.store = store or SQLiteChunkStore()
        self.max_age = max_age
        self._clock = clock

    async def cache_chunk(self, query_hash: str, chunk_index: int, rows: List[Row], done: bool = False) -> None:
        entry = ResultCacheEntry(query_hash, chunk_index, list(rows), self._clock(), done)
        await asyncio.to_thread(self.store.put, entry)
        await self.clean_old_cache()

    async def get_entry(self, query_hash: str, chunk_index: int) -> Optional[ResultCacheEntry]:
        entry = await asyncio.to_thread(self.store.get, query_hash, chunk_index)
        if entry is None or self._clock() - entry.timestamp > self.max_age:
            return None
        return entry

    async def get_chunk(self, query_hash: str, chunk_index: int) -> Optional[List[Row]]:
        entry = await self.get_entry(query_hash, chunk_index)
        return entry.rows if entry is not None else None

    async def clean_old_cache(self) -> int:
        cutoff = self._clock() - self.max_age
        try:
            deleted = await asyncio.to_thread(self.store.delete_older_than, cutoff)
        except Exception as e:
            log_exception(_logger, "Result cache eviction failed", e)
            return 0
        if deleted:
            _logger.debug("Evicted %d cached result chunks", deleted)
        return deleted

    async def clear(self, query_hash: Optional[str] = None) -> int:
        return await asyncio.to_thread(self.store.clear, query_hash)

    def close(self) -> None:
        self.store.close()

    def __repr__(self) -> str:
        return f"ResultChunkCache(store={self.store!r}, max_age={self.max_age})"
