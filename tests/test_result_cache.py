# tests/test_result_cache.py
"""
Tests for the SQLite-backed result chunk cache.
"""

import sqlite3

from conftest import make_rows, run
from querydeck.engine.result_cache import ResultCacheEntry, ResultChunkCache, SQLiteChunkStore


class FakeClock:
    def __init__(self, now: float = 1_700_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestSQLiteChunkStore:
    def test_put_get(self):
        store = SQLiteChunkStore()
        store.put(ResultCacheEntry("abc", 0, make_rows(3), 1.0))
        entry = store.get("abc", 0)
        assert entry is not None
        assert entry.id == "abc_0"
        assert entry.rows == make_rows(3)
        assert store.get("abc", 1) is None
        store.close()

    def test_put_overwrites_same_id(self):
        store = SQLiteChunkStore()
        store.put(ResultCacheEntry("abc", 0, make_rows(3), 1.0))
        store.put(ResultCacheEntry("abc", 0, make_rows(1), 2.0))
        assert store.count() == 1
        assert store.get("abc", 0).rows == make_rows(1)
        store.close()

    def test_delete_older_than(self):
        store = SQLiteChunkStore()
        store.put(ResultCacheEntry("q", 0, [], 10.0))
        store.put(ResultCacheEntry("q", 1, [], 20.0))
        assert store.delete_older_than(15.0) == 1
        assert store.get("q", 0) is None
        assert store.get("q", 1) is not None
        store.close()

    def test_clear_by_hash(self):
        store = SQLiteChunkStore()
        store.put(ResultCacheEntry("a", 0, [], 1.0))
        store.put(ResultCacheEntry("b", 0, [], 1.0))
        assert store.clear("a") == 1
        assert store.count() == 1
        assert store.clear() == 1
        store.close()

    def test_non_json_values_stored_as_text(self):
        from datetime import date

        store = SQLiteChunkStore()
        store.put(ResultCacheEntry("d", 0, [{"day": date(2024, 1, 2)}], 1.0))
        assert store.get("d", 0).rows == [{"day": "2024-01-02"}]
        store.close()

    def test_file_backed_store_has_indexes(self, tmp_path):
        path = tmp_path / "cache" / "chunks.db"
        store = SQLiteChunkStore(str(path))
        store.put(ResultCacheEntry("q", 0, make_rows(2), 1.0))
        store.close()

        con = sqlite3.connect(path)
        names = {r[0] for r in con.execute("SELECT name FROM sqlite_master WHERE type = 'index'")}
        con.close()
        assert {"idx_result_chunks_query_hash", "idx_result_chunks_timestamp"} <= names

        reopened = SQLiteChunkStore(str(path))
        assert reopened.get("q", 0).rows == make_rows(2)
        reopened.close()

    def test_done_flag_roundtrip(self):
        store = SQLiteChunkStore()
        store.put(ResultCacheEntry("q", 0, make_rows(2), 1.0))
        store.put(ResultCacheEntry("q", 1, make_rows(1), 1.0, done=True))
        assert store.get("q", 0).done is False
        assert store.get("q", 1).done is True
        store.close()

    def test_cache_file_without_done_column_is_upgraded(self, tmp_path):
        path = tmp_path / "old.db"
        con = sqlite3.connect(path)
        con.execute(
            "CREATE TABLE result_chunks (id TEXT PRIMARY KEY, query_hash TEXT NOT NULL, "
            "chunk_index INTEGER NOT NULL, rows TEXT NOT NULL, timestamp REAL NOT NULL)"
        )
        con.execute("INSERT INTO result_chunks VALUES ('q_0', 'q', 0, '[]', 1.0)")
        con.commit()
        con.close()

        store = SQLiteChunkStore(str(path))
        assert store.get("q", 0).done is False
        store.put(ResultCacheEntry("q", 1, make_rows(1), 2.0, done=True))
        assert store.get("q", 1).done is True
        store.close()


class TestResultChunkCache:
    def test_roundtrip(self, result_cache):
        async def scenario():
            await result_cache.cache_chunk("q", 3, make_rows(5))
            return await result_cache.get_chunk("q", 3)

        assert run(scenario()) == make_rows(5)

    def test_write_evicts_entries_older_than_max_age(self):
        clock = FakeClock()
        cache = ResultChunkCache(max_age=3600, clock=clock)

        async def scenario():
            await cache.cache_chunk("old", 0, make_rows(1))
            clock.now += 3601
            await cache.cache_chunk("new", 0, make_rows(1))

        run(scenario())
        assert cache.store.get("old", 0) is None
        assert cache.store.get("new", 0) is not None
        cache.close()

    def test_expired_entry_not_served(self):
        clock = FakeClock()
        cache = ResultChunkCache(max_age=10, clock=clock)

        async def scenario():
            await cache.cache_chunk("q", 0, make_rows(1))
            clock.now += 11
            return await cache.get_chunk("q", 0)

        assert run(scenario()) is None
        cache.close()

    def test_eviction_failure_is_not_fatal(self):
        class BrokenEvictionStore(SQLiteChunkStore):
            def delete_older_than(self, cutoff):
                raise sqlite3.OperationalError("disk I/O error")

        cache = ResultChunkCache(store=BrokenEvictionStore())

        async def scenario():
            await cache.cache_chunk("q", 0, make_rows(2))
            return await cache.get_chunk("q", 0)

        assert run(scenario()) == make_rows(2)
        cache.close()
