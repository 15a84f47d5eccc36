# src/querydeck/connectors/bigquery.py
"""
BigQuery connector (google-cloud-bigquery).

Authentication follows the client library: Application Default Credentials,
or GOOGLE_APPLICATION_CREDENTIALS pointing at a service-account key. The
billing project comes from the `project` argument, then
QUERYDECK_BIGQUERY_PROJECT, then GOOGLE_CLOUD_PROJECT.

The job result reports total_rows without fetching any pages, so this
connector advertises EXACT_METADATA: query(sql, max_rows=0) yields a single
done chunk carrying the exact count.
"""

from __future__ import annotations

import asyncio
import os
from typing import Any, AsyncIterator, List, Optional

from querydeck import constants as C
from querydeck.connectors.base import (
    ColumnInfo,
    Connector,
    CostEstimate,
    QueryChunk,
    QueryOptions,
    Schema,
    TableInfo,
)
from querydeck.connectors.capabilities import ConnectorCapabilities as CC
from querydeck.connectors.registry import register_connector
from querydeck.logging import get_logger, log_exception

_logger = get_logger(__name__)


def _load_bigquery():
    try:
        from google.cloud import bigquery
    except ImportError as e:
        raise ImportError(
            "google-cloud-bigquery is required for BigQuery support.\n"
            "Install with: pip install 'querydeck[bigquery]'"
        ) from e
    return bigquery


def _schema_from_fields(fields: Any) -> Schema:
    columns = [
        ColumnInfo(
            name=f.name,
            type=f.field_type,
            nullable=(getattr(f, "mode", "NULLABLE") or "NULLABLE") != "REQUIRED",
            comment=getattr(f, "description", None),
        )
        for f in (fields or [])
    ]
    return Schema(tables=[TableInfo(name="query_result", columns=columns)])


@register_connector("bigquery")
class BigQueryConnector(Connector):
    capabilities = CC.EXACT_METADATA | CC.COST_ESTIMATE | CC.SCHEMA

    def __init__(
        self,
        project: Optional[str] = None,
        location: Optional[str] = None,
        client: Any = None,
        max_page_size: int = C.BIGQUERY_MAX_PAGE_SIZE,
    ):
        self.project = project or os.getenv("QUERYDECK_BIGQUERY_PROJECT") or os.getenv("GOOGLE_CLOUD_PROJECT")
        self.location = location
        self.max_page_size = max_page_size
        self._client = client
        self._jobs: List[Any] = []

    # ------------------------------ Lifecycle ---------------------------------

    async def connect(self) -> None:
        if self._client is None:
            bigquery = _load_bigquery()
            try:
                self._client = await asyncio.to_thread(bigquery.Client, project=self.project, location=self.location)
            except Exception as e:
                raise ConnectionError(
                    f"BigQuery client creation failed: {e}\n\n"
                    "Check your credentials and billing project, or set environment variables:\n"
                    "  export GOOGLE_APPLICATION_CREDENTIALS=/path/to/key.json\n"
                    "  export QUERYDECK_BIGQUERY_PROJECT=your-project-id"
                ) from e

    async def close(self) -> None:
        if self._client is not None:
            client, self._client = self._client, None
            close = getattr(client, "close", None)
            if close is not None:
                await asyncio.to_thread(close)

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    def _job_config(self, **kwargs: Any) -> Any:
        return _load_bigquery().QueryJobConfig(use_legacy_sql=False, **kwargs)

    # ------------------------------ Execution ---------------------------------

    async def query(self, sql: str, options: Optional[QueryOptions] = None) -> AsyncIterator[QueryChunk]:
        opts = options or QueryOptions()
        await self.connect()

        job = await asyncio.to_thread(self._client.query, sql, job_config=self._job_config())
        self._jobs.append(job)
        try:
            page_size = min(opts.chunk_size, self.max_page_size)
            result = await asyncio.to_thread(job.result, page_size=page_size, max_results=opts.max_rows)
            total_rows = result.total_rows
            schema = _schema_from_fields(result.schema)

            if opts.max_rows == 0:
                yield QueryChunk(rows=[], done=True, schema=schema, total_rows=total_rows)
                return

            first = True
            pages = iter(result.pages)
            while True:
                page = await asyncio.to_thread(next, pages, None)
                if page is None:
                    break
                rows = [dict(row.items()) for row in page]
                if not rows:
                    continue
                yield QueryChunk(rows=rows, done=False, schema=schema, total_rows=total_rows if first else None)
                first = False

            yield QueryChunk(rows=[], done=True, schema=schema, total_rows=total_rows if first else None)
        finally:
            if job in self._jobs:
                self._jobs.remove(job)

    async def cancel(self) -> None:
        for job in list(self._jobs):
            try:
                await asyncio.to_thread(job.cancel)
            except Exception as e:
                log_exception(_logger, "BigQuery job cancel failed", e)

    # ------------------------------ Estimation --------------------------------

    async def estimate_query_cost(self, sql: str) -> CostEstimate:
        """Dry-run the statement; cost assumes on-demand pricing per TiB."""
        await self.connect()
        config = self._job_config(dry_run=True, use_query_cache=False)
        job = await asyncio.to_thread(self._client.query, sql, job_config=config)
        processed = int(job.total_bytes_processed or 0)
        cost = processed / (1024 ** 4) * C.BIGQUERY_USD_PER_TIB
        return CostEstimate(
            estimated_bytes=processed,
            estimated_cost_usd=cost,
            caching_possible=bool(getattr(job, "cache_hit", False)),
        )

    # ------------------------------ Introspection -----------------------------

    def _fetch_schema(self) -> Schema:
        tables: List[TableInfo] = []
        for dataset in self._client.list_datasets():
            for item in self._client.list_tables(dataset.dataset_id):
                columns: List[ColumnInfo] = []
                try:
                    table = self._client.get_table(f"{dataset.dataset_id}.{item.table_id}")
                    columns = _schema_from_fields(table.schema).columns
                except Exception as e:
                    log_exception(_logger, f"Could not read columns for {dataset.dataset_id}.{item.table_id}", e)
                tables.append(
                    TableInfo(
                        name=item.table_id,
                        schema=dataset.dataset_id,
                        type=(getattr(item, "table_type", None) or "table").lower(),
                        columns=columns,
                    )
                )
        return Schema(tables=tables, database=self.project)

    async def get_schema(self) -> Schema:
        await self.connect()
        return await asyncio.to_thread(self._fetch_schema)

    def __repr__(self) -> str:
        return f"BigQueryConnector(project={self.project!r}, location={self.location!r})"
