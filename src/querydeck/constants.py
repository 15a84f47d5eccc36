# src/querydeck/constants.py
"""
Tuning constants for routing, estimation, streaming and caching.

Every heuristic threshold used by the engine lives here so that the config
models (querydeck.config.models) and the engine read the same defaults.
"""

from __future__ import annotations

# --------------------------- Dialect detection -------------------------------

HIGH_CONFIDENCE_SCORE = 15
MEDIUM_CONFIDENCE_SCORE = 8
# Top plugin must beat the runner-up by at least this many points
MIN_SCORE_DIFFERENCE = 3
UNKNOWN_ENGINE = "unknown"
DEFAULT_ENGINE = "duckdb"

# --------------------------- Delivery mode -----------------------------------

# Estimated rows at or above which results are streamed instead of loaded
VIRTUAL_TABLE_THRESHOLD = 100
# A trailing LIMIT above this always streams
LARGE_LIMIT_THRESHOLD = 10_000
DEFAULT_CHUNK_SIZE = 1000

# --------------------------- Count estimation --------------------------------

COUNT_CACHE_TTL_SECONDS = 120.0
ESTIMATION_TIMEOUT_SECONDS = 30.0
UNKNOWN_COUNT = -1

# --------------------------- Result chunk cache ------------------------------

RESULT_CACHE_MAX_AGE_SECONDS = 3600.0

# --------------------------- Payload stats -----------------------------------

LARGE_ROW_THRESHOLD_BYTES = 500_000

# --------------------------- Memory estimation -------------------------------

DEFAULT_ROW_SIZE_BYTES = 200
MEMORY_SAMPLE_ROWS = 100
LARGE_RESULT_MB = 50.0
LARGE_RESULT_ROWS = 100_000
HUGE_RESULT_MB = 500.0
VERY_LARGE_RESULT_MB = 100.0

# --------------------------- BigQuery ----------------------------------------

BIGQUERY_USD_PER_TIB = 6.25
BIGQUERY_MAX_PAGE_SIZE = 10_000
