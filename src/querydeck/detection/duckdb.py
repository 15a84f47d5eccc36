# src/querydeck/detection/duckdb.py
"""Patterns that mark a statement as DuckDB SQL."""

from __future__ import annotations

from querydeck.detection.detector import make_plugin

DUCKDB_PATTERNS = [
    # Table functions for files
    (r"\bread_csv\s*\(", "read_csv() function", 10),
    (r"\bread_parquet\s*\(", "read_parquet() function", 10),
    (r"\bread_json\s*\(", "read_json() function", 10),
    (r"\bread_json_auto\s*\(", "read_json_auto() function", 10),
    (r"\bread_csv_auto\s*\(", "read_csv_auto() function", 10),
    # Direct file / URL references
    (r"FROM\s+['\"][\w./\\-]+\.(csv|parquet|json|jsonl|tsv)['\"]", "file path reference", 10),
    (r"FROM\s+['\"]s3://", "S3 path reference", 9),
    (r"FROM\s+['\"]https?://", "HTTP URL reference", 8),
    # Database management
    (r"\bATTACH\s+['\"]", "ATTACH statement", 10),
    (r"\bDETACH\s+", "DETACH statement", 10),
    (r"\bUSE\s+\w+\s*;", "USE statement", 8),
    (r"\bCOPY\s+.+\s+TO\s+['\"]", "COPY TO statement", 9),
    # Star modifiers
    (r"\bEXCLUDE\s*\(", "EXCLUDE column modifier", 9),
    (r"\bREPLACE\s*\(", "REPLACE column modifier", 7),
    (r"\bCOLUMNS\s*\(", "COLUMNS() expression", 9),
    # Nested-type functions
    (r"\blist_\w+\s*\(", "list_* function", 8),
    (r"\bmap_\w+\s*\(", "map_* function", 7),
    (r"\bstruct_\w+\s*\(", "struct_* function", 7),
    (r"\brange\s*\(", "range() function", 5),
    (r"\bunnest\s*\(\s*\[", "unnest with array literal", 6),
    (r"FROM\s+['\"][^'\"]*\*[^'\"]*['\"]", "glob pattern in FROM", 9),
    # Extensions
    (r"\bINSTALL\s+\w+", "INSTALL extension", 10),
    (r"\bLOAD\s+\w+", "LOAD extension", 8),
    (r"\bCREATE\s+(OR\s+REPLACE\s+)?MACRO\b", "CREATE MACRO statement", 10),
    # Clauses and joins
    (r"\bQUALIFY\b", "QUALIFY clause", 8),
    (r"\bPIVOT\s+\w+\s+ON\b", "PIVOT statement", 9),
    (r"\bUNPIVOT\s+\w+\s+ON\b", "UNPIVOT statement", 9),
    (r"\bASOF\s+JOIN\b", "ASOF JOIN", 10),
    (r"\bgenerate_series\s*\(", "generate_series() function", 8),
    (r"\bTRY_CAST\s*\(", "TRY_CAST function", 8),
]

duckdb_detector = make_plugin("duckdb", DUCKDB_PATTERNS)
