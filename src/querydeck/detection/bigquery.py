# src/querydeck/detection/bigquery.py
"""Patterns that mark a statement as BigQuery Standard SQL."""

from __future__ import annotations

from querydeck.detection.detector import make_plugin

BIGQUERY_PATTERNS = [
    # Backtick-quoted table references
    (r"`[\w-]+\.[\w-]+\.[\w-]+`", "backtick project.dataset.table", 10),
    (r"`[\w-]+\.[\w-]+`", "backtick dataset.table", 8),
    # GCP-style project ids (name-name-123.dataset.table)
    (r"\b\w+-\w+-\d+\.[\w-]+\.[\w-]+\b", "project-id.dataset.table pattern", 9),
    # SAFE_ functions
    (r"\bSAFE_DIVIDE\s*\(", "SAFE_DIVIDE function", 10),
    (r"\bSAFE_CAST\s*\(", "SAFE_CAST function", 10),
    (r"\bSAFE_MULTIPLY\s*\(", "SAFE_MULTIPLY function", 10),
    (r"\bSAFE_NEGATE\s*\(", "SAFE_NEGATE function", 10),
    (r"\bSAFE_ADD\s*\(", "SAFE_ADD function", 10),
    (r"\bSAFE_SUBTRACT\s*\(", "SAFE_SUBTRACT function", 10),
    # Date/time
    (r"\bPARSE_DATE\s*\(", "PARSE_DATE function", 8),
    (r"\bFORMAT_DATE\s*\(", "FORMAT_DATE function", 8),
    (r"\bPARSE_TIMESTAMP\s*\(", "PARSE_TIMESTAMP function", 8),
    (r"\bFORMAT_TIMESTAMP\s*\(", "FORMAT_TIMESTAMP function", 8),
    (r"\bDATE_TRUNC\s*\(", "DATE_TRUNC function", 6),
    # Array generators
    (r"\bGENERATE_ARRAY\s*\(", "GENERATE_ARRAY function", 9),
    (r"\bGENERATE_DATE_ARRAY\s*\(", "GENERATE_DATE_ARRAY function", 9),
    (r"\bGENERATE_TIMESTAMP_ARRAY\s*\(", "GENERATE_TIMESTAMP_ARRAY function", 9),
    # Typed constructors
    (r"\bSTRUCT\s*<", "STRUCT<> type constructor", 8),
    (r"\bARRAY\s*<", "ARRAY<> type constructor", 8),
    # Time travel and pseudo-columns
    (r"\bFOR\s+SYSTEM_TIME\s+AS\s+OF\b", "FOR SYSTEM_TIME AS OF (time travel)", 10),
    (r"\bPARTITION\s+BY\s+_PARTITIONDATE\b", "_PARTITIONDATE pseudo-column", 10),
    (r"\b_TABLE_SUFFIX\b", "_TABLE_SUFFIX wildcard table", 10),
    (r"\b_PARTITIONTIME\b", "_PARTITIONTIME pseudo-column", 10),
    # BigQuery ML
    (r"\bCREATE\s+(OR\s+REPLACE\s+)?MODEL\b", "CREATE MODEL (BQML)", 10),
    (r"\bML\.\w+\s*\(", "ML.* function (BQML)", 10),
    # Scripting
    (r"\bDECLARE\s+\w+\s+(DEFAULT|INT64|STRING|BOOL)", "DECLARE with BigQuery types", 8),
    # Geography
    (r"\bST_\w+\s*\(", "ST_* geography function", 6),
    (r"\bOPTIONS\s*\(", "OPTIONS clause", 5),
]

bigquery_detector = make_plugin("bigquery", BIGQUERY_PATTERNS)
