# src/querydeck/detection/__init__.py
from __future__ import annotations

from typing import Optional

from querydeck.detection.detector import (
    DetectionPattern,
    EngineDetection,
    EngineDetectorPlugin,
    EngineDetectorRegistry,
    confidence_at_least,
    make_plugin,
)
from querydeck.detection.bigquery import bigquery_detector
from querydeck.detection.duckdb import duckdb_detector

BUILTIN_PLUGINS = (bigquery_detector, duckdb_detector)


def default_registry(**thresholds: int) -> EngineDetectorRegistry:
    """Fresh registry holding the built-in BigQuery and DuckDB plugins."""
    return EngineDetectorRegistry(BUILTIN_PLUGINS, **thresholds)


def detect_query_engine(sql: str, registry: Optional[EngineDetectorRegistry] = None) -> EngineDetection:
    return (registry or default_registry()).detect(sql)


__all__ = [
    "BUILTIN_PLUGINS",
    "DetectionPattern",
    "EngineDetection",
    "EngineDetectorPlugin",
    "EngineDetectorRegistry",
    "bigquery_detector",
    "confidence_at_least",
    "default_registry",
    "detect_query_engine",
    "duckdb_detector",
    "make_plugin",
]
