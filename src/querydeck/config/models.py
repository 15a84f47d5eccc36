# src/querydeck/config/models.py
from __future__ import annotations

from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field, field_validator

from querydeck import constants as C

DetectionMode = Literal["off", "auto", "suggest"]
Confidence = Literal["low", "medium", "high"]


class DetectionSettings(BaseModel):
    """
    How dialect detection influences routing.

    mode:
      - off     : never consult the detector
      - auto    : switch to the detected engine and notify
      - suggest : refuse to run and suggest the detected engine
    """

    mode: DetectionMode = Field("auto", description="Routing behaviour on a dialect mismatch.")
    default_engine: str = Field(C.DEFAULT_ENGINE, description="Engine used when detection is inconclusive.")
    min_switch_confidence: Confidence = Field(
        "medium", description="Lowest detection confidence that can trigger a switch."
    )
    high_confidence_score: int = Field(C.HIGH_CONFIDENCE_SCORE, ge=1)
    medium_confidence_score: int = Field(C.MEDIUM_CONFIDENCE_SCORE, ge=1)
    min_score_difference: int = Field(C.MIN_SCORE_DIFFERENCE, ge=0)

    @field_validator("mode", mode="before")
    @classmethod
    def yaml_bare_off(cls, value: Any) -> Any:
        # YAML 1.1 reads a bare `off` as false
        return "off" if value is False else value


class ExecutionSettings(BaseModel):
    virtual_table_threshold: int = Field(C.VIRTUAL_TABLE_THRESHOLD, ge=0)
    large_limit_threshold: int = Field(C.LARGE_LIMIT_THRESHOLD, ge=0)
    chunk_size: int = Field(C.DEFAULT_CHUNK_SIZE, ge=1)
    count_cache_ttl_seconds: float = Field(C.COUNT_CACHE_TTL_SECONDS, gt=0)
    estimation_timeout_seconds: float = Field(C.ESTIMATION_TIMEOUT_SECONDS, gt=0)
    large_row_threshold_bytes: int = Field(C.LARGE_ROW_THRESHOLD_BYTES, ge=1)


class CacheSettings(BaseModel):
    enabled: bool = True
    path: Optional[str] = Field(
        None, description="SQLite file for cached result chunks. None keeps the cache in memory."
    )
    max_age_seconds: float = Field(C.RESULT_CACHE_MAX_AGE_SECONDS, gt=0)


class ConnectorConfig(BaseModel):
    """Declarative connector entry from querydeck.yml."""

    type: str = Field(..., description="Registered connector name (duckdb, bigquery, postgres).")
    params: Dict[str, Any] = Field(default_factory=dict, description="Constructor keyword arguments.")


class QueryDeckSettings(BaseModel):
    detection: DetectionSettings = Field(default_factory=DetectionSettings)
    execution: ExecutionSettings = Field(default_factory=ExecutionSettings)
    cache: CacheSettings = Field(default_factory=CacheSettings)
    connectors: Dict[str, ConnectorConfig] = Field(default_factory=dict)
    active_connector: str = C.DEFAULT_ENGINE
    log_level: str = "WARNING"
