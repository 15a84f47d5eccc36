from querydeck.config.models import (
    CacheSettings,
    ConnectorConfig,
    DetectionSettings,
    ExecutionSettings,
    QueryDeckSettings,
)
from querydeck.config.loader import load_settings

__all__ = [
    "CacheSettings",
    "ConnectorConfig",
    "DetectionSettings",
    "ExecutionSettings",
    "QueryDeckSettings",
    "load_settings",
]
