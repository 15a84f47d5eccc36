# src/querydeck/connectors/__init__.py
from querydeck.connectors.base import (
    ColumnInfo,
    ConnectionTestResult,
    Connector,
    CostEstimate,
    QueryChunk,
    QueryOptions,
    QueryStats,
    Row,
    Schema,
    TableInfo,
    validate_capabilities,
)
from querydeck.connectors.capabilities import CC, ConnectorCapabilities
from querydeck.connectors.registry import (
    create_connector,
    register_connector,
    register_default_connectors,
    registered_connectors,
)

__all__ = [
    "CC",
    "ColumnInfo",
    "ConnectionTestResult",
    "Connector",
    "ConnectorCapabilities",
    "CostEstimate",
    "QueryChunk",
    "QueryOptions",
    "QueryStats",
    "Row",
    "Schema",
    "TableInfo",
    "create_connector",
    "register_connector",
    "register_default_connectors",
    "registered_connectors",
    "validate_capabilities",
]
