# src/querydeck/connectors/registry.py
from __future__ import annotations

from typing import TYPE_CHECKING, Any, Callable, Dict, List

from querydeck.errors import ConnectorNotRegisteredError

if TYPE_CHECKING:
    from .base import Connector


# Registry: connector_name -> connector class
_CONNECTORS: Dict[str, Callable[..., "Connector"]] = {}
# Registration order, used for listings
_ORDER: List[str] = []


def register_connector(name: str):
    """
    Decorator to register a connector class under a stable name.
    The class must subclass Connector.
    """

    def deco(cls: Callable[..., "Connector"]) -> Callable[..., "Connector"]:
        if name in _CONNECTORS:
            raise ValueError(f"Connector '{name}' is already registered.")
        _CONNECTORS[name] = cls
        if name not in _ORDER:
            _ORDER.append(name)
        cls.connector_id = name
        return cls

    return deco


def create_connector(name: str, **params: Any) -> "Connector":
    """Instantiate a registered connector with constructor keyword arguments."""
    register_default_connectors()
    ctor = _CONNECTORS.get(name)
    if ctor is None:
        raise ConnectorNotRegisteredError(
            f"Unknown connector '{name}'. Registered connectors: {', '.join(_ORDER) or '(none)'}"
        )
    return ctor(**params)


def registered_connectors() -> List[str]:
    register_default_connectors()
    return list(_ORDER)


def register_default_connectors() -> None:
    """
    Eagerly import built-in connectors so their @register_connector
    decorators run and populate the registry.

    The BigQuery and PostgreSQL modules import their drivers lazily, so
    importing them here doesn't require the optional extras.
    """
    # Local imports to trigger decorator side-effects
    from . import duckdb  # noqa: F401
    from . import bigquery  # noqa: F401
    from . import postgres  # noqa: F401
