# src/querydeck/connectors/capabilities.py
from __future__ import annotations

from enum import IntFlag


class ConnectorCapabilities(IntFlag):
    """
    Bitmask describing what a connector can do beyond plain execution.

    The router and count estimator dispatch on these flags only; they never
    inspect the concrete connector class. Flags are validated against the
    connector's methods once, when the connector is registered.

    Bits:
      - NONE           : chunked execution only
      - PAGINATION     : statement accepts appended LIMIT/OFFSET (server-side paging)
      - EXACT_METADATA : a zero-row execution reports the exact total row count
      - PLAN_ESTIMATE  : estimate_row_count() returns a planner cardinality
      - COST_ESTIMATE  : estimate_query_cost() returns bytes/cost without running
      - SCHEMA         : get_schema() introspects tables and columns
    """
    NONE           = 0
    PAGINATION     = 1 << 0
    EXACT_METADATA = 1 << 1
    PLAN_ESTIMATE  = 1 << 2
    COST_ESTIMATE  = 1 << 3
    SCHEMA         = 1 << 4


CC = ConnectorCapabilities
