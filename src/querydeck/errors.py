# src/querydeck/errors.py
"""
Error taxonomy and user-facing error formatting.

Hard errors (raised):
  - QueryCancelledError       user- or timeout-initiated cancellation
  - ConnectorError            connector execution failure (wrapped only for
                              recognized low-level signatures)
  - ConnectorNotRegisteredError
                              programmer error: unknown connector id
  - RoutingError              dialect routing refused to run the statement

Soft failures (estimation, cache, partial introspection) never raise; they
are logged and degraded by the component that hits them.

format_query_error() turns a raw connector message into an actionable,
categorized message. It is purely for presentation and never changes which
exception propagates.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Optional, Sequence


class QueryDeckError(Exception):
    """Base class for all querydeck errors."""


class QueryCancelledError(QueryDeckError):
    """
    Raised at the next suspension point after a query was cancelled.

    Attributes:
        reason: Human-readable cancellation reason.
        timed_out: True when the cancellation came from a timeout rather
                   than an explicit cancel() call.
    """

    def __init__(self, reason: str = "Query cancelled by user", timed_out: bool = False):
        super().__init__(reason)
        self.reason = reason
        self.timed_out = timed_out


class ConnectorError(QueryDeckError):
    """A connector failed to execute a statement."""


class ReadOnlyDatabaseWriteError(ConnectorError):
    """A statement tried to write into a database that only supports reads."""


class ConnectorNotRegisteredError(QueryDeckError, KeyError):
    """No connector is registered under the requested id."""

    def __str__(self) -> str:
        return str(self.args[0]) if self.args else "Connector not registered"


class RoutingError(QueryDeckError):
    """Dialect routing refused to execute the statement."""

    def __init__(self, message: str, target_engine: str, signals: Sequence[str] = ()):
        super().__init__(message)
        self.target_engine = target_engine
        self.signals = list(signals)


class ConnectorUnavailableError(RoutingError):
    """The detected engine is not registered or not connected."""


class EngineSuggestionError(RoutingError):
    """Suggest mode: the statement looks like another engine's dialect."""


# ------------------------------ Low-level signatures --------------------------

_READ_ONLY_SIGNATURES = (
    "HTML FileReaders do not support writing",
    "attached in read-only mode",
)

READ_ONLY_WRITE_REMEDIATION = (
    "Cannot write to attached database files from this session.\n\n"
    "Solutions:\n"
    '  - Remove the database prefix (e.g., use "CREATE TABLE allrecs" instead of '
    '"CREATE TABLE data.main.allrecs")\n'
    '  - Use TEMP tables: "CREATE TEMP TABLE allrecs AS ..."\n'
    "  - Export to Parquet: \"COPY (...) TO 'file.parquet' (FORMAT PARQUET)\"\n\n"
    "Read-only sessions can only write to the in-memory database and Parquet files."
)


def wrap_connector_error(exc: BaseException) -> Optional[ConnectorError]:
    """
    Return a more specific ConnectorError for a recognized low-level failure.

    Returns None when the error is not recognized; callers re-raise the
    original exception unchanged in that case.
    """
    message = str(exc)
    if any(sig in message for sig in _READ_ONLY_SIGNATURES):
        return ReadOnlyDatabaseWriteError(f"{READ_ONLY_WRITE_REMEDIATION}\n\nOriginal error: {message}")
    return None


# ------------------------------ Formatting ------------------------------------


class ErrorCategory(str, Enum):
    """Actionable categories for connector execution failures."""

    CATALOG_NOT_ATTACHED = "catalog_not_attached"
    WRONG_CONNECTOR = "wrong_connector"
    FILE_ACCESS = "file_access"
    FILE_NOT_FOUND = "file_not_found"
    PERMISSION_DENIED = "permission_denied"
    CORS = "cors"
    HTTP_NOT_FOUND = "http_not_found"
    HTTP_FORBIDDEN = "http_forbidden"
    NETWORK = "network"
    QUERY_TOO_LARGE = "query_too_large"
    UNKNOWN = "unknown"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class FormattedQueryError:
    category: ErrorCategory
    user_message: str
    catalog_name: Optional[str] = None


_CATALOG_RE = re.compile(r"Catalog [\"']?(\w+)[\"']? does not exist", re.IGNORECASE)
_CSV_FILE_RE = re.compile(r"'([^']+\.csv)'", re.IGNORECASE)


def format_query_error(
    error_message: str,
    sql: str = "",
    connector_id: str = "duckdb",
    inaccessible_files: Sequence[str] = (),
) -> FormattedQueryError:
    """
    Classify a raw connector error message into a user-facing message.

    Args:
        error_message: The raw message from the connector/driver.
        sql: The statement that failed (used to name referenced files).
        connector_id: Which connector ran the statement.
        inaccessible_files: File names the caller knows have lost access.
    """
    msg = error_message or "Query execution failed"

    if connector_id == "duckdb" and "Catalog" in msg and "does not exist" in msg:
        m = _CATALOG_RE.search(msg)
        catalog = m.group(1) if m else None
        if catalog:
            text = (
                f'Database catalog "{catalog}" is not attached.\n\n'
                "The query references a catalog/database that isn't loaded.\n\n"
                "Solutions:\n"
                f"  1. Attach it first: ATTACH '{catalog}.duckdb' AS {catalog};\n"
                f'  2. Or remove the "{catalog}." prefix from your query if not needed'
            )
        else:
            text = (
                "Database catalog not found.\n\n"
                "The query references a catalog/database that isn't loaded.\n\n"
                "Solutions:\n"
                "  1. Attach the .duckdb file first\n"
                "  2. Or check the catalog name in your query"
            )
        return FormattedQueryError(ErrorCategory.CATALOG_NOT_ATTACHED, text, catalog)

    if connector_id == "bigquery" and ("Catalog" in msg or "does not exist" in msg):
        text = (
            "BigQuery query failed.\n\n"
            f"{msg}\n\n"
            "This looks like the query was sent to the wrong connector.\n"
            "Check that BigQuery is configured and selected."
        )
        return FormattedQueryError(ErrorCategory.WRONG_CONNECTOR, text)

    if msg == "Error" or "Exception" in msg or "send() with Arrow IPC failed" in msg:
        files = [f.strip("'") for f in _CSV_FILE_RE.findall(sql or "")]
        if files:
            lost = [f for f in files if f in set(inaccessible_files)]
            if lost:
                text = (
                    f"Cannot access file(s): {', '.join(lost)}\n\n"
                    "The file handle has expired or permission was denied.\n\n"
                    "Solutions:\n"
                    "  1. Register the file(s) again\n"
                    "  2. Or remove these files from your query"
                )
            else:
                text = (
                    "Query failed with file access error\n\n"
                    "DuckDB couldn't access one or more files in your query.\n"
                    f"Files referenced: {', '.join(files)}"
                )
        else:
            text = f"Query failed: {msg}\n\nPlease check your query syntax and file access."
        return FormattedQueryError(ErrorCategory.FILE_ACCESS, text)

    if "No files found" in msg:
        return FormattedQueryError(
            ErrorCategory.FILE_NOT_FOUND,
            f"File not found: {msg}. Check the path or register the file first.",
        )

    if "Permission denied" in msg:
        return FormattedQueryError(
            ErrorCategory.PERMISSION_DENIED,
            "Permission denied: the file could not be read. Check its permissions and try again.",
        )

    if "CORS" in msg or "Access-Control-Allow-Origin" in msg:
        text = (
            "Remote file blocked by CORS policy\n\n"
            "The remote server doesn't allow requests from this origin.\n\n"
            "Solutions:\n"
            "  1. Download the file and query it locally instead\n"
            "  2. Use a proxy that adds CORS headers\n"
            "  3. Ask the file host to enable CORS for your domain"
        )
        return FormattedQueryError(ErrorCategory.CORS, text)

    if "404" in msg or "Not Found" in msg:
        text = (
            "Remote file not found (HTTP 404)\n\n"
            "The URL in your query doesn't exist or has been moved.\n\n"
            "Solutions:\n"
            "  1. Check the URL for typos\n"
            "  2. Verify the file still exists at that location"
        )
        return FormattedQueryError(ErrorCategory.HTTP_NOT_FOUND, text)

    if "403" in msg or "Forbidden" in msg:
        text = (
            "Access denied to remote file (HTTP 403)\n\n"
            "The server requires authentication or doesn't allow access.\n\n"
            "Solutions:\n"
            "  1. Check if the file requires credentials\n"
            "  2. Download the file and query it locally instead"
        )
        return FormattedQueryError(ErrorCategory.HTTP_FORBIDDEN, text)

    if "Failed to fetch" in msg or "timeout" in msg or "NetworkError" in msg:
        text = (
            "Network error accessing remote file\n\n"
            "The file couldn't be downloaded due to a network issue.\n\n"
            "Solutions:\n"
            "  1. Check your internet connection\n"
            "  2. Verify the server is online and accessible\n"
            "  3. Try again in a few moments"
        )
        return FormattedQueryError(ErrorCategory.NETWORK, text)

    if "maximum call stack" in msg or "maximum recursion depth" in msg:
        return FormattedQueryError(
            ErrorCategory.QUERY_TOO_LARGE,
            "Query too large: this query processes too much data. Try limiting results with a LIMIT clause.",
        )

    return FormattedQueryError(ErrorCategory.UNKNOWN, msg)
