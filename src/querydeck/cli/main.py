from __future__ import annotations

"""
querydeck CLI

Thin layer: parse args → build router → run → print with rich (or JSON).
"""

import asyncio
import json
from contextlib import aclosing
from enum import Enum
from typing import Any, Dict, List, Optional

import typer
from rich.console import Console
from rich.table import Table

from querydeck.cli.constants import (
    EXIT_CANCELLED,
    EXIT_CONFIG_ERROR,
    EXIT_ROUTING_BLOCKED,
    EXIT_RUNTIME_ERROR,
    EXIT_SUCCESS,
)
from querydeck.config import QueryDeckSettings, load_settings
from querydeck.connectors.registry import create_connector
from querydeck.detection import default_registry
from querydeck.engine.router import ExecutionRouter, QueryResult, StreamHandle
from querydeck.engine.streaming import ColumnMetadata
from querydeck.errors import (
    ConnectorNotRegisteredError,
    QueryCancelledError,
    RoutingError,
    format_query_error,
)
from querydeck.logging import configure_logging
from querydeck.version import VERSION

app = typer.Typer(help="querydeck: route, estimate and stream SQL across DuckDB, BigQuery and PostgreSQL")
console = Console()


class OutputFormat(str, Enum):
    rich = "rich"
    json = "json"


class DetectMode(str, Enum):
    off = "off"
    auto = "auto"
    suggest = "suggest"


@app.callback(invoke_without_command=True)
def _version(
    ctx: typer.Context,
    version: Optional[bool] = typer.Option(
        None, "--version", help="Show the querydeck version and exit.", is_eager=True
    )
) -> None:
    if version:
        typer.echo(f"querydeck {VERSION}")
        raise typer.Exit(code=EXIT_SUCCESS)
    if ctx.invoked_subcommand is None:
        typer.echo(ctx.get_help())
        raise typer.Exit(code=EXIT_SUCCESS)


# --------------------------------- Helpers ---------------------------------- #


def _load(config: Optional[str], verbose: bool) -> QueryDeckSettings:
    try:
        settings = load_settings(config)
    except (FileNotFoundError, ValueError) as e:
        typer.secho(f"Config error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_CONFIG_ERROR)
    configure_logging(settings.log_level, verbose=verbose)
    return settings


def _build_router(settings: QueryDeckSettings, connector: Optional[str], database: Optional[str]) -> ExecutionRouter:
    router = ExecutionRouter.from_settings(settings)
    name = connector or settings.active_connector
    if database is not None or name not in router.connectors:
        params: Dict[str, Any] = {}
        if database is not None:
            if name == "duckdb":
                params = {"database": database}
            elif name == "postgres":
                params = {"uri": database}
        router.register_connector(create_connector(name, **params), name=name)
    router.set_active_connector(name)
    return router


def _columns_of(rows: List[Dict[str, Any]], columns: List[ColumnMetadata]) -> List[str]:
    if columns:
        return [c.name for c in columns]
    return list(rows[0].keys()) if rows else []


def _print_rows(rows: List[Dict[str, Any]], columns: List[str], title: Optional[str] = None) -> None:
    table = Table(title=title, show_lines=False)
    for name in columns:
        table.add_column(name, overflow="fold")
    for row in rows:
        table.add_row(*["NULL" if row.get(c) is None else str(row.get(c)) for c in columns])
    console.print(table)


def _fail(e: Exception, sql: str, connector_id: str, verbose: bool) -> typer.Exit:
    """Print an error and return the Exit to raise."""
    if isinstance(e, QueryCancelledError):
        typer.secho(f"Cancelled: {e.reason}", fg=typer.colors.YELLOW, err=True)
        return typer.Exit(code=EXIT_CANCELLED)
    if isinstance(e, RoutingError):
        typer.secho(str(e), fg=typer.colors.YELLOW, err=True)
        return typer.Exit(code=EXIT_ROUTING_BLOCKED)
    if isinstance(e, ConnectorNotRegisteredError):
        typer.secho(f"Config error: {e}", fg=typer.colors.RED, err=True)
        return typer.Exit(code=EXIT_CONFIG_ERROR)
    if verbose:
        typer.secho(f"[RUNTIME_ERROR] {e!r}", fg=typer.colors.RED, err=True)
    else:
        formatted = format_query_error(str(e), sql=sql, connector_id=connector_id)
        typer.secho(f"Error: {formatted.user_message}", fg=typer.colors.RED, err=True)
    return typer.Exit(code=EXIT_RUNTIME_ERROR)


# --------------------------------- Commands --------------------------------- #


async def _run(router: ExecutionRouter, sql: str, max_rows: int) -> Dict[str, Any]:
    try:
        outcome = await router.run(sql)
        if isinstance(outcome, QueryResult):
            return {
                "connector": outcome.connector_id,
                "streamed": False,
                "rows": outcome.rows[:max_rows],
                "columns": outcome.columns,
                "row_count": outcome.row_count,
                "total_rows": outcome.total_rows,
                "switched_from": outcome.switched_from,
                "execution_time_ms": round(outcome.execution_time_ms, 1),
            }

        handle: StreamHandle = outcome
        rows: List[Dict[str, Any]] = []
        columns: List[ColumnMetadata] = []
        total_rows = None
        async with aclosing(handle.chunks()) as chunks:
            async for chunk in chunks:
                columns = columns or (chunk.columns or [])
                total_rows = chunk.total_rows
                rows.extend(chunk.rows[: max_rows - len(rows)])
                if len(rows) >= max_rows and not chunk.done:
                    break
        await handle.close()
        return {
            "connector": handle.connector_id,
            "streamed": True,
            "rows": rows,
            "columns": columns,
            "row_count": len(rows),
            "total_rows": total_rows,
            "estimated_count": handle.estimated_count,
            "switched_from": handle.switched_from,
        }
    finally:
        await router.close()


@app.command("run")
def run(
    sql: str = typer.Argument(..., help="SQL statement to execute."),
    connector: Optional[str] = typer.Option(
        None, "--connector", "-c", help="Connector to run on (default: from config or 'duckdb')."
    ),
    database: Optional[str] = typer.Option(
        None, "--database", "-d", help="DuckDB database file, or PostgreSQL URI for --connector postgres."
    ),
    detect: Optional[DetectMode] = typer.Option(
        None, "--detect", help="Dialect routing: off | auto | suggest (default: from config)."
    ),
    max_rows: int = typer.Option(100, "--max-rows", "-n", min=1, help="Maximum rows to display."),
    config: Optional[str] = typer.Option(None, "--config", help="Path to querydeck.yml."),
    output_format: OutputFormat = typer.Option(OutputFormat.rich, "--output-format", "-o", help="Output format."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose errors and debug logging."),
) -> None:
    """Route and execute a statement, streaming large results."""
    settings = _load(config, verbose)
    if detect is not None:
        settings.detection.mode = detect.value

    try:
        router = _build_router(settings, connector, database)
    except Exception as e:
        raise _fail(e, sql, connector or settings.active_connector, verbose)

    try:
        out = asyncio.run(_run(router, sql, max_rows))
    except KeyboardInterrupt:
        typer.secho("Cancelled", fg=typer.colors.YELLOW, err=True)
        raise typer.Exit(code=EXIT_CANCELLED)
    except Exception as e:
        raise _fail(e, sql, router.active_connector_id, verbose)

    columns = _columns_of(out["rows"], out["columns"])
    if output_format == OutputFormat.json:
        payload = dict(out, columns=[c.to_dict() for c in out["columns"]])
        typer.echo(json.dumps(payload, default=str, indent=2))
        raise typer.Exit(code=EXIT_SUCCESS)

    if out.get("switched_from"):
        typer.secho(f"Auto-switched from {out['switched_from']} to {out['connector']}", fg=typer.colors.BLUE)
    if columns:
        _print_rows(out["rows"], columns)
    summary = f"{out['row_count']:,} row(s) shown  •  connector={out['connector']}"
    if out.get("total_rows") is not None:
        summary += f"  total={out['total_rows']:,}"
    if out["streamed"]:
        summary += "  streamed"
    typer.secho(summary, fg=typer.colors.BLUE)
    raise typer.Exit(code=EXIT_SUCCESS)


@app.command("detect")
def detect(
    sql: str = typer.Argument(..., help="SQL statement to classify."),
    output_format: OutputFormat = typer.Option(OutputFormat.rich, "--output-format", "-o", help="Output format."),
) -> None:
    """Show which engine's dialect a statement looks like."""
    detection = default_registry().detect(sql)
    if output_format == OutputFormat.json:
        typer.echo(json.dumps(detection.to_dict(), indent=2))
        raise typer.Exit(code=EXIT_SUCCESS)

    color = typer.colors.YELLOW if detection.is_unknown else typer.colors.GREEN
    typer.secho(f"Engine: {detection.engine} ({detection.confidence} confidence)", fg=color)
    table = Table(show_header=True)
    table.add_column("engine")
    table.add_column("score", justify="right")
    for engine, score in sorted(detection.scores.items(), key=lambda kv: -kv[1]):
        table.add_row(engine, str(score))
    console.print(table)
    for signal in detection.signals:
        typer.echo(f"  - {signal}")
    raise typer.Exit(code=EXIT_SUCCESS)


async def _count(router: ExecutionRouter, sql: str):
    try:
        return await router.get_row_count(sql)
    finally:
        await router.close()


@app.command("count")
def count(
    sql: str = typer.Argument(..., help="SELECT statement to estimate."),
    connector: Optional[str] = typer.Option(None, "--connector", "-c", help="Connector to estimate on."),
    database: Optional[str] = typer.Option(None, "--database", "-d", help="DuckDB database file or PostgreSQL URI."),
    config: Optional[str] = typer.Option(None, "--config", help="Path to querydeck.yml."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose errors and debug logging."),
) -> None:
    """Estimate a statement's row count without fetching its rows."""
    settings = _load(config, verbose)
    try:
        router = _build_router(settings, connector, database)
        result = asyncio.run(_count(router, sql))
    except KeyboardInterrupt:
        raise typer.Exit(code=EXIT_CANCELLED)
    except Exception as e:
        raise _fail(e, sql, connector or settings.active_connector, verbose)

    if not result.is_known:
        typer.secho("Row count unknown", fg=typer.colors.YELLOW)
    else:
        kind = "estimated" if result.is_estimated else "exact"
        typer.echo(f"{result.count:,} rows ({kind})")
    raise typer.Exit(code=EXIT_SUCCESS)


async def _schema(router: ExecutionRouter):
    try:
        return await router.get_connector().get_schema()
    finally:
        await router.close()


@app.command("schema")
def schema(
    connector: Optional[str] = typer.Option(None, "--connector", "-c", help="Connector to introspect."),
    database: Optional[str] = typer.Option(None, "--database", "-d", help="DuckDB database file or PostgreSQL URI."),
    config: Optional[str] = typer.Option(None, "--config", help="Path to querydeck.yml."),
    output_format: OutputFormat = typer.Option(OutputFormat.rich, "--output-format", "-o", help="Output format."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Enable verbose errors and debug logging."),
) -> None:
    """List tables and columns visible to a connector."""
    settings = _load(config, verbose)
    try:
        router = _build_router(settings, connector, database)
        result = asyncio.run(_schema(router))
    except NotImplementedError as e:
        typer.secho(f"Error: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=EXIT_RUNTIME_ERROR)
    except Exception as e:
        raise _fail(e, "", connector or settings.active_connector, verbose)

    if output_format == OutputFormat.json:
        payload = {
            "database": result.database,
            "tables": [
                {
                    "schema": t.schema,
                    "name": t.name,
                    "type": t.type,
                    "columns": [{"name": c.name, "type": c.type, "nullable": c.nullable} for c in t.columns],
                }
                for t in result.tables
            ],
        }
        typer.echo(json.dumps(payload, indent=2))
        raise typer.Exit(code=EXIT_SUCCESS)

    if not result.tables:
        typer.secho("No tables found.", fg=typer.colors.YELLOW)
        raise typer.Exit(code=EXIT_SUCCESS)
    table = Table(title=result.database or None)
    table.add_column("table")
    table.add_column("type")
    table.add_column("columns", overflow="fold")
    for t in result.tables:
        name = f"{t.schema}.{t.name}" if t.schema else t.name
        cols = ", ".join(f"{c.name} {c.type}" for c in t.columns)
        table.add_row(name, t.type, cols)
    console.print(table)
    raise typer.Exit(code=EXIT_SUCCESS)


def main() -> None:
    app()


if __name__ == "__main__":
    main()
