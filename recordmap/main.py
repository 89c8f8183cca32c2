from __future__ import annotations

import json
import sys
from typing import Any, Dict, Optional

import typer
from rich.console import Console
from rich.table import Table

from recordmap.config import get_settings
from recordmap.domain.models import Mapping
from recordmap.errors import RecordMapError
from recordmap.infrastructure.db_factory import get_sync_connection
from recordmap.mapper import RecordMapper
from recordmap.query import LimitSpec, build_conditions, count_sql, get_dialect, select_sql
from recordmap.utils.logging import configure_logging

app = typer.Typer(help="recordmap CLI.")
console = Console()


def _json_option(value: Optional[str], option: str) -> Dict[str, Any]:
    if not value:
        return {}
    try:
        parsed = json.loads(value)
    except json.JSONDecodeError as exc:
        raise typer.BadParameter(f"{option} must be a JSON object: {exc}") from exc
    if not isinstance(parsed, dict):
        raise typer.BadParameter(f"{option} must be a JSON object")
    return parsed


def _limit_spec(limit: Optional[int], offset: Optional[int]) -> Optional[LimitSpec]:
    if limit is None:
        return None
    spec: LimitSpec = {"limit": limit}
    if offset is not None:
        spec["offset"] = offset
    return spec


@app.callback()
def setup() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} "
        f"dialect={settings.db_dialect} | cache_prefix={settings.cache_prefix} "
        f"compress={settings.cache_compress} expire={settings.cache_default_expire}s | "
        f"maintenance={'on' if settings.maintenance_mode else 'off'}"
    )


@app.command()
def explain(
    table: str = typer.Argument(..., help="Table name."),
    where: Optional[str] = typer.Option(None, "--where", "-w", help='Filter map as JSON, e.g. \'{"age": [20, 30]}\'.'),
    order: Optional[str] = typer.Option(None, "--order", "-o", help='Order spec as JSON, e.g. \'{"name": "ASC"}\'.'),
    limit: Optional[int] = typer.Option(None, "--limit", "-l", help="Row limit."),
    offset: Optional[int] = typer.Option(None, "--offset", help="Row offset (needs --limit)."),
    for_update: bool = typer.Option(False, "--for-update", help="Append FOR UPDATE."),
    count: bool = typer.Option(False, "--count", help="Render the COUNT query instead of SELECT."),
    dialect: Optional[str] = typer.Option(None, "--dialect", "-d", help="mysql, postgresql or sqlite."),
) -> None:
    """
    Print the SQL and bound values a query would run, without connecting.
    """
    try:
        sql_dialect = get_dialect(dialect or get_settings().db_dialect)
        filters = _json_option(where, "--where")
        if count:
            query = count_sql(table, build_conditions(filters, dialect=sql_dialect))
        else:
            conditions = build_conditions(
                filters,
                _json_option(order, "--order") or None,
                _limit_spec(limit, offset),
                for_update,
                dialect=sql_dialect,
            )
            query = select_sql(table, None, conditions)
    except RecordMapError as exc:
        raise typer.BadParameter(str(exc)) from exc
    typer.echo(sql_dialect.render(query.sql))
    typer.echo(json.dumps(query.params, default=str))


@app.command()
def columns(table: str = typer.Argument(..., help="Table name.")) -> None:
    """
    List the live column names of a table.
    """
    mapper = RecordMapper(Mapping(table=table))
    with get_sync_connection() as conn:
        names = mapper.columns_on_db(conn=conn)
    result = Table(title=f"{table} columns")
    result.add_column("#", justify="right")
    result.add_column("column")
    for position, name in enumerate(names, start=1):
        result.add_row(str(position), name)
    console.print(result)


@app.command()
def count(
    table: str = typer.Argument(..., help="Table name."),
    where: Optional[str] = typer.Option(None, "--where", "-w", help="Filter map as JSON."),
    fast: bool = typer.Option(False, "--fast", help="Count ids instead of rows (COUNT(id))."),
) -> None:
    """
    Count the rows matching a filter.
    """
    mapper = RecordMapper(Mapping(table=table))
    with get_sync_connection() as conn:
        total = mapper.count_by(_json_option(where, "--where"), conn=conn, high_performance=fast)
    typer.echo(str(total))


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
