from __future__ import annotations

import json
import sys
from typing import Any, Dict, List, Optional

import typer
from rich import box
from rich.console import Console
from rich.table import Table

from litemap.config import get_settings
from litemap.infrastructure.db_factory import build_dsn
from litemap.mapping.rows import Row
from litemap.sync import execute, query
from litemap.utils.logging import configure_logging
from litemap.utils.profiler import profile_block

app = typer.Typer(help="litemap: run SQL and map the results.")
console = Console()


def parse_params(pairs: Optional[List[str]]) -> Dict[str, Any]:
    """
    Turn ``name=value`` pairs into a parameter dict.

    Values are decoded as JSON when possible (``id=1`` -> 1,
    ``ids=[1,2]`` -> [1, 2]) and kept as strings otherwise.
    """
    params: Dict[str, Any] = {}
    for pair in pairs or []:
        name, sep, raw = pair.partition("=")
        if not sep or not name:
            raise typer.BadParameter(f"Expected name=value, got {pair!r}")
        try:
            params[name] = json.loads(raw)
        except json.JSONDecodeError:
            params[name] = raw
    return params


def render_rows(rows: List[Row], title: Optional[str] = None) -> Table:
    """Build a rich table for dynamic rows."""
    table = Table(title=title, box=box.ROUNDED, show_lines=False)
    columns = rows[0].columns if rows else ()
    for column in columns:
        table.add_column(column or "?", overflow="fold")
    for row in rows:
        cells = ["NULL" if row[i] is None else str(row[i]) for i in range(len(columns))]
        table.add_row(*cells)
    return table


def _setup() -> None:
    settings = get_settings()
    configure_logging(level=settings.log_level, json_logs=settings.log_json)


@app.command()
def info() -> None:
    """
    Show effective configuration values.
    """
    settings = get_settings()
    typer.echo(
        f"DB={settings.db_user}@{settings.db_host}:{settings.db_port}/{settings.db_name} | "
        f"statement_timeout_ms={settings.db_statement_timeout_ms} "
        f"stream_batch={settings.stream_batch_size} cache={settings.cache_max_entries}"
    )


@app.command("query")
def query_command(
    sql: str = typer.Argument(..., help="SQL text; reference parameters as @name."),
    param: Optional[List[str]] = typer.Option(None, "--param", "-p", help="Parameter as name=value."),
    dsn: Optional[str] = typer.Option(None, "--dsn", help="Connection string (default from settings)."),
    as_json: bool = typer.Option(False, "--json", help="Print rows as JSON instead of a table."),
    profile: bool = typer.Option(False, "--profile", help="Report duration and memory usage."),
) -> None:
    """
    Run a query and print the rows.
    """
    _setup()
    with profile_block("query") as stats:
        rows = query(dsn or build_dsn(), sql, parse_params(param))
    stats.extra["rows"] = len(rows)

    if as_json:
        typer.echo(json.dumps([row.to_dict() for row in rows], indent=2, default=str))
    else:
        console.print(render_rows(rows, title=f"{len(rows)} row(s)"))
    if profile:
        typer.echo(json.dumps(stats.as_dict()), err=True)


@app.command("execute")
def execute_command(
    sql: str = typer.Argument(..., help="SQL batch; reference parameters as @name."),
    param: Optional[List[str]] = typer.Option(None, "--param", "-p", help="Parameter as name=value."),
    dsn: Optional[str] = typer.Option(None, "--dsn", help="Connection string (default from settings)."),
) -> None:
    """
    Run a statement batch and print the number of affected rows.
    """
    _setup()
    affected = execute(dsn or build_dsn(), sql, parse_params(param))
    typer.echo(f"{affected} row(s) affected")


def main() -> None:
    try:
        app()
    except KeyboardInterrupt:
        typer.echo("Cancelled by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
