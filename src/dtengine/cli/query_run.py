"""Query run command."""

from __future__ import annotations

from typing import Any

import click
from rich.console import Console
from rich.table import Table

from ..engine import DataEngine
from ..orchestrator import Severity, StatusNotification
from ..scripting import dt_exception
from ..values import SortConfig
from .logger import configure_logging
from .query import parse_month_range, parse_variables_option, query

_SEVERITY_STYLES: dict[Severity, str] = {
    Severity.SUCCESS: "green",
    Severity.INFO: "cyan",
    Severity.WARN: "yellow",
    Severity.ERROR: "red",
}


def print_notification(console: Console, notification: StatusNotification) -> None:
    """Print a status notification with a color matching its severity."""
    style = _SEVERITY_STYLES.get(notification.severity, "white")
    console.print(f"[{style}]{notification.summary}:[/] {notification.detail}")


def print_result_sizes(console: Console, result: dict[str, Any]) -> None:
    """Print the number of rows of each result set."""
    table = Table("Result", "Rows")
    for name, rows in result.items():
        count = len(rows) if isinstance(rows, list) else 1
        table.add_row(name, str(count))
    console.print(table)


@query.command()
@click.argument("query_id")
@click.option("-d", "--dir", "data_dir", default=None, help="Data directory (default: .dtengine)")
@click.option("--start", default=None, metavar="YYYY-MM", help="First month of the range")
@click.option("--end", default=None, metavar="YYYY-MM", help="Last month of the range")
@click.option("--var", "variables", multiple=True, metavar="NAME=VALUE", help="Variable override")
@click.option("--search", default="", help="Search term")
@click.option("--sort", default=None, metavar="FIELD[:asc|desc]", help="Sort field")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Verbose mode.")
def run(
    query_id: str,
    data_dir: str | None,
    start: str | None,
    end: str | None,
    variables: tuple[str, ...],
    search: str,
    sort: str | None,
    verbose: bool,
) -> None:
    """Run a query, serving it from the cache when fresh."""
    configure_logging(verbose)
    month_range = parse_month_range(start, end)
    overrides = parse_variables_option(variables)
    try:
        sort_config = SortConfig.parse(sort) if sort else None
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--sort") from exc

    console = Console()
    interceptor = dt_exception.Interceptor()
    result = None
    with DataEngine(data_dir, notify=lambda n: print_notification(console, n)) as engine:
        orchestrator = engine.orchestrator
        with interceptor:
            orchestrator.set_variables(overrides)
            orchestrator.set_search_term(search)
            orchestrator.set_sort_config(sort_config)
            result = orchestrator.load_from_cache(query_id, month_range=month_range)

    if result is not None:
        print_result_sizes(console, result)
    elif not interceptor.failed:
        raise SystemExit(1)
    raise SystemExit(interceptor.exitcode())
