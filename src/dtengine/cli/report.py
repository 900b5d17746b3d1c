"""Report command."""

from __future__ import annotations

import click
from rich.console import Console
from rich.table import Table

from ..cache import PartitionedCacheStore, data_dir_or_default
from ..errors import PipelineError
from ..report import Breakdown, ReportData, build_report, metric_column, period_label_short
from ..transform import select_rows
from . import cli
from .query import parse_month_range


def _format_number(value: object) -> str:
    if isinstance(value, float):
        return f"{value:,.2f}".rstrip("0").rstrip(".")
    if isinstance(value, int):
        return f"{value:,}"
    return "-" if value is None else str(value)


def render_report(report: ReportData, group_field: str) -> Table:
    """Return a rich table with one column per period and metric."""
    table = Table(group_field)
    for period in report.time_periods:
        for metric in report.metrics:
            label = period_label_short(period, report.breakdown)
            table.add_column(f"{label}\n{metric}", justify="right")
    for row in report.table_data:
        cells = [str(row.get(group_field) if row.get(group_field) is not None else "(none)")]
        for period in report.time_periods:
            for metric in report.metrics:
                cells.append(_format_number(row.get(metric_column(period, metric))))
        table.add_row(*cells)
    return table


@cli.command()
@click.argument("query_id")
@click.option("-d", "--dir", "data_dir", default=None, help="Data directory (default: .dtengine)")
@click.option("--result", "result_name", default=None, help="Result set (default: the first one)")
@click.option("--date-field", required=True, help="Column holding the row date")
@click.option("--group", "group_fields", multiple=True, required=True, help="Group field (repeatable)")
@click.option(
    "--breakdown",
    default="month",
    show_default=True,
    type=click.Choice([b.value for b in Breakdown] + ["annual"], case_sensitive=False),
    help="Period granularity",
)
@click.option("--start", default=None, metavar="YYYY-MM", help="First cached month to include")
@click.option("--end", default=None, metavar="YYYY-MM", help="Last cached month to include")
def report(
    query_id: str,
    data_dir: str | None,
    result_name: str | None,
    date_field: str,
    group_fields: tuple[str, ...],
    breakdown: str,
    start: str | None,
    end: str | None,
) -> None:
    """Print a time-bucketed report built from the cached rows of a query."""
    month_range = parse_month_range(start, end)
    store = PartitionedCacheStore(data_dir_or_default(data_dir))
    partitions = sorted(store.partitions(query_id))
    if month_range is not None:
        partitions = store.list_cached_partitions(query_id, month_range.keys())
    if not partitions:
        raise click.ClickException(f"Nothing cached for {query_id}.")

    result = store.reconstruct(query_id, partitions)
    try:
        rows = select_rows(result, result_name)
    except PipelineError as exc:
        raise click.ClickException(str(exc)) from exc

    data = build_report(rows, group_fields, date_field, Breakdown.parse(breakdown))
    if data.is_empty():
        click.echo("No dated rows to report.")
        return
    console = Console()
    console.print(render_report(data, group_fields[0]))
    if len(group_fields) > 1:
        console.print(f"{len(data.nested_table_data)} nested table(s) by {', '.join(group_fields[1:])}.")

