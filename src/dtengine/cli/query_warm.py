"""Query warm command."""

from __future__ import annotations

import logging

import click
from tqdm import tqdm
from tqdm.contrib.logging import logging_redirect_tqdm

from ..engine import DataEngine
from ..errors import ExecutionError
from .logger import configure_logging
from .query import parse_month_range, query

log = logging.getLogger("cli/query_warm")


@query.command()
@click.argument("query_id")
@click.option("-d", "--dir", "data_dir", default=None, help="Data directory (default: .dtengine)")
@click.option("--start", required=True, metavar="YYYY-MM", help="First month of the range")
@click.option("--end", required=True, metavar="YYYY-MM", help="Last month of the range")
@click.option("-v", "--verbose", is_flag=True, default=False, help="Verbose mode.")
def warm(query_id: str, data_dir: str | None, start: str, end: str, verbose: bool) -> None:
    """Fetch and cache every month of a range, newest first."""
    configure_logging(verbose)
    month_range = parse_month_range(start, end)
    assert month_range is not None

    with DataEngine(data_dir) as engine:
        try:
            definition = engine.orchestrator.definition(query_id)
        except ExecutionError as exc:
            raise click.ClickException(str(exc)) from exc
        if not definition.month:
            raise click.ClickException(f"Query {query_id} is not partitioned by month.")

        keys = month_range.keys()
        log.info("warming %s (%s)... start", query_id, month_range)
        with (
            logging_redirect_tqdm(),
            tqdm(total=len(keys), desc=f"Warming {query_id}", unit="months") as pbar,
        ):

            def on_month(month: str, error: str | None) -> None:
                pbar.set_postfix_str(month if error is None else f"{month} failed")
                pbar.update(1)

            failed = engine.orchestrator.warm_months(
                query_id,
                definition,
                month_range,
                on_month=on_month,
            ).result()

    ok = len(keys) - len(failed)
    click.echo(f"Warmed {ok}/{len(keys)} month(s).")
    if failed:
        click.echo(f"{len(failed)} month(s) failed: {', '.join(sorted(failed))}", err=True)
        raise SystemExit(1)
