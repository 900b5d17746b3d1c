"""Cache clear command."""

from __future__ import annotations

import click

from ..cache import IndexSignatureStore, PartitionedCacheStore, data_dir_or_default
from ..values import is_year_month
from .cache import cache


@cache.command()
@click.argument("query_id")
@click.option("-d", "--dir", "data_dir", default=None, help="Data directory (default: .dtengine)")
@click.option(
    "-m",
    "--month",
    "months",
    multiple=True,
    metavar="YYYY-MM",
    help="Clear only this month (repeatable)",
)
def clear(query_id: str, data_dir: str | None, months: tuple[str, ...]) -> None:
    """Remove the cached partitions of a query.

    Without --month, every partition and the index signature are
    removed. With --month, only those partitions are removed and
    their months are dropped from the signature, so the next run
    fetches them again.
    """
    for month in months:
        if not is_year_month(month):
            raise click.BadParameter(f"expected YYYY-MM, got {month!r}", param_hint="--month")

    resolved = data_dir_or_default(data_dir)
    store = PartitionedCacheStore(resolved)
    signatures = IndexSignatureStore(resolved)
    if months:
        store.clear(query_id, list(months))
        signatures.forget_months(query_id, list(months))
        click.echo(f"Cleared {len(months)} partition(s) of {query_id}.")
        return

    store.clear(query_id)
    signatures.clear(query_id)
    click.echo(f"Cleared {query_id}.")
