"""Cache status command."""

from __future__ import annotations

from datetime import datetime

import click
from rich.console import Console
from rich.table import Table

from ..cache import IndexSignatureStore, PartitionedCacheStore, data_dir_or_default
from ..errors import CacheIOError
from .cache import cache


def _format_ms(value: int | None) -> str:
    if value is None:
        return "-"
    return datetime.fromtimestamp(value / 1000).astimezone().strftime("%Y-%m-%d %H:%M:%S %z")


@cache.command()
@click.argument("query_id", required=False)
@click.option("-d", "--dir", "data_dir", default=None, help="Data directory (default: .dtengine)")
def status(query_id: str | None, data_dir: str | None) -> None:
    """Show the cached partitions and their index signatures.

    Without QUERY_ID, every cached query is listed. Each partition
    shows when it was written and the index signature it was
    checked against, if any.
    """
    resolved = data_dir_or_default(data_dir)
    store = PartitionedCacheStore(resolved)
    signatures = IndexSignatureStore(resolved)
    query_ids = [query_id] if query_id else store.query_ids()
    if not query_ids:
        click.echo("Nothing cached.")
        return

    table = Table("Query", "Partition", "Written at", "Signature")
    for qid in query_ids:
        try:
            stored = signatures.load(qid)
        except CacheIOError as exc:
            raise click.ClickException(f"Cannot read index signature of {qid}: {exc}") from exc
        signature = None if stored is None else stored.result
        partitions = sorted(store.partitions(qid))
        if not partitions:
            table.add_row(qid, "[dim]none[/]", "-", "-")
            continue
        for key in partitions:
            if isinstance(signature, dict):
                shown = signature.get(key, "-")
            else:
                shown = signature or "-"
            table.add_row(qid, key, _format_ms(store.written_at(qid, key)), str(shown))
    Console().print(table)
