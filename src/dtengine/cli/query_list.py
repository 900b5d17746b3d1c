"""Query list command."""

import click
from rich.console import Console
from rich.table import Table

from ..cache import data_dir_or_default
from ..query import DirectoryDefinitionStore
from .query import query


def _flag(value: bool) -> str:
    return "[green]yes[/]" if value else "[dim]no[/]"


@query.command("list")
@click.option("-d", "--dir", "data_dir", default=None, help="Data directory (default: .dtengine)")
def list_cmd(data_dir: str | None) -> None:
    """List the saved query definitions."""
    store = DirectoryDefinitionStore(data_dir_or_default(data_dir))
    definitions = store.list()
    if not definitions:
        click.echo("No query definitions found.")
        return

    table = Table("Query", "Month", "Client save", "Index", "Endpoint")
    for definition in definitions:
        table.add_row(
            definition.id,
            _flag(definition.month),
            _flag(definition.client_save),
            _flag(definition.has_index()),
            definition.url_key or "[dim]default[/]",
        )
    Console().print(table)
