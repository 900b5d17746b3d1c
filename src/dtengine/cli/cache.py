"""Cache command group."""

from . import cli


@cli.group()
def cache() -> None:
    """Inspect and clear the partitioned query cache."""
