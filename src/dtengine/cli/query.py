"""Query command group and shared option parsing."""

from __future__ import annotations

import json
from typing import Any

import click

from ..values import MonthRange, is_year_month
from . import cli


@cli.group()
def query() -> None:
    """List, run and warm saved queries."""


def parse_month_range(start: str | None, end: str | None) -> MonthRange | None:
    """
    Build a month range from `YYYY-MM` options.

    A single bound selects that month only. Reversed bounds are swapped.

    Raises:
        click.BadParameter: when a bound is not `YYYY-MM`.
    """
    if start is None and end is None:
        return None
    for name, value in (("--start", start), ("--end", end)):
        if value is not None and not is_year_month(value):
            raise click.BadParameter(f"expected YYYY-MM, got {value!r}", param_hint=name)
    first = start or end
    last = end or start
    assert first is not None and last is not None
    if first > last:
        first, last = last, first
    return MonthRange.of(first, last)


def parse_variables_option(values: tuple[str, ...]) -> dict[str, Any]:
    """
    Parse repeated `--var name=value` options.

    Values that are valid JSON are decoded (`--var limit=10` yields an
    integer); anything else is kept as a string.

    Raises:
        click.BadParameter: when an option lacks the `=`.
    """
    variables: dict[str, Any] = {}
    for item in values:
        name, sep, raw = item.partition("=")
        if not sep or not name.strip():
            raise click.BadParameter(f"expected NAME=VALUE, got {item!r}", param_hint="--var")
        try:
            value = json.loads(raw)
        except ValueError:
            value = raw
        variables[name.strip()] = value
    return variables
