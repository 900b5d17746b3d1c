"""Row-level authorization filtering."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from ..values import get_data_value, value_text


@dataclass(frozen=True, kw_only=True)
class AuthScope:
    """
    What a user is allowed to see.

    Attributes:
        admin: admins see every row
        sales_team_column: column holding the sales team of a row
        sales_team_values: sales teams the user belongs to
        hq_column: column holding the headquarter of a row
        hq_values: headquarters the user may see; only applied when the
            user belongs to exactly one sales team
    """

    admin: bool = False
    sales_team_column: str | None = None
    sales_team_values: tuple[Any, ...] = ()
    hq_column: str | None = None
    hq_values: tuple[Any, ...] = ()


def _allowed(row: Mapping[str, Any], column: str, values: Sequence[Any]) -> bool:
    cell = get_data_value(row, column)
    if cell is None:
        return any(value is None or value == "" for value in values)
    text = value_text(cell)
    return any(value is not None and value_text(value) == text for value in values)


def auth_filter(rows: Iterable[Any], scope: AuthScope) -> list[Any]:
    """
    Return the rows the scope allows.

    Sales team values compare as strings. A row without a sales team is
    visible only when the allow-list contains None or an empty string.
    Malformed (non-mapping) rows are dropped.
    """
    rows = list(rows)
    if scope.admin:
        return rows
    if scope.sales_team_column and scope.sales_team_values:
        rows = [
            row
            for row in rows
            if isinstance(row, Mapping)
            and _allowed(row, scope.sales_team_column, scope.sales_team_values)
        ]
    if len(scope.sales_team_values) == 1 and scope.hq_column and scope.hq_values:
        rows = [
            row
            for row in rows
            if isinstance(row, Mapping) and _allowed(row, scope.hq_column, scope.hq_values)
        ]
    return rows
