"""Fixed per-field value filters applied before anything else."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any, Final

from ..values import get_data_value, is_null_like, value_text

# Accepted values that let rows without a value through
NULL_SENTINELS: Final[frozenset[str]] = frozenset({"null", "", "undefined"})


def pre_filter_sets(values: Mapping[str, Sequence[Any]]) -> dict[str, frozenset[str]]:
    """Return the accepted values of each field as sets of strings, skipping empty lists."""
    return {
        field: frozenset(value_text(value) for value in accepted)
        for field, accepted in values.items()
        if accepted
    }


def pre_filter(rows: Iterable[Any], values: Mapping[str, Sequence[Any]]) -> list[Any]:
    """
    Keep the rows whose fields hold one of the accepted values.

    Values compare as strings. A row whose field is None or an empty
    string passes only when that field accepts the null sentinel
    (`"null"`, `""` or `"undefined"`). Malformed rows are dropped when
    any filter applies.
    """
    sets = pre_filter_sets(values)
    rows = list(rows)
    if not sets:
        return rows

    def keep(row: Any) -> bool:
        if not isinstance(row, Mapping):
            return False
        for field, accepted in sets.items():
            cell = get_data_value(row, field)
            if is_null_like(cell):
                if accepted.isdisjoint(NULL_SENTINELS):
                    return False
                continue
            if value_text(cell) not in accepted:
                return False
        return True

    return [row for row in rows if keep(row)]
