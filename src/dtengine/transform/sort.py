"""Local sort of query results."""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from ..query import QueryDefinition
from ..values import ColumnType, SortConfig, get_nested_value, infer_column_type, sort_by_type

RowSorter = Callable[[Sequence[Any]], list[Any]]


@dataclass(frozen=True, kw_only=True)
class SortPlan:
    """A local sort that applies: the field, its parts and its type."""

    config: SortConfig
    top_key: str
    nested_path: str
    column_type: ColumnType

    def value_of(self, row: Any) -> Any:
        return get_nested_value(row, self.top_key, self.nested_path)

    def apply(self, rows: Iterable[Any]) -> list[Any]:
        """Return the rows sorted by the plan; the sort is stable."""
        return sort_by_type(rows, self.value_of, self.column_type, self.config.direction)


def plan_sort(
    rows: Sequence[Any],
    definition: QueryDefinition | None,
    sort_config: SortConfig | None,
    column_types: Mapping[str, ColumnType] | None = None,
    overrides: Mapping[str, ColumnType] | None = None,
) -> SortPlan | None:
    """
    Return how to sort locally, or None when no local sort applies.

    Local sorting applies to queries cached client side whose
    `sort_fields` allow the field. The type comes from the overrides,
    then from the known column types (by nested path, then by full
    field), and is inferred from the rows otherwise.
    """
    if definition is None or sort_config is None or not definition.client_save:
        return None
    if not definition.allows_sort(sort_config.field):
        return None
    top_key, nested_path = sort_config.split()
    field = sort_config.field
    overrides = overrides or {}
    column_types = column_types or {}
    column_type = (
        overrides.get(field)
        or column_types.get(nested_path)
        or column_types.get(field)
        or infer_column_type(rows, field)
    )
    return SortPlan(config=sort_config, top_key=top_key, nested_path=nested_path, column_type=column_type)


def sort_rows(
    rows: Iterable[Any],
    definition: QueryDefinition | None,
    sort_config: SortConfig | None,
    column_types: Mapping[str, ColumnType] | None = None,
    overrides: Mapping[str, ColumnType] | None = None,
) -> list[Any]:
    """
    Return the rows sorted by `sort_config` when a local sort applies.

    Numbers sort numerically with non-numeric values last in both
    directions; see `dtengine.values.sort_by_type` for the other types.
    """
    rows = list(rows)
    plan = plan_sort(rows, definition, sort_config, column_types, overrides)
    if plan is None:
        return rows
    return plan.apply(rows)
