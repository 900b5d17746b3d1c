"""
Multi-level grouping with summary rows.

Grouping by `[f1, f2]` produces one summary row per distinct `f1`
value. Its `__groupRows__` hold the summary rows of the `f2` groups,
whose `__groupRows__` hold the original rows. Summary rows carry the
bookkeeping keys below; they start and end with double underscores so
they cannot collide with data fields.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any, Final

from ..values import ColumnType, get_data_value, to_number
from .columns import NESTED_TABLES_KEY, ColumnMeta, PercentageColumn

GROUP_KEY: Final[str] = "__groupKey__"
GROUP_ROWS: Final[str] = "__groupRows__"
GROUP_LEVEL: Final[str] = "__groupLevel__"
GROUP_FIELD: Final[str] = "__groupField__"
IS_GROUP_ROW: Final[str] = "__isGroupRow__"
GROUP_PATH: Final[str] = "__groupPath__"

# Bucket of rows whose group field is missing
NULL_GROUP: Final[str] = "__null__"

RowSorter = Callable[[Sequence[Any]], list[Any]]


def is_group_row(row: Any) -> bool:
    return isinstance(row, Mapping) and bool(row.get(IS_GROUP_ROW))


def _number_or_zero(value: Any) -> float:
    number = to_number(value)
    return 0 if number is None else number


def _group_key(row: Mapping[str, Any], field: str) -> str:
    value = get_data_value(row, field)
    if value is None:
        return NULL_GROUP
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def group_rows(
    rows: Sequence[Any],
    group_fields: Sequence[str],
    meta: ColumnMeta,
    percentage_columns: Sequence[PercentageColumn] = (),
    sorter: RowSorter | None = None,
    *,
    level: int = 0,
    parent_path: tuple[str | None, ...] = (),
) -> list[Any]:
    """
    Group rows recursively by `group_fields`.

    Within each summary row, the grouped field holds the group key, the
    deeper group fields are None, number columns hold the sum of their
    cells (non-numeric cells count as 0) and other columns hold the first
    non-null cell. Percentage columns are recomputed from the summed
    value and target fields of the group's original rows; they are None
    when the target sums to zero. Groups keep the order in which their
    key first appears; `sorter` orders the rows inside each group.
    Existing summary rows and malformed rows are ignored.
    """
    if level >= len(group_fields) or not rows:
        return list(rows)
    field = group_fields[level]

    groups: dict[str, list[Mapping[str, Any]]] = {}
    for row in rows:
        if not isinstance(row, Mapping) or row.get(IS_GROUP_ROW):
            continue
        groups.setdefault(_group_key(row, field), []).append(row)
    if sorter is not None:
        groups = {key: sorter(members) for key, members in groups.items()}

    deeper_fields = set(group_fields[level + 1 :])
    has_next_level = level + 1 < len(group_fields)
    summaries = []
    for key, members in groups.items():
        group_value = None if key == NULL_GROUP else key
        path = (*parent_path, group_value)
        if has_next_level:
            inner = group_rows(
                members,
                group_fields,
                meta,
                percentage_columns,
                sorter,
                level=level + 1,
                parent_path=path,
            )
        else:
            inner = members
        if not inner:
            continue
        first = inner[0]

        summary: dict[str, Any] = {}
        for column in meta.columns:
            if column == field:
                summary[column] = group_value
            elif column in deeper_fields:
                summary[column] = None
            elif meta.column_type(column) == ColumnType.NUMBER:
                summary[column] = sum(_number_or_zero(meta.cell_value(row, column)) for row in inner)
            else:
                summary[column] = next(
                    (
                        meta.cell_value(row, column)
                        for row in inner
                        if meta.cell_value(row, column) is not None
                    ),
                    meta.cell_value(first, column),
                )

        for pc in percentage_columns:
            if not pc.is_complete():
                continue
            target = sum(_number_or_zero(get_data_value(row, pc.target_field)) for row in members)
            value = sum(_number_or_zero(get_data_value(row, pc.value_field)) for row in members)
            summary[pc.column_name] = value / target * 100 if target != 0 else None

        summary[GROUP_KEY] = group_value
        summary[GROUP_ROWS] = inner
        summary[GROUP_LEVEL] = level
        summary[GROUP_FIELD] = field
        summary[IS_GROUP_ROW] = True
        summary[GROUP_PATH] = list(path)
        if isinstance(first, Mapping) and first.get(NESTED_TABLES_KEY):
            summary[NESTED_TABLES_KEY] = first[NESTED_TABLES_KEY]
        summaries.append(summary)
    return summaries


def flatten_groups(rows: Sequence[Any]) -> list[Any]:
    """Return the original rows below a list of summary rows, in order."""
    flat = []
    for row in rows:
        if is_group_row(row):
            flat.extend(flatten_groups(row[GROUP_ROWS]))
        else:
            flat.append(row)
    return flat
