"""Per-column filters chosen by the user."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from ..errors import PipelineError
from ..values import apply_numeric_filter, matches_column_filter, parse_numeric_filter
from .columns import ColumnMeta

log = logging.getLogger("transform/filters")

ColumnFilters = Mapping[str, Any]


def filter_value(entry: Any) -> Any:
    """
    Return the value of a filter entry.

    Entries are either `{"value": x}` (with optional extra keys such as
    the match mode) or the raw value itself.
    """
    if isinstance(entry, Mapping):
        return entry.get("value")
    return entry


def _is_empty(value: Any) -> bool:
    if value is None or value == "":
        return True
    return isinstance(value, (list, tuple)) and len(value) == 0


def apply_row_filters(row: Any, filters: ColumnFilters, meta: ColumnMeta) -> bool:
    """
    Return whether the row passes every column filter.

    Columns without a filter value are skipped. Percentage columns take
    numeric expressions evaluated against the computed percentage.

    Raises:
        PipelineError: when the row is not a mapping.
    """
    if not isinstance(row, Mapping):
        raise PipelineError(f"row is not a mapping: {type(row).__name__}")
    if not filters:
        return True

    percentage_names = set(meta.percentage_column_names)
    for column in meta.columns:
        if column in percentage_names:
            continue
        value = filter_value(filters.get(column))
        if _is_empty(value):
            continue
        cell = meta.cell_value(row, column)
        if not matches_column_filter(
            cell,
            value,
            meta.column_type(column),
            multiselect=column in meta.multiselect_columns,
        ):
            return False

    for column in meta.percentage_column_names:
        value = filter_value(filters.get(column))
        if _is_empty(value):
            continue
        if not apply_numeric_filter(meta.cell_value(row, column), parse_numeric_filter(value)):
            return False
    return True


def filter_rows(rows: Iterable[Any], filters: ColumnFilters | None, meta: ColumnMeta) -> list[Any]:
    """Keep the rows passing `apply_row_filters`; malformed rows are skipped."""
    rows = list(rows)
    if not filters:
        return rows
    kept = []
    for row in rows:
        try:
            if apply_row_filters(row, filters, meta):
                kept.append(row)
        except PipelineError as exc:
            log.debug("skipping row: %s", exc)
    return kept
