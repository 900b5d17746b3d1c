"""User-defined columns computed from each row."""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from ..values import ColumnType, get_data_value

log = logging.getLogger("transform/derived")


class DerivedMode(str, Enum):
    """Table a derived column is computed for."""

    MAIN = "main"
    REPORT = "report"
    NESTED = "nested"


@dataclass(frozen=True, kw_only=True)
class DerivedScope:
    """
    Where a derived column applies.

    Attributes:
        main: whether it applies to the main table
        report: whether it applies to report tables
        nested: False, True (every nested table) or the names of the
            nested tables it applies to
    """

    main: bool = True
    report: bool = True
    nested: bool | tuple[str, ...] = False


@dataclass(frozen=True, kw_only=True)
class DerivedContext:
    """Information passed to a compute function along with the row."""

    row_index: int
    is_group_row: bool
    field_name: str | None = None
    parent_row: Mapping[str, Any] | None = None

    def get(self, row: Mapping[str, Any], key: str) -> Any:
        """Read a (possibly dotted) key from a row."""
        return get_data_value(row, key)


@dataclass(frozen=True, kw_only=True)
class DerivedColumn:
    """
    A column whose value is computed as `compute(row, context)`.

    Attributes:
        column_name: name of the generated column
        compute: the function computing the value; errors yield None
        scope: where the column applies
        column_type: optional type of the generated values
        position: optional 0-based position among the columns
    """

    column_name: str
    compute: Callable[[Mapping[str, Any], DerivedContext], Any]
    scope: DerivedScope = field(default_factory=DerivedScope)
    column_type: ColumnType | None = None
    position: int | None = None

    def applies_to(self, mode: DerivedMode, field_name: str | None = None) -> bool:
        """Return whether the column applies to the given table."""
        if mode == DerivedMode.MAIN:
            return self.scope.main
        if mode == DerivedMode.REPORT:
            return self.scope.report
        nested = self.scope.nested
        if isinstance(nested, bool):
            return nested
        return field_name in nested


def _matching(
    derived: Iterable[DerivedColumn],
    mode: DerivedMode,
    field_name: str | None,
) -> list[DerivedColumn]:
    return [dc for dc in derived if dc.column_name and dc.applies_to(mode, field_name)]


def apply_derived_columns(
    rows: Iterable[Any],
    derived: Sequence[DerivedColumn],
    *,
    mode: DerivedMode = DerivedMode.MAIN,
    field_name: str | None = None,
    parent_row: Mapping[str, Any] | None = None,
) -> list[Any]:
    """
    Return copies of the rows with the derived columns added.

    The input rows are never modified. A compute function that raises
    produces None for that cell. Malformed rows are returned unchanged.
    """
    rows = list(rows)
    configs = _matching(derived, mode, field_name)
    if not configs:
        return rows

    enriched_rows = []
    for index, row in enumerate(rows):
        if not isinstance(row, Mapping):
            enriched_rows.append(row)
            continue
        context = DerivedContext(
            row_index=index,
            is_group_row=bool(row.get("__isGroupRow__")),
            field_name=field_name,
            parent_row=parent_row,
        )
        enriched = dict(row)
        for dc in configs:
            try:
                value = dc.compute(row, context)
            except Exception as exc:
                log.debug("derived column %s failed on row %d: %s", dc.column_name, index, exc)
                value = None
            if isinstance(value, float) and math.isnan(value):
                value = None
            enriched[dc.column_name] = value
        enriched_rows.append(enriched)
    return enriched_rows


def derived_column_names(
    derived: Sequence[DerivedColumn],
    mode: DerivedMode = DerivedMode.MAIN,
    field_name: str | None = None,
) -> list[str]:
    """Return the names of the derived columns applying to the given table."""
    return [dc.column_name for dc in _matching(derived, mode, field_name)]


def ordered_columns_with_derived(
    columns: Sequence[str],
    derived: Sequence[DerivedColumn],
    mode: DerivedMode = DerivedMode.MAIN,
    field_name: str | None = None,
) -> list[str]:
    """
    Return the columns with the derived ones inserted at their position.

    Derived columns without a position go last, in declaration order.
    """
    result = list(columns)
    configs = _matching(derived, mode, field_name)
    for dc in configs:
        if dc.position is not None and dc.column_name in result:
            result.remove(dc.column_name)
    to_insert = [(index, dc) for index, dc in enumerate(configs) if dc.column_name not in result]
    to_insert.sort(key=lambda pair: (math.inf if pair[1].position is None else pair[1].position, pair[0]))

    # Ascending positions, so each one is the final index of its column
    for _, dc in to_insert:
        if dc.column_name in result:
            continue
        position = len(result) if dc.position is None else dc.position
        result.insert(min(position, len(result)), dc.column_name)
    return result
