"""Column discovery, typing and percentage columns."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Final

from ..values import ColumnType, data_keys, get_data_value, infer_column_type, to_number
from .derived import DerivedColumn, DerivedMode, derived_column_names, ordered_columns_with_derived

# Key under which rows carry their nested tables
NESTED_TABLES_KEY: Final[str] = "__nestedTables__"

# Number of leading rows used to infer column types
INFERENCE_SAMPLE_SIZE: Final[int] = 100


@dataclass(frozen=True, kw_only=True)
class PercentageColumn:
    """
    A column computed as `value_field / target_field * 100`.

    Attributes:
        column_name: name of the generated column
        target_field: the denominator field
        value_field: the numerator field
    """

    column_name: str
    target_field: str
    value_field: str

    def is_complete(self) -> bool:
        """Return whether every name is set."""
        return bool(self.column_name and self.column_name.strip() and self.target_field and self.value_field)

    def compute(self, row: Any) -> float | None:
        """Return the percentage for a row, or None when it cannot be computed."""
        target = to_number(get_data_value(row, self.target_field))
        value = to_number(get_data_value(row, self.value_field))
        if target is None or value is None or target == 0:
            return None
        return value / target * 100


@dataclass(frozen=True, kw_only=True)
class ColumnMeta:
    """
    The columns of a table and how to read and filter them.

    Attributes:
        all_columns: every key found in the rows
        columns: the displayed columns, derived ones included
        column_types: type of each column
        multiselect_columns: string columns filtered by picking values
        percentage_columns: the configured percentage columns
    """

    all_columns: tuple[str, ...] = ()
    columns: tuple[str, ...] = ()
    column_types: Mapping[str, ColumnType] = field(default_factory=dict)
    multiselect_columns: frozenset[str] = frozenset()
    percentage_columns: tuple[PercentageColumn, ...] = ()

    @property
    def percentage_column_names(self) -> tuple[str, ...]:
        return tuple(pc.column_name for pc in self.percentage_columns)

    def percentage_column(self, column: str) -> PercentageColumn | None:
        """Return the percentage column named `column`, if any."""
        for pc in self.percentage_columns:
            if pc.column_name == column:
                return pc
        return None

    def column_type(self, column: str) -> ColumnType:
        return self.column_types.get(column, ColumnType.STRING)

    def cell_value(self, row: Any, column: str) -> Any:
        """Return the value shown in a cell; percentage columns are computed."""
        pc = self.percentage_column(column)
        if pc is not None:
            return pc.compute(row)
        return get_data_value(row, column)


def discover_columns(rows: Sequence[Any]) -> list[str]:
    """Return the union of row keys in first-seen order, without nested tables."""
    seen: dict[str, None] = {}
    for row in rows:
        for key in data_keys(row):
            if key != NESTED_TABLES_KEY:
                seen.setdefault(key, None)
    return list(seen)


def build_column_meta(
    rows: Sequence[Any],
    *,
    allowed_columns: Sequence[str] | None = None,
    overrides: Mapping[str, ColumnType] | None = None,
    percentage_columns: Sequence[PercentageColumn] = (),
    derived_columns: Sequence[DerivedColumn] = (),
    text_filter_columns: Sequence[str] = (),
    enable_filter: bool = True,
    derived_mode: DerivedMode = DerivedMode.MAIN,
    derived_field_name: str | None = None,
) -> ColumnMeta:
    """
    Build the column meta of a table.

    Columns are the union of the row keys, restricted to `allowed_columns`
    when given, with derived columns inserted at their position. Types
    come from `overrides` or are inferred on the first rows; derived
    columns declaring a type keep it. When filtering is enabled, string
    columns not listed in `text_filter_columns` become multiselect.
    """
    percentages = tuple(pc for pc in percentage_columns if pc.column_name and pc.column_name.strip())
    if not rows:
        return ColumnMeta(percentage_columns=percentages)

    overrides = dict(overrides or {})
    all_columns = discover_columns(rows)
    columns = all_columns
    if allowed_columns:
        allowed = set(allowed_columns)
        columns = [col for col in columns if col in allowed]
    columns = ordered_columns_with_derived(columns, derived_columns, derived_mode, derived_field_name)

    sample = list(rows[:INFERENCE_SAMPLE_SIZE])
    column_types = {col: infer_column_type(sample, col, overrides.get(col)) for col in columns}
    column_types.update(overrides)
    derived_names = set(derived_column_names(derived_columns, derived_mode, derived_field_name))
    for dc in derived_columns:
        if dc.column_name in derived_names and dc.column_type is not None:
            column_types[dc.column_name] = dc.column_type

    multiselect: frozenset[str] = frozenset()
    if enable_filter:
        text_filter = set(text_filter_columns)
        multiselect = frozenset(
            col
            for col in columns
            if column_types.get(col, ColumnType.STRING) == ColumnType.STRING and col not in text_filter
        )

    return ColumnMeta(
        all_columns=tuple(all_columns),
        columns=tuple(columns),
        column_types=column_types,
        multiselect_columns=multiselect,
        percentage_columns=percentages,
    )
