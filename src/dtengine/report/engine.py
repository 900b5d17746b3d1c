"""Cross-tabulation of rows into `{period}_{metric}` report tables."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any, Final

from ..values import ColumnType, get_data_value, parse_to_date, to_number
from .periods import Breakdown, group_by_period, period_key, time_periods

# Share of sampled numeric values above which a column becomes a metric
METRIC_MAJORITY_THRESHOLD: Final[float] = 0.5

# Number of leading rows sampled to detect metrics
METRIC_SAMPLE_SIZE: Final[int] = 100

# Separator of the group values in nested table keys
NESTED_KEY_SEPARATOR: Final[str] = "|"

# Marks the rows of nested report tables
NESTED_ROW_KEY: Final[str] = "__isNestedRow__"

RowSorter = Callable[[Sequence[Any]], list[Any]]


def metric_column(period: str, metric: str) -> str:
    """Return the name of the column holding `metric` for `period`."""
    return f"{period}_{metric}"


@dataclass(frozen=True, kw_only=True)
class ReportData:
    """
    A report table.

    Attributes:
        table_data: one row per value of the first group field
        nested_table_data: rows of the nested tables, keyed by the group
            values leading to them joined with `|` (e.g. `A` or `A|x`)
        time_periods: the period keys, sorted
        metrics: the summed numeric columns
        date_range: first and last date found (`YYYY-MM-DD`), or Nones
        breakdown: the period granularity
    """

    table_data: list[dict[str, Any]] = field(default_factory=list)
    nested_table_data: dict[str, list[dict[str, Any]]] = field(default_factory=dict)
    time_periods: list[str] = field(default_factory=list)
    metrics: list[str] = field(default_factory=list)
    date_range: tuple[str | None, str | None] = (None, None)
    breakdown: Breakdown = Breakdown.MONTH

    def is_empty(self) -> bool:
        return not self.table_data

    def period_columns(self) -> list[str]:
        """Return the generated columns, period by period."""
        return [metric_column(period, metric) for period in self.time_periods for metric in self.metrics]

    def column_types_override(self) -> dict[str, ColumnType]:
        """Mark every generated column as a number; sparse columns defeat inference."""
        return {column: ColumnType.NUMBER for column in self.period_columns()}


def detect_metrics(
    rows: Sequence[Any],
    group_fields: Sequence[str],
    date_field: str,
    column_types: Mapping[str, ColumnType] | None = None,
) -> list[str]:
    """
    Return the columns to sum, in first-seen order.

    Columns typed as numbers are metrics. Other columns become metrics
    when more than half of their sampled non-empty values are numeric.
    Group fields and the date field never are.
    """
    column_types = column_types or {}
    excluded = set(group_fields) | {date_field}
    typed: list[str] = []
    checked: dict[str, int] = {}
    numeric: dict[str, int] = {}
    for index, row in enumerate(rows):
        if not isinstance(row, Mapping):
            continue
        for column in row:
            if column in excluded or column in typed:
                continue
            if column_types.get(column) == ColumnType.NUMBER:
                typed.append(column)
            elif index < METRIC_SAMPLE_SIZE:
                value = row[column]
                if value is None or value == "":
                    continue
                checked[column] = checked.get(column, 0) + 1
                if to_number(value) is not None and not isinstance(value, bool):
                    numeric[column] = numeric.get(column, 0) + 1
    sampled = [
        column
        for column, count in checked.items()
        if column not in typed and numeric.get(column, 0) / count > METRIC_MAJORITY_THRESHOLD
    ]
    return typed + sampled


def _group_value(row: Any, group_field: str) -> Any:
    value = get_data_value(row, group_field)
    return None if value is None or value == "" else value


def _value_key(value: Any) -> str:
    return "__null__" if value is None else str(value)


def _cross_tab(
    rows: Sequence[Any],
    key_of: Callable[[Any], tuple[Any, ...]],
    date_field: str,
    breakdown: Breakdown,
    periods: Sequence[str],
    metrics: Sequence[str],
) -> dict[tuple[str, ...], tuple[tuple[Any, ...], dict[str, float]]]:
    """Sum the metrics per key and period; returns key -> (values, columns)."""
    entries: dict[tuple[str, ...], tuple[tuple[Any, ...], dict[str, float]]] = {}
    for bucket in group_by_period(rows, date_field, breakdown, metrics).values():
        for row in bucket.rows:
            values = key_of(row)
            identity = tuple(_value_key(value) for value in values)
            if identity not in entries:
                entries[identity] = (
                    values,
                    {metric_column(p, m): 0 for p in periods for m in metrics},
                )
            sums = entries[identity][1]
            for metric in metrics:
                number = to_number(get_data_value(row, metric))
                if number is not None:
                    sums[metric_column(bucket.period, metric)] += number
    return entries


def build_report(
    rows: Sequence[Any],
    group_fields: Sequence[str],
    date_field: str,
    breakdown: Breakdown | str = Breakdown.MONTH,
    column_types: Mapping[str, ColumnType] | None = None,
    sort: RowSorter | None = None,
) -> ReportData:
    """
    Build a report table from raw rows.

    The main table has one row per value of the first group field with a
    `{period}_{metric}` column for each period between the first and last
    date found. With more group fields, `nested_table_data` holds for each
    group path the rows of the next level, keyed by the path values joined
    with `|`. `sort`, when given, orders the main table and every nested
    table. Without rows, group fields, a date field or any dated row, the
    report is empty.
    """
    breakdown = Breakdown.parse(breakdown)
    rows = [row for row in rows if isinstance(row, Mapping)]
    group_fields = list(group_fields)
    if not rows or not group_fields or not date_field:
        return ReportData(breakdown=breakdown)

    metrics = detect_metrics(rows, group_fields, date_field, column_types)

    dates = [parsed for parsed in (parse_to_date(get_data_value(row, date_field)) for row in rows) if parsed]
    if not dates:
        return ReportData(breakdown=breakdown)
    first, last = min(dates), max(dates)
    date_range = (period_key(first, Breakdown.DAY), period_key(last, Breakdown.DAY))
    periods = time_periods(first, last, breakdown)

    # 1. main table, one row per value of the outer group field
    outer = group_fields[0]
    table_data = []
    main = _cross_tab(rows, lambda row: (_group_value(row, outer),), date_field, breakdown, periods, metrics)
    for index, (values, sums) in enumerate(main.values(), start=1):
        table_data.append({"id": index, outer: values[0], **sums})
    if sort is not None:
        table_data = sort(table_data)

    # 2. nested tables, one per group path with a next level
    nested: dict[str, list[dict[str, Any]]] = {}

    def expand(level_rows: list[Any], level: int, path: tuple[Any, ...]) -> None:
        if level + 1 >= len(group_fields):
            return
        current_field = group_fields[level]
        next_field = group_fields[level + 1]
        groups: dict[str, list[Any]] = {}
        group_values: dict[str, Any] = {}
        for row in level_rows:
            value = _group_value(row, current_field)
            groups.setdefault(_value_key(value), []).append(row)
            group_values.setdefault(_value_key(value), value)

        for key, members in groups.items():
            current_path = (*path, group_values[key])
            composite = NESTED_KEY_SEPARATOR.join(_value_key(value) for value in current_path)
            table = _cross_tab(
                members,
                lambda row: (_group_value(row, next_field),),
                date_field,
                breakdown,
                periods,
                metrics,
            )
            deeper = _deeper_values(members, group_fields[level + 2 :], next_field)
            target = nested.setdefault(composite, [])
            for index, (values, sums) in enumerate(table.values(), start=1):
                nested_row: dict[str, Any] = {"id": f"{composite}-{index}"}
                for position, parent_value in enumerate(current_path):
                    nested_row[group_fields[position]] = parent_value
                nested_row[next_field] = values[0]
                nested_row.update(deeper.get(_value_key(values[0]), {}))
                nested_row[NESTED_ROW_KEY] = True
                nested_row.update(sums)
                target.append(nested_row)
            expand(members, level + 1, current_path)

    expand(rows, 0, ())
    if sort is not None:
        nested = {key: sort(table) for key, table in nested.items()}

    return ReportData(
        table_data=table_data,
        nested_table_data=nested,
        time_periods=periods,
        metrics=metrics,
        date_range=date_range,
        breakdown=breakdown,
    )


def _deeper_values(
    rows: Sequence[Any],
    deeper_fields: Sequence[str],
    next_field: str,
) -> dict[str, dict[str, Any]]:
    """Return, per next-level value, the last non-empty value of each deeper group field."""
    result: dict[str, dict[str, Any]] = {}
    if not deeper_fields:
        return result
    for row in rows:
        values = result.setdefault(_value_key(_group_value(row, next_field)), {})
        for deeper in deeper_fields:
            value = _group_value(row, deeper)
            if value is not None:
                values[deeper] = value
    return result
