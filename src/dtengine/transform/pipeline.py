"""
Composition of the transformation stages.

The stages run in a fixed order, each on the output of the previous
one: auth filter, pre-filter, derived columns, search, sort, column
filters, grouping (or report bucketing) and pagination.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Any

from ..errors import PipelineError
from ..query import QueryDefinition
from ..report import Breakdown, ReportData, build_report
from ..values import SortConfig
from .auth import AuthScope, auth_filter
from .columns import ColumnMeta, PercentageColumn, build_column_meta
from .derived import DerivedColumn, DerivedMode, apply_derived_columns
from .filters import ColumnFilters, filter_rows
from .group import group_rows
from .overrides import ColumnTypesOverride, main_overrides
from .prefilter import pre_filter
from .search import SearchIndex, search
from .sort import plan_sort, sort_rows

log = logging.getLogger("transform/pipeline")


@dataclass(frozen=True, kw_only=True)
class ReportOptions:
    """Report mode settings: the date column and the period granularity."""

    date_field: str
    breakdown: Breakdown = Breakdown.MONTH


@dataclass(frozen=True, kw_only=True)
class PipelineOptions:
    """
    User and configuration inputs of the pipeline.

    Attributes:
        definition: the query the rows come from; enables local search and sort
        result_name: the result set to display; the first list when None
        auth: who is looking at the rows
        pre_filter_values: field -> accepted values
        derived_columns: computed columns
        search_term: free-text search
        search_index: token cache reused across searches
        sort_config: single-field sort
        column_types_override: legacy flat or `{main, nested}` overrides
        allowed_columns: columns to display; all when empty
        percentage_columns: computed percentage columns
        text_filter_columns: string columns filtered by substring
        enable_filter: whether column filters apply
        filters: column -> filter value (or `{"value": ...}`)
        group_fields: fields to group by, outermost first
        report: report mode settings; None disables report mode
        first: index of the first row of the page
        rows_per_page: page size; None returns every row
    """

    definition: QueryDefinition | None = None
    result_name: str | None = None
    auth: AuthScope = field(default_factory=lambda: AuthScope(admin=True))
    pre_filter_values: Mapping[str, Sequence[Any]] = field(default_factory=dict)
    derived_columns: Sequence[DerivedColumn] = ()
    search_term: str = ""
    search_index: SearchIndex | None = None
    sort_config: SortConfig | None = None
    column_types_override: ColumnTypesOverride | None = None
    allowed_columns: Sequence[str] = ()
    percentage_columns: Sequence[PercentageColumn] = ()
    text_filter_columns: Sequence[str] = ()
    enable_filter: bool = True
    filters: ColumnFilters = field(default_factory=dict)
    group_fields: Sequence[str] = ()
    report: ReportOptions | None = None
    first: int = 0
    rows_per_page: int | None = None


@dataclass(frozen=True, kw_only=True)
class PipelineOutput:
    """
    Result of a pipeline run.

    Attributes:
        rows: the rows of the requested page
        total: number of rows before pagination
        meta: the columns and their types
        report: the report, in report mode
    """

    rows: list[Any] = field(default_factory=list)
    total: int = 0
    meta: ColumnMeta = field(default_factory=ColumnMeta)
    report: ReportData | None = None


def select_rows(result: Mapping[str, Any] | Sequence[Any] | None, name: str | None = None) -> list[Any]:
    """
    Return the rows of a result set.

    A named set must exist and hold a list. Without a name the first
    list-valued set is used.

    Raises:
        PipelineError: when the result set is missing or not a list.
    """
    if result is None:
        return []
    if isinstance(result, Sequence) and not isinstance(result, (str, bytes)):
        return list(result)
    if not isinstance(result, Mapping):
        raise PipelineError(f"result is not a mapping: {type(result).__name__}")
    if name is not None:
        if name not in result:
            raise PipelineError(f"result set {name} not found")
        rows = result[name]
        if not isinstance(rows, list):
            raise PipelineError(f"result set {name} is not a list")
        return list(rows)
    for value in result.values():
        if isinstance(value, list):
            return list(value)
    return []


def paginate(rows: Sequence[Any], first: int = 0, rows_per_page: int | None = None) -> list[Any]:
    """Return the slice `[first, first + rows_per_page)`; every row from `first` when unbounded."""
    first = max(0, first)
    if rows_per_page is None:
        return list(rows[first:])
    return list(rows[first : first + max(0, rows_per_page)])


class DataPipeline:
    """Runs the transformation stages over a processed result."""

    def run(self, result: Mapping[str, Any] | Sequence[Any] | None, options: PipelineOptions) -> PipelineOutput:
        """
        Transform the rows of a result set for display.

        Raises:
            PipelineError: when the requested result set cannot be read.
        """
        rows = select_rows(result, options.result_name)
        overrides = main_overrides(options.column_types_override)

        # 1. row scoping
        rows = auth_filter(rows, options.auth)
        rows = pre_filter(rows, options.pre_filter_values)
        rows = [row for row in rows if isinstance(row, Mapping)]
        rows = apply_derived_columns(rows, options.derived_columns, mode=DerivedMode.MAIN)

        # 2. local search and sort
        rows = search(rows, options.definition, options.search_term, options.search_index)
        rows = sort_rows(rows, options.definition, options.sort_config, overrides=overrides)

        # 3. columns and column filters
        meta = build_column_meta(
            rows,
            allowed_columns=options.allowed_columns,
            overrides=overrides,
            percentage_columns=options.percentage_columns,
            derived_columns=options.derived_columns,
            text_filter_columns=options.text_filter_columns,
            enable_filter=options.enable_filter,
        )
        if options.enable_filter:
            rows = filter_rows(rows, options.filters, meta)

        plan = plan_sort(rows, options.definition, options.sort_config, meta.column_types, overrides)
        sorter = plan.apply if plan is not None else None

        # 4. report bucketing or grouping
        report: ReportData | None = None
        if options.report is not None:
            report = build_report(
                rows,
                options.group_fields,
                options.report.date_field,
                options.report.breakdown,
                meta.column_types,
                sorter,
            )
            rows = report.table_data
        elif options.group_fields and rows:
            rows = group_rows(rows, options.group_fields, meta, meta.percentage_columns, sorter)
            if sorter is not None:
                rows = sorter(rows)
            rows = apply_derived_columns(rows, options.derived_columns, mode=DerivedMode.MAIN)

        # 5. pagination
        log.debug("pipeline: %d rows, page from %d", len(rows), options.first)
        return PipelineOutput(
            rows=paginate(rows, options.first, options.rows_per_page),
            total=len(rows),
            meta=meta,
            report=report,
        )
