"""
Transformation pipeline.

Pure stages turning the rows of a processed result into what a table
displays. Stages never mutate their input rows and skip malformed
(non-mapping) rows instead of failing.
"""

from .auth import AuthScope, auth_filter
from .columns import (
    NESTED_TABLES_KEY,
    ColumnMeta,
    PercentageColumn,
    build_column_meta,
    discover_columns,
)
from .derived import (
    DerivedColumn,
    DerivedContext,
    DerivedMode,
    DerivedScope,
    apply_derived_columns,
    derived_column_names,
    ordered_columns_with_derived,
)
from .filters import apply_row_filters, filter_rows, filter_value
from .group import (
    GROUP_FIELD,
    GROUP_KEY,
    GROUP_LEVEL,
    GROUP_PATH,
    GROUP_ROWS,
    IS_GROUP_ROW,
    NULL_GROUP,
    flatten_groups,
    group_rows,
    is_group_row,
)
from .overrides import (
    is_legacy_override,
    main_overrides,
    nested_overrides_at_path,
    set_override_at_path,
)
from .pipeline import (
    DataPipeline,
    PipelineOptions,
    PipelineOutput,
    ReportOptions,
    paginate,
    select_rows,
)
from .prefilter import NULL_SENTINELS, pre_filter, pre_filter_sets
from .search import SearchIndex, search
from .sort import SortPlan, plan_sort, sort_rows

__all__ = [
    "GROUP_FIELD",
    "GROUP_KEY",
    "GROUP_LEVEL",
    "GROUP_PATH",
    "GROUP_ROWS",
    "IS_GROUP_ROW",
    "NESTED_TABLES_KEY",
    "NULL_GROUP",
    "NULL_SENTINELS",
    "AuthScope",
    "ColumnMeta",
    "DataPipeline",
    "DerivedColumn",
    "DerivedContext",
    "DerivedMode",
    "DerivedScope",
    "PercentageColumn",
    "PipelineOptions",
    "PipelineOutput",
    "ReportOptions",
    "SearchIndex",
    "SortPlan",
    "apply_derived_columns",
    "apply_row_filters",
    "auth_filter",
    "build_column_meta",
    "derived_column_names",
    "discover_columns",
    "filter_rows",
    "filter_value",
    "flatten_groups",
    "group_rows",
    "is_group_row",
    "is_legacy_override",
    "main_overrides",
    "nested_overrides_at_path",
    "ordered_columns_with_derived",
    "paginate",
    "plan_sort",
    "pre_filter",
    "pre_filter_sets",
    "search",
    "select_rows",
    "set_override_at_path",
    "sort_rows",
]
