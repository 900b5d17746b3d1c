"""
Type inference and predicate library.

Pure functions that classify raw cell values as boolean, number, date
or string, evaluate typed filter expressions and handle calendar-month
partition keys. Nothing in here performs I/O.
"""

from .access import (
    data_keys,
    get_data_value,
    get_nested_value,
    is_null_like,
    split_field,
    value_text,
)
from .dates import (
    MonthRange,
    extract_year_month,
    generate_month_range,
    has_year_month_prefix,
    is_date_like,
    is_year_month,
    month_bounds,
    month_range_variables,
    parse_to_date,
    to_epoch_ms,
)
from .infer import (
    ColumnType,
    distributed_samples,
    infer_column_type,
    infer_column_types,
    is_boolean_value,
    is_numeric_value,
    parse_column_type,
    to_number,
)
from .predicates import (
    NumericFilter,
    NumericFilterKind,
    apply_date_filter,
    apply_numeric_filter,
    matches_column_filter,
    parse_numeric_filter,
)
from .sorting import (
    SortConfig,
    SortDirection,
    boolean_rank,
    sort_by_type,
    sort_rows_by_field,
    string_key,
)

__all__ = [
    "ColumnType",
    "MonthRange",
    "NumericFilter",
    "NumericFilterKind",
    "SortConfig",
    "SortDirection",
    "apply_date_filter",
    "apply_numeric_filter",
    "boolean_rank",
    "data_keys",
    "distributed_samples",
    "extract_year_month",
    "generate_month_range",
    "get_data_value",
    "get_nested_value",
    "has_year_month_prefix",
    "infer_column_type",
    "infer_column_types",
    "is_boolean_value",
    "is_date_like",
    "is_null_like",
    "is_numeric_value",
    "is_year_month",
    "matches_column_filter",
    "month_bounds",
    "month_range_variables",
    "parse_column_type",
    "parse_numeric_filter",
    "parse_to_date",
    "sort_by_type",
    "sort_rows_by_field",
    "split_field",
    "string_key",
    "to_epoch_ms",
    "to_number",
    "value_text",
]
