"""
Report engine: buckets rows into calendar periods.

Rows are grouped by one or more group fields and cross-tabulated
against the numeric metric columns, one `{period}_{metric}` column per
period of the chosen breakdown (day, ISO week, month, quarter, year).
"""

from .computer import DEFAULT_INLINE_THRESHOLD, ReportComputer
from .engine import (
    NESTED_KEY_SEPARATOR,
    NESTED_ROW_KEY,
    ReportData,
    build_report,
    detect_metrics,
    metric_column,
)
from .periods import (
    Breakdown,
    PeriodBucket,
    group_by_period,
    period_key,
    period_label,
    period_label_short,
    reorganize_periods_for_period_over_period,
    time_periods,
)

__all__ = [
    "DEFAULT_INLINE_THRESHOLD",
    "NESTED_KEY_SEPARATOR",
    "NESTED_ROW_KEY",
    "Breakdown",
    "PeriodBucket",
    "ReportComputer",
    "ReportData",
    "build_report",
    "detect_metrics",
    "group_by_period",
    "metric_column",
    "period_key",
    "period_label",
    "period_label_short",
    "reorganize_periods_for_period_over_period",
    "time_periods",
]
