"""Typed filter predicates for table cells."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date, datetime, time
from enum import Enum
from typing import Any, Final

from .dates import parse_to_date
from .infer import ColumnType, to_number

_NUM: Final[str] = r"([+-]?\s*\d+\.?\d*)"

_RANGE_RE: Final[re.Pattern[str]] = re.compile(rf"^{_NUM}\s*<>\s*{_NUM}$")
_PLAIN_RE: Final[re.Pattern[str]] = re.compile(rf"^{_NUM}$")


class NumericFilterKind(str, Enum):
    """Kind of a parsed numeric filter expression."""

    RANGE = "range"
    LTE = "lte"
    GTE = "gte"
    LT = "lt"
    GT = "gt"
    EQ = "eq"
    CONTAINS = "contains"
    TEXT = "text"


# Order matters: two-character operators must be tried first
_OPERATORS: Final[tuple[tuple[str, NumericFilterKind], ...]] = (
    ("<=", NumericFilterKind.LTE),
    (">=", NumericFilterKind.GTE),
    ("<", NumericFilterKind.LT),
    (">", NumericFilterKind.GT),
    ("=", NumericFilterKind.EQ),
)


@dataclass(frozen=True, kw_only=True)
class NumericFilter:
    """
    Parsed numeric filter expression.

    Attributes:
        kind: the kind of comparison
        value: the operand of single-operand comparisons
        low: lower bound of a range (inclusive)
        high: upper bound of a range (inclusive)
        text: the operand of contains and text matches
    """

    kind: NumericFilterKind
    value: float | None = None
    low: float | None = None
    high: float | None = None
    text: str = ""


def _parse_num(text: str) -> float:
    return float(re.sub(r"\s+", "", text))


def parse_numeric_filter(expression: Any) -> NumericFilter | None:
    """
    Parse a numeric filter expression.

    Supported forms: `a<>b` (inclusive range, bounds in any order),
    `<=n`, `>=n`, `<n`, `>n`, `=n`. A plain number becomes a substring
    match on the cell text and anything else a case-insensitive text
    match. Empty expressions yield None (no filtering).
    """
    if expression is None or expression == "":
        return None
    text = str(expression).strip()

    match = _RANGE_RE.match(text)
    if match:
        low, high = _parse_num(match.group(1)), _parse_num(match.group(2))
        return NumericFilter(kind=NumericFilterKind.RANGE, low=min(low, high), high=max(low, high))

    for operator, kind in _OPERATORS:
        if text.startswith(operator):
            match = _PLAIN_RE.match(text[len(operator) :].strip())
            if match:
                return NumericFilter(kind=kind, value=_parse_num(match.group(1)))

    if _PLAIN_RE.match(text):
        return NumericFilter(kind=NumericFilterKind.CONTAINS, text=re.sub(r"\s+", "", text))

    return NumericFilter(kind=NumericFilterKind.TEXT, text=text)


def apply_numeric_filter(cell: Any, parsed: NumericFilter | None) -> bool:
    """Return whether the cell satisfies the parsed numeric filter."""
    if parsed is None:
        return True
    if parsed.kind == NumericFilterKind.CONTAINS:
        return parsed.text in _cell_text(cell)
    if parsed.kind == NumericFilterKind.TEXT:
        return parsed.text.lower() in _cell_text(cell).lower()

    number = to_number(cell)
    if number is None:
        return False
    if parsed.kind == NumericFilterKind.RANGE:
        assert parsed.low is not None and parsed.high is not None
        return parsed.low <= number <= parsed.high
    assert parsed.value is not None
    if parsed.kind == NumericFilterKind.LT:
        return number < parsed.value
    if parsed.kind == NumericFilterKind.GT:
        return number > parsed.value
    if parsed.kind == NumericFilterKind.LTE:
        return number <= parsed.value
    if parsed.kind == NumericFilterKind.GTE:
        return number >= parsed.value
    return number == parsed.value


def _cell_text(cell: Any) -> str:
    return "" if cell is None else str(cell)


def _day_bound(value: Any, bound: time) -> datetime | None:
    if isinstance(value, datetime):
        return datetime.combine(value.date(), bound)
    if isinstance(value, date):
        return datetime.combine(value, bound)
    parsed = parse_to_date(value)
    return None if parsed is None else datetime.combine(parsed.date(), bound)


def apply_date_filter(cell: Any, date_range: Sequence[Any] | None) -> bool:
    """
    Return whether the cell date lies inside `date_range`.

    The range is a `(start, end)` pair; either bound may be None. Bounds
    are inclusive whole days: start of the first day to the end of the
    last one. Cells that are not dates never match a non-empty range.
    """
    if not date_range:
        return True
    start = date_range[0] if len(date_range) > 0 else None
    end = date_range[1] if len(date_range) > 1 else None
    if not start and not end:
        return True
    cell_date = parse_to_date(cell)
    if cell_date is None:
        return False
    if start:
        lower = _day_bound(start, time.min)
        if lower is not None and cell_date < lower:
            return False
    if end:
        upper = _day_bound(end, time.max)
        if upper is not None and cell_date > upper:
            return False
    return True


def _is_truthy_flag(cell: Any) -> bool:
    return cell is True or cell == 1 or cell == "1"


def _is_falsy_flag(cell: Any) -> bool:
    return cell is False or (cell == 0 and not isinstance(cell, str)) or cell == "0"


def matches_column_filter(
    cell: Any,
    filter_value: Any,
    column_type: ColumnType,
    *,
    multiselect: bool = False,
) -> bool:
    """
    Return whether a cell matches a column filter value.

    Multiselect columns take a list of accepted values; boolean columns
    take True/False; date columns take a `(start, end)` pair; number
    columns take a numeric expression; anything else is a
    case-insensitive substring match.
    """
    if multiselect and isinstance(filter_value, (list, tuple)):
        for accepted in filter_value:
            if accepted is None or cell is None:
                if accepted is None and cell is None:
                    return True
                continue
            if accepted == cell or str(accepted) == str(cell):
                return True
        return False
    if column_type == ColumnType.BOOLEAN:
        if filter_value is True:
            return _is_truthy_flag(cell)
        if filter_value is False:
            return _is_falsy_flag(cell)
        return True
    if column_type == ColumnType.DATE:
        return apply_date_filter(cell, filter_value)
    if column_type == ColumnType.NUMBER:
        return apply_numeric_filter(cell, parse_numeric_filter(filter_value))
    return str(filter_value).lower() in _cell_text(cell).lower()
