"""Column type inference from sampled cell values."""

from __future__ import annotations

import math
import re
from collections.abc import Mapping, Sequence
from enum import Enum
from typing import Any, Final

from .access import get_nested_value, split_field
from .dates import is_date_like

_NUMERIC_RE: Final[re.Pattern[str]] = re.compile(r"^[+-]?\d+(\.\d+)?([eE][+-]?\d+)?$")

_BOOLEAN_STRINGS: Final[frozenset[str]] = frozenset(
    {"true", "false", "yes", "no", "y", "n", "1", "0"}
)

# Columns are classified as dates when more than this share of samples are dates
DATE_MAJORITY_THRESHOLD: Final[float] = 0.5


class ColumnType(str, Enum):
    """Type of a table column."""

    BOOLEAN = "boolean"
    NUMBER = "number"
    DATE = "date"
    STRING = "string"


def parse_column_type(value: str | ColumnType | None) -> ColumnType | None:
    """Parse a column type name, returning None for unknown or empty values."""
    if value is None or isinstance(value, ColumnType):
        return value
    try:
        return ColumnType(value.strip().lower())
    except ValueError:
        return None


def is_boolean_value(value: Any) -> bool:
    """Return whether the value reads as a boolean."""
    if isinstance(value, bool):
        return True
    if isinstance(value, str):
        return value.strip().lower() in _BOOLEAN_STRINGS
    if isinstance(value, (int, float)):
        return value == 0 or value == 1
    return False


def is_numeric_value(value: Any) -> bool:
    """Return whether the value is a number or a numeric string (commas allowed)."""
    if isinstance(value, bool):
        return False
    if isinstance(value, (int, float)):
        return True
    if isinstance(value, str):
        text = value.strip().replace(",", "")
        return text != "" and _NUMERIC_RE.match(text) is not None
    return False


def to_number(value: Any) -> float | None:
    """
    Convert a cell value to a float.

    Returns None for values that are not numeric, including NaN, so
    callers can tell "not a number" apart from zero.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str) and is_numeric_value(value):
        number = float(value.strip().replace(",", ""))
    else:
        return None
    return None if math.isnan(number) else number


def distributed_samples(rows: Sequence[Any], field: str) -> list[Any]:
    """
    Draw a stratified sample of non-null values of `field`.

    The sample holds half of the rows (at least one), drawn evenly from
    the top, middle and bottom thirds of the data, then topped up with
    distinct values scanning from the beginning.
    """
    length = len(rows)
    target = max(1, length // 2) if length else 0
    if target == 0:
        return []
    top_key, nested_path = split_field(field)
    third = length // 3
    per_third = math.ceil(target / 3)
    samples: list[Any] = []

    for begin, end in ((0, third), (third, third * 2), (third * 2, length)):
        step = max(1, (end - begin) // per_third)
        for index in range(begin, end, step):
            if len(samples) >= target:
                break
            value = get_nested_value(rows[index], top_key, nested_path)
            if value is not None:
                samples.append(value)

    if len(samples) < target:
        seen: set[Any] = set()
        for row in rows:
            if len(samples) >= target:
                break
            value = get_nested_value(row, top_key, nested_path)
            if value is None:
                continue
            key = value if isinstance(value, (str, int, float, bool)) else repr(value)
            if key not in seen:
                seen.add(key)
                samples.append(value)

    return samples


def classify_samples(samples: Sequence[Any]) -> ColumnType:
    """Classify sampled values; booleans are checked before numbers."""
    if not samples:
        return ColumnType.STRING
    boolean_count = number_count = date_count = 0
    for value in samples:
        if is_boolean_value(value):
            boolean_count += 1
        elif is_numeric_value(value):
            number_count += 1
        elif is_date_like(value):
            date_count += 1
    if boolean_count == len(samples):
        return ColumnType.BOOLEAN
    if number_count == len(samples):
        return ColumnType.NUMBER
    if date_count > len(samples) * DATE_MAJORITY_THRESHOLD:
        return ColumnType.DATE
    return ColumnType.STRING


def infer_column_type(
    rows: Sequence[Any],
    field: str,
    override: str | ColumnType | None = None,
) -> ColumnType:
    """Return the type of `field`; an explicit override always wins."""
    forced = parse_column_type(override)
    if forced is not None:
        return forced
    if not rows:
        return ColumnType.STRING
    return classify_samples(distributed_samples(rows, field))


def infer_column_types(
    rows: Sequence[Any],
    columns: Sequence[str],
    overrides: Mapping[str, str | ColumnType] | None = None,
    *,
    sample_size: int = 100,
) -> dict[str, ColumnType]:
    """Return the type of each column, inferred on the first `sample_size` rows."""
    overrides = overrides or {}
    sample = list(rows[:sample_size])
    return {col: infer_column_type(sample, col, overrides.get(col)) for col in columns}
