"""Type-aware ordering of table rows."""

from __future__ import annotations

import locale
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import Enum
from typing import Any, TypeVar

from .access import get_nested_value, split_field
from .dates import to_epoch_ms
from .infer import ColumnType, to_number

T = TypeVar("T")

_TRUE_WORDS = frozenset({"true", "yes", "y", "1"})


class SortDirection(str, Enum):
    """Direction of a sort."""

    ASC = "asc"
    DESC = "desc"


@dataclass(frozen=True, kw_only=True)
class SortConfig:
    """
    Single-field sort requested by the user.

    Attributes:
        field: dotted path of the field (top-level key, then nested path)
        direction: asc or desc
    """

    field: str
    direction: SortDirection = SortDirection.ASC

    @classmethod
    def parse(cls, value: str) -> SortConfig:
        """Parse `field` or `field:asc|desc`."""
        field, _, direction = value.rpartition(":")
        if not field:
            return cls(field=value)
        try:
            return cls(field=field, direction=SortDirection(direction.lower()))
        except ValueError as exc:
            raise ValueError(f"invalid sort direction {direction}; valid values: asc, desc") from exc

    def split(self) -> tuple[str, str]:
        """Return the top-level key and the nested path of the field."""
        return split_field(self.field)


def boolean_rank(value: Any) -> int:
    """Return 1 for truthy flags and 0 otherwise; strings are read as words."""
    if isinstance(value, str):
        return 1 if value.strip().lower() in _TRUE_WORDS else 0
    return 1 if value else 0


def string_key(value: Any) -> tuple[str, str]:
    """Return a locale-aware, case-insensitive key for strings."""
    text = "" if value is None else str(value)
    return locale.strxfrm(text.casefold()), text


def sort_by_type(
    items: Iterable[T],
    value_of: Callable[[T], Any],
    column_type: ColumnType,
    direction: SortDirection = SortDirection.ASC,
) -> list[T]:
    """
    Return the items sorted by the value extracted with `value_of`.

    Numbers compare numerically; values that are not numbers always
    come last, in their original order, whatever the direction. Dates
    compare by epoch milliseconds with missing dates at zero. Booleans
    compare false before true. Strings use a locale-aware comparison.
    The sort is stable.
    """
    reverse = direction == SortDirection.DESC
    items = list(items)

    if column_type == ColumnType.NUMBER:
        numeric: list[tuple[float, T]] = []
        others: list[T] = []
        for item in items:
            number = to_number(value_of(item))
            if number is None:
                others.append(item)
            else:
                numeric.append((number, item))
        numeric.sort(key=lambda pair: pair[0], reverse=reverse)
        return [item for _, item in numeric] + others

    if column_type == ColumnType.DATE:
        key: Callable[[T], Any] = lambda item: to_epoch_ms(value_of(item))  # noqa: E731
    elif column_type == ColumnType.BOOLEAN:
        key = lambda item: boolean_rank(value_of(item))  # noqa: E731
    else:
        key = lambda item: string_key(value_of(item))  # noqa: E731
    return sorted(items, key=key, reverse=reverse)


def sort_rows_by_field(
    rows: Iterable[T],
    field: str,
    column_type: ColumnType,
    direction: SortDirection = SortDirection.ASC,
) -> list[T]:
    """Sort rows by a dotted field using `sort_by_type`."""
    top_key, nested_path = split_field(field)
    return sort_by_type(
        rows,
        lambda row: get_nested_value(row, top_key, nested_path),
        column_type,
        direction,
    )
