"""
Column type overrides.

Two shapes are accepted: the legacy flat mapping `{column: type}` and
the nested shape `{"main": {...}, "nested": {field: {"main": ...,
"nested": ...}}}` used when nested tables carry their own overrides.
"""

from __future__ import annotations

import copy
from collections.abc import Mapping, Sequence
from typing import Any

from ..values import ColumnType, parse_column_type

ColumnTypesOverride = Mapping[str, Any]


def _is_type_name(value: Any) -> bool:
    return isinstance(value, (str, ColumnType)) and parse_column_type(value) is not None


def is_legacy_override(overrides: Any) -> bool:
    """Return whether the overrides use the flat `{column: type}` shape."""
    if not isinstance(overrides, Mapping):
        return False
    if "main" in overrides or "nested" in overrides:
        return False
    return all(_is_type_name(value) for value in overrides.values())


def _typed(level: Any) -> dict[str, ColumnType]:
    if not isinstance(level, Mapping):
        return {}
    result = {}
    for column, value in level.items():
        column_type = parse_column_type(value) if isinstance(value, (str, ColumnType)) else None
        if column_type is not None:
            result[str(column)] = column_type
    return result


def main_overrides(overrides: ColumnTypesOverride | None) -> dict[str, ColumnType]:
    """Return the overrides of the main table."""
    if not isinstance(overrides, Mapping):
        return {}
    if is_legacy_override(overrides):
        return _typed(overrides)
    return _typed(overrides.get("main"))


def nested_overrides_at_path(
    overrides: ColumnTypesOverride | None,
    path: Sequence[str],
) -> dict[str, ColumnType]:
    """Return the overrides of the nested table at `path` (field names, outermost first)."""
    if not isinstance(overrides, Mapping) or not path or is_legacy_override(overrides):
        return {}
    current: Any = overrides.get("nested")
    if not isinstance(current, Mapping):
        return {}
    current = current.get(path[0])
    for name in path[1:]:
        if not isinstance(current, Mapping):
            return {}
        nested = current.get("nested")
        current = nested.get(name) if isinstance(nested, Mapping) else None
    if not isinstance(current, Mapping):
        return {}
    return _typed(current.get("main"))


def set_override_at_path(
    overrides: ColumnTypesOverride | None,
    path: Sequence[str],
    column: str,
    column_type: str | ColumnType | None,
) -> dict[str, Any]:
    """
    Return new overrides with `column` at `path` set to `column_type`.

    A None or unknown type clears the override. An empty path addresses
    the main table and keeps the legacy shape when the input uses it.
    The input is never modified.
    """
    parsed = parse_column_type(column_type)
    value = parsed.value if parsed is not None else None

    if not path:
        if is_legacy_override(overrides):
            flat = {key: _type_value(val) for key, val in (overrides or {}).items()}
            _assign(flat, column, value)
            return flat
        result = copy.deepcopy(dict(overrides or {}))
        main = dict(result.get("main") or {})
        _assign(main, column, value)
        result["main"] = main
        return result

    if isinstance(overrides, Mapping) and not is_legacy_override(overrides):
        result = copy.deepcopy(dict(overrides))
    else:
        result = {}
    result.setdefault("main", {})
    level = result
    for name in path:
        nested = level.setdefault("nested", {})
        level = nested.setdefault(name, {"main": {}, "nested": {}})
    main = dict(level.get("main") or {})
    _assign(main, column, value)
    level["main"] = main
    return result


def _type_value(value: Any) -> Any:
    return value.value if isinstance(value, ColumnType) else value


def _assign(level: dict[str, Any], column: str, value: str | None) -> None:
    if value is None:
        level.pop(column, None)
    else:
        level[column] = value
