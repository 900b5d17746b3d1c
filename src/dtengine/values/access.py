"""Helpers to read values out of processed rows."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


def get_data_value(data: Any, key: str | None) -> Any:
    """
    Return the value at `key` inside `data`.

    Dotted keys (e.g. `user.profile.name`) walk nested mappings and
    return None as soon as a component is missing.
    """
    if not isinstance(data, Mapping) or not key:
        return None
    if key in data:
        return data[key]
    if "." not in key:
        return None
    current: Any = data
    for part in key.split("."):
        if not isinstance(current, Mapping):
            return None
        current = current.get(part)
        if current is None:
            return None
    return current


def get_nested_value(row: Any, top_level_key: str | None, nested_path: str = "") -> Any:
    """
    Return the value at `nested_path` below `top_level_key` in the row.

    Falls back to reading `nested_path` directly from the row, which is
    what flat rows (already extracted from their parent object) need.
    Without a nested path, returns the top level value.
    """
    if not isinstance(row, Mapping) or not top_level_key:
        return None
    top_value = get_data_value(row, top_level_key)
    if top_value is not None and nested_path:
        current: Any = top_value
        for part in nested_path.split("."):
            if current is None:
                break
            current = get_data_value(current, part)
        if current is not None:
            return current
    if nested_path:
        direct = get_data_value(row, nested_path)
        if direct is not None:
            return direct
    return top_value


def split_field(field: str) -> tuple[str, str]:
    """Split `a.b.c` into the top-level key `a` and the nested path `b.c`."""
    top, _, nested = field.partition(".")
    return top, nested


def data_keys(row: Any) -> list[str]:
    """Return the keys of a row, or an empty list for malformed rows."""
    if not isinstance(row, Mapping):
        return []
    return [str(key) for key in row.keys()]


def is_null_like(value: Any) -> bool:
    """Return whether the value is None or an empty string."""
    return value is None or value == ""


def value_text(value: Any) -> str:
    """
    Return the text used to compare a cell with user-supplied values.

    Booleans read `true`/`false` and integral floats drop their
    fractional part, so `1.0` matches `"1"`.
    """
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)
