"""Merging of query variables and computation of execution keys."""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Any

from ..values import MonthRange, SortConfig, split_field
from .definition import QueryDefinition

# Variables that a month range replaces
MONTH_RANGE_VARIABLES = ("startDate", "endDate")


def merge_variables(
    definition: QueryDefinition,
    overrides: Mapping[str, Any] | None = None,
    *,
    month_range: MonthRange | None = None,
    search_term: str | None = None,
    sort_config: SortConfig | None = None,
) -> dict[str, Any]:
    """
    Return the variables sent with a query execution.

    The definition template is overlaid with the overrides. With a month
    range, the `startDate`/`endDate` variables are removed because each
    partition execution sets its own. Queries that are not cached client
    side delegate search and sort to the server through the `searchText`,
    `sortField` and `sortDirection` variables.
    """
    merged = {**definition.template_variables(), **(overrides or {})}
    if month_range is not None:
        for name in MONTH_RANGE_VARIABLES:
            merged.pop(name, None)

    if not definition.client_save:
        if search_term and search_term.strip():
            merged["searchText"] = search_term.strip()
        if sort_config is not None and sort_config.field:
            top_key, nested_path = split_field(sort_config.field)
            allowed = definition.sort_fields.get(top_key)
            if not allowed or not nested_path or nested_path in allowed:
                merged["sortField"] = nested_path or top_key
                merged["sortDirection"] = sort_config.direction.value

    return merged


def execution_key(
    query_id: str,
    variables: Mapping[str, Any] | None,
    month_range: MonthRange | None = None,
) -> str:
    """
    Return the key identifying an execution.

    Two requests with the same query, variables and month range share a
    key: at most one of them runs at a time.
    """
    variables_text = json.dumps(dict(variables or {}), sort_keys=True, default=str)
    range_text = "" if month_range is None else f"{month_range.start_key()}_{month_range.end_key()}"
    return f"{query_id}__{variables_text}__{range_text}"
