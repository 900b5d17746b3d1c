"""Mutable state owned by a single orchestrator."""

from __future__ import annotations

import threading
from dataclasses import dataclass, field
from typing import Any

from ..query import QueryDefinition
from ..values import MonthRange, SortConfig


@dataclass(kw_only=True)
class OrchestratorState:
    """
    Everything an orchestrator remembers between calls.

    Attributes:
        in_flight: execution keys currently running
        cache_load_key: key of the cache check in progress, if any
        pipeline_in_flight: queries re-run in the background after an
            index signature change
        definitions: definitions loaded so far, by query id
        selected_query_id: the query the user selected
        variables: user variable overrides
        month_range: selected month range
        search_term: current search term
        sort_config: current sort
        sequences: last sequence number issued per name
        last_updated_at: freshness value of the displayed data
        result: the last processed result
    """

    in_flight: set[str] = field(default_factory=set)
    cache_load_key: str | None = None
    pipeline_in_flight: set[str] = field(default_factory=set)
    definitions: dict[str, QueryDefinition] = field(default_factory=dict)
    selected_query_id: str | None = None
    variables: dict[str, Any] = field(default_factory=dict)
    month_range: MonthRange | None = None
    search_term: str = ""
    sort_config: SortConfig | None = None
    sequences: dict[str, int] = field(default_factory=dict)
    last_updated_at: str | None = None
    result: dict[str, Any] | None = None
    mutex: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)
