"""Guardrails for nested query executions."""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from typing import Final

from ..errors import DependencyError

DEFAULT_MAX_DEPTH: Final[int] = 10


class ExecutionContext:
    """
    Tracks the queries being executed by a single pipeline run.

    A transformer may run other saved queries, which may run others in
    turn. The context rejects cycles, nesting deeper than `max_depth`
    and concurrent re-entry of a query already in flight.
    """

    def __init__(self, max_depth: int = DEFAULT_MAX_DEPTH):
        self.max_depth = max_depth
        self.in_flight: set[str] = set()
        self.dependency_stack: list[str] = []

    @contextmanager
    def enter(self, query_id: str) -> Iterator[None]:
        """Mark `query_id` as executing for the duration of the block."""
        if query_id in self.dependency_stack:
            cycle = " → ".join([*self.dependency_stack, query_id])
            raise DependencyError(f"Circular dependency detected: {cycle}")
        if len(self.dependency_stack) >= self.max_depth:
            chain = " → ".join(self.dependency_stack)
            raise DependencyError(
                f"Maximum dependency depth ({self.max_depth}) exceeded. "
                f"Dependency chain: {chain} → {query_id}"
            )
        if query_id in self.in_flight:
            raise DependencyError(f'Query "{query_id}" is already being executed.')

        self.in_flight.add(query_id)
        self.dependency_stack.append(query_id)
        try:
            yield
        finally:
            self.in_flight.discard(query_id)
            self.dependency_stack.pop()
