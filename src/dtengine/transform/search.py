"""Local free-text search over the searchable fields of a query."""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from typing import Any

from ..query import QueryDefinition
from ..values import get_nested_value


class SearchIndex:
    """
    Per-row lowercase search tokens, computed once per row.

    Rows are remembered by identity, so the index is valid as long as the
    rows are not mutated, which pipeline stages never do. Only the rows of
    the last search are kept. Create a new index when the searchable
    fields change.
    """

    def __init__(self, search_fields: Mapping[str, Sequence[str]]):
        self.search_fields = {key: tuple(paths) for key, paths in search_fields.items()}
        self._tokens: dict[int, tuple[Any, tuple[str, ...]]] = {}

    def tokens(self, row: Any) -> tuple[str, ...]:
        """Return the lowercase text of every searchable value of the row."""
        cached = self._tokens.get(id(row))
        if cached is not None and cached[0] is row:
            return cached[1]
        tokens = []
        for top_key, nested_paths in self.search_fields.items():
            for nested_path in nested_paths:
                value = get_nested_value(row, top_key, nested_path)
                if value is not None:
                    tokens.append(str(value).lower())
        result = tuple(tokens)
        self._tokens[id(row)] = (row, result)
        return result

    def retain(self, rows: Iterable[Any]) -> None:
        """Forget the tokens of every row not in `rows`."""
        keep = {id(row) for row in rows}
        self._tokens = {key: entry for key, entry in self._tokens.items() if key in keep}

    def matches(self, row: Any, term: str) -> bool:
        """Return whether any token contains the lowercase term."""
        return any(term in token for token in self.tokens(row))

    def __len__(self) -> int:
        return len(self._tokens)


def search(
    rows: Iterable[Any],
    definition: QueryDefinition | None,
    term: str | None,
    cache: SearchIndex | None = None,
) -> list[Any]:
    """
    Keep the rows where a searchable field contains `term`.

    The search is case-insensitive and only applies to queries cached
    client side that declare `search_fields`; otherwise (or with a blank
    term) the rows are returned unchanged. Top-level keys mapped to an
    empty list are not searched.
    """
    rows = list(rows)
    if (
        definition is None
        or not definition.client_save
        or not definition.search_fields
        or not term
        or not term.strip()
    ):
        return rows
    index = cache if cache is not None else SearchIndex(definition.search_fields)
    index.retain(rows)
    needle = term.lower().strip()
    return [row for row in rows if isinstance(row, Mapping) and index.matches(row, needle)]
