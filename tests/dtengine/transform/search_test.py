"""Tests for the dtengine.transform.search and dtengine.transform.sort modules."""

from dtengine.query import QueryDefinition
from dtengine.transform import SearchIndex, plan_sort, search, sort_rows
from dtengine.values import ColumnType, SortConfig, SortDirection

_ROWS = [
    {"id": 1, "customer": {"name": "Acme Corp", "city": "Paris"}, "code": "2"},
    {"id": 2, "customer": {"name": "Beta", "city": "Berlin"}, "code": "10"},
    {"id": 3, "customer": {"name": "Gamma", "city": "ACMEVILLE"}, "code": "abc"},
]


def _definition(**kwargs) -> QueryDefinition:
    kwargs.setdefault("client_save", True)
    return QueryDefinition(id="customers", body="CUSTOMERS", **kwargs)


def _ids(rows) -> list[int]:
    return [row["id"] for row in rows]


class TestSearch:
    """Tests for search and SearchIndex."""

    def test_case_insensitive_on_search_fields(self):
        definition = _definition(search_fields={"customer": ["name", "city"]})
        assert _ids(search(_ROWS, definition, " ACME ")) == [1, 3]

    def test_only_listed_paths(self):
        definition = _definition(search_fields={"customer": ["name"]})
        assert _ids(search(_ROWS, definition, "berlin")) == []

    def test_not_applied(self):
        server_side = _definition(client_save=False, search_fields={"customer": ["name"]})
        assert search(_ROWS, server_side, "acme") == _ROWS
        assert search(_ROWS, _definition(), "acme") == _ROWS
        assert search(_ROWS, _definition(search_fields={"customer": ["name"]}), "  ") == _ROWS
        assert search(_ROWS, None, "acme") == _ROWS

    def test_index_reused(self):
        definition = _definition(search_fields={"customer": ["name"]})
        index = SearchIndex(definition.search_fields)
        search(_ROWS, definition, "acme", index)
        assert len(index) == 3
        assert index.tokens(_ROWS[1]) == ("beta",)
        assert _ids(search(_ROWS, definition, "gam", index)) == [3]
        assert len(index) == 3

    def test_index_forgets_previous_results(self):
        definition = _definition(search_fields={"customer": ["name"]})
        index = SearchIndex(definition.search_fields)
        search(_ROWS, definition, "acme", index)
        refetched = [{"id": 4, "customer": {"name": "Delta"}}, {"id": 5, "customer": {"name": "Acme"}}]

        assert _ids(search(refetched, definition, "acme", index)) == [5]
        assert len(index) == 2


class TestSort:
    """Tests for plan_sort and sort_rows."""

    def test_numeric_with_text_last(self):
        definition = _definition(sort_fields={"code": []})
        sort_config = SortConfig(field="code")
        overrides = {"code": ColumnType.NUMBER}

        assert _ids(sort_rows(_ROWS, definition, sort_config, overrides=overrides)) == [1, 2, 3]

        descending = SortConfig(field="code", direction=SortDirection.DESC)
        assert _ids(sort_rows(_ROWS, definition, descending, overrides=overrides)) == [2, 1, 3]

    def test_nested_field(self):
        definition = _definition(sort_fields={"customer": ["city"]})
        sort_config = SortConfig(field="customer.city")
        assert _ids(sort_rows(_ROWS, definition, sort_config)) == [3, 2, 1]

    def test_field_not_allowed(self):
        definition = _definition(sort_fields={"customer": ["city"]})
        assert sort_rows(_ROWS, definition, SortConfig(field="customer.name")) == _ROWS
        assert plan_sort(_ROWS, definition, SortConfig(field="customer.name")) is None

    def test_server_side_not_sorted(self):
        definition = _definition(client_save=False, sort_fields={"code": []})
        assert plan_sort(_ROWS, definition, SortConfig(field="code")) is None

    def test_type_sources(self):
        definition = _definition(sort_fields={"customer": ["city"], "code": []})
        by_path = plan_sort(
            _ROWS, definition, SortConfig(field="customer.city"), {"city": ColumnType.DATE}
        )
        assert by_path is not None and by_path.column_type == ColumnType.DATE
        inferred = plan_sort(_ROWS, definition, SortConfig(field="code"))
        assert inferred is not None and inferred.column_type == ColumnType.NUMBER
