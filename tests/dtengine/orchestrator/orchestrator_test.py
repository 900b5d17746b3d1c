"""Tests for the dtengine.orchestrator.orchestrator module."""

import threading
from pathlib import Path

import pytest

from dtengine.cache import PartitionedCacheStore
from dtengine.errors import QueryRequestError, ResolutionError
from dtengine.orchestrator import QueryOrchestrator, Severity, StatusNotification
from dtengine.query import MappingDefinitionStore, QueryDefinition, execution_key
from dtengine.values import MonthRange, SortConfig


def _orchestrator(dispatcher, tmp_path: Path, *definitions, notify=None) -> QueryOrchestrator:
    return QueryOrchestrator(
        dispatcher,
        PartitionedCacheStore(tmp_path, retry_delays=(0.0, 0.01)),
        MappingDefinitionStore({d.id: d for d in definitions}),
        notify=notify,
    )


def _monthly_rows(variables):
    return {"sales": [{"month": variables["startDate"][:7]}]}


def _sales_calls(fake_client) -> int:
    return fake_client.bodies().count("SALES")


class TestRunQuery:
    """Tests for QueryOrchestrator.run_query."""

    def test_plain_query(self, dispatcher, fake_client, tmp_path):
        fake_client.responses["USERS"] = {"users": [{"id": "u1"}]}
        notifications: list[StatusNotification] = []
        users = QueryDefinition(id="users", body="USERS")
        orchestrator = _orchestrator(dispatcher, tmp_path, users, notify=notifications.append)

        result = orchestrator.run_query("users")

        assert result == {"users": [{"id": "u1"}]}
        assert orchestrator.state.result == result
        assert [n.severity for n in notifications] == [Severity.SUCCESS]
        assert notifications[0].detail == "Query executed successfully"

    def test_unknown_query(self, dispatcher, tmp_path):
        with pytest.raises(ResolutionError, match="not found"):
            _orchestrator(dispatcher, tmp_path).run_query("missing")

    def test_month_query_requires_range(self, dispatcher, tmp_path):
        sales = QueryDefinition(id="sales", body="SALES", month=True)
        with pytest.raises(ResolutionError, match="requires a month range"):
            _orchestrator(dispatcher, tmp_path, sales).run_query("sales")

    def test_single_flight(self, dispatcher, fake_client, tmp_path):
        users = QueryDefinition(id="users", body="USERS")
        orchestrator = _orchestrator(dispatcher, tmp_path, users)
        orchestrator.state.in_flight.add(execution_key("users", {}, None))

        assert orchestrator.run_query("users") is None
        assert fake_client.calls == []

    def test_concurrent_runs_execute_once(self, dispatcher, fake_client, tmp_path):
        started = threading.Event()
        release = threading.Event()

        def respond(variables):
            started.set()
            release.wait(5)
            return {"users": [{"id": "u1"}]}

        fake_client.responses["USERS"] = respond
        users = QueryDefinition(id="users", body="USERS")
        orchestrator = _orchestrator(dispatcher, tmp_path, users)
        results = []
        first = threading.Thread(target=lambda: results.append(orchestrator.run_query("users")))
        first.start()
        assert started.wait(5)

        second = orchestrator.run_query("users")
        release.set()
        first.join(5)

        assert second is None
        assert results == [{"users": [{"id": "u1"}]}]
        assert fake_client.bodies().count("USERS") == 1

    def test_failure_notifies(self, dispatcher, fake_client, tmp_path):
        fake_client.responses["USERS"] = QueryRequestError("HTTP 500: boom", status=500)
        notifications: list[StatusNotification] = []
        users = QueryDefinition(id="users", body="USERS")
        orchestrator = _orchestrator(dispatcher, tmp_path, users, notify=notifications.append)

        assert orchestrator.run_query("users") is None
        assert notifications[-1].severity == Severity.ERROR
        assert "boom" in notifications[-1].detail
        assert orchestrator.state.in_flight == set()

    def test_broken_notify_callback(self, dispatcher, fake_client, tmp_path):
        fake_client.responses["USERS"] = {"users": []}

        def notify(notification):
            raise RuntimeError("display is gone")

        users = QueryDefinition(id="users", body="USERS")
        orchestrator = _orchestrator(dispatcher, tmp_path, users, notify=notify)
        assert orchestrator.run_query("users") == {"users": []}


class TestMonthRanges:
    """Tests for month-partitioned executions."""

    def test_reconstructed_chronologically(self, dispatcher, fake_client, tmp_path):
        fake_client.responses["SALES"] = _monthly_rows
        sales = QueryDefinition(id="sales", body="SALES", month=True, client_save=True)
        orchestrator = _orchestrator(dispatcher, tmp_path, sales)

        result = orchestrator.run_query("sales", month_range=MonthRange.of("2024-01", "2024-03"))

        assert result is not None
        assert [row["month"] for row in result["sales"]] == ["2024-01", "2024-02", "2024-03"]

    def test_partial_failure(self, dispatcher, fake_client, tmp_path):
        def respond(variables):
            if variables["startDate"] == "2024-02-01":
                return QueryRequestError("HTTP 502: bad gateway", status=502)
            return _monthly_rows(variables)

        fake_client.responses["SALES"] = respond
        sales = QueryDefinition(id="sales", body="SALES", month=True, client_save=True)
        orchestrator = _orchestrator(dispatcher, tmp_path, sales)
        orchestrator.signatures.merge_months("sales", {"2024-02": "old"}, client_save=True)

        result = orchestrator.run_query("sales", month_range=MonthRange.of("2024-01", "2024-03"))

        assert result is not None
        assert [row["month"] for row in result["sales"]] == ["2024-01", "2024-03"]
        assert "2024-02" not in (orchestrator.signatures.get("sales") or {})

    def test_all_months_fail(self, dispatcher, fake_client, tmp_path):
        fake_client.responses["SALES"] = QueryRequestError("down")
        notifications: list[StatusNotification] = []
        sales = QueryDefinition(id="sales", body="SALES", month=True, client_save=True)
        orchestrator = _orchestrator(dispatcher, tmp_path, sales, notify=notifications.append)

        result = orchestrator.run_query("sales", month_range=MonthRange.of("2024-01", "2024-02"))

        assert result is None
        assert notifications[-1].detail.startswith("All pipeline executions failed")

    def test_empty_range(self, dispatcher, fake_client, tmp_path):
        sales = QueryDefinition(id="sales", body="SALES", month=True, client_save=True)
        orchestrator = _orchestrator(dispatcher, tmp_path, sales)

        assert orchestrator.run_query("sales", month_range=MonthRange.of("2024-02", "2024-01")) is None
        assert fake_client.calls == []

    def test_server_side_month_query_not_cached(self, dispatcher, fake_client, tmp_path):
        fake_client.responses["SALES"] = _monthly_rows
        sales = QueryDefinition(id="sales", body="SALES", month=True)
        orchestrator = _orchestrator(dispatcher, tmp_path, sales)

        result = orchestrator.run_query("sales", month_range=MonthRange.of("2024-01", "2024-02"))
        assert result == {"sales": [{"month": "2024-01"}, {"month": "2024-02"}]}
        assert orchestrator.store.query_ids() == []

    def test_warm_months_newest_first(self, dispatcher, fake_client, tmp_path):
        fake_client.responses["SALES"] = _monthly_rows
        sales = QueryDefinition(id="sales", body="SALES", month=True, client_save=True)
        orchestrator = _orchestrator(dispatcher, tmp_path, sales)
        seen: list[tuple[str, str | None]] = []

        failed = orchestrator.warm_months(
            "sales",
            month_range=MonthRange.of("2024-01", "2024-03"),
            on_month=lambda month, error: seen.append((month, error)),
        ).result(timeout=10)

        assert failed == []
        assert seen == [("2024-03", None), ("2024-02", None), ("2024-01", None)]
        assert orchestrator.store.partitions("sales") == frozenset({"2024-01", "2024-02", "2024-03"})


class TestLoadFromCache:
    """Tests for QueryOrchestrator.load_from_cache."""

    def test_miss_then_hit(self, dispatcher, fake_client, tmp_path):
        fake_client.responses["USERS"] = {"users": [{"id": "u1"}]}
        notifications: list[StatusNotification] = []
        users = QueryDefinition(id="users", body="USERS", client_save=True)
        orchestrator = _orchestrator(dispatcher, tmp_path, users, notify=notifications.append)

        first = orchestrator.load_from_cache("users")
        second = orchestrator.load_from_cache("users")

        assert first == second == {"users": [{"id": "u1"}]}
        assert fake_client.bodies().count("USERS") == 1
        assert notifications[-1].detail == "Data loaded from cache"

    def test_index_signature_decides(self, dispatcher, fake_client, tmp_path):
        fake_client.responses["SALES"] = {"sales": [{"id": 1}]}
        fake_client.leaves["INDEX"] = "v1"
        sales = QueryDefinition(id="sales", body="SALES", client_save=True, index="INDEX")
        orchestrator = _orchestrator(dispatcher, tmp_path, sales)

        orchestrator.load_from_cache("sales")
        orchestrator.load_from_cache("sales")
        assert _sales_calls(fake_client) == 1
        assert orchestrator.state.last_updated_at == "v1"

        fake_client.leaves["INDEX"] = "v2"
        orchestrator.load_from_cache("sales")
        assert _sales_calls(fake_client) == 2

    def test_failed_refresh_is_retried(self, dispatcher, fake_client, tmp_path):
        fake_client.responses["USERS"] = {"users": [{"v": "old"}]}
        fake_client.leaves["INDEX"] = "v1"
        users = QueryDefinition(id="users", body="USERS", client_save=True, index="INDEX")
        orchestrator = _orchestrator(dispatcher, tmp_path, users)
        assert orchestrator.load_from_cache("users") == {"users": [{"v": "old"}]}

        fake_client.leaves["INDEX"] = "v2"
        fake_client.responses["USERS"] = QueryRequestError("HTTP 502: bad gateway", status=502)
        assert orchestrator.load_from_cache("users") is None
        assert orchestrator.signatures.get("users") is None

        fake_client.responses["USERS"] = {"users": [{"v": "new"}]}
        assert orchestrator.load_from_cache("users") == {"users": [{"v": "new"}]}
        assert orchestrator.signatures.get("users") == "v2"

    def test_stale_month_is_refetched(self, dispatcher, fake_client, tmp_path):
        fake_client.responses["SALES"] = {"sales": [{"version": "new"}]}
        fake_client.leaves["INDEX"] = "b"
        sales = QueryDefinition(
            id="sales", body="SALES", month=True, client_save=True, index="INDEX"
        )
        orchestrator = _orchestrator(dispatcher, tmp_path, sales)
        dispatcher.worker.store.put("sales", "2024-01", {"sales": [{"version": "old"}]})
        dispatcher.worker.store.put("sales", "2024-02", {"sales": [{"version": "kept"}]})
        orchestrator.signatures.merge_months(
            "sales", {"2024-01": "a", "2024-02": "b"}, client_save=True
        )

        result = orchestrator.load_from_cache("sales", month_range=MonthRange.of("2024-01", "2024-02"))

        assert result == {"sales": [{"version": "new"}, {"version": "kept"}]}
        assert _sales_calls(fake_client) == 1

    def test_partial_cache_warms_the_rest(self, dispatcher, fake_client, tmp_path):
        fake_client.responses["SALES"] = _monthly_rows
        notifications: list[StatusNotification] = []
        sales = QueryDefinition(id="sales", body="SALES", month=True, client_save=True)
        orchestrator = _orchestrator(dispatcher, tmp_path, sales, notify=notifications.append)
        dispatcher.worker.store.put("sales", "2024-01", {"sales": [{"month": "2024-01"}]})

        result = orchestrator.load_from_cache("sales", month_range=MonthRange.of("2024-01", "2024-02"))

        assert result == {"sales": [{"month": "2024-01"}]}
        assert notifications[-1].detail == "Data loaded from cache (1/2 months)"
        orchestrator.close()
        assert orchestrator.store.partitions("sales") == frozenset({"2024-01", "2024-02"})

    def test_not_client_saved_executes(self, dispatcher, fake_client, tmp_path):
        fake_client.responses["USERS"] = {"users": []}
        users = QueryDefinition(id="users", body="USERS")
        orchestrator = _orchestrator(dispatcher, tmp_path, users)

        orchestrator.load_from_cache("users")
        orchestrator.load_from_cache("users")

        assert fake_client.bodies().count("USERS") == 2


class TestSetters:
    """Tests for the state setters."""

    def test_select_query_runs(self, dispatcher, fake_client, tmp_path):
        fake_client.responses["USERS"] = {"users": []}
        users = QueryDefinition(id="users", body="USERS")
        orchestrator = _orchestrator(dispatcher, tmp_path, users)

        assert orchestrator.select_query("users") == {"users": []}
        assert orchestrator.select_query("users") is None

    def test_month_query_waits_for_range(self, dispatcher, fake_client, tmp_path):
        fake_client.responses["SALES"] = _monthly_rows
        sales = QueryDefinition(id="sales", body="SALES", month=True, client_save=True)
        orchestrator = _orchestrator(dispatcher, tmp_path, sales)

        assert orchestrator.select_query("sales") is None
        assert fake_client.calls == []

        result = orchestrator.set_month_range(MonthRange.single("2024-04"))
        assert result == {"sales": [{"month": "2024-04"}]}

    def test_search_reruns_server_side_only(self, dispatcher, fake_client, tmp_path):
        fake_client.responses["USERS"] = {"users": []}
        users = QueryDefinition(id="users", body="USERS")
        orchestrator = _orchestrator(dispatcher, tmp_path, users)
        orchestrator.select_query("users")

        orchestrator.set_search_term("acme")

        assert fake_client.calls[-1][1]["searchText"] == "acme"
        assert orchestrator.set_search_term("acme") is None

    def test_client_saved_search_is_local(self, dispatcher, fake_client, tmp_path):
        fake_client.responses["USERS"] = {"users": []}
        users = QueryDefinition(id="users", body="USERS", client_save=True)
        orchestrator = _orchestrator(dispatcher, tmp_path, users)
        orchestrator.select_query("users")
        calls = len(fake_client.calls)

        assert orchestrator.set_search_term("acme") is None
        assert orchestrator.set_sort_config(SortConfig(field="name")) is None
        assert len(fake_client.calls) == calls

    def test_variables_always_rerun(self, dispatcher, fake_client, tmp_path):
        fake_client.responses["USERS"] = {"users": []}
        users = QueryDefinition(id="users", body="USERS", client_save=True)
        orchestrator = _orchestrator(dispatcher, tmp_path, users)
        orchestrator.select_query("users")

        orchestrator.set_variables({"region": "eu"})

        assert fake_client.calls[-1][1] == {"region": "eu"}

    def test_setters_without_selection(self, dispatcher, fake_client, tmp_path):
        orchestrator = _orchestrator(dispatcher, tmp_path)
        assert orchestrator.set_variables({"a": 1}) is None
        assert orchestrator.set_month_range(MonthRange.single("2024-01")) is None
        assert fake_client.calls == []


class TestSequencesAndSignatures:
    """Tests for sequence numbers and signature refreshes."""

    def test_sequences(self, dispatcher, tmp_path):
        orchestrator = _orchestrator(dispatcher, tmp_path)
        first = orchestrator.next_sequence("report")
        second = orchestrator.next_sequence("report")
        assert second > first
        assert orchestrator.is_latest("report", second)
        assert not orchestrator.is_latest("report", first)
        assert orchestrator.next_sequence("other") == 1

    def test_refresh_index_signatures(self, dispatcher, fake_client, tmp_path):
        fake_client.leaves["INDEX"] = "v1"
        probed = QueryDefinition(id="sales", body="SALES", client_save=True, index="INDEX")
        ignored = QueryDefinition(id="users", body="USERS", client_save=True)
        orchestrator = _orchestrator(dispatcher, tmp_path, probed, ignored)

        orchestrator.refresh_index_signatures([probed, ignored]).result(timeout=10)

        assert orchestrator.signatures.get("sales") == "v1"
        assert orchestrator.signatures.get("users") is None
