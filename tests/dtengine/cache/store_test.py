"""Tests for the dtengine.cache.store module."""

import json
from pathlib import Path

import pytest

from dtengine.cache import (
    DEFAULT_PARTITION,
    PartitionedCacheStore,
    data_dir_or_default,
    merge_payload_into,
)
from dtengine.cache.store import atomic_write_json
from dtengine.errors import CacheIOError


class TestDataDirOrDefault:
    """Tests for data_dir_or_default."""

    def test_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.chdir(tmp_path)
        assert data_dir_or_default(None) == tmp_path / ".dtengine"

    def test_explicit(self, tmp_path: Path):
        assert data_dir_or_default(str(tmp_path)) == tmp_path


class TestPartitions:
    """Tests for reading and writing partitions."""

    def test_put_and_get(self, tmp_path: Path):
        store = PartitionedCacheStore(tmp_path)
        store.put("sales", "2024-01", {"rows": [{"id": 1}]})

        assert store.get("sales", "2024-01") == {"rows": [{"id": 1}]}
        assert store.written_at("sales", "2024-01") is not None
        path = tmp_path / "cache" / "v1" / "sales" / "2024-01" / "partition.json"
        assert json.loads(path.read_text())["payload"] == {"rows": [{"id": 1}]}

    def test_get_missing(self, tmp_path: Path):
        store = PartitionedCacheStore(tmp_path)
        assert store.get("sales", "2024-01") is None
        assert store.written_at("sales") is None

    def test_default_partition(self, tmp_path: Path):
        store = PartitionedCacheStore(tmp_path)
        store.put("users", DEFAULT_PARTITION, {"users": []})
        assert store.partitions("users") == frozenset({"default"})

    @pytest.mark.parametrize("query_id", ["", "../escape", "a/b", ".hidden"])
    def test_invalid_query_id(self, tmp_path: Path, query_id: str):
        with pytest.raises(ValueError, match="Invalid query id"):
            PartitionedCacheStore(tmp_path).partition(query_id)

    def test_invalid_partition_key(self, tmp_path: Path):
        with pytest.raises(ValueError, match="Invalid partition key"):
            PartitionedCacheStore(tmp_path).partition("sales", "2024-13")

    def test_malformed_partition(self, tmp_path: Path):
        store = PartitionedCacheStore(tmp_path)
        path = store.partition("sales", "2024-01").data_file_path()
        path.parent.mkdir(parents=True)
        path.write_text("{not json")
        with pytest.raises(CacheIOError):
            store.get("sales", "2024-01")

    def test_payload_must_be_mapping(self, tmp_path: Path):
        store = PartitionedCacheStore(tmp_path)
        path = store.partition("sales", "2024-01").data_file_path()
        atomic_write_json(path, {"payload": [1, 2], "writtenAt": 0})
        with pytest.raises(CacheIOError, match="malformed partition"):
            store.get("sales", "2024-01")


class TestVisibility:
    """Tests for the per-handle view of the partitions."""

    def test_other_handle_needs_refresh(self, tmp_path: Path):
        reader = PartitionedCacheStore(tmp_path)
        writer = PartitionedCacheStore(tmp_path)
        assert reader.partitions("sales") == frozenset()

        writer.put("sales", "2024-01", {"rows": []})
        assert reader.partitions("sales") == frozenset()

        reader.refresh("sales")
        assert reader.partitions("sales") == frozenset({"2024-01"})

    def test_own_writes_are_visible(self, tmp_path: Path):
        store = PartitionedCacheStore(tmp_path)
        assert store.partitions("sales") == frozenset()
        store.put("sales", "2024-02", {"rows": []})
        assert store.partitions("sales") == frozenset({"2024-02"})

    def test_list_cached_partitions_keeps_order(self, tmp_path: Path):
        store = PartitionedCacheStore(tmp_path)
        for key in ("2024-01", "2024-03"):
            store.put("sales", key, {"rows": []})
        candidates = ["2024-03", "2024-02", "2024-01"]
        assert store.list_cached_partitions("sales", candidates) == ["2024-03", "2024-01"]

    def test_wait_for_partitions_refreshes(self, tmp_path: Path):
        reader = PartitionedCacheStore(tmp_path, retry_delays=())
        assert reader.partitions("sales") == frozenset()
        PartitionedCacheStore(tmp_path).put("sales", "2024-01", {"rows": []})
        assert reader.wait_for_partitions("sales", ["2024-01"]) == ["2024-01"]

    def test_wait_for_partitions_gives_up(self, tmp_path: Path):
        store = PartitionedCacheStore(tmp_path, retry_delays=(0.0, 0.0))
        assert store.wait_for_partitions("sales", ["2024-01"]) == []


class TestReconstruct:
    """Tests for reconstruct and merge_payload_into."""

    def test_chronological_regardless_of_request_order(self, tmp_path: Path):
        store = PartitionedCacheStore(tmp_path)
        store.put("sales", "2024-02", {"rows": [{"m": 2}], "meta": "feb"})
        store.put("sales", "2024-01", {"rows": [{"m": 1}], "meta": "jan"})

        merged = store.reconstruct("sales", ["2024-02", "2024-01", "2024-03"])
        assert merged == {"rows": [{"m": 1}, {"m": 2}], "meta": "jan"}

    def test_same_keys_same_result(self, tmp_path: Path):
        store = PartitionedCacheStore(tmp_path)
        store.put("sales", "2024-01", {"rows": [1]})
        store.put("sales", "2024-02", {"rows": [2]})
        first = store.reconstruct("sales", ["2024-01", "2024-02"])
        second = store.reconstruct("sales", ["2024-02", "2024-01", "2024-01"])
        assert first == second == {"rows": [1, 2]}

    def test_does_not_alias_cached_lists(self):
        payload = {"rows": [1]}
        merged: dict = {}
        merge_payload_into(merged, payload)
        merge_payload_into(merged, {"rows": [2]})
        assert payload == {"rows": [1]}
        assert merged == {"rows": [1, 2]}

    def test_default_partition_when_no_keys(self, tmp_path: Path):
        store = PartitionedCacheStore(tmp_path)
        store.put("users", DEFAULT_PARTITION, {"users": [{"id": "u1"}]})
        assert store.reconstruct("users") == {"users": [{"id": "u1"}]}

    def test_nothing_cached(self, tmp_path: Path):
        assert PartitionedCacheStore(tmp_path).reconstruct("sales", ["2024-01"]) == {}


class TestClear:
    """Tests for clear and query_ids."""

    def test_clear_some(self, tmp_path: Path):
        store = PartitionedCacheStore(tmp_path)
        for key in ("2024-01", "2024-02"):
            store.put("sales", key, {"rows": []})
        store.clear("sales", ["2024-01"])
        assert store.partitions("sales") == frozenset({"2024-02"})

    def test_clear_all(self, tmp_path: Path):
        store = PartitionedCacheStore(tmp_path)
        store.put("sales", "2024-01", {"rows": []})
        store.put("users", DEFAULT_PARTITION, {"users": []})
        assert store.query_ids() == ["sales", "users"]

        store.clear("sales")
        assert store.partitions("sales") == frozenset()
        assert store.query_ids() == ["users"]
