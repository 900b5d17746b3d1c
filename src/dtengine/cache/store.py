"""Module to manage the on-disk partitioned query results cache."""

from __future__ import annotations

import json
import logging
import os
import re
import shutil
import threading
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path
from tempfile import TemporaryDirectory
from typing import Any, Final

from filelock import BaseFileLock, FileLock

from ..errors import CacheIOError
from ..values import is_year_month

# Cache file names
PARTITION_DATA_FILENAME: Final[str] = "partition.json"
PARTITION_DOTLOCK_FILENAME: Final[str] = ".lock"

# Partition key used by queries that are not partitioned by month
DEFAULT_PARTITION: Final[str] = "default"

# Delays (in seconds) between attempts to observe freshly written partitions
DEFAULT_RETRY_DELAYS: Final[tuple[float, ...]] = (0.1, 0.2)

_QUERY_ID_RE = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.-]*$")

log = logging.getLogger("cache/store")


def data_dir_or_default(data_dir: str | Path | None) -> Path:
    """
    Return data_dir as a Path if not empty. Otherwise return the
    default value for the data_dir (i.e., `./.dtengine` like git).
    """
    return Path.cwd() / ".dtengine" if data_dir is None else Path(data_dir)


def validate_query_id(query_id: str) -> str:
    """Ensure the query id is safe to use as a directory name and return it."""
    if not query_id or not _QUERY_ID_RE.match(query_id) or ".." in query_id:
        raise ValueError(f"Invalid query id: {query_id!r}")
    return query_id


def validate_partition_key(partition_key: str) -> str:
    """Ensure the partition key is either `default` or `YYYY-MM` and return it."""
    if partition_key != DEFAULT_PARTITION and not is_year_month(partition_key):
        raise ValueError(f"Invalid partition key: {partition_key!r} (expected YYYY-MM or default)")
    return partition_key


def now_ms() -> int:
    """Return the current time in epoch milliseconds."""
    return int(time.time() * 1000)


def atomic_write_json(dest_path: Path, data: Any) -> None:
    """Serialize data as JSON and atomically replace `dest_path` with it."""
    dest_path.parent.mkdir(parents=True, exist_ok=True)
    # Operate inside a temporary directory in the destination directory so
    # `os.replace()` is atomic and we avoid cross-filesystem moves.
    with TemporaryDirectory(dir=dest_path.parent) as tmp_dir:
        tmp_file = Path(tmp_dir) / dest_path.name
        with open(tmp_file, "w", encoding="utf-8") as filep:
            json.dump(data, filep, ensure_ascii=False, default=str)
        os.replace(tmp_file, dest_path)


def read_json(path: Path) -> Any:
    """Read a JSON file, converting failures into CacheIOError."""
    try:
        with open(path, encoding="utf-8") as filep:
            return json.load(filep)
    except (OSError, ValueError) as exc:
        raise CacheIOError(f"cannot read {path.name}: {exc}") from exc


@dataclass(frozen=True, kw_only=True)
class CachePartition:
    """
    Reference to a cache partition containing a query result payload.

    Attributes:
        data_dir: the Path that points to the data dir
        query_id: the identifier of the query
        partition_key: `YYYY-MM` or `default`
    """

    data_dir: Path
    query_id: str
    partition_key: str

    def dir_path(self) -> Path:
        """Returns the directory path where to write files."""
        return self.data_dir / "cache" / "v1" / self.query_id / self.partition_key

    def data_file_path(self) -> Path:
        """Returns the path to the `partition.json` file."""
        return self.dir_path() / PARTITION_DATA_FILENAME

    def lock(self) -> BaseFileLock:
        """Return a FileLock locking the partition."""
        lock_file_path = self.dir_path() / PARTITION_DOTLOCK_FILENAME
        lock_file_path.parent.mkdir(parents=True, exist_ok=True)
        return FileLock(lock_file_path)

    def exists(self) -> bool:
        """Return True if the partition file exists, False otherwise."""
        return self.data_file_path().exists()

    def read(self) -> dict[str, Any] | None:
        """Return the stored `{payload, writtenAt}` record or None when absent."""
        if not self.exists():
            return None
        record = read_json(self.data_file_path())
        if not isinstance(record, dict) or not isinstance(record.get("payload"), dict):
            raise CacheIOError(f"malformed partition {self.partition_key} for {self.query_id}")
        return record

    def write(self, payload: dict[str, Any]) -> None:
        """Atomically write the payload while holding the partition lock."""
        record = {"payload": payload, "writtenAt": now_ms()}
        try:
            with self.lock():
                atomic_write_json(self.data_file_path(), record)
        except OSError as exc:
            raise CacheIOError(
                f"cannot write partition {self.partition_key} for {self.query_id}: {exc}"
            ) from exc

    def __str__(self) -> str:
        return f"{self.query_id}/{self.partition_key}"


class PartitionedCacheStore:
    """
    Persistent store of query results keyed by (query id, partition).

    Each handle remembers which partitions it has seen on disk. Another
    handle (e.g. the execution worker's) may create new partitions in
    the meanwhile: call `refresh` after being told so, or use
    `wait_for_partitions`, which refreshes and retries with backoff.
    """

    def __init__(
        self,
        data_dir: str | Path | None = None,
        *,
        retry_delays: Sequence[float] = DEFAULT_RETRY_DELAYS,
    ):
        """
        Initialize the store with data directory path.

        Parameters:
            data_dir: Path to directory containing cached data files.
                If None, defaults to .dtengine/ in current working directory.
            retry_delays: delays between attempts of `wait_for_partitions`.
        """
        self.data_dir = data_dir_or_default(data_dir)
        self.retry_delays = tuple(retry_delays)
        self._known: dict[str, frozenset[str]] = {}
        self._mutex = threading.Lock()

    def partition(self, query_id: str, partition_key: str = DEFAULT_PARTITION) -> CachePartition:
        """Return the (lazy) partition reference for the given keys."""
        return CachePartition(
            data_dir=self.data_dir,
            query_id=validate_query_id(query_id),
            partition_key=validate_partition_key(partition_key),
        )

    def query_dir(self, query_id: str) -> Path:
        """Return the directory containing all the partitions of a query."""
        return self.data_dir / "cache" / "v1" / validate_query_id(query_id)

    def get(self, query_id: str, partition_key: str = DEFAULT_PARTITION) -> dict[str, Any] | None:
        """Return the payload stored in a partition, or None when absent."""
        record = self.partition(query_id, partition_key).read()
        return None if record is None else record["payload"]

    def written_at(self, query_id: str, partition_key: str = DEFAULT_PARTITION) -> int | None:
        """Return when the partition was written (epoch ms), or None when absent."""
        record = self.partition(query_id, partition_key).read()
        return None if record is None else record.get("writtenAt")

    def put(
        self,
        query_id: str,
        partition_key: str,
        payload: dict[str, Any],
    ) -> None:
        """Store the payload into the partition, replacing any previous one."""
        partition = self.partition(query_id, partition_key)
        log.debug("writing %s... start", partition)
        partition.write(payload)
        log.debug("writing %s... ok", partition)
        with self._mutex:
            known = self._known.get(query_id)
            if known is not None:
                self._known[query_id] = known | {partition_key}

    def partitions(self, query_id: str) -> frozenset[str]:
        """Return the partitions of the query this handle knows about."""
        with self._mutex:
            known = self._known.get(query_id)
            if known is None:
                known = self._scan(query_id)
                self._known[query_id] = known
            return known

    def _scan(self, query_id: str) -> frozenset[str]:
        query_dir = self.query_dir(query_id)
        if not query_dir.is_dir():
            return frozenset()
        return frozenset(
            child.name
            for child in query_dir.iterdir()
            if (child / PARTITION_DATA_FILENAME).exists()
        )

    def refresh(self, query_id: str | None = None) -> None:
        """Forget the known partitions so the next read rescans the disk."""
        with self._mutex:
            if query_id is None:
                self._known.clear()
            else:
                self._known.pop(query_id, None)

    def list_cached_partitions(self, query_id: str, candidate_keys: Iterable[str]) -> list[str]:
        """Return the subset of candidate keys actually present, in the given order."""
        known = self.partitions(query_id)
        return [key for key in candidate_keys if key in known]

    def wait_for_partitions(self, query_id: str, candidate_keys: Sequence[str]) -> list[str]:
        """
        Like `list_cached_partitions` but refreshes the handle first and
        retries with backoff while none of the candidates is visible.
        """
        self.refresh(query_id)
        cached = self.list_cached_partitions(query_id, candidate_keys)
        for delay in self.retry_delays:
            if cached:
                break
            log.debug("waiting %.1fs for %s partitions to appear", delay, query_id)
            time.sleep(delay)
            self.refresh(query_id)
            cached = self.list_cached_partitions(query_id, candidate_keys)
        return cached

    def reconstruct(
        self,
        query_id: str,
        partition_keys: Sequence[str] | None = None,
    ) -> dict[str, Any]:
        """
        Merge the payloads of the given partitions into a single result.

        Partitions are merged in chronological key order regardless of the
        order they were requested or written in. When more than one month
        holds the same result name, their rows are concatenated. Missing
        partitions are skipped. Without keys, the default partition is used.
        """
        keys = sorted(set(partition_keys)) if partition_keys else [DEFAULT_PARTITION]
        merged: dict[str, Any] = {}
        for key in keys:
            payload = self.get(query_id, key)
            if payload is None:
                continue
            merge_payload_into(merged, payload)
        return merged

    def clear(self, query_id: str, partition_keys: Iterable[str] | None = None) -> None:
        """Remove the given partitions of a query, or all of them when keys is None."""
        if partition_keys is None:
            query_dir = self.query_dir(query_id)
            log.info("clearing %s... start", query_id)
            shutil.rmtree(query_dir, ignore_errors=True)
            log.info("clearing %s... ok", query_id)
        else:
            for key in partition_keys:
                partition = self.partition(query_id, key)
                log.info("clearing %s... start", partition)
                shutil.rmtree(partition.dir_path(), ignore_errors=True)
                log.info("clearing %s... ok", partition)
        self.refresh(query_id)

    def query_ids(self) -> list[str]:
        """Return the ids of all the queries with a cache directory."""
        root = self.data_dir / "cache" / "v1"
        if not root.is_dir():
            return []
        return sorted(child.name for child in root.iterdir() if child.is_dir())


def merge_payload_into(merged: dict[str, Any], payload: dict[str, Any]) -> None:
    """
    Merge a partition payload into the accumulated result.

    Lists under the same name are concatenated; any other value is
    kept from the earliest partition that provided it.
    """
    for name, value in payload.items():
        if name not in merged:
            merged[name] = list(value) if isinstance(value, list) else value
        elif isinstance(merged[name], list) and isinstance(value, list):
            merged[name].extend(value)
