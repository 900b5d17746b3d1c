"""Persisted index signatures used to detect stale partitions."""

from __future__ import annotations

import json
import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from typing import TypeAlias

from .store import atomic_write_json, data_dir_or_default, now_ms, read_json, validate_query_id

IndexSignature: TypeAlias = str | dict[str, str]
"""A flat string for plain queries or a `YYYY-MM -> string` map for monthly ones."""

SignatureCallback: TypeAlias = Callable[
    [str, "IndexSignature | None", "IndexSignature | None", int], None
]
"""Invoked as callback(query_id, old, new, updated_at) when a signature changes."""

log = logging.getLogger("cache/signature")


def signature_text(signature: IndexSignature | None) -> str | None:
    """Return the canonical JSON text used to compare signatures."""
    if signature is None:
        return None
    return json.dumps(signature, sort_keys=True, ensure_ascii=False)


def stale_partitions(
    cached: IndexSignature | None,
    fresh: IndexSignature | None,
    partition_keys: list[str],
) -> list[str]:
    """
    Return the partition keys whose signature changed.

    A partition is stale when its fresh value differs from the cached one,
    including when it was previously absent and is now present. Partitions
    for which the fresh probe has no value are assumed fresh.
    """
    if isinstance(fresh, dict):
        old = cached if isinstance(cached, dict) else {}
        return [key for key in partition_keys if key in fresh and old.get(key) != fresh[key]]
    if fresh is None:
        return []
    if signature_text(cached) != signature_text(fresh):
        return list(partition_keys)
    return []


@dataclass(frozen=True, kw_only=True)
class StoredSignature:
    """Index signature persisted for a query."""

    result: IndexSignature | None
    updated_at: int


class IndexSignatureStore:
    """
    Per-query slot holding the last seen index signature.

    Files live at `<data_dir>/state/index/<query_id>.json`.
    """

    def __init__(self, data_dir: str | Path | None = None):
        self.data_dir = data_dir_or_default(data_dir)
        self._callbacks: dict[str, SignatureCallback] = {}
        self._mutex = threading.Lock()

    def path_for(self, query_id: str) -> Path:
        """Return the path of the signature file of a query."""
        return self.data_dir / "state" / "index" / f"{validate_query_id(query_id)}.json"

    def load(self, query_id: str) -> StoredSignature | None:
        """Return the stored signature, or None when nothing was saved."""
        path = self.path_for(query_id)
        if not path.exists():
            return None
        data = read_json(path)
        if not isinstance(data, dict):
            return None
        return StoredSignature(result=data.get("result"), updated_at=int(data.get("updatedAt", 0)))

    def get(self, query_id: str) -> IndexSignature | None:
        """Return the stored signature value, or None."""
        stored = self.load(query_id)
        return None if stored is None else stored.result

    def save(
        self,
        query_id: str,
        signature: IndexSignature | None,
        *,
        client_save: bool,
    ) -> bool:
        """
        Save the signature and return whether it changed.

        Nothing is saved for queries that are not cached client side. A
        None signature (failed probe) never overwrites an existing one.
        Equal signatures are not rewritten. On change, the registered
        callback runs in a background thread.
        """
        if not client_save:
            log.debug("skipping signature save for %s: not cached client side", query_id)
            return False
        with self._mutex:
            existing = self.load(query_id)
            if signature is None and existing is not None:
                return False
            old = None if existing is None else existing.result
            if existing is not None and signature_text(old) == signature_text(signature):
                return False
            updated_at = now_ms()
            atomic_write_json(
                self.path_for(query_id),
                {"result": signature, "updatedAt": updated_at},
            )
        log.info("index signature for %s changed", query_id)
        self._fire(query_id, old, signature, updated_at)
        return True

    def merge_months(
        self,
        query_id: str,
        months: dict[str, str],
        *,
        client_save: bool,
    ) -> bool:
        """Merge per-month values into the stored map and save the result."""
        stored = self.get(query_id)
        merged = dict(stored) if isinstance(stored, dict) else {}
        merged.update(months)
        return self.save(query_id, merged or None, client_save=client_save)

    def forget_months(self, query_id: str, keys: list[str]) -> None:
        """
        Drop the given months from the stored map, so the next check
        considers them stale. Used when refreshing a partition failed.
        """
        with self._mutex:
            existing = self.load(query_id)
            if existing is None or not isinstance(existing.result, dict):
                return
            remaining = {k: v for k, v in existing.result.items() if k not in keys}
            atomic_write_json(
                self.path_for(query_id),
                {"result": remaining, "updatedAt": existing.updated_at},
            )

    def clear(self, query_id: str) -> None:
        """Remove the stored signature of a query."""
        self.path_for(query_id).unlink(missing_ok=True)

    def set_on_change_callback(self, query_id: str, callback: SignatureCallback) -> None:
        """Register the callback invoked when the signature of a query changes."""
        self._callbacks[query_id] = callback

    def remove_on_change_callback(self, query_id: str) -> None:
        """Unregister the change callback of a query."""
        self._callbacks.pop(query_id, None)

    def _fire(
        self,
        query_id: str,
        old: IndexSignature | None,
        new: IndexSignature | None,
        updated_at: int,
    ) -> None:
        callback = self._callbacks.get(query_id)
        if callback is None:
            return

        def run() -> None:
            try:
                callback(query_id, old, new, updated_at)
            except Exception as exc:
                log.warning("signature callback for %s... failure: %s", query_id, exc)

        threading.Thread(target=run, name=f"signature-{query_id}", daemon=True).start()
