"""
Partitioned cache store.

Query results are cached on disk, partitioned by calendar month. The
on-disk layout is the following:

    <data_dir>/
      cache/v1/
        <query_id>/
          2024-01/
            .lock
            partition.json
          2024-02/
            ...
          default/          (queries not partitioned by month)
            partition.json
      state/index/
        <query_id>.json     (last seen index signature)

Each `partition.json` contains `{"payload": {...}, "writtenAt": <ms>}`
where the payload maps result-set names to lists of rows. Writes take
the partition lock and atomically replace the file, so readers in other
threads or processes observe either the previous or the new partition.

The index signature file contains `{"result": ..., "updatedAt": <ms>}`
where the result is a string (plain queries) or a map from `YYYY-MM`
to string (monthly queries).
"""

from .signature import (
    IndexSignature,
    IndexSignatureStore,
    StoredSignature,
    signature_text,
    stale_partitions,
)
from .store import (
    DEFAULT_PARTITION,
    DEFAULT_RETRY_DELAYS,
    CachePartition,
    PartitionedCacheStore,
    data_dir_or_default,
    merge_payload_into,
)

__all__ = [
    "DEFAULT_PARTITION",
    "DEFAULT_RETRY_DELAYS",
    "CachePartition",
    "IndexSignature",
    "IndexSignatureStore",
    "PartitionedCacheStore",
    "StoredSignature",
    "data_dir_or_default",
    "merge_payload_into",
    "signature_text",
    "stale_partitions",
]
