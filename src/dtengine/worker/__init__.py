"""Execution worker: runs queries, probes indexes and writes the cache."""

from .context import DEFAULT_MAX_DEPTH, ExecutionContext
from .dispatcher import DEFAULT_FANOUT_WORKERS, WorkerDispatcher
from .executor import ExecutionWorker
from .messages import (
    ExecuteIndexBatchRequest,
    ExecuteIndexQueryRequest,
    ExecuteIndexRangeRequest,
    ExecutePipelineRequest,
    WorkerRequest,
    WorkerResponse,
    json_copy,
)

__all__ = [
    "DEFAULT_FANOUT_WORKERS",
    "DEFAULT_MAX_DEPTH",
    "ExecuteIndexBatchRequest",
    "ExecuteIndexQueryRequest",
    "ExecuteIndexRangeRequest",
    "ExecutePipelineRequest",
    "ExecutionContext",
    "ExecutionWorker",
    "WorkerDispatcher",
    "WorkerRequest",
    "WorkerResponse",
    "json_copy",
]
