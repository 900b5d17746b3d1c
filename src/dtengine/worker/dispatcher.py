"""Runs an execution worker off the caller's thread."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Final

from .executor import ExecutionWorker
from .messages import (
    ExecuteIndexBatchRequest,
    ExecuteIndexQueryRequest,
    ExecuteIndexRangeRequest,
    ExecutePipelineRequest,
    WorkerRequest,
    WorkerResponse,
)

DEFAULT_FANOUT_WORKERS: Final[int] = 4

log = logging.getLogger("worker/dispatcher")


class WorkerDispatcher:
    """
    Message-passing front end of an `ExecutionWorker`.

    Requests run on a dedicated worker thread, one at a time, and the
    caller receives a `Future[WorkerResponse]`. Month partition requests
    submitted with `fanout=True` run on a separate pool so that distinct
    months are fetched concurrently. Results are deep-copied through
    JSON, so no mutable object is shared with the caller.
    """

    def __init__(self, worker: ExecutionWorker, *, fanout_workers: int = DEFAULT_FANOUT_WORKERS):
        self.worker = worker
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="dtengine-worker")
        self._fanout = ThreadPoolExecutor(
            max_workers=max(1, fanout_workers),
            thread_name_prefix="dtengine-fanout",
        )

    def submit(self, request: WorkerRequest, *, fanout: bool = False) -> Future[WorkerResponse]:
        """Schedule a request and return the future of its response."""
        pool = self._fanout if fanout else self._executor
        return pool.submit(self.handle, request)

    def handle(self, request: WorkerRequest) -> WorkerResponse:
        """Run a request on the current thread, capturing any failure."""
        try:
            return WorkerResponse.success(self._dispatch(request))
        except Exception as exc:
            log.debug("worker request %s... failure: %s", type(request).__name__, exc)
            return WorkerResponse.failure(exc)

    def _dispatch(self, request: WorkerRequest):
        if isinstance(request, ExecutePipelineRequest):
            return self.worker.execute_pipeline(
                request.definition,
                month_range=request.month_range,
                variables=dict(request.variables),
                all_definitions={d.id: d for d in request.all_definitions},
            )
        if isinstance(request, ExecuteIndexQueryRequest):
            return self.worker.execute_index_query(request.definition, month_range=request.month_range)
        if isinstance(request, ExecuteIndexRangeRequest):
            return self.worker.execute_index_query_for_month_range(
                request.definition, request.month_range
            )
        if isinstance(request, ExecuteIndexBatchRequest):
            return self.worker.execute_and_cache_index_queries(request.definitions)
        raise TypeError(f"unsupported worker request: {type(request).__name__}")

    def close(self) -> None:
        """Wait for the pending requests and stop the threads."""
        self._fanout.shutdown(wait=True)
        self._executor.shutdown(wait=True)

    def __enter__(self) -> WorkerDispatcher:
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()
