"""Assembly of the engine components from a data directory."""

from __future__ import annotations

import logging
from pathlib import Path

import requests

from .cache import IndexSignatureStore, PartitionedCacheStore, data_dir_or_default
from .config import EngineConfig, config_path_for_data_dir, load_config
from .orchestrator import NotifyCallback, QueryOrchestrator
from .query import (
    DirectoryDefinitionStore,
    EndpointResolver,
    QueryClient,
    QueryDefinitionStore,
    TransformerRegistry,
)
from .report import ReportComputer
from .transform import DataPipeline
from .worker import ExecutionWorker, WorkerDispatcher

log = logging.getLogger("engine")


class DataEngine:
    """
    The engine wired for one data directory.

    The execution worker and the orchestrator get distinct handles on
    the partitioned cache store, so that the orchestrator observes new
    partitions only after refreshing its handle, as any other reader.

    Use as a context manager to release the worker threads:

        with DataEngine(data_dir=".dtengine") as engine:
            result = engine.orchestrator.run_query("sales")
    """

    def __init__(
        self,
        data_dir: str | Path | None = None,
        *,
        config: EngineConfig | None = None,
        definitions: QueryDefinitionStore | None = None,
        transformers: TransformerRegistry | None = None,
        session: requests.Session | None = None,
        notify: NotifyCallback | None = None,
    ):
        """
        Initialize the engine.

        Parameters:
            data_dir: data directory; defaults to .dtengine/ in the current directory.
            config: configuration; read from <data_dir>/dtengine.yaml when None
                (a missing file means the defaults).
            definitions: query definitions; read from <data_dir>/queries/ when None.
            transformers: registered transformers.
            session: HTTP session used for remote queries.
            notify: receives the status notifications of the orchestrator.
        """
        self.data_dir = data_dir_or_default(data_dir)
        self.config = config or load_config(config_path_for_data_dir(self.data_dir), missing_ok=True)
        worker_config = self.config.worker

        self.definitions = definitions or DirectoryDefinitionStore(self.data_dir)
        self.signatures = IndexSignatureStore(self.data_dir)
        self.resolver = EndpointResolver(self.config.endpoints, self.config.default_endpoint)
        self.client = QueryClient(session, timeout=worker_config.timeout)
        self.worker = ExecutionWorker(
            PartitionedCacheStore(self.data_dir, retry_delays=worker_config.retry_delays),
            self.client,
            self.resolver,
            signatures=self.signatures,
            transformers=transformers,
            definitions=self.definitions,
            max_depth=worker_config.max_depth,
        )
        self.dispatcher = WorkerDispatcher(self.worker, fanout_workers=worker_config.fanout_workers)
        self.store = PartitionedCacheStore(self.data_dir, retry_delays=worker_config.retry_delays)
        self.orchestrator = QueryOrchestrator(
            self.dispatcher,
            self.store,
            self.definitions,
            signatures=self.signatures,
            notify=notify,
        )
        self.pipeline = DataPipeline()
        self.reports = ReportComputer(inline_threshold=self.config.report.inline_threshold)
        log.debug("engine ready: %s", self.data_dir)

    def close(self) -> None:
        """Wait for background work, then stop the worker threads."""
        self.orchestrator.close()
        self.dispatcher.close()

    def __enter__(self) -> DataEngine:
        return self

    def __exit__(self, exc_type, exc_value, traceback) -> None:
        self.close()
