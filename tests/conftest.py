"""Shared pytest fixtures for dtengine tests."""

import copy
import threading
from collections.abc import Iterator
from pathlib import Path

import pytest

from dtengine.cache import IndexSignatureStore, PartitionedCacheStore
from dtengine.query import EndpointConfig, EndpointResolver, TransformerRegistry
from dtengine.worker import ExecutionWorker, WorkerDispatcher

ENDPOINT_URL = "https://api.example.com/graphql"


class FakeQueryClient:
    """
    Query client answering from canned responses keyed by query body.

    A canned value may be a callable taking the variables, and an
    exception instance is raised instead of returned.
    """

    def __init__(self):
        self.responses = {}
        self.leaves = {}
        self.calls = []
        self._mutex = threading.Lock()

    def _answer(self, canned, body, variables):
        with self._mutex:
            self.calls.append((body, dict(variables)))
        value = canned(variables) if callable(canned) else canned
        if isinstance(value, Exception):
            raise value
        return copy.deepcopy(value)

    def execute(self, endpoint, body, variables):
        return self._answer(self.responses[body], body, variables)

    def execute_leaf(self, endpoint, body, variables):
        return self._answer(self.leaves.get(body), body, variables)

    def bodies(self) -> list[str]:
        with self._mutex:
            return [body for body, _ in self.calls]


@pytest.fixture
def fake_client() -> FakeQueryClient:
    """Return a query client with no canned responses."""
    return FakeQueryClient()


@pytest.fixture
def resolver() -> EndpointResolver:
    """Return a resolver with a single default endpoint."""
    return EndpointResolver({"main": EndpointConfig(url=ENDPOINT_URL)}, default="main")


@pytest.fixture
def transformers() -> TransformerRegistry:
    """Return an empty transformer registry tests can register into."""
    return TransformerRegistry()


@pytest.fixture
def worker(
    tmp_path: Path,
    fake_client: FakeQueryClient,
    resolver: EndpointResolver,
    transformers: TransformerRegistry,
) -> ExecutionWorker:
    """Return an execution worker caching under tmp_path."""
    return ExecutionWorker(
        PartitionedCacheStore(tmp_path, retry_delays=(0.0,)),
        fake_client,  # type: ignore[arg-type]
        resolver,
        signatures=IndexSignatureStore(tmp_path),
        transformers=transformers,
    )


@pytest.fixture
def dispatcher(worker: ExecutionWorker) -> Iterator[WorkerDispatcher]:
    """Return a dispatcher around the worker, closed after the test."""
    with WorkerDispatcher(worker, fanout_workers=2) as dispatcher:
        yield dispatcher
