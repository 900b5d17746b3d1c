"""Coordination of query executions, cache checks and background warming."""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any

from ..cache import (
    DEFAULT_PARTITION,
    IndexSignature,
    IndexSignatureStore,
    PartitionedCacheStore,
    merge_payload_into,
    stale_partitions,
)
from ..errors import CacheIOError, ExecutionError, PartitionFetchError, ResolutionError
from ..query import QueryDefinition, QueryDefinitionStore, execution_key, merge_variables
from ..values import MonthRange, SortConfig
from ..worker import (
    ExecuteIndexBatchRequest,
    ExecuteIndexQueryRequest,
    ExecuteIndexRangeRequest,
    ExecutePipelineRequest,
    WorkerDispatcher,
)
from .state import OrchestratorState
from .status import NotifyCallback, StatusNotification

log = logging.getLogger("orchestrator")

MonthCallback = Callable[[str, "str | None"], None]
"""Invoked as callback(month, error) after each warmed month; error is None on success."""


class QueryOrchestrator:
    """
    Decides when to execute a query, when to serve it from the cache and
    when to refresh the cache in the background.

    Executions are delegated to a `WorkerDispatcher`; results are read
    back from the partitioned cache store through this orchestrator's own
    handle. Outcomes are reported to the `notify` callback as
    `StatusNotification` objects. Each orchestrator owns its state.
    """

    def __init__(
        self,
        dispatcher: WorkerDispatcher,
        store: PartitionedCacheStore,
        definitions: QueryDefinitionStore,
        *,
        signatures: IndexSignatureStore | None = None,
        notify: NotifyCallback | None = None,
    ):
        self.dispatcher = dispatcher
        self.store = store
        self.definitions = definitions
        # Share the worker's signature store so change callbacks fire
        self.signatures = signatures or dispatcher.worker.signatures
        self.notify = notify
        self.state = OrchestratorState()
        self._background = ThreadPoolExecutor(max_workers=1, thread_name_prefix="dtengine-warm")

    def close(self) -> None:
        """Wait for background warming to complete."""
        self._background.shutdown(wait=True)

    # Definitions

    def definition(self, query_id: str) -> QueryDefinition:
        """
        Return the definition of a query, loading it on first use.

        Raises:
            ResolutionError: when the query does not exist.
        """
        with self.state.mutex:
            definition = self.state.definitions.get(query_id)
        if definition is not None:
            return definition
        definition = self.definitions.load(query_id)
        if definition is None:
            raise ResolutionError(f'Query "{query_id}" not found')
        with self.state.mutex:
            self.state.definitions[query_id] = definition
        return definition

    def _known_definitions(self) -> tuple[QueryDefinition, ...]:
        with self.state.mutex:
            return tuple(self.state.definitions.values())

    # Execution

    def run_query(
        self,
        query_id: str,
        *,
        month_range: MonthRange | None = None,
        variables: Mapping[str, Any] | None = None,
        search_term: str | None = None,
        sort_config: SortConfig | None = None,
    ) -> dict[str, Any] | None:
        """
        Execute a query and return its processed result.

        Returns None when an execution with the same key is already
        running, or when the execution failed. Failures are reported
        through an error notification.

        Raises:
            ResolutionError: when the query is unknown or is a month query
                and no month range was given.
        """
        definition = self.definition(query_id)
        if definition.month and month_range is None:
            raise ResolutionError(f"Month query {query_id} requires a month range")

        merged = merge_variables(
            definition,
            variables,
            month_range=month_range,
            search_term=search_term,
            sort_config=sort_config,
        )
        key = execution_key(query_id, merged, month_range)
        with self.state.mutex:
            if key in self.state.in_flight:
                log.debug("execution %s already in flight", key)
                return None
            self.state.in_flight.add(key)

        log.info("run %s... start", key)
        try:
            if definition.month:
                assert month_range is not None
                result = self._run_month_range(definition, month_range, merged)
            else:
                probed = definition.probes_freshness()
                if probed:
                    self._probe_index(definition, month_range)
                response = self.dispatcher.submit(
                    ExecutePipelineRequest(
                        definition=definition,
                        month_range=month_range,
                        variables=tuple(merged.items()),
                        all_definitions=self._known_definitions(),
                    )
                ).result()
                if not response.ok and probed:
                    # The probe already saved the new signature
                    self._forget_signature(definition)
                result = response.unwrap()
        except (ExecutionError, OSError, ValueError) as exc:
            log.warning("run %s... failure: %s", key, exc)
            with self.state.mutex:
                self.state.result = None
            self._notify(StatusNotification.error(str(exc)))
            return None
        finally:
            with self.state.mutex:
                self.state.in_flight.discard(key)

        self._publish(definition, month_range, result, StatusNotification.success())
        log.info("run %s... ok", key)
        return result

    def _probe_index(self, definition: QueryDefinition, month_range: MonthRange | None) -> IndexSignature | None:
        """Run the index probe on the worker; failures yield None."""
        if definition.month and month_range is not None:
            request: Any = ExecuteIndexRangeRequest(definition=definition, month_range=month_range)
        else:
            request = ExecuteIndexQueryRequest(definition=definition, month_range=month_range)
        response = self.dispatcher.submit(request).result()
        if not response.ok:
            log.warning("index probe %s... failure: %s", definition.id, response.error)
            return None
        return response.payload

    def _forget_signature(self, definition: QueryDefinition) -> None:
        """Drop the stored signature so the next cache check re-fetches."""
        log.info("forgetting index signature of %s", definition.id)
        try:
            self.signatures.clear(definition.id)
        except OSError as exc:
            log.warning("forgetting index signature of %s... failure: %s", definition.id, exc)

    def _fetch_partitions(
        self,
        definition: QueryDefinition,
        keys: Iterable[str],
        variables: Mapping[str, Any],
    ) -> tuple[dict[str, Any], list[PartitionFetchError]]:
        """
        Execute one pipeline per month concurrently, newest first.

        Returns the successful payloads by month and the failures. Months
        whose refresh failed are dropped from the stored signature, so the
        next cache check considers them stale.
        """
        futures = {}
        for key in sorted(keys, reverse=True):
            request = ExecutePipelineRequest(
                definition=definition,
                month_range=MonthRange.single(key),
                variables=tuple(variables.items()),
                all_definitions=self._known_definitions(),
            )
            futures[key] = self.dispatcher.submit(request, fanout=True)

        payloads: dict[str, Any] = {}
        failures: list[PartitionFetchError] = []
        for key, future in futures.items():
            response = future.result()
            if response.ok:
                payloads[key] = response.payload
            else:
                failure = PartitionFetchError(definition.id, key, ExecutionError(response.error))
                log.warning("partition %s", failure)
                failures.append(failure)
        if failures and definition.client_save:
            self.signatures.forget_months(definition.id, [f.partition for f in failures])
        return payloads, failures

    def _run_month_range(
        self,
        definition: QueryDefinition,
        month_range: MonthRange,
        variables: Mapping[str, Any],
    ) -> dict[str, Any]:
        keys = month_range.keys()
        if not keys:
            raise ExecutionError("No months in range")
        if definition.probes_freshness():
            self._probe_index(definition, month_range)

        payloads, failures = self._fetch_partitions(definition, keys, variables)
        if not payloads:
            reasons = "; ".join(str(f.cause) for f in failures) or "Unknown error"
            raise ExecutionError(f"All pipeline executions failed: {reasons}")

        if not definition.client_save:
            merged: dict[str, Any] = {}
            for key in sorted(payloads):
                merge_payload_into(merged, payloads[key])
            return merged

        cached = self.store.wait_for_partitions(definition.id, keys)
        if not cached:
            raise ExecutionError(f"No data cached for months: {', '.join(keys)}")
        return self.store.reconstruct(definition.id, cached)

    # Cache check

    def load_from_cache(
        self,
        query_id: str,
        definition: QueryDefinition | None = None,
        month_range: MonthRange | None = None,
    ) -> dict[str, Any] | None:
        """
        Serve the query from the cache when possible, otherwise execute it.

        The index probe decides which cached partitions are stale; stale
        months are re-fetched and fresh ones are read from the cache. When
        only part of the range is cached, the cached subset is returned and
        the full range is warmed in the background.
        """
        definition = definition or self.definition(query_id)
        cache_key = f"{query_id}_{month_range or ''}"
        with self.state.mutex:
            if self.state.cache_load_key == cache_key:
                log.debug("cache check %s already in progress", cache_key)
                return None
            self.state.cache_load_key = cache_key

        try:
            hit = self._check_cache(definition, month_range) if definition.client_save else None
        except (CacheIOError, ValueError) as exc:
            log.warning("cache check %s... failure: %s", cache_key, exc)
            hit = None
        finally:
            with self.state.mutex:
                self.state.cache_load_key = None

        if hit is not None:
            result, detail = hit
            self._publish(definition, month_range, result, StatusNotification.success(detail))
            return result
        return self.run_query(
            query_id,
            month_range=month_range,
            variables=self.state.variables,
            search_term=self.state.search_term,
            sort_config=self.state.sort_config,
        )

    def _check_cache(
        self,
        definition: QueryDefinition,
        month_range: MonthRange | None,
    ) -> tuple[dict[str, Any], str] | None:
        """Return the cached result and the notification detail, or None on a miss."""
        query_id = definition.id
        if not definition.month:
            if definition.probes_freshness():
                cached_signature = self.signatures.get(query_id)
                fresh = self._probe_index(definition, None)
                if stale_partitions(cached_signature, fresh, [DEFAULT_PARTITION]):
                    log.info("cache of %s is stale", query_id)
                    return None
            self.store.refresh(query_id)
            result = self.store.reconstruct(query_id)
            return (result, "Data loaded from cache") if result else None

        if month_range is None:
            return None
        keys = month_range.keys()
        if not keys:
            return None

        stale: list[str] = []
        if definition.probes_freshness():
            cached_signature = self.signatures.get(query_id)
            fresh = self._probe_index(definition, month_range)
            stale = stale_partitions(cached_signature, fresh, keys)

        self.store.refresh(query_id)
        cached = self.store.list_cached_partitions(query_id, keys)
        stale = [key for key in stale if key in cached]
        if stale:
            log.info("refreshing stale partitions of %s: %s", query_id, ", ".join(stale))
            self._fetch_partitions(definition, stale, self._month_variables(definition, month_range))
            self.store.refresh(query_id)
            cached = self.store.list_cached_partitions(query_id, keys)
        if not cached:
            return None

        result = self.store.reconstruct(query_id, cached)
        if not result:
            return None
        if len(cached) == len(keys):
            return result, "Data loaded from cache"
        self.warm_months(query_id, definition, month_range)
        return result, f"Data loaded from cache ({len(cached)}/{len(keys)} months)"

    def _month_variables(self, definition: QueryDefinition, month_range: MonthRange) -> dict[str, Any]:
        return merge_variables(
            definition,
            self.state.variables,
            month_range=month_range,
            search_term=self.state.search_term,
            sort_config=self.state.sort_config,
        )

    def warm_months(
        self,
        query_id: str,
        definition: QueryDefinition | None = None,
        month_range: MonthRange | None = None,
        *,
        on_month: MonthCallback | None = None,
    ) -> Future[list[str]]:
        """
        Fetch and cache every month of the range in the background.

        Months are fetched one at a time, newest first. Errors are logged
        and never raised; the returned future resolves to the list of
        months that failed.
        """
        definition = definition or self.definition(query_id)
        keys = [] if month_range is None else list(reversed(month_range.keys()))
        known = self._known_definitions()

        def warm() -> list[str]:
            failed: list[str] = []
            for key in keys:
                request = ExecutePipelineRequest(
                    definition=definition,
                    month_range=MonthRange.single(key),
                    all_definitions=known,
                )
                response = self.dispatcher.handle(request)
                error = None if response.ok else response.error
                if error is not None:
                    log.warning("warming %s (%s)... failure: %s", query_id, key, error)
                    failed.append(key)
                if on_month is not None:
                    on_month(key, error)
            self.store.refresh(query_id)
            return failed

        return self._background.submit(warm)

    # Index signatures

    def refresh_index_signatures(self, definitions: Iterable[QueryDefinition]) -> Future:
        """
        Probe the index of every query cached client side.

        For month queries with a month-index probe, a change of the stored
        signature re-runs the pipeline of the current month in the
        background.
        """
        selected = [d for d in definitions if d.probes_freshness()]
        with self.state.mutex:
            for definition in selected:
                self.state.definitions.setdefault(definition.id, definition)
        for definition in selected:
            self.signatures.set_on_change_callback(definition.id, self._on_signature_change)
        return self.dispatcher.submit(ExecuteIndexBatchRequest(definitions=tuple(selected)))

    def _on_signature_change(
        self,
        query_id: str,
        old: IndexSignature | None,
        new: IndexSignature | None,
        updated_at: int,
    ) -> None:
        try:
            definition = self.definition(query_id)
        except ResolutionError as exc:
            log.warning("signature change for %s: %s", query_id, exc)
            return
        if not (definition.client_save and definition.month and definition.has_month_index()):
            return
        with self.state.mutex:
            if query_id in self.state.pipeline_in_flight:
                return
            self.state.pipeline_in_flight.add(query_id)
        log.info("index of %s changed, refreshing current month", query_id)
        try:
            response = self.dispatcher.submit(
                ExecutePipelineRequest(definition=definition, all_definitions=self._known_definitions())
            ).result()
            if not response.ok:
                log.warning("refreshing %s... failure: %s", query_id, response.error)
        finally:
            with self.state.mutex:
                self.state.pipeline_in_flight.discard(query_id)

    # Setters

    def select_query(self, query_id: str) -> dict[str, Any] | None:
        """
        Select a query, then serve it from the cache or execute it.

        A month query waits until a month range is set.
        """
        definition = self.definition(query_id)
        with self.state.mutex:
            if self.state.selected_query_id == query_id:
                return None
            self.state.selected_query_id = query_id
            self.state.variables = {}
            self.state.last_updated_at = None
        if definition.month and self.state.month_range is None:
            log.debug("query %s waits for a month range", query_id)
            return None
        return self.load_from_cache(query_id, definition, self.state.month_range)

    def set_variables(self, variables: Mapping[str, Any]) -> dict[str, Any] | None:
        """Update the variable overrides; a change always re-executes."""
        variables = dict(variables)
        with self.state.mutex:
            if variables == self.state.variables:
                return None
            self.state.variables = variables
        return self._rerun()

    def set_month_range(self, month_range: MonthRange | None) -> dict[str, Any] | None:
        """Update the month range; month queries go through the cache check."""
        with self.state.mutex:
            if month_range == self.state.month_range:
                return None
            self.state.month_range = month_range
            query_id = self.state.selected_query_id
        if query_id is None:
            return None
        definition = self.definition(query_id)
        if not definition.month or month_range is None:
            return None
        return self.load_from_cache(query_id, definition, month_range)

    def set_search_term(self, search_term: str) -> dict[str, Any] | None:
        """Update the search term; only server-side queries re-execute."""
        with self.state.mutex:
            if search_term == self.state.search_term:
                return None
            self.state.search_term = search_term
        return self._rerun(server_side_only=True)

    def set_sort_config(self, sort_config: SortConfig | None) -> dict[str, Any] | None:
        """Update the sort; only server-side queries re-execute."""
        with self.state.mutex:
            if sort_config == self.state.sort_config:
                return None
            self.state.sort_config = sort_config
        return self._rerun(server_side_only=True)

    def _rerun(self, *, server_side_only: bool = False) -> dict[str, Any] | None:
        query_id = self.state.selected_query_id
        if query_id is None:
            return None
        definition = self.definition(query_id)
        if server_side_only and definition.client_save:
            return None
        if definition.month and self.state.month_range is None:
            return None
        return self.run_query(
            query_id,
            month_range=self.state.month_range,
            variables=self.state.variables,
            search_term=self.state.search_term,
            sort_config=self.state.sort_config,
        )

    # Sequence numbers

    def next_sequence(self, name: str) -> int:
        """Return a new, strictly increasing tag for a dispatch named `name`."""
        with self.state.mutex:
            seq = self.state.sequences.get(name, 0) + 1
            self.state.sequences[name] = seq
            return seq

    def is_latest(self, name: str, seq: int) -> bool:
        """Return whether `seq` is the last tag issued for `name`."""
        with self.state.mutex:
            return self.state.sequences.get(name, 0) == seq

    # Helpers

    def _publish(
        self,
        definition: QueryDefinition,
        month_range: MonthRange | None,
        result: dict[str, Any],
        notification: StatusNotification,
    ) -> None:
        last_updated = self._last_updated(definition, month_range)
        with self.state.mutex:
            self.state.result = result
            self.state.last_updated_at = last_updated
        self._notify(notification)

    def _last_updated(self, definition: QueryDefinition, month_range: MonthRange | None) -> str | None:
        try:
            signature = self.signatures.get(definition.id)
        except CacheIOError as exc:
            log.debug("reading signature of %s... failure: %s", definition.id, exc)
            return None
        if definition.month:
            if month_range is None or not isinstance(signature, dict):
                return None
            return signature.get(month_range.start_key())
        return signature if isinstance(signature, str) else None

    def _notify(self, notification: StatusNotification) -> None:
        if self.notify is None:
            return
        try:
            self.notify(notification)
        except Exception as exc:
            log.warning("notify callback... failure: %s", exc)
