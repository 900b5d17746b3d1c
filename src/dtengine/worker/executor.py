"""Execution of query pipelines and index probes."""

from __future__ import annotations

import json
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from ..cache import DEFAULT_PARTITION, IndexSignature, IndexSignatureStore, PartitionedCacheStore
from ..errors import CacheIOError, ExecutionError, QueryRequestError, ResolutionError
from ..query import (
    EndpointResolver,
    QueryClient,
    QueryDefinition,
    QueryDefinitionStore,
    ResolvedEndpoint,
    TransformerRegistry,
    remove_index_keys,
)
from ..values import MonthRange, extract_year_month
from .context import DEFAULT_MAX_DEPTH, ExecutionContext

log = logging.getLogger("worker/executor")


class ExecutionWorker:
    """
    Runs query definitions against their endpoint and caches the results.

    The worker is the only writer of the partitioned cache store and of
    the index signatures. Wrap it into a `WorkerDispatcher` to run it off
    the caller's thread; concurrent executions of distinct months are safe
    because partition writes take a per-partition file lock.
    """

    def __init__(
        self,
        store: PartitionedCacheStore,
        client: QueryClient,
        resolver: EndpointResolver,
        *,
        signatures: IndexSignatureStore | None = None,
        transformers: TransformerRegistry | None = None,
        definitions: QueryDefinitionStore | None = None,
        max_depth: int = DEFAULT_MAX_DEPTH,
    ):
        self.store = store
        self.client = client
        self.resolver = resolver
        self.signatures = signatures or IndexSignatureStore(store.data_dir)
        self.transformers = transformers or TransformerRegistry()
        self.definitions = definitions
        self.max_depth = max_depth

    # Index probes

    def execute_index_query(
        self,
        definition: QueryDefinition,
        *,
        month_range: MonthRange | None = None,
    ) -> IndexSignature | None:
        """
        Run the index probe of a query and persist its signature.

        Returns the fresh signature, or None when the query has no probe,
        is not cached client side, or the probe failed. Probe failures are
        logged and never raised.
        """
        if not definition.has_index():
            log.debug("skipping index query for %s: no index query", definition.id)
            return None
        if not definition.client_save:
            log.debug("skipping index query for %s: not cached client side", definition.id)
            return None

        log.info("index query %s... start", definition.id)
        try:
            endpoint = self.resolver.resolve(definition)
            variables = {**definition.template_variables(), **_range_variables(month_range)}
            full_date = self.client.execute_leaf(endpoint, definition.index or "", variables)
        except (ResolutionError, QueryRequestError) as exc:
            log.warning("index query %s... failure: %s", definition.id, exc)
            return None

        signature: IndexSignature | None
        if definition.month and definition.has_month_index():
            year_month = self._current_month(definition, endpoint)
            signature = {year_month: full_date} if year_month and full_date else None
            if signature is not None:
                self.signatures.merge_months(definition.id, signature, client_save=True)
        else:
            signature = full_date
            self.signatures.save(definition.id, signature, client_save=True)
        log.info("index query %s... ok (%s)", definition.id, signature)
        return signature

    def execute_index_query_for_month_range(
        self,
        definition: QueryDefinition,
        month_range: MonthRange,
    ) -> dict[str, str] | None:
        """
        Run the index probe once per month of the range.

        The per-month values are merged into the stored signature map and
        returned. Months whose probe failed are left out. Returns None when
        no month could be probed.
        """
        if not definition.has_index() or not definition.client_save:
            return None
        try:
            endpoint = self.resolver.resolve(definition)
        except ResolutionError as exc:
            log.warning("index query %s for %s... failure: %s", definition.id, month_range, exc)
            return None

        template = definition.template_variables()
        months: dict[str, str] = {}
        for key in month_range.keys():
            variables = {**template, **MonthRange.single(key).variables()}
            try:
                value = self.client.execute_leaf(endpoint, definition.index or "", variables)
            except QueryRequestError as exc:
                log.warning("index query %s (%s)... failure: %s", definition.id, key, exc)
                continue
            if value is not None:
                months[key] = value
        if not months:
            return None
        self.signatures.merge_months(definition.id, months, client_save=True)
        return months

    def execute_and_cache_index_queries(self, definitions: Iterable[QueryDefinition]) -> None:
        """Probe every query that is cached client side and declares an index."""
        for definition in definitions:
            if definition.probes_freshness():
                self.execute_index_query(definition)

    def _current_month(self, definition: QueryDefinition, endpoint: ResolvedEndpoint) -> str | None:
        """Run the month-index probe and return the `YYYY-MM` it names."""
        try:
            value = self.client.execute_leaf(
                endpoint,
                definition.month_index or "",
                definition.template_variables(),
            )
        except QueryRequestError as exc:
            log.warning("month index query %s... failure: %s", definition.id, exc)
            return None
        return extract_year_month(value)

    # Pipelines

    def execute_pipeline(
        self,
        definition: QueryDefinition,
        *,
        month_range: MonthRange | None = None,
        variables: Mapping[str, Any] | None = None,
        all_definitions: Mapping[str, QueryDefinition] | None = None,
    ) -> dict[str, Any]:
        """
        Execute the query, apply its transformer and cache the result.

        Month queries cache under the month of the range, which must cover
        a single month. Without a range, month queries with a month-index
        probe refresh the month the probe names. The result is cached only
        when the query is cached client side.

        Raises:
            ExecutionError: or one of its subclasses on failure.
        """
        endpoint = self.resolver.resolve(definition)

        # 1. decide which partition the result belongs to
        partition_key: str | None
        if definition.month and month_range is None and definition.has_month_index():
            year_month = self._current_month(definition, endpoint)
            if year_month is None:
                raise ExecutionError(f"Could not extract YYYY-MM for month query {definition.id}")
            month_range = MonthRange.single(year_month)
            partition_key = year_month
        elif definition.month:
            if month_range is None:
                raise ResolutionError(f"Month query {definition.id} requires a month range")
            partition_key = month_range.start_key() if month_range.start == month_range.end else None
        else:
            partition_key = DEFAULT_PARTITION

        # 2. run the query and its transformer
        log.info("pipeline %s... start", definition.id)
        context = ExecutionContext(self.max_depth)
        known = dict(all_definitions or {})
        known.setdefault(definition.id, definition)
        result = self._run(
            definition,
            context,
            fallback=endpoint,
            month_range=month_range,
            overrides=variables,
            known=known,
        )

        # 3. cache the result
        if definition.client_save:
            if partition_key is None:
                log.warning("not caching %s: range %s spans many months", definition.id, month_range)
            else:
                try:
                    self.store.put(definition.id, partition_key, result)
                except CacheIOError as exc:
                    log.warning("caching %s (%s)... failure: %s", definition.id, partition_key, exc)
        log.info("pipeline %s... ok", definition.id)
        return result

    def _run(
        self,
        definition: QueryDefinition,
        context: ExecutionContext,
        *,
        fallback: ResolvedEndpoint,
        month_range: MonthRange | None,
        overrides: Mapping[str, Any] | None,
        known: dict[str, QueryDefinition],
    ) -> dict[str, Any]:
        with context.enter(definition.id):
            endpoint = self.resolver.resolve(definition, fallback=fallback)
            variables = {
                **definition.template_variables(),
                **_range_variables(month_range),
                **(overrides or {}),
            }
            raw = self.client.execute(endpoint, definition.body, variables)
            if not raw:
                log.warning("no data returned from query %s", definition.id)
                raw = {}

            def nested_query(query_id: str) -> dict[str, Any]:
                if not query_id or not query_id.strip():
                    raise ResolutionError("Query key is required")
                nested = known.get(query_id)
                if nested is None and self.definitions is not None:
                    nested = self.definitions.load(query_id)
                    if nested is not None:
                        known[query_id] = nested
                if nested is None:
                    raise ResolutionError(f'Query "{query_id}" not found')
                # nested queries never inherit the parent's month range
                return self._run(
                    nested,
                    context,
                    fallback=endpoint,
                    month_range=None,
                    overrides=None,
                    known=known,
                )

            data = raw
            if definition.transformer:
                data = self._transform(definition, raw, nested_query)
            return {name: remove_index_keys(value) for name, value in data.items()}

    def _transform(self, definition: QueryDefinition, raw: dict[str, Any], nested_query) -> dict[str, Any]:
        transformer = self.transformers.resolve(definition.transformer or "")
        # The transformer works on a copy, so it cannot alter the raw data
        data_copy = json.loads(json.dumps(raw, default=str))
        result = transformer(data_copy, nested_query)
        if result is None:
            log.warning("transformer of %s did not return a value, using original data", definition.id)
            return raw
        if not isinstance(result, dict):
            log.warning("transformer result of %s is not a mapping, returning original data", definition.id)
            return raw
        return result


def _range_variables(month_range: MonthRange | None) -> dict[str, str]:
    return {} if month_range is None else month_range.variables()
