"""Remote endpoint resolution and query execution over HTTP."""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final

import requests

from ..errors import QueryRequestError, ResolutionError
from .definition import QueryDefinition

# Key added by flattening that never reaches the caller
INDEX_KEY: Final[str] = "__index__"

# Maximum nesting flattened into a single row
FLATTEN_MAX_DEPTH: Final[int] = 10

# Number of characters of an unparseable error body quoted in errors
ERROR_BODY_PREFIX: Final[int] = 200

DEFAULT_TIMEOUT: Final[float] = 60.0

log = logging.getLogger("query/endpoint")


@dataclass(frozen=True, kw_only=True)
class EndpointConfig:
    """
    A configured remote endpoint.

    Attributes:
        url: the URL queries are POSTed to
        token: literal authorization token
        token_env: name of the environment variable holding the token
    """

    url: str
    token: str | None = None
    token_env: str | None = None

    def resolved_token(self) -> str | None:
        """Return the literal token or the one read from the environment."""
        if self.token:
            return self.token
        if self.token_env:
            return os.environ.get(self.token_env) or None
        return None


@dataclass(frozen=True, kw_only=True)
class ResolvedEndpoint:
    """Endpoint URL and token selected for one execution."""

    url: str
    token: str | None = None


class EndpointResolver:
    """
    Selects the endpoint of a query definition.

    The definition's `url_key` is looked up case-insensitively among the
    configured endpoints. When the key is missing or unknown, the
    default endpoint is used.
    """

    def __init__(
        self,
        endpoints: Mapping[str, EndpointConfig] | None = None,
        default: str | None = None,
    ):
        self.endpoints = {name.lower(): config for name, config in (endpoints or {}).items()}
        self.default = default.lower() if default else None

    def resolve(
        self,
        definition: QueryDefinition,
        fallback: ResolvedEndpoint | None = None,
    ) -> ResolvedEndpoint:
        """
        Return the endpoint for the definition.

        The fallback (the parent's endpoint, for nested queries) is used
        before the default when the definition has no usable `url_key`.
        """
        if definition.url_key:
            config = self.endpoints.get(definition.url_key.lower())
            if config is not None and config.url:
                return ResolvedEndpoint(url=config.url, token=config.resolved_token())
            log.debug("unknown url key %s for %s", definition.url_key, definition.id)
        if fallback is not None and fallback.url:
            return fallback
        if self.default is not None:
            config = self.endpoints.get(self.default)
            if config is not None and config.url:
                return ResolvedEndpoint(url=config.url, token=config.resolved_token())
        raise ResolutionError("GraphQL endpoint URL is not set")


class QueryClient:
    """Executes query documents against an endpoint with a requests session."""

    def __init__(self, session: requests.Session | None = None, *, timeout: float = DEFAULT_TIMEOUT):
        self.session = session or requests.Session()
        self.timeout = timeout

    def post(self, endpoint: ResolvedEndpoint, body: str, variables: Mapping[str, Any]) -> dict[str, Any]:
        """
        POST the query and return the decoded JSON response.

        Raises:
            QueryRequestError: on network errors, HTTP errors, invalid JSON
                or GraphQL errors in the response.
        """
        if not body or not body.strip():
            raise QueryRequestError("Query body is empty")
        headers = {"Content-Type": "application/json"}
        if endpoint.token:
            headers["Authorization"] = endpoint.token
        try:
            resp = self.session.post(
                endpoint.url,
                json={"query": body, "variables": dict(variables)},
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise QueryRequestError(
                f"Network error: {exc}. Please check your connection and endpoint URL."
            ) from exc

        if not resp.ok:
            message = _http_error_message(resp)
            log.warning("request to %s failed: %d %s", endpoint.url, resp.status_code, message)
            raise QueryRequestError(f"HTTP {resp.status_code}: {message}", status=resp.status_code)

        try:
            document = resp.json()
        except ValueError as exc:
            raise QueryRequestError(
                f"Invalid JSON response from GraphQL endpoint: {resp.text[:ERROR_BODY_PREFIX]}"
            ) from exc
        if not isinstance(document, dict):
            raise QueryRequestError("Invalid JSON response from GraphQL endpoint: not an object")

        errors = document.get("errors")
        if errors:
            raise QueryRequestError(f"GraphQL errors: {_join_errors(errors)}")
        return document

    def execute(
        self,
        endpoint: ResolvedEndpoint,
        body: str,
        variables: Mapping[str, Any],
    ) -> dict[str, list[dict[str, Any]]]:
        """POST the query and return its named result sets."""
        return extract_result_sets(self.post(endpoint, body, variables))

    def execute_leaf(
        self,
        endpoint: ResolvedEndpoint,
        body: str,
        variables: Mapping[str, Any],
    ) -> str | None:
        """POST a probe query and return its single leaf value as a string."""
        return extract_leaf_value(self.post(endpoint, body, variables))


def _join_errors(errors: Any) -> str:
    if not isinstance(errors, list):
        return str(errors)
    messages = []
    for error in errors:
        if isinstance(error, dict) and error.get("message"):
            messages.append(str(error["message"]))
        else:
            messages.append(str(error))
    return "; ".join(messages)


def _http_error_message(resp: requests.Response) -> str:
    text = resp.text or ""
    if not text:
        return f"GraphQL request failed: {resp.status_code} {resp.reason}"
    try:
        payload = resp.json()
    except ValueError:
        return text[:ERROR_BODY_PREFIX]
    if isinstance(payload, dict):
        if payload.get("message"):
            return str(payload["message"])
        if payload.get("error"):
            return str(payload["error"])
        if isinstance(payload.get("errors"), list) and payload["errors"]:
            return _join_errors(payload["errors"])
    return text[:ERROR_BODY_PREFIX]


def _collect_nodes(value: Any, nodes: list[dict[str, Any]]) -> None:
    if isinstance(value, list):
        for item in value:
            if isinstance(item, dict):
                nodes.append(item)
        return
    if not isinstance(value, dict):
        return
    edges = value.get("edges")
    if isinstance(edges, list):
        for edge in edges:
            node = edge.get("node") if isinstance(edge, dict) else None
            if isinstance(node, dict):
                nodes.append(node)
        return
    for child in value.values():
        if isinstance(child, (dict, list)):
            _collect_nodes(child, nodes)


def flatten_node(node: Mapping[str, Any], *, delimiter: str = "_") -> dict[str, Any]:
    """
    Flatten nested mappings of a node into a single level.

    Keys are joined with the delimiter (`{"a": {"b": 1}}` becomes
    `{"a_b": 1}`); lists are kept as they are.
    """
    flat: dict[str, Any] = {}

    def walk(value: Mapping[str, Any], prefix: str, depth: int) -> None:
        for key, child in value.items():
            name = f"{prefix}{delimiter}{key}" if prefix else str(key)
            if isinstance(child, Mapping) and child and depth < FLATTEN_MAX_DEPTH:
                walk(child, name, depth + 1)
            else:
                flat[name] = child

    walk(node, "", 1)
    return flat


def remove_index_keys(value: Any) -> Any:
    """Return a copy of the value without `__index__` keys at any depth."""
    if isinstance(value, list):
        return [remove_index_keys(item) for item in value]
    if isinstance(value, dict):
        return {key: remove_index_keys(child) for key, child in value.items() if key != INDEX_KEY}
    return value


def extract_result_sets(document: Mapping[str, Any]) -> dict[str, list[dict[str, Any]]]:
    """
    Extract the named result sets of a response.

    Each top-level field of `data` becomes a result set. Lists are taken
    as they are, connections contribute their `edges[].node` objects and
    other objects are searched for nested lists or connections. Nodes
    are flattened into single-level rows.
    """
    data = document.get("data")
    if not isinstance(data, dict):
        return {}
    result: dict[str, list[dict[str, Any]]] = {}
    for name, value in data.items():
        nodes: list[dict[str, Any]] = []
        _collect_nodes(value, nodes)
        result[name] = [remove_index_keys(flatten_node(node)) for node in nodes]
    return result


def _first_leaf(value: Any) -> Any:
    if isinstance(value, dict):
        edges = value.get("edges")
        if isinstance(edges, list):
            return _first_leaf(edges)
        for child in value.values():
            leaf = _first_leaf(child)
            if leaf is not None:
                return leaf
        return None
    if isinstance(value, list):
        for item in value:
            if isinstance(item, dict) and "node" in item:
                item = item["node"]
            leaf = _first_leaf(item)
            if leaf is not None:
                return leaf
        return None
    return value


def extract_leaf_value(document: Mapping[str, Any]) -> str | None:
    """
    Return the single leaf value of a probe response as a string.

    The first scalar found walking `data` in document order is returned,
    following `edges[].node` and the first element of lists. Empty
    values yield None.
    """
    leaf = _first_leaf(document.get("data"))
    if not leaf:
        return None
    return leaf if isinstance(leaf, str) else str(leaf)
