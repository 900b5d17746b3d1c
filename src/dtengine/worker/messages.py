"""Requests and responses exchanged with the worker thread."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, TypeAlias

from .. import errors
from ..query import QueryDefinition
from ..values import MonthRange


@dataclass(frozen=True, kw_only=True)
class ExecutePipelineRequest:
    """Run the full pipeline of a query and cache its result."""

    definition: QueryDefinition
    month_range: MonthRange | None = None
    variables: tuple[tuple[str, Any], ...] = ()
    all_definitions: tuple[QueryDefinition, ...] = ()


@dataclass(frozen=True, kw_only=True)
class ExecuteIndexQueryRequest:
    """Run the index probe of a query."""

    definition: QueryDefinition
    month_range: MonthRange | None = None


@dataclass(frozen=True, kw_only=True)
class ExecuteIndexRangeRequest:
    """Run the index probe of a query once per month of a range."""

    definition: QueryDefinition
    month_range: MonthRange


@dataclass(frozen=True, kw_only=True)
class ExecuteIndexBatchRequest:
    """Run the index probes of many queries."""

    definitions: tuple[QueryDefinition, ...] = ()


WorkerRequest: TypeAlias = (
    ExecutePipelineRequest
    | ExecuteIndexQueryRequest
    | ExecuteIndexRangeRequest
    | ExecuteIndexBatchRequest
)

# Errors that keep their type when crossing the worker boundary
_ERROR_TYPES: dict[str, type[Exception]] = {
    cls.__name__: cls
    for cls in (
        errors.ExecutionError,
        errors.ResolutionError,
        errors.DependencyError,
        errors.QueryRequestError,
    )
}


@dataclass(frozen=True, kw_only=True)
class WorkerResponse:
    """
    Outcome of a worker request.

    Attributes:
        payload: JSON-safe copy of the result, when successful
        error: the error message, when failed
        error_type: class name of the error, when failed
    """

    payload: Any = None
    error: str | None = None
    error_type: str | None = field(default=None)

    @classmethod
    def success(cls, payload: Any) -> WorkerResponse:
        return cls(payload=json_copy(payload))

    @classmethod
    def failure(cls, exc: BaseException) -> WorkerResponse:
        return cls(error=str(exc) or type(exc).__name__, error_type=type(exc).__name__)

    @property
    def ok(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        """Return the payload or raise the error it carries."""
        if self.error is None:
            return self.payload
        error_cls = _ERROR_TYPES.get(self.error_type or "", errors.ExecutionError)
        raise error_cls(self.error)


def json_copy(value: Any) -> Any:
    """Deep copy a value through JSON, so no mutable object is shared."""
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str))
