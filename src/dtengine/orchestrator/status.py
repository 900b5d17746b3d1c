"""Status notifications delivered to the presentation layer."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import Enum
from typing import Final, TypeAlias

SUCCESS_TTL_MS: Final[int] = 3000
ERROR_TTL_MS: Final[int] = 5000


class Severity(str, Enum):
    """Severity of a notification."""

    SUCCESS = "success"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


@dataclass(frozen=True, kw_only=True)
class StatusNotification:
    """
    Transient message about the outcome of an operation.

    Attributes:
        severity: success, info, warn or error
        summary: short title
        detail: human readable description
        ttl: how long to show the message, in milliseconds
    """

    severity: Severity
    summary: str
    detail: str
    ttl: int

    @classmethod
    def success(cls, detail: str = "Query executed successfully") -> StatusNotification:
        return cls(severity=Severity.SUCCESS, summary="Success", detail=detail, ttl=SUCCESS_TTL_MS)

    @classmethod
    def error(cls, detail: str | None) -> StatusNotification:
        return cls(
            severity=Severity.ERROR,
            summary="Error",
            detail=detail or "Failed to execute query",
            ttl=ERROR_TTL_MS,
        )


NotifyCallback: TypeAlias = Callable[[StatusNotification], None]
