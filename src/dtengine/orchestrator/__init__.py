"""Query orchestrator: decides between cache and remote execution."""

from .orchestrator import QueryOrchestrator
from .state import OrchestratorState
from .status import ERROR_TTL_MS, SUCCESS_TTL_MS, NotifyCallback, Severity, StatusNotification

__all__ = [
    "ERROR_TTL_MS",
    "SUCCESS_TTL_MS",
    "NotifyCallback",
    "OrchestratorState",
    "QueryOrchestrator",
    "Severity",
    "StatusNotification",
]
