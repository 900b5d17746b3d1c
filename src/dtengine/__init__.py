"""Data acquisition and transformation engine.

This library executes saved remote queries, caches their results on
disk partitioned by calendar month, checks cached partitions for
staleness with cheap index probes, and transforms the resulting rows
(filtering, search, sort, grouping and time-bucketed reports) for
display.
"""

from importlib.metadata import PackageNotFoundError, version

from .cache import IndexSignatureStore, PartitionedCacheStore
from .config import EngineConfig, load_config
from .engine import DataEngine
from .errors import (
    CacheIOError,
    DependencyError,
    ExecutionError,
    PartitionFetchError,
    PipelineError,
    QueryRequestError,
    ResolutionError,
)
from .orchestrator import QueryOrchestrator, StatusNotification
from .query import QueryDefinition
from .report import Breakdown, ReportData, build_report
from .transform import DataPipeline, PipelineOptions, PipelineOutput
from .values import ColumnType, MonthRange, SortConfig

try:
    __version__ = version("dtengine")
except PackageNotFoundError:  # pragma: no cover - running from a source checkout
    __version__ = "0.0.0"

__all__ = [
    "Breakdown",
    "CacheIOError",
    "ColumnType",
    "DataEngine",
    "DataPipeline",
    "DependencyError",
    "EngineConfig",
    "ExecutionError",
    "IndexSignatureStore",
    "MonthRange",
    "PartitionFetchError",
    "PartitionedCacheStore",
    "PipelineError",
    "PipelineOptions",
    "PipelineOutput",
    "QueryDefinition",
    "QueryOrchestrator",
    "QueryRequestError",
    "ReportData",
    "ResolutionError",
    "SortConfig",
    "StatusNotification",
    "build_report",
    "load_config",
    "__version__",
]
