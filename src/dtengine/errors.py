"""Error types emitted by the engine."""


class ExecutionError(RuntimeError):
    """Error emitted when an execution cannot produce any usable data."""


class ResolutionError(ExecutionError):
    """Error emitted when we cannot resolve a query definition or its endpoint."""


class DependencyError(ExecutionError):
    """Error emitted when nested queries form a cycle or nest too deeply."""


class QueryRequestError(ExecutionError):
    """
    Error emitted when the remote endpoint request fails.

    Attributes:
        status: the HTTP status code, if the failure was an HTTP error.
    """

    def __init__(self, message: str, *, status: int | None = None):
        super().__init__(message)
        self.status = status


class PartitionFetchError(ExecutionError):
    """
    Error emitted when fetching a single month partition fails.

    The message names the month and the cause, never the on-disk
    location of the partition.
    """

    def __init__(self, query_id: str, partition: str, cause: BaseException):
        super().__init__(f"{query_id} ({partition}): {cause}")
        self.query_id = query_id
        self.partition = partition
        self.cause = cause


class CacheIOError(OSError):
    """Error emitted when reading from or writing to the cache store fails."""


class PipelineError(ValueError):
    """Error emitted when a transformation stage receives malformed input."""
