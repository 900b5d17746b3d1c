"""Optional scripting helpers to log exceptions and convert them to exit codes."""

from __future__ import annotations

import logging

log = logging.getLogger("scripting")


class Interceptor:
    """
    Context manager to intercept exceptions.

    Use as a context manager:

        interceptor = dt_exception.Interceptor()
        for query_id in query_ids:
            with interceptor:
                engine.orchestrator.run_query(query_id)
        sys.exit(interceptor.exitcode())

    Exceptions are logged and suppressed. The `failures` field
    counts the intercepted exceptions and `failed` tells you
    whether there were any.
    """

    def __init__(self):
        self.failures = 0

    @property
    def failed(self) -> bool:
        return self.failures > 0

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        if exc_type is None:
            return False
        if issubclass(exc_type, KeyboardInterrupt):
            return False
        log.error("operation failed: %s", exc_value)
        self.failures += 1
        return True  # suppress the exception

    def exitcode(self) -> int:
        """
        Return the exitcode to pass to sys.exit.

        Zero on success, 1 on failure.
        """
        return int(self.failed)
