"""Tests for the dtengine.scripting.dt_exception module."""

from unittest.mock import patch

import pytest

from dtengine.errors import ExecutionError
from dtengine.scripting import dt_exception


class TestInterceptor:
    """Tests for Interceptor."""

    def test_no_exception(self) -> None:
        interceptor = dt_exception.Interceptor()

        with patch("dtengine.scripting.dt_exception.log") as log, interceptor:
            pass

        assert interceptor.failed is False
        assert interceptor.exitcode() == 0
        log.error.assert_not_called()

    def test_exception_sets_failed_and_logs(self) -> None:
        interceptor = dt_exception.Interceptor()

        with patch("dtengine.scripting.dt_exception.log") as log, interceptor:
            raise ExecutionError("boom")

        assert interceptor.failed is True
        assert interceptor.exitcode() == 1
        log.error.assert_called_once()
        assert log.error.call_args[0][0] == "operation failed: %s"
        assert str(log.error.call_args[0][1]) == "boom"

    def test_counts_failures_across_uses(self) -> None:
        interceptor = dt_exception.Interceptor()

        with patch("dtengine.scripting.dt_exception.log"):
            for query_id in ("a", "b", "c"):
                with interceptor:
                    if query_id != "b":
                        raise ValueError(query_id)

        assert interceptor.failures == 2
        assert interceptor.exitcode() == 1

    def test_keyboard_interrupt_propagates(self) -> None:
        interceptor = dt_exception.Interceptor()

        with pytest.raises(KeyboardInterrupt):
            with interceptor:
                raise KeyboardInterrupt

        assert interceptor.failed is False
