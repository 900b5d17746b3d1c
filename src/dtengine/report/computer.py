"""Background report computation where the latest request wins."""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Mapping, Sequence
from concurrent.futures import Future
from typing import Any, Final

from ..values import ColumnType
from .engine import ReportData, RowSorter, build_report
from .periods import Breakdown

log = logging.getLogger("report/computer")

# Inputs with at most this many rows are computed on the caller's thread
DEFAULT_INLINE_THRESHOLD: Final[int] = 500

ReportCallback = Callable[[int, ReportData], None]


class ReportComputer:
    """
    Computes reports off the caller's thread.

    Each request gets a sequence number. Small inputs are computed
    inline; larger ones on a short-lived thread. A result is delivered
    to `on_result` (and its future resolves to it) only if no newer
    request was issued meanwhile; superseded results resolve to None.
    """

    def __init__(
        self,
        *,
        inline_threshold: int = DEFAULT_INLINE_THRESHOLD,
        on_result: ReportCallback | None = None,
    ):
        self.inline_threshold = inline_threshold
        self.on_result = on_result
        self._mutex = threading.Lock()
        self._sequence = 0
        self.latest: ReportData | None = None

    def is_latest(self, sequence: int) -> bool:
        with self._mutex:
            return sequence == self._sequence

    def compute(
        self,
        rows: Sequence[Any],
        group_fields: Sequence[str],
        date_field: str,
        breakdown: Breakdown | str = Breakdown.MONTH,
        column_types: Mapping[str, ColumnType] | None = None,
        sort: RowSorter | None = None,
    ) -> Future[ReportData | None]:
        """Schedule a report computation and return its future."""
        with self._mutex:
            self._sequence += 1
            sequence = self._sequence
        rows = list(rows)
        future: Future[ReportData | None] = Future()
        args = (rows, list(group_fields), date_field, breakdown, dict(column_types or {}), sort)

        if len(rows) <= self.inline_threshold:
            self._run(sequence, future, args)
            return future

        log.debug("report #%d: %d rows, computing in background", sequence, len(rows))
        thread = threading.Thread(
            target=self._run,
            args=(sequence, future, args),
            name=f"dtengine-report-{sequence}",
            daemon=True,
        )
        thread.start()
        return future

    def _run(self, sequence: int, future: Future[ReportData | None], args: tuple) -> None:
        if not future.set_running_or_notify_cancel():
            return
        try:
            report = build_report(*args)
        except Exception as exc:
            log.warning("report #%d... failure: %s", sequence, exc)
            future.set_exception(exc)
            return

        with self._mutex:
            superseded = sequence != self._sequence
            if not superseded:
                self.latest = report
        if superseded:
            log.debug("report #%d superseded, discarding result", sequence)
            future.set_result(None)
            return
        future.set_result(report)
        if self.on_result is not None:
            try:
                self.on_result(sequence, report)
            except Exception as exc:
                log.warning("report callback failed: %s", exc)
