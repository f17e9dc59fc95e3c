"""Reporting channel for writer lifecycle transitions and batch outcomes."""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, List, Optional

import orjson

from ingest_writer.models import (
    BatchOutcome,
    BatchReport,
    Report,
    StateReport,
    WorkerState,
)
from ingest_writer.telemetry.metrics import Metrics

logger = logging.getLogger(__name__)

Subscriber = Callable[[Report], None]


class Reporter:
    """
    Fan every report out to the log, the metrics, an optional JSON-lines
    file and any subscribers.

    Reports are emitted from the writer thread; subscribers run on that
    thread and must not block for long.
    """

    def __init__(
        self,
        metrics: Optional[Metrics] = None,
        report_path: Optional[Path] = None,
    ) -> None:
        """Create a reporter.

        Parameters
        ----------
        metrics:
            Metrics object receiving counters and commit timings. A fresh
            one is created when omitted.
        report_path:
            When set, every report is appended to this file as one JSON
            object per line.
        """
        self.metrics = metrics if metrics is not None else Metrics()
        self.report_path = Path(report_path) if report_path is not None else None
        self._subscribers: List[Subscriber] = []
        self._lock = threading.Lock()

    def subscribe(self, callback: Subscriber) -> None:
        with self._lock:
            self._subscribers.append(callback)

    def state(self, state: WorkerState, detail: Optional[str] = None) -> None:
        report = StateReport(state=state, detail=detail)
        if state is WorkerState.ERROR_CONNECT:
            logger.error("Writer %s: %s", state.value, detail)
        elif detail:
            logger.info("Writer %s: %s", state.value, detail)
        else:
            logger.info("Writer %s", state.value)
        self._publish(report)

    def batch(self, report: BatchReport) -> None:
        if report.outcome is BatchOutcome.COMMITTED:
            self.metrics.observe_commit(report.row_count, report.duration)
            logger.info(
                "Committed %d rows to %s in %.3f s",
                report.row_count, report.table, report.duration,
            )
        elif report.outcome is BatchOutcome.FAILED:
            self.metrics.observe_failure(report.row_count, report.error_type)
            logger.error(
                "Batch for %s (%d rows) failed: %s: %s",
                report.table, report.row_count, report.error_type, report.error,
            )
        else:
            self.metrics.inc("batches_discarded", 1)
            logger.warning(
                "Batch for %s (%d rows) discarded: %s",
                report.table, report.row_count, report.error,
            )
        self._publish(report)

    def _publish(self, report: Report) -> None:
        if self.report_path is not None:
            try:
                with self.report_path.open("ab") as fh:
                    fh.write(orjson.dumps(report.as_dict()) + b"\n")
            except OSError:
                logger.exception("Failed to append report to %s", self.report_path)

        with self._lock:
            subscribers = list(self._subscribers)
        for callback in subscribers:
            try:
                callback(report)
            except Exception:
                logger.exception("Report subscriber %r raised; ignoring", callback)
