"""
Single writer thread that owns the storage handle, drains the work queue
and commits every batch through one bulk-append transaction.
"""
from __future__ import annotations

import logging
import threading
from time import perf_counter
from typing import Optional

from ingest_writer.constants import DEFAULT_POLL_INTERVAL, MIN_POLL_INTERVAL, Shutdown
from ingest_writer.exceptions import (
    BulkAppendUnsupportedError,
    ColumnCountMismatchError,
    QueueInterruptedError,
    TableNotFoundError,
)
from ingest_writer.models import Batch, BatchOutcome, BatchReport, WorkerState
from ingest_writer.storage import ConnectFactory, StorageHandle, connect
from ingest_writer.telemetry.reporting import Reporter
from ingest_writer.work_queue import WorkQueue

logger = logging.getLogger(__name__)


class WriterWorker:
    """
    Consume batches from ``queue`` and append them to the store at ``location``.

    States move ``STARTING → CONNECTED → RUNNING → DRAINING → STOPPED``; a
    failed connection ends in ``ERROR_CONNECT`` instead. Batches are
    committed strictly in dequeue order. A bad batch is reported and
    skipped; it never stops the worker.

    The storage handle is created, used and closed on the worker thread
    only, so it needs no locking.
    """

    def __init__(
        self,
        queue: WorkQueue,
        location: str,
        *,
        connect: ConnectFactory = connect,
        reporter: Optional[Reporter] = None,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        name: str = "ingest-writer",
    ) -> None:
        """Create a worker; call :meth:`start` to launch its thread.

        Parameters
        ----------
        queue:
            Work queue shared with the producers.
        location:
            Store location handed to ``connect`` (DuckDB path or PostgreSQL DSN).
        connect:
            Factory returning a :class:`StorageHandle` for ``location``.
        reporter:
            Reporting channel for state transitions and batch outcomes.
        poll_interval:
            Seconds each dequeue waits before the stop flag is re-checked.
        name:
            Thread name, shown in log lines.
        """
        self.queue = queue
        self.location = location
        self._connect = connect
        self.reporter = reporter if reporter is not None else Reporter()
        self.poll_interval = max(MIN_POLL_INTERVAL, poll_interval)
        self.name = name

        self._state = WorkerState.STARTING
        self._state_lock = threading.Lock()
        self._stop_requested = threading.Event()
        self._stopped = threading.Event()
        self._thread = threading.Thread(target=self._run, name=name, daemon=True)

    # ------------------------------------------------------------------ #
    # Control surface (any thread)                                       #
    # ------------------------------------------------------------------ #
    def start(self) -> None:
        self._thread.start()

    def request_stop(self) -> None:
        """Ask the worker to finish queued work and stop; returns immediately.

        Batches enqueued before this call are still committed. The shutdown
        sentinel is queued only on the first call.
        """
        # close first: once the flag is visible no batch can slip in behind it
        if self.queue.close():
            logger.info("%s: stop requested; %d item(s) queued including sentinel",
                        self.name, self.queue.qsize())
        self._stop_requested.set()

    def interrupt(self) -> None:
        """Abort the wait on the queue and stop without draining it."""
        self._stop_requested.set()
        self.queue.interrupt()

    def await_stopped(self, timeout: Optional[float] = None) -> bool:
        """Block until the worker reaches a terminal state.

        Returns ``False`` if ``timeout`` elapsed first.
        """
        return self._stopped.wait(timeout)

    def is_alive(self) -> bool:
        return self._thread.is_alive()

    @property
    def state(self) -> WorkerState:
        with self._state_lock:
            return self._state

    # ------------------------------------------------------------------ #
    # Worker thread                                                      #
    # ------------------------------------------------------------------ #
    def _set_state(self, state: WorkerState, detail: Optional[str] = None) -> None:
        with self._state_lock:
            self._state = state
        self.reporter.state(state, detail)
        if state.terminal:
            self._stopped.set()

    def _run(self) -> None:
        self._set_state(WorkerState.STARTING, self.location)
        handle = self._open_handle()
        if handle is None:
            return

        try:
            self._set_state(WorkerState.CONNECTED)
            self._set_state(WorkerState.RUNNING)
            self._drain_loop(handle)
        except Exception:
            logger.exception("%s: writer loop crashed; shutting down", self.name)
            self._discard_pending("writer loop crashed before commit")
        finally:
            self._set_state(WorkerState.DRAINING)
            try:
                handle.close()
            except Exception:
                logger.exception("%s: failed to close storage handle", self.name)
            _, totals = self.reporter.metrics.summary()
            self._set_state(
                WorkerState.STOPPED,
                f"committed={totals['batches_committed']} failed={totals['batches_failed']} "
                f"discarded={totals['batches_discarded']}",
            )

    def _open_handle(self) -> Optional[StorageHandle]:
        start = perf_counter()
        handle: Optional[StorageHandle] = None
        try:
            handle = self._connect(self.location)
            if not handle.supports_bulk_append():
                raise BulkAppendUnsupportedError(
                    f"{type(handle).__name__} has no bulk-append capability"
                )
        except Exception as exc:
            self.reporter.metrics.record_error(exc)
            if handle is not None:
                try:
                    handle.close()
                except Exception:
                    logger.exception("%s: failed to close rejected handle", self.name)
            # nobody will ever drain the queue, so producers must fail fast
            self._stop_requested.set()
            self._discard_pending(f"writer could not connect: {type(exc).__name__}: {exc}")
            self._set_state(WorkerState.ERROR_CONNECT, f"{type(exc).__name__}: {exc}")
            return None
        self.reporter.metrics.observe_stage("connect", perf_counter() - start)
        return handle

    def _drain_loop(self, handle: StorageHandle) -> None:
        while True:
            try:
                item = self.queue.try_dequeue(self.poll_interval)
            except QueueInterruptedError:
                logger.warning("%s: interrupted while waiting for batches", self.name)
                self._discard_pending("writer interrupted before commit")
                return

            if item is None:
                if self._stop_requested.is_set() and self.queue.is_empty():
                    return
                continue

            if isinstance(item, Shutdown):
                logger.info("%s: shutdown sentinel received", self.name)
                return

            self._commit_batch(handle, item)

    def _discard_pending(self, reason: str) -> None:
        """Close the queue and report every batch still in it as discarded."""
        self.queue.close()
        for batch in self.queue.drain_remaining():
            self.reporter.batch(BatchReport(
                table=batch.table,
                row_count=batch.row_count,
                outcome=BatchOutcome.DISCARDED,
                error=reason,
            ))

    def _commit_batch(self, handle: StorageHandle, batch: Batch) -> None:
        start = perf_counter()
        try:
            expected = handle.column_count(batch.table)
            if expected is None:
                raise TableNotFoundError(batch.table)

            appended = 0
            if batch.rows:
                with handle.bulk_append(batch.table) as appender:
                    for idx, row in enumerate(batch.rows):
                        if len(row) != expected:
                            raise ColumnCountMismatchError(batch.table, idx, expected, len(row))
                        appender.append_row(row)
                    appender.commit()
                appended = appender.rows_appended
        except Exception as exc:
            self.reporter.batch(BatchReport(
                table=batch.table,
                row_count=batch.row_count,
                outcome=BatchOutcome.FAILED,
                error=str(exc),
                error_type=type(exc).__name__,
                duration=perf_counter() - start,
            ))
            return

        self.reporter.batch(BatchReport(
            table=batch.table,
            row_count=appended,
            outcome=BatchOutcome.COMMITTED,
            duration=perf_counter() - start,
        ))

    def __repr__(self) -> str:
        return f"<WriterWorker name={self.name!r} state={self.state.value}>"
