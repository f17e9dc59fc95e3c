"""Top level wiring of the work queue, reporter and writer thread."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Optional, Sequence

from ingest_writer.config import Config, load_config
from ingest_writer.models import Batch
from ingest_writer.storage import ConnectFactory, connect as default_connect
from ingest_writer.telemetry.metrics import Metrics
from ingest_writer.telemetry.reporting import Reporter
from ingest_writer.work_queue import WorkQueue
from ingest_writer.workers.writer import WriterWorker

logger = logging.getLogger(__name__)


@dataclass
class IngestSession:
    """Handles exposed to producers while a session is open."""
    queue: WorkQueue
    worker: WriterWorker
    reporter: Reporter

    @property
    def metrics(self) -> Metrics:
        return self.reporter.metrics

    def submit(self, table: str, rows: Sequence[Sequence[Any]], timeout: Optional[float] = None) -> Batch:
        """Build a :class:`Batch` from ``rows`` and enqueue it."""
        batch = Batch(table=table, rows=rows)
        self.queue.enqueue(batch, timeout=timeout)
        return batch


@contextmanager
def ingest_session(
    config: Config | None = None,
    *,
    connect: Optional[ConnectFactory] = None,
    reporter: Optional[Reporter] = None,
) -> Iterator[IngestSession]:
    """Run a writer for the duration of the ``with`` block.

    On exit the writer is asked to stop, everything enqueued inside the
    block is drained, and a metrics summary is logged.

    Parameters
    ----------
    config:
        Optional :class:`Config` instance. If ``None``, environment variables
        are loaded via :func:`load_config`.
    connect:
        Storage factory; defaults to :func:`ingest_writer.storage.connect`.
    reporter:
        Reporting channel; one is built from ``config.report_path`` if omitted.
    """
    if config is None:
        config = load_config()
    if reporter is None:
        reporter = Reporter(report_path=config.report_path)

    queue = WorkQueue(maxsize=config.queue_maxsize, put_timeout=config.enqueue_timeout)
    worker = WriterWorker(
        queue,
        config.db_location,
        connect=connect or default_connect,
        reporter=reporter,
        poll_interval=config.poll_interval,
    )
    worker.start()
    try:
        yield IngestSession(queue=queue, worker=worker, reporter=reporter)
    finally:
        worker.request_stop()
        if not worker.await_stopped(config.stop_timeout):
            logger.warning(
                "Writer still %s after %.1f s; %d item(s) left in queue",
                worker.state.value, config.stop_timeout, queue.qsize(),
            )
        txt, _ = reporter.metrics.summary()
        logger.info("\n%s", txt)
