"""Public package exports for the :mod:`ingest_writer` library."""

from __future__ import annotations

from ingest_writer.config import Config, load_config
from ingest_writer.constants import SHUTDOWN, Shutdown
from ingest_writer.models import (
    Batch,
    BatchOutcome,
    BatchReport,
    StateReport,
    WorkerState,
)
from ingest_writer.pipeline import IngestSession, ingest_session
from ingest_writer.telemetry import Metrics, Reporter
from ingest_writer.work_queue import WorkQueue
from ingest_writer.workers import WriterWorker

__all__ = [
    "Batch",
    "BatchOutcome",
    "BatchReport",
    "Config",
    "IngestSession",
    "Metrics",
    "Reporter",
    "SHUTDOWN",
    "Shutdown",
    "StateReport",
    "WorkQueue",
    "WorkerState",
    "WriterWorker",
    "ingest_session",
    "load_config",
]
