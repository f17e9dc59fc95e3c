"""
Shared test fixtures and helpers for pytest.
"""

import os
import sys
import threading
import time
from pathlib import Path
from typing import Callable, Dict, List, Optional

import duckdb
import pytest

# Make the package importable without installing it
sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

from ingest_writer.models import BatchReport, StateReport, WorkerState  # noqa: E402
from ingest_writer.telemetry.reporting import Reporter  # noqa: E402


def wait_for(predicate: Callable[[], bool], timeout: float = 5.0, interval: float = 0.01) -> bool:
    """Poll ``predicate`` until it is true or ``timeout`` elapses."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()


# ============================================================================
# Report capture
# ============================================================================

class ReportCollector:
    """Subscriber that keeps every report in arrival order."""

    def __init__(self) -> None:
        self.reports: List[object] = []
        self._lock = threading.Lock()

    def __call__(self, report) -> None:
        with self._lock:
            self.reports.append(report)

    def batches(self) -> List[BatchReport]:
        with self._lock:
            return [r for r in self.reports if isinstance(r, BatchReport)]

    def states(self) -> List[WorkerState]:
        with self._lock:
            return [r.state for r in self.reports if isinstance(r, StateReport)]

    def last(self):
        with self._lock:
            return self.reports[-1] if self.reports else None


@pytest.fixture
def collector() -> ReportCollector:
    return ReportCollector()


@pytest.fixture
def reporter(collector: ReportCollector) -> Reporter:
    rep = Reporter()
    rep.subscribe(collector)
    return rep


# ============================================================================
# Fake storage handle
# ============================================================================

class FakeAppender:
    def __init__(self, store: "FakeStore", table: str) -> None:
        self.store = store
        self.table = table
        self._rows: List[tuple] = []
        self._committed = False
        self.rows_appended = 0

    def __enter__(self) -> "FakeAppender":
        self.store.record("begin", self.table)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        if not self._committed:
            self.store.record("rollback", self.table)

    def append_row(self, values) -> None:
        if self.store.block_append is not None:
            self.store.append_started.set()
            self.store.block_append.wait(5)
        if self.store.fail_append_for == self.table:
            raise RuntimeError(f"append to {self.table} failed")
        self._rows.append(tuple(values))
        self.rows_appended += 1

    def commit(self) -> None:
        self.store.tables.setdefault(self.table, []).extend(self._rows)
        self._committed = True
        self.store.record("commit", self.table)


class FakeStore:
    """In-memory StorageHandle that records which thread touched it."""

    def __init__(self, schemas: Dict[str, int], bulk: bool = True) -> None:
        self.schemas = dict(schemas)
        self.bulk = bulk
        self.tables: Dict[str, List[tuple]] = {}
        self.events: List[tuple] = []
        self.threads: set = set()
        self.closed = False
        self.fail_append_for: Optional[str] = None
        self.block_append: Optional[threading.Event] = None
        self.append_started = threading.Event()

    def record(self, event: str, table: str) -> None:
        self.events.append((event, table))

    def _touch(self) -> None:
        self.threads.add(threading.current_thread().name)

    def supports_bulk_append(self) -> bool:
        self._touch()
        return self.bulk

    def column_count(self, table: str) -> Optional[int]:
        self._touch()
        return self.schemas.get(table)

    def bulk_append(self, table: str) -> FakeAppender:
        self._touch()
        return FakeAppender(self, table)

    def close(self) -> None:
        self._touch()
        self.closed = True


@pytest.fixture
def fake_store() -> FakeStore:
    return FakeStore({"events": 2, "t": 2, "metrics": 3})


# ============================================================================
# DuckDB database on disk
# ============================================================================

@pytest.fixture
def duckdb_path(tmp_path: Path) -> str:
    """A DuckDB file with the tables used by the scenarios."""
    path = str(tmp_path / "ingest.duckdb")
    conn = duckdb.connect(path)
    try:
        conn.execute("CREATE TABLE events (id INTEGER, name VARCHAR)")
        conn.execute("CREATE TABLE t (a INTEGER, b INTEGER)")
        conn.execute("CREATE SCHEMA staging")
        conn.execute("CREATE TABLE staging.readings (sensor VARCHAR, value DOUBLE, note VARCHAR)")
    finally:
        conn.close()
    return path


def fetch_all(path: str, query: str) -> List[tuple]:
    conn = duckdb.connect(path)
    try:
        return conn.execute(query).fetchall()
    finally:
        conn.close()
