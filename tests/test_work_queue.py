"""
Unit tests for the work queue and the Batch model.
"""

import threading
import time

import pytest

from ingest_writer.constants import SHUTDOWN
from ingest_writer.exceptions import (
    QueueClosedError,
    QueueFullError,
    QueueInterruptedError,
)
from ingest_writer.models import Batch
from ingest_writer.work_queue import WorkQueue


class TestBatch:
    """Tests for the Batch dataclass."""

    def test_rows_are_frozen(self):
        """Lists handed in by producers become tuples."""
        rows = [[1, "a"], [2, "b"]]
        batch = Batch("events", rows)
        rows[0].append("mutated")

        assert batch.rows == ((1, "a"), (2, "b"))
        assert batch.row_count == 2

    def test_empty_rows_are_legal(self):
        batch = Batch("events")
        assert batch.rows == ()
        assert batch.row_count == 0

    @pytest.mark.parametrize("table", ["", "   ", None])
    def test_rejects_blank_table(self, table):
        with pytest.raises(ValueError):
            Batch(table, [[1]])

    def test_rejects_string_rows(self):
        with pytest.raises(TypeError):
            Batch("events", ["abc"])


class TestWorkQueueBasics:
    """FIFO behavior and the consumer side."""

    def test_fifo_order(self):
        q = WorkQueue()
        batches = [Batch("events", [[i, str(i)]]) for i in range(5)]
        for b in batches:
            q.enqueue(b)

        out = [q.try_dequeue(0.1) for _ in range(5)]

        assert out == batches
        assert q.is_empty()

    def test_try_dequeue_times_out_with_none(self):
        q = WorkQueue()
        start = time.monotonic()

        assert q.try_dequeue(0.1) is None
        assert time.monotonic() - start >= 0.09

    def test_try_dequeue_wakes_on_enqueue(self):
        q = WorkQueue()
        batch = Batch("events", [[1, "a"]])
        timer = threading.Timer(0.05, q.enqueue, args=(batch,))
        timer.start()
        try:
            start = time.monotonic()
            assert q.try_dequeue(5.0) is batch
            assert time.monotonic() - start < 2.0
        finally:
            timer.cancel()

    def test_rejects_non_batch(self):
        q = WorkQueue()
        with pytest.raises(TypeError):
            q.enqueue(("events", [[1]]))

    def test_high_water_mark(self):
        q = WorkQueue()
        for i in range(3):
            q.enqueue(Batch("events", [[i, "x"]]))
        q.try_dequeue(0.1)
        q.enqueue(Batch("events", [[9, "y"]]))

        assert q.high_water == 3
        assert q.qsize() == 3


class TestWorkQueueShutdown:
    """Sentinel placement and closing."""

    def test_close_places_sentinel_once(self):
        q = WorkQueue()
        q.enqueue(Batch("events", [[1, "a"]]))

        assert q.close() is True
        assert q.close() is False
        assert q.qsize() == 2
        assert not q.accepting

        assert isinstance(q.try_dequeue(0.1), Batch)
        assert q.try_dequeue(0.1) is SHUTDOWN
        assert q.try_dequeue(0.05) is None

    def test_enqueue_after_close_is_rejected(self):
        q = WorkQueue()
        q.close()
        with pytest.raises(QueueClosedError):
            q.enqueue(Batch("events", [[1, "a"]]))

    def test_sentinel_ignores_capacity(self):
        """A full bounded queue still accepts the sentinel without blocking."""
        q = WorkQueue(maxsize=1, put_timeout=0.05)
        q.enqueue(Batch("events", [[1, "a"]]))

        assert q.close() is True
        assert q.qsize() == 2

    def test_drain_remaining_drops_sentinel(self):
        q = WorkQueue()
        a = Batch("events", [[1, "a"]])
        b = Batch("events", [[2, "b"]])
        q.enqueue(a)
        q.enqueue(b)
        q.close()

        assert q.drain_remaining() == [a, b]
        assert q.is_empty()


class TestWorkQueueBackpressure:
    """Bounded capacity semantics."""

    def test_full_queue_times_out(self):
        q = WorkQueue(maxsize=1)
        q.enqueue(Batch("events", [[1, "a"]]))

        start = time.monotonic()
        with pytest.raises(QueueFullError):
            q.enqueue(Batch("events", [[2, "b"]]), timeout=0.1)
        assert time.monotonic() - start >= 0.09

    def test_default_put_timeout_applies(self):
        q = WorkQueue(maxsize=1, put_timeout=0.05)
        q.enqueue(Batch("events", [[1, "a"]]))
        with pytest.raises(QueueFullError):
            q.enqueue(Batch("events", [[2, "b"]]))

    def test_blocked_producer_released_by_consumer(self):
        q = WorkQueue(maxsize=1, put_timeout=5.0)
        first = Batch("events", [[1, "a"]])
        second = Batch("events", [[2, "b"]])
        q.enqueue(first)

        done = threading.Event()

        def producer():
            q.enqueue(second)
            done.set()

        t = threading.Thread(target=producer)
        t.start()
        time.sleep(0.05)
        assert not done.is_set()

        assert q.try_dequeue(0.1) is first
        assert done.wait(2.0)
        assert q.try_dequeue(0.1) is second
        t.join(2.0)

    def test_blocked_producer_fails_when_closed(self):
        q = WorkQueue(maxsize=1, put_timeout=5.0)
        q.enqueue(Batch("events", [[1, "a"]]))
        errors = []

        def producer():
            try:
                q.enqueue(Batch("events", [[2, "b"]]))
            except QueueClosedError as exc:
                errors.append(exc)

        t = threading.Thread(target=producer)
        t.start()
        time.sleep(0.05)
        q.close()
        t.join(2.0)

        assert len(errors) == 1


class TestWorkQueueInterrupt:
    """External interruption of the consumer's wait."""

    def test_interrupt_wakes_waiting_consumer(self):
        q = WorkQueue()
        raised = []

        def consumer():
            try:
                q.try_dequeue(10.0)
            except QueueInterruptedError:
                raised.append(time.monotonic())

        t = threading.Thread(target=consumer)
        t.start()
        time.sleep(0.05)
        q.interrupt()
        t.join(2.0)

        assert not t.is_alive()
        assert len(raised) == 1

    def test_interrupt_wins_over_pending_items(self):
        q = WorkQueue()
        q.enqueue(Batch("events", [[1, "a"]]))
        q.interrupt()

        with pytest.raises(QueueInterruptedError):
            q.try_dequeue(0.1)
        assert q.qsize() == 1
