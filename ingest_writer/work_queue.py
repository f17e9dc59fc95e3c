"""Thread-safe FIFO shared by producer threads and the single writer."""

from __future__ import annotations

import logging
import threading
from collections import deque
from time import monotonic
from typing import Deque, List, Optional

from ingest_writer.constants import DEFAULT_ENQUEUE_TIMEOUT, SHUTDOWN
from ingest_writer.exceptions import (
    QueueClosedError,
    QueueFullError,
    QueueInterruptedError,
)
from ingest_writer.models import Batch, QueueItem

logger = logging.getLogger(__name__)


class WorkQueue:
    """
    FIFO of :class:`Batch` items plus one in-band shutdown sentinel.

    Capacity applies to batches only. The sentinel is always accepted so a
    full queue can never keep the writer from learning it should stop.
    When the queue is bounded and full, producers wait up to ``put_timeout``
    seconds and then get :class:`QueueFullError`.
    """

    def __init__(
        self,
        maxsize: int = 0,
        put_timeout: Optional[float] = DEFAULT_ENQUEUE_TIMEOUT,
    ) -> None:
        """Create a new queue.

        Parameters
        ----------
        maxsize:
            Maximum number of pending batches. ``0`` or less means unbounded.
        put_timeout:
            Default number of seconds :meth:`enqueue` waits for space on a
            full queue. ``None`` waits indefinitely.
        """
        self._maxsize = max(0, maxsize)
        self._put_timeout = put_timeout
        self._items: Deque[QueueItem] = deque()
        self._lock = threading.Lock()
        self._not_empty = threading.Condition(self._lock)
        self._not_full = threading.Condition(self._lock)
        self._accepting = True
        self._interrupted = False
        self._throttled = False
        self._high_water = 0

    # ------------------------------------------------------------------ #
    # Producer side                                                      #
    # ------------------------------------------------------------------ #
    def enqueue(self, batch: Batch, timeout: Optional[float] = None) -> None:
        """Append ``batch`` at the tail.

        Parameters
        ----------
        batch:
            The batch to append.
        timeout:
            Seconds to wait for space on a bounded queue. Defaults to the
            ``put_timeout`` given at construction.

        Raises
        ------
        QueueClosedError
            The shutdown sentinel has already been placed.
        QueueFullError
            The queue stayed full for the whole timeout.
        """
        if not isinstance(batch, Batch):
            raise TypeError(f"expected Batch, got {type(batch).__name__}")
        if timeout is None:
            timeout = self._put_timeout

        with self._not_full:
            self._check_accepting()
            if self._maxsize:
                deadline = None if timeout is None else monotonic() + timeout
                while self._batch_count() >= self._maxsize:
                    if not self._throttled:
                        self._throttled = True
                        logger.warning(
                            "Backpressure: work queue full (%d batches); producers waiting",
                            self._maxsize,
                        )
                    remaining = None if deadline is None else deadline - monotonic()
                    if remaining is not None and remaining <= 0:
                        raise QueueFullError(
                            f"work queue stayed full for {timeout:.1f}s "
                            f"(maxsize={self._maxsize})"
                        )
                    self._not_full.wait(remaining)
                    self._check_accepting()

            self._items.append(batch)
            self._high_water = max(self._high_water, len(self._items))
            self._not_empty.notify()

    def close(self) -> bool:
        """Stop accepting batches and place the shutdown sentinel.

        Returns ``True`` the first time and ``False`` on every later call;
        the sentinel is queued at most once.
        """
        with self._lock:
            if not self._accepting:
                return False
            self._accepting = False
            self._items.append(SHUTDOWN)
            self._not_empty.notify_all()
            # producers blocked on a full queue must see the closed state
            self._not_full.notify_all()
            return True

    # ------------------------------------------------------------------ #
    # Consumer side                                                      #
    # ------------------------------------------------------------------ #
    def try_dequeue(self, timeout: float) -> Optional[QueueItem]:
        """Remove and return the head item, or ``None`` after ``timeout``.

        Raises
        ------
        QueueInterruptedError
            :meth:`interrupt` was called before or during the wait.
        """
        deadline = monotonic() + max(0.0, timeout)
        with self._not_empty:
            while not self._items:
                if self._interrupted:
                    raise QueueInterruptedError("wait on work queue interrupted")
                remaining = deadline - monotonic()
                if remaining <= 0:
                    return None
                self._not_empty.wait(remaining)
            if self._interrupted:
                raise QueueInterruptedError("wait on work queue interrupted")
            item = self._items.popleft()
            self._release_pressure()
            return item

    def interrupt(self) -> None:
        """Wake the consumer and make every further dequeue raise."""
        with self._lock:
            self._interrupted = True
            self._not_empty.notify_all()

    def drain_remaining(self) -> List[Batch]:
        """Pop every pending batch, dropping the sentinel if present."""
        with self._lock:
            pending = [item for item in self._items if isinstance(item, Batch)]
            self._items.clear()
            self._release_pressure()
            return pending

    # ------------------------------------------------------------------ #
    # Introspection                                                      #
    # ------------------------------------------------------------------ #
    def is_empty(self) -> bool:
        """Best-effort hint; a producer may enqueue right after this returns."""
        with self._lock:
            return not self._items

    def qsize(self) -> int:
        with self._lock:
            return len(self._items)

    @property
    def accepting(self) -> bool:
        with self._lock:
            return self._accepting

    @property
    def maxsize(self) -> int:
        return self._maxsize

    @property
    def high_water(self) -> int:
        """Largest number of items observed in the queue at once."""
        with self._lock:
            return self._high_water

    # ------------------------------------------------------------------ #
    # Internals (caller holds the lock)                                  #
    # ------------------------------------------------------------------ #
    def _check_accepting(self) -> None:
        if not self._accepting:
            raise QueueClosedError("work queue is closed; shutdown already requested")

    def _batch_count(self) -> int:
        # the sentinel, once queued, is the last item
        if self._items and not self._accepting and self._items[-1] is SHUTDOWN:
            return len(self._items) - 1
        return len(self._items)

    def _release_pressure(self) -> None:
        if self._maxsize and self._batch_count() < self._maxsize:
            if self._throttled:
                self._throttled = False
                logger.info("Backpressure: work queue has room again; releasing producers")
            self._not_full.notify()
