"""Exception hierarchy for the ingestion writer."""

from __future__ import annotations


class IngestError(Exception):
    """Base exception for all ingestion writer errors."""


# ─── fatal: the worker cannot start ───────────────────────────────────────────
class StoreConnectError(IngestError):
    """The storage connection could not be established."""

    def __init__(self, location: str, reason: str) -> None:
        super().__init__(f"cannot connect to {location!r}: {reason}")
        self.location = location
        self.reason = reason


class BulkAppendUnsupportedError(IngestError):
    """The storage handle does not offer a bulk-append transaction."""


# ─── per batch: reported, then the worker moves on ────────────────────────────
class BatchError(IngestError):
    """A single batch could not be committed."""

    def __init__(self, message: str, table: str) -> None:
        super().__init__(message)
        self.table = table


class TableNotFoundError(BatchError):
    """Destination table does not exist in the store."""

    def __init__(self, table: str) -> None:
        super().__init__(f"table {table!r} does not exist", table)


class ColumnCountMismatchError(BatchError):
    """
    A row supplied a different number of values than the table has columns.

    Raised while appending, so the surrounding transaction is rolled back
    and none of the batch's rows become visible.
    """

    def __init__(self, table: str, row_index: int, expected: int, actual: int) -> None:
        super().__init__(
            f"row {row_index} for {table!r} has {actual} values, expected {expected}",
            table,
        )
        self.row_index = row_index
        self.expected = expected
        self.actual = actual


# ─── queue ────────────────────────────────────────────────────────────────────
class QueueClosedError(IngestError):
    """Enqueue attempted after the shutdown sentinel was placed."""


class QueueFullError(IngestError):
    """A bounded queue stayed full for the whole enqueue timeout."""


class QueueInterruptedError(IngestError):
    """The consumer's wait on the queue was interrupted from outside."""


class ConfigError(IngestError):
    """An environment setting could not be parsed."""
