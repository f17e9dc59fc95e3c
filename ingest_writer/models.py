from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, Optional, Sequence, Tuple, Union

from ingest_writer.constants import Shutdown

Row = Tuple[Any, ...]


@dataclass(frozen=True)
class Batch:
    """Rows destined for one table, committed together or not at all.

    Parameters
    ----------
    table:
        Destination table name, optionally schema-qualified (``schema.table``).
    rows:
        Ordered rows; each row holds column values in table column order.
        Lists are frozen into tuples so a batch cannot change after it has
        been handed to the queue.
    """
    table: str
    rows: Tuple[Row, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        if not isinstance(self.table, str) or not self.table.strip():
            raise ValueError("Batch.table must be a non-empty string")
        object.__setattr__(self, "rows", _freeze_rows(self.rows))

    @property
    def row_count(self) -> int:
        return len(self.rows)


def _freeze_rows(rows: Iterable[Sequence[Any]]) -> Tuple[Row, ...]:
    frozen = []
    for row in rows:
        if isinstance(row, (str, bytes)):
            raise TypeError("each row must be a sequence of column values")
        frozen.append(tuple(row))
    return tuple(frozen)


QueueItem = Union[Batch, Shutdown]


class WorkerState(str, Enum):
    STARTING = "STARTING"
    CONNECTED = "CONNECTED"
    RUNNING = "RUNNING"
    DRAINING = "DRAINING"
    STOPPED = "STOPPED"
    ERROR_CONNECT = "ERROR_CONNECT"

    @property
    def terminal(self) -> bool:
        return self in (WorkerState.STOPPED, WorkerState.ERROR_CONNECT)


class BatchOutcome(str, Enum):
    COMMITTED = "committed"
    FAILED = "failed"
    DISCARDED = "discarded"


@dataclass(frozen=True)
class BatchReport:
    table: str
    row_count: int
    outcome: BatchOutcome
    error: Optional[str] = None
    error_type: Optional[str] = None
    duration: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        return {
            "event": "batch",
            "table": self.table,
            "rows": self.row_count,
            "outcome": self.outcome.value,
            "error": self.error,
            "error_type": self.error_type,
            "duration": round(self.duration, 6),
        }


@dataclass(frozen=True)
class StateReport:
    state: WorkerState
    detail: Optional[str] = None

    def as_dict(self) -> dict[str, Any]:
        return {"event": "state", "state": self.state.value, "detail": self.detail}


Report = Union[BatchReport, StateReport]
