from __future__ import annotations

from typing import Final


# ──────────────────────────────────────────────────────────────────────────────
# Sentinel used to terminate the writer
# ──────────────────────────────────────────────────────────────────────────────
class Shutdown:
    """In-band stop signal carried through the work queue next to batches."""

    __slots__ = ()

    def __repr__(self) -> str:
        return "SHUTDOWN"


SHUTDOWN: Final[Shutdown] = Shutdown()

# ──────────────────────────────────────────────────────────────────────────────
# Defaults
# ──────────────────────────────────────────────────────────────────────────────
DEFAULT_POLL_INTERVAL: Final[float] = 1.0
MIN_POLL_INTERVAL: Final[float] = 0.05
DEFAULT_ENQUEUE_TIMEOUT: Final[float] = 30.0
DEFAULT_STOP_TIMEOUT: Final[float] = 60.0
DEFAULT_DB_LOCATION: Final[str] = "ingest.duckdb"
