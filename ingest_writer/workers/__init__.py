"""Writer thread implementations used by the ingestion session."""

from __future__ import annotations

from .writer import WriterWorker

__all__ = [
    "WriterWorker",
]
