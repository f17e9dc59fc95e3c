from __future__ import annotations

import logging
import os


def configure_logging(level: str | None = None) -> None:
    """
    Configure root logging once. Level can be given explicitly or taken from
    INGEST_LOG_LEVEL, then LOG_LEVEL (default INFO). Thread names are part of
    the format since producers and the writer log from different threads.
    """
    if level is None:
        level = os.getenv("INGEST_LOG_LEVEL") or os.getenv("LOG_LEVEL", "INFO")
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s [%(threadName)s] %(name)s:%(lineno)d | %(message)s",
    )
