"""Environment-based configuration loading for the ingestion writer."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, TypeVar

from dotenv import load_dotenv

from ingest_writer.constants import (
    DEFAULT_DB_LOCATION,
    DEFAULT_ENQUEUE_TIMEOUT,
    DEFAULT_POLL_INTERVAL,
    DEFAULT_STOP_TIMEOUT,
    MIN_POLL_INTERVAL,
)
from ingest_writer.exceptions import ConfigError

T = TypeVar("T")


@dataclass
class Config:
    """Configuration values derived from environment variables."""
    # Store
    db_location: str = DEFAULT_DB_LOCATION

    # Writer loop
    poll_interval: float = DEFAULT_POLL_INTERVAL
    stop_timeout: float = DEFAULT_STOP_TIMEOUT

    # Queue
    queue_maxsize: int = 0  # 0 == unbounded
    enqueue_timeout: Optional[float] = DEFAULT_ENQUEUE_TIMEOUT

    # Reporting
    report_path: Optional[Path] = None


def _env(name: str, default: str, parse: Callable[[str], T]) -> T:
    raw = os.getenv(name, default)
    try:
        return parse(raw)
    except ValueError as exc:
        raise ConfigError(f"{name}={raw!r} is not valid: {exc}") from exc


def _optional_timeout(raw: str) -> Optional[float]:
    # "none" / empty / negative mean "wait forever"
    if raw.strip().lower() in ("", "none"):
        return None
    value = float(raw)
    return None if value < 0 else value


def load_config(dotenv: bool = True) -> Config:
    """Load environment variables and build a :class:`Config` instance.

    Parameters
    ----------
    dotenv:
        When ``True`` (default), a ``.env`` file is loaded first. Variables
        already set in the environment win over the file.
    """
    if dotenv:
        load_dotenv()

    poll_interval = _env("INGEST_POLL_INTERVAL", str(DEFAULT_POLL_INTERVAL), float)
    queue_maxsize = _env("INGEST_QUEUE_MAXSIZE", "0", int)
    stop_timeout = _env("INGEST_STOP_TIMEOUT", str(DEFAULT_STOP_TIMEOUT), float)
    report_path_env = os.getenv("INGEST_REPORT_PATH", "").strip()

    return Config(
        db_location=os.getenv("INGEST_DB_LOCATION", DEFAULT_DB_LOCATION),
        poll_interval=max(MIN_POLL_INTERVAL, poll_interval),
        stop_timeout=max(0.0, stop_timeout),
        queue_maxsize=max(0, queue_maxsize),
        enqueue_timeout=_env(
            "INGEST_ENQUEUE_TIMEOUT", str(DEFAULT_ENQUEUE_TIMEOUT), _optional_timeout
        ),
        report_path=Path(report_path_env) if report_path_env else None,
    )
