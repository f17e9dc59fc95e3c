"""Storage adapters and the connection factory used by the writer."""

from __future__ import annotations

import logging
from typing import Callable

from ingest_writer.exceptions import StoreConnectError

from .base import BulkAppender, StorageHandle, quote_table, split_table

logger = logging.getLogger(__name__)

ConnectFactory = Callable[[str], StorageHandle]

_POSTGRES_SCHEMES = ("postgresql://", "postgres://")


def is_postgres_location(location: str) -> bool:
    return location.lower().startswith(_POSTGRES_SCHEMES)


def connect(location: str) -> StorageHandle:
    """Open a storage handle for ``location``.

    PostgreSQL DSNs (``postgresql://`` or ``postgres://``) open a
    :class:`PostgresStore`; anything else is treated as a DuckDB database
    path, ``:memory:`` included.

    Raises
    ------
    StoreConnectError
        The driver refused the connection.
    """
    if is_postgres_location(location):
        import psycopg  # type: ignore

        from .postgres_store import PostgresStore

        try:
            return PostgresStore.open(location)
        except psycopg.Error as exc:
            raise StoreConnectError("postgresql", str(exc)) from exc

    import duckdb

    from .duckdb_store import DuckDBStore

    try:
        return DuckDBStore.open(location)
    except duckdb.Error as exc:
        raise StoreConnectError(location, str(exc)) from exc


__all__ = [
    "BulkAppender",
    "ConnectFactory",
    "StorageHandle",
    "connect",
    "is_postgres_location",
    "quote_table",
    "split_table",
]
