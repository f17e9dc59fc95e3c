"""
DuckDB store. Rows are pivoted into an Arrow table and inserted with a
single ``INSERT ... SELECT`` per batch.
"""
from __future__ import annotations

import logging
import uuid
from types import TracebackType
from typing import Any, List, Optional, Sequence, Tuple, Type

import duckdb
import pyarrow as pa

from .base import quote_identifier, quote_table, split_table

logger = logging.getLogger(__name__)

_COLUMN_COUNT_SQL = """
    SELECT count(*)
      FROM information_schema.columns
     WHERE table_catalog = current_database()
       AND table_schema = {schema}
       AND table_name = ?
"""


def rows_to_arrow(rows: Sequence[Tuple[Any, ...]]) -> pa.Table:
    """Pivot row tuples into a column-oriented :class:`pyarrow.Table`.

    Columns are named by position (``c0``, ``c1``, ...); the insert is
    positional so names never reach the destination table.
    """
    columns = list(zip(*rows))
    return pa.table({f"c{i}": pa.array(list(col)) for i, col in enumerate(columns)})


class DuckDBAppender:
    """Buffer rows for one table and insert them in one transaction."""

    def __init__(self, conn: duckdb.DuckDBPyConnection, table: str) -> None:
        self._conn = conn
        self.table = table
        self._rows: List[Tuple[Any, ...]] = []
        self._committed = False
        self.rows_appended = 0

    def __enter__(self) -> "DuckDBAppender":
        self._conn.begin()
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        if self._committed:
            return
        try:
            self._conn.rollback()
        except duckdb.Error as exc:
            # a failed COMMIT may already have ended the transaction
            logger.debug("Rollback for %s after abort: %s", self.table, exc)

    def append_row(self, values: Sequence[Any]) -> None:
        self._rows.append(tuple(values))
        self.rows_appended += 1

    def commit(self) -> None:
        if self._rows:
            view = f"_ingest_{uuid.uuid4().hex}"
            self._conn.register(view, rows_to_arrow(self._rows))
            try:
                self._conn.execute(
                    f"INSERT INTO {quote_table(self.table)} SELECT * FROM {quote_identifier(view)}"
                )
            finally:
                self._conn.unregister(view)
        self._conn.commit()
        self._committed = True
        self._rows.clear()


class DuckDBStore:
    """StorageHandle backed by a DuckDB database file (or ``:memory:``)."""

    def __init__(self, conn: duckdb.DuckDBPyConnection, location: str = ":memory:") -> None:
        self._conn = conn
        self.location = location

    @classmethod
    def open(cls, location: str) -> "DuckDBStore":
        return cls(duckdb.connect(location), location)

    @property
    def connection(self) -> duckdb.DuckDBPyConnection:
        return self._conn

    def supports_bulk_append(self) -> bool:
        # a closed connection raises on any statement
        try:
            self._conn.execute("SELECT 1").fetchone()
        except duckdb.Error:
            return False
        return True

    def column_count(self, table: str) -> Optional[int]:
        schema, name = split_table(table)
        if schema is None:
            query = _COLUMN_COUNT_SQL.format(schema="current_schema()")
            params: List[Any] = [name]
        else:
            query = _COLUMN_COUNT_SQL.format(schema="?")
            params = [schema, name]
        row = self._conn.execute(query, params).fetchone()
        count = int(row[0]) if row else 0
        return count or None

    def bulk_append(self, table: str) -> DuckDBAppender:
        return DuckDBAppender(self._conn, table)

    def close(self) -> None:
        self._conn.close()

    def __repr__(self) -> str:
        return f"<DuckDBStore location={self.location!r}>"
