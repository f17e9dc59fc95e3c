"""
PostgreSQL store using ``COPY … FROM STDIN`` inside an explicit transaction,
one transaction per batch.
"""
from __future__ import annotations

from contextlib import ExitStack
from types import TracebackType
from typing import Any, Optional, Sequence, Type

import psycopg  # type: ignore
from psycopg import sql  # type: ignore

from .base import split_table

# --------------------------------------------------------------------------- #
# SQL templates                                                               #
# --------------------------------------------------------------------------- #
_COLUMN_COUNT_SQL = """
    SELECT count(*)
      FROM information_schema.columns
     WHERE table_schema = coalesce(%s::text, current_schema())
       AND table_name = %s
"""


def _table_identifier(table: str) -> sql.Identifier:
    schema, name = split_table(table)
    if schema is None:
        return sql.Identifier(name)
    return sql.Identifier(schema, name)


class PostgresAppender:
    """
    COPY stream for one table wrapped in ``conn.transaction()``.

    The connection runs in autocommit mode; the transaction block is the
    only thing that makes the rows durable.
    """

    def __init__(self, conn: psycopg.Connection, table: str) -> None:
        self._conn = conn
        self.table = table
        self._stack: Optional[ExitStack] = None
        self._copy: Any = None
        self._committed = False
        self.rows_appended = 0

    def __enter__(self) -> "PostgresAppender":
        stack = ExitStack()
        try:
            stack.enter_context(self._conn.transaction())
            cur = stack.enter_context(self._conn.cursor())
            self._copy = stack.enter_context(
                cur.copy(sql.SQL("COPY {} FROM STDIN").format(_table_identifier(self.table)))
            )
        except BaseException:
            stack.close()
            raise
        self._stack = stack
        return self

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None:
        if self._committed or self._stack is None:
            return
        stack, self._stack = self._stack, None
        if exc_val is None:
            # leaving without commit() must not commit the transaction
            exc_val = psycopg.Rollback()
            exc_type = type(exc_val)
        stack.__exit__(exc_type, exc_val, exc_tb)

    def append_row(self, values: Sequence[Any]) -> None:
        if self._copy is None:
            raise RuntimeError("PostgresAppender used outside its context")
        self._copy.write_row(values)
        self.rows_appended += 1

    def commit(self) -> None:
        if self._stack is None:
            raise RuntimeError("PostgresAppender used outside its context")
        stack, self._stack = self._stack, None
        # unwinds COPY, cursor and finally the transaction block (COMMIT)
        stack.close()
        self._committed = True


class PostgresStore:
    """StorageHandle backed by a psycopg 3 connection."""

    def __init__(self, conn: psycopg.Connection, dsn: str = "") -> None:
        self._conn = conn
        self.dsn = dsn

    @classmethod
    def open(cls, dsn: str) -> "PostgresStore":
        return cls(psycopg.connect(dsn, autocommit=True), dsn)

    def supports_bulk_append(self) -> bool:
        return not self._conn.closed

    def column_count(self, table: str) -> Optional[int]:
        schema, name = split_table(table)
        with self._conn.cursor() as cur:
            cur.execute(_COLUMN_COUNT_SQL, (schema, name))
            row = cur.fetchone()
        count = int(row[0]) if row else 0
        return count or None

    def bulk_append(self, table: str) -> PostgresAppender:
        return PostgresAppender(self._conn, table)

    def close(self) -> None:
        self._conn.close()

    def __repr__(self) -> str:
        dsn_masked = self.dsn.replace("@", "@…")  # basic credential masking
        return f"<PostgresStore dsn='{dsn_masked}'>"
