from __future__ import annotations

from types import TracebackType
from typing import Any, Optional, Protocol, Sequence, Tuple, Type, runtime_checkable


@runtime_checkable
class BulkAppender(Protocol):
    """
    One bulk-append transaction scoped to a single table.

    Used as a context manager. Rows become visible only after
    :meth:`commit`; leaving the block without committing rolls back.
    """

    rows_appended: int

    def __enter__(self) -> "BulkAppender": ...

    def __exit__(
        self,
        exc_type: Optional[Type[BaseException]],
        exc_val: Optional[BaseException],
        exc_tb: Optional[TracebackType],
    ) -> None: ...
    def append_row(self, values: Sequence[Any]) -> None: ...
    def commit(self) -> None: ...


@runtime_checkable
class StorageHandle(Protocol):
    """Connection to a store that the writer owns for its whole lifetime."""

    def supports_bulk_append(self) -> bool: ...
    def column_count(self, table: str) -> Optional[int]: ...
    def bulk_append(self, table: str) -> BulkAppender: ...
    def close(self) -> None: ...


def split_table(table: str) -> Tuple[Optional[str], str]:
    """Split ``schema.table`` into its parts; schema is ``None`` when absent."""
    schema, sep, name = table.rpartition(".")
    if not sep:
        return None, table
    if not schema or not name:
        raise ValueError(f"malformed table name {table!r}")
    return schema, name


def quote_identifier(name: str) -> str:
    return '"' + name.replace('"', '""') + '"'


def quote_table(table: str) -> str:
    schema, name = split_table(table)
    if schema is None:
        return quote_identifier(name)
    return f"{quote_identifier(schema)}.{quote_identifier(name)}"
