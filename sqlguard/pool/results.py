"""
Result objects returned by ConnectionPool and Transaction.
"""

from collections.abc import Callable, Iterator
from typing import Any, NamedTuple, Protocol

from sqlguard.errors import NoRowsError, SqlGuardError

from .connect import cursor_to_dicts


class Result(NamedTuple):
    """Summary of an exec: affected rows and, where the driver reports it, the last insert id."""

    rows_affected: int
    last_insert_id: int | None


def result_from_cursor(cursor: Any) -> Result:
    rowcount = cursor.rowcount if cursor.rowcount is not None and cursor.rowcount >= 0 else 0
    return Result(
        rows_affected=rowcount,
        last_insert_id=getattr(cursor, "lastrowid", None) or None,
    )


def _column_names(cursor: Any) -> tuple[str, ...]:
    desc = cursor.description
    if not desc:
        return ()
    return tuple(d[0] for d in desc)


class Rows:
    """
    Streaming result set. Holds the underlying connection until closed.

    Iterating to the end closes it; otherwise call close() or use it as a
    context manager.
    """

    def __init__(self, cursor: Any, on_close: Callable[[], None] | None = None) -> None:
        self._cursor = cursor
        self._on_close = on_close
        self._closed = False
        self.columns: tuple[str, ...] = _column_names(cursor)

    @property
    def closed(self) -> bool:
        return self._closed

    def __iter__(self) -> Iterator[tuple[Any, ...]]:
        if self._closed:
            return
        try:
            while True:
                row = self._cursor.fetchone()
                if row is None:
                    break
                yield tuple(row)
        finally:
            self.close()

    def fetchall(self) -> list[tuple[Any, ...]]:
        return list(self)

    def to_dicts(self) -> list[dict[str, Any]]:
        """Fetch the remaining rows as dicts keyed by column name, then close."""
        if self._closed:
            return []
        try:
            return cursor_to_dicts(self._cursor)
        finally:
            self.close()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._cursor.close()
        finally:
            if self._on_close is not None:
                self._on_close()

    def __enter__(self) -> "Rows":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()


class Row:
    """Single row from query_row. Empty results surface as NoRowsError on access."""

    def __init__(self, columns: tuple[str, ...], values: tuple[Any, ...] | None) -> None:
        self.columns = columns
        self._values = values

    @classmethod
    def from_cursor(cls, cursor: Any) -> "Row":
        values = cursor.fetchone() if cursor.description else None
        return cls(_column_names(cursor), tuple(values) if values is not None else None)

    def scan(self) -> tuple[Any, ...]:
        if self._values is None:
            raise NoRowsError()
        return self._values

    def as_dict(self) -> dict[str, Any]:
        return dict(zip(self.columns, self.scan(), strict=True))


class Executor(Protocol):
    def exec(self, query: str, *args: Any) -> Result: ...

    def query(self, query: str, *args: Any) -> Rows: ...

    def query_row(self, query: str, *args: Any) -> Row: ...


class Statement:
    """A statement bound to the pool or transaction that prepared it."""

    def __init__(self, executor: Executor, query: str) -> None:
        self._executor = executor
        self.query_text = query
        self._closed = False

    def _target(self) -> Executor:
        if self._closed:
            raise SqlGuardError("sql: statement is closed")
        return self._executor

    def exec(self, *args: Any) -> Result:
        return self._target().exec(self.query_text, *args)

    def query(self, *args: Any) -> Rows:
        return self._target().query(self.query_text, *args)

    def query_row(self, *args: Any) -> Row:
        return self._target().query_row(self.query_text, *args)

    def close(self) -> None:
        self._closed = True

    def __enter__(self) -> "Statement":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
