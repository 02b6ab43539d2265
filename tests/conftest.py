"""
Shared fixtures: an in-memory stand-in for DB-API connections so pool and
handle tests run without a database server.
"""

import threading
from collections.abc import Generator
from types import SimpleNamespace
from typing import Any
from unittest.mock import patch

import pytest


class FakeCursor:
    def __init__(self, conn: "FakeConnection") -> None:
        self.conn = conn
        self.description: list[tuple[str]] | None = None
        self.rowcount = -1
        self.lastrowid: int | None = None
        self.closed = False
        self._rows: list[tuple[Any, ...]] = []

    def execute(self, sql: str, params: Any = None) -> None:
        self.conn.executed.append((sql, params))
        if self.conn.fail_on is not None and self.conn.fail_on in sql:
            raise self.conn.error
        if sql in self.conn.results:
            columns, rows = self.conn.results[sql]
            self.description = [(c,) for c in columns]
            self._rows = list(rows)
            self.rowcount = len(rows)
        else:
            self.rowcount = 1
            self.lastrowid = 42
            if sql != "BEGIN":
                self.conn.pending.append(sql)

    def fetchone(self) -> tuple[Any, ...] | None:
        return self._rows.pop(0) if self._rows else None

    def fetchall(self) -> list[tuple[Any, ...]]:
        rows, self._rows = self._rows, []
        return rows

    def close(self) -> None:
        self.closed = True


class FakeConnection:
    def __init__(self, index: int) -> None:
        self.index = index
        self.executed: list[tuple[str, Any]] = []
        # writes not yet committed, and writes that survived a commit
        self.pending: list[str] = []
        self.committed: list[str] = []
        self.calls: list[str] = []
        self.results: dict[str, tuple[tuple[str, ...], list[tuple[Any, ...]]]] = {
            "SELECT 1": (("?column?",), [(1,)]),
        }
        self.fail_on: str | None = None
        self.error: Exception = RuntimeError("driver failure")
        self.commit_error: Exception | None = None
        self.close_error: Exception | None = None
        self.closed = False

    @property
    def statements(self) -> list[str]:
        return [sql for sql, _ in self.executed]

    def cursor(self) -> FakeCursor:
        if self.closed:
            raise RuntimeError("connection already closed")
        return FakeCursor(self)

    def commit(self) -> None:
        self.calls.append("commit")
        if self.commit_error is not None:
            raise self.commit_error
        self.committed.extend(self.pending)
        self.pending.clear()

    def rollback(self) -> None:
        self.calls.append("rollback")
        self.pending.clear()

    def close(self) -> None:
        self.calls.append("close")
        self.closed = True
        if self.close_error is not None:
            raise self.close_error


@pytest.fixture
def fake_driver() -> Generator[SimpleNamespace, None, None]:
    """
    Patch the pool's open_connection. Each open creates a FakeConnection,
    recorded in ``conns``. Put exceptions in ``open_errors`` to make the next
    opens fail.
    """
    state = SimpleNamespace(conns=[], open_errors=[], dsns=[])
    lock = threading.Lock()

    def _open(dialect: Any, dsn: str, *, connect_timeout: int | None = None) -> FakeConnection:
        with lock:
            state.dsns.append(dsn)
            if state.open_errors:
                raise state.open_errors.pop(0)
            conn = FakeConnection(len(state.conns))
            state.conns.append(conn)
            return conn

    with patch("sqlguard.pool.manager.open_connection", side_effect=_open) as m:
        state.open = m
        yield state
