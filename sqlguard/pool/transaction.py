"""
A transaction bound to one pooled connection.
"""

import logging
import threading
from collections.abc import Callable
from typing import Any

from sqlguard.errors import TransactionDoneError

from .connect import bind_params, execute
from .results import Result, Row, Rows, Statement, result_from_cursor

_log = logging.getLogger(__name__)

ReleaseFn = Callable[..., None]


class Transaction:
    """
    Owns a checked-out connection between BEGIN and COMMIT/ROLLBACK.

    The connection goes back to the pool when the transaction finishes,
    whether or not the driver's commit/rollback succeeded.
    """

    def __init__(self, conn: Any, release: ReleaseFn) -> None:
        self._conn = conn
        self._release = release
        self._done = False
        self._lock = threading.Lock()

    @property
    def done(self) -> bool:
        return self._done

    def _active_conn(self) -> Any:
        with self._lock:
            if self._done:
                raise TransactionDoneError()
            return self._conn

    def exec(self, query: str, *args: Any) -> Result:
        cur = execute(self._active_conn(), query, bind_params(args))
        try:
            return result_from_cursor(cur)
        finally:
            cur.close()

    def query(self, query: str, *args: Any) -> Rows:
        # The connection belongs to the transaction, so closing rows releases nothing.
        return Rows(execute(self._active_conn(), query, bind_params(args)))

    def query_row(self, query: str, *args: Any) -> Row:
        cur = execute(self._active_conn(), query, bind_params(args))
        try:
            return Row.from_cursor(cur)
        finally:
            cur.close()

    def prepare(self, query: str) -> Statement:
        self._active_conn()
        return Statement(self, query)

    def commit(self) -> None:
        self._finish("commit")

    def rollback(self) -> None:
        self._finish("rollback")

    def _finish(self, action: str) -> None:
        with self._lock:
            if self._done:
                raise TransactionDoneError()
            self._done = True
        conn = self._conn
        try:
            getattr(conn, action)()
        except Exception:
            self._release(conn, broken=True)
            raise
        _log.debug("transaction %s", action)
        self._release(conn)
