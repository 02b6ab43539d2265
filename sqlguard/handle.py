"""
GuardedHandle: one connection pool plus at most one active transaction.

Statements go to the active transaction when there is one, otherwise to the
pool. The transaction slot is guarded by a per-handle lock; the lock covers
the routing decision only, never the driver I/O.

A transaction must be driven from a single owner until it completes: a thread
that has already routed a statement to the transaction can lose it to a
concurrent commit()/rollback() from another thread.
"""

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import timedelta
from typing import Any

from sqlguard.dsn import ConnectionString, Dialect
from sqlguard.errors import (
    PoolClosedError,
    TransactionAlreadyStartedError,
    TransactionNotStartedError,
)
from sqlguard.pool import ConnectionPool, PoolStats, Result, Row, Rows, Statement, Transaction

logger = logging.getLogger(__name__)


class GuardedHandle:
    """
    Thread-safe facade over a ConnectionPool with an optional active transaction.

    The constructor never raises: if the pool cannot be opened the error is
    kept in `error` and every pool-facing call raises it.
    """

    def __init__(self, dialect: Dialect | str, dsn: ConnectionString | str) -> None:
        self._lock = threading.Lock()
        self._tx: Transaction | None = None
        self._tx_pending = False
        self._err: Exception | None = None
        self._pool: ConnectionPool | None = None
        try:
            self._pool = ConnectionPool(dialect, dsn)
        except Exception as exc:
            logger.debug("failed to open %s pool: %s", dialect, exc)
            self._err = exc

    @property
    def error(self) -> Exception | None:
        """Last recorded error (open failure, failed begin, close outcome)."""
        with self._lock:
            return self._err

    @property
    def in_transaction(self) -> bool:
        with self._lock:
            return self._tx is not None

    def _require_pool(self) -> ConnectionPool:
        if self._pool is None:
            raise self._err if self._err is not None else PoolClosedError()
        return self._pool

    def _route(self) -> ConnectionPool | Transaction:
        """Snapshot the routing target under the lock; the caller uses it unlocked."""
        with self._lock:
            if self._err is not None:
                raise self._err
            if self._tx is not None:
                return self._tx
        return self._require_pool()

    # ------------------------------------------------------------------
    # Transaction lifecycle
    # ------------------------------------------------------------------

    def begin(self) -> None:
        """Start a transaction. Only one transaction may be active per handle."""
        pool = self._require_pool()
        with self._lock:
            if self._tx is not None or self._tx_pending:
                raise TransactionAlreadyStartedError()
            self._tx_pending = True
        try:
            tx = pool.begin()
        except Exception as exc:
            with self._lock:
                self._tx_pending = False
                self._err = exc
            raise
        with self._lock:
            self._tx = tx
            self._tx_pending = False
            self._err = None
        logger.debug("transaction started")

    def commit(self) -> None:
        """Commit the active transaction. begin() must have succeeded first."""
        self._finish("commit")

    def rollback(self) -> None:
        """Roll back the active transaction. begin() must have succeeded first."""
        self._finish("rollback")

    def _finish(self, action: str) -> None:
        with self._lock:
            tx, self._tx = self._tx, None
        if tx is None:
            raise TransactionNotStartedError()
        # the slot is already cleared; a driver error still ends the transaction
        getattr(tx, action)()
        logger.debug("transaction %s", action)

    @contextmanager
    def transaction(self) -> Iterator["GuardedHandle"]:
        """Run a block in a transaction: commit on success, roll back on error."""
        self.begin()
        try:
            yield self
        except BaseException:
            try:
                self.rollback()
            except Exception:
                logger.warning("rollback after failed transaction block failed", exc_info=True)
            raise
        self.commit()

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def exec(self, query: str, *args: Any) -> Result:
        """Execute a statement and return a Result summarizing its effect."""
        return self._route().exec(query, *args)

    def query(self, query: str, *args: Any) -> Rows:
        """Execute a query and return its rows; close them when done."""
        return self._route().query(query, *args)

    def query_row(self, query: str, *args: Any) -> Row:
        """Execute a query expected to return at most one row."""
        return self._route().query_row(query, *args)

    def prepare(self, query: str) -> Statement:
        """Create a statement bound to the active transaction, or to the pool."""
        return self._route().prepare(query)

    def ping(self) -> None:
        """Check the database is reachable. Always uses the pool, never the transaction."""
        self._require_pool().ping()

    # ------------------------------------------------------------------
    # Pool
    # ------------------------------------------------------------------

    def close(self) -> None:
        """
        Close the pool. An uncommitted transaction is abandoned, not rolled back;
        its connection is closed when the driver releases it.
        """
        if self._pool is None:
            return
        try:
            self._pool.close()
        except Exception as exc:
            with self._lock:
                self._err = exc
            raise
        with self._lock:
            self._err = None
        logger.debug("handle closed")

    def set_conn_max_lifetime(self, d: float | timedelta) -> None:
        """If d <= 0, connections are reused forever."""
        self._require_pool().set_conn_max_lifetime(d)

    def set_max_idle_conns(self, n: int) -> None:
        """If n <= 0, no idle connections are retained."""
        self._require_pool().set_max_idle_conns(n)

    def set_max_open_conns(self, n: int) -> None:
        """If n <= 0, there is no limit on the number of open connections."""
        self._require_pool().set_max_open_conns(n)

    def stats(self) -> PoolStats:
        return self._require_pool().stats()

    def __enter__(self) -> "GuardedHandle":
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
