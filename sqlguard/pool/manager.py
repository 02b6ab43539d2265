"""
Connection pool for one (dialect, DSN) pair.

Reuses connections to avoid open/close on every statement. Includes
health-check on checkout, max-lifetime eviction, an idle cap, and an optional
cap on open connections (checkouts block until a connection is returned).
"""

import logging
import threading
import time
from datetime import timedelta
from typing import Any, NamedTuple

from sqlguard.config import settings
from sqlguard.dsn import Dialect
from sqlguard.errors import PoolClosedError

from .connect import begin_transaction, bind_params, execute, open_connection, validate_dsn
from .health import health_check, ping_connection
from .results import Result, Row, Rows, Statement, result_from_cursor
from .transaction import Transaction

_log = logging.getLogger(__name__)


class _PoolEntry(NamedTuple):
    conn: Any
    created_at: float  # time.monotonic() when the connection was opened
    last_used: float   # time.monotonic() when last returned to pool


class PoolStats(NamedTuple):
    max_open_connections: int
    open_connections: int
    in_use: int
    idle: int
    wait_count: int
    max_idle_closed: int
    max_lifetime_closed: int


class ConnectionPool:
    """
    Pool of DB-API connections for a single DSN.

    Construction validates the DSN but does not connect; the first
    connection is opened on demand (ping() forces one).
    """

    def __init__(
        self,
        dialect: Dialect | str,
        dsn: str,
        *,
        connect_timeout: int | None = None,
    ) -> None:
        self._dialect = validate_dsn(dialect, dsn)
        self._dsn = dsn
        self._connect_timeout = (
            connect_timeout if connect_timeout is not None else settings.CONNECT_TIMEOUT
        )
        self._ping_idle_threshold = settings.POOL_PING_IDLE_THRESHOLD_SEC

        self._lock = threading.Lock()
        self._cond = threading.Condition(self._lock)
        self._idle: list[_PoolEntry] = []
        self._born: dict[int, float] = {}  # id(conn) -> created_at, for every open conn
        self._num_open = 0  # includes connections being opened
        self._closed = False
        self._wait_count = 0
        self._max_idle_closed = 0
        self._max_lifetime_closed = 0

        self._max_open = 0
        self._max_idle = 0
        self._max_lifetime = 0.0
        self.set_max_open_conns(settings.POOL_MAX_OPEN_CONNS)
        self.set_max_idle_conns(settings.POOL_MAX_IDLE_CONNS)
        self.set_conn_max_lifetime(settings.POOL_CONN_MAX_LIFETIME_SEC)

    @property
    def dialect(self) -> Dialect:
        return self._dialect

    @property
    def closed(self) -> bool:
        return self._closed

    # ------------------------------------------------------------------
    # Statements
    # ------------------------------------------------------------------

    def ping(self) -> None:
        """Verify a connection to the database is alive, opening one if needed."""
        conn = self._checkout()
        try:
            ping_connection(conn)
        except Exception:
            self.release(conn, broken=True)
            raise
        self.release(conn)

    def begin(self) -> Transaction:
        """Check out a dedicated connection and start a transaction on it."""
        conn = self._checkout()
        try:
            begin_transaction(conn)
        except Exception:
            self.release(conn, broken=True)
            raise
        _log.debug("transaction started on %s pool", self._dialect)
        return Transaction(conn, self.release)

    def exec(self, query: str, *args: Any) -> Result:
        conn = self._checkout()
        try:
            cur = execute(conn, query, bind_params(args))
            try:
                result = result_from_cursor(cur)
            finally:
                cur.close()
        except Exception:
            self.release(conn)
            raise
        self._commit_release(conn)
        return result

    def query(self, query: str, *args: Any) -> Rows:
        """Run a query; the returned Rows keep the connection until closed."""
        conn = self._checkout()
        try:
            cur = execute(conn, query, bind_params(args))
        except Exception:
            self.release(conn)
            raise
        return Rows(cur, on_close=lambda: self._commit_release(conn))

    def query_row(self, query: str, *args: Any) -> Row:
        conn = self._checkout()
        try:
            cur = execute(conn, query, bind_params(args))
            try:
                row = Row.from_cursor(cur)
            finally:
                cur.close()
        except Exception:
            self.release(conn)
            raise
        self._commit_release(conn)
        return row

    def prepare(self, query: str) -> Statement:
        self._check_open()
        return Statement(self, query)

    # ------------------------------------------------------------------
    # Tuning
    # ------------------------------------------------------------------

    def set_conn_max_lifetime(self, d: float | timedelta) -> None:
        """
        Set the maximum amount of time a connection may be reused.
        Expired connections are closed lazily before reuse.
        If d <= 0, connections are reused forever.
        """
        seconds = d.total_seconds() if isinstance(d, timedelta) else float(d)
        with self._lock:
            self._max_lifetime = max(seconds, 0.0)
            expired = [e for e in self._idle if self._is_expired(e.created_at)]
            if expired:
                self._idle = [e for e in self._idle if e not in expired]
                self._max_lifetime_closed += len(expired)
                self._forget(e.conn for e in expired)
        for e in expired:
            self._close_quiet(e.conn)

    def set_max_idle_conns(self, n: int) -> None:
        """
        Set the maximum number of connections in the idle pool.
        If max open is greater than 0 but less than n, n is reduced to match it.
        If n <= 0, no idle connections are retained.
        """
        with self._lock:
            n = max(n, 0)
            if self._max_open > 0 and n > self._max_open:
                n = self._max_open
            self._max_idle = n
            excess = self._idle[n:] if len(self._idle) > n else []
            if excess:
                self._idle = self._idle[:n]
                self._max_idle_closed += len(excess)
                self._forget(e.conn for e in excess)
        for e in excess:
            self._close_quiet(e.conn)

    def set_max_open_conns(self, n: int) -> None:
        """
        Set the maximum number of open connections to the database.
        If max idle is greater than 0 and n is less than it, max idle is reduced to n.
        If n <= 0, there is no limit on the number of open connections (the default).
        """
        with self._lock:
            self._max_open = max(n, 0)
            shrink_idle = self._max_open > 0 and self._max_idle > self._max_open
            self._cond.notify_all()
        if shrink_idle:
            self.set_max_idle_conns(self._max_open)

    def stats(self) -> PoolStats:
        """Return pool statistics for monitoring."""
        with self._lock:
            idle = len(self._idle)
            return PoolStats(
                max_open_connections=self._max_open,
                open_connections=self._num_open,
                in_use=self._num_open - idle,
                idle=idle,
                wait_count=self._wait_count,
                max_idle_closed=self._max_idle_closed,
                max_lifetime_closed=self._max_lifetime_closed,
            )

    # ------------------------------------------------------------------
    # Checkout / release
    # ------------------------------------------------------------------

    def _checkout(self) -> Any:
        """Get a healthy connection (from the idle list or freshly opened)."""
        while True:
            entry = self._acquire_slot()
            if entry is None:
                return self._open()
            if self._is_expired(entry.created_at):
                self._discard(entry.conn, lifetime=True)
                continue
            idle_sec = time.monotonic() - entry.last_used
            if idle_sec > self._ping_idle_threshold and not health_check(entry.conn):
                self._discard(entry.conn)
                continue
            return entry.conn

    def _acquire_slot(self) -> _PoolEntry | None:
        """Pop an idle entry, or reserve room for a new connection (returns None)."""
        with self._cond:
            while True:
                if self._closed:
                    raise PoolClosedError()
                if self._idle:
                    return self._idle.pop()
                if self._max_open <= 0 or self._num_open < self._max_open:
                    self._num_open += 1
                    return None
                self._wait_count += 1
                self._cond.wait()

    def _open(self) -> Any:
        try:
            conn = open_connection(
                self._dialect, self._dsn, connect_timeout=self._connect_timeout
            )
        except BaseException:
            with self._cond:
                self._num_open -= 1
                self._cond.notify()
            raise
        with self._lock:
            self._born[id(conn)] = time.monotonic()
        return conn

    def _commit_release(self, conn: Any) -> None:
        """
        Commit pool-level work, then return the connection. A no-op commit under
        autocommit; with autocommit=false it keeps the write from being rolled
        back on release.
        """
        try:
            conn.commit()
        except Exception:
            self.release(conn, broken=True)
            raise
        self.release(conn)

    def release(self, conn: Any, *, broken: bool = False) -> None:
        """Return a connection to the pool (or close it if broken, expired, or the pool is full)."""
        if not broken:
            try:
                conn.rollback()
            except Exception:
                broken = True

        with self._cond:
            created_at = self._born.get(id(conn), time.monotonic())
            if not broken and not self._closed:
                if self._is_expired(created_at):
                    self._max_lifetime_closed += 1
                elif len(self._idle) < self._max_idle:
                    self._idle.append(
                        _PoolEntry(conn=conn, created_at=created_at, last_used=time.monotonic())
                    )
                    self._cond.notify()
                    return
                else:
                    self._max_idle_closed += 1
            self._forget([conn])
            self._cond.notify()

        self._close_quiet(conn)

    def close(self) -> None:
        """
        Close idle connections and refuse new work. Connections still in use
        are closed when released. Raises the first close error, if any.
        """
        with self._cond:
            if self._closed:
                return
            self._closed = True
            entries, self._idle = self._idle, []
            self._forget(e.conn for e in entries)
            self._cond.notify_all()

        first_error: Exception | None = None
        for e in entries:
            try:
                e.conn.close()
            except Exception as exc:
                if first_error is None:
                    first_error = exc
        _log.debug("closed %s pool (%d idle connections)", self._dialect, len(entries))
        if first_error is not None:
            raise first_error

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_open(self) -> None:
        if self._closed:
            raise PoolClosedError()

    def _is_expired(self, created_at: float) -> bool:
        return self._max_lifetime > 0 and (time.monotonic() - created_at) > self._max_lifetime

    def _forget(self, conns: Any) -> None:
        """Drop bookkeeping for closed connections. Caller holds the lock."""
        for conn in conns:
            self._born.pop(id(conn), None)
            self._num_open -= 1

    def _discard(self, conn: Any, *, lifetime: bool = False) -> None:
        with self._cond:
            if lifetime:
                self._max_lifetime_closed += 1
            self._forget([conn])
            self._cond.notify()
        self._close_quiet(conn)

    @staticmethod
    def _close_quiet(conn: Any) -> None:
        try:
            conn.close()
        except Exception:
            pass
