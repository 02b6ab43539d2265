"""
DB connection helpers: turn (dialect, DSN) into a DB-API connection.

Uses psycopg (PostgreSQL) or pymysql (MySQL) based on the dialect.
PostgreSQL URIs go to libpq as-is; MySQL DSNs (user:pass@tcp(host:port)/db?k=v)
are parsed here into pymysql keyword arguments.
"""

import logging
import re
from collections.abc import Mapping
from typing import Any
from urllib.parse import unquote

import psycopg
import pymysql
from pymysql.constants import CLIENT

from sqlguard.dsn import Dialect, resolve_dialect
from sqlguard.errors import DsnParseError

_log = logging.getLogger(__name__)

_MYSQL_DEFAULT_PORT = 3306

# Accepted for compatibility with Go-style DSNs; no pymysql equivalent.
_MYSQL_IGNORED_PARAMS = frozenset({"parseTime", "loc", "allowNativePasswords"})

_MYSQL_TIMEOUT_PARAMS = {
    "timeout": "connect_timeout",
    "readTimeout": "read_timeout",
    "writeTimeout": "write_timeout",
}

_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": 1e-9,
    "us": 1e-6,
    "µs": 1e-6,
    "ms": 1e-3,
    "s": 1.0,
    "m": 60.0,
    "h": 3600.0,
}


def _parse_duration(key: str, value: str) -> float:
    """Parse a Go duration string ("500ms", "1m30s") into seconds."""
    if value == "0":
        return 0.0
    pos = 0
    total = 0.0
    for m in _DURATION_PART.finditer(value):
        if m.start() != pos:
            break
        total += float(m.group(1)) * _DURATION_UNITS[m.group(2)]
        pos = m.end()
    if pos == 0 or pos != len(value):
        raise DsnParseError(f"invalid duration for {key}: {value!r}")
    return total


def _parse_bool(key: str, value: str) -> bool:
    if value in ("1", "true", "TRUE", "True"):
        return True
    if value in ("0", "false", "FALSE", "False"):
        return False
    raise DsnParseError(f"invalid bool value for {key}: {value!r}")


def _split_params(query: str) -> list[tuple[str, str]]:
    pairs: list[tuple[str, str]] = []
    for part in query.split("&"):
        if not part:
            continue
        key, sep, value = part.partition("=")
        if not sep:
            raise DsnParseError(f"invalid DSN parameter: {part!r}")
        pairs.append((unquote(key), unquote(value)))
    return pairs


def parse_mysql_dsn(dsn: str) -> dict[str, Any]:
    """
    Parse ``[user[:password]@][net[(addr)]]/dbname[?param=value&...]`` into
    keyword arguments for pymysql.connect.

    - net "tcp" (default) splits addr into host/port; "unix" uses addr as the socket path.
    - charset, collation, timeout, readTimeout, writeTimeout, autocommit,
      clientFoundRows and multiStatements map to driver options.
    - Any other parameter becomes a session variable (SET key=value) on connect.
    """
    slash = dsn.rfind("/")
    if slash < 0:
        raise DsnParseError("invalid DSN: missing the slash separating the database name")

    left, right = dsn[:slash], dsn[slash + 1 :]
    kwargs: dict[str, Any] = {"autocommit": True}

    at = left.rfind("@")
    if at >= 0:
        user, _, password = left[:at].partition(":")
        kwargs["user"] = user
        kwargs["password"] = password
        netaddr = left[at + 1 :]
    else:
        netaddr = left

    net, addr = netaddr, ""
    paren = netaddr.find("(")
    if paren >= 0:
        if not netaddr.endswith(")"):
            raise DsnParseError("invalid DSN: network address not terminated (missing closing brace)")
        net, addr = netaddr[:paren], netaddr[paren + 1 : -1]
    net = net or "tcp"

    if net == "tcp":
        host, port = addr or "127.0.0.1", _MYSQL_DEFAULT_PORT
        if ":" in addr:
            host, _, port_s = addr.rpartition(":")
            try:
                port = int(port_s)
            except ValueError:
                raise DsnParseError(f"invalid DSN: bad port {port_s!r}") from None
        kwargs["host"] = host
        kwargs["port"] = port
    elif net == "unix":
        if not addr:
            raise DsnParseError("invalid DSN: unix socket path is empty")
        kwargs["unix_socket"] = addr
    else:
        raise DsnParseError(f"invalid DSN: unsupported network {net!r}")

    db_name, _, query = right.partition("?")
    if db_name:
        kwargs["database"] = unquote(db_name)

    client_flag = 0
    session_vars: list[str] = []
    for key, value in _split_params(query):
        if key in _MYSQL_IGNORED_PARAMS:
            continue
        if key == "charset":
            kwargs["charset"] = value.split(",")[0]
        elif key == "collation":
            kwargs["collation"] = value
        elif key in _MYSQL_TIMEOUT_PARAMS:
            seconds = _parse_duration(key, value)
            # 0 means no timeout; pymysql only accepts positive values
            if seconds > 0:
                kwargs[_MYSQL_TIMEOUT_PARAMS[key]] = seconds
        elif key == "autocommit":
            kwargs["autocommit"] = _parse_bool(key, value)
        elif key == "clientFoundRows":
            if _parse_bool(key, value):
                client_flag |= CLIENT.FOUND_ROWS
        elif key == "multiStatements":
            if _parse_bool(key, value):
                client_flag |= CLIENT.MULTI_STATEMENTS
        else:
            session_vars.append(f"{key}={value}")

    if client_flag:
        kwargs["client_flag"] = client_flag
    if session_vars:
        kwargs["init_command"] = "SET " + ", ".join(session_vars)
    return kwargs


def validate_dsn(dialect: Dialect | str, dsn: str) -> Dialect:
    """Check that *dsn* can be handed to the driver for *dialect*, without connecting."""
    dn = resolve_dialect(dialect)
    if dn == Dialect.MYSQL:
        parse_mysql_dsn(dsn)
    elif not dsn.startswith(("postgres://", "postgresql://")):
        # libpq also takes "key=value" conninfo strings
        if "=" not in dsn:
            raise DsnParseError("invalid DSN: expected a postgres:// URI or key=value conninfo")
    return dn


def open_connection(
    dialect: Dialect | str,
    dsn: str,
    *,
    connect_timeout: int | None = None,
) -> Any:
    """
    Open one DB-API connection in autocommit mode.

    connect_timeout (seconds) is forwarded to the driver when given; a timeout
    set in the DSN itself wins.
    """
    dn = resolve_dialect(dialect)
    if dn == Dialect.POSTGRES:
        extra: dict[str, Any] = {}
        if connect_timeout is not None and "connect_timeout" not in dsn:
            extra["connect_timeout"] = connect_timeout
        conn = psycopg.connect(dsn, autocommit=True, **extra)
    else:
        kwargs = parse_mysql_dsn(dsn)
        if connect_timeout is not None:
            kwargs.setdefault("connect_timeout", connect_timeout)
        conn = pymysql.connect(**kwargs)
    _log.debug("opened %s connection", dn)
    return conn


def bind_params(args: tuple[Any, ...]) -> Mapping[str, Any] | tuple[Any, ...] | None:
    """Map ``*args`` to DB-API params: none, one mapping (named style), or a tuple."""
    if not args:
        return None
    if len(args) == 1 and isinstance(args[0], Mapping):
        return args[0]
    return tuple(args)


def execute(
    conn: Any,
    sql: str,
    params: Mapping[str, Any] | list | tuple | None = None,
) -> Any:
    """Execute SQL on a new cursor and return the cursor. Caller closes it."""
    cur = conn.cursor()
    try:
        if params is not None:
            cur.execute(sql, params)
        else:
            cur.execute(sql)
    except BaseException:
        cur.close()
        raise
    return cur


def begin_transaction(conn: Any) -> None:
    """Open an explicit transaction on an autocommit connection."""
    execute(conn, "BEGIN").close()


def cursor_to_dicts(cursor: Any) -> list[dict[str, Any]]:
    """Convert cursor result to list of dicts. Works for both psycopg and pymysql."""
    desc = cursor.description
    if not desc:
        return []
    names = [d[0] for d in desc]
    return [dict(zip(names, row, strict=True)) for row in cursor.fetchall()]
