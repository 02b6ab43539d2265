"""
DB connections and connection pool for MySQL (pymysql) and PostgreSQL (psycopg).
"""

from .connect import cursor_to_dicts, execute, open_connection, parse_mysql_dsn
from .health import health_check
from .manager import ConnectionPool, PoolStats
from .results import Result, Row, Rows, Statement
from .transaction import Transaction

__all__ = [
    "open_connection",
    "parse_mysql_dsn",
    "execute",
    "cursor_to_dicts",
    "health_check",
    "ConnectionPool",
    "PoolStats",
    "Result",
    "Row",
    "Rows",
    "Statement",
    "Transaction",
]
