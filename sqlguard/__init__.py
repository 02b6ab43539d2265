"""
sqlguard: DSN builder and thread-safe transaction-routing handle for MySQL and PostgreSQL.
"""

from .dsn import ConnectionConfig, ConnectionString, Dialect, build_dsn
from .errors import (
    DsnConfigError,
    DsnParseError,
    NoRowsError,
    PoolClosedError,
    SqlGuardError,
    TransactionAlreadyStartedError,
    TransactionDoneError,
    TransactionNotStartedError,
    TransactionStateError,
)
from .handle import GuardedHandle

MySQL = Dialect.MYSQL
PostgreSQL = Dialect.POSTGRES

__all__ = [
    "ConnectionConfig",
    "ConnectionString",
    "Dialect",
    "MySQL",
    "PostgreSQL",
    "build_dsn",
    "GuardedHandle",
    "SqlGuardError",
    "DsnConfigError",
    "DsnParseError",
    "NoRowsError",
    "PoolClosedError",
    "TransactionStateError",
    "TransactionNotStartedError",
    "TransactionAlreadyStartedError",
    "TransactionDoneError",
]
