"""
Exceptions raised by sqlguard.

Driver errors (psycopg.Error, pymysql.MySQLError) are never wrapped; they reach
the caller unchanged.
"""


class SqlGuardError(Exception):
    """Base class for errors raised by sqlguard itself."""


class DsnConfigError(SqlGuardError, ValueError):
    """ConnectionConfig failed validation or the dialect is unknown."""


class DsnParseError(SqlGuardError, ValueError):
    """A connection string could not be parsed into driver arguments."""


class PoolClosedError(SqlGuardError):
    """The pool has been closed."""

    def __init__(self, message: str = "sql: database is closed") -> None:
        super().__init__(message)


class NoRowsError(SqlGuardError):
    """Row.scan() was called on an empty result."""

    def __init__(self, message: str = "sql: no rows in result set") -> None:
        super().__init__(message)


class TransactionStateError(SqlGuardError):
    """Base for transaction lifecycle misuse."""


class TransactionNotStartedError(TransactionStateError):
    def __init__(
        self,
        message: str = (
            "The transaction has not been started or has already been "
            "committed or rolled back."
        ),
    ) -> None:
        super().__init__(message)


class TransactionAlreadyStartedError(TransactionStateError):
    def __init__(
        self, message: str = "A transaction is already active on this handle."
    ) -> None:
        super().__init__(message)


class TransactionDoneError(TransactionStateError):
    def __init__(
        self,
        message: str = "sql: transaction has already been committed or rolled back",
    ) -> None:
        super().__init__(message)
