"""
Connection health check for pooled connections.
"""

from typing import Any

from .connect import execute

HEALTH_QUERY = "SELECT 1"


def ping_connection(conn: Any) -> None:
    """Run SELECT 1; the driver error propagates if the connection is unusable."""
    cur = execute(conn, HEALTH_QUERY)
    try:
        cur.fetchone()
    finally:
        cur.close()


def health_check(conn: Any) -> bool:
    """
    Return True if SELECT 1 succeeds. Postgres and MySQL both support SELECT 1.
    """
    try:
        ping_connection(conn)
        return True
    except Exception:
        return False
