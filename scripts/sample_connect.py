#!/usr/bin/env python3
"""
Connect to MySQL or PostgreSQL through a GuardedHandle and ping it.

Usage:
  python scripts/sample_connect.py --dialect mysql --user root --password pass --db sample
  python scripts/sample_connect.py --dialect postgres --user postgres --db sample --param sslmode=disable
  Or set env: DB_DIALECT, DB_USER, DB_PASSWORD, DB_HOST, DB_PORT, DB_NAME
"""

import argparse
import logging
import os
import sys

from sqlguard import ConnectionConfig, DsnConfigError, GuardedHandle, build_dsn

_DEFAULT_PARAMS = {
    "mysql": {
        "parseTime": "true",
        "loc": "UTC",
        "charset": "utf8mb4",
        "autocommit": "false",
        "clientFoundRows": "true",
        "allowNativePasswords": "True",
    },
    "postgres": {"sslmode": "disable"},
}


def _parse_param(raw: str) -> tuple[str, str]:
    key, sep, value = raw.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected key=value, got {raw!r}")
    return key, value


def main() -> None:
    parser = argparse.ArgumentParser(description="Build a DSN, open a handle and ping the database.")
    parser.add_argument(
        "--dialect",
        choices=("mysql", "postgres"),
        default=os.environ.get("DB_DIALECT", "mysql"),
    )
    parser.add_argument("--user", default=os.environ.get("DB_USER", "root"))
    parser.add_argument("--password", default=os.environ.get("DB_PASSWORD", ""))
    parser.add_argument("--host", default=os.environ.get("DB_HOST", ""))
    parser.add_argument("--port", type=int, default=int(os.environ.get("DB_PORT", "0")))
    parser.add_argument("--db", default=os.environ.get("DB_NAME", "sample"))
    parser.add_argument(
        "--param",
        type=_parse_param,
        action="append",
        default=[],
        help="Extra DSN parameter key=value (repeatable). Replaces the per-dialect defaults.",
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    log = logging.getLogger("sample_connect")

    config = ConnectionConfig(
        user=args.user,
        password=args.password,
        host=args.host,
        port=args.port,
        db_name=args.db,
        params=dict(args.param) if args.param else _DEFAULT_PARAMS[args.dialect],
    )
    try:
        dsn = build_dsn(config, args.dialect)
    except DsnConfigError as e:
        log.error("invalid configuration: %s", e)
        sys.exit(2)

    with GuardedHandle(args.dialect, dsn) as db:
        if db.error is not None:
            log.error("open failed: %s", db.error)
            sys.exit(1)
        try:
            db.ping()
        except Exception as e:
            log.error("ping failed: %s", e)
            sys.exit(1)
        print(args.dialect, "is connected")


if __name__ == "__main__":
    main()
