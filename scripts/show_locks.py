#!/usr/bin/env python
"""List advisory locks currently held or awaited on the PostgreSQL server.

Usage:
  python scripts/show_locks.py [--config pglock.json] [--host ...] [--user ...]

Reads connection settings the same way `pglock` does (flags, PGLOCK_*
environment variables, config file). Lock IDs taken by pglock are the low
32 bits of the advisory key, so they appear here exactly as passed to
`--lockid`.
"""
from __future__ import annotations

import argparse
import sys

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from pglock.lib.config import resolve_config
from pglock.lib.database import build_db_url, get_engine, lock_session, safe_url
from pglock.lib.errors import PgLockError

ADVISORY_LOCKS_SQL = text(
    """
    SELECT (l.classid::bigint << 32) | l.objid::bigint AS lock_id,
           l.pid,
           l.granted,
           a.application_name,
           a.client_addr
    FROM pg_locks l
    LEFT JOIN pg_stat_activity a ON a.pid = l.pid
    WHERE l.locktype = 'advisory' AND l.objsubid = 1
    ORDER BY lock_id, l.granted DESC, l.pid
    """
)


def main() -> int:
    parser = argparse.ArgumentParser(description="List PostgreSQL advisory locks")
    parser.add_argument("--config", help="Path to JSON config file")
    parser.add_argument("--host")
    parser.add_argument("--port", type=int)
    parser.add_argument("--database")
    parser.add_argument("--user")
    parser.add_argument("--sslmode")
    args = parser.parse_args()

    flags = {"host": args.host, "port": args.port, "database": args.database, "user": args.user, "sslmode": args.sslmode}
    try:
        # no command is run; a placeholder satisfies the config checks
        config = resolve_config(flags, ["show_locks"], config_path=args.config)
        url = build_db_url(config)
        print(f"Connecting to database: {safe_url(url)}")
        with lock_session(get_engine(url)) as conn:
            rows = conn.execute(ADVISORY_LOCKS_SQL).fetchall()
    except (PgLockError, SQLAlchemyError) as e:
        print(f"FATAL: {e}", file=sys.stderr)
        return 1

    if not rows:
        print("No advisory locks held or awaited")
        return 0

    for lock_id, pid, granted, app_name, client_addr in rows:
        state = "held" if granted else "waiting"
        print(f"lock {lock_id}: {state} by pid {pid} (application={app_name or '-'}, client={client_addr or 'local'})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
