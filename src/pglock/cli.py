import argparse
import sys
from typing import Optional

from sqlalchemy.engine import Engine

from pglock.lib.advisory_lock import acquire_lock
from pglock.lib.config import DEFAULTS, ENV_PREFIX, LockConfig, resolve_config
from pglock.lib.database import build_db_url, get_engine, lock_session
from pglock.lib.errors import ConfigurationError, DatabaseConnectionError
from pglock.services.executor import GuardedExecutor

DESCRIPTION = f"""\
pglock runs a command while holding a lock in a PostgreSQL database.

Any concurrent invocations that fail to obtain a lock will not run
the given command and will exit with return code 0.

The flags below can be configured as environment variables with the {ENV_PREFIX} prefix.
{ENV_PREFIX}PASS needs to be configured to authenticate to the database.
"""


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pglock",
        description=DESCRIPTION,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    # defaults stay None so environment and config file values can show through
    parser.add_argument("--lockid", type=int, help=f"The numeric lock ID to claim in PostgreSQL (default: {DEFAULTS['lockid']}).")
    parser.add_argument("--host", help=f"Hostname of the PostgreSQL instance (default: {DEFAULTS['host']}).")
    parser.add_argument("--port", type=int, help=f"Port the PostgreSQL instance is listening on (default: {DEFAULTS['port']}).")
    parser.add_argument("--database", help=f"Database name to connect to on PostgreSQL (default: {DEFAULTS['database']}).")
    parser.add_argument("--user", help="Username to authenticate to PostgreSQL.")
    parser.add_argument("--sslmode", help=f"The SSL mode of the PostgreSQL client (default: {DEFAULTS['sslmode']}).")
    parser.add_argument("--wait", type=int, help="Amount of seconds to wait for a lock to be obtained (default: 0, no waiting).")
    parser.add_argument("--config", help="Path to a JSON config file (default: ./pglock.json if present)")
    parser.add_argument("command", nargs=argparse.REMAINDER, help="Command to run, followed by its arguments")
    return parser


def run(config: LockConfig, engine: Optional[Engine] = None) -> int:
    """Take the lock described by ``config`` and run its command under it.

    Returns the exit status for the process. The database session, and with
    it the lock, is closed before this returns.
    """
    print(
        f"Connecting to PostgreSQL at {config.user}@{config.host}:{config.port}/{config.database}.",
        file=sys.stderr,
        flush=True,
    )
    if engine is None:
        engine = get_engine(build_db_url(config))

    executor = GuardedExecutor(config.command, config.request)
    try:
        with lock_session(engine) as conn:
            outcome = acquire_lock(conn, config.request)
            return executor.run(outcome)
    except DatabaseConnectionError as e:
        print(f"FATAL: {e}", file=sys.stderr, flush=True)
        return e.exit_code


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]

    flags = {
        "lockid": args.lockid,
        "host": args.host,
        "port": args.port,
        "database": args.database,
        "user": args.user,
        "sslmode": args.sslmode,
        "wait": args.wait,
    }
    try:
        config = resolve_config(flags, command, config_path=args.config)
    except ConfigurationError as e:
        print(f"FATAL: {e}", file=sys.stderr, flush=True)
        return e.exit_code

    return run(config)


if __name__ == "__main__":
    raise SystemExit(main())
