from __future__ import annotations

from contextlib import contextmanager
from typing import Iterator
from urllib.parse import quote_plus, urlparse, urlunparse

from sqlalchemy import create_engine
from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool

from pglock.lib.config import LockConfig
from pglock.lib.errors import DatabaseConnectionError


def build_db_url(config: LockConfig) -> str:
    """Assemble a psycopg2 SQLAlchemy URL from resolved config values."""
    user_q = quote_plus(config.user)
    pwd_q = quote_plus(config.password) if config.password else ""
    userinfo = f"{user_q}:{pwd_q}" if pwd_q else user_q
    return (
        f"postgresql+psycopg2://{userinfo}@{config.host}:{config.port}/"
        f"{quote_plus(config.database)}?sslmode={quote_plus(config.sslmode)}"
    )


def safe_url(url: str) -> str:
    """Return ``url`` with any password replaced by ``***``."""
    parsed = urlparse(url)
    if not parsed.password:
        return url
    hostport = parsed.hostname or ""
    if parsed.port:
        hostport = f"{hostport}:{parsed.port}"
    rebuilt = parsed._replace(netloc=f"{parsed.username}:***@{hostport}")
    return urlunparse(rebuilt)


def get_engine(url: str) -> Engine:
    """Create an engine whose connections are real, unpooled server sessions.

    Advisory locks belong to the server session, so a pooled connection would
    keep the lock alive after pglock is done with it. ``NullPool`` makes
    closing the connection end the session.
    """
    return create_engine(url, echo=False, future=True, poolclass=NullPool)


@contextmanager
def lock_session(engine: Engine) -> Iterator[Connection]:
    """Open the one connection that owns the advisory lock.

    The connection runs in autocommit mode so it never sits idle inside a
    transaction while the guarded command runs. It is closed, and the engine
    disposed, on every exit path; that is what releases the lock.
    """
    try:
        conn = engine.connect()
    except SQLAlchemyError as e:
        engine.dispose()
        raise DatabaseConnectionError(f"Error connecting PostgreSQL: {e}") from e
    try:
        conn.execution_options(isolation_level="AUTOCOMMIT")
        yield conn
    finally:
        try:
            conn.close()
        finally:
            engine.dispose()
