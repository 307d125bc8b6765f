"""
core/db.py -- Engine construction and storage error translation.

Every store (auth/store.py, records/store.py) builds its engine through
make_engine() so SQLite connections get the same pragmas, and wraps its
queries in storage_guard() so driver failures reach callers as
UnavailableError instead of SQLAlchemy internals.

Layer rule: core/ is the kernel. No imports from api/, auth/, or records/.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import datetime, timezone

from sqlalchemy import create_engine, event
from sqlalchemy.engine import Engine
from sqlalchemy.exc import InterfaceError, OperationalError

from core.errors import UnavailableError

logger = logging.getLogger("healthtrack.db")

# Seconds a SQLite writer waits for the database lock before giving up.
_SQLITE_BUSY_TIMEOUT = 15


def _set_sqlite_pragmas(dbapi_conn, connection_record) -> None:
    """Enable WAL journal mode on each new SQLite connection.

    Set per-connection because SQLite PRAGMAs are not inherited by new
    connections from the pool.
    """
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


def make_engine(db_url: str) -> Engine:
    """Create an Engine for db_url with the SQLite settings applied when relevant."""
    connect_args: dict = {}
    is_sqlite = db_url.startswith("sqlite")
    if is_sqlite:
        connect_args["check_same_thread"] = False
        connect_args["timeout"] = _SQLITE_BUSY_TIMEOUT
    engine = create_engine(db_url, connect_args=connect_args)
    if is_sqlite:
        event.listen(engine, "connect", _set_sqlite_pragmas)
    return engine


@contextmanager
def storage_guard(operation: str) -> Iterator[None]:
    """Translate connection-level driver errors into UnavailableError.

    IntegrityError is deliberately left alone: constraint violations are a
    caller concern (e.g. duplicate email), not an outage.
    """
    try:
        yield
    except (OperationalError, InterfaceError) as exc:
        logger.error("Storage failure during %s: %s", operation, exc.__class__.__name__)
        raise UnavailableError(f"Storage unavailable during {operation}.") from exc


# ---------------------------------------------------------------------------
# Timestamp helpers
#
# Timestamps are stored as fixed-width ISO 8601 UTC strings so that string
# comparison in SQL matches chronological order.
# ---------------------------------------------------------------------------


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def to_iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_iso(value: str | None) -> datetime | None:
    if not value:
        return None
    dt = datetime.fromisoformat(value)
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt
