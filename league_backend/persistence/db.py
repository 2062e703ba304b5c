"""
Database connection, initialization and transaction boundary.
"""
from __future__ import annotations

import logging
import os
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from league_backend.errors import LeagueError

from .schema import all_schema_sql

logger = logging.getLogger(__name__)

# Seconds a connection waits on a locked database before raising.
BUSY_TIMEOUT = 30.0


# Default DB path (project root / data / league.db), overridable via LEAGUE_DB_PATH
def _default_db_path() -> Path:
    env_path = os.environ.get("LEAGUE_DB_PATH")
    if env_path:
        return Path(env_path)
    return Path(__file__).resolve().parent.parent.parent / "data" / "league.db"


_db_path: Path | None = None


def set_db_path(path: str | Path) -> None:
    """Set the database path. Call before first get_connection if not using default."""
    global _db_path
    _db_path = Path(path)


def get_db_path() -> Path:
    """Return the current database path."""
    if _db_path is not None:
        return _db_path
    return _default_db_path()


def get_connection(db_path: str | Path | None = None) -> sqlite3.Connection:
    """
    Return a new SQLite connection.
    Use as context manager or ensure close() is called.
    One connection per request/thread; writers serialise on the busy timeout.
    """
    path = Path(db_path) if db_path else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), timeout=BUSY_TIMEOUT)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: str | Path | None = None) -> None:
    """Create or ensure all tables exist."""
    path = Path(db_path) if db_path else get_db_path()
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    try:
        conn.executescript(all_schema_sql())
        conn.commit()
    finally:
        conn.close()
    logger.debug("Database initialised at %s", path)


_local = threading.local()


def _depths() -> dict[int, int]:
    if not hasattr(_local, "depths"):
        _local.depths = {}
    return _local.depths


@contextmanager
def transaction(conn: sqlite3.Connection) -> Iterator[sqlite3.Connection]:
    """
    Commit everything written inside the block, or roll all of it back.

    Repositories never commit on their own; services wrap each operation:

        with transaction(conn):
            repo.update(conn, ...)
            other_repo.update(conn, ...)

    Blocks nest per connection: only the outermost block commits or rolls back,
    so a service may call another service's transactional method.
    Exceptions are re-raised unchanged.
    """
    depths = _depths()
    key = id(conn)
    depth = depths.get(key, 0)
    depths[key] = depth + 1
    try:
        yield conn
        if depth == 0:
            conn.commit()
    except LeagueError as e:
        if depth == 0:
            # A rejected request, not a failure.
            logger.warning("Transaction rolled back: %s", e)
            conn.rollback()
        raise
    except Exception as e:
        if depth == 0:
            logger.error("Transaction rolled back: %s", e, exc_info=True)
            conn.rollback()
        raise
    finally:
        if depth == 0:
            depths.pop(key, None)
        else:
            depths[key] = depth
