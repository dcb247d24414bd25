"""
SQLite connection management for the persistent cache.

``get_connection()`` yields a connection that:
  - Uses WAL journal mode so scheduled refreshes do not block cache reads.
  - Waits on lock contention for ``busy_timeout_ms`` before failing.
  - Returns ``sqlite3.Row`` rows (mapping-style access).
  - Commits on clean exit and rolls back on exception.

Usage::

    from inventory_oracle.db.connection import get_connection

    with get_connection("data/db/inventory_oracle.db") as conn:
        conn.execute("SELECT value_json FROM cache_entries WHERE cache_key = ?", (key,))
"""

from __future__ import annotations

import logging
import sqlite3
from contextlib import contextmanager
from pathlib import Path
from typing import Generator

logger = logging.getLogger(__name__)


@contextmanager
def get_connection(
    db_path: str,
    wal_mode: bool = True,
    busy_timeout_ms: int = 5000,
) -> Generator[sqlite3.Connection, None, None]:
    """Context manager yielding a configured SQLite connection.

    Parent directories of ``db_path`` are created when missing.

    Args:
        db_path: Path to the SQLite file, or ``":memory:"``.
        wal_mode: Enable WAL journal mode.
        busy_timeout_ms: Lock wait before ``OperationalError``.

    Yields:
        An open ``sqlite3.Connection``.

    Raises:
        sqlite3.OperationalError: If the database cannot be opened or is locked.
    """
    if db_path != ":memory:":
        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

    conn = sqlite3.connect(db_path, timeout=busy_timeout_ms / 1000)
    conn.row_factory = sqlite3.Row

    try:
        conn.execute(f"PRAGMA busy_timeout = {busy_timeout_ms};")
        if wal_mode and db_path != ":memory:":
            conn.execute("PRAGMA journal_mode = WAL;")

        yield conn
        conn.commit()

    except Exception:
        conn.rollback()
        raise

    finally:
        conn.close()
