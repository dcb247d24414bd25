"""
SQLite schema for the persistent cache.

Statements use ``IF NOT EXISTS`` so ``apply_schema()`` is idempotent and safe
to call at every startup.

``cache_entries`` keeps one JSON value per key together with the write time
and the TTL it was written with. Expired rows are not deleted on read: the
currency and market services fall back to them when every upstream fails.
"""

from __future__ import annotations

import logging
import sqlite3

logger = logging.getLogger(__name__)

_DDL_CACHE_ENTRIES = """
CREATE TABLE IF NOT EXISTS cache_entries (
    cache_key   TEXT    PRIMARY KEY,
    value_json  TEXT    NOT NULL,
    written_at  TEXT    NOT NULL,
    ttl_hours   REAL    NOT NULL
);
"""

_DDL_CACHE_INDEX = """
CREATE INDEX IF NOT EXISTS idx_cache_entries_written_at
    ON cache_entries (written_at);
"""

ALL_DDL: list[str] = [_DDL_CACHE_ENTRIES, _DDL_CACHE_INDEX]

ALL_TABLE_NAMES: list[str] = ["cache_entries"]


def apply_schema(conn: sqlite3.Connection) -> None:
    """Create all tables and indexes on ``conn``."""
    for ddl in ALL_DDL:
        conn.execute(ddl)
    conn.commit()
    logger.debug("Schema applied (%d statements).", len(ALL_DDL))
