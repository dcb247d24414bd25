"""
Keyed TTL cache shared by the currency, market and prediction services.

The store is an explicit dependency handed to every service at construction.
Two implementations share the ``CacheStore`` protocol:

  - ``InMemoryCacheStore``  dict-backed, clock injectable (tests, ``memory`` backend).
  - ``SqliteCacheStore``    JSON rows in ``cache_entries`` (default backend).

Freshness rule: an entry is fresh while ``now - written_at < ttl_hours``.
``get`` returns only fresh values. ``get_entry`` returns the entry whatever
its age so callers can fall back to a stale value when every upstream fails.
Nothing is evicted on expiry.

Values must be JSON-compatible (dicts, lists, str, numbers, bools, None);
services store ``model_dump(mode="json")`` output and re-validate on read.

Keys are composed with ``make_cache_key(operation, *parts)``::

    make_cache_key("market_data", "esp32-01", "EUR")  ->  "market_data:esp32-01:EUR"
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Optional, Protocol

from inventory_oracle.db.connection import get_connection
from inventory_oracle.db.schema import apply_schema
from inventory_oracle.utils.time_utils import Clock, ensure_aware, utcnow

logger = logging.getLogger(__name__)


def make_cache_key(operation: str, *parts: object) -> str:
    """Join an operation name and its variant parts into a cache key.

    ``None`` parts are dropped so optional parameters do not produce
    ``"...:None"`` keys.
    """
    return ":".join([operation, *(str(p) for p in parts if p is not None)])


@dataclass(frozen=True)
class CacheEntry:
    """A stored value with the time it was written and its TTL."""

    value: Any
    written_at: datetime
    ttl_hours: float

    def is_fresh(self, now: datetime) -> bool:
        return ensure_aware(now) - ensure_aware(self.written_at) < timedelta(hours=self.ttl_hours)

    def age_hours(self, now: datetime) -> float:
        return (ensure_aware(now) - ensure_aware(self.written_at)).total_seconds() / 3600.0


class CacheStore(Protocol):
    """Async keyed store with write-time TTLs."""

    async def get(self, key: str) -> Optional[Any]:
        """Return the value for ``key`` if present and fresh, else ``None``."""
        ...

    async def set(self, key: str, value: Any, ttl_hours: float) -> None:
        """Store ``value`` under ``key``, stamped with the current time."""
        ...

    async def get_entry(self, key: str) -> Optional[CacheEntry]:
        """Return the stored entry for ``key`` regardless of freshness."""
        ...

    async def delete(self, key: str) -> None:
        ...


class InMemoryCacheStore:
    """Dict-backed ``CacheStore``.

    Parameters
    ----------
    clock:
        Returns the current UTC time. Tests pass a controllable clock to
        simulate TTL expiry without waiting.
    """

    def __init__(self, clock: Clock = utcnow) -> None:
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    async def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None or not entry.is_fresh(self._clock()):
            return None
        return entry.value

    async def set(self, key: str, value: Any, ttl_hours: float) -> None:
        self._entries[key] = CacheEntry(value=value, written_at=self._clock(), ttl_hours=ttl_hours)

    async def get_entry(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    async def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def __len__(self) -> int:
        return len(self._entries)


class SqliteCacheStore:
    """``CacheStore`` persisted in the ``cache_entries`` table.

    Each call opens a short-lived connection through ``get_connection``;
    statements are single-row and complete without yielding to the loop.

    Parameters
    ----------
    db_path:
        SQLite file path. The schema is applied on construction.
    clock:
        Returns the current UTC time.
    """

    def __init__(
        self,
        db_path: str,
        clock: Clock = utcnow,
        wal_mode: bool = True,
        busy_timeout_ms: int = 5000,
    ) -> None:
        if db_path == ":memory:":
            raise ValueError("SqliteCacheStore needs a file path; use InMemoryCacheStore instead.")
        self.db_path = db_path
        self._clock = clock
        self._wal_mode = wal_mode
        self._busy_timeout_ms = busy_timeout_ms
        with self._connect() as conn:
            apply_schema(conn)

    def _connect(self):
        return get_connection(self.db_path, self._wal_mode, self._busy_timeout_ms)

    async def get(self, key: str) -> Optional[Any]:
        entry = await self.get_entry(key)
        if entry is None or not entry.is_fresh(self._clock()):
            return None
        return entry.value

    async def set(self, key: str, value: Any, ttl_hours: float) -> None:
        payload = json.dumps(value, default=str)
        written_at = ensure_aware(self._clock()).isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO cache_entries (cache_key, value_json, written_at, ttl_hours)
                VALUES (?, ?, ?, ?)
                ON CONFLICT (cache_key) DO UPDATE SET
                    value_json = excluded.value_json,
                    written_at = excluded.written_at,
                    ttl_hours  = excluded.ttl_hours
                """,
                (key, payload, written_at, ttl_hours),
            )

    async def get_entry(self, key: str) -> Optional[CacheEntry]:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT value_json, written_at, ttl_hours FROM cache_entries WHERE cache_key = ?",
                (key,),
            ).fetchone()
        if row is None:
            return None
        return CacheEntry(
            value=json.loads(row["value_json"]),
            written_at=datetime.fromisoformat(row["written_at"]),
            ttl_hours=float(row["ttl_hours"]),
        )

    async def delete(self, key: str) -> None:
        with self._connect() as conn:
            conn.execute("DELETE FROM cache_entries WHERE cache_key = ?", (key,))

    def purge_older_than(self, cutoff: datetime) -> int:
        """Delete entries written before ``cutoff``. Returns the row count."""
        with self._connect() as conn:
            cursor = conn.execute(
                "DELETE FROM cache_entries WHERE written_at < ?",
                (ensure_aware(cutoff).isoformat(),),
            )
            deleted = cursor.rowcount
        logger.info("Purged %d cache entries written before %s.", deleted, cutoff.isoformat())
        return deleted
