"""Cache stores: bytes keyed by string, each entry with its own TTL."""

import logging
import threading
import time
from abc import ABC, abstractmethod
from collections.abc import Callable
from typing import Any

from src.core.db import ThreadLocalConnections

logger = logging.getLogger(__name__)

# Expired in-memory entries are swept on write at most this often.
SWEEP_INTERVAL_SECONDS = 60.0


class CacheStore(ABC):
    """get / set-with-TTL / delete over opaque byte payloads."""

    @abstractmethod
    def get(self, key: str) -> bytes | None:
        """Return the payload, or None when absent or expired."""

    @abstractmethod
    def set(self, key: str, payload: bytes, ttl_seconds: int) -> None:
        """Store ``payload`` for ``ttl_seconds``."""

    @abstractmethod
    def delete(self, key: str) -> None:
        """Remove ``key`` if present."""


class InMemoryCacheStore(CacheStore):
    """Process-local TTL cache with hit/miss statistics."""

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._entries: dict[str, tuple[bytes, float]] = {}  # {key: (payload, expires_at)}
        self._last_sweep = clock()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> bytes | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self.misses += 1
                return None
            payload, expires_at = entry
            if self._clock() >= expires_at:
                del self._entries[key]
                self.misses += 1
                return None
            self.hits += 1
            return payload

    def set(self, key: str, payload: bytes, ttl_seconds: int) -> None:
        with self._lock:
            now = self._clock()
            if now - self._last_sweep >= SWEEP_INTERVAL_SECONDS:
                self._sweep(now)
            self._entries[key] = (payload, now + ttl_seconds)

    def delete(self, key: str) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def purge_expired(self) -> int:
        with self._lock:
            return self._sweep(self._clock())

    def clear(self) -> None:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
        logger.info("Cleared %d cache entries", count)

    def get_stats(self) -> dict[str, Any]:
        total = self.hits + self.misses
        return {
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate_percent": (self.hits / total * 100) if total else 0.0,
            "entries": len(self._entries),
        }

    def _sweep(self, now: float) -> int:
        expired = [key for key, (_, expires_at) in self._entries.items() if now >= expires_at]
        for key in expired:
            del self._entries[key]
        self._last_sweep = now
        if expired:
            logger.debug("Swept %d expired cache entries", len(expired))
        return len(expired)

    def __repr__(self) -> str:
        stats = self.get_stats()
        return (
            f"InMemoryCacheStore(entries={stats['entries']}, "
            f"hits={stats['hits']}, misses={stats['misses']})"
        )


class SqliteCacheStore(CacheStore):
    """Cache entries in the ``cache_entries`` table created by ``init_db``."""

    def __init__(self, connections: ThreadLocalConnections, clock: Callable[[], float] = time.time) -> None:
        self._connections = connections
        self._clock = clock

    def get(self, key: str) -> bytes | None:
        conn = self._connections.get()
        row = conn.execute(
            "SELECT payload, expires_at FROM cache_entries WHERE key = ?", (key,),
        ).fetchone()
        if row is None:
            return None
        payload, expires_at = row[0], row[1]
        if self._clock() >= expires_at:
            self.delete(key)
            return None
        return bytes(payload)

    def set(self, key: str, payload: bytes, ttl_seconds: int) -> None:
        conn = self._connections.get()
        conn.execute(
            """
            INSERT INTO cache_entries (key, payload, expires_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key)
            DO UPDATE SET payload = excluded.payload, expires_at = excluded.expires_at
            """,
            (key, payload, self._clock() + ttl_seconds),
        )
        conn.commit()

    def delete(self, key: str) -> None:
        conn = self._connections.get()
        conn.execute("DELETE FROM cache_entries WHERE key = ?", (key,))
        conn.commit()

    def purge_expired(self) -> int:
        conn = self._connections.get()
        cursor = conn.execute(
            "DELETE FROM cache_entries WHERE expires_at <= ?", (self._clock(),),
        )
        conn.commit()
        return cursor.rowcount
