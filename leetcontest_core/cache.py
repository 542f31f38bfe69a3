"""In-memory get-or-fetch cache with per-entry TTL.

Used for judge catalog lookups only; participation writes never go through it.
"""
from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, Hashable, TypeVar

logger = logging.getLogger(__name__)

V = TypeVar("V")

DEFAULT_TTL_SECONDS = 9000.0  # 2.5 hours


@dataclass
class _Entry(Generic[V]):
    value: V
    expires_at: float


class TTLCache(Generic[V]):
    def __init__(
        self,
        default_ttl: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl = default_ttl
        self._clock = clock
        self._entries: Dict[Hashable, _Entry[V]] = {}
        self._lock = threading.Lock()

    def get(self, key: Hashable) -> V | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() > entry.expires_at:
                del self._entries[key]
                return None
            return entry.value

    def set(self, key: Hashable, value: V, ttl: float | None = None) -> None:
        expires_at = self._clock() + (self.default_ttl if ttl is None else ttl)
        with self._lock:
            self._entries[key] = _Entry(value=value, expires_at=expires_at)

    def delete(self, key: Hashable) -> None:
        with self._lock:
            self._entries.pop(key, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def get_or_fetch(
        self,
        key: Hashable,
        fetch: Callable[[], V],
        ttl: float | None = None,
    ) -> V:
        """Return the cached value, or call ``fetch`` and cache its result.

        ``None`` results are not cached. The fetch runs outside the lock, so two
        concurrent misses may both fetch; the later write wins.
        """
        cached = self.get(key)
        if cached is not None:
            return cached
        value = fetch()
        if value is not None:
            self.set(key, value, ttl)
        return value

    def cleanup(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now > e.expires_at]
            for key in expired:
                del self._entries[key]
        if expired:
            logger.debug(f"TTL cache cleanup removed {len(expired)} entries")
        return len(expired)

    def stats(self) -> Dict[str, Any]:
        now = self._clock()
        with self._lock:
            total = len(self._entries)
            active = sum(1 for e in self._entries.values() if now <= e.expires_at)
        return {"total": total, "active": active, "expired": total - active}
