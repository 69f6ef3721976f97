"""In-memory cache for match result sets.

Keys are ``(project id, project updated_at)`` so any project edit naturally
misses the old entry. A TTL of 0 disables caching entirely. Superseded
entries are never read again, so expired entries are swept on every write
and the map is capped at ``max_entries``.
"""
from __future__ import annotations

import logging
import time
from typing import Any, Callable, Hashable, Protocol

logger = logging.getLogger(__name__)

DEFAULT_MAX_ENTRIES = 1024


class MatchCache(Protocol):
    ttl: float

    def get(self, key: Hashable) -> Any | None:
        ...

    def set(self, key: Hashable, value: Any) -> None:
        ...

    def invalidate_project(self, project_id: int) -> None:
        ...


class TTLMatchCache:
    """Process-local cache with per-entry expiry."""

    def __init__(
        self,
        ttl: float,
        clock: Callable[[], float] = time.monotonic,
        max_entries: int = DEFAULT_MAX_ENTRIES,
    ) -> None:
        self.ttl = ttl
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[Hashable, tuple[Any, float]] = {}

    @property
    def enabled(self) -> bool:
        return self.ttl > 0

    def get(self, key: Hashable) -> Any | None:
        """Cached value if present and not expired."""
        if not self.enabled:
            return None
        entry = self._entries.get(key)
        if entry is None:
            return None
        value, stored_at = entry
        if self._clock() - stored_at < self.ttl:
            return value
        # Expired
        del self._entries[key]
        return None

    def set(self, key: Hashable, value: Any) -> None:
        if not self.enabled:
            return
        self.cleanup_expired()
        self._entries.pop(key, None)
        while len(self._entries) >= self.max_entries:
            # Dicts keep insertion order; the first entry is the oldest write
            oldest = next(iter(self._entries))
            del self._entries[oldest]
        self._entries[key] = (value, self._clock())

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def invalidate_project(self, project_id: int) -> None:
        """Drop every revision cached for one project."""
        for key in [k for k in self._entries if isinstance(k, tuple) and k and k[0] == project_id]:
            del self._entries[key]

    def clear(self) -> None:
        self._entries.clear()

    def cleanup_expired(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        expired = [k for k, (_, ts) in self._entries.items() if now - ts >= self.ttl]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug(f"Evicted {len(expired)} expired match result sets")
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)
