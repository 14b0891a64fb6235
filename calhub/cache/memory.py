"""
Memory tier of the event cache.

Keyed by canonical query shape (see CacheQuery.cache_key). Entries are
immutable once written; a read is a hit only while ``expires_at`` is strictly
in the future. Stale entries stay until the sweep removes them.

Eviction is insertion order (FIFO) on ``cached_at``, not LRU: reads never
reorder entries.
"""

from __future__ import annotations

import threading
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime, timedelta

from calhub.models import NormalizedEvent, utcnow


@dataclass(frozen=True)
class CacheEntry:
    key: str
    events: tuple[NormalizedEvent, ...]
    cached_at: datetime
    expires_at: datetime

    def is_fresh(self, now: datetime) -> bool:
        return self.expires_at > now

    def has_source(self, source_id: str) -> bool:
        return any(e.source_id == source_id for e in self.events)


class MemoryCache:
    """Lock-guarded map of query key to CacheEntry."""

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int,
        clock: Callable[[], datetime] = utcnow,
    ):
        self.ttl = timedelta(seconds=ttl_seconds)
        self.max_entries = max_entries
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def get(self, key: str) -> list[NormalizedEvent] | None:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
        if entry is not None and entry.is_fresh(now):
            return list(entry.events)
        return None

    def set(self, key: str, events: list[NormalizedEvent]) -> list[str]:
        """
        Store events under key and enforce the size limit.

        Returns:
            Keys evicted to make room
        """
        now = self._clock()
        entry = CacheEntry(
            key=key,
            events=tuple(events),
            cached_at=now,
            expires_at=now + self.ttl,
        )
        with self._lock:
            # Rewriting a key makes it the newest entry
            self._entries.pop(key, None)
            self._entries[key] = entry
            return self._evict_oldest()

    def _evict_oldest(self) -> list[str]:
        """Must hold _lock."""
        overflow = len(self._entries) - self.max_entries
        if overflow <= 0:
            return []
        # sorted() is stable, so equal timestamps keep insertion order
        oldest = sorted(self._entries.values(), key=lambda e: e.cached_at)[:overflow]
        for entry in oldest:
            del self._entries[entry.key]
        return [entry.key for entry in oldest]

    def find_event(self, event_id: str) -> NormalizedEvent | None:
        """Linear scan of unexpired entries for an event id."""
        now = self._clock()
        with self._lock:
            entries = list(self._entries.values())
        for entry in entries:
            if not entry.is_fresh(now):
                continue
            for event in entry.events:
                if event.id == event_id:
                    return event
        return None

    def invalidate_source(self, source_id: str) -> int:
        with self._lock:
            doomed = [k for k, e in self._entries.items() if e.has_source(source_id)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def invalidate_expired(self) -> int:
        now = self._clock()
        with self._lock:
            doomed = [k for k, e in self._entries.items() if not e.is_fresh(now)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)
