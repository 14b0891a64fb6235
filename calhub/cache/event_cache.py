"""
Two-Tier Event Cache

Fronts the fetch orchestrator with a memory tier (query-shaped entries,
short TTL, FIFO eviction) and a durable SQLite tier (one record per event,
long TTL). Writes go through to both tiers; reads check memory, then the
durable tier, promoting durable hits back into memory.

A broken durable tier only costs performance: every SQLite or filesystem
error is logged and treated as a miss (reads) or a no-op (writes).

Usage:
    cache = EventCache(db_path, memory_ttl=3600, persistent_ttl=86400)
    cache.start()                     # background expiry sweep

    events = await cache.get_events(query)
    if events is None:
        events = await fetch(...)
        await cache.set_events(query, events)

    await cache.close()
"""

from __future__ import annotations

import asyncio
import logging
import sqlite3
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

from calhub.cache.durable import DurableEventStore
from calhub.cache.memory import MemoryCache
from calhub.config_models import CacheSettings
from calhub.models import CacheQuery, CacheStats, NormalizedEvent, utcnow

logger = logging.getLogger(__name__)

_DURABLE_ERRORS = (sqlite3.Error, OSError)


class EventCache:
    def __init__(
        self,
        db_path: Path,
        memory_ttl: float = 3600,
        persistent_ttl: float = 86400,
        max_memory_events: int = 1000,
        cleanup_interval: float = 300,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            db_path: SQLite file for the durable tier
            memory_ttl: Seconds a memory entry stays fresh
            persistent_ttl: Seconds a durable record stays fresh
            max_memory_events: Max memory entries before FIFO eviction
            cleanup_interval: Seconds between background expiry sweeps
            clock: Returns the current UTC time
        """
        self.memory_ttl = memory_ttl
        self.persistent_ttl = persistent_ttl
        self.cleanup_interval = cleanup_interval
        self._clock = clock
        self._memory = MemoryCache(memory_ttl, max_memory_events, clock=clock)

        self._durable: DurableEventStore | None
        try:
            self._durable = DurableEventStore(db_path)
        except _DURABLE_ERRORS as e:
            logger.warning(f"Durable cache unavailable at {db_path}: {e}; running memory-only")
            self._durable = None

        self._sweep_task: asyncio.Task | None = None

        # Stats
        self._memory_hits = 0
        self._memory_misses = 0
        self._persistent_hits = 0
        self._persistent_misses = 0

    @classmethod
    def from_settings(cls, settings: CacheSettings, clock: Callable[[], datetime] = utcnow) -> EventCache:
        return cls(
            db_path=settings.resolved_db_path(),
            memory_ttl=settings.memory_ttl,
            persistent_ttl=settings.persistent_ttl,
            max_memory_events=settings.max_memory_events,
            cleanup_interval=settings.cleanup_interval,
            clock=clock,
        )

    # =========================================================================
    # Durable tier boundary
    # =========================================================================

    async def _durable_call(self, operation: str, method: str, *args, default=None):
        """Run a durable-store call off the event loop, degrading errors to ``default``."""
        if self._durable is None:
            return default
        try:
            return await asyncio.to_thread(getattr(self._durable, method), *args)
        except _DURABLE_ERRORS as e:
            logger.warning(f"Durable cache {operation} failed: {e}")
            return default

    # =========================================================================
    # Reads
    # =========================================================================

    async def get_events(self, query: CacheQuery) -> list[NormalizedEvent] | None:
        """
        Look up a query in memory, then the durable tier.

        Returns:
            Cached events, or None on a miss in both tiers
        """
        key = query.cache_key()

        events = self._memory.get(key)
        if events is not None:
            self._memory_hits += 1
            logger.debug(f"Memory cache hit for {key}")
            return events
        self._memory_misses += 1

        events = await self._durable_call("query", "query", query, self._clock())
        if events:
            self._persistent_hits += 1
            logger.debug(f"Durable cache hit for {key} ({len(events)} events), promoting")
            self._memory.set(key, events)
            return events

        self._persistent_misses += 1
        logger.debug(f"Cache miss for {key}")
        return None

    async def get_event_by_id(self, event_id: str) -> NormalizedEvent | None:
        event = self._memory.find_event(event_id)
        if event is not None:
            self._memory_hits += 1
            return event
        self._memory_misses += 1

        event = await self._durable_call("point lookup", "get", event_id, self._clock())
        if event is not None:
            self._persistent_hits += 1
            return event

        self._persistent_misses += 1
        return None

    # =========================================================================
    # Writes
    # =========================================================================

    async def set_events(self, query: CacheQuery, events: list[NormalizedEvent]) -> None:
        """Write-through to both tiers."""
        key = query.cache_key()
        evicted = self._memory.set(key, events)
        if evicted:
            logger.debug(f"Evicted {len(evicted)} memory entries")

        await self._durable_call(
            "write",
            "upsert_events",
            events,
            self._clock(),
            self.persistent_ttl,
            default=0,
        )

    # =========================================================================
    # Invalidation
    # =========================================================================

    async def invalidate_source(self, source_id: str) -> None:
        removed = self._memory.invalidate_source(source_id)
        deleted = await self._durable_call("source invalidation", "delete_source", source_id, default=0)
        logger.info(
            f"Invalidated source '{source_id}': {removed} memory entries, {deleted} durable records"
        )

    async def invalidate_expired(self) -> None:
        """Sweep both tiers of anything with expires_at <= now. Idempotent."""
        now = self._clock()
        removed = self._memory.invalidate_expired()
        deleted = await self._durable_call("expiry sweep", "delete_expired", now, default=0)
        if removed or deleted:
            logger.info(f"Expiry sweep removed {removed} memory entries, {deleted} durable records")

    async def force_cleanup(self) -> None:
        try:
            await self.invalidate_expired()
        except Exception:
            logger.exception("Error during cache cleanup")

    async def clear(self) -> None:
        self._memory.clear()
        await self._durable_call("clear", "clear")

    # =========================================================================
    # Background sweep
    # =========================================================================

    def start(self) -> None:
        """Start the periodic expiry sweep. Requires a running event loop."""
        if self._sweep_task is None or self._sweep_task.done():
            self._sweep_task = asyncio.create_task(self._sweep_loop())

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.cleanup_interval)
            await self.force_cleanup()

    @property
    def running(self) -> bool:
        return self._sweep_task is not None and not self._sweep_task.done()

    async def close(self) -> None:
        if self._sweep_task is not None:
            self._sweep_task.cancel()
            try:
                await self._sweep_task
            except asyncio.CancelledError:
                pass
            self._sweep_task = None

        if self._durable is not None:
            self._durable.close()
            self._durable = None

    # =========================================================================
    # Stats
    # =========================================================================

    async def get_stats(self) -> CacheStats:
        memory_entries = len(self._memory)
        persistent_events = await self._durable_call("count", "count", default=0)
        return CacheStats(
            memory_hits=self._memory_hits,
            memory_misses=self._memory_misses,
            persistent_hits=self._persistent_hits,
            persistent_misses=self._persistent_misses,
            memory_entries=memory_entries,
            persistent_events=persistent_events,
            total_events=memory_entries + persistent_events,
        )
