"""
Two-tier event cache.

Components:
    memory.py: Query-shaped entries with TTL and FIFO eviction
    durable.py: SQLite store, one record per event
    event_cache.py: EventCache combining both tiers with write-through,
        promotion, invalidation, expiry sweep and stats
"""

from calhub.cache.durable import DurableEventStore
from calhub.cache.event_cache import EventCache
from calhub.cache.memory import CacheEntry, MemoryCache

__all__ = [
    "CacheEntry",
    "DurableEventStore",
    "EventCache",
    "MemoryCache",
]
