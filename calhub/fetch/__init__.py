"""
Multi-source fetching.

Components:
    limiter.py: ConcurrencyLimiter bounding simultaneous fetches
    fetcher.py: RetryingFetcher (timeout + exponential backoff per source)
    orchestrator.py: FetchOrchestrator fanning queries out across sources
    dedup.py: Event deduplication across overlapping sources
"""

from calhub.fetch.dedup import dedup_key, deduplicate_events
from calhub.fetch.fetcher import RetryingFetcher
from calhub.fetch.limiter import ConcurrencyLimiter
from calhub.fetch.orchestrator import FetchOrchestrator

__all__ = [
    "ConcurrencyLimiter",
    "FetchOrchestrator",
    "RetryingFetcher",
    "dedup_key",
    "deduplicate_events",
]
