"""
Fetch Orchestrator

Fans a date-range query out to every enabled source through the concurrency
limiter, isolates per-source failure, deduplicates the merged result and
writes it through to the event cache.

Flow:
    resolve targets -> cache lookup -> limiter x RetryingFetcher per source
    -> deduplicate -> cache write-through -> FetchOutcome

A failed source shows up as ``"<sourceId>: <message>"`` in ``errors``; it
never raises past this module.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterable

from calhub.cache.event_cache import EventCache
from calhub.fetch.dedup import deduplicate_events
from calhub.fetch.fetcher import RetryingFetcher
from calhub.fetch.limiter import ConcurrencyLimiter
from calhub.models import CacheQuery, CalendarSource, DateRange, FetchOutcome, FetchResult

logger = logging.getLogger(__name__)

NO_SOURCES_ERROR = "No enabled calendar sources available"
INVALID_RANGE_ERROR = "Invalid date range: start must be before end"


class FetchOrchestrator:
    def __init__(
        self,
        cache: EventCache,
        fetcher: RetryingFetcher,
        limiter: ConcurrencyLimiter,
        sources: dict[str, CalendarSource] | None = None,
    ):
        self.cache = cache
        self.fetcher = fetcher
        self.limiter = limiter
        # Shared with CalendarManager, which owns add/remove
        self.sources: dict[str, CalendarSource] = sources if sources is not None else {}

    def target_sources(self, source_ids: Iterable[str] | None = None) -> list[CalendarSource]:
        """Enabled sources, narrowed to ``source_ids`` when given."""
        enabled = [s for s in self.sources.values() if s.enabled]
        wanted = set(source_ids or ())
        if wanted:
            return [s for s in enabled if s.id in wanted]
        return enabled

    async def fetch_events(
        self,
        date_range: DateRange,
        source_ids: Iterable[str] | None = None,
    ) -> FetchOutcome:
        if not date_range.is_valid():
            return FetchOutcome(errors=[INVALID_RANGE_ERROR])

        targets = self.target_sources(source_ids)
        if not targets:
            return FetchOutcome(errors=[NO_SOURCES_ERROR])

        query = CacheQuery(source_ids=tuple(s.id for s in targets), date_range=date_range)

        cached = await self.cache.get_events(query)
        if cached is not None:
            return FetchOutcome(
                events=cached,
                results=[
                    FetchResult(
                        source_id=source.id,
                        events=[e for e in cached if e.source_id == source.id],
                        success=True,
                        fetch_time=0.0,
                    )
                    for source in targets
                ],
            )

        results = await asyncio.gather(
            *(self.limiter.submit(self.fetcher.fetch, source, date_range) for source in targets)
        )

        collected = []
        errors = []
        for result in results:
            if result.success:
                collected.extend(result.events)
            else:
                errors.append(f"{result.source_id}: {result.error}")

        events = deduplicate_events(collected)

        if events:
            await self.cache.set_events(query, events)

        logger.info(
            f"Fetched {len(events)} events from {len(targets) - len(errors)}/{len(targets)} sources"
        )
        return FetchOutcome(events=events, results=list(results), errors=errors)

    async def refresh(self, source: CalendarSource, date_range: DateRange) -> FetchResult:
        """Bypass the cache for one source and repopulate it on success."""
        await self.cache.invalidate_source(source.id)

        result = await self.limiter.submit(self.fetcher.fetch, source, date_range)

        if result.success and result.events:
            query = CacheQuery(source_ids=(source.id,), date_range=date_range)
            await self.cache.set_events(query, result.events)

        return result
