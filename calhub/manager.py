"""
Calendar Manager

Facade over the fetch orchestrator, event cache and query engines. Owns the
source registry and the adapter registry, and is what tool handlers or an
HTTP layer call into.

Usage:
    manager = CalendarManager.from_config(load_config())
    manager.register_adapter(ICalAdapter())
    manager.start()

    outcome = await manager.fetch_events(DateRange(start, end))
    report = await manager.check_availability([(nine, ten), (two, three)])
    details = await manager.get_event_details("city-events:abc123")

    await manager.close()
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import datetime, timedelta

from calhub.adapters.base import AdapterRegistry, CalendarAdapter, UnsupportedSourceTypeError
from calhub.cache.event_cache import EventCache
from calhub.config_models import CalhubConfig
from calhub.fetch.fetcher import RetryingFetcher
from calhub.fetch.limiter import ConcurrencyLimiter
from calhub.fetch.orchestrator import NO_SOURCES_ERROR, FetchOrchestrator
from calhub.models import (
    CalendarSource,
    DateRange,
    FetchOutcome,
    FetchResult,
    NormalizedEvent,
    SourceHealth,
    SourceStatus,
    utcnow,
)
from calhub.query.availability import AvailabilityReport, check_availability
from calhub.query.search import search_events

logger = logging.getLogger(__name__)

# Window searched when an event id isn't in the cache
LOOKBACK = timedelta(days=90)
LOOKAHEAD = timedelta(days=365)

EVENT_NOT_FOUND_ERROR = "Event not found in any configured calendar sources"


class SourceNotFoundError(KeyError):
    def __init__(self, source_id: str):
        self.source_id = source_id
        super().__init__(f"Source not found: {source_id}")

    def __str__(self) -> str:
        return self.args[0]


@dataclass
class EventDetails:
    event: NormalizedEvent | None
    found: bool
    error: str | None = None


@dataclass
class SourceStatusReport:
    status: SourceStatus
    last_sync: datetime | None = None
    error: str | None = None


@dataclass
class SourceTestResult:
    success: bool
    error: str | None = None
    response_time: float | None = None  # milliseconds


class CalendarManager:
    def __init__(
        self,
        cache: EventCache,
        registry: AdapterRegistry | None = None,
        max_concurrent_fetches: int = 5,
        fetch_timeout: float = 30.0,
        retry_attempts: int = 3,
        retry_delay: float = 1.0,
    ):
        self.cache = cache
        self.registry = registry or AdapterRegistry()
        self._sources: dict[str, CalendarSource] = {}
        self.limiter = ConcurrencyLimiter(max_concurrent_fetches)
        self.fetcher = RetryingFetcher(
            self.registry,
            timeout=fetch_timeout,
            retry_attempts=retry_attempts,
            retry_delay=retry_delay,
        )
        self.orchestrator = FetchOrchestrator(cache, self.fetcher, self.limiter, self._sources)

    @classmethod
    def from_config(
        cls,
        config: CalhubConfig,
        adapters: Iterable[CalendarAdapter] | None = None,
    ) -> CalendarManager:
        manager = cls(
            cache=EventCache.from_settings(config.cache),
            registry=AdapterRegistry(list(adapters or [])),
            max_concurrent_fetches=config.fetch.max_concurrent_fetches,
            fetch_timeout=config.fetch.fetch_timeout,
            retry_attempts=config.fetch.retry_attempts,
            retry_delay=config.fetch.retry_delay,
        )
        for source_settings in config.sources:
            manager.add_source(source_settings.to_source())
        return manager

    def start(self) -> None:
        """Start background cache maintenance."""
        self.cache.start()

    async def close(self) -> None:
        await self.cache.close()

    # =========================================================================
    # Adapters and sources
    # =========================================================================

    def register_adapter(self, adapter: CalendarAdapter) -> None:
        self.registry.register(adapter)

    def add_source(self, source: CalendarSource) -> None:
        self._sources[source.id] = source
        logger.info(f"Added source '{source.id}' ({source.type})")

    async def remove_source(self, source_id: str) -> None:
        self._sources.pop(source_id, None)
        await self.cache.invalidate_source(source_id)
        logger.info(f"Removed source '{source_id}'")

    async def update_source(self, source: CalendarSource) -> bool:
        """Replace a known source and drop its cached events. Unknown ids are ignored."""
        if source.id not in self._sources:
            return False
        self._sources[source.id] = source
        await self.cache.invalidate_source(source.id)
        logger.info(f"Updated source '{source.id}'")
        return True

    def get_sources(self) -> list[CalendarSource]:
        return list(self._sources.values())

    def get_source(self, source_id: str) -> CalendarSource | None:
        return self._sources.get(source_id)

    async def reload_sources(self) -> None:
        """Drop every cached event so the next queries refetch."""
        await self.cache.clear()

    # =========================================================================
    # Queries
    # =========================================================================

    async def fetch_events(
        self,
        date_range: DateRange,
        source_ids: Iterable[str] | None = None,
    ) -> FetchOutcome:
        return await self.orchestrator.fetch_events(date_range, source_ids)

    async def check_availability(
        self,
        windows: Iterable[DateRange | Sequence[datetime]],
        source_ids: Iterable[str] | None = None,
    ) -> AvailabilityReport:
        return await check_availability(self.orchestrator, windows, source_ids)

    async def search_events(
        self,
        date_range: DateRange,
        keywords: list[str] | None = None,
        logic: str = "AND",
        categories: list[str] | None = None,
        location: str | None = None,
        source_ids: list[str] | None = None,
    ) -> FetchOutcome:
        return await search_events(
            self.orchestrator,
            date_range,
            keywords=keywords,
            logic=logic,
            categories=categories,
            location=location,
            source_ids=source_ids,
        )

    async def get_event_details(self, event_id: str) -> EventDetails:
        """
        Find one event by id.

        Tries the cache point lookup first, then fetches a wide window from
        every enabled source and scans it.
        """
        try:
            cached = await self.cache.get_event_by_id(event_id)
            if cached is not None:
                return EventDetails(event=cached, found=True)

            if not self.orchestrator.target_sources():
                return EventDetails(event=None, found=False, error=NO_SOURCES_ERROR)

            now = utcnow()
            outcome = await self.orchestrator.fetch_events(DateRange(now - LOOKBACK, now + LOOKAHEAD))

            if outcome.errors and not outcome.events:
                first = outcome.errors[0]
                message = first.split(":", 1)[1].strip() if ":" in first else first
                return EventDetails(event=None, found=False, error=message)

            for event in outcome.events:
                if event.id == event_id:
                    return EventDetails(event=event, found=True)

            return EventDetails(event=None, found=False, error=EVENT_NOT_FOUND_ERROR)
        except Exception as e:
            logger.exception(f"Event lookup failed for '{event_id}'")
            return EventDetails(event=None, found=False, error=str(e) or "Unknown error occurred")

    # =========================================================================
    # Cache control
    # =========================================================================

    async def invalidate_source(self, source_id: str) -> None:
        await self.cache.invalidate_source(source_id)

    async def refresh_source(self, source_id: str, date_range: DateRange) -> FetchResult:
        """
        Refetch one source, bypassing the cache.

        Raises:
            SourceNotFoundError: If the source isn't registered
        """
        source = self._sources.get(source_id)
        if source is None:
            raise SourceNotFoundError(source_id)

        result = await self.orchestrator.refresh(source, date_range)
        logger.info(
            f"Refreshed source '{source_id}': "
            + (f"{len(result.events)} events" if result.success else f"failed ({result.error})")
        )
        return result

    # =========================================================================
    # Health
    # =========================================================================

    async def _check_health(self, source: CalendarSource) -> SourceHealth:
        try:
            adapter = self.registry.get(source.type)
        except UnsupportedSourceTypeError as e:
            return SourceHealth(
                source_id=source.id,
                is_healthy=False,
                last_check=utcnow(),
                error_message=str(e),
            )

        start_time = time.monotonic()
        try:
            status = await adapter.get_source_status(source)
            return SourceHealth(
                source_id=source.id,
                is_healthy=status.is_healthy,
                last_check=status.last_check,
                error_message=status.error_message,
                response_time=(time.monotonic() - start_time) * 1000,
            )
        except Exception as e:
            return SourceHealth(
                source_id=source.id,
                is_healthy=False,
                last_check=utcnow(),
                error_message=str(e) or "Unknown error",
                response_time=(time.monotonic() - start_time) * 1000,
            )

    async def get_sources_health(self) -> list[SourceHealth]:
        return list(await asyncio.gather(*(self._check_health(s) for s in self._sources.values())))

    async def get_source_health(self, source_id: str) -> SourceHealth | None:
        source = self._sources.get(source_id)
        if source is None:
            return None
        return await self._check_health(source)

    async def get_source_status(self, source_id: str) -> SourceStatusReport:
        health = await self.get_source_health(source_id)
        if health is None:
            return SourceStatusReport(status=SourceStatus.ERROR, error="Source not found")

        return SourceStatusReport(
            status=SourceStatus.ACTIVE if health.is_healthy else SourceStatus.ERROR,
            last_sync=health.last_check,
            error=health.error_message,
        )

    async def validate_source(self, source: CalendarSource) -> bool:
        """
        Ask the source's adapter whether the configuration works.

        Raises:
            UnsupportedSourceTypeError: If no adapter serves the source type
        """
        adapter = self.registry.get(source.type)
        try:
            return await adapter.validate_source(source)
        except Exception as e:
            logger.warning(f"Validation of source '{source.id}' raised: {e}")
            return False

    async def test_source(self, source: CalendarSource) -> SourceTestResult:
        try:
            adapter = self.registry.get(source.type)
        except UnsupportedSourceTypeError as e:
            return SourceTestResult(success=False, error=str(e))

        start_time = time.monotonic()
        try:
            valid = await adapter.validate_source(source)
        except Exception as e:
            return SourceTestResult(
                success=False,
                error=str(e) or "Unknown error",
                response_time=(time.monotonic() - start_time) * 1000,
            )

        response_time = (time.monotonic() - start_time) * 1000
        if valid:
            return SourceTestResult(success=True, response_time=response_time)
        return SourceTestResult(success=False, error="Source validation failed", response_time=response_time)
