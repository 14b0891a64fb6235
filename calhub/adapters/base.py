"""
Calendar Adapter Base

Defines the interface every calendar format adapter (iCal, CalDAV, Google)
implements, and the registry that maps a source type to its adapter. The
orchestrator only ever talks to adapters through this interface.

Usage:
    from calhub.adapters.base import AdapterRegistry, CalendarAdapter

    registry = AdapterRegistry()
    registry.register(ICalAdapter())
    adapter = registry.get(SourceType.ICAL)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

from calhub.models import AdapterStatus, CalendarSource, DateRange, NormalizedEvent, SourceType


class UnsupportedSourceTypeError(LookupError):
    """Raised when no adapter is registered for a source's type."""

    def __init__(self, source_type: SourceType | str):
        self.source_type = source_type
        super().__init__(f"No adapter available for source type: {source_type}")


class CalendarAdapter(ABC):
    """
    Abstract base class for calendar format adapters.

    ``fetch_events`` does the network I/O and returns raw records;
    ``normalize_event`` is pure and synchronous.
    """

    @property
    @abstractmethod
    def supported_type(self) -> SourceType:
        """Return the source type this adapter serves."""
        pass

    @abstractmethod
    async def fetch_events(self, source: CalendarSource, date_range: DateRange) -> list[dict[str, Any]]:
        """
        Fetch raw events from a source within a date range.

        Args:
            source: Source to fetch
            date_range: Window to fetch

        Returns:
            List of raw event records in the adapter's native shape
        """
        pass

    @abstractmethod
    def normalize_event(self, raw_event: dict[str, Any], source_id: str) -> NormalizedEvent:
        """Convert one raw record into a NormalizedEvent."""
        pass

    @abstractmethod
    async def validate_source(self, source: CalendarSource) -> bool:
        """Check the source is properly configured and reachable."""
        pass

    @abstractmethod
    async def get_source_status(self, source: CalendarSource) -> AdapterStatus:
        """Report current health of a source."""
        pass


class AdapterRegistry:
    """Maps each SourceType to the adapter that serves it."""

    def __init__(self, adapters: list[CalendarAdapter] | None = None):
        self._adapters: dict[SourceType, CalendarAdapter] = {}
        for adapter in adapters or []:
            self.register(adapter)

    def register(self, adapter: CalendarAdapter) -> None:
        """Register an adapter, replacing any previous one for the same type."""
        self._adapters[SourceType(adapter.supported_type)] = adapter

    def get(self, source_type: SourceType | str) -> CalendarAdapter:
        try:
            return self._adapters[SourceType(source_type)]
        except (KeyError, ValueError):
            raise UnsupportedSourceTypeError(source_type) from None

    def has(self, source_type: SourceType | str) -> bool:
        try:
            return SourceType(source_type) in self._adapters
        except ValueError:
            return False

    @property
    def supported_types(self) -> list[SourceType]:
        return list(self._adapters)
