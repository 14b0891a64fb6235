"""
Search/Filter Engine

Runs one orchestrator call, then narrows the events in a fixed order:
keywords, categories, location. Each stage filters the previous stage's
output.

Usage:
    outcome = await search_events(
        orchestrator, date_range,
        keywords=["yoga", "pilates"], logic="OR",
        location="Main Street",
    )
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from calhub.fetch.orchestrator import FetchOrchestrator
from calhub.models import DateRange, FetchOutcome, NormalizedEvent

logger = logging.getLogger(__name__)

SEARCH_LOGIC = ("AND", "OR")

_WORD_SPLIT = re.compile(r"[\s,]+")
_MIN_WORD_LENGTH = 3


def _search_text(event: NormalizedEvent) -> str:
    return " ".join([event.title or "", event.description or "", *event.categories]).lower()


def filter_by_keywords(
    events: list[NormalizedEvent],
    keywords: Iterable[str],
    logic: str = "AND",
) -> list[NormalizedEvent]:
    """AND requires every keyword in title/description/categories, OR at least one."""
    normalized = [k.lower().strip() for k in keywords]
    if not normalized:
        return events
    match = all if logic == "AND" else any
    return [e for e in events if match(k in _search_text(e) for k in normalized)]


def filter_by_categories(events: list[NormalizedEvent], categories: Iterable[str]) -> list[NormalizedEvent]:
    wanted = [c.lower().strip() for c in categories]
    if not wanted:
        return events

    def matches(event: NormalizedEvent) -> bool:
        labels = [c.lower().strip() for c in event.categories]
        return any(w in label for w in wanted for label in labels)

    return [e for e in events if matches(e)]


def location_matches(event: NormalizedEvent, location: str) -> bool:
    """
    Address-first location matching.

    Tries substring containment either way against the address, then the
    name, then falls back to word-level matching on the address so that
    "Building A" finds "123 Main St, Building A".
    """
    if not event.location:
        return False

    wanted = location.lower().strip()
    name = (event.location.name or "").lower()
    address = (event.location.address or "").lower()

    if address and (address in wanted or wanted in address):
        return True
    if name and (name in wanted or wanted in name):
        return True

    if address:
        address_words = [w for w in _WORD_SPLIT.split(address) if len(w) >= _MIN_WORD_LENGTH]
        for word in _WORD_SPLIT.split(wanted):
            if len(word) < _MIN_WORD_LENGTH:
                continue
            for address_word in address_words:
                if word in address_word or address_word in word:
                    return True

    return False


def filter_by_location(events: list[NormalizedEvent], location: str) -> list[NormalizedEvent]:
    return [e for e in events if location_matches(e, location)]


async def search_events(
    orchestrator: FetchOrchestrator,
    date_range: DateRange,
    keywords: list[str] | None = None,
    logic: str = "AND",
    categories: list[str] | None = None,
    location: str | None = None,
    source_ids: list[str] | None = None,
) -> FetchOutcome:
    """
    Search events across sources.

    Args:
        orchestrator: Source of events
        date_range: Window to search
        keywords: Keywords matched against title, description and categories
        logic: "AND" (all keywords) or "OR" (any keyword)
        categories: Category substrings; any match keeps the event
        location: Location text matched against name/address
        source_ids: Restrict to these sources (default: all enabled)

    Returns:
        FetchOutcome with filtered events and the orchestrator's results/errors

    Raises:
        ValueError: If logic is not AND or OR
    """
    logic = (logic or "AND").upper()
    if logic not in SEARCH_LOGIC:
        raise ValueError(f"Invalid search logic: {logic}. Use AND or OR")

    try:
        outcome = await orchestrator.fetch_events(date_range, source_ids)

        events = outcome.events
        if keywords:
            events = filter_by_keywords(events, keywords, logic)
        if categories:
            events = filter_by_categories(events, categories)
        if location and location.strip():
            events = filter_by_location(events, location)

        return FetchOutcome(events=events, results=outcome.results, errors=outcome.errors)
    except Exception as e:
        logger.exception("Event search failed")
        return FetchOutcome(errors=[str(e) or "Unknown search error"])
