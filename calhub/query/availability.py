"""
Availability Engine

Answers "am I free during these windows?" from one orchestrator call. The
fetch range is widened by 24 hours on both sides so events straddling a
window boundary are still seen.

Overlap is strict on both sides: an event ending exactly when a window
starts (or starting exactly when it ends) is not a conflict.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from datetime import datetime, timedelta

from calhub.fetch.orchestrator import FetchOrchestrator
from calhub.models import DateRange, NormalizedEvent

FETCH_BUFFER = timedelta(hours=24)


@dataclass
class SlotAvailability:
    start: datetime
    end: datetime
    available: bool
    conflicts: list[NormalizedEvent] = field(default_factory=list)


@dataclass
class AvailabilityReport:
    results: list[SlotAvailability] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


def overlaps(start1: datetime, end1: datetime, start2: datetime, end2: datetime) -> bool:
    return start1 < end2 and start2 < end1


def find_conflicts(events: Iterable[NormalizedEvent], window: DateRange) -> list[NormalizedEvent]:
    return [e for e in events if overlaps(window.start, window.end, e.start, e.end)]


def _as_window(window: DateRange | Sequence[datetime]) -> DateRange:
    if isinstance(window, DateRange):
        return window
    start, end = window
    return DateRange(start=start, end=end)


async def check_availability(
    orchestrator: FetchOrchestrator,
    windows: Iterable[DateRange | Sequence[datetime]],
    source_ids: Iterable[str] | None = None,
) -> AvailabilityReport:
    """
    Check each window for conflicting events.

    Args:
        orchestrator: Source of events
        windows: DateRanges or (start, end) pairs; each needs start < end
        source_ids: Restrict to these sources (default: all enabled)

    Returns:
        AvailabilityReport with one SlotAvailability per window, in input
        order, plus the orchestrator's errors unmodified

    Raises:
        ValueError: If any window has start >= end
    """
    slots = [_as_window(w) for w in windows]
    if not slots:
        return AvailabilityReport()

    for slot in slots:
        if not slot.is_valid():
            raise ValueError(
                f"Invalid time slot: start {slot.start.isoformat()} must be before end {slot.end.isoformat()}"
            )

    fetch_range = DateRange(
        start=min(s.start for s in slots) - FETCH_BUFFER,
        end=max(s.end for s in slots) + FETCH_BUFFER,
    )
    outcome = await orchestrator.fetch_events(fetch_range, source_ids)

    results = []
    for slot in slots:
        conflicts = find_conflicts(outcome.events, slot)
        results.append(
            SlotAvailability(
                start=slot.start,
                end=slot.end,
                available=not conflicts,
                conflicts=conflicts,
            )
        )

    return AvailabilityReport(results=results, errors=outcome.errors)
