"""
Event deduplication.

Overlapping sources often publish the same event. Events are collapsed on a
composite key of title, start, end and location name; the copy with the
strictly later ``last_modified`` survives.
"""

from __future__ import annotations

from collections.abc import Iterable

from calhub.models import NormalizedEvent, to_epoch_ms

NO_LOCATION = "no-location"


def dedup_key(event: NormalizedEvent) -> str:
    location = NO_LOCATION
    if event.location and event.location.name:
        location = event.location.name.lower().strip()
    parts = [
        event.title.lower().strip(),
        str(to_epoch_ms(event.start)),
        str(to_epoch_ms(event.end)),
        location,
    ]
    return "|".join(parts)


def deduplicate_events(events: Iterable[NormalizedEvent]) -> list[NormalizedEvent]:
    """Collapse duplicates and return the survivors sorted by start."""
    seen: dict[str, NormalizedEvent] = {}

    for event in events:
        key = dedup_key(event)
        existing = seen.get(key)
        if existing is None or event.last_modified > existing.last_modified:
            seen[key] = event

    return sorted(seen.values(), key=lambda e: e.start)
