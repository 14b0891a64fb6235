"""
Calendar Models

Data structures shared by the fetch orchestrator, the event cache and the
query engines. Adapters translate their native formats into these.

Usage:
    from calhub.models import CalendarSource, NormalizedEvent, DateRange, CacheQuery

All instants are timezone-aware datetimes. Naive values are taken to be UTC.
Epoch values (cache keys, durable rows) are integer milliseconds.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes, convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_epoch_ms(value: datetime) -> int:
    return int(round(ensure_utc(value).timestamp() * 1000))


def from_epoch_ms(value: int) -> datetime:
    return datetime.fromtimestamp(value / 1000, tz=timezone.utc)


def _parse_datetime(value: Any) -> datetime | None:
    if value is None:
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    return ensure_utc(datetime.fromisoformat(value))


class SourceType(StrEnum):
    """Adapter kinds a source can be served by."""

    ICAL = "ical"
    CALDAV = "caldav"
    GOOGLE = "google"


class SourceStatus(StrEnum):
    ACTIVE = "active"
    ERROR = "error"
    SYNCING = "syncing"


class RecurrenceFrequency(StrEnum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    YEARLY = "yearly"


@dataclass
class CalendarSource:
    """
    One configured external calendar feed.

    Owned by the caller; the core never mutates it.
    """

    id: str
    name: str
    type: SourceType
    url: str
    enabled: bool = True
    status: SourceStatus = SourceStatus.ACTIVE
    refresh_interval: int | None = None  # seconds
    last_sync: datetime | None = None

    def __post_init__(self) -> None:
        if not isinstance(self.type, SourceType):
            self.type = SourceType(self.type)
        if not isinstance(self.status, SourceStatus):
            self.status = SourceStatus(self.status)


@dataclass(frozen=True)
class Coordinates:
    lat: float
    lng: float


@dataclass(frozen=True)
class Location:
    name: str
    address: str | None = None
    coordinates: Coordinates | None = None


@dataclass(frozen=True)
class Organizer:
    name: str
    email: str | None = None


@dataclass(frozen=True)
class RecurrenceRule:
    frequency: RecurrenceFrequency
    interval: int | None = None
    until: datetime | None = None
    count: int | None = None
    by_day: tuple[str, ...] = ()
    by_month: tuple[int, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "frequency": str(self.frequency),
            "interval": self.interval,
            "until": self.until.isoformat() if self.until else None,
            "count": self.count,
            "by_day": list(self.by_day),
            "by_month": list(self.by_month),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> RecurrenceRule:
        return cls(
            frequency=RecurrenceFrequency(data["frequency"]),
            interval=data.get("interval"),
            until=_parse_datetime(data.get("until")),
            count=data.get("count"),
            by_day=tuple(data.get("by_day") or ()),
            by_month=tuple(data.get("by_month") or ()),
        )


@dataclass
class NormalizedEvent:
    """
    Calendar event normalized across source formats.

    ``id`` is globally unique, conventionally ``"<sourceId>:<rawId>"``.
    A missing ``end`` defaults to ``start``; zero-length events are valid.
    """

    id: str
    source_id: str
    title: str
    start: datetime
    end: datetime | None = None
    description: str | None = None
    location: Location | None = None
    organizer: Organizer | None = None
    categories: list[str] = field(default_factory=list)
    recurrence: RecurrenceRule | None = None
    url: str | None = None
    last_modified: datetime = field(default_factory=utcnow)

    def __post_init__(self) -> None:
        self.start = ensure_utc(self.start)
        self.end = self.start if self.end is None else ensure_utc(self.end)
        self.last_modified = ensure_utc(self.last_modified)
        if self.end < self.start:
            raise ValueError(
                f"Event {self.id} ends before it starts ({self.end.isoformat()} < {self.start.isoformat()})"
            )

    @property
    def duration_minutes(self) -> int:
        return int((self.end - self.start).total_seconds() / 60)

    def to_dict(self) -> dict[str, Any]:
        """Convert to JSON-serializable dict."""
        location = None
        if self.location:
            location = {
                "name": self.location.name,
                "address": self.location.address,
                "coordinates": (
                    {"lat": self.location.coordinates.lat, "lng": self.location.coordinates.lng}
                    if self.location.coordinates
                    else None
                ),
            }
        organizer = None
        if self.organizer:
            organizer = {"name": self.organizer.name, "email": self.organizer.email}

        return {
            "id": self.id,
            "source_id": self.source_id,
            "title": self.title,
            "description": self.description,
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "location": location,
            "organizer": organizer,
            "categories": list(self.categories),
            "recurrence": self.recurrence.to_dict() if self.recurrence else None,
            "url": self.url,
            "last_modified": self.last_modified.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> NormalizedEvent:
        location = None
        if data.get("location"):
            loc = data["location"]
            coords = loc.get("coordinates")
            location = Location(
                name=loc["name"],
                address=loc.get("address"),
                coordinates=Coordinates(coords["lat"], coords["lng"]) if coords else None,
            )
        organizer = None
        if data.get("organizer"):
            organizer = Organizer(
                name=data["organizer"]["name"],
                email=data["organizer"].get("email"),
            )
        recurrence = None
        if data.get("recurrence"):
            recurrence = RecurrenceRule.from_dict(data["recurrence"])

        return cls(
            id=data["id"],
            source_id=data["source_id"],
            title=data["title"],
            description=data.get("description"),
            start=_parse_datetime(data["start"]),
            end=_parse_datetime(data.get("end")),
            location=location,
            organizer=organizer,
            categories=list(data.get("categories") or []),
            recurrence=recurrence,
            url=data.get("url"),
            last_modified=_parse_datetime(data.get("last_modified")) or utcnow(),
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass(frozen=True)
class DateRange:
    """
    Half-open query window.

    Orchestrator entry requires ``start < end``. Equal ranges are still
    representable for internally-built windows.
    """

    start: datetime
    end: datetime

    def __post_init__(self) -> None:
        object.__setattr__(self, "start", ensure_utc(self.start))
        object.__setattr__(self, "end", ensure_utc(self.end))

    def is_valid(self) -> bool:
        return self.start < self.end

    def token(self) -> str:
        return f"{to_epoch_ms(self.start)}-{to_epoch_ms(self.end)}"


@dataclass(frozen=True)
class CacheQuery:
    """Query shape used to derive a memory-tier cache key."""

    source_ids: tuple[str, ...] | None = None
    date_range: DateRange | None = None
    keywords: tuple[str, ...] | None = None
    categories: tuple[str, ...] | None = None

    def __post_init__(self) -> None:
        for name in ("source_ids", "keywords", "categories"):
            value = getattr(self, name)
            if value is not None and not isinstance(value, tuple):
                object.__setattr__(self, name, tuple(value))

    def cache_key(self) -> str:
        """Canonical key; each dimension is a set, so order and repeats never matter."""
        parts = [
            ",".join(sorted(set(self.source_ids))) if self.source_ids else "all",
            self.date_range.token() if self.date_range else "norange",
            ",".join(sorted(set(self.keywords))) if self.keywords else "nokeywords",
            ",".join(sorted(set(self.categories))) if self.categories else "nocategories",
        ]
        return "|".join(parts)


@dataclass
class FetchResult:
    """Outcome of fetching one source. Never persisted."""

    source_id: str
    events: list[NormalizedEvent] = field(default_factory=list)
    success: bool = True
    error: str | None = None
    fetch_time: float = 0.0  # milliseconds


@dataclass
class FetchOutcome:
    """What the orchestrator (and search) hand back to callers."""

    events: list[NormalizedEvent] = field(default_factory=list)
    results: list[FetchResult] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)


@dataclass
class AdapterStatus:
    """Status reported by an adapter for one source."""

    is_healthy: bool
    last_check: datetime = field(default_factory=utcnow)
    error_message: str | None = None


@dataclass
class SourceHealth:
    source_id: str
    is_healthy: bool
    last_check: datetime
    error_message: str | None = None
    response_time: float | None = None  # milliseconds


@dataclass
class CacheStats:
    """
    Cache counters and sizes.

    ``memory_entries`` counts query-shaped entries while ``persistent_events``
    counts event records, so ``total_events`` is a rough size indicator, not
    a count of distinct events.
    """

    memory_hits: int = 0
    memory_misses: int = 0
    persistent_hits: int = 0
    persistent_misses: int = 0
    memory_entries: int = 0
    persistent_events: int = 0
    total_events: int = 0

    def to_dict(self) -> dict[str, int]:
        return {
            "memory_hits": self.memory_hits,
            "memory_misses": self.memory_misses,
            "persistent_hits": self.persistent_hits,
            "persistent_misses": self.persistent_misses,
            "memory_entries": self.memory_entries,
            "persistent_events": self.persistent_events,
            "total_events": self.total_events,
        }
