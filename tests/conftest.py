"""Shared test fixtures for calhub tests.

This module provides common fixtures used across all test modules:
- Database isolation with temporary files
- A controllable clock for TTL tests
- Event and source factories
- A scriptable in-memory calendar adapter

Usage:
    def test_something(temp_db, make_event):
        # temp_db is automatically cleaned up after the test
        ...
"""

import asyncio
import os
import tempfile
from collections.abc import AsyncGenerator, Generator
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest
import pytest_asyncio

from calhub.adapters.base import CalendarAdapter
from calhub.cache.event_cache import EventCache
from calhub.models import (
    AdapterStatus,
    CalendarSource,
    Location,
    NormalizedEvent,
    SourceType,
)


# ─────────────────────────────────────────────────────────────────────────────
# Path Constants
# ─────────────────────────────────────────────────────────────────────────────

PROJECT_ROOT = Path(__file__).parent.parent

BASE_TIME = datetime(2025, 3, 10, 12, 0, tzinfo=timezone.utc)


# ─────────────────────────────────────────────────────────────────────────────
# Database Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def temp_db() -> Generator[Path, None, None]:
    """Create a temporary database file for testing.

    The database file is automatically deleted after the test completes.

    Yields:
        Path to the temporary database file
    """
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = Path(f.name)

    yield db_path

    # Cleanup
    if db_path.exists():
        os.unlink(db_path)


# ─────────────────────────────────────────────────────────────────────────────
# Clock Fixtures
# ─────────────────────────────────────────────────────────────────────────────


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime = BASE_TIME):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ─────────────────────────────────────────────────────────────────────────────
# Event / Source Fixtures
# ─────────────────────────────────────────────────────────────────────────────


def build_event(
    event_id: str = "src-a:1",
    source_id: str = "src-a",
    title: str = "Team Standup",
    start: datetime = BASE_TIME,
    minutes: int = 60,
    location: str | None = None,
    address: str | None = None,
    **kwargs,
) -> NormalizedEvent:
    kwargs.setdefault("last_modified", BASE_TIME)
    return NormalizedEvent(
        id=event_id,
        source_id=source_id,
        title=title,
        start=start,
        end=start + timedelta(minutes=minutes),
        location=Location(name=location, address=address) if location else None,
        **kwargs,
    )


@pytest.fixture
def make_event():
    """Factory for NormalizedEvent with sensible defaults."""
    return build_event


@pytest.fixture
def make_source():
    def _make(source_id: str = "src-a", source_type: SourceType = SourceType.ICAL, enabled: bool = True):
        return CalendarSource(
            id=source_id,
            name=source_id.replace("-", " ").title(),
            type=source_type,
            url=f"https://calendars.example.com/{source_id}.ics",
            enabled=enabled,
        )

    return _make


# ─────────────────────────────────────────────────────────────────────────────
# Adapter Fixtures
# ─────────────────────────────────────────────────────────────────────────────


class FakeAdapter(CalendarAdapter):
    """Adapter whose per-source behavior is scripted by the test.

    Raw records are dicts with ``uid``, ``title``, ``start`` and optionally
    ``end``, ``description``, ``location``, ``address``, ``categories``,
    ``last_modified``.
    """

    def __init__(self, source_type: SourceType = SourceType.ICAL, delay: float = 0.0):
        self._type = SourceType(source_type)
        self.delay = delay
        self.raw_events: dict[str, list[dict]] = {}
        self.errors: dict[str, Exception] = {}
        self.transient_failures: dict[str, int] = {}
        self.calls: list[str] = []
        self.active = 0
        self.peak = 0
        self.valid: bool | Exception = True
        self.healthy = True
        self.status_error: Exception | None = None

    @property
    def supported_type(self) -> SourceType:
        return self._type

    async def fetch_events(self, source, date_range):
        self.calls.append(source.id)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if source.id in self.errors:
                raise self.errors[source.id]
            if self.transient_failures.get(source.id, 0) > 0:
                self.transient_failures[source.id] -= 1
                raise ConnectionError("connection reset")
            return list(self.raw_events.get(source.id, []))
        finally:
            self.active -= 1

    def normalize_event(self, raw_event, source_id):
        location = None
        if raw_event.get("location"):
            location = Location(name=raw_event["location"], address=raw_event.get("address"))
        return NormalizedEvent(
            id=f"{source_id}:{raw_event['uid']}",
            source_id=source_id,
            title=raw_event["title"],
            start=raw_event["start"],
            end=raw_event.get("end"),
            description=raw_event.get("description"),
            location=location,
            categories=list(raw_event.get("categories", [])),
            last_modified=raw_event.get("last_modified", BASE_TIME),
        )

    async def validate_source(self, source):
        if isinstance(self.valid, Exception):
            raise self.valid
        return self.valid

    async def get_source_status(self, source):
        if self.status_error is not None:
            raise self.status_error
        return AdapterStatus(
            is_healthy=self.healthy,
            error_message=None if self.healthy else "Feed unreachable",
        )


@pytest.fixture
def fake_adapter() -> FakeAdapter:
    return FakeAdapter()


def raw_event(uid: str, title: str, start: datetime = BASE_TIME, minutes: int = 60, **kwargs) -> dict:
    return {"uid": uid, "title": title, "start": start, "end": start + timedelta(minutes=minutes), **kwargs}


@pytest.fixture
def make_raw_event():
    return raw_event


# ─────────────────────────────────────────────────────────────────────────────
# Cache Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def event_cache(tmp_path: Path, clock: FakeClock) -> AsyncGenerator[EventCache, None]:
    """EventCache on a temporary database, driven by the fake clock."""
    cache = EventCache(tmp_path / "cache.db", memory_ttl=60, persistent_ttl=600, clock=clock)

    yield cache

    await cache.close()


# ─────────────────────────────────────────────────────────────────────────────
# Async Fixtures
# ─────────────────────────────────────────────────────────────────────────────


@pytest.fixture
def anyio_backend() -> str:
    """Backend for async tests."""
    return "asyncio"
