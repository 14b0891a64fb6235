"""Tests for calhub/cache/durable.py"""

import sqlite3
from datetime import timedelta

import pytest

from calhub.cache.durable import DurableEventStore, apply_post_filters
from calhub.models import (
    CacheQuery,
    Coordinates,
    DateRange,
    Location,
    NormalizedEvent,
    Organizer,
    RecurrenceFrequency,
    RecurrenceRule,
)
from tests.conftest import BASE_TIME, build_event


@pytest.fixture
def store(temp_db):
    store = DurableEventStore(temp_db)
    yield store
    store.close()


def window(hours_from: float, hours_to: float) -> DateRange:
    return DateRange(BASE_TIME + timedelta(hours=hours_from), BASE_TIME + timedelta(hours=hours_to))


class TestUpsert:
    def test_round_trips_full_event(self, store):
        event = NormalizedEvent(
            id="src-a:full",
            source_id="src-a",
            title="Quarterly Review",
            start=BASE_TIME,
            end=BASE_TIME + timedelta(hours=2),
            description="Bring last quarter's numbers",
            location=Location("HQ", "1 Main St", Coordinates(51.5, -0.12)),
            organizer=Organizer("Dana", "dana@example.com"),
            categories=["work", "review"],
            recurrence=RecurrenceRule(RecurrenceFrequency.WEEKLY, interval=2, by_day=("MO",)),
            url="https://example.com/e/1",
            last_modified=BASE_TIME - timedelta(days=1),
        )

        store.upsert_events([event], BASE_TIME, 600)
        loaded = store.get("src-a:full", BASE_TIME)

        assert loaded == event

    def test_same_id_overwrites(self, store):
        store.upsert_events([build_event("src-a:1", title="Old")], BASE_TIME, 600)
        store.upsert_events([build_event("src-a:1", title="New")], BASE_TIME, 600)

        assert store.count() == 1
        assert store.get("src-a:1", BASE_TIME).title == "New"

    def test_empty_batch(self, store):
        assert store.upsert_events([], BASE_TIME, 600) == 0


class TestQuery:
    def test_range_overlap_is_inclusive(self, store):
        store.upsert_events(
            [
                build_event("a:before", start=BASE_TIME - timedelta(hours=2), minutes=60),
                build_event("a:touching", start=BASE_TIME - timedelta(hours=1), minutes=60),
                build_event("a:inside", start=BASE_TIME + timedelta(hours=1)),
                build_event("a:after", start=BASE_TIME + timedelta(hours=5)),
            ],
            BASE_TIME,
            600,
        )

        events = store.query(CacheQuery(date_range=window(0, 4)), BASE_TIME)

        assert [e.id for e in events] == ["a:touching", "a:inside"]

    def test_filters_by_source(self, store):
        store.upsert_events(
            [build_event("a:1", "a"), build_event("b:1", "b"), build_event("c:1", "c")], BASE_TIME, 600
        )

        events = store.query(CacheQuery(source_ids=("a", "c")), BASE_TIME)

        assert {e.source_id for e in events} == {"a", "c"}

    def test_expired_rows_hidden(self, store):
        store.upsert_events([build_event()], BASE_TIME, 60)

        assert store.query(CacheQuery(), BASE_TIME + timedelta(seconds=59)) != []
        assert store.query(CacheQuery(), BASE_TIME + timedelta(seconds=60)) == []
        assert store.get("src-a:1", BASE_TIME + timedelta(seconds=60)) is None

    def test_ordered_by_start(self, store):
        store.upsert_events(
            [build_event("a:2", start=BASE_TIME + timedelta(hours=2)), build_event("a:1")], BASE_TIME, 600
        )

        assert [e.id for e in store.query(CacheQuery(), BASE_TIME)] == ["a:1", "a:2"]


class TestPostFilters:
    def test_keywords_any_match_title_or_description(self):
        events = [
            build_event("a:1", title="Morning Yoga"),
            build_event("a:2", title="Meetup", description="Bring a yoga mat"),
            build_event("a:3", title="Chess"),
        ]

        result = apply_post_filters(events, CacheQuery(keywords=("YOGA", "piano")))

        assert [e.id for e in result] == ["a:1", "a:2"]

    def test_categories_exact_membership(self):
        events = [
            build_event("a:1", categories=["music"]),
            build_event("a:2", categories=["music-festival"]),
        ]

        result = apply_post_filters(events, CacheQuery(categories=("music",)))

        assert [e.id for e in result] == ["a:1"]


class TestDeletes:
    def test_delete_source(self, store):
        store.upsert_events([build_event("a:1", "a"), build_event("b:1", "b")], BASE_TIME, 600)

        assert store.delete_source("a") == 1
        assert store.count() == 1

    def test_delete_expired(self, store):
        store.upsert_events([build_event("a:1")], BASE_TIME, 60)
        store.upsert_events([build_event("a:2")], BASE_TIME, 600)

        assert store.delete_expired(BASE_TIME + timedelta(seconds=60)) == 1
        assert store.delete_expired(BASE_TIME + timedelta(seconds=60)) == 0
        assert store.count() == 1

    def test_clear(self, store):
        store.upsert_events([build_event()], BASE_TIME, 600)
        store.clear()
        assert store.count() == 0

    def test_closed_store_raises(self, temp_db):
        store = DurableEventStore(temp_db)
        store.close()

        with pytest.raises(sqlite3.ProgrammingError):
            store.count()
