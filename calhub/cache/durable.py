"""
Durable tier of the event cache (SQLite).

One row per event id, independent of any query shape, so the same store
serves both range queries and point lookups. Range and source filtering run
in SQL; keyword and category filtering run in Python after retrieval.

All methods are synchronous and serialized on one connection; the async
EventCache calls them through asyncio.to_thread.

Schema:
    events(id PK, source_id, title, description, start_ms, end_ms,
           location_*, organizer_*, categories JSON, recurrence JSON, url,
           last_modified_ms, cached_at_ms, expires_at_ms)
"""

from __future__ import annotations

import json
import logging
import sqlite3
import threading
from collections.abc import Iterable
from datetime import datetime
from pathlib import Path

from calhub.models import (
    CacheQuery,
    Coordinates,
    Location,
    NormalizedEvent,
    Organizer,
    RecurrenceRule,
    from_epoch_ms,
    to_epoch_ms,
)

logger = logging.getLogger(__name__)


_SCHEMA = """
    CREATE TABLE IF NOT EXISTS events (
        id TEXT PRIMARY KEY,
        source_id TEXT NOT NULL,
        title TEXT NOT NULL,
        description TEXT,
        start_ms INTEGER NOT NULL,
        end_ms INTEGER NOT NULL,
        location_name TEXT,
        location_address TEXT,
        location_lat REAL,
        location_lng REAL,
        organizer_name TEXT,
        organizer_email TEXT,
        categories TEXT,
        recurrence TEXT,
        url TEXT,
        last_modified_ms INTEGER NOT NULL,
        cached_at_ms INTEGER NOT NULL,
        expires_at_ms INTEGER NOT NULL
    )
"""

_INDEXES = [
    "CREATE INDEX IF NOT EXISTS idx_events_source_id ON events(source_id)",
    "CREATE INDEX IF NOT EXISTS idx_events_start_ms ON events(start_ms)",
    "CREATE INDEX IF NOT EXISTS idx_events_end_ms ON events(end_ms)",
    "CREATE INDEX IF NOT EXISTS idx_events_expires_at_ms ON events(expires_at_ms)",
]

_UPSERT = """
    INSERT OR REPLACE INTO events (
        id, source_id, title, description, start_ms, end_ms,
        location_name, location_address, location_lat, location_lng,
        organizer_name, organizer_email, categories, recurrence, url,
        last_modified_ms, cached_at_ms, expires_at_ms
    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
"""


def get_connection(db_path: Path) -> sqlite3.Connection:
    """
    Open the cache database, creating tables if needed.

    Returns:
        SQLite connection with row_factory set
    """
    db_path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(db_path), check_same_thread=False)
    conn.row_factory = sqlite3.Row

    cursor = conn.cursor()
    cursor.execute(_SCHEMA)
    for statement in _INDEXES:
        cursor.execute(statement)
    conn.commit()
    return conn


def event_to_row(event: NormalizedEvent, cached_at_ms: int, expires_at_ms: int) -> tuple:
    location = event.location
    coordinates = location.coordinates if location else None
    return (
        event.id,
        event.source_id,
        event.title,
        event.description,
        to_epoch_ms(event.start),
        to_epoch_ms(event.end),
        location.name if location else None,
        location.address if location else None,
        coordinates.lat if coordinates else None,
        coordinates.lng if coordinates else None,
        event.organizer.name if event.organizer else None,
        event.organizer.email if event.organizer else None,
        json.dumps(list(event.categories)),
        json.dumps(event.recurrence.to_dict()) if event.recurrence else None,
        event.url,
        to_epoch_ms(event.last_modified),
        cached_at_ms,
        expires_at_ms,
    )


def row_to_event(row: sqlite3.Row) -> NormalizedEvent:
    location = None
    if row["location_name"]:
        coordinates = None
        if row["location_lat"] is not None and row["location_lng"] is not None:
            coordinates = Coordinates(lat=row["location_lat"], lng=row["location_lng"])
        location = Location(
            name=row["location_name"],
            address=row["location_address"],
            coordinates=coordinates,
        )

    organizer = None
    if row["organizer_name"]:
        organizer = Organizer(name=row["organizer_name"], email=row["organizer_email"])

    return NormalizedEvent(
        id=row["id"],
        source_id=row["source_id"],
        title=row["title"],
        description=row["description"],
        start=from_epoch_ms(row["start_ms"]),
        end=from_epoch_ms(row["end_ms"]),
        location=location,
        organizer=organizer,
        categories=json.loads(row["categories"] or "[]"),
        recurrence=RecurrenceRule.from_dict(json.loads(row["recurrence"])) if row["recurrence"] else None,
        url=row["url"],
        last_modified=from_epoch_ms(row["last_modified_ms"]),
    )


def apply_post_filters(events: list[NormalizedEvent], query: CacheQuery) -> list[NormalizedEvent]:
    """Keyword and category filters that SQL predicates can't express."""
    filtered = events

    if query.keywords:
        keywords = [k.lower() for k in query.keywords]
        filtered = [
            e for e in filtered
            if any(k in f"{e.title} {e.description or ''}".lower() for k in keywords)
        ]

    if query.categories:
        wanted = set(query.categories)
        filtered = [e for e in filtered if any(c in wanted for c in e.categories)]

    return filtered


class DurableEventStore:
    """SQLite store holding one record per event id."""

    def __init__(self, db_path: Path):
        self.db_path = Path(db_path)
        self._lock = threading.Lock()
        self._conn: sqlite3.Connection | None = get_connection(self.db_path)

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise sqlite3.ProgrammingError("Durable event store is closed")
        return self._conn

    def upsert_events(self, events: Iterable[NormalizedEvent], now: datetime, ttl_seconds: float) -> int:
        """Insert or overwrite every event. Re-applying the same batch is a no-op in effect."""
        cached_at_ms = to_epoch_ms(now)
        expires_at_ms = cached_at_ms + int(ttl_seconds * 1000)
        rows = [event_to_row(e, cached_at_ms, expires_at_ms) for e in events]
        if not rows:
            return 0

        with self._lock:
            conn = self._connection()
            with conn:
                conn.executemany(_UPSERT, rows)
        return len(rows)

    def query(self, query: CacheQuery, now: datetime) -> list[NormalizedEvent]:
        sql = "SELECT * FROM events WHERE expires_at_ms > ?"
        params: list = [to_epoch_ms(now)]

        if query.source_ids:
            placeholders = ",".join("?" for _ in query.source_ids)
            sql += f" AND source_id IN ({placeholders})"
            params.extend(query.source_ids)

        if query.date_range:
            sql += " AND start_ms <= ? AND end_ms >= ?"
            params.extend([to_epoch_ms(query.date_range.end), to_epoch_ms(query.date_range.start)])

        sql += " ORDER BY start_ms ASC"

        with self._lock:
            rows = self._connection().execute(sql, params).fetchall()

        return apply_post_filters([row_to_event(r) for r in rows], query)

    def get(self, event_id: str, now: datetime) -> NormalizedEvent | None:
        with self._lock:
            row = self._connection().execute(
                "SELECT * FROM events WHERE id = ? AND expires_at_ms > ?",
                (event_id, to_epoch_ms(now)),
            ).fetchone()
        return row_to_event(row) if row else None

    def delete_source(self, source_id: str) -> int:
        with self._lock:
            conn = self._connection()
            with conn:
                cursor = conn.execute("DELETE FROM events WHERE source_id = ?", (source_id,))
        return cursor.rowcount

    def delete_expired(self, now: datetime) -> int:
        with self._lock:
            conn = self._connection()
            with conn:
                cursor = conn.execute(
                    "DELETE FROM events WHERE expires_at_ms <= ?", (to_epoch_ms(now),)
                )
        return cursor.rowcount

    def count(self) -> int:
        with self._lock:
            row = self._connection().execute("SELECT COUNT(*) AS count FROM events").fetchone()
        return row["count"] if row else 0

    def clear(self) -> None:
        with self._lock:
            conn = self._connection()
            with conn:
                conn.execute("DELETE FROM events")

    def close(self) -> None:
        with self._lock:
            if self._conn is not None:
                self._conn.close()
                self._conn = None
