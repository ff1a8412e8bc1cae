"""SQLite event store for series roots, instances, attendees and reminders."""

import asyncio
import json
import logging
import uuid
import weakref
from collections.abc import AsyncIterator, Sequence
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime
from pathlib import Path
from typing import Any, Optional, Union

import aiosqlite

from ..exceptions import PersistenceError
from ..recurrence.models import RecurrenceRule, rule_from_json, rule_to_json
from .models import (
    AttendeeSpec,
    CalendarEvent,
    EventAttendee,
    EventDraft,
    EventReminder,
    ReminderSpec,
    SeriesSnapshot,
)

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"

# SQLite limits the number of bound parameters per statement
MAX_IN_CLAUSE_PARAMS = 500

# Store whose transaction the current task is running inside, if any
_active_transaction: ContextVar[Optional["EventStore"]] = ContextVar(
    "eventseries_active_transaction", default=None
)

SCHEMA_STATEMENTS = (
    """
    CREATE TABLE IF NOT EXISTS calendar_events (
        id TEXT PRIMARY KEY,
        title TEXT NOT NULL,
        description TEXT,
        start_time TEXT NOT NULL,
        end_time TEXT NOT NULL,
        all_day INTEGER NOT NULL DEFAULT 0,
        location TEXT,
        color TEXT,
        category_id TEXT,
        status TEXT NOT NULL DEFAULT 'SCHEDULED',
        visibility TEXT NOT NULL DEFAULT 'PUBLIC',
        creator_id TEXT,
        metadata TEXT,
        parent_event_id TEXT REFERENCES calendar_events(id) ON DELETE CASCADE,
        created_at TEXT NOT NULL
    )
    """,
    # One instance per series and start time; roots have a NULL parent and never collide
    """
    CREATE UNIQUE INDEX IF NOT EXISTS idx_events_parent_start
    ON calendar_events(parent_event_id, start_time)
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_events_start_time
    ON calendar_events(start_time)
    """,
    """
    CREATE TABLE IF NOT EXISTS recurrence_rules (
        event_id TEXT PRIMARY KEY REFERENCES calendar_events(id) ON DELETE CASCADE,
        frequency TEXT NOT NULL,
        rule_json TEXT NOT NULL,
        created_at TEXT NOT NULL
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS event_attendees (
        id TEXT PRIMARY KEY,
        event_id TEXT NOT NULL REFERENCES calendar_events(id) ON DELETE CASCADE,
        user_id TEXT,
        team_id TEXT,
        response_status TEXT NOT NULL DEFAULT 'PENDING',
        is_organizer INTEGER NOT NULL DEFAULT 0
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_attendees_event_id
    ON event_attendees(event_id)
    """,
    """
    CREATE TABLE IF NOT EXISTS event_reminders (
        id TEXT PRIMARY KEY,
        event_id TEXT NOT NULL REFERENCES calendar_events(id) ON DELETE CASCADE,
        user_id TEXT,
        minutes_before INTEGER NOT NULL
    )
    """,
    """
    CREATE INDEX IF NOT EXISTS idx_reminders_event_id
    ON event_reminders(event_id)
    """,
)


def to_db_time(dt: datetime) -> str:
    """Format a datetime the way start/end times are stored and compared."""
    return dt.isoformat()


def _new_id() -> str:
    return uuid.uuid4().hex


def _row_to_event(row: aiosqlite.Row) -> CalendarEvent:
    event_data = dict(row)
    event_data["all_day"] = bool(event_data["all_day"])
    if event_data.get("metadata"):
        event_data["metadata"] = json.loads(event_data["metadata"])
    return CalendarEvent(**event_data)


def _row_to_attendee(row: aiosqlite.Row) -> EventAttendee:
    attendee_data = dict(row)
    attendee_data["is_organizer"] = bool(attendee_data["is_organizer"])
    return EventAttendee(**attendee_data)


class EventStore:
    """Manages SQLite storage of calendar events and their recurrence data.

    A single connection is opened lazily and shared by all operations.
    Writes run inside ``transaction()``, which serializes transactions on
    the shared connection.
    """

    def __init__(self, database_path: Union[Path, str]):
        """Initialize event store.

        Args:
            database_path: Path to SQLite database file, or ":memory:"
        """
        if str(database_path) == MEMORY_DATABASE:
            self.database_path: Union[Path, str] = MEMORY_DATABASE
        else:
            self.database_path = Path(database_path)
            self.database_path.parent.mkdir(parents=True, exist_ok=True)

        self._db: Optional[aiosqlite.Connection] = None
        self._initialization_lock: Optional[asyncio.Lock] = None
        self._write_lock: Optional[asyncio.Lock] = None
        # Entries vanish once no task holds or waits on the lock
        self._series_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = (
            weakref.WeakValueDictionary()
        )

        logger.info(f"Event store created (lazy): {database_path}")

    async def initialize(self) -> None:
        """Open the connection and create the schema if needed.

        Raises:
            PersistenceError: If the database cannot be opened or initialized
        """
        await self._connection()

    async def _connection(self) -> aiosqlite.Connection:
        """Return the shared connection, opening it on first use."""
        if self._db is not None:
            return self._db

        # Use a lock to prevent concurrent initialization
        if self._initialization_lock is None:
            self._initialization_lock = asyncio.Lock()

        async with self._initialization_lock:
            # Double-check after acquiring lock
            if self._db is not None:
                return self._db

            try:
                db = await aiosqlite.connect(str(self.database_path), isolation_level=None)
                db.row_factory = aiosqlite.Row

                # WAL mode for concurrent readers from other processes
                await db.execute("PRAGMA journal_mode=WAL")
                await db.execute("PRAGMA synchronous=NORMAL")
                await db.execute("PRAGMA foreign_keys=ON")

                for statement in SCHEMA_STATEMENTS:
                    await db.execute(statement)
            except aiosqlite.Error as e:
                logger.exception("Failed to initialize event store")
                raise PersistenceError(f"Failed to initialize event store: {e}") from e

            self._db = db
            logger.info("Event store schema initialized")
            return db

    async def close(self) -> None:
        """Close the shared connection."""
        if self._db is not None:
            await self._db.close()
            self._db = None
            logger.debug("Event store connection closed")

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Run the enclosed writes as one transaction.

        Nested use within the same task joins the outer transaction. Any
        exception rolls the transaction back and is re-raised.
        """
        db = await self._connection()
        if _active_transaction.get() is self:
            yield db
            return

        if self._write_lock is None:
            self._write_lock = asyncio.Lock()

        async with self._write_lock:
            token = _active_transaction.set(self)
            try:
                await db.execute("BEGIN IMMEDIATE")
                try:
                    yield db
                except BaseException:
                    await db.execute("ROLLBACK")
                    raise
                await db.execute("COMMIT")
            finally:
                _active_transaction.reset(token)

    @asynccontextmanager
    async def series_lock(self, parent_event_id: str) -> AsyncIterator[None]:
        """Serialize work on one series across every user of this store.

        Reads on the shared connection can see rows of another task's open
        transaction, so a check-then-write on a series must hold this lock
        until its writes are committed or rolled back.
        """
        lock = self._series_locks.get(parent_event_id)
        if lock is None:
            lock = asyncio.Lock()
            self._series_locks[parent_event_id] = lock

        async with lock:
            yield

    async def get_event(self, event_id: str) -> Optional[CalendarEvent]:
        """Get event by ID.

        Args:
            event_id: Event ID to retrieve

        Returns:
            CalendarEvent if found, None otherwise
        """
        try:
            db = await self._connection()
            cursor = await db.execute("SELECT * FROM calendar_events WHERE id = ?", (event_id,))
            row = await cursor.fetchone()
            return _row_to_event(row) if row else None
        except aiosqlite.Error as e:
            logger.exception(f"Failed to get event by ID: {event_id}")
            raise PersistenceError(f"Failed to get event {event_id}: {e}") from e

    async def fetch_event_with_rule(self, event_id: str) -> Optional[SeriesSnapshot]:
        """Get an event with its recurrence rule, attendees and reminders.

        Args:
            event_id: Event ID to retrieve

        Returns:
            SeriesSnapshot if the event exists, None otherwise. ``rule`` is
            None when the event owns no recurrence rule.
        """
        event = await self.get_event(event_id)
        if event is None:
            return None

        try:
            db = await self._connection()

            cursor = await db.execute(
                "SELECT rule_json FROM recurrence_rules WHERE event_id = ?", (event_id,)
            )
            rule_row = await cursor.fetchone()
            rule = rule_from_json(rule_row["rule_json"]) if rule_row else None

            cursor = await db.execute(
                "SELECT * FROM event_attendees WHERE event_id = ? ORDER BY rowid", (event_id,)
            )
            attendees = [_row_to_attendee(row) for row in await cursor.fetchall()]

            cursor = await db.execute(
                "SELECT * FROM event_reminders WHERE event_id = ? ORDER BY rowid", (event_id,)
            )
            reminders = [EventReminder(**dict(row)) for row in await cursor.fetchall()]
        except aiosqlite.Error as e:
            logger.exception(f"Failed to fetch series data for event: {event_id}")
            raise PersistenceError(f"Failed to fetch series data for {event_id}: {e}") from e

        return SeriesSnapshot(event=event, rule=rule, attendees=attendees, reminders=reminders)

    async def find_child_events_by_start_times(
        self, parent_id: str, start_times: Sequence[datetime]
    ) -> list[CalendarEvent]:
        """Get instances of a series whose start time is one of ``start_times``.

        Args:
            parent_id: ID of the series root
            start_times: Candidate start times

        Returns:
            Matching instances ordered by start time
        """
        keys = sorted({to_db_time(start) for start in start_times})
        if not keys:
            return []

        events: list[CalendarEvent] = []
        try:
            db = await self._connection()
            for offset in range(0, len(keys), MAX_IN_CLAUSE_PARAMS):
                chunk = keys[offset : offset + MAX_IN_CLAUSE_PARAMS]
                placeholders = ", ".join("?" for _ in chunk)
                cursor = await db.execute(
                    f"""
                    SELECT * FROM calendar_events
                    WHERE parent_event_id = ? AND start_time IN ({placeholders})
                    ORDER BY start_time ASC
                    """,  # noqa: S608
                    (parent_id, *chunk),
                )
                events.extend(_row_to_event(row) for row in await cursor.fetchall())
        except aiosqlite.Error as e:
            logger.exception(f"Failed to find instances of series: {parent_id}")
            raise PersistenceError(f"Failed to find instances of {parent_id}: {e}") from e

        logger.debug(
            f"Found {len(events)} existing instances of {parent_id} among {len(keys)} start times"
        )
        return events

    async def list_child_events(self, parent_id: str) -> list[CalendarEvent]:
        """Get all instances of a series ordered by start time."""
        try:
            db = await self._connection()
            cursor = await db.execute(
                """
                SELECT * FROM calendar_events
                WHERE parent_event_id = ?
                ORDER BY start_time ASC
                """,
                (parent_id,),
            )
            return [_row_to_event(row) for row in await cursor.fetchall()]
        except aiosqlite.Error as e:
            logger.exception(f"Failed to list instances of series: {parent_id}")
            raise PersistenceError(f"Failed to list instances of {parent_id}: {e}") from e

    async def get_attendees(self, event_id: str) -> list[EventAttendee]:
        """Get attendees of an event."""
        try:
            db = await self._connection()
            cursor = await db.execute(
                "SELECT * FROM event_attendees WHERE event_id = ? ORDER BY rowid", (event_id,)
            )
            return [_row_to_attendee(row) for row in await cursor.fetchall()]
        except aiosqlite.Error as e:
            logger.exception(f"Failed to get attendees of event: {event_id}")
            raise PersistenceError(f"Failed to get attendees of {event_id}: {e}") from e

    async def get_reminders(self, event_id: str) -> list[EventReminder]:
        """Get reminders of an event."""
        try:
            db = await self._connection()
            cursor = await db.execute(
                "SELECT * FROM event_reminders WHERE event_id = ? ORDER BY rowid", (event_id,)
            )
            return [EventReminder(**dict(row)) for row in await cursor.fetchall()]
        except aiosqlite.Error as e:
            logger.exception(f"Failed to get reminders of event: {event_id}")
            raise PersistenceError(f"Failed to get reminders of {event_id}: {e}") from e

    async def create_event(self, draft: EventDraft) -> Optional[CalendarEvent]:
        """Insert an event.

        Args:
            draft: Event fields

        Returns:
            The stored event, or None when an instance of the same series
            already starts at the same time
        """
        event = CalendarEvent(id=_new_id(), created_at=datetime.now(), **draft.model_dump())
        metadata = json.dumps(event.metadata) if event.metadata is not None else None

        async with self.transaction() as db:
            try:
                cursor = await db.execute(
                    """
                    INSERT INTO calendar_events (
                        id, title, description, start_time, end_time, all_day,
                        location, color, category_id, status, visibility,
                        creator_id, metadata, parent_event_id, created_at
                    ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    ON CONFLICT(parent_event_id, start_time) DO NOTHING
                    """,
                    (
                        event.id,
                        event.title,
                        event.description,
                        to_db_time(event.start_time),
                        to_db_time(event.end_time),
                        event.all_day,
                        event.location,
                        event.color,
                        event.category_id,
                        event.status,
                        event.visibility,
                        event.creator_id,
                        metadata,
                        event.parent_event_id,
                        to_db_time(event.created_at),
                    ),
                )
            except aiosqlite.Error as e:
                logger.exception(f"Failed to create event '{event.title}'")
                raise PersistenceError(f"Failed to create event '{event.title}': {e}") from e

        if cursor.rowcount == 0:
            logger.debug(
                f"Instance of {event.parent_event_id} at {to_db_time(event.start_time)} already exists"
            )
            return None
        return event

    async def create_rule(self, event_id: str, rule: RecurrenceRule) -> None:
        """Attach a recurrence rule to a series root."""
        async with self.transaction() as db:
            try:
                await db.execute(
                    """
                    INSERT INTO recurrence_rules (event_id, frequency, rule_json, created_at)
                    VALUES (?, ?, ?, ?)
                    """,
                    (event_id, rule.frequency, rule_to_json(rule), to_db_time(datetime.now())),
                )
            except aiosqlite.Error as e:
                logger.exception(f"Failed to store recurrence rule for event: {event_id}")
                raise PersistenceError(f"Failed to store rule for {event_id}: {e}") from e

    async def create_attendees(
        self, event_id: str, attendees: Sequence[AttendeeSpec]
    ) -> list[EventAttendee]:
        """Insert attendee rows for an event."""
        rows = [
            EventAttendee(id=_new_id(), event_id=event_id, **attendee.model_dump())
            for attendee in attendees
        ]
        if not rows:
            return []

        async with self.transaction() as db:
            try:
                await db.executemany(
                    """
                    INSERT INTO event_attendees (
                        id, event_id, user_id, team_id, response_status, is_organizer
                    ) VALUES (?, ?, ?, ?, ?, ?)
                    """,
                    [
                        (
                            row.id,
                            row.event_id,
                            row.user_id,
                            row.team_id,
                            row.response_status.value,
                            row.is_organizer,
                        )
                        for row in rows
                    ],
                )
            except aiosqlite.Error as e:
                logger.exception(f"Failed to create attendees for event: {event_id}")
                raise PersistenceError(f"Failed to create attendees for {event_id}: {e}") from e

        return rows

    async def create_reminders(
        self, event_id: str, reminders: Sequence[ReminderSpec]
    ) -> list[EventReminder]:
        """Insert reminder rows for an event."""
        rows = [
            EventReminder(id=_new_id(), event_id=event_id, **reminder.model_dump())
            for reminder in reminders
        ]
        if not rows:
            return []

        async with self.transaction() as db:
            try:
                await db.executemany(
                    """
                    INSERT INTO event_reminders (id, event_id, user_id, minutes_before)
                    VALUES (?, ?, ?, ?)
                    """,
                    [(row.id, row.event_id, row.user_id, row.minutes_before) for row in rows],
                )
            except aiosqlite.Error as e:
                logger.exception(f"Failed to create reminders for event: {event_id}")
                raise PersistenceError(f"Failed to create reminders for {event_id}: {e}") from e

        return rows

    async def delete_series(self, parent_id: str) -> int:
        """Delete a series root and all of its instances.

        Returns:
            Number of events removed
        """
        async with self.transaction() as db:
            try:
                # Instances first, then the root
                cursor = await db.execute(
                    "DELETE FROM calendar_events WHERE parent_event_id = ?", (parent_id,)
                )
                deleted_count = cursor.rowcount
                cursor = await db.execute("DELETE FROM calendar_events WHERE id = ?", (parent_id,))
                deleted_count += cursor.rowcount
            except aiosqlite.Error as e:
                logger.exception(f"Failed to delete series: {parent_id}")
                raise PersistenceError(f"Failed to delete series {parent_id}: {e}") from e

        logger.debug(f"Deleted {deleted_count} events of series {parent_id}")
        return deleted_count

    async def get_database_info(self) -> dict[str, Any]:
        """Get row counts per table."""
        db = await self._connection()
        info: dict[str, Any] = {}
        for table in ("calendar_events", "recurrence_rules", "event_attendees", "event_reminders"):
            cursor = await db.execute(f"SELECT COUNT(*) FROM {table}")  # noqa: S608
            row = await cursor.fetchone()
            info[table] = row[0] if row else 0
        cursor = await db.execute("PRAGMA journal_mode")
        journal_row = await cursor.fetchone()
        info["journal_mode"] = journal_row[0] if journal_row else "unknown"
        return info
