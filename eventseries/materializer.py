"""Persist the occurrences of a series as concrete child events."""

import logging
from collections.abc import Iterable
from typing import Any, Optional

import aiosqlite

from .exceptions import PartialMaterializationError, PersistenceError
from .recurrence.scanner import Occurrence
from .store.database import EventStore, to_db_time
from .store.models import AttendeeSpec, EventDraft, ReminderSpec, ResponseStatus, SeriesSnapshot

logger = logging.getLogger(__name__)

ATOMIC = "atomic"
BEST_EFFORT = "best_effort"
MATERIALIZATION_MODES = (ATOMIC, BEST_EFFORT)


class InstanceMaterializer:
    """Creates the child events of a series that do not exist yet.

    Instances clone the display fields of the series root. Attendees are
    copied with their response reset to PENDING and reminders are copied
    as-is. Calls for the same series are serialized by the store's per-series
    lock, which every materializer on that store shares; the unique
    (parent, start time) index covers writers on other connections.
    """

    def __init__(self, store: EventStore, settings: Optional[Any] = None):
        """Initialize InstanceMaterializer.

        Args:
            store: Event store to write instances to
            settings: Optional settings object; ``materialization_mode`` is read from it

        Raises:
            ValueError: If the configured materialization mode is unknown
        """
        self.store = store
        self.mode = getattr(settings, "materialization_mode", ATOMIC)
        if self.mode not in MATERIALIZATION_MODES:
            raise ValueError(
                f"Unknown materialization mode {self.mode!r}, expected one of {MATERIALIZATION_MODES}"
            )

    async def materialize(self, snapshot: SeriesSnapshot, occurrences: Iterable[Occurrence]) -> int:
        """Create an instance for every occurrence not already stored.

        Args:
            snapshot: Series root with its attendees and reminders
            occurrences: Candidate occurrences, typically from OccurrenceScanner

        Returns:
            Number of instances actually created

        Raises:
            PersistenceError: If the store fails in atomic mode (nothing is kept)
            PartialMaterializationError: If some instances fail in best-effort mode
        """
        parent_id = snapshot.event.id

        candidates: dict[str, Occurrence] = {}
        for occurrence in occurrences:
            candidates.setdefault(to_db_time(occurrence.start), occurrence)
        if not candidates:
            return 0

        async with self.store.series_lock(parent_id):
            existing = await self.store.find_child_events_by_start_times(
                parent_id, [occurrence.start for occurrence in candidates.values()]
            )
            existing_starts = {to_db_time(event.start_time) for event in existing}
            pending = sorted(
                (occ for key, occ in candidates.items() if key not in existing_starts),
                key=lambda occ: occ.start,
            )

            logger.debug(
                f"Series {parent_id}: {len(candidates)} candidates, "
                f"{len(existing_starts)} already stored, {len(pending)} to create"
            )
            if not pending:
                return 0

            if self.mode == BEST_EFFORT:
                created_count = await self._materialize_best_effort(snapshot, pending)
            else:
                created_count = await self._materialize_atomic(snapshot, pending)

        logger.info(f"Created {created_count} instances of series {parent_id}")
        return created_count

    async def _materialize_atomic(self, snapshot: SeriesSnapshot, pending: list[Occurrence]) -> int:
        created_count = 0
        try:
            async with self.store.transaction():
                for occurrence in pending:
                    if await self._create_instance(snapshot, occurrence):
                        created_count += 1
        except (PersistenceError, aiosqlite.Error) as e:
            logger.exception(f"Materialization of series {snapshot.event.id} rolled back")
            raise PersistenceError(
                f"Failed to materialize {len(pending)} instances of series "
                f"{snapshot.event.id}; no instances were kept: {e}"
            ) from e
        return created_count

    async def _materialize_best_effort(
        self, snapshot: SeriesSnapshot, pending: list[Occurrence]
    ) -> int:
        created_count = 0
        failures: list[Exception] = []

        for occurrence in pending:
            try:
                async with self.store.transaction():
                    created = await self._create_instance(snapshot, occurrence)
            except (PersistenceError, aiosqlite.Error) as e:
                logger.warning(
                    f"Failed to materialize instance of series {snapshot.event.id} "
                    f"at {occurrence.start.isoformat()}: {e}"
                )
                failures.append(e)
                continue
            if created:
                created_count += 1

        if failures:
            raise PartialMaterializationError(
                f"{len(failures)} of {len(pending)} instances of series "
                f"{snapshot.event.id} failed; {created_count} were created",
                created_count=created_count,
                failures=failures,
            )
        return created_count

    async def _create_instance(self, snapshot: SeriesSnapshot, occurrence: Occurrence) -> bool:
        """Store one instance with its attendees and reminders.

        Returns False when another writer already stored this start time.
        """
        parent = snapshot.event
        draft = EventDraft(
            **parent.display_fields(),
            start_time=occurrence.start,
            end_time=occurrence.end,
            parent_event_id=parent.id,
        )

        instance = await self.store.create_event(draft)
        if instance is None:
            return False

        await self.store.create_attendees(
            instance.id,
            [
                AttendeeSpec(
                    user_id=attendee.user_id,
                    team_id=attendee.team_id,
                    is_organizer=attendee.is_organizer,
                    response_status=ResponseStatus.PENDING,
                )
                for attendee in snapshot.attendees
            ],
        )
        await self.store.create_reminders(
            instance.id,
            [
                ReminderSpec(user_id=reminder.user_id, minutes_before=reminder.minutes_before)
                for reminder in snapshot.reminders
            ],
        )
        return True
