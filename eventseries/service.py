"""Recurrence service: the operations exposed to callers."""

from collections.abc import Mapping, Sequence
from datetime import datetime, timedelta
from typing import Any, Optional, Union

from .config.settings import EventSeriesSettings, get_settings
from .exceptions import InvalidRuleError, NotFoundError, PersistenceError, RuleNotFoundError
from .materializer import InstanceMaterializer
from .recurrence.formatter import describe
from .recurrence.models import RecurrenceRule, parse_rule
from .recurrence.rrule_string import parse_rrule_string
from .recurrence.scanner import Occurrence, OccurrenceScanner
from .store.database import EventStore
from .store.models import AttendeeSpec, CalendarEvent, EventDraft, ReminderSpec, SeriesSnapshot
from .utils.logging import get_logger

logger = get_logger(__name__)

RuleInput = Union[RecurrenceRule, Mapping[str, Any], str]


class RecurrenceService:
    """Generates, materializes and describes recurring event series."""

    def __init__(
        self,
        settings: Optional[EventSeriesSettings] = None,
        store: Optional[EventStore] = None,
    ):
        """Initialize RecurrenceService.

        Args:
            settings: Settings to use (the global settings by default)
            store: Event store to use (one on ``settings.database_file`` by default)
        """
        self.settings = settings or get_settings()
        self.store = store or EventStore(self.settings.database_file)
        self.scanner = OccurrenceScanner(self.settings)
        self.materializer = InstanceMaterializer(self.store, self.settings)

    async def close(self) -> None:
        """Close the underlying store."""
        await self.store.close()

    async def _load_series(
        self, parent_event_id: str
    ) -> tuple[SeriesSnapshot, RecurrenceRule]:
        snapshot = await self.store.fetch_event_with_rule(parent_event_id)
        if snapshot is None:
            raise NotFoundError(f"Event not found: {parent_event_id}", event_id=parent_event_id)
        if snapshot.rule is None:
            raise RuleNotFoundError(
                f"Event {parent_event_id} has no recurrence rule", event_id=parent_event_id
            )
        return snapshot, snapshot.rule

    def _window_end(self, window_start: datetime, window_end: Optional[datetime]) -> datetime:
        if window_end is not None:
            return window_end
        return window_start + timedelta(days=self.settings.default_window_days)

    def _expand(
        self,
        snapshot: SeriesSnapshot,
        rule: RecurrenceRule,
        window_start: datetime,
        window_end: datetime,
    ) -> list[Occurrence]:
        event = snapshot.event
        return self.scanner.generate(event.start_time, event.end_time, rule, window_start, window_end)

    async def generate_instances(
        self,
        parent_event_id: str,
        window_start: datetime,
        window_end: Optional[datetime] = None,
    ) -> list[Occurrence]:
        """List the occurrences of a series inside a window.

        Nothing is written to the store.

        Args:
            parent_event_id: ID of the series root
            window_start: First instant of the window (inclusive)
            window_end: Last instant of the window (inclusive); defaults to
                ``window_start`` plus ``default_window_days``

        Returns:
            Occurrences ordered by start time

        Raises:
            NotFoundError: If the event does not exist
            RuleNotFoundError: If the event has no recurrence rule
        """
        snapshot, rule = await self._load_series(parent_event_id)
        window_end = self._window_end(window_start, window_end)
        occurrences = self._expand(snapshot, rule, window_start, window_end)
        logger.verbose(  # type: ignore[attr-defined]
            f"Generated {len(occurrences)} occurrences of {parent_event_id} "
            f"between {window_start.isoformat()} and {window_end.isoformat()}"
        )
        return occurrences

    async def create_recurring_instances(
        self,
        parent_event_id: str,
        window_start: datetime,
        window_end: Optional[datetime] = None,
    ) -> int:
        """Store the occurrences of a series inside a window as child events.

        Occurrences that already have a child event are skipped, so calling
        this repeatedly for the same window creates nothing new.

        Returns:
            Number of instances created by this call

        Raises:
            NotFoundError: If the event does not exist
            RuleNotFoundError: If the event has no recurrence rule
            PersistenceError: If the store fails (see ``materialization_mode``)
        """
        snapshot, rule = await self._load_series(parent_event_id)
        window_end = self._window_end(window_start, window_end)
        occurrences = self._expand(snapshot, rule, window_start, window_end)
        return await self.materializer.materialize(snapshot, occurrences)

    def describe_rule(self, rule: Optional[RecurrenceRule]) -> str:
        """Describe a rule in English, e.g. "Every 2 weeks on Monday, Wednesday, 10 times"."""
        return describe(rule)

    async def create_series(
        self,
        draft: EventDraft,
        rule: RuleInput,
        attendees: Sequence[AttendeeSpec] = (),
        reminders: Sequence[ReminderSpec] = (),
    ) -> CalendarEvent:
        """Store a series root event together with its recurrence rule.

        Args:
            draft: Fields of the root event
            rule: Rule object, rule mapping, or RRULE string
            attendees: Attendees of the root event
            reminders: Reminders of the root event

        Returns:
            The stored root event

        Raises:
            InvalidRuleError: If the rule is invalid or the draft is itself an instance
        """
        if isinstance(rule, str):
            rule = parse_rrule_string(rule)
        else:
            rule = parse_rule(rule)

        if draft.parent_event_id is not None:
            raise InvalidRuleError(
                f"A series root cannot be an instance of another series ({draft.parent_event_id})"
            )

        async with self.store.transaction():
            event = await self.store.create_event(draft)
            if event is None:
                raise PersistenceError(f"Failed to store series root '{draft.title}'")
            await self.store.create_rule(event.id, rule)
            await self.store.create_attendees(event.id, attendees)
            await self.store.create_reminders(event.id, reminders)

        logger.info(f"Created {rule.frequency} series {event.id} '{event.title}'")
        return event

    async def delete_series(self, parent_event_id: str) -> int:
        """Delete a series root and its instances; returns the number of events removed."""
        return await self.store.delete_series(parent_event_id)
