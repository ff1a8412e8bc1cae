"""Event storage package."""

from .database import EventStore
from .models import (
    AttendeeSpec,
    CalendarEvent,
    EventAttendee,
    EventDraft,
    EventReminder,
    ReminderSpec,
    ResponseStatus,
    SeriesSnapshot,
)

__all__ = [
    "AttendeeSpec",
    "CalendarEvent",
    "EventAttendee",
    "EventDraft",
    "EventReminder",
    "EventStore",
    "ReminderSpec",
    "ResponseStatus",
    "SeriesSnapshot",
]
