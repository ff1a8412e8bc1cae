"""Data models for persisted calendar events."""

from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, Field, field_serializer, model_validator

from ..recurrence.models import RecurrenceRule


class ResponseStatus(str, Enum):
    """Attendee response states."""

    PENDING = "PENDING"
    ACCEPTED = "ACCEPTED"
    DECLINED = "DECLINED"
    TENTATIVE = "TENTATIVE"


class EventDraft(BaseModel):
    """Fields of a calendar event that has not been stored yet."""

    title: str
    description: Optional[str] = None

    # Time information
    start_time: datetime
    end_time: datetime
    all_day: bool = False

    # Display fields
    location: Optional[str] = None
    color: Optional[str] = None
    category_id: Optional[str] = None
    status: str = "SCHEDULED"
    visibility: str = "PUBLIC"
    creator_id: Optional[str] = None
    metadata: Optional[dict[str, Any]] = None

    # Series link: None for a series root, the root id for a materialized instance
    parent_event_id: Optional[str] = None

    @model_validator(mode="after")
    def check_time_order(self) -> "EventDraft":
        """Events may not end before they start."""
        if self.end_time < self.start_time:
            raise ValueError("Event end time must not be before start time")
        return self

    @field_serializer("start_time", "end_time")
    def serialize_datetime(self, dt: datetime) -> str:
        """Serialize datetime fields to ISO format."""
        return dt.isoformat()

    @property
    def duration(self) -> timedelta:
        """Get event duration."""
        return self.end_time - self.start_time


class CalendarEvent(EventDraft):
    """A stored calendar event: a series root or a materialized instance."""

    id: str
    created_at: Optional[datetime] = None

    @property
    def is_instance(self) -> bool:
        """Check if this event was materialized from a series."""
        return self.parent_event_id is not None

    def display_fields(self) -> dict[str, Any]:
        """Fields copied verbatim onto every materialized instance."""
        return {
            "title": self.title,
            "description": self.description,
            "all_day": self.all_day,
            "location": self.location,
            "color": self.color,
            "category_id": self.category_id,
            "status": self.status,
            "visibility": self.visibility,
            "creator_id": self.creator_id,
            "metadata": self.metadata,
        }


class AttendeeSpec(BaseModel):
    """Attendee data independent of the event it is attached to."""

    user_id: Optional[str] = None
    team_id: Optional[str] = None
    response_status: ResponseStatus = ResponseStatus.PENDING
    is_organizer: bool = False


class EventAttendee(AttendeeSpec):
    """Stored attendee row."""

    id: str
    event_id: str


class ReminderSpec(BaseModel):
    """Reminder data independent of the event it is attached to."""

    user_id: Optional[str] = None
    minutes_before: int = Field(ge=0)


class EventReminder(ReminderSpec):
    """Stored reminder row."""

    id: str
    event_id: str


class SeriesSnapshot(BaseModel):
    """An event together with its rule, attendees and reminders."""

    event: CalendarEvent
    rule: Optional[RecurrenceRule] = None
    attendees: list[EventAttendee] = Field(default_factory=list)
    reminders: list[EventReminder] = Field(default_factory=list)
