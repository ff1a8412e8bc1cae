"""Shared fixtures: isolated settings, a temporary SQLite store and sample series."""

from collections.abc import AsyncGenerator
from datetime import datetime, timedelta
from pathlib import Path
from typing import Any

import pytest

from eventseries.config.settings import EventSeriesSettings, reset_settings
from eventseries.recurrence.models import WeeklyRule
from eventseries.service import RecurrenceService
from eventseries.store.database import EventStore
from eventseries.store.models import (
    AttendeeSpec,
    CalendarEvent,
    EventDraft,
    ReminderSpec,
    ResponseStatus,
)

# Monday
SERIES_START = datetime(2025, 1, 6, 9, 0)
SERIES_END = SERIES_START + timedelta(minutes=30)


def pytest_configure(config: Any) -> None:
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Fast unit tests")
    config.addinivalue_line("markers", "integration: Tests that use a real SQLite database")
    config.addinivalue_line("markers", "fast: Pure in-memory tests")


@pytest.fixture(autouse=True)
def isolated_global_settings() -> Any:
    """Keep the lazily created global settings from leaking between tests."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture
def settings(tmp_path: Path) -> EventSeriesSettings:
    """Settings backed by a database file in the test's temporary directory."""
    return EventSeriesSettings(
        database_file=tmp_path / "events.db",
        config_dir=tmp_path / "config",
        _skip_yaml=True,
    )


@pytest.fixture
async def store(settings: EventSeriesSettings) -> AsyncGenerator[EventStore, None]:
    """Initialized event store on a temporary SQLite file."""
    event_store = EventStore(settings.database_file)
    await event_store.initialize()
    yield event_store
    await event_store.close()


@pytest.fixture
async def service(
    settings: EventSeriesSettings, store: EventStore
) -> AsyncGenerator[RecurrenceService, None]:
    """Recurrence service sharing the temporary store."""
    yield RecurrenceService(settings=settings, store=store)


def make_draft(**overrides: Any) -> EventDraft:
    """Build a root event draft with every display field populated."""
    fields: dict[str, Any] = {
        "title": "Team Standup",
        "description": "Daily sync",
        "start_time": SERIES_START,
        "end_time": SERIES_END,
        "all_day": False,
        "location": "Room 4",
        "color": "#3366ff",
        "category_id": "cat-meetings",
        "status": "CONFIRMED",
        "visibility": "PRIVATE",
        "creator_id": "user-owner",
        "metadata": {"source": "tests", "tags": ["sync"]},
    }
    fields.update(overrides)
    return EventDraft(**fields)


@pytest.fixture
def sample_draft() -> EventDraft:
    """Root event draft starting Monday 2025-01-06 09:00 for 30 minutes."""
    return make_draft()


@pytest.fixture
def sample_attendees() -> list[AttendeeSpec]:
    """Attendees with mixed responses."""
    return [
        AttendeeSpec(user_id="user-owner", response_status=ResponseStatus.ACCEPTED, is_organizer=True),
        AttendeeSpec(user_id="user-guest", response_status=ResponseStatus.DECLINED),
        AttendeeSpec(team_id="team-platform", response_status=ResponseStatus.TENTATIVE),
    ]


@pytest.fixture
def sample_reminders() -> list[ReminderSpec]:
    """Two reminders for different users."""
    return [
        ReminderSpec(user_id="user-owner", minutes_before=15),
        ReminderSpec(user_id="user-guest", minutes_before=60),
    ]


@pytest.fixture
async def weekly_series(
    service: RecurrenceService,
    sample_draft: EventDraft,
    sample_attendees: list[AttendeeSpec],
    sample_reminders: list[ReminderSpec],
) -> CalendarEvent:
    """Stored series root repeating on Monday and Wednesday every week."""
    return await service.create_series(
        sample_draft,
        WeeklyRule(by_day={1, 3}),
        attendees=sample_attendees,
        reminders=sample_reminders,
    )


@pytest.fixture
def draft_factory() -> Any:
    """Factory building root event drafts; keyword arguments override fields."""
    return make_draft
