"""Tests for EventStore against a real SQLite database."""

import asyncio
from datetime import datetime, timedelta

import pytest

from eventseries.exceptions import PersistenceError
from eventseries.recurrence.models import MonthlyRule
from eventseries.store.database import EventStore
from eventseries.store.models import AttendeeSpec, ReminderSpec, ResponseStatus

pytestmark = [pytest.mark.unit]


class TestInitialization:
    async def test_initialize_when_new_file_then_empty_tables_in_wal_mode(
        self, store: EventStore
    ) -> None:
        info = await store.get_database_info()

        assert info["calendar_events"] == 0
        assert info["recurrence_rules"] == 0
        assert info["event_attendees"] == 0
        assert info["event_reminders"] == 0
        assert info["journal_mode"] == "wal"

    async def test_initialize_when_memory_database_then_usable(self, draft_factory) -> None:
        memory_store = EventStore(":memory:")
        try:
            event = await memory_store.create_event(draft_factory())
            assert event is not None
            assert await memory_store.get_event(event.id) == event
        finally:
            await memory_store.close()

    async def test_initialize_when_nested_directory_then_created(self, tmp_path) -> None:
        nested_store = EventStore(tmp_path / "a" / "b" / "events.db")
        try:
            await nested_store.initialize()
            assert (tmp_path / "a" / "b" / "events.db").exists()
        finally:
            await nested_store.close()


class TestEvents:
    async def test_create_event_when_stored_then_fields_round_trip(
        self, store: EventStore, draft_factory
    ) -> None:
        created = await store.create_event(draft_factory(all_day=True))

        assert created is not None
        loaded = await store.get_event(created.id)
        assert loaded is not None
        assert loaded.title == "Team Standup"
        assert loaded.all_day is True
        assert loaded.metadata == {"source": "tests", "tags": ["sync"]}
        assert loaded.start_time == datetime(2025, 1, 6, 9, 0)
        assert loaded.duration == timedelta(minutes=30)
        assert loaded.parent_event_id is None
        assert not loaded.is_instance

    async def test_get_event_when_missing_then_none(self, store: EventStore) -> None:
        assert await store.get_event("does-not-exist") is None

    async def test_create_event_when_roots_share_start_then_both_created(
        self, store: EventStore, draft_factory
    ) -> None:
        first = await store.create_event(draft_factory())
        second = await store.create_event(draft_factory())

        assert first is not None
        assert second is not None
        assert first.id != second.id

    async def test_create_event_when_instance_start_taken_then_none(
        self, store: EventStore, draft_factory
    ) -> None:
        root = await store.create_event(draft_factory())
        assert root is not None
        instance = draft_factory(parent_event_id=root.id, start_time=datetime(2025, 1, 8, 9, 0),
                                 end_time=datetime(2025, 1, 8, 9, 30))

        first = await store.create_event(instance)
        duplicate = await store.create_event(instance)

        assert first is not None
        assert first.is_instance
        assert duplicate is None
        assert len(await store.list_child_events(root.id)) == 1

    async def test_create_event_when_parent_missing_then_persistence_error(
        self, store: EventStore, draft_factory
    ) -> None:
        with pytest.raises(PersistenceError):
            await store.create_event(draft_factory(parent_event_id="no-such-root"))

        info = await store.get_database_info()
        assert info["calendar_events"] == 0


class TestChildLookup:
    async def test_find_child_events_when_some_starts_exist_then_only_those(
        self, store: EventStore, draft_factory
    ) -> None:
        root = await store.create_event(draft_factory())
        assert root is not None
        stored_starts = [datetime(2025, 1, day, 9, 0) for day in (8, 13, 15)]
        for start in stored_starts:
            await store.create_event(
                draft_factory(parent_event_id=root.id, start_time=start,
                              end_time=start + timedelta(minutes=30))
            )

        found = await store.find_child_events_by_start_times(
            root.id, [datetime(2025, 1, 13, 9, 0), datetime(2025, 1, 14, 9, 0)]
        )

        assert [event.start_time for event in found] == [datetime(2025, 1, 13, 9, 0)]

    async def test_find_child_events_when_many_candidates_then_all_batches_searched(
        self, store: EventStore, draft_factory
    ) -> None:
        root = await store.create_event(draft_factory())
        assert root is not None
        candidates = [datetime(2025, 1, 1, 9, 0) + timedelta(days=i) for i in range(1200)]
        for start in (candidates[0], candidates[600], candidates[1199]):
            await store.create_event(
                draft_factory(parent_event_id=root.id, start_time=start, end_time=start)
            )

        found = await store.find_child_events_by_start_times(root.id, candidates)

        assert len(found) == 3

    async def test_find_child_events_when_no_candidates_then_empty(
        self, store: EventStore
    ) -> None:
        assert await store.find_child_events_by_start_times("any", []) == []


class TestSeriesData:
    async def test_fetch_event_with_rule_when_series_then_snapshot(
        self, store: EventStore, draft_factory
    ) -> None:
        root = await store.create_event(draft_factory())
        assert root is not None
        await store.create_rule(root.id, MonthlyRule(by_month_day={6}, count=3))
        await store.create_attendees(
            root.id,
            [AttendeeSpec(user_id="user-owner", response_status=ResponseStatus.ACCEPTED,
                          is_organizer=True)],
        )
        await store.create_reminders(root.id, [ReminderSpec(user_id="user-owner", minutes_before=10)])

        snapshot = await store.fetch_event_with_rule(root.id)

        assert snapshot is not None
        assert snapshot.event.id == root.id
        assert isinstance(snapshot.rule, MonthlyRule)
        assert snapshot.rule.count == 3
        assert [(a.user_id, a.response_status, a.is_organizer) for a in snapshot.attendees] == [
            ("user-owner", ResponseStatus.ACCEPTED, True)
        ]
        assert [(r.user_id, r.minutes_before) for r in snapshot.reminders] == [("user-owner", 10)]

    async def test_fetch_event_with_rule_when_no_rule_then_rule_none(
        self, store: EventStore, draft_factory
    ) -> None:
        root = await store.create_event(draft_factory())
        assert root is not None

        snapshot = await store.fetch_event_with_rule(root.id)

        assert snapshot is not None
        assert snapshot.rule is None

    async def test_fetch_event_with_rule_when_missing_then_none(self, store: EventStore) -> None:
        assert await store.fetch_event_with_rule("missing") is None

    async def test_delete_series_when_instances_exist_then_everything_removed(
        self, store: EventStore, draft_factory
    ) -> None:
        root = await store.create_event(draft_factory())
        assert root is not None
        await store.create_rule(root.id, MonthlyRule())
        child = await store.create_event(
            draft_factory(parent_event_id=root.id, start_time=datetime(2025, 2, 6, 9, 0),
                          end_time=datetime(2025, 2, 6, 9, 30))
        )
        assert child is not None
        await store.create_attendees(child.id, [AttendeeSpec(user_id="user-guest")])
        await store.create_reminders(child.id, [ReminderSpec(minutes_before=5)])

        deleted = await store.delete_series(root.id)

        assert deleted == 2
        info = await store.get_database_info()
        assert info["calendar_events"] == 0
        assert info["recurrence_rules"] == 0
        assert info["event_attendees"] == 0
        assert info["event_reminders"] == 0


class TestTransactions:
    async def test_transaction_when_body_raises_then_writes_rolled_back(
        self, store: EventStore, draft_factory
    ) -> None:
        with pytest.raises(RuntimeError):
            async with store.transaction():
                created = await store.create_event(draft_factory())
                assert created is not None
                raise RuntimeError("abort")

        info = await store.get_database_info()
        assert info["calendar_events"] == 0

    async def test_transaction_when_nested_then_joins_outer(
        self, store: EventStore, draft_factory
    ) -> None:
        async with store.transaction():
            async with store.transaction():
                await store.create_event(draft_factory())
            await store.create_event(draft_factory())

        info = await store.get_database_info()
        assert info["calendar_events"] == 2


class TestSeriesLocks:
    async def test_series_lock_when_held_then_other_task_waits(self, store: EventStore) -> None:
        order: list[str] = []

        async def worker(name: str) -> None:
            async with store.series_lock("series-1"):
                order.append(f"{name}-in")
                await asyncio.sleep(0)
                order.append(f"{name}-out")

        await asyncio.gather(worker("first"), worker("second"))

        assert order == ["first-in", "first-out", "second-in", "second-out"]

    async def test_series_lock_when_different_series_then_independent(
        self, store: EventStore
    ) -> None:
        async def hold_both() -> bool:
            async with store.series_lock("series-1"):
                async with store.series_lock("series-2"):
                    return True

        assert await asyncio.wait_for(hold_both(), timeout=1)

    async def test_series_lock_when_released_then_dropped(self, store: EventStore) -> None:
        async with store.series_lock("series-1"):
            assert "series-1" in store._series_locks

        assert "series-1" not in store._series_locks
