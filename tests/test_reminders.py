"""Tests for the reminder filter."""

import random
from datetime import datetime, timedelta, timezone
from uuid import uuid4

import pytest

from farmledger.config import LedgerSettings
from farmledger.errors import RuleCode, ValidationError
from farmledger.models.dashboard import ReminderUrgency
from farmledger.models.livestock import AnimalEvent, EventType, TargetType
from farmledger.queries import ReminderFilter


NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def reminders(store, ledger_settings):
    return ReminderFilter(store, settings=ledger_settings, clock=lambda: NOW)


@pytest.fixture
def add_due(run, store, farm_id, user_id, add_animal):
    animal = add_animal()

    def _add(due, farm=None, note=None):
        event = AnimalEvent(
            farm_id=farm or farm_id,
            target_id=animal.id,
            target_type=TargetType.ANIMAL,
            event_type=EventType.VACCINATION,
            event_date=min(due, NOW) - timedelta(days=1),
            next_due_date=due,
            note=note,
            created_by=user_id,
        )
        return run(store.insert(event))

    return _add


class TestGetReminders:

    def test_urgent_and_upcoming(self, run, reminders, add_due, farm_id):
        """+3 days is urgent, +20 days is upcoming."""
        soon = add_due(NOW + timedelta(days=3))
        later = add_due(NOW + timedelta(days=20))

        found = run(reminders.get_reminders(farm_id, days_ahead=30))
        assert [r.id for r in found] == [soon.id, later.id]
        assert [r.urgency for r in found] == [ReminderUrgency.URGENT, ReminderUrgency.UPCOMING]
        assert [r.days_until_due for r in found] == [3, 20]

        buckets = ReminderFilter.split(found)
        assert len(buckets.urgent) == 1
        assert len(buckets.upcoming) == 1

    def test_window_bounds_are_inclusive(self, run, reminders, add_due, farm_id):
        at_now = add_due(NOW)
        at_edge = add_due(NOW + timedelta(days=30))
        add_due(NOW + timedelta(days=30, seconds=1))
        add_due(NOW - timedelta(seconds=1))

        found = run(reminders.get_reminders(farm_id, days_ahead=30))
        assert [r.id for r in found] == [at_now.id, at_edge.id]
        assert found[0].days_until_due == 0

    def test_exactly_seven_days_is_urgent_only(self, run, reminders, add_due, farm_id):
        add_due(NOW + timedelta(days=7))
        add_due(NOW + timedelta(days=7, seconds=1))

        buckets = ReminderFilter.split(run(reminders.get_reminders(farm_id, days_ahead=30)))
        assert len(buckets.urgent) == 1
        assert len(buckets.upcoming) == 1

    def test_partial_day_rounds_up(self, run, reminders, add_due, farm_id):
        add_due(NOW + timedelta(days=2, hours=1))
        found = run(reminders.get_reminders(farm_id, days_ahead=30))
        assert found[0].days_until_due == 3

    def test_sorted_by_due_date(self, run, reminders, add_due, farm_id):
        for days in (12, 2, 25, 5):
            add_due(NOW + timedelta(days=days))
        found = run(reminders.get_reminders(farm_id, days_ahead=30))
        assert [r.days_until_due for r in found] == [2, 5, 12, 25]

    def test_default_window_from_settings(self, run, store, add_due, farm_id):
        narrow = ReminderFilter(
            store,
            settings=LedgerSettings(urgent_window_days=2, reminder_window_days=5),
            clock=lambda: NOW,
        )
        add_due(NOW + timedelta(days=4))
        add_due(NOW + timedelta(days=6))
        assert len(run(narrow.get_reminders(farm_id))) == 1

    def test_farm_scoped(self, run, reminders, add_due, farm_id):
        add_due(NOW + timedelta(days=1), farm=uuid4())
        assert run(reminders.get_reminders(farm_id, days_ahead=30)) == []

    def test_negative_window(self, run, reminders, farm_id):
        with pytest.raises(ValidationError) as exc_info:
            run(reminders.get_reminders(farm_id, days_ahead=-1))
        assert exc_info.value.code == RuleCode.INVALID_WINDOW

    def test_explicit_now(self, run, reminders, add_due, farm_id):
        add_due(NOW + timedelta(days=10))
        found = run(reminders.get_reminders(
            farm_id, days_ahead=5, now=NOW + timedelta(days=6)
        ))
        assert len(found) == 1
        assert found[0].days_until_due == 4
        assert found[0].urgency == ReminderUrgency.URGENT


class TestReminderPartition:

    @pytest.mark.parametrize("days_ahead", [0, 3, 7, 8, 30, 90])
    def test_partition_property(self, run, reminders, add_due, farm_id, days_ahead):
        """Every reminder is inside the window and in exactly one bucket."""
        rng = random.Random(days_ahead)
        for _ in range(60):
            add_due(NOW + timedelta(minutes=rng.randint(-2 * 24 * 60, 100 * 24 * 60)))

        found = run(reminders.get_reminders(farm_id, days_ahead=days_ahead))
        horizon = NOW + timedelta(days=days_ahead)
        urgent_until = NOW + timedelta(days=7)

        for reminder in found:
            assert NOW <= reminder.next_due_date <= horizon
            expected = (
                ReminderUrgency.URGENT if reminder.next_due_date <= urgent_until
                else ReminderUrgency.UPCOMING
            )
            assert reminder.urgency == expected

        buckets = ReminderFilter.split(found)
        assert len(buckets.urgent) + len(buckets.upcoming) == len(found)
        assert not {r.id for r in buckets.urgent} & {r.id for r in buckets.upcoming}
