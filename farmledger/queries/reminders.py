"""
Reminder Filter

Selects events whose next action falls due inside a look-ahead window
and classifies each one as URGENT or UPCOMING.

The two classes are an exact partition: a reminder due at exactly the
end of the urgent window is URGENT and nothing else. Counting a
reminder in both buckets would inflate the dashboard totals.
"""

import math
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional
from uuid import UUID

from farmledger.config import LedgerSettings, get_settings
from farmledger.errors import RuleCode, ValidationError
from farmledger.models.common import as_utc, utcnow
from farmledger.models.dashboard import ReminderBuckets, ReminderEvent, ReminderUrgency
from farmledger.models.livestock import AnimalEvent
from farmledger.services.storage import EntityStore


SECONDS_PER_DAY = 86400


class ReminderFilter:
    """Reads due events for a farm. Never writes."""

    def __init__(
        self,
        store: EntityStore,
        settings: Optional[LedgerSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._settings = settings or get_settings().ledger
        self._clock = clock

    async def get_reminders(
        self,
        farm_id: UUID,
        days_ahead: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> list[ReminderEvent]:
        """
        Events with now <= next_due_date <= now + days_ahead, soonest first.

        Args:
            farm_id: Farm to read
            days_ahead: Window length in days (default from settings)
            now: Reference instant (default: the clock)

        Raises:
            ValidationError: days_ahead is negative
        """
        if days_ahead is None:
            days_ahead = self._settings.reminder_window_days
        if days_ahead < 0:
            raise ValidationError(
                RuleCode.INVALID_WINDOW,
                "days_ahead cannot be negative",
                details=[{"field": "days_ahead", "message": "must be >= 0"}],
                params={"days_ahead": days_ahead},
            )

        now = as_utc(now) if now is not None else as_utc(self._clock())
        horizon = now + timedelta(days=days_ahead)
        urgent_until = now + timedelta(days=self._settings.urgent_window_days)

        events = await self._store.find(
            AnimalEvent,
            farm_id,
            {"next_due_date__gte": now, "next_due_date__lte": horizon},
            order_by="next_due_date",
        )

        return [self._to_reminder(event, now, urgent_until) for event in events]

    @staticmethod
    def _to_reminder(
        event: AnimalEvent,
        now: datetime,
        urgent_until: datetime,
    ) -> ReminderEvent:
        due = event.next_due_date
        return ReminderEvent(
            id=event.id,
            target_id=event.target_id,
            target_type=event.target_type,
            event_type=event.event_type,
            next_due_date=due,
            note=event.note,
            days_until_due=math.ceil((due - now).total_seconds() / SECONDS_PER_DAY),
            urgency=(
                ReminderUrgency.URGENT if due <= urgent_until
                else ReminderUrgency.UPCOMING
            ),
        )

    @staticmethod
    def split(reminders: Iterable[ReminderEvent]) -> ReminderBuckets:
        """Partition reminders by urgency, keeping their order."""
        buckets = ReminderBuckets()
        for reminder in reminders:
            if reminder.urgency == ReminderUrgency.URGENT:
                buckets.urgent.append(reminder)
            else:
                buckets.upcoming.append(reminder)
        return buckets
