"""
Dashboard Aggregator

Builds one statistics snapshot for a farm: head counts, the cashbox
position and the reminder load.

DESIGN DECISION: Nothing here is cached or persisted. Every number is a
fresh fold over the records at call time, read inside one store
transaction so that no write lands halfway through the snapshot.
"""

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Callable, Optional
from uuid import UUID

from farmledger.config import LedgerSettings, get_settings
from farmledger.ledger import LedgerAccessor
from farmledger.models.common import ZERO, as_utc, utcnow
from farmledger.models.dashboard import (
    AnimalStats,
    DashboardStats,
    FinancialStats,
    ReminderStats,
)
from farmledger.models.ledger import CashboxMovement, MovementKind
from farmledger.models.livestock import Animal, AnimalEvent, AnimalStatus, EventType
from farmledger.queries.reminders import ReminderFilter
from farmledger.services.storage import EntityStore


def month_bounds(as_of: datetime) -> tuple[datetime, datetime]:
    """First and last instant of the calendar month containing `as_of`."""
    start = as_of.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
    if start.month == 12:
        next_start = start.replace(year=start.year + 1, month=1)
    else:
        next_start = start.replace(month=start.month + 1)
    return start, next_start - timedelta(microseconds=1)


class DashboardAggregator:
    """Computes DashboardStats for a farm."""

    def __init__(
        self,
        store: EntityStore,
        ledger: Optional[LedgerAccessor] = None,
        reminders: Optional[ReminderFilter] = None,
        settings: Optional[LedgerSettings] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._settings = settings or get_settings().ledger
        self._ledger = ledger or LedgerAccessor(store, settings=self._settings)
        self._reminders = reminders or ReminderFilter(
            store, settings=self._settings, clock=clock
        )
        self._clock = clock

    async def get_dashboard_stats(
        self,
        farm_id: UUID,
        as_of: Optional[datetime] = None,
    ) -> DashboardStats:
        """Statistics for the calendar month containing `as_of` (default: now)."""
        as_of = as_utc(as_of) if as_of is not None else as_utc(self._clock())
        month_start, month_end = month_bounds(as_of)

        async with self._store.transaction():
            animals = await self._animal_stats(farm_id, month_start, month_end)
            financial = await self._financial_stats(farm_id, month_start, month_end)
            reminders = await self._reminders.get_reminders(
                farm_id,
                days_ahead=self._settings.reminder_window_days,
                now=as_of,
            )

        buckets = ReminderFilter.split(reminders)
        return DashboardStats(
            farm_id=farm_id,
            as_of=as_of,
            month_start=month_start,
            month_end=month_end,
            animals=animals,
            financial=financial,
            reminders=ReminderStats(
                urgent_count=len(buckets.urgent),
                upcoming_count=len(buckets.upcoming),
            ),
        )

    async def _animal_stats(
        self,
        farm_id: UUID,
        month_start: datetime,
        month_end: datetime,
    ) -> AnimalStats:
        animals = await self._store.find(Animal, farm_id)
        events = await self._store.find(
            AnimalEvent,
            farm_id,
            {
                "event_type__in": [EventType.BIRTH, EventType.DEATH],
                "event_date__gte": month_start,
                "event_date__lte": month_end,
            },
        )

        by_status = {status: 0 for status in AnimalStatus}
        for animal in animals:
            by_status[animal.status] += 1

        return AnimalStats(
            total_active=by_status[AnimalStatus.ACTIVE],
            total_sold=by_status[AnimalStatus.SOLD],
            total_dead=by_status[AnimalStatus.DEAD],
            births_this_month=sum(1 for e in events if e.event_type == EventType.BIRTH),
            deaths_this_month=sum(1 for e in events if e.event_type == EventType.DEATH),
        )

    async def _financial_stats(
        self,
        farm_id: UUID,
        month_start: datetime,
        month_end: datetime,
    ) -> FinancialStats:
        balance = await self._ledger.get_balance(farm_id)
        debt = await self._ledger.get_outstanding_debt(farm_id)

        # Only cash that left the box this month; credit expenses count when reimbursed
        expenses = await self._store.find(
            CashboxMovement,
            farm_id,
            {
                "kind": MovementKind.EXPENSE_CASH,
                "created_at__gte": month_start,
                "created_at__lte": month_end,
            },
        )

        by_category: dict[str, Decimal] = {}
        total = ZERO
        for movement in expenses:
            key = movement.category.value
            by_category[key] = by_category.get(key, ZERO) + movement.amount
            total += movement.amount

        return FinancialStats(
            cashbox_balance=balance.balance,
            outstanding_debt=debt,
            expenses_this_month=total,
            expenses_by_category=by_category,
        )
