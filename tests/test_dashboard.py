"""Tests for the dashboard aggregator and event queries."""

import random
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from farmledger.models.ledger import (
    CashboxMovement,
    CreditExpense,
    ExpenseCategory,
    MovementKind,
)
from farmledger.models.livestock import (
    Animal,
    AnimalEvent,
    AnimalStatus,
    AnimalType,
    EventType,
    TargetType,
)
from farmledger.queries import (
    DashboardAggregator,
    EventQueries,
    ReminderFilter,
    month_bounds,
)


NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def dashboard(store, ledger, ledger_settings):
    reminders = ReminderFilter(store, settings=ledger_settings, clock=lambda: NOW)
    return DashboardAggregator(
        store,
        ledger=ledger,
        reminders=reminders,
        settings=ledger_settings,
        clock=lambda: NOW,
    )


class TestMonthBounds:

    def test_mid_year(self):
        start, end = month_bounds(NOW)
        assert start == datetime(2024, 6, 1, tzinfo=timezone.utc)
        assert end == datetime(2024, 6, 30, 23, 59, 59, 999999, tzinfo=timezone.utc)

    def test_december_rolls_year(self):
        start, end = month_bounds(datetime(2024, 12, 31, 23, 0, tzinfo=timezone.utc))
        assert start == datetime(2024, 12, 1, tzinfo=timezone.utc)
        assert end == datetime(2024, 12, 31, 23, 59, 59, 999999, tzinfo=timezone.utc)


class TestDashboardStats:

    def test_empty_farm(self, run, dashboard, farm_id):
        stats = run(dashboard.get_dashboard_stats(farm_id))
        assert stats.as_of == NOW
        assert stats.animals.total_active == 0
        assert stats.financial.cashbox_balance == Decimal("0")
        assert stats.financial.expenses_by_category == {}
        assert stats.reminders.urgent_count == 0

    def test_scenario(self, run, store, dashboard, ledger, credit, add_animal, farm_id, user_id):
        run(ledger.record_deposit(farm_id, Decimal("500"), "in", created_by=user_id))
        expense = run(credit.create_credit_expense(
            farm_id, Decimal("180"), "Vet", ExpenseCategory.VET, user_id, created_by=user_id
        ))
        run(credit.reimburse(farm_id, expense.id, Decimal("100"), created_by=user_id))

        cow = add_animal()
        add_animal(status=AnimalStatus.SOLD)
        for days in (3, 20):
            run(store.insert(AnimalEvent(
                farm_id=farm_id,
                target_id=cow.id,
                target_type=TargetType.ANIMAL,
                event_type=EventType.VACCINATION,
                event_date=NOW - timedelta(days=1),
                next_due_date=NOW + timedelta(days=days),
                created_by=user_id,
            )))

        stats = run(dashboard.get_dashboard_stats(farm_id))
        assert stats.animals.total_active == 1
        assert stats.animals.total_sold == 1
        assert stats.financial.cashbox_balance == Decimal("400")
        assert stats.financial.outstanding_debt == Decimal("80")
        assert stats.reminders.urgent_count == 1
        assert stats.reminders.upcoming_count == 1

    def test_credit_expenses_not_counted_as_monthly_spend(
        self, run, store, dashboard, farm_id, user_id
    ):
        expense_id = uuid4()
        run(store.insert(CashboxMovement(
            farm_id=farm_id,
            kind=MovementKind.EXPENSE_CREDIT,
            amount=Decimal("70"),
            description="Fronted",
            category=ExpenseCategory.FEED,
            related_expense_id=expense_id,
            created_at=NOW,
            created_by=user_id,
        )))
        run(store.insert(CashboxMovement(
            farm_id=farm_id,
            kind=MovementKind.EXPENSE_CASH,
            amount=Decimal("30"),
            description="Hay",
            category=ExpenseCategory.FEED,
            created_at=NOW,
            created_by=user_id,
        )))

        stats = run(dashboard.get_dashboard_stats(farm_id))
        assert stats.financial.expenses_this_month == Decimal("30")
        assert stats.financial.expenses_by_category == {"FEED": Decimal("30")}

    @pytest.mark.parametrize("seed", [1, 7, 42, 2024])
    def test_matches_independent_recount(self, run, store, dashboard, farm_id, user_id, seed):
        """Every dashboard number equals a direct fold over a random population."""
        rng = random.Random(seed)
        month_start, month_end = month_bounds(NOW)

        def random_instant():
            return NOW + timedelta(hours=rng.randint(-60 * 24, 60 * 24))

        animals = []
        for _ in range(rng.randint(5, 30)):
            is_lot = rng.random() < 0.3
            animal = Animal(
                farm_id=rng.choice([farm_id, farm_id, farm_id, uuid4()]),
                type=AnimalType.LOT if is_lot else AnimalType.INDIVIDUAL,
                species="goat",
                lot_count=rng.randint(1, 40) if is_lot else None,
                status=rng.choice(list(AnimalStatus)),
                deleted_at=NOW if rng.random() < 0.15 else None,
                created_by=user_id,
            )
            animals.append(run(store.insert(animal)))

        events = []
        for _ in range(rng.randint(10, 60)):
            target = rng.choice(animals)
            event_date = random_instant()
            due = event_date + timedelta(days=rng.randint(0, 45)) if rng.random() < 0.5 else None
            event = AnimalEvent(
                farm_id=target.farm_id,
                target_id=target.id,
                target_type=TargetType.LOT if target.type == AnimalType.LOT else TargetType.ANIMAL,
                event_type=rng.choice(list(EventType)),
                event_date=event_date,
                next_due_date=due,
                deleted_at=NOW if rng.random() < 0.1 else None,
                created_by=user_id,
            )
            events.append(run(store.insert(event)))

        movements = []
        for _ in range(rng.randint(5, 40)):
            kind = rng.choice([MovementKind.DEPOSIT, MovementKind.EXPENSE_CASH])
            movement = CashboxMovement(
                farm_id=farm_id,
                kind=kind,
                amount=Decimal(rng.randint(1, 100000)) / 100,
                description="random",
                category=rng.choice(list(ExpenseCategory))
                if kind == MovementKind.EXPENSE_CASH else None,
                created_at=random_instant(),
                created_by=user_id,
            )
            movements.append(run(store.insert(movement)))

        expenses = []
        for _ in range(rng.randint(0, 8)):
            amount = Decimal(rng.randint(100, 50000)) / 100
            expense = CreditExpense(
                farm_id=farm_id,
                amount=amount,
                description="fronted",
                category=ExpenseCategory.OTHER,
                paid_by=user_id,
                remaining_amount=rng.choice([amount, Decimal("0"), amount / 2]).quantize(
                    Decimal("0.01")
                ),
                created_by=user_id,
            )
            expenses.append(run(store.insert(expense)))

        stats = run(dashboard.get_dashboard_stats(farm_id))

        live_animals = [a for a in animals if a.farm_id == farm_id and a.deleted_at is None]
        live_events = [e for e in events if e.farm_id == farm_id and e.deleted_at is None]
        in_month = [e for e in live_events if month_start <= e.event_date <= month_end]
        month_spend = [
            m for m in movements
            if m.kind == MovementKind.EXPENSE_CASH and month_start <= m.created_at <= month_end
        ]
        due = [
            e for e in live_events
            if e.next_due_date is not None
            and NOW <= e.next_due_date <= NOW + timedelta(days=30)
        ]

        assert stats.animals.total_active == sum(
            1 for a in live_animals if a.status == AnimalStatus.ACTIVE
        )
        assert stats.animals.total_sold == sum(
            1 for a in live_animals if a.status == AnimalStatus.SOLD
        )
        assert stats.animals.total_dead == sum(
            1 for a in live_animals if a.status == AnimalStatus.DEAD
        )
        assert stats.animals.births_this_month == sum(
            1 for e in in_month if e.event_type == EventType.BIRTH
        )
        assert stats.animals.deaths_this_month == sum(
            1 for e in in_month if e.event_type == EventType.DEATH
        )

        assert stats.financial.cashbox_balance == (
            sum((m.amount for m in movements if m.kind == MovementKind.DEPOSIT), Decimal("0"))
            - sum((m.amount for m in movements if m.kind == MovementKind.EXPENSE_CASH), Decimal("0"))
        )
        assert stats.financial.outstanding_debt == sum(
            (e.remaining_amount for e in expenses), Decimal("0")
        )
        assert stats.financial.expenses_this_month == sum(
            (m.amount for m in month_spend), Decimal("0")
        )
        assert sum(stats.financial.expenses_by_category.values(), Decimal("0")) == (
            stats.financial.expenses_this_month
        )

        assert stats.reminders.urgent_count == sum(
            1 for e in due if e.next_due_date <= NOW + timedelta(days=7)
        )
        assert stats.reminders.urgent_count + stats.reminders.upcoming_count == len(due)


class TestEventQueries:

    def test_counts_by_type_bounds_are_inclusive(self, run, store, add_animal, farm_id, user_id):
        cow = add_animal()
        start = datetime(2024, 5, 1, tzinfo=timezone.utc)
        end = datetime(2024, 5, 31, tzinfo=timezone.utc)
        dated = [
            (EventType.VACCINATION, start - timedelta(microseconds=1)),
            (EventType.VACCINATION, start),
            (EventType.WEIGHT, datetime(2024, 5, 15, tzinfo=timezone.utc)),
            (EventType.WEIGHT, end),
            (EventType.NOTE, end + timedelta(microseconds=1)),
        ]
        for event_type, event_date in dated:
            run(store.insert(AnimalEvent(
                farm_id=farm_id,
                target_id=cow.id,
                target_type=TargetType.ANIMAL,
                event_type=event_type,
                event_date=event_date,
                created_by=user_id,
            )))

        queries = EventQueries(store)
        counts = run(queries.counts_by_type(farm_id, start=start, end=end))
        assert counts[EventType.VACCINATION] == 1
        assert counts[EventType.WEIGHT] == 2
        assert counts[EventType.NOTE] == 0
        assert set(counts) == set(EventType)

        assert sum(run(queries.counts_by_type(farm_id, start=start)).values()) == 4
        assert sum(run(queries.counts_by_type(farm_id, end=end)).values()) == 4
        assert sum(run(queries.counts_by_type(farm_id)).values()) == 5
