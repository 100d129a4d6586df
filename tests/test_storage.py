"""Tests for the entity store backends."""

import asyncio
from decimal import Decimal
from uuid import uuid4

import pytest

from farmledger.config import StorageSettings
from farmledger.models.ledger import (
    CashboxMovement,
    CreditExpense,
    CreditExpenseStatus,
    ExpenseCategory,
    MovementKind,
)
from farmledger.services.storage import (
    ConflictError,
    DuplicateError,
    InMemoryEntityStore,
    RecordNotFoundError,
    SQLiteEntityStore,
    StorageError,
)


@pytest.fixture
def sqlite_settings(tmp_path):
    return StorageSettings(backend="sqlite", sqlite_path=str(tmp_path / "farm.db"))


@pytest.fixture(params=["memory", "sqlite"])
def any_store(request, sqlite_settings):
    if request.param == "memory":
        yield InMemoryEntityStore()
    else:
        store = SQLiteEntityStore(sqlite_settings)
        yield store
        store.close()


def _deposit(farm_id, amount="10", description="in"):
    return CashboxMovement(
        farm_id=farm_id,
        kind=MovementKind.DEPOSIT,
        amount=Decimal(amount),
        description=description,
        created_by=uuid4(),
    )


def _expense(farm_id, amount="100"):
    return CreditExpense(
        farm_id=farm_id,
        amount=Decimal(amount),
        description="Vet",
        category=ExpenseCategory.VET,
        paid_by=uuid4(),
        remaining_amount=Decimal(amount),
        created_by=uuid4(),
    )


class TestEntityStore:
    """Behaviour shared by every backend."""

    def test_insert_and_get(self, run, any_store, farm_id):
        movement = run(any_store.insert(_deposit(farm_id, "12.50")))
        loaded = run(any_store.get(CashboxMovement, farm_id, movement.id))
        assert loaded == movement
        assert loaded.amount == Decimal("12.50")

    def test_get_is_farm_scoped(self, run, any_store, farm_id):
        movement = run(any_store.insert(_deposit(farm_id)))
        assert run(any_store.get(CashboxMovement, uuid4(), movement.id)) is None

    def test_duplicate_insert(self, run, any_store, farm_id):
        movement = run(any_store.insert(_deposit(farm_id)))
        with pytest.raises(DuplicateError):
            run(any_store.insert(movement))

    def test_find_filters_and_order(self, run, any_store, farm_id):
        for amount in ("5", "50", "20"):
            run(any_store.insert(_deposit(farm_id, amount, description=f"d{amount}")))
        run(any_store.insert(_deposit(uuid4(), "99")))

        found = run(any_store.find(
            CashboxMovement,
            farm_id,
            {"amount__gte": Decimal("10")},
            order_by="amount",
            descending=True,
        ))
        assert [m.description for m in found] == ["d50", "d20"]

        limited = run(any_store.find(CashboxMovement, farm_id, order_by="amount", limit=1))
        assert [m.description for m in limited] == ["d5"]

    def test_in_and_isnull_filters(self, run, any_store, farm_id):
        run(any_store.insert(_deposit(farm_id, "1", "a")))
        run(any_store.insert(_deposit(farm_id, "2", "b")))

        found = run(any_store.find(CashboxMovement, farm_id, {"description__in": ["b", "c"]}))
        assert [m.description for m in found] == ["b"]

        no_category = run(any_store.find(CashboxMovement, farm_id, {"category__isnull": True}))
        assert len(no_category) == 2

    def test_unknown_operator(self, run, any_store, farm_id):
        with pytest.raises(ValueError, match="Unsupported filter operator"):
            run(any_store.find(CashboxMovement, farm_id, {"amount__like": "1"}))

    def test_soft_delete_hides_record(self, run, any_store, farm_id):
        movement = run(any_store.insert(_deposit(farm_id)))
        assert run(any_store.soft_delete(CashboxMovement, farm_id, movement.id))
        assert run(any_store.get(CashboxMovement, farm_id, movement.id)) is None
        assert run(any_store.find(CashboxMovement, farm_id)) == []

        kept = run(any_store.find(CashboxMovement, farm_id, include_deleted=True))
        assert len(kept) == 1
        assert kept[0].deleted_at is not None
        assert not run(any_store.soft_delete(CashboxMovement, farm_id, movement.id))

    def test_update_revalidates(self, run, any_store, farm_id):
        expense = run(any_store.insert(_expense(farm_id)))
        updated = run(any_store.update_by_id(
            CreditExpense, farm_id, expense.id, {"remaining_amount": Decimal("40")}
        ))
        assert updated.status == CreditExpenseStatus.PARTIALLY_REIMBURSED

        with pytest.raises(StorageError):
            run(any_store.update_by_id(
                CreditExpense, farm_id, expense.id, {"remaining_amount": Decimal("-1")}
            ))

    def test_status_filter_on_computed_field(self, run, any_store, farm_id):
        expense = run(any_store.insert(_expense(farm_id)))
        run(any_store.insert(_expense(farm_id)))
        run(any_store.update_by_id(
            CreditExpense, farm_id, expense.id, {"remaining_amount": Decimal("0")}
        ))

        done = run(any_store.find(
            CreditExpense, farm_id, {"status": CreditExpenseStatus.FULLY_REIMBURSED}
        ))
        assert [e.id for e in done] == [expense.id]

    def test_update_missing_record(self, run, any_store, farm_id):
        with pytest.raises(RecordNotFoundError):
            run(any_store.update_by_id(
                CreditExpense, farm_id, uuid4(), {"remaining_amount": Decimal("1")}
            ))

    def test_compare_and_swap(self, run, any_store, farm_id):
        expense = run(any_store.insert(_expense(farm_id)))
        run(any_store.update_by_id(
            CreditExpense, farm_id, expense.id,
            {"remaining_amount": Decimal("60")},
            expected={"remaining_amount": Decimal("100")},
        ))

        with pytest.raises(ConflictError):
            run(any_store.update_by_id(
                CreditExpense, farm_id, expense.id,
                {"remaining_amount": Decimal("20")},
                expected={"remaining_amount": Decimal("100")},
            ))
        current = run(any_store.get(CreditExpense, farm_id, expense.id))
        assert current.remaining_amount == Decimal("60")

    def test_transaction_rolls_back(self, run, any_store, farm_id):
        kept = run(any_store.insert(_deposit(farm_id, "1", "kept")))
        expense = run(any_store.insert(_expense(farm_id)))

        async def failing():
            async with any_store.transaction():
                await any_store.insert(_deposit(farm_id, "2", "lost"))
                await any_store.update_by_id(
                    CreditExpense, farm_id, expense.id, {"remaining_amount": Decimal("0")}
                )
                await any_store.soft_delete(CashboxMovement, farm_id, kept.id)
                raise RuntimeError("boom")

        with pytest.raises(RuntimeError):
            run(failing())

        assert [m.description for m in run(any_store.find(CashboxMovement, farm_id))] == ["kept"]
        current = run(any_store.get(CreditExpense, farm_id, expense.id))
        assert current.remaining_amount == Decimal("100")

    def test_nested_transactions_join(self, run, any_store, farm_id):
        async def nested():
            async with any_store.transaction():
                await any_store.insert(_deposit(farm_id, "1", "outer"))
                async with any_store.transaction():
                    await any_store.insert(_deposit(farm_id, "2", "inner"))

        run(nested())
        assert len(run(any_store.find(CashboxMovement, farm_id))) == 2

    def test_rollback_keeps_writes_made_outside(self, run, any_store, farm_id):
        """A write issued while another task's transaction is open survives its rollback."""

        async def failing():
            async with any_store.transaction():
                await any_store.insert(_deposit(farm_id, "2", "lost"))
                await asyncio.sleep(0)
                raise RuntimeError("boom")

        async def outside():
            await asyncio.sleep(0)
            return await any_store.insert(_deposit(farm_id, "5", "outside"))

        async def both():
            return await asyncio.gather(failing(), outside(), return_exceptions=True)

        failed, inserted = run(both())
        assert isinstance(failed, RuntimeError)
        assert inserted.description == "outside"
        assert [m.description for m in run(any_store.find(CashboxMovement, farm_id))] == ["outside"]


class TestSQLiteStore:
    """SQLite-specific behaviour."""

    def test_data_survives_reopen(self, run, sqlite_settings, farm_id):
        store = SQLiteEntityStore(sqlite_settings)
        movement = run(store.insert(_deposit(farm_id, "33.30")))
        store.close()

        reopened = SQLiteEntityStore(sqlite_settings)
        try:
            loaded = run(reopened.get(CashboxMovement, farm_id, movement.id))
            assert loaded.amount == Decimal("33.30")
            assert loaded.created_at == movement.created_at
        finally:
            reopened.close()

    def test_in_memory_database(self, run, farm_id):
        store = SQLiteEntityStore(StorageSettings(backend="sqlite", sqlite_path=":memory:"))
        try:
            run(store.insert(_deposit(farm_id)))
            assert len(run(store.find(CashboxMovement, farm_id))) == 1
        finally:
            store.close()
