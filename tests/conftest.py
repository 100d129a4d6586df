"""
Shared fixtures.

Services are async; each test gets its own event loop through `run`,
which executes a coroutine to completion and returns its result.
"""

import asyncio
from uuid import uuid4

import pytest

from farmledger.audit import AuditLogger
from farmledger.config import LedgerSettings
from farmledger.ledger import CreditExpenseService, LedgerAccessor
from farmledger.models.livestock import Animal, AnimalType, Sex
from farmledger.services.storage import InMemoryEntityStore
from farmledger.validation import DomainRuleValidator


@pytest.fixture
def run():
    loop = asyncio.new_event_loop()
    try:
        yield loop.run_until_complete
    finally:
        loop.close()


@pytest.fixture
def ledger_settings():
    return LedgerSettings(
        urgent_window_days=7,
        reminder_window_days=30,
        recent_movements_limit=10,
        enforce_cash_balance=False,
    )


class InterleavingStore(InMemoryEntityStore):
    """Suspends on every read and update so concurrent tasks really interleave."""

    async def get(self, *args, **kwargs):
        await asyncio.sleep(0)
        return await super().get(*args, **kwargs)

    async def update_by_id(self, *args, **kwargs):
        await asyncio.sleep(0)
        return await super().update_by_id(*args, **kwargs)


@pytest.fixture
def store():
    return InMemoryEntityStore()


@pytest.fixture
def interleaving_store():
    return InterleavingStore()


@pytest.fixture
def farm_id():
    return uuid4()


@pytest.fixture
def user_id():
    return uuid4()


@pytest.fixture
def audit_logger(store):
    return AuditLogger(store)


@pytest.fixture
def ledger(store, audit_logger, ledger_settings):
    return LedgerAccessor(store, audit_logger=audit_logger, settings=ledger_settings)


@pytest.fixture
def credit(store, ledger, audit_logger, ledger_settings):
    return CreditExpenseService(
        store, ledger=ledger, audit_logger=audit_logger, settings=ledger_settings
    )


@pytest.fixture
def validator(store):
    return DomainRuleValidator(store)


@pytest.fixture
def add_animal(run, store, farm_id, user_id):
    """Insert an animal straight into the store, bypassing registration rules."""

    def _add(**fields):
        fields.setdefault("type", AnimalType.INDIVIDUAL)
        fields.setdefault("species", "cattle")
        if fields["type"] == AnimalType.LOT:
            fields.setdefault("lot_count", 10)
        else:
            fields.setdefault("sex", Sex.FEMALE)
        animal = Animal(
            farm_id=fields.pop("farm_id", farm_id),
            created_by=user_id,
            **fields,
        )
        return run(store.insert(animal))

    return _add
