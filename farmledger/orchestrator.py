"""
Main Orchestrator for the Farm Ledger

This module ties the components together and defines the livestock
write flows:
1. Register / delete an animal or lot
2. Change an animal's status
3. Record / update / delete an event
4. Adjust a lot's head count

DESIGN DECISION: The orchestrator enforces the boundaries:
- Nothing is written before the Domain Rule Validator accepts it
- Every validation and write of one call share one store transaction
- Every change and every rejected change is audited

Status changes and their corroborating SALE / DEATH events are separate
calls. Recording an event never changes an animal's status.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, NamedTuple, Optional
from uuid import UUID

import structlog

from farmledger.audit import AuditLogger
from farmledger.config import Settings, get_settings
from farmledger.errors import (
    BusinessRuleViolation,
    LedgerError,
    NotFoundError,
    RuleCode,
    ValidationError,
    build_record,
)
from farmledger.ledger import CreditExpenseService, LedgerAccessor
from farmledger.models.audit import AuditEventType
from farmledger.models.livestock import (
    Animal,
    AnimalEvent,
    AnimalStatus,
    AnimalType,
    EventType,
    TargetType,
)
from farmledger.queries import DashboardAggregator, EventQueries, ReminderFilter
from farmledger.services.storage import (
    ConflictError,
    EntityStore,
    InMemoryEntityStore,
    SQLiteEntityStore,
)
from farmledger.validation import DomainRuleValidator, LotCountOperation


logger = structlog.get_logger("farmledger.orchestrator")

# Event fields a caller may change after creation
EVENT_UPDATABLE_FIELDS = frozenset({
    "event_date",
    "next_due_date",
    "cost",
    "note",
    "payload",
})


class LivestockFlow:
    """
    Orchestrates every livestock mutation.

    Each method:
    1. Opens a store transaction
    2. Runs the matching validator check
    3. Writes
    4. Audits the change (or the rejection)
    """

    def __init__(
        self,
        store: EntityStore,
        validator: Optional[DomainRuleValidator] = None,
        audit_logger: Optional[AuditLogger] = None,
    ):
        self._store = store
        self._validator = validator or DomainRuleValidator(store)
        self._audit_logger = audit_logger

    async def _rejected(
        self,
        farm_id: UUID,
        error: LedgerError,
        entity_id: Optional[UUID],
        actor_id: Optional[UUID],
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_rule_violation(
                farm_id, error, entity_id=entity_id, actor_id=actor_id
            )

    async def _audit(
        self,
        farm_id: UUID,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: UUID,
        actor_id: Optional[UUID],
        description: str,
        details: Optional[dict] = None,
    ) -> None:
        if self._audit_logger:
            await self._audit_logger.log_livestock_change(
                farm_id=farm_id,
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                actor_id=actor_id,
                description=description,
                details=details,
            )

    async def _get_event(self, farm_id: UUID, event_id: UUID) -> AnimalEvent:
        event = await self._store.get(AnimalEvent, farm_id, event_id)
        if event is None:
            raise NotFoundError(
                RuleCode.EVENT_NOT_FOUND,
                "Event not found",
                params={"event_id": event_id},
            )
        return event

    # =========================================================================
    # ANIMALS
    # =========================================================================

    async def register_animal(
        self,
        farm_id: UUID,
        *,
        created_by: UUID,
        **fields: Any,
    ) -> Animal:
        """
        Register an individual animal or a lot.

        Raises:
            ValidationError: malformed fields, duplicate tag, bad parents
        """
        try:
            animal = build_record(
                Animal, farm_id=farm_id, created_by=created_by, **fields
            )
            async with self._store.transaction():
                await self._validator.validate_animal_data(animal)
                await self._store.insert(animal)
        except LedgerError as e:
            await self._rejected(farm_id, e, None, created_by)
            raise

        await self._audit(
            farm_id,
            AuditEventType.ANIMAL_REGISTERED,
            "animal",
            animal.id,
            created_by,
            f"Registered {animal.type.value.lower()} of {animal.species}",
            {"tag_number": animal.tag_number, "lot_count": animal.lot_count},
        )
        return animal

    async def change_animal_status(
        self,
        farm_id: UUID,
        animal_id: UUID,
        new_status: AnimalStatus,
        *,
        updated_by: UUID,
    ) -> Animal:
        """Move an animal along ACTIVE -> SOLD | DEAD."""
        try:
            async with self._store.transaction():
                current = await self._validator.validate_animal_status_transition(
                    farm_id, animal_id, new_status
                )
                try:
                    updated = await self._store.update_by_id(
                        Animal,
                        farm_id,
                        animal_id,
                        {"status": AnimalStatus(new_status), "updated_by": updated_by},
                        expected={"status": current.status},
                    )
                except ConflictError as e:
                    raise BusinessRuleViolation(
                        RuleCode.CONCURRENT_MODIFICATION,
                        "Animal status changed concurrently; reload and try again",
                        params={"animal_id": animal_id},
                    ) from e
        except LedgerError as e:
            await self._rejected(farm_id, e, animal_id, updated_by)
            raise

        await self._audit(
            farm_id,
            AuditEventType.ANIMAL_STATUS_CHANGED,
            "animal",
            animal_id,
            updated_by,
            f"Status changed from {current.status.value} to {updated.status.value}",
            {"from": current.status.value, "to": updated.status.value},
        )
        return updated

    async def adjust_lot_count(
        self,
        farm_id: UUID,
        animal_id: UUID,
        operation: LotCountOperation,
        count: int,
        *,
        updated_by: UUID,
    ) -> Animal:
        """Raise or lower a lot's head count."""
        operation = LotCountOperation(operation)
        try:
            async with self._store.transaction():
                lot = await self._validator.validate_lot_count_operation(
                    farm_id, animal_id, operation, count
                )
                delta = count if operation == LotCountOperation.INCREASE else -count
                try:
                    updated = await self._store.update_by_id(
                        Animal,
                        farm_id,
                        animal_id,
                        {"lot_count": lot.lot_count + delta, "updated_by": updated_by},
                        expected={"lot_count": lot.lot_count},
                    )
                except ConflictError as e:
                    raise BusinessRuleViolation(
                        RuleCode.CONCURRENT_MODIFICATION,
                        "Lot count changed concurrently; reload and try again",
                        params={"animal_id": animal_id},
                    ) from e
        except LedgerError as e:
            await self._rejected(farm_id, e, animal_id, updated_by)
            raise

        await self._audit(
            farm_id,
            AuditEventType.LOT_COUNT_ADJUSTED,
            "animal",
            animal_id,
            updated_by,
            f"Lot count {operation.value.lower()}d by {count}",
            {"from": lot.lot_count, "to": updated.lot_count},
        )
        return updated

    async def delete_animal(
        self,
        farm_id: UUID,
        animal_id: UUID,
        *,
        deleted_by: UUID,
    ) -> None:
        """Soft-delete an animal that has no recorded events."""
        try:
            async with self._store.transaction():
                await self._validator.validate_animal_deletion(farm_id, animal_id)
                await self._store.soft_delete(Animal, farm_id, animal_id)
        except LedgerError as e:
            await self._rejected(farm_id, e, animal_id, deleted_by)
            raise

        await self._audit(
            farm_id,
            AuditEventType.ANIMAL_DELETED,
            "animal",
            animal_id,
            deleted_by,
            "Animal deleted",
        )

    # =========================================================================
    # EVENTS
    # =========================================================================

    async def record_event(
        self,
        farm_id: UUID,
        target_id: UUID,
        event_type: EventType,
        event_date: datetime,
        *,
        created_by: UUID,
        next_due_date: Optional[datetime] = None,
        cost: Optional[Decimal] = None,
        note: Optional[str] = None,
        payload: Optional[dict[str, Any]] = None,
    ) -> AnimalEvent:
        """
        Record an event against an animal or lot.

        The target type is taken from the animal itself.
        """
        try:
            async with self._store.transaction():
                target = await self._validator.validate_event_creation(
                    farm_id, target_id, event_type, event_date, cost
                )
                event = build_record(
                    AnimalEvent,
                    farm_id=farm_id,
                    target_id=target_id,
                    target_type=(
                        TargetType.LOT if target.type == AnimalType.LOT
                        else TargetType.ANIMAL
                    ),
                    event_type=event_type,
                    event_date=event_date,
                    next_due_date=next_due_date,
                    cost=cost,
                    note=note,
                    payload=payload or {},
                    created_by=created_by,
                )
                await self._store.insert(event)
        except LedgerError as e:
            await self._rejected(farm_id, e, target_id, created_by)
            raise

        await self._audit(
            farm_id,
            AuditEventType.EVENT_RECORDED,
            "event",
            event.id,
            created_by,
            f"{event.event_type.value} recorded",
            {"target_id": str(target_id)},
        )
        return event

    async def update_event(
        self,
        farm_id: UUID,
        event_id: UUID,
        patch: dict[str, Any],
        *,
        updated_by: UUID,
    ) -> AnimalEvent:
        """Change an event's date, due date, cost, note or payload."""
        try:
            unknown = set(patch) - EVENT_UPDATABLE_FIELDS
            if unknown:
                raise ValidationError(
                    RuleCode.INVALID_INPUT,
                    "These event fields cannot be changed",
                    details=[
                        {"field": field, "message": "not updatable"}
                        for field in sorted(unknown)
                    ],
                )

            async with self._store.transaction():
                event = await self._get_event(farm_id, event_id)
                self._validator.validate_event_update(event, patch)
                changes = {**patch, "updated_by": updated_by}
                # Re-validate the whole record before it reaches the store
                build_record(AnimalEvent, **{**event.model_dump(), **changes})
                updated = await self._store.update_by_id(
                    AnimalEvent, farm_id, event_id, changes
                )
        except LedgerError as e:
            await self._rejected(farm_id, e, event_id, updated_by)
            raise

        await self._audit(
            farm_id,
            AuditEventType.EVENT_UPDATED,
            "event",
            event_id,
            updated_by,
            f"{updated.event_type.value} updated",
            {"fields": sorted(patch)},
        )
        return updated

    async def delete_event(
        self,
        farm_id: UUID,
        event_id: UUID,
        *,
        deleted_by: UUID,
    ) -> None:
        """Soft-delete an event."""
        try:
            async with self._store.transaction():
                event = await self._get_event(farm_id, event_id)
                await self._store.soft_delete(AnimalEvent, farm_id, event_id)
        except LedgerError as e:
            await self._rejected(farm_id, e, event_id, deleted_by)
            raise

        await self._audit(
            farm_id,
            AuditEventType.EVENT_DELETED,
            "event",
            event_id,
            deleted_by,
            f"{event.event_type.value} deleted",
        )


class AppComponents(NamedTuple):
    store: EntityStore
    audit_logger: AuditLogger
    ledger: LedgerAccessor
    credit_expenses: CreditExpenseService
    validator: DomainRuleValidator
    reminders: ReminderFilter
    dashboard: DashboardAggregator
    events: EventQueries
    livestock: LivestockFlow


def create_app_components(
    settings: Optional[Settings] = None,
    store: Optional[EntityStore] = None,
) -> AppComponents:
    """
    Factory function to create all application components.

    Args:
        settings: Settings to use (default: get_settings())
        store: Entity store to use. If None, one is built from the
               storage settings.

    Returns:
        AppComponents sharing one store and one audit logger
    """
    settings = settings or get_settings()
    ledger_settings = settings.ledger

    if store is None:
        storage_settings = settings.storage
        if storage_settings.backend == "sqlite":
            store = SQLiteEntityStore(storage_settings)
        else:
            store = InMemoryEntityStore()
        logger.info("store_created", backend=storage_settings.backend)

    audit_logger = AuditLogger(store)
    ledger = LedgerAccessor(store, audit_logger=audit_logger, settings=ledger_settings)
    credit_expenses = CreditExpenseService(
        store, ledger=ledger, audit_logger=audit_logger, settings=ledger_settings
    )
    validator = DomainRuleValidator(store)
    reminders = ReminderFilter(store, settings=ledger_settings)
    dashboard = DashboardAggregator(
        store, ledger=ledger, reminders=reminders, settings=ledger_settings
    )

    return AppComponents(
        store=store,
        audit_logger=audit_logger,
        ledger=ledger,
        credit_expenses=credit_expenses,
        validator=validator,
        reminders=reminders,
        dashboard=dashboard,
        events=EventQueries(store),
        livestock=LivestockFlow(store, validator=validator, audit_logger=audit_logger),
    )
