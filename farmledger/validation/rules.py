"""
Domain Rule Validator

Stateless checks of a proposed change against the current store state.
Every mutation of an animal or an event is validated here BEFORE it is
written.

DESIGN DECISION: These rules live here and not in database constraints,
because they reference event history (a join across tables) that a
single-row constraint cannot express.

Two state machines are guarded:

1. Animal status: ACTIVE -> SOLD | DEAD. SOLD and DEAD are final.
   Leaving ACTIVE is refused while the animal still has due reminders.

2. Event creation: generic checks (target exists, is active, date not in
   the future for dated facts) followed by the per-type rules found in
   EVENT_RULES. The table must name every EventType; a new event type
   without an entry fails at import time instead of being skipped.
"""

import re
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Optional
from uuid import UUID

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from farmledger.errors import (
    BusinessRuleViolation,
    NotFoundError,
    RuleCode,
    ValidationError,
    positive_amount,
)
from farmledger.models.common import as_utc, utcnow
from farmledger.models.livestock import (
    Animal,
    AnimalEvent,
    AnimalStatus,
    AnimalType,
    EventType,
    Sex,
)
from farmledger.services.storage import EntityStore


ALLOWED_TRANSITIONS: dict[AnimalStatus, frozenset[AnimalStatus]] = {
    AnimalStatus.ACTIVE: frozenset({AnimalStatus.SOLD, AnimalStatus.DEAD}),
    AnimalStatus.SOLD: frozenset(),
    AnimalStatus.DEAD: frozenset(),
}

# Events that record a status change and may target inactive animals
STATUS_CHANGE_EVENTS = frozenset({EventType.DEATH, EventType.SALE})

# Facts that cannot be dated in the future
NO_FUTURE_EVENTS = frozenset({
    EventType.BIRTH,
    EventType.DEATH,
    EventType.SALE,
    EventType.WEIGHT,
})

TAG_NUMBER_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")

_DATETIME = TypeAdapter(datetime)


def coerce_datetime(value: Any, field: str) -> datetime:
    """Parse caller input the way the event model will, as aware UTC."""
    try:
        return as_utc(_DATETIME.validate_python(value))
    except PydanticValidationError as e:
        raise ValidationError(
            RuleCode.INVALID_INPUT,
            f"{field} is not a valid date: {value!r}",
            details=[{"field": field, "message": "not a valid date"}],
        ) from e


class LotCountOperation(str, Enum):
    INCREASE = "INCREASE"
    DECREASE = "DECREASE"


class DomainRuleValidator:
    """
    Validates animal lifecycle and event rules.

    Args:
        store: Entity store to read current state from
        clock: Returns "now"; injectable for tests
    """

    def __init__(
        self,
        store: EntityStore,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._clock = clock

    def _now(self) -> datetime:
        return as_utc(self._clock())

    async def _get_animal(
        self,
        farm_id: UUID,
        animal_id: UUID,
        code: RuleCode = RuleCode.ANIMAL_NOT_FOUND,
    ) -> Animal:
        animal = await self._store.get(Animal, farm_id, animal_id)
        if animal is None:
            raise NotFoundError(
                code,
                "Animal not found" if code == RuleCode.ANIMAL_NOT_FOUND
                else "Target animal or lot not found",
                params={"animal_id": animal_id},
            )
        return animal

    async def _events_of(
        self,
        farm_id: UUID,
        target_id: UUID,
        **filters: Any,
    ) -> list[AnimalEvent]:
        return await self._store.find(
            AnimalEvent, farm_id, {"target_id": target_id, **filters}
        )

    # =========================================================================
    # ANIMAL STATUS
    # =========================================================================

    async def validate_animal_status_transition(
        self,
        farm_id: UUID,
        animal_id: UUID,
        new_status: AnimalStatus,
    ) -> Animal:
        """
        Check that an animal may move to `new_status`.

        Returns the current animal so the caller can apply the change.
        """
        animal = await self._get_animal(farm_id, animal_id)
        new_status = AnimalStatus(new_status)

        if new_status not in ALLOWED_TRANSITIONS[animal.status]:
            raise BusinessRuleViolation(
                RuleCode.INVALID_STATUS_TRANSITION,
                f"Cannot change animal status from {animal.status.value} "
                f"to {new_status.value}",
                params={"from": animal.status.value, "to": new_status.value},
            )

        if new_status in (AnimalStatus.SOLD, AnimalStatus.DEAD):
            due = await self._events_of(
                farm_id, animal_id, next_due_date__gte=self._now()
            )
            if due:
                raise BusinessRuleViolation(
                    RuleCode.HAS_ACTIVE_EVENTS,
                    f"Cannot change status to {new_status.value} - animal has "
                    f"{len(due)} upcoming events",
                    params={"count": len(due)},
                )

        return animal

    # =========================================================================
    # EVENT CREATION
    # =========================================================================

    async def validate_event_creation(
        self,
        farm_id: UUID,
        target_id: UUID,
        event_type: EventType,
        event_date: datetime,
        cost: Optional[Decimal] = None,
    ) -> Animal:
        """
        Check the rules for recording a new event against a target.

        Returns the target animal.
        """
        event_type = EventType(event_type)
        animal = await self._get_animal(farm_id, target_id, RuleCode.TARGET_NOT_FOUND)

        if event_type not in STATUS_CHANGE_EVENTS and not animal.is_active:
            raise BusinessRuleViolation(
                RuleCode.INACTIVE_TARGET,
                f"Cannot create events for {animal.status.value.lower()} animals",
                params={"status": animal.status.value},
            )

        self._check_not_future(event_type, event_date)

        check = getattr(self, EVENT_RULES[event_type])
        await check(farm_id, animal, cost)
        return animal

    def _check_not_future(self, event_type: EventType, event_date: Any) -> None:
        event_date = coerce_datetime(event_date, "event_date")
        if event_type in NO_FUTURE_EVENTS and event_date > self._now():
            raise BusinessRuleViolation(
                RuleCode.FUTURE_EVENT_NOT_ALLOWED,
                f"{event_type.value} events cannot be scheduled in the future",
                params={"event_type": event_type.value},
            )

    async def _check_birth(
        self, farm_id: UUID, animal: Animal, cost: Optional[Decimal]
    ) -> None:
        if animal.type == AnimalType.LOT:
            raise BusinessRuleViolation(
                RuleCode.BIRTH_NOT_FOR_LOTS,
                "Birth events are not applicable to lot-type animals",
            )
        if await self._events_of(farm_id, animal.id, event_type=EventType.BIRTH):
            raise BusinessRuleViolation(
                RuleCode.BIRTH_EVENT_EXISTS,
                "Animal already has a birth event recorded",
            )

    async def _check_death(
        self, farm_id: UUID, animal: Animal, cost: Optional[Decimal]
    ) -> None:
        if animal.status == AnimalStatus.DEAD:
            raise BusinessRuleViolation(
                RuleCode.ALREADY_DEAD,
                "Animal is already marked as dead",
            )
        if await self._events_of(farm_id, animal.id, event_type=EventType.DEATH):
            raise BusinessRuleViolation(
                RuleCode.DEATH_EVENT_EXISTS,
                "Animal already has a death event recorded",
            )

    async def _check_sale(
        self, farm_id: UUID, animal: Animal, cost: Optional[Decimal]
    ) -> None:
        if animal.status == AnimalStatus.SOLD:
            raise BusinessRuleViolation(
                RuleCode.ALREADY_SOLD,
                "Animal is already marked as sold",
            )
        if animal.status == AnimalStatus.DEAD:
            raise BusinessRuleViolation(
                RuleCode.CANNOT_SELL_DEAD,
                "Cannot sell a dead animal",
            )
        self._check_sale_cost(cost)

    def _check_sale_cost(self, cost: Optional[Decimal]) -> None:
        try:
            positive_amount(cost, "cost")
        except ValidationError as e:
            raise BusinessRuleViolation(
                RuleCode.SALE_REQUIRES_COST,
                "Sale events must have a positive cost value",
            ) from e

    async def _no_extra_rules(
        self, farm_id: UUID, animal: Animal, cost: Optional[Decimal]
    ) -> None:
        return None

    # =========================================================================
    # EVENT UPDATE
    # =========================================================================

    def validate_event_update(self, event: AnimalEvent, patch: dict[str, Any]) -> None:
        """Re-apply the date and cost rules to the fields being changed."""
        if patch.get("event_date") is not None:
            self._check_not_future(event.event_type, patch["event_date"])
        if event.event_type == EventType.SALE and "cost" in patch:
            self._check_sale_cost(patch["cost"])

    # =========================================================================
    # ANIMAL REGISTRATION / DELETION / LOT COUNTS
    # =========================================================================

    async def validate_animal_data(self, animal: Animal) -> None:
        """
        Check a new animal against the farm's existing animals.

        All problems are collected and raised together as one
        ValidationError with a detail per field.
        """
        details: list[dict[str, str]] = []

        if animal.tag_number:
            if not TAG_NUMBER_PATTERN.match(animal.tag_number):
                details.append({
                    "field": "tag_number",
                    "message": "Tag number can only contain letters, numbers, "
                               "hyphens, and underscores",
                })
            existing = await self._store.find(
                Animal, animal.farm_id, {"tag_number": animal.tag_number}
            )
            if any(other.id != animal.id for other in existing):
                details.append({
                    "field": "tag_number",
                    "message": "Tag number already exists in this farm",
                })

        for field, parent_id, sex in (
            ("father_id", animal.father_id, Sex.MALE),
            ("mother_id", animal.mother_id, Sex.FEMALE),
        ):
            if parent_id is None:
                continue
            if parent_id == animal.id:
                details.append({"field": field, "message": "Animal cannot be its own parent"})
                continue
            parent = await self._store.get(Animal, animal.farm_id, parent_id)
            if parent is None:
                details.append({
                    "field": field,
                    "message": "Parent animal not found in this farm",
                })
            elif parent.sex != sex:
                details.append({
                    "field": field,
                    "message": f"Parent animal must be {sex.value.lower()}",
                })

        if details:
            raise ValidationError(
                RuleCode.INVALID_INPUT,
                "Invalid animal data",
                details=details,
            )

    async def validate_animal_deletion(self, farm_id: UUID, animal_id: UUID) -> Animal:
        """An animal with recorded history cannot be deleted."""
        animal = await self._get_animal(farm_id, animal_id)
        events = await self._events_of(farm_id, animal_id)
        if events:
            raise BusinessRuleViolation(
                RuleCode.HAS_EVENTS,
                "Cannot delete animal with existing events. Please delete events "
                "first or use status change.",
                params={"count": len(events)},
            )
        return animal

    async def validate_lot_count_operation(
        self,
        farm_id: UUID,
        animal_id: UUID,
        operation: LotCountOperation,
        count: int,
    ) -> Animal:
        """Check that a lot's head count can be raised or lowered by `count`."""
        operation = LotCountOperation(operation)
        if count <= 0:
            raise ValidationError(
                RuleCode.INVALID_INPUT,
                "Count must be positive",
                details=[{"field": "count", "message": "must be positive"}],
            )

        animal = await self._get_animal(farm_id, animal_id)
        if animal.type != AnimalType.LOT:
            raise BusinessRuleViolation(
                RuleCode.NOT_A_LOT,
                "Count operations are only valid for lot-type animals",
            )

        if operation == LotCountOperation.DECREASE:
            current = animal.lot_count or 0
            if count > current:
                raise BusinessRuleViolation(
                    RuleCode.INSUFFICIENT_LOT_COUNT,
                    f"Cannot decrease count by {count}. Current count: {current}",
                    params={"count": count, "current": current},
                )
            if current - count == 0:
                raise BusinessRuleViolation(
                    RuleCode.LOT_COUNT_ZERO,
                    "Cannot reduce lot count to zero. Consider changing animal "
                    "status instead.",
                )
        return animal


# Per-type creation rules: EventType -> DomainRuleValidator method name
EVENT_RULES: dict[EventType, str] = {
    EventType.BIRTH: "_check_birth",
    EventType.VACCINATION: "_no_extra_rules",
    EventType.TREATMENT: "_no_extra_rules",
    EventType.WEIGHT: "_no_extra_rules",
    EventType.SALE: "_check_sale",
    EventType.DEATH: "_check_death",
    EventType.NOTE: "_no_extra_rules",
}

_unhandled = set(EventType) - set(EVENT_RULES)
if _unhandled:
    raise RuntimeError(
        f"No creation rules for event types: {sorted(t.value for t in _unhandled)}"
    )
