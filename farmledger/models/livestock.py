"""
Livestock Models

Animals are either INDIVIDUAL (one head, may carry sex and birth date)
or LOT (a counted group, must carry lot_count).

Events are the append-only history attached to an animal or lot.
Each event type has its own typed payload; the payload is validated
against that type when present.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from farmledger.models.common import FarmRecord, NonNegativeMoney, as_utc


# =============================================================================
# ENUMS
# =============================================================================

class AnimalType(str, Enum):
    INDIVIDUAL = "INDIVIDUAL"
    LOT = "LOT"


class AnimalStatus(str, Enum):
    """
    Animal lifecycle status.

    CRITICAL: only ACTIVE animals may change status. SOLD and DEAD are final.
    """
    ACTIVE = "ACTIVE"
    SOLD = "SOLD"
    DEAD = "DEAD"


class Sex(str, Enum):
    MALE = "MALE"
    FEMALE = "FEMALE"


class TargetType(str, Enum):
    ANIMAL = "ANIMAL"
    LOT = "LOT"


class EventType(str, Enum):
    """Closed set of event kinds. Rule dispatch must cover every member."""
    BIRTH = "BIRTH"
    VACCINATION = "VACCINATION"
    TREATMENT = "TREATMENT"
    WEIGHT = "WEIGHT"
    SALE = "SALE"
    DEATH = "DEATH"
    NOTE = "NOTE"


class WeightUnit(str, Enum):
    KG = "kg"
    LB = "lb"


# =============================================================================
# ANIMALS
# =============================================================================

class Animal(FarmRecord):
    """An individual animal or a lot of animals."""

    collection: ClassVar[str] = "animals"

    type: AnimalType
    species: str = Field(
        ...,
        min_length=1,
        max_length=100,
    )
    tag_number: Optional[str] = Field(
        default=None,
        max_length=20,
        description="Farm-unique ear tag / identifier"
    )
    sex: Optional[Sex] = None
    birth_date: Optional[date] = None
    estimated_age: Optional[int] = Field(
        default=None,
        ge=0,
        description="Estimated age in months"
    )
    status: AnimalStatus = AnimalStatus.ACTIVE
    lot_count: Optional[int] = Field(
        default=None,
        gt=0,
        description="Head count, lots only"
    )
    father_id: Optional[UUID] = None
    mother_id: Optional[UUID] = None
    created_by: UUID
    updated_by: Optional[UUID] = None

    @model_validator(mode='after')
    def validate_type_fields(self) -> 'Animal':
        """Sex and birth date belong to individuals, head count to lots."""
        if self.type == AnimalType.LOT:
            if self.lot_count is None:
                raise ValueError("Lot animals must have lot count")
            if self.sex is not None:
                raise ValueError("Lot animals cannot have sex specified")
            if self.birth_date is not None:
                raise ValueError("Lot animals cannot have a birth date")
        else:
            if self.lot_count is not None:
                raise ValueError("Individual animals cannot have lot count")
        return self

    @property
    def is_active(self) -> bool:
        return self.status == AnimalStatus.ACTIVE


# =============================================================================
# EVENT PAYLOADS
# =============================================================================

class EventPayload(BaseModel):
    model_config = ConfigDict(str_strip_whitespace=True, extra="forbid")


class BirthPayload(EventPayload):
    parent_id: Optional[UUID] = None
    weight: Optional[Decimal] = Field(default=None, gt=0)
    complications: Optional[str] = Field(default=None, max_length=500)


class VaccinationPayload(EventPayload):
    vaccine: str = Field(..., min_length=1, max_length=100)
    dose: Optional[str] = None
    batch_number: Optional[str] = None
    veterinarian: Optional[str] = None


class TreatmentPayload(EventPayload):
    treatment: str = Field(..., min_length=1, max_length=200)
    medication: Optional[str] = None
    dosage: Optional[str] = None
    veterinarian: Optional[str] = None


class WeightPayload(EventPayload):
    weight: Decimal = Field(..., gt=0)
    unit: WeightUnit = WeightUnit.KG


class SalePayload(EventPayload):
    buyer: str = Field(..., min_length=1, max_length=200)
    price: Decimal = Field(..., gt=0)
    weight: Optional[Decimal] = Field(default=None, gt=0)


class DeathPayload(EventPayload):
    cause: Optional[str] = Field(default=None, max_length=500)
    veterinarian_report: Optional[bool] = None


class NotePayload(EventPayload):
    category: Optional[str] = Field(default=None, max_length=50)


EVENT_PAYLOADS: dict[EventType, type[EventPayload]] = {
    EventType.BIRTH: BirthPayload,
    EventType.VACCINATION: VaccinationPayload,
    EventType.TREATMENT: TreatmentPayload,
    EventType.WEIGHT: WeightPayload,
    EventType.SALE: SalePayload,
    EventType.DEATH: DeathPayload,
    EventType.NOTE: NotePayload,
}


# =============================================================================
# EVENTS
# =============================================================================

class AnimalEvent(FarmRecord):
    """
    A lifecycle event recorded against an animal or lot.

    `next_due_date`, when set, drives the reminder filter.
    """

    collection: ClassVar[str] = "events"

    target_id: UUID
    target_type: TargetType
    event_type: EventType
    event_date: datetime
    next_due_date: Optional[datetime] = None
    cost: Optional[NonNegativeMoney] = None
    note: Optional[str] = Field(
        default=None,
        max_length=1000,
    )
    payload: dict[str, Any] = Field(default_factory=dict)
    created_by: UUID
    updated_by: Optional[UUID] = None

    @field_validator('event_date', 'next_due_date')
    @classmethod
    def normalize_dates(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v) if v is not None else None

    @model_validator(mode='after')
    def validate_payload(self) -> 'AnimalEvent':
        """Check the payload against the typed payload of this event type."""
        if self.payload:
            model = EVENT_PAYLOADS[self.event_type]
            self.payload = model.model_validate(self.payload).model_dump(
                mode="json", exclude_none=True
            )
        return self

    @model_validator(mode='after')
    def validate_dates(self) -> 'AnimalEvent':
        if self.next_due_date and self.next_due_date < self.event_date:
            raise ValueError("Next due date cannot be before the event date")
        return self
