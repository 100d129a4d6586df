"""
Shared building blocks for every persisted record.

Every record is farm-scoped and soft-deletable. The store addresses
records by their model's `collection` name.
"""

from datetime import datetime, timezone
from decimal import Decimal
from typing import Annotated, ClassVar, Optional
from uuid import UUID, uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator


# Strictly positive money amount, cents precision
Money = Annotated[Decimal, Field(gt=0, max_digits=14, decimal_places=2)]

# Money that may legitimately be zero (remaining debt, costs)
NonNegativeMoney = Annotated[Decimal, Field(ge=0, max_digits=14, decimal_places=2)]

ZERO = Decimal("0.00")


def utcnow() -> datetime:
    """Timezone-aware current UTC time."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC so every comparison is aware-vs-aware."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class FarmRecord(BaseModel):
    """
    Base for all farm-scoped records.

    `deleted_at` is the soft-delete marker: a non-null value hides the
    record from every query without removing its history.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        extra="ignore",
    )

    collection: ClassVar[str] = ""

    id: UUID = Field(
        default_factory=uuid4,
        description="Unique record ID"
    )
    farm_id: UUID = Field(
        ...,
        description="Owning farm (multi-tenancy boundary)"
    )
    created_at: datetime = Field(
        default_factory=utcnow,
        description="When the record was created (UTC)"
    )
    deleted_at: Optional[datetime] = Field(
        default=None,
        description="Soft-delete timestamp"
    )

    @field_validator('created_at', 'deleted_at')
    @classmethod
    def normalize_timestamps(cls, v: Optional[datetime]) -> Optional[datetime]:
        return as_utc(v) if v is not None else None
