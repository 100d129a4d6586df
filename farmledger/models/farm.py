"""Farm and membership records - the multi-tenancy boundary."""

from enum import Enum
from typing import Any, ClassVar
from uuid import UUID, uuid4

from pydantic import Field, model_validator

from farmledger.models.common import FarmRecord


class MemberRole(str, Enum):
    OWNER = "OWNER"
    ASSOCIATE = "ASSOCIATE"
    WORKER = "WORKER"


class Farm(FarmRecord):
    """A farm. Its `farm_id` is its own `id`."""

    collection: ClassVar[str] = "farms"

    name: str = Field(..., min_length=1, max_length=200)
    created_by: UUID

    @model_validator(mode='before')
    @classmethod
    def default_farm_scope(cls, data: Any) -> Any:
        """Fill whichever of id / farm_id is missing from the other."""
        if isinstance(data, dict):
            data = dict(data)
            if data.get("id") is None:
                data["id"] = data.get("farm_id") or uuid4()
            if data.get("farm_id") is None:
                data["farm_id"] = data["id"]
        return data

    @model_validator(mode='after')
    def validate_farm_scope(self) -> 'Farm':
        if self.farm_id != self.id:
            raise ValueError("A farm's farm_id must equal its id")
        return self


class FarmMember(FarmRecord):
    collection: ClassVar[str] = "farm_members"

    user_id: UUID
    role: MemberRole = MemberRole.WORKER
