"""
Read-model shapes for the dashboard and reminders.

These are never persisted. Every instance is built from a fresh fold
over the underlying records at call time.
"""

from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field

from farmledger.models.common import ZERO
from farmledger.models.livestock import EventType, TargetType


class ReminderUrgency(str, Enum):
    URGENT = "URGENT"      # due within the urgent window
    UPCOMING = "UPCOMING"  # due later inside the reminder window


class ReminderEvent(BaseModel):
    """An event whose next action falls inside the reminder window."""

    id: UUID
    target_id: UUID
    target_type: TargetType
    event_type: EventType
    next_due_date: datetime
    note: Optional[str] = None
    days_until_due: int = Field(ge=0)
    urgency: ReminderUrgency


class ReminderBuckets(BaseModel):
    urgent: list[ReminderEvent] = Field(default_factory=list)
    upcoming: list[ReminderEvent] = Field(default_factory=list)


class AnimalStats(BaseModel):
    total_active: int = 0
    total_sold: int = 0
    total_dead: int = 0
    births_this_month: int = 0
    deaths_this_month: int = 0


class FinancialStats(BaseModel):
    cashbox_balance: Decimal = ZERO
    outstanding_debt: Decimal = ZERO
    expenses_this_month: Decimal = ZERO
    expenses_by_category: dict[str, Decimal] = Field(default_factory=dict)


class ReminderStats(BaseModel):
    urgent_count: int = 0
    upcoming_count: int = 0


class DashboardStats(BaseModel):
    """One consistent statistics snapshot for a farm at a point in time."""

    farm_id: UUID
    as_of: datetime
    month_start: datetime
    month_end: datetime
    animals: AnimalStats
    financial: FinancialStats
    reminders: ReminderStats
