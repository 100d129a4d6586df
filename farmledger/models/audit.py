"""
Audit Models for the Farm Ledger

Every money movement and every lifecycle change is logged for audit.
This provides:
1. Traceability of who moved what cash and when
2. A record of rejected operations (rule violations)
3. Debugging information when a number looks wrong

DESIGN DECISION: Audit logs are append-only. We never delete or modify them.
"""

from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Optional
from uuid import UUID

from pydantic import Field

from farmledger.models.common import FarmRecord


class AuditEventType(str, Enum):
    """Types of events we audit."""
    # Cashbox
    DEPOSIT_RECORDED = "deposit_recorded"
    CASH_EXPENSE_RECORDED = "cash_expense_recorded"
    CREDIT_EXPENSE_CREATED = "credit_expense_created"
    REIMBURSEMENT_RECORDED = "reimbursement_recorded"
    REIMBURSEMENT_REJECTED = "reimbursement_rejected"

    # Livestock
    ANIMAL_REGISTERED = "animal_registered"
    ANIMAL_STATUS_CHANGED = "animal_status_changed"
    ANIMAL_DELETED = "animal_deleted"
    LOT_COUNT_ADJUSTED = "lot_count_adjusted"
    EVENT_RECORDED = "event_recorded"
    EVENT_UPDATED = "event_updated"
    EVENT_DELETED = "event_deleted"

    # Rules
    RULE_VIOLATION = "rule_violation"


class AuditSeverity(str, Enum):
    """Severity level for audit events."""
    DEBUG = "debug"
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEvent(FarmRecord):
    """
    A single audit event.

    farm_id is optional here so process-level events can be logged too.
    """

    collection: ClassVar[str] = "audit_events"

    farm_id: Optional[UUID] = Field(
        default=None,
        description="Farm the event belongs to, if any"
    )
    event_type: AuditEventType
    severity: AuditSeverity = AuditSeverity.INFO

    # What entity is this about?
    entity_type: Optional[str] = Field(
        default=None,
        description="Type of entity (e.g., 'movement', 'credit_expense', 'animal')"
    )
    entity_id: Optional[UUID] = None
    actor_id: Optional[UUID] = Field(
        default=None,
        description="Member who triggered the action"
    )

    description: str = Field(
        ...,
        max_length=500,
    )
    details: dict[str, Any] = Field(default_factory=dict)
    error_code: Optional[str] = None

    def to_log_dict(self) -> dict:
        """
        Convert to a dictionary suitable for structured logging.
        """
        return {
            "event_id": str(self.id),
            "timestamp": self.created_at.isoformat(),
            "event_type": self.event_type.value,
            "severity": self.severity.value,
            "farm_id": str(self.farm_id) if self.farm_id else None,
            "entity_type": self.entity_type,
            "entity_id": str(self.entity_id) if self.entity_id else None,
            "actor_id": str(self.actor_id) if self.actor_id else None,
            "description": self.description,
            "details": self.details,
            "error_code": self.error_code,
        }


class AuditEventBuilder:
    """
    Helper class to build audit events with common patterns.

    Usage:
        event = AuditEventBuilder.movement_recorded(farm_id, movement_id, "DEPOSIT", amount, actor_id)
    """

    @staticmethod
    def movement_recorded(
        farm_id: UUID,
        movement_id: UUID,
        kind: str,
        amount: Decimal,
        actor_id: UUID,
    ) -> AuditEvent:
        event_type = (
            AuditEventType.DEPOSIT_RECORDED
            if kind == "DEPOSIT"
            else AuditEventType.CASH_EXPENSE_RECORDED
        )
        return AuditEvent(
            farm_id=farm_id,
            event_type=event_type,
            entity_type="movement",
            entity_id=movement_id,
            actor_id=actor_id,
            description=f"{kind} of {amount} recorded",
            details={"kind": kind, "amount": str(amount)},
        )

    @staticmethod
    def credit_expense_created(
        farm_id: UUID,
        expense_id: UUID,
        amount: Decimal,
        paid_by: UUID,
        actor_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            farm_id=farm_id,
            event_type=AuditEventType.CREDIT_EXPENSE_CREATED,
            entity_type="credit_expense",
            entity_id=expense_id,
            actor_id=actor_id,
            description=f"Credit expense of {amount} created",
            details={"amount": str(amount), "paid_by": str(paid_by)},
        )

    @staticmethod
    def reimbursement_recorded(
        farm_id: UUID,
        expense_id: UUID,
        movement_id: UUID,
        amount: Decimal,
        remaining_amount: Decimal,
        actor_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            farm_id=farm_id,
            event_type=AuditEventType.REIMBURSEMENT_RECORDED,
            entity_type="credit_expense",
            entity_id=expense_id,
            actor_id=actor_id,
            description=f"Reimbursed {amount}, {remaining_amount} remaining",
            details={
                "movement_id": str(movement_id),
                "amount": str(amount),
                "remaining_amount": str(remaining_amount),
            },
        )

    @staticmethod
    def reimbursement_rejected(
        farm_id: UUID,
        expense_id: UUID,
        amount: Decimal,
        error_code: str,
        actor_id: UUID,
    ) -> AuditEvent:
        return AuditEvent(
            farm_id=farm_id,
            event_type=AuditEventType.REIMBURSEMENT_REJECTED,
            severity=AuditSeverity.WARNING,
            entity_type="credit_expense",
            entity_id=expense_id,
            actor_id=actor_id,
            description=f"Reimbursement of {amount} rejected",
            details={"amount": str(amount)},
            error_code=error_code,
        )

    @staticmethod
    def livestock_change(
        farm_id: UUID,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: UUID,
        actor_id: Optional[UUID],
        description: str,
        details: Optional[dict] = None,
    ) -> AuditEvent:
        return AuditEvent(
            farm_id=farm_id,
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            description=description,
            details=details or {},
        )

    @staticmethod
    def rule_violation(
        farm_id: UUID,
        error_code: str,
        message: str,
        entity_id: Optional[UUID] = None,
        actor_id: Optional[UUID] = None,
    ) -> AuditEvent:
        return AuditEvent(
            farm_id=farm_id,
            event_type=AuditEventType.RULE_VIOLATION,
            severity=AuditSeverity.WARNING,
            entity_id=entity_id,
            actor_id=actor_id,
            description=f"Rule violation: {error_code}",
            details={"message": message},
            error_code=error_code,
        )
