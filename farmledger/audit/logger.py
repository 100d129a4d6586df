"""
Audit Logger

DESIGN DECISION: Every cash movement and lifecycle change is logged.
This provides:
1. Complete traceability of who moved money and when
2. A visible trail of rejected operations
3. Debugging capability when a dashboard number looks wrong

The audit logger:
- Always logs locally as structured JSON
- Persists to the entity store when one is configured
- Gracefully handles persistence failures (the ledger write already happened)
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

import structlog

from farmledger.errors import LedgerError
from farmledger.models.audit import AuditEvent, AuditEventBuilder, AuditEventType
from farmledger.models.ledger import CashboxMovement, CreditExpense
from farmledger.services.storage import EntityStore, StorageError


# Configure structlog for local logging
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.JSONRenderer()
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    context_class=dict,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)


class AuditLogger:
    """
    Central audit logging service.

    Logs events both to:
    1. Structured local log (for debugging)
    2. The entity store's audit_events collection (for persistence)
    """

    def __init__(
        self,
        storage: Optional[EntityStore] = None,
    ):
        """
        Initialize audit logger.

        Args:
            storage: Store used to persist audit events.
                    If None, only logs locally.
        """
        self._storage = storage
        self._logger = structlog.get_logger("farmledger.audit")

    async def log(self, event: AuditEvent) -> bool:
        """
        Log an audit event.

        Always logs locally. Persists to storage if available.

        Returns True if storage write succeeded (or no storage configured).
        """
        log_dict = event.to_log_dict()

        if event.severity.value == "error":
            self._logger.error("audit_event", **log_dict)
        elif event.severity.value == "warning":
            self._logger.warning("audit_event", **log_dict)
        else:
            self._logger.info("audit_event", **log_dict)

        if self._storage:
            try:
                await self._storage.insert(event)
                return True
            except StorageError as e:
                # The audited write has already committed
                self._logger.error(
                    "audit_storage_failed",
                    error=str(e),
                    event_id=str(event.id),
                )
                return False

        return True

    async def log_movement(self, movement: CashboxMovement) -> None:
        """Log a deposit or cash expense."""
        await self.log(AuditEventBuilder.movement_recorded(
            farm_id=movement.farm_id,
            movement_id=movement.id,
            kind=movement.kind.value,
            amount=movement.amount,
            actor_id=movement.created_by,
        ))

    async def log_credit_expense_created(self, expense: CreditExpense) -> None:
        await self.log(AuditEventBuilder.credit_expense_created(
            farm_id=expense.farm_id,
            expense_id=expense.id,
            amount=expense.amount,
            paid_by=expense.paid_by,
            actor_id=expense.created_by,
        ))

    async def log_reimbursement(
        self,
        movement: CashboxMovement,
        expense: CreditExpense,
    ) -> None:
        await self.log(AuditEventBuilder.reimbursement_recorded(
            farm_id=expense.farm_id,
            expense_id=expense.id,
            movement_id=movement.id,
            amount=movement.amount,
            remaining_amount=expense.remaining_amount,
            actor_id=movement.created_by,
        ))

    async def log_reimbursement_rejected(
        self,
        farm_id: UUID,
        expense_id: UUID,
        amount: Decimal,
        error: LedgerError,
        actor_id: UUID,
    ) -> None:
        await self.log(AuditEventBuilder.reimbursement_rejected(
            farm_id=farm_id,
            expense_id=expense_id,
            amount=amount,
            error_code=error.code.value,
            actor_id=actor_id,
        ))

    async def log_livestock_change(
        self,
        farm_id: UUID,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: UUID,
        actor_id: Optional[UUID],
        description: str,
        details: Optional[dict] = None,
    ) -> None:
        await self.log(AuditEventBuilder.livestock_change(
            farm_id=farm_id,
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            actor_id=actor_id,
            description=description,
            details=details,
        ))

    async def log_rule_violation(
        self,
        farm_id: UUID,
        error: LedgerError,
        entity_id: Optional[UUID] = None,
        actor_id: Optional[UUID] = None,
    ) -> None:
        await self.log(AuditEventBuilder.rule_violation(
            farm_id=farm_id,
            error_code=error.code.value,
            message=error.message,
            entity_id=entity_id,
            actor_id=actor_id,
        ))
