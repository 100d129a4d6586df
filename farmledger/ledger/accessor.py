"""
Ledger Accessor

Appends cash movements and derives the cashbox balance and the
outstanding member debt from them.

DESIGN DECISION: The balance is a DERIVED value. It is recomputed from
every non-deleted movement on each call and never stored, so it cannot
drift from the movement history. If aggregation ever gets slow, index
the store on (farm_id, kind); do not cache the balance.

    balance = sum(DEPOSIT) - sum(EXPENSE_CASH) - sum(REIMBURSEMENT)

EXPENSE_CREDIT movements are excluded: a member paid, not the cashbox.
The cash leaves the box later, as a REIMBURSEMENT.
"""

from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

from farmledger.audit import AuditLogger
from farmledger.config import LedgerSettings, get_settings
from farmledger.errors import (
    BusinessRuleViolation,
    RuleCode,
    build_record,
    positive_amount,
)
from farmledger.models.common import ZERO
from farmledger.models.ledger import (
    CashboxBalance,
    CashboxMovement,
    CreditExpense,
    CreditExpenseStatus,
    ExpenseCategory,
    MovementKind,
)
from farmledger.services.storage import EntityStore


class LedgerAccessor:
    """
    Append-only access to a farm's cashbox.

    GUARANTEES:
    - Movements are only ever appended, never updated
    - Every balance is a fresh fold over the movement history
    """

    def __init__(
        self,
        store: EntityStore,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._store = store
        self._audit_logger = audit_logger
        self._settings = settings or get_settings().ledger

    async def _append(self, **fields: Any) -> CashboxMovement:
        movement = build_record(CashboxMovement, **fields)
        await self._store.insert(movement)
        if self._audit_logger:
            await self._audit_logger.log_movement(movement)
        return movement

    async def record_deposit(
        self,
        farm_id: UUID,
        amount: Decimal,
        description: str,
        *,
        created_by: UUID,
    ) -> CashboxMovement:
        """Append a DEPOSIT: cash put into the box."""
        return await self._append(
            farm_id=farm_id,
            kind=MovementKind.DEPOSIT,
            amount=positive_amount(amount),
            description=description,
            created_by=created_by,
        )

    async def record_cash_expense(
        self,
        farm_id: UUID,
        amount: Decimal,
        description: str,
        category: ExpenseCategory,
        *,
        created_by: UUID,
    ) -> CashboxMovement:
        """
        Append an EXPENSE_CASH: cash paid out of the box.

        The balance is only checked when `enforce_cash_balance` is set;
        by default an expense may take the cashbox negative.
        """
        amount = positive_amount(amount)
        async with self._store.transaction():
            if self._settings.enforce_cash_balance:
                await self.validate_cashbox_operation(
                    farm_id, MovementKind.EXPENSE_CASH, amount
                )
            return await self._append(
                farm_id=farm_id,
                kind=MovementKind.EXPENSE_CASH,
                amount=amount,
                description=description,
                category=category,
                created_by=created_by,
            )

    async def get_balance(self, farm_id: UUID) -> CashboxBalance:
        """Fold every non-deleted movement of the farm into a balance."""
        movements = await self._store.find(CashboxMovement, farm_id)

        totals = {kind: ZERO for kind in MovementKind}
        for movement in movements:
            totals[movement.kind] += movement.amount

        return CashboxBalance(
            balance=(
                totals[MovementKind.DEPOSIT]
                - totals[MovementKind.EXPENSE_CASH]
                - totals[MovementKind.REIMBURSEMENT]
            ),
            total_deposits=totals[MovementKind.DEPOSIT],
            total_cash_expenses=totals[MovementKind.EXPENSE_CASH],
            total_reimbursements=totals[MovementKind.REIMBURSEMENT],
        )

    async def get_outstanding_debt(self, farm_id: UUID) -> Decimal:
        """Sum of what the farm still owes its members."""
        expenses = await self._store.find(CreditExpense, farm_id)
        return sum(
            (
                expense.remaining_amount
                for expense in expenses
                if expense.status != CreditExpenseStatus.FULLY_REIMBURSED
            ),
            ZERO,
        )

    async def get_recent_movements(
        self,
        farm_id: UUID,
        limit: Optional[int] = None,
    ) -> list[CashboxMovement]:
        """Newest movements first, at most `limit` of them."""
        limit = limit if limit is not None else self._settings.recent_movements_limit
        if limit <= 0:
            return []
        return await self._store.find(
            CashboxMovement,
            farm_id,
            order_by="created_at",
            descending=True,
            limit=limit,
        )

    async def get_credit_expenses(
        self,
        farm_id: UUID,
        status: Optional[CreditExpenseStatus] = None,
    ) -> list[CreditExpense]:
        """Credit expenses newest first, optionally only those in one status."""
        filters = {"status": status} if status is not None else None
        return await self._store.find(
            CreditExpense,
            farm_id,
            filters,
            order_by="created_at",
            descending=True,
        )

    async def validate_cashbox_operation(
        self,
        farm_id: UUID,
        kind: MovementKind,
        amount: Decimal,
    ) -> None:
        """
        Check that the cashbox can cover a withdrawal.

        Advisory: callers run this only when `enforce_cash_balance` is on.
        Raises ValidationError for a non-positive amount and
        BusinessRuleViolation(INSUFFICIENT_BALANCE) when cash is short.
        """
        amount = positive_amount(amount)

        if kind not in (MovementKind.EXPENSE_CASH, MovementKind.REIMBURSEMENT):
            return

        balance = (await self.get_balance(farm_id)).balance
        if balance < amount:
            raise BusinessRuleViolation(
                RuleCode.INSUFFICIENT_BALANCE,
                f"Insufficient balance. Current balance: {balance}, requested: {amount}",
                params={"balance": balance, "requested": amount},
            )
