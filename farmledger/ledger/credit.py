"""
Credit Expense State Machine

Owns the lifecycle of an expense a member paid out of pocket:

    OUTSTANDING -> PARTIALLY_REIMBURSED -> FULLY_REIMBURSED

The only transition trigger is a reimbursement of amount r. The
remaining amount is non-increasing and never negative; status is
computed from it, never stored beside it.

CRITICAL: reimburse is the one place where a race has financial
consequences. Its read-check-write runs inside a single store
transaction and the final update is a compare-and-swap on the
remaining amount that was read, so two concurrent reimbursements can
never both pass the remaining-debt check.
"""

from decimal import Decimal
from typing import Optional
from uuid import UUID

from farmledger.audit import AuditLogger
from farmledger.config import LedgerSettings, get_settings
from farmledger.errors import (
    BusinessRuleViolation,
    LedgerError,
    NotFoundError,
    RuleCode,
    build_record,
    positive_amount,
)
from farmledger.ledger.accessor import LedgerAccessor
from farmledger.models.ledger import (
    CashboxMovement,
    CreditExpense,
    ExpenseCategory,
    MovementKind,
    ReimbursementResult,
)
from farmledger.services.storage import ConflictError, EntityStore


class CreditExpenseService:
    """Creates credit expenses and applies reimbursements against them."""

    def __init__(
        self,
        store: EntityStore,
        ledger: Optional[LedgerAccessor] = None,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[LedgerSettings] = None,
    ):
        self._store = store
        self._settings = settings or get_settings().ledger
        self._ledger = ledger or LedgerAccessor(store, settings=self._settings)
        self._audit_logger = audit_logger

    async def get_credit_expense(
        self,
        farm_id: UUID,
        credit_expense_id: UUID,
    ) -> CreditExpense:
        """Load an expense of this farm or raise NotFoundError."""
        expense = await self._store.get(CreditExpense, farm_id, credit_expense_id)
        if expense is None:
            raise NotFoundError(
                RuleCode.CREDIT_EXPENSE_NOT_FOUND,
                "Credit expense not found",
                params={"credit_expense_id": credit_expense_id},
            )
        return expense

    async def create_credit_expense(
        self,
        farm_id: UUID,
        amount: Decimal,
        description: str,
        category: ExpenseCategory,
        paid_by: UUID,
        *,
        created_by: UUID,
    ) -> CreditExpense:
        """
        Record a member-funded expense.

        The expense starts OUTSTANDING with its full amount remaining.
        A mirror EXPENSE_CREDIT movement is written for the audit trail;
        it never affects the balance.
        """
        amount = positive_amount(amount)
        expense = build_record(
            CreditExpense,
            farm_id=farm_id,
            amount=amount,
            description=description,
            category=category,
            paid_by=paid_by,
            remaining_amount=amount,
            created_by=created_by,
        )
        mirror = build_record(
            CashboxMovement,
            farm_id=farm_id,
            kind=MovementKind.EXPENSE_CREDIT,
            amount=amount,
            description=expense.description,
            category=expense.category,
            related_expense_id=expense.id,
            created_by=created_by,
        )

        async with self._store.transaction():
            await self._store.insert(expense)
            await self._store.insert(mirror)

        if self._audit_logger:
            await self._audit_logger.log_credit_expense_created(expense)
        return expense

    async def reimburse(
        self,
        farm_id: UUID,
        credit_expense_id: UUID,
        amount: Decimal,
        description: Optional[str] = None,
        *,
        created_by: UUID,
    ) -> ReimbursementResult:
        """
        Repay (part of) a credit expense from the cashbox.

        Raises:
            ValidationError: amount is not positive
            NotFoundError: expense missing or owned by another farm
            BusinessRuleViolation: EXCEEDS_REMAINING_DEBT, INSUFFICIENT_BALANCE
                (when enforced) or CONCURRENT_MODIFICATION

        A failed call leaves both the expense and the ledger unchanged.
        """
        amount = positive_amount(amount)

        try:
            async with self._store.transaction():
                expense = await self.get_credit_expense(farm_id, credit_expense_id)

                # Also rejects every reimbursement of a fully reimbursed expense
                if amount > expense.remaining_amount:
                    raise BusinessRuleViolation(
                        RuleCode.EXCEEDS_REMAINING_DEBT,
                        f"Reimbursement amount ({amount}) exceeds remaining debt "
                        f"({expense.remaining_amount})",
                        params={
                            "amount": amount,
                            "remaining_amount": expense.remaining_amount,
                        },
                    )

                if self._settings.enforce_cash_balance:
                    await self._ledger.validate_cashbox_operation(
                        farm_id, MovementKind.REIMBURSEMENT, amount
                    )

                movement = build_record(
                    CashboxMovement,
                    farm_id=farm_id,
                    kind=MovementKind.REIMBURSEMENT,
                    amount=amount,
                    description=description or f"Reimbursement for: {expense.description}",
                    related_expense_id=expense.id,
                    created_by=created_by,
                )
                await self._store.insert(movement)

                try:
                    updated = await self._store.update_by_id(
                        CreditExpense,
                        farm_id,
                        expense.id,
                        {"remaining_amount": expense.remaining_amount - amount},
                        expected={"remaining_amount": expense.remaining_amount},
                    )
                except ConflictError as e:
                    raise BusinessRuleViolation(
                        RuleCode.CONCURRENT_MODIFICATION,
                        "Credit expense was reimbursed concurrently; reload and try again",
                        params={"credit_expense_id": expense.id},
                    ) from e
        except LedgerError as e:
            if self._audit_logger:
                await self._audit_logger.log_reimbursement_rejected(
                    farm_id, credit_expense_id, amount, e, created_by
                )
            raise

        if self._audit_logger:
            await self._audit_logger.log_reimbursement(movement, updated)
        return ReimbursementResult(movement=movement, expense=updated)
