"""
Cashbox Ledger Models

DESIGN DECISION: The ledger is append-only. A CashboxMovement is frozen
once created; corrections are made with a compensating movement.

The balance is NEVER stored. It is folded from movements on every read,
so there is nothing that can drift from the movement history.

CreditExpense.status is a computed property of remaining_amount. There
is no stored status field that could fall out of sync with the amounts.
"""

from decimal import Decimal
from enum import Enum
from typing import ClassVar, Optional
from uuid import UUID

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    computed_field,
    model_validator,
)

from farmledger.models.common import FarmRecord, Money, NonNegativeMoney, ZERO


class MovementKind(str, Enum):
    """
    Kinds of cashbox movements.

    EXPENSE_CREDIT is an audit mirror of a CreditExpense: a member paid,
    not the cashbox, so it never enters balance math.
    """
    DEPOSIT = "DEPOSIT"
    EXPENSE_CASH = "EXPENSE_CASH"
    EXPENSE_CREDIT = "EXPENSE_CREDIT"
    REIMBURSEMENT = "REIMBURSEMENT"


class ExpenseCategory(str, Enum):
    """Expense categories used for grouping on the dashboard."""
    FEED = "FEED"
    VET = "VET"
    LABOR = "LABOR"
    TRANSPORT = "TRANSPORT"
    EQUIPMENT = "EQUIPMENT"
    UTILITIES = "UTILITIES"
    OTHER = "OTHER"


class CreditExpenseStatus(str, Enum):
    """Reimbursement lifecycle: OUTSTANDING -> PARTIALLY_REIMBURSED -> FULLY_REIMBURSED."""
    OUTSTANDING = "OUTSTANDING"
    PARTIALLY_REIMBURSED = "PARTIALLY_REIMBURSED"
    FULLY_REIMBURSED = "FULLY_REIMBURSED"


class CashboxMovement(FarmRecord):
    """
    A single immutable cash-ledger entry.

    Expenses must carry a category. Reimbursements and credit mirrors
    must point at the credit expense they belong to.
    """
    model_config = ConfigDict(
        str_strip_whitespace=True,
        extra="ignore",
        frozen=True,
    )

    collection: ClassVar[str] = "cashbox_movements"

    kind: MovementKind
    amount: Money
    description: str = Field(
        ...,
        min_length=1,
        max_length=500,
    )
    category: Optional[ExpenseCategory] = None
    related_expense_id: Optional[UUID] = Field(
        default=None,
        description="Credit expense this movement mirrors or repays"
    )
    created_by: UUID

    @model_validator(mode='after')
    def validate_kind_fields(self) -> 'CashboxMovement':
        """Check the fields each kind requires."""
        if self.kind in (MovementKind.EXPENSE_CASH, MovementKind.EXPENSE_CREDIT):
            if self.category is None:
                raise ValueError(f"{self.kind.value} movements require a category")

        if self.kind in (MovementKind.EXPENSE_CREDIT, MovementKind.REIMBURSEMENT):
            if self.related_expense_id is None:
                raise ValueError(
                    f"{self.kind.value} movements require a related credit expense"
                )

        return self


class CreditExpense(FarmRecord):
    """
    An expense a member paid out of pocket on the farm's behalf.

    CRITICAL: 0 <= remaining_amount <= amount. The invariant is checked
    on construction and again by the store on every update.
    """

    collection: ClassVar[str] = "credit_expenses"

    amount: Money
    description: str = Field(
        ...,
        min_length=1,
        max_length=500,
    )
    category: ExpenseCategory
    paid_by: UUID = Field(
        ...,
        description="Member who fronted the cash"
    )
    remaining_amount: NonNegativeMoney
    created_by: UUID

    @model_validator(mode='after')
    def validate_remaining(self) -> 'CreditExpense':
        if self.remaining_amount > self.amount:
            raise ValueError("Remaining amount cannot exceed the expense amount")
        return self

    @computed_field
    @property
    def status(self) -> CreditExpenseStatus:
        """Derived from remaining_amount; never stored independently."""
        return status_for(self.amount, self.remaining_amount)


def status_for(amount: Decimal, remaining_amount: Decimal) -> CreditExpenseStatus:
    """Map a remaining amount onto the reimbursement lifecycle."""
    if remaining_amount == ZERO:
        return CreditExpenseStatus.FULLY_REIMBURSED
    if remaining_amount == amount:
        return CreditExpenseStatus.OUTSTANDING
    return CreditExpenseStatus.PARTIALLY_REIMBURSED


class CashboxBalance(BaseModel):
    """Result of folding all non-deleted movements of a farm."""

    balance: Decimal
    total_deposits: Decimal = ZERO
    total_cash_expenses: Decimal = ZERO
    total_reimbursements: Decimal = ZERO


class ReimbursementResult(BaseModel):
    """Both rows touched by a successful reimbursement."""

    movement: CashboxMovement
    expense: CreditExpense
