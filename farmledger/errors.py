"""
Error Taxonomy for the Farm Ledger

DESIGN DECISION: Every failure the core raises carries a stable,
machine-readable code. The API layer maps codes to localized messages,
so nothing downstream ever has to match on message strings.

Kinds:
1. ValidationError       - malformed or out-of-range input, raised before any write
2. NotFoundError         - referenced entity missing or owned by another farm
3. BusinessRuleViolation - a domain invariant would be broken
4. AuthorizationError    - caller's role lacks the permission
"""

from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Optional, TypeVar

from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError


M = TypeVar("M", bound=BaseModel)


class RuleCode(str, Enum):
    """Stable error codes shared with the API layer."""
    # Input
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_WINDOW = "INVALID_WINDOW"

    # Lookups
    ANIMAL_NOT_FOUND = "ANIMAL_NOT_FOUND"
    EVENT_NOT_FOUND = "EVENT_NOT_FOUND"
    CREDIT_EXPENSE_NOT_FOUND = "CREDIT_EXPENSE_NOT_FOUND"

    # Ledger
    EXCEEDS_REMAINING_DEBT = "EXCEEDS_REMAINING_DEBT"
    INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
    CONCURRENT_MODIFICATION = "CONCURRENT_MODIFICATION"

    # Animal lifecycle
    INVALID_STATUS_TRANSITION = "INVALID_STATUS_TRANSITION"
    HAS_ACTIVE_EVENTS = "HAS_ACTIVE_EVENTS"
    HAS_EVENTS = "HAS_EVENTS"
    NOT_A_LOT = "NOT_A_LOT"
    INSUFFICIENT_LOT_COUNT = "INSUFFICIENT_LOT_COUNT"
    LOT_COUNT_ZERO = "LOT_COUNT_ZERO"

    # Event creation
    TARGET_NOT_FOUND = "TARGET_NOT_FOUND"
    INACTIVE_TARGET = "INACTIVE_TARGET"
    FUTURE_EVENT_NOT_ALLOWED = "FUTURE_EVENT_NOT_ALLOWED"
    ALREADY_DEAD = "ALREADY_DEAD"
    DEATH_EVENT_EXISTS = "DEATH_EVENT_EXISTS"
    ALREADY_SOLD = "ALREADY_SOLD"
    CANNOT_SELL_DEAD = "CANNOT_SELL_DEAD"
    SALE_REQUIRES_COST = "SALE_REQUIRES_COST"
    BIRTH_NOT_FOR_LOTS = "BIRTH_NOT_FOR_LOTS"
    BIRTH_EVENT_EXISTS = "BIRTH_EVENT_EXISTS"

    # Permissions
    EXPORT_PERMISSION_DENIED = "EXPORT_PERMISSION_DENIED"
    FINANCIAL_EXPORT_RESTRICTED = "FINANCIAL_EXPORT_RESTRICTED"


class LedgerError(Exception):
    """Base class for every error the core raises on purpose."""

    def __init__(
        self,
        code: RuleCode,
        message: Optional[str] = None,
        params: Optional[dict[str, Any]] = None,
    ):
        self.code = code
        self.message = message or code.value
        self.params = params or {}
        super().__init__(self.message)

    def to_dict(self) -> dict:
        """Plain representation for the API layer and the audit log."""
        return {
            "error": type(self).__name__,
            "code": self.code.value,
            "message": self.message,
            "params": {key: str(value) for key, value in self.params.items()},
        }


class ValidationError(LedgerError):
    """Malformed or out-of-range input."""

    def __init__(
        self,
        code: RuleCode,
        message: Optional[str] = None,
        details: Optional[list[dict[str, str]]] = None,
        params: Optional[dict[str, Any]] = None,
    ):
        super().__init__(code, message, params)
        self.details = details or []

    @classmethod
    def from_pydantic(cls, exc: PydanticValidationError) -> "ValidationError":
        """Wrap a pydantic failure, keeping one detail per offending field."""
        details = [
            {
                "field": ".".join(str(part) for part in error["loc"]) or "record",
                "message": error["msg"],
            }
            for error in exc.errors()
        ]
        return cls(RuleCode.INVALID_INPUT, "Invalid input", details=details)

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["details"] = self.details
        return data


def build_record(model: type[M], **fields: Any) -> M:
    """Construct a model from caller input, raising our ValidationError on failure."""
    try:
        return model(**fields)
    except PydanticValidationError as e:
        raise ValidationError.from_pydantic(e) from e


def positive_amount(value: Any, field: str = "amount") -> Decimal:
    """Coerce a caller-supplied amount to Decimal and require it to be > 0."""
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValidationError(
            RuleCode.INVALID_AMOUNT,
            f"{field} is not a number: {value!r}",
            details=[{"field": field, "message": "not a number"}],
        ) from e

    if not amount.is_finite() or amount <= 0:
        raise ValidationError(
            RuleCode.INVALID_AMOUNT,
            f"{field} must be positive",
            details=[{"field": field, "message": "must be positive"}],
            params={field: value},
        )
    return amount


class NotFoundError(LedgerError):
    """Entity does not exist or belongs to another farm."""
    pass


class BusinessRuleViolation(LedgerError):
    """A domain invariant would be broken by the requested change."""
    pass


class AuthorizationError(LedgerError):
    """Caller's role does not allow the operation."""
    pass
