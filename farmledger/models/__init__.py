"""Data models package."""

from farmledger.models.audit import (
    AuditEvent,
    AuditEventBuilder,
    AuditEventType,
    AuditSeverity,
)
from farmledger.models.common import FarmRecord, ZERO, utcnow
from farmledger.models.dashboard import (
    AnimalStats,
    DashboardStats,
    FinancialStats,
    ReminderBuckets,
    ReminderEvent,
    ReminderStats,
    ReminderUrgency,
)
from farmledger.models.farm import Farm, FarmMember, MemberRole
from farmledger.models.ledger import (
    CashboxBalance,
    CashboxMovement,
    CreditExpense,
    CreditExpenseStatus,
    ExpenseCategory,
    MovementKind,
    ReimbursementResult,
)
from farmledger.models.livestock import (
    EVENT_PAYLOADS,
    Animal,
    AnimalEvent,
    AnimalStatus,
    AnimalType,
    EventType,
    Sex,
    TargetType,
)

__all__ = [
    # Common
    "FarmRecord",
    "ZERO",
    "utcnow",
    # Ledger
    "CashboxBalance",
    "CashboxMovement",
    "CreditExpense",
    "CreditExpenseStatus",
    "ExpenseCategory",
    "MovementKind",
    "ReimbursementResult",
    # Livestock
    "EVENT_PAYLOADS",
    "Animal",
    "AnimalEvent",
    "AnimalStatus",
    "AnimalType",
    "EventType",
    "Sex",
    "TargetType",
    # Farms
    "Farm",
    "FarmMember",
    "MemberRole",
    # Read models
    "AnimalStats",
    "DashboardStats",
    "FinancialStats",
    "ReminderBuckets",
    "ReminderEvent",
    "ReminderStats",
    "ReminderUrgency",
    # Audit
    "AuditEvent",
    "AuditEventBuilder",
    "AuditEventType",
    "AuditSeverity",
]
