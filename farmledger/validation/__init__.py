"""Domain rule validation and role permissions."""

from farmledger.validation.permissions import (
    ExportType,
    RolePermissions,
    has_permission,
    validate_data_export,
)
from farmledger.validation.rules import (
    ALLOWED_TRANSITIONS,
    EVENT_RULES,
    DomainRuleValidator,
    LotCountOperation,
)

__all__ = [
    # Rules
    "ALLOWED_TRANSITIONS",
    "EVENT_RULES",
    "DomainRuleValidator",
    "LotCountOperation",
    # Permissions
    "ExportType",
    "RolePermissions",
    "has_permission",
    "validate_data_export",
]
