"""
Role permissions for farm members.

OWNER may do everything. ASSOCIATE may do everything except delete
records and manage members. WORKER may only read and create.
"""

from enum import Enum

from pydantic import BaseModel, ConfigDict

from farmledger.errors import AuthorizationError, RuleCode
from farmledger.models.farm import MemberRole


class RolePermissions(BaseModel):
    model_config = ConfigDict(frozen=True)

    can_read: bool
    can_create: bool
    can_update: bool
    can_delete: bool
    can_manage_members: bool
    can_export_data: bool


class ExportType(str, Enum):
    ANIMALS = "ANIMALS"
    EVENTS = "EVENTS"
    FINANCIAL = "FINANCIAL"
    ALL = "ALL"


# Exports that expose cashbox data
FINANCIAL_EXPORTS = frozenset({ExportType.FINANCIAL, ExportType.ALL})


ROLE_PERMISSIONS: dict[MemberRole, RolePermissions] = {
    MemberRole.OWNER: RolePermissions(
        can_read=True,
        can_create=True,
        can_update=True,
        can_delete=True,
        can_manage_members=True,
        can_export_data=True,
    ),
    MemberRole.ASSOCIATE: RolePermissions(
        can_read=True,
        can_create=True,
        can_update=True,
        can_delete=False,
        can_manage_members=False,
        can_export_data=True,
    ),
    MemberRole.WORKER: RolePermissions(
        can_read=True,
        can_create=True,
        can_update=False,
        can_delete=False,
        can_manage_members=False,
        can_export_data=False,
    ),
}


def get_permissions(role: MemberRole) -> RolePermissions:
    return ROLE_PERMISSIONS[MemberRole(role)]


def has_permission(role: MemberRole, permission: str) -> bool:
    """Check a single flag, e.g. has_permission(role, "can_delete")."""
    if permission not in RolePermissions.model_fields:
        raise ValueError(f"Unknown permission: {permission}")
    return getattr(get_permissions(role), permission)


def validate_data_export(role: MemberRole, export_type: ExportType) -> None:
    """
    Check that a member may export data of this kind.

    Raises:
        AuthorizationError: EXPORT_PERMISSION_DENIED when the role cannot
            export at all, FINANCIAL_EXPORT_RESTRICTED when a non-owner
            asks for financial data
    """
    role = MemberRole(role)
    export_type = ExportType(export_type)

    if not get_permissions(role).can_export_data:
        raise AuthorizationError(
            RuleCode.EXPORT_PERMISSION_DENIED,
            "You do not have permission to export data",
            params={"role": role.value},
        )

    if export_type in FINANCIAL_EXPORTS and role != MemberRole.OWNER:
        raise AuthorizationError(
            RuleCode.FINANCIAL_EXPORT_RESTRICTED,
            "Only farm owners can export financial data",
            params={"role": role.value, "export_type": export_type.value},
        )
