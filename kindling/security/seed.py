"""Default roles, permissions and role -> permission grants for a fresh deployment."""

import logging
from typing import Dict, List, Tuple

from kindling.security.models import permission_key
from kindling.security.rbac import RBACService

logger = logging.getLogger(__name__)

# (name, display_name, description, is_system)
DEFAULT_ROLES: List[Tuple[str, str, str, bool]] = [
    ("super_admin", "Super Administrator", "Full system access with all permissions", True),
    ("admin", "Administrator", "Manage users, entities and platform operations", True),
    ("accountant", "Accountant", "Financial records, ledger and accounting functions", True),
    ("compliance_officer", "Compliance Officer", "Review KYC documents, approve entities, read audit logs", True),
    ("lender", "Lender", "View opportunities, invest and manage a portfolio", False),
    ("borrower", "Borrower", "View notes, make payments, manage the borrower profile", False),
]

_CRUD = ("read", "create", "update", "delete")

DEFAULT_PERMISSIONS: Dict[str, Tuple[str, ...]] = {
    "users": _CRUD,
    "entities": _CRUD + ("approve_kyc",),
    "roles": _CRUD + ("assign",),
    "notes": _CRUD + ("read_all",),
    "investments": _CRUD + ("read_all", "approve"),
    "payments": _CRUD + ("read_all", "approve"),
    "documents": _CRUD + ("approve", "reject"),
    "lenders": _CRUD,
    "borrowers": _CRUD,
    "registrations": ("read", "approve", "reject"),
    "accounts": _CRUD,
    "ledger": ("read", "create", "update", "post", "reverse", "reconcile"),
    "audit_logs": ("read", "read_all"),
    "system": ("configure", "backup", "restore"),
}

ALL_PERMISSION_KEYS = tuple(
    permission_key(resource, action)
    for resource, actions in DEFAULT_PERMISSIONS.items()
    for action in actions
)

ROLE_GRANTS: Dict[str, Tuple[str, ...]] = {
    "super_admin": ALL_PERMISSION_KEYS,
    "admin": (
        "users.read", "users.create", "users.update", "users.delete",
        "entities.read", "entities.create", "entities.update", "entities.delete",
        "roles.read", "roles.assign",
        "notes.read_all", "notes.create", "notes.update", "notes.delete",
        "investments.read_all", "investments.create", "investments.update",
        "investments.delete", "investments.approve",
        "payments.read_all", "payments.create", "payments.update",
        "payments.delete", "payments.approve",
        "documents.read", "documents.create", "documents.update", "documents.delete",
        "lenders.read", "lenders.create", "lenders.update", "lenders.delete",
        "borrowers.read", "borrowers.create", "borrowers.update", "borrowers.delete",
        "registrations.read", "registrations.approve", "registrations.reject",
        "audit_logs.read_all",
    ),
    "accountant": (
        "users.read", "entities.read", "notes.read_all", "investments.read_all",
        "payments.read_all",
        "accounts.read", "accounts.create", "accounts.update",
        "ledger.read", "ledger.create", "ledger.update", "ledger.post",
        "ledger.reverse", "ledger.reconcile",
        "audit_logs.read",
    ),
    "compliance_officer": (
        "users.read",
        "entities.read", "entities.update", "entities.approve_kyc",
        "documents.read", "documents.approve", "documents.reject",
        "lenders.read", "lenders.update",
        "borrowers.read", "borrowers.update",
        "audit_logs.read_all",
    ),
    "lender": (
        "users.read", "entities.read", "notes.read",
        "investments.read", "investments.create",
        "payments.read",
        "documents.read", "documents.create",
        "lenders.read", "lenders.update",
        "audit_logs.read",
    ),
    "borrower": (
        "users.read", "entities.read", "notes.read",
        "payments.read", "payments.create",
        "documents.read", "documents.create",
        "borrowers.read", "borrowers.update",
        "audit_logs.read",
    ),
}


async def seed_defaults(rbac: RBACService) -> None:
    """Create missing default roles, permissions and grants. Safe to run repeatedly."""
    roles = {role.name: role for role in await rbac.list_roles()}
    for name, display_name, description, is_system in DEFAULT_ROLES:
        if name not in roles:
            roles[name] = await rbac.create_role(name, display_name, description, is_system)

    permissions = {p.key: p for p in await rbac.list_permissions()}
    for resource, actions in DEFAULT_PERMISSIONS.items():
        for action in actions:
            key = permission_key(resource, action)
            if key not in permissions:
                permissions[key] = await rbac.create_permission(resource, action)

    for role_name, keys in ROLE_GRANTS.items():
        for key in keys:
            await rbac.attach_permission(roles[role_name].id, permissions[key].id)

    logger.info(
        "rbac_defaults_seeded",
        extra={"roles": len(roles), "permissions": len(permissions)},
    )
