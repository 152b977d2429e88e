"""Role-based access control over user -> role -> permission chains. No FastAPI.

Every query reads the repository afresh: a role or link change is visible on
the very next call. Join rows pointing at deleted roles or permissions are
skipped, never raised.
"""

import uuid
from datetime import datetime, timezone
from typing import Dict, List, Optional

from kindling.security.exceptions import (
    AuthorizationError,
    DuplicatePermissionError,
    DuplicateRoleError,
    PermissionNotFoundError,
    RoleNotFoundError,
)
from kindling.security.models import Permission, Role, RolePermission, UserRole
from kindling.security.repository import RbacRepository


def _new_id() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RBACService:
    """Resolve roles and permissions for users; administer roles, permissions and links."""

    def __init__(self, repository: RbacRepository) -> None:
        self._repository = repository

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    async def get_user_roles(self, user_id: str) -> List[Role]:
        roles: List[Role] = []
        for link in await self._repository.list_user_role_links(user_id):
            role = await self._repository.get_role(link.role_id)
            if role is not None:
                roles.append(role)
        return roles

    async def get_role_permissions(self, role_id: str) -> List[Permission]:
        permissions: List[Permission] = []
        for link in await self._repository.list_role_permission_links(role_id):
            permission = await self._repository.get_permission(link.permission_id)
            if permission is not None:
                permissions.append(permission)
        return permissions

    async def role_has_permission(self, role_id: str, resource: str, action: str) -> bool:
        permissions = await self.get_role_permissions(role_id)
        return any(p.resource == resource and p.action == action for p in permissions)

    async def user_has_permission(self, user_id: str, resource: str, action: str) -> bool:
        """True iff some role assigned to the user links to permission (resource, action)."""
        for role in await self.get_user_roles(user_id):
            if await self.role_has_permission(role.id, resource, action):
                return True
        return False

    async def get_user_permissions(self, user_id: str) -> List[Permission]:
        """Union of permissions over all assigned roles, de-duplicated by key."""
        by_key: Dict[str, Permission] = {}
        for role in await self.get_user_roles(user_id):
            for permission in await self.get_role_permissions(role.id):
                by_key.setdefault(permission.key, permission)
        return sorted(by_key.values(), key=lambda p: p.key)

    async def check_permission(self, user_id: str, resource: str, action: str) -> None:
        """Raises AuthorizationError if the user does not hold (resource, action)."""
        if not await self.user_has_permission(user_id, resource, action):
            raise AuthorizationError(
                f"User {user_id} does not have permission '{resource}.{action}'"
            )

    # ------------------------------------------------------------------
    # Role administration
    # ------------------------------------------------------------------

    async def list_roles(self) -> List[Role]:
        return sorted(await self._repository.list_roles(), key=lambda r: r.name)

    async def get_role(self, role_id: str) -> Role:
        role = await self._repository.get_role(role_id)
        if role is None:
            raise RoleNotFoundError(f"Role {role_id} not found")
        return role

    async def create_role(
        self,
        name: str,
        display_name: str,
        description: Optional[str] = None,
        is_system: bool = False,
    ) -> Role:
        if await self._repository.get_role_by_name(name) is not None:
            raise DuplicateRoleError(f"Role '{name}' already exists")
        now = _utcnow()
        role = Role(
            id=_new_id(),
            name=name,
            display_name=display_name,
            description=description,
            is_system=is_system,
            created_at=now,
            updated_at=now,
        )
        return await self._repository.add_role(role)

    async def update_role(
        self,
        role_id: str,
        *,
        display_name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> Role:
        """Name is the stable identifier and cannot change; other fields are patched."""
        role = await self.get_role(role_id)
        if display_name is not None:
            role.display_name = display_name
        if description is not None:
            role.description = description
        role.updated_at = _utcnow()
        return await self._repository.update_role(role)

    async def delete_role(self, role_id: str) -> None:
        """Deletes regardless of is_system; protecting seeded roles is the caller's policy."""
        await self.get_role(role_id)
        await self._repository.delete_role(role_id)

    # ------------------------------------------------------------------
    # Permission administration
    # ------------------------------------------------------------------

    async def list_permissions(self) -> List[Permission]:
        return sorted(await self._repository.list_permissions(), key=lambda p: p.key)

    async def create_permission(
        self,
        resource: str,
        action: str,
        description: Optional[str] = None,
    ) -> Permission:
        if await self._repository.get_permission_by_key(resource, action) is not None:
            raise DuplicatePermissionError(f"Permission '{resource}.{action}' already exists")
        permission = Permission(
            id=_new_id(),
            resource=resource,
            action=action,
            description=description,
            created_at=_utcnow(),
        )
        return await self._repository.add_permission(permission)

    async def delete_permission(self, permission_id: str) -> None:
        if await self._repository.get_permission(permission_id) is None:
            raise PermissionNotFoundError(f"Permission {permission_id} not found")
        await self._repository.delete_permission(permission_id)

    async def attach_permission(self, role_id: str, permission_id: str) -> RolePermission:
        """Link permission to role. Idempotent: an existing link is returned unchanged."""
        await self.get_role(role_id)
        if await self._repository.get_permission(permission_id) is None:
            raise PermissionNotFoundError(f"Permission {permission_id} not found")
        for link in await self._repository.list_role_permission_links(role_id):
            if link.permission_id == permission_id:
                return link
        return await self._repository.add_role_permission_link(
            RolePermission(
                id=_new_id(),
                role_id=role_id,
                permission_id=permission_id,
                created_at=_utcnow(),
            )
        )

    async def detach_permission(self, role_id: str, permission_id: str) -> None:
        """Remove the link if present; a missing link is a no-op."""
        await self._repository.remove_role_permission_link(role_id, permission_id)

    # ------------------------------------------------------------------
    # User role assignment
    # ------------------------------------------------------------------

    async def assign_role(
        self,
        user_id: str,
        role_id: str,
        assigned_by: Optional[str] = None,
    ) -> UserRole:
        """Assign role to user. Idempotent: an existing assignment is returned unchanged."""
        await self.get_role(role_id)
        for link in await self._repository.list_user_role_links(user_id):
            if link.role_id == role_id:
                return link
        return await self._repository.add_user_role_link(
            UserRole(
                id=_new_id(),
                user_id=user_id,
                role_id=role_id,
                assigned_by=assigned_by,
                assigned_at=_utcnow(),
            )
        )

    async def remove_role(self, user_id: str, role_id: str) -> None:
        await self._repository.remove_user_role_link(user_id, role_id)
