"""In-process security store. Implements RbacRepository, UserRepository,
SessionRepository and TokenRepository protocols.

Deleting a role or permission leaves its join rows behind, the same way the
document store this replaces did; the RBAC service skips them.
"""

from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional

from kindling.security.models import (
    OneTimeToken,
    Permission,
    Role,
    RolePermission,
    Session,
    User,
    UserRole,
)


class InMemorySecurityRepository:
    """Dict-backed store. Objects are copied on the way in and out so callers never alias state."""

    def __init__(self) -> None:
        self._roles: Dict[str, Role] = {}
        self._permissions: Dict[str, Permission] = {}
        self._role_permissions: Dict[str, RolePermission] = {}
        self._user_roles: Dict[str, UserRole] = {}
        self._users: Dict[str, User] = {}
        self._sessions: Dict[str, Session] = {}
        self._tokens: Dict[str, OneTimeToken] = {}

    # --- Roles ---

    async def get_role(self, role_id: str) -> Optional[Role]:
        role = self._roles.get(role_id)
        return replace(role) if role else None

    async def get_role_by_name(self, name: str) -> Optional[Role]:
        for role in self._roles.values():
            if role.name == name:
                return replace(role)
        return None

    async def list_roles(self) -> List[Role]:
        return [replace(r) for r in self._roles.values()]

    async def add_role(self, role: Role) -> Role:
        self._roles[role.id] = replace(role)
        return role

    async def update_role(self, role: Role) -> Role:
        self._roles[role.id] = replace(role)
        return role

    async def delete_role(self, role_id: str) -> None:
        self._roles.pop(role_id, None)

    # --- Permissions ---

    async def get_permission(self, permission_id: str) -> Optional[Permission]:
        return self._permissions.get(permission_id)

    async def get_permission_by_key(self, resource: str, action: str) -> Optional[Permission]:
        for permission in self._permissions.values():
            if permission.resource == resource and permission.action == action:
                return permission
        return None

    async def list_permissions(self) -> List[Permission]:
        return list(self._permissions.values())

    async def add_permission(self, permission: Permission) -> Permission:
        self._permissions[permission.id] = permission
        return permission

    async def delete_permission(self, permission_id: str) -> None:
        self._permissions.pop(permission_id, None)

    # --- Role <-> permission links ---

    async def list_role_permission_links(self, role_id: str) -> List[RolePermission]:
        return [link for link in self._role_permissions.values() if link.role_id == role_id]

    async def add_role_permission_link(self, link: RolePermission) -> RolePermission:
        for existing in self._role_permissions.values():
            if existing.role_id == link.role_id and existing.permission_id == link.permission_id:
                return existing
        self._role_permissions[link.id] = link
        return link

    async def remove_role_permission_link(self, role_id: str, permission_id: str) -> None:
        for link_id, link in list(self._role_permissions.items()):
            if link.role_id == role_id and link.permission_id == permission_id:
                del self._role_permissions[link_id]

    # --- User <-> role links ---

    async def list_user_role_links(self, user_id: str) -> List[UserRole]:
        return [link for link in self._user_roles.values() if link.user_id == user_id]

    async def add_user_role_link(self, link: UserRole) -> UserRole:
        for existing in self._user_roles.values():
            if existing.user_id == link.user_id and existing.role_id == link.role_id:
                return existing
        self._user_roles[link.id] = link
        return link

    async def remove_user_role_link(self, user_id: str, role_id: str) -> None:
        for link_id, link in list(self._user_roles.items()):
            if link.user_id == user_id and link.role_id == role_id:
                del self._user_roles[link_id]

    # --- Users ---

    async def get_user(self, user_id: str) -> Optional[User]:
        user = self._users.get(user_id)
        return replace(user) if user else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        for user in self._users.values():
            if user.email == email:
                return replace(user)
        return None

    async def add_user(self, user: User) -> User:
        self._users[user.id] = replace(user)
        return user

    async def update_user(self, user: User) -> User:
        self._users[user.id] = replace(user)
        return user

    # --- Sessions ---

    async def add_session(self, session: Session) -> Session:
        self._sessions[session.token] = session
        return session

    async def get_session_by_token(self, token: str) -> Optional[Session]:
        return self._sessions.get(token)

    async def get_session_by_refresh_token(self, refresh_token: str) -> Optional[Session]:
        for session in self._sessions.values():
            if session.refresh_token == refresh_token:
                return session
        return None

    async def delete_session(self, token: str) -> None:
        self._sessions.pop(token, None)

    async def delete_user_sessions(self, user_id: str) -> int:
        tokens = [t for t, s in self._sessions.items() if s.user_id == user_id]
        for token in tokens:
            del self._sessions[token]
        return len(tokens)

    async def delete_expired_sessions(self, now: datetime) -> int:
        tokens = [t for t, s in self._sessions.items() if s.is_expired(now)]
        for token in tokens:
            del self._sessions[token]
        return len(tokens)

    # --- One-time tokens ---

    async def add_token(self, token: OneTimeToken) -> OneTimeToken:
        self._tokens[token.token] = token
        return token

    async def get_token(self, token: str, purpose: str) -> Optional[OneTimeToken]:
        record = self._tokens.get(token)
        if record is None or record.purpose != purpose:
            return None
        return record

    async def mark_token_used(self, token: str, used_at: datetime) -> None:
        record = self._tokens.get(token)
        if record is not None:
            self._tokens[token] = replace(record, used_at=used_at)
