"""Security repository protocols. Security layer depends on these; infrastructure implements them.

Lookups are point reads with no caching; join rows may reference roles or
permissions that no longer exist, and callers treat those as absent.
"""

from datetime import datetime
from typing import List, Optional, Protocol

from kindling.security.models import (
    OneTimeToken,
    Permission,
    Role,
    RolePermission,
    Session,
    User,
    UserRole,
)


class RbacRepository(Protocol):
    """Roles, permissions and the two join relations."""

    async def get_role(self, role_id: str) -> Optional[Role]: ...

    async def get_role_by_name(self, name: str) -> Optional[Role]: ...

    async def list_roles(self) -> List[Role]: ...

    async def add_role(self, role: Role) -> Role: ...

    async def update_role(self, role: Role) -> Role: ...

    async def delete_role(self, role_id: str) -> None: ...

    async def get_permission(self, permission_id: str) -> Optional[Permission]: ...

    async def get_permission_by_key(self, resource: str, action: str) -> Optional[Permission]: ...

    async def list_permissions(self) -> List[Permission]: ...

    async def add_permission(self, permission: Permission) -> Permission: ...

    async def delete_permission(self, permission_id: str) -> None: ...

    async def list_role_permission_links(self, role_id: str) -> List[RolePermission]: ...

    # Link inserts return the stored link when the pair already exists.
    async def add_role_permission_link(self, link: RolePermission) -> RolePermission: ...

    async def remove_role_permission_link(self, role_id: str, permission_id: str) -> None: ...

    async def list_user_role_links(self, user_id: str) -> List[UserRole]: ...

    async def add_user_role_link(self, link: UserRole) -> UserRole: ...

    async def remove_user_role_link(self, user_id: str, role_id: str) -> None: ...


class UserRepository(Protocol):
    async def get_user(self, user_id: str) -> Optional[User]: ...

    async def get_user_by_email(self, email: str) -> Optional[User]: ...

    async def add_user(self, user: User) -> User: ...

    async def update_user(self, user: User) -> User: ...


class SessionRepository(Protocol):
    async def add_session(self, session: Session) -> Session: ...

    async def get_session_by_token(self, token: str) -> Optional[Session]:
        """Raw lookup; expiry is the caller's concern."""
        ...

    async def get_session_by_refresh_token(self, refresh_token: str) -> Optional[Session]: ...

    async def delete_session(self, token: str) -> None: ...

    async def delete_user_sessions(self, user_id: str) -> int: ...

    async def delete_expired_sessions(self, now: datetime) -> int: ...


class TokenRepository(Protocol):
    async def add_token(self, token: OneTimeToken) -> OneTimeToken: ...

    async def get_token(self, token: str, purpose: str) -> Optional[OneTimeToken]: ...

    async def mark_token_used(self, token: str, used_at: datetime) -> None: ...
