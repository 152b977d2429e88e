"""DB-backed security store. Implements RbacRepository, UserRepository,
SessionRepository and TokenRepository protocols against PostgreSQL.

One session per call; the ORM rows never leave this module.
"""

from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import delete, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kindling.infrastructure.database.models import (
    OneTimeTokenRow,
    PermissionRow,
    RolePermissionRow,
    RoleRow,
    SessionRow,
    UserRoleRow,
    UserRow,
)
from kindling.security.models import (
    OneTimeToken,
    Permission,
    Role,
    RolePermission,
    Session,
    User,
    UserRole,
    UserStatus,
)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _user(row: UserRow) -> User:
    return User(
        id=row.id,
        email=row.email,
        password_hash=row.password_hash,
        status=UserStatus(row.status),
        email_verified=row.email_verified,
        mfa_enabled=row.mfa_enabled,
        mfa_secret=row.mfa_secret,
        failed_login_attempts=row.failed_login_attempts or 0,
        locked_until=_aware(row.locked_until),
        last_login_at=_aware(row.last_login_at),
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _role(row: RoleRow) -> Role:
    return Role(
        id=row.id,
        name=row.name,
        display_name=row.display_name,
        description=row.description,
        is_system=row.is_system,
        created_at=_aware(row.created_at),
        updated_at=_aware(row.updated_at),
    )


def _permission(row: PermissionRow) -> Permission:
    return Permission(
        id=row.id,
        resource=row.resource,
        action=row.action,
        description=row.description,
        created_at=_aware(row.created_at),
    )


def _role_permission(row: RolePermissionRow) -> RolePermission:
    return RolePermission(
        id=row.id,
        role_id=row.role_id,
        permission_id=row.permission_id,
        created_at=_aware(row.created_at),
    )


def _user_role(row: UserRoleRow) -> UserRole:
    return UserRole(
        id=row.id,
        user_id=row.user_id,
        role_id=row.role_id,
        assigned_by=row.assigned_by,
        assigned_at=_aware(row.assigned_at),
    )


def _session(row: SessionRow) -> Session:
    return Session(
        id=row.id,
        user_id=row.user_id,
        token=row.token,
        refresh_token=row.refresh_token,
        expires_at=_aware(row.expires_at),
        ip_address=row.ip_address,
        user_agent=row.user_agent,
        created_at=_aware(row.created_at),
    )


def _token(row: OneTimeTokenRow) -> OneTimeToken:
    return OneTimeToken(
        id=row.id,
        user_id=row.user_id,
        token=row.token,
        purpose=row.purpose,
        expires_at=_aware(row.expires_at),
        used_at=_aware(row.used_at),
        created_at=_aware(row.created_at),
    )


class DbSecurityRepository:
    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def _first(self, stmt):
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return result.scalars().first()

    async def _all(self, stmt) -> list:
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return list(result.scalars().all())

    async def _add(self, row) -> None:
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()

    async def _execute(self, stmt) -> int:
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
            return result.rowcount or 0

    # --- Roles ---

    async def get_role(self, role_id: str) -> Optional[Role]:
        row = await self._first(select(RoleRow).where(RoleRow.id == role_id))
        return _role(row) if row else None

    async def get_role_by_name(self, name: str) -> Optional[Role]:
        row = await self._first(select(RoleRow).where(RoleRow.name == name))
        return _role(row) if row else None

    async def list_roles(self) -> List[Role]:
        return [_role(row) for row in await self._all(select(RoleRow))]

    async def add_role(self, role: Role) -> Role:
        await self._add(
            RoleRow(
                id=role.id,
                name=role.name,
                display_name=role.display_name,
                description=role.description,
                is_system=role.is_system,
                created_at=role.created_at or _utcnow(),
            )
        )
        return role

    async def update_role(self, role: Role) -> Role:
        await self._execute(
            update(RoleRow)
            .where(RoleRow.id == role.id)
            .values(
                display_name=role.display_name,
                description=role.description,
                is_system=role.is_system,
                updated_at=role.updated_at,
            )
        )
        return role

    async def delete_role(self, role_id: str) -> None:
        await self._execute(delete(RoleRow).where(RoleRow.id == role_id))

    # --- Permissions ---

    async def get_permission(self, permission_id: str) -> Optional[Permission]:
        row = await self._first(select(PermissionRow).where(PermissionRow.id == permission_id))
        return _permission(row) if row else None

    async def get_permission_by_key(self, resource: str, action: str) -> Optional[Permission]:
        row = await self._first(
            select(PermissionRow).where(
                PermissionRow.resource == resource,
                PermissionRow.action == action,
            )
        )
        return _permission(row) if row else None

    async def list_permissions(self) -> List[Permission]:
        return [_permission(row) for row in await self._all(select(PermissionRow))]

    async def add_permission(self, permission: Permission) -> Permission:
        await self._add(
            PermissionRow(
                id=permission.id,
                resource=permission.resource,
                action=permission.action,
                description=permission.description,
                created_at=permission.created_at or _utcnow(),
            )
        )
        return permission

    async def delete_permission(self, permission_id: str) -> None:
        await self._execute(delete(PermissionRow).where(PermissionRow.id == permission_id))

    # --- Role <-> permission links ---

    async def list_role_permission_links(self, role_id: str) -> List[RolePermission]:
        rows = await self._all(select(RolePermissionRow).where(RolePermissionRow.role_id == role_id))
        return [_role_permission(row) for row in rows]

    async def add_role_permission_link(self, link: RolePermission) -> RolePermission:
        """Idempotent under concurrency: a racing duplicate returns the stored link."""
        try:
            await self._add(
                RolePermissionRow(
                    id=link.id,
                    role_id=link.role_id,
                    permission_id=link.permission_id,
                    created_at=link.created_at or _utcnow(),
                )
            )
        except IntegrityError:
            row = await self._first(
                select(RolePermissionRow).where(
                    RolePermissionRow.role_id == link.role_id,
                    RolePermissionRow.permission_id == link.permission_id,
                )
            )
            if row is None:
                raise
            return _role_permission(row)
        return link

    async def remove_role_permission_link(self, role_id: str, permission_id: str) -> None:
        await self._execute(
            delete(RolePermissionRow).where(
                RolePermissionRow.role_id == role_id,
                RolePermissionRow.permission_id == permission_id,
            )
        )

    # --- User <-> role links ---

    async def list_user_role_links(self, user_id: str) -> List[UserRole]:
        rows = await self._all(select(UserRoleRow).where(UserRoleRow.user_id == user_id))
        return [_user_role(row) for row in rows]

    async def add_user_role_link(self, link: UserRole) -> UserRole:
        """Idempotent under concurrency: a racing duplicate returns the stored assignment."""
        try:
            await self._add(
                UserRoleRow(
                    id=link.id,
                    user_id=link.user_id,
                    role_id=link.role_id,
                    assigned_by=link.assigned_by,
                    assigned_at=link.assigned_at or _utcnow(),
                )
            )
        except IntegrityError:
            row = await self._first(
                select(UserRoleRow).where(
                    UserRoleRow.user_id == link.user_id,
                    UserRoleRow.role_id == link.role_id,
                )
            )
            if row is None:
                raise
            return _user_role(row)
        return link

    async def remove_user_role_link(self, user_id: str, role_id: str) -> None:
        await self._execute(
            delete(UserRoleRow).where(UserRoleRow.user_id == user_id, UserRoleRow.role_id == role_id)
        )

    # --- Users ---

    async def get_user(self, user_id: str) -> Optional[User]:
        row = await self._first(select(UserRow).where(UserRow.id == user_id))
        return _user(row) if row else None

    async def get_user_by_email(self, email: str) -> Optional[User]:
        row = await self._first(select(UserRow).where(UserRow.email == email))
        return _user(row) if row else None

    async def add_user(self, user: User) -> User:
        await self._add(
            UserRow(
                id=user.id,
                email=user.email,
                password_hash=user.password_hash,
                status=user.status.value,
                email_verified=user.email_verified,
                mfa_enabled=user.mfa_enabled,
                mfa_secret=user.mfa_secret,
                failed_login_attempts=user.failed_login_attempts,
                locked_until=user.locked_until,
                last_login_at=user.last_login_at,
                created_at=user.created_at or _utcnow(),
            )
        )
        return user

    async def update_user(self, user: User) -> User:
        await self._execute(
            update(UserRow)
            .where(UserRow.id == user.id)
            .values(
                email=user.email,
                password_hash=user.password_hash,
                status=user.status.value,
                email_verified=user.email_verified,
                mfa_enabled=user.mfa_enabled,
                mfa_secret=user.mfa_secret,
                failed_login_attempts=user.failed_login_attempts,
                locked_until=user.locked_until,
                last_login_at=user.last_login_at,
                updated_at=user.updated_at,
            )
        )
        return user

    # --- Sessions ---

    async def add_session(self, session: Session) -> Session:
        await self._add(
            SessionRow(
                id=session.id,
                user_id=session.user_id,
                token=session.token,
                refresh_token=session.refresh_token,
                expires_at=session.expires_at,
                ip_address=session.ip_address,
                user_agent=session.user_agent,
                created_at=session.created_at or _utcnow(),
            )
        )
        return session

    async def get_session_by_token(self, token: str) -> Optional[Session]:
        row = await self._first(select(SessionRow).where(SessionRow.token == token))
        return _session(row) if row else None

    async def get_session_by_refresh_token(self, refresh_token: str) -> Optional[Session]:
        row = await self._first(select(SessionRow).where(SessionRow.refresh_token == refresh_token))
        return _session(row) if row else None

    async def delete_session(self, token: str) -> None:
        await self._execute(delete(SessionRow).where(SessionRow.token == token))

    async def delete_user_sessions(self, user_id: str) -> int:
        return await self._execute(delete(SessionRow).where(SessionRow.user_id == user_id))

    async def delete_expired_sessions(self, now: datetime) -> int:
        return await self._execute(delete(SessionRow).where(SessionRow.expires_at <= now))

    # --- One-time tokens ---

    async def add_token(self, token: OneTimeToken) -> OneTimeToken:
        await self._add(
            OneTimeTokenRow(
                id=token.id,
                user_id=token.user_id,
                token=token.token,
                purpose=token.purpose,
                expires_at=token.expires_at,
                used_at=token.used_at,
                created_at=token.created_at or _utcnow(),
            )
        )
        return token

    async def get_token(self, token: str, purpose: str) -> Optional[OneTimeToken]:
        row = await self._first(
            select(OneTimeTokenRow).where(
                OneTimeTokenRow.token == token,
                OneTimeTokenRow.purpose == purpose,
            )
        )
        return _token(row) if row else None

    async def mark_token_used(self, token: str, used_at: datetime) -> None:
        await self._execute(
            update(OneTimeTokenRow).where(OneTimeTokenRow.token == token).values(used_at=used_at)
        )
