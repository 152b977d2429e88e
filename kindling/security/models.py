"""Security domain models: users, roles, permissions, sessions, one-time tokens."""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class UserStatus(str, Enum):
    """Account lifecycle. Temporary lockout is not a status: see User.is_locked()."""

    PENDING_VERIFICATION = "pending_verification"
    ACTIVE = "active"
    INACTIVE = "inactive"
    SUSPENDED = "suspended"


@dataclass
class User:
    id: str
    email: str
    password_hash: str
    status: UserStatus = UserStatus.PENDING_VERIFICATION
    email_verified: bool = False
    mfa_enabled: bool = False
    mfa_secret: Optional[str] = None  # Fernet ciphertext, never plaintext
    failed_login_attempts: int = 0
    locked_until: Optional[datetime] = None
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    def is_locked(self, now: datetime) -> bool:
        """A lock whose locked_until has passed is no lock at all."""
        return self.locked_until is not None and self.locked_until > now


@dataclass
class Role:
    id: str
    name: str
    display_name: str
    description: Optional[str] = None
    is_system: bool = False
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class Permission:
    id: str
    resource: str
    action: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None

    @property
    def key(self) -> str:
        return permission_key(self.resource, self.action)


def permission_key(resource: str, action: str) -> str:
    return f"{resource}.{action}"


@dataclass(frozen=True)
class RolePermission:
    id: str
    role_id: str
    permission_id: str
    created_at: Optional[datetime] = None


@dataclass(frozen=True)
class UserRole:
    id: str
    user_id: str
    role_id: str
    assigned_by: Optional[str] = None
    assigned_at: Optional[datetime] = None


@dataclass(frozen=True)
class Session:
    id: str
    user_id: str
    token: str
    expires_at: datetime
    refresh_token: Optional[str] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: Optional[datetime] = None

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


@dataclass(frozen=True)
class OneTimeToken:
    """Email verification or password reset token. Usable once, until expires_at."""

    id: str
    user_id: str
    token: str
    purpose: str
    expires_at: datetime
    used_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def is_usable(self, now: datetime) -> bool:
        return self.used_at is None and self.expires_at > now


TOKEN_PURPOSE_EMAIL_VERIFICATION = "email_verification"
TOKEN_PURPOSE_PASSWORD_RESET = "password_reset"
