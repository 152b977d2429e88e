"""Pydantic request/response schemas for the auth, RBAC admin and audit-log APIs."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from kindling.audit.models import AuditRecord
from kindling.security.models import Permission, Role, User, UserStatus


# ---------------------------------------------------------------------------
# Auth
# ---------------------------------------------------------------------------

class RegisterRequest(BaseModel):
    email: str = Field(..., min_length=3, max_length=255)
    password: str = Field(..., min_length=8, max_length=128)

    @field_validator("email")
    @classmethod
    def email_must_look_like_an_address(cls, v: str) -> str:
        v = v.strip()
        local, _, domain = v.partition("@")
        if not local or "." not in domain:
            raise ValueError("email must be a valid address")
        return v


class LoginRequest(BaseModel):
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class TokenRequest(BaseModel):
    token: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: str = Field(..., min_length=1)


class PasswordResetRequest(BaseModel):
    email: str = Field(..., min_length=1)


class PasswordResetConfirmRequest(BaseModel):
    token: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=128)


class UserResponse(BaseModel):
    id: str
    email: str
    status: UserStatus
    email_verified: bool
    mfa_enabled: bool
    last_login_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_user(cls, user: User) -> "UserResponse":
        return cls(
            id=user.id,
            email=user.email,
            status=user.status,
            email_verified=user.email_verified,
            mfa_enabled=user.mfa_enabled,
            last_login_at=user.last_login_at,
            created_at=user.created_at,
        )


class RegisterResponse(BaseModel):
    user: UserResponse
    # Returned outside prod only; production delivers it by email.
    verification_token: Optional[str] = None


class SessionResponse(BaseModel):
    token: str
    refresh_token: Optional[str] = None
    expires_at: datetime
    user: UserResponse


class MeResponse(BaseModel):
    user: UserResponse
    roles: List[str]
    permissions: List[str]


class PasswordResetResponse(BaseModel):
    status: str = "accepted"
    reset_token: Optional[str] = None


# ---------------------------------------------------------------------------
# RBAC administration
# ---------------------------------------------------------------------------

class RoleCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, pattern=r"^[a-z][a-z0-9_]*$")
    display_name: str = Field(..., min_length=1, max_length=255)
    description: Optional[str] = None


class RoleUpdateRequest(BaseModel):
    display_name: Optional[str] = Field(None, min_length=1, max_length=255)
    description: Optional[str] = None


class RoleResponse(BaseModel):
    id: str
    name: str
    display_name: str
    description: Optional[str] = None
    is_system: bool

    @classmethod
    def from_role(cls, role: Role) -> "RoleResponse":
        return cls(
            id=role.id,
            name=role.name,
            display_name=role.display_name,
            description=role.description,
            is_system=role.is_system,
        )


class PermissionCreateRequest(BaseModel):
    resource: str = Field(..., min_length=1, max_length=100)
    action: str = Field(..., min_length=1, max_length=50)
    description: Optional[str] = None


class PermissionResponse(BaseModel):
    id: str
    resource: str
    action: str
    key: str
    description: Optional[str] = None

    @classmethod
    def from_permission(cls, permission: Permission) -> "PermissionResponse":
        return cls(
            id=permission.id,
            resource=permission.resource,
            action=permission.action,
            key=permission.key,
            description=permission.description,
        )


class RolePermissionRequest(BaseModel):
    permission_id: str = Field(..., min_length=1)


class UserRoleRequest(BaseModel):
    role_id: str = Field(..., min_length=1)


class UserStatusRequest(BaseModel):
    status: UserStatus


# ---------------------------------------------------------------------------
# Audit logs
# ---------------------------------------------------------------------------

class AuditLogResponse(BaseModel):
    id: Optional[str] = None
    actor_id: Optional[str] = None
    acting_entity_id: Optional[str] = None
    action: str
    resource: str
    resource_id: Optional[str] = None
    outcome: str
    ip_address: str
    user_agent: Optional[str] = None
    changes: Optional[Dict[str, Any]] = None
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: AuditRecord) -> "AuditLogResponse":
        data = record.to_dict()
        data["created_at"] = record.created_at
        return cls(**data)
