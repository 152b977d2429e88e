"""FastAPI dependency injection: services from app.state, caller identity, permission guards."""

from typing import Annotated, Optional

from fastapi import Depends, Request

from kindling.audit.audit_logger import AuditLogger
from kindling.audit.repository import AuditRepository
from kindling.config.settings import AppSettings
from kindling.security.accounts import AccountService
from kindling.security.exceptions import AuthenticationError
from kindling.security.models import User
from kindling.security.rbac import RBACService
from kindling.security.sessions import SessionService


def get_app_settings(request: Request) -> AppSettings:
    return request.app.state.settings


def get_rbac(request: Request) -> RBACService:
    return request.app.state.rbac


def get_accounts(request: Request) -> AccountService:
    return request.app.state.accounts


def get_sessions(request: Request) -> SessionService:
    return request.app.state.sessions


def get_audit_logger(request: Request) -> AuditLogger:
    return request.app.state.audit_logger


def get_audit_repository(request: Request) -> AuditRepository:
    return request.app.state.audit_repository


def get_correlation_id(request: Request) -> str:
    """Extract correlation_id from request.state (set by middleware)."""
    return getattr(request.state, "correlation_id", "") or ""


def get_entity_id(request: Request) -> Optional[str]:
    return getattr(request.state, "entity_id", None)


def get_current_user(request: Request) -> User:
    """The authenticated caller. Raises AuthenticationError (401) for anonymous requests."""
    user = getattr(request.state, "user", None)
    if user is None:
        raise AuthenticationError("Authentication required")
    return user


def require_permission(resource: str, action: str):
    """Route guard: the caller must hold resource.action through one of their roles."""

    async def guard(
        user: Annotated[User, Depends(get_current_user)],
        rbac: Annotated[RBACService, Depends(get_rbac)],
    ) -> User:
        await rbac.check_permission(user.id, resource, action)
        return user

    return guard
