"""Auth API router: registration, email verification, login/logout, refresh, password reset."""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Request, status

from kindling.api.dependencies import (
    get_accounts,
    get_app_settings,
    get_audit_logger,
    get_correlation_id,
    get_current_user,
    get_entity_id,
    get_rbac,
    get_sessions,
)
from kindling.api.middleware import mark_audit_recorded, request_network
from kindling.api.schemas import (
    LoginRequest,
    MeResponse,
    PasswordResetConfirmRequest,
    PasswordResetRequest,
    PasswordResetResponse,
    RefreshRequest,
    RegisterRequest,
    RegisterResponse,
    SessionResponse,
    TokenRequest,
    UserResponse,
)
from kindling.audit.audit_logger import AuditLogger
from kindling.config.settings import AppSettings
from kindling.security.accounts import AccountService
from kindling.security.exceptions import AuthenticationError
from kindling.security.models import Session, User
from kindling.security.rbac import RBACService
from kindling.security.sessions import SessionService

router = APIRouter()
logger = logging.getLogger(__name__)


def _session_response(session: Session, user: User) -> SessionResponse:
    return SessionResponse(
        token=session.token,
        refresh_token=session.refresh_token,
        expires_at=session.expires_at,
        user=UserResponse.from_user(user),
    )


def _expose_token(settings: AppSettings, token: Optional[str]) -> Optional[str]:
    # No mail transport here: outside prod the token is handed back directly.
    if settings.environment == "prod":
        return None
    return token


@router.post("/register", response_model=RegisterResponse, status_code=status.HTTP_201_CREATED)
async def register(
    body: RegisterRequest,
    accounts: Annotated[AccountService, Depends(get_accounts)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
):
    """Create a pending account. The email must be verified before the first login."""
    user, token = await accounts.register(body.email, body.password)
    return RegisterResponse(
        user=UserResponse.from_user(user),
        verification_token=_expose_token(settings, token.token),
    )


@router.post("/verify-email", response_model=UserResponse)
async def verify_email(
    body: TokenRequest,
    accounts: Annotated[AccountService, Depends(get_accounts)],
):
    user = await accounts.verify_email(body.token)
    return UserResponse.from_user(user)


@router.post("/login", response_model=SessionResponse)
async def login(
    request: Request,
    body: LoginRequest,
    accounts: Annotated[AccountService, Depends(get_accounts)],
    sessions: Annotated[SessionService, Depends(get_sessions)],
    audit_logger: Annotated[AuditLogger, Depends(get_audit_logger)],
    correlation_id: Annotated[str, Depends(get_correlation_id)],
    entity_id: Annotated[Optional[str], Depends(get_entity_id)],
):
    """Authenticate and open a session. Success and failure are both audited here."""
    mark_audit_recorded(request)
    network = request_network(request)
    try:
        user = await accounts.authenticate(body.email, body.password)
    except AuthenticationError as e:
        logger.warning("login_failed", extra={"reason": e.message})
        await audit_logger.log_auth_failure(
            network=network,
            reason=e.message,
            path=request.url.path,
            correlation_id=correlation_id,
        )
        raise

    session = await sessions.create_session(user.id, network.ip_address, network.user_agent)
    await audit_logger.log_auth_success(
        user.id,
        network=network,
        path=request.url.path,
        entity_id=entity_id,
        correlation_id=correlation_id,
    )
    logger.info("login_succeeded", extra={"user_id": user.id})
    return _session_response(session, user)


@router.post("/logout", status_code=status.HTTP_204_NO_CONTENT)
async def logout(
    request: Request,
    user: Annotated[User, Depends(get_current_user)],
    sessions: Annotated[SessionService, Depends(get_sessions)],
    audit_logger: Annotated[AuditLogger, Depends(get_audit_logger)],
    correlation_id: Annotated[str, Depends(get_correlation_id)],
    entity_id: Annotated[Optional[str], Depends(get_entity_id)],
):
    mark_audit_recorded(request)
    await sessions.revoke_session(request.state.session.token)
    await audit_logger.log_logout(
        user.id,
        network=request_network(request),
        path=request.url.path,
        entity_id=entity_id,
        correlation_id=correlation_id,
    )


@router.post("/refresh", response_model=SessionResponse)
async def refresh(
    body: RefreshRequest,
    accounts: Annotated[AccountService, Depends(get_accounts)],
    sessions: Annotated[SessionService, Depends(get_sessions)],
):
    """Rotate a session: the old token and refresh token stop working."""
    session = await sessions.refresh_session(body.refresh_token)
    user = await accounts.get_user(session.user_id)
    return _session_response(session, user)


@router.get("/me", response_model=MeResponse)
async def me(
    user: Annotated[User, Depends(get_current_user)],
    rbac: Annotated[RBACService, Depends(get_rbac)],
):
    roles = await rbac.get_user_roles(user.id)
    permissions = await rbac.get_user_permissions(user.id)
    return MeResponse(
        user=UserResponse.from_user(user),
        roles=sorted(role.name for role in roles),
        permissions=[permission.key for permission in permissions],
    )


@router.post("/password-reset", response_model=PasswordResetResponse, status_code=status.HTTP_202_ACCEPTED)
async def request_password_reset(
    body: PasswordResetRequest,
    accounts: Annotated[AccountService, Depends(get_accounts)],
    settings: Annotated[AppSettings, Depends(get_app_settings)],
):
    """Same response whether or not the email is registered."""
    token = await accounts.request_password_reset(body.email)
    return PasswordResetResponse(
        reset_token=_expose_token(settings, token.token if token else None),
    )


@router.post("/password-reset/confirm", response_model=UserResponse)
async def confirm_password_reset(
    body: PasswordResetConfirmRequest,
    accounts: Annotated[AccountService, Depends(get_accounts)],
):
    user = await accounts.reset_password(body.token, body.new_password)
    return UserResponse.from_user(user)
