# kindling/main.py

import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import Any, Optional

from fastapi import FastAPI
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from sqlalchemy import text

from kindling.api.middleware import (
    AuditMiddleware,
    CorrelationIdMiddleware,
    EntityContextMiddleware,
    SessionAuthMiddleware,
)
from kindling.api.routers import audit_logs, auth, health, roles, users
from kindling.audit.audit_logger import AuditLogger
from kindling.audit.dispatcher import AuditDispatcher
from kindling.audit.exceptions import AuditError
from kindling.audit.recorder import AuditRecorder
from kindling.audit.repository import AuditRepository
from kindling.config.logging import configure_logging
from kindling.config.settings import AppSettings, get_settings
from kindling.infrastructure.database.audit_repository_db import DbAuditRepository
from kindling.infrastructure.database.security_repository_db import DbSecurityRepository
from kindling.infrastructure.database.session import build_session_factory, create_tables, get_engine
from kindling.infrastructure.memory.audit_repository_memory import InMemoryAuditRepository
from kindling.infrastructure.memory.security_repository_memory import InMemorySecurityRepository
from kindling.observability.health_monitor import HealthMonitor
from kindling.security.accounts import AccountService
from kindling.security.encryption import EncryptionService
from kindling.security.exceptions import (
    AccountLockedError,
    AccountNotActiveError,
    AuthenticationError,
    AuthorizationError,
    DuplicateEmailError,
    DuplicatePermissionError,
    DuplicateRoleError,
    EncryptionError,
    InvalidStatusTransitionError,
    InvalidTokenError,
    PermissionNotFoundError,
    RoleNotFoundError,
    SecurityError,
    UserNotFoundError,
)
from kindling.security.rbac import RBACService
from kindling.security.seed import seed_defaults
from kindling.security.sessions import SessionService, SessionSweeper

logger = logging.getLogger(__name__)

# Security error -> HTTP status. Lookup follows the exception MRO, so subclasses listed
# here win over SecurityError.
_SECURITY_STATUS = {
    AuthenticationError: 401,
    AccountLockedError: 423,
    AccountNotActiveError: 403,
    AuthorizationError: 403,
    UserNotFoundError: 404,
    RoleNotFoundError: 404,
    PermissionNotFoundError: 404,
    DuplicateEmailError: 409,
    DuplicateRoleError: 409,
    DuplicatePermissionError: 409,
    InvalidTokenError: 400,
    InvalidStatusTransitionError: 400,
    EncryptionError: 500,
    SecurityError: 400,
}


def create_app(
    settings: Optional[AppSettings] = None,
    *,
    audit_repository: Optional[AuditRepository] = None,
    security_repository: Optional[Any] = None,
) -> FastAPI:
    """
    Composition root. Repositories default to the configured store ("memory://" or
    a SQLAlchemy URL); tests pass their own.
    """
    settings = settings or get_settings()
    configure_logging(settings.log_level)

    engine = None
    if audit_repository is None or security_repository is None:
        if settings.uses_memory_store:
            audit_repository = audit_repository or InMemoryAuditRepository()
            security_repository = security_repository or InMemorySecurityRepository()
        else:
            engine = get_engine(settings.database_url)
            session_factory = build_session_factory(engine)
            audit_repository = audit_repository or DbAuditRepository(session_factory)
            security_repository = security_repository or DbSecurityRepository(session_factory)

    dispatcher = AuditDispatcher(
        audit_repository,
        max_queued=settings.audit_queue_size,
        max_attempts=settings.audit_max_attempts,
        base_delay=settings.audit_retry_base_delay_seconds,
    )
    recorder = AuditRecorder(dispatcher)
    rbac = RBACService(security_repository)
    sessions = SessionService(
        security_repository,
        ttl=timedelta(minutes=settings.session_ttl_minutes),
    )
    encryption = EncryptionService(settings.mfa_encryption_key) if settings.mfa_encryption_key else None
    accounts = AccountService(
        security_repository,
        security_repository,
        sessions,
        max_failed_attempts=settings.max_failed_login_attempts,
        lockout=timedelta(minutes=settings.lockout_minutes),
        verification_ttl=timedelta(hours=settings.email_verification_ttl_hours),
        reset_ttl=timedelta(minutes=settings.password_reset_ttl_minutes),
        encryption=encryption,
    )
    sweeper = SessionSweeper(sessions, settings.session_sweep_interval_seconds)

    async def db_health() -> dict[str, Any]:
        if engine is None:
            return {"status": "ok", "backend": "memory"}
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return {"status": "ok", "backend": engine.dialect.name}

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if engine is not None and settings.create_tables:
            await create_tables(engine)
        await seed_defaults(rbac)
        sweeper.start()
        logger.info("app_started", extra={"environment": settings.environment})
        yield
        await sweeper.stop()
        await dispatcher.stop()
        if engine is not None:
            await engine.dispose()

    app = FastAPI(
        title=settings.app_name,
        version=settings.version,
        debug=settings.debug,
        lifespan=lifespan,
    )

    app.state.settings = settings
    app.state.audit_repository = audit_repository
    app.state.audit_dispatcher = dispatcher
    app.state.audit_logger = AuditLogger(audit_repository)
    app.state.rbac = rbac
    app.state.sessions = sessions
    app.state.accounts = accounts
    app.state.health_monitor = HealthMonitor(
        db_health=db_health,
        audit_backlog=lambda: dispatcher.backlog,
    )

    # Middleware order: last added runs first (outermost).
    # Request flow: CorrelationId -> EntityContext -> SessionAuth -> Audit.
    app.add_middleware(AuditMiddleware, recorder=recorder)
    app.add_middleware(SessionAuthMiddleware, sessions=sessions, accounts=accounts)
    app.add_middleware(EntityContextMiddleware)
    app.add_middleware(CorrelationIdMiddleware)

    for exc_class, status_code in _SECURITY_STATUS.items():
        app.add_exception_handler(exc_class, _security_error_handler(status_code))

    @app.exception_handler(RequestValidationError)
    async def request_validation_error_handler(request, exc: RequestValidationError):
        # Submitted values are left out: they may hold credentials.
        errors = [{k: v for k, v in err.items() if k not in ("input", "ctx")} for err in exc.errors()]
        return JSONResponse(status_code=422, content={"detail": jsonable_encoder(errors)})

    @app.exception_handler(AuditError)
    async def audit_error_handler(request, exc: AuditError):
        return JSONResponse(status_code=500, content={"detail": exc.message})

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request, exc: Exception):
        logger.exception("unhandled_error", extra={"path": request.url.path})
        return JSONResponse(
            status_code=500,
            content={"detail": "Internal server error"},
        )

    # Routers: /health, /api/auth, /api/roles, /api/permissions, /api/users, /api/audit-logs
    app.include_router(health.router)
    app.include_router(auth.router, prefix="/api/auth")
    app.include_router(roles.router, prefix="/api/roles")
    app.include_router(roles.permissions_router, prefix="/api/permissions")
    app.include_router(users.router, prefix="/api/users")
    app.include_router(audit_logs.router, prefix="/api/audit-logs")
    return app


def _security_error_handler(status_code: int):
    async def handler(request, exc: SecurityError):
        return JSONResponse(status_code=status_code, content={"detail": exc.message})

    return handler


app = create_app()
