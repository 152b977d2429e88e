"""API middleware: correlation ID, acting entity, session auth, audit capture."""

import json
import logging
import uuid
from typing import Any, Dict, Optional

from starlette.background import BackgroundTask
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from kindling.audit.classifier import is_excluded_path
from kindling.audit.models import NetworkContext
from kindling.audit.network import client_ip, user_agent
from kindling.audit.recorder import AuditRecorder, RequestAudit, StagedSnapshot
from kindling.core.context import actor_id_ctx, correlation_id_ctx
from kindling.security.accounts import AccountService
from kindling.security.exceptions import UserNotFoundError
from kindling.security.models import UserStatus
from kindling.security.sessions import SessionService

logger = logging.getLogger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"
ENTITY_HEADER = "X-Entity-ID"
BEARER_PREFIX = "bearer "

# Only this much of a response body is kept for error extraction.
MAX_CAPTURED_RESPONSE_BYTES = 64 * 1024

_STAGED_ATTR = "audit_before"
_RECORDED_ATTR = "audit_recorded"


def request_network(request: Request) -> NetworkContext:
    peer = request.client.host if request.client else None
    return NetworkContext(
        ip_address=client_ip(request.headers, peer),
        user_agent=user_agent(request.headers),
    )


def stage_audit_before(request: Request, resource_type: str, resource_id: str, before: Any) -> None:
    """Attach the pre-mutation state of a resource; the audit record carries it as changes.before."""
    setattr(
        request.state,
        _STAGED_ATTR,
        StagedSnapshot(resource_type=resource_type, resource_id=resource_id, before=before),
    )


def mark_audit_recorded(request: Request) -> None:
    """The handler wrote its own audit event; AuditMiddleware skips the generic one."""
    setattr(request.state, _RECORDED_ATTR, True)


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Generate or preserve correlation ID; attach to request.state, response header, and logging context."""

    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid.uuid4())
        request.state.correlation_id = correlation_id
        correlation_id_ctx.set(correlation_id)

        response = await call_next(request)
        response.headers[CORRELATION_HEADER] = correlation_id
        return response


class EntityContextMiddleware(BaseHTTPMiddleware):
    """
    Optional X-Entity-ID: the organizational entity the caller acts for. Absent means None.
    The header is caller-declared; AuditMiddleware records it only for authenticated callers.
    """

    async def dispatch(self, request: Request, call_next) -> Response:
        entity_id = request.headers.get(ENTITY_HEADER)
        request.state.entity_id = entity_id.strip() if entity_id and entity_id.strip() else None
        return await call_next(request)


class SessionAuthMiddleware(BaseHTTPMiddleware):
    """
    Resolve `Authorization: Bearer <token>` to request.state.user. Missing, expired or
    unknown tokens leave the request anonymous; route guards decide what that means.
    """

    def __init__(self, app, sessions: SessionService, accounts: AccountService) -> None:
        super().__init__(app)
        self._sessions = sessions
        self._accounts = accounts

    async def dispatch(self, request: Request, call_next) -> Response:
        request.state.user = None
        request.state.session = None
        header = request.headers.get("authorization", "")
        if header.lower().startswith(BEARER_PREFIX):
            token = header[len(BEARER_PREFIX):].strip()
            if token:
                session = await self._sessions.get_session(token)
                user = None
                if session is not None:
                    try:
                        user = await self._accounts.get_user(session.user_id)
                    except UserNotFoundError:
                        logger.warning("session_user_missing", extra={"user_id": session.user_id})
                if user is not None and user.status is UserStatus.ACTIVE:
                    request.state.user = user
                    request.state.session = session
                    actor_id_ctx.set(user.id)
        return await call_next(request)


def _query_params(request: Request) -> Optional[Dict[str, Any]]:
    """Query string as a dict; repeated keys keep every value as a list."""
    query: Dict[str, Any] = {}
    for key in request.query_params.keys():
        values = request.query_params.getlist(key)
        query[key] = values if len(values) > 1 else values[0]
    return query or None


def _parse_json(raw: bytes) -> Optional[Any]:
    if not raw:
        return None
    try:
        return json.loads(raw)
    except (ValueError, UnicodeDecodeError):
        return None


class AuditMiddleware(BaseHTTPMiddleware):
    """
    Classify every API request on entry and hand the finished exchange to the recorder
    after the response body has been sent. Response bytes pass through unchanged.
    """

    def __init__(self, app, recorder: AuditRecorder) -> None:
        super().__init__(app)
        self._recorder = recorder

    async def dispatch(self, request: Request, call_next) -> Response:
        path = request.url.path
        if is_excluded_path(path):
            return await call_next(request)

        body = None
        if request.method in ("POST", "PUT", "PATCH", "DELETE") and "json" in request.headers.get(
            "content-type", ""
        ):
            body = _parse_json(await request.body())

        audit = self._recorder.begin(
            method=request.method,
            path=path,
            network=request_network(request),
            query=_query_params(request),
            body=body,
            correlation_id=getattr(request.state, "correlation_id", None),
        )

        try:
            response = await call_next(request)
        except Exception as e:
            await self._complete(request, audit, 500, {"error": str(e)})
            raise

        captured = bytearray()
        original_iterator = response.body_iterator

        async def capture_body():
            async for chunk in original_iterator:
                if len(captured) < MAX_CAPTURED_RESPONSE_BYTES:
                    captured.extend(chunk if isinstance(chunk, bytes) else chunk.encode("utf-8"))
                yield chunk

        async def on_sent() -> None:
            payload = _parse_json(bytes(captured)) if response.status_code >= 400 else None
            if payload is None and captured and response.status_code >= 400:
                payload = bytes(captured).decode("utf-8", errors="replace")
            await self._complete(request, audit, response.status_code, payload)

        response.body_iterator = capture_body()
        response.background = BackgroundTask(on_sent)
        return response

    async def _complete(
        self,
        request: Request,
        audit: RequestAudit,
        status_code: int,
        payload: Any,
    ) -> None:
        if getattr(request.state, _RECORDED_ATTR, False):
            return
        user = getattr(request.state, "user", None)
        self._recorder.complete(
            audit,
            status_code=status_code,
            response_payload=payload,
            actor_id=user.id if user is not None else None,
            acting_entity_id=getattr(request.state, "entity_id", None) if user is not None else None,
            staged=getattr(request.state, _STAGED_ATTR, None),
        )
