"""Audit recorder: turns one classified HTTP exchange into an AuditRecord. No FastAPI.

Volume control: writes and auth events are always logged, every failure is
logged, and successful single-record reads are suppressed.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

from kindling.audit.classifier import Classification, classify_request
from kindling.audit.dispatcher import AuditDispatcher
from kindling.audit.models import (
    AuditAction,
    AuditChanges,
    AuditOutcome,
    AuditRecord,
    NetworkContext,
    RequestMetadata,
)
from kindling.audit.redaction import redact

logger = logging.getLogger(__name__)

ALWAYS_LOGGED_ACTIONS = frozenset(
    {
        AuditAction.LOGIN,
        AuditAction.LOGOUT,
        AuditAction.CREATE,
        AuditAction.UPDATE,
        AuditAction.DELETE,
        AuditAction.APPROVE,
        AuditAction.REJECT,
    }
)

# Actions whose request body is the new state of the resource.
CHANGE_CAPTURE_ACTIONS = frozenset(
    {AuditAction.CREATE, AuditAction.UPDATE, AuditAction.BULK_CREATE}
)

MAX_ERROR_LENGTH = 1000


def should_persist(action: AuditAction, outcome: AuditOutcome) -> bool:
    """Log all writes and auth events, every failure, and nothing for a successful read."""
    if action in ALWAYS_LOGGED_ACTIONS:
        return True
    if outcome is AuditOutcome.FAILURE:
        return True
    return action is not AuditAction.READ


def extract_error(payload: Any) -> Optional[str]:
    """Error text from a failed response: the string itself, else message / error / detail."""
    if payload is None:
        return None
    if isinstance(payload, str):
        return payload[:MAX_ERROR_LENGTH] or None
    if isinstance(payload, dict):
        for key in ("message", "error", "detail"):
            value = payload.get(key)
            if value is None:
                continue
            if isinstance(value, str):
                return value[:MAX_ERROR_LENGTH]
            return json.dumps(redact(value), default=str)[:MAX_ERROR_LENGTH]
    return None


@dataclass(frozen=True)
class StagedSnapshot:
    """Before-state staged by a route handler ahead of a mutation."""

    resource_type: str
    resource_id: str
    before: Any


@dataclass
class RequestAudit:
    """Per-request audit state captured at entry."""

    method: str
    path: str
    classification: Classification
    network: NetworkContext
    started_at: float
    query: Optional[Dict[str, Any]] = None
    body: Optional[Any] = None
    correlation_id: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


class AuditRecorder:
    """
    Classifies at request entry, decides at completion whether to persist, assembles
    the record and hands it to the dispatcher. complete() never raises.
    """

    def __init__(
        self,
        dispatcher: AuditDispatcher,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._dispatcher = dispatcher
        self._clock = clock

    def begin(
        self,
        *,
        method: str,
        path: str,
        network: NetworkContext,
        query: Optional[Dict[str, Any]] = None,
        body: Optional[Any] = None,
        correlation_id: Optional[str] = None,
    ) -> RequestAudit:
        """Start timing and classify. Query and body are redacted here, before anything else sees them."""
        return RequestAudit(
            method=method.upper(),
            path=path,
            classification=classify_request(method, path),
            network=network,
            started_at=self._clock(),
            query=redact(query) if query else None,
            body=redact(body) if body is not None else None,
            correlation_id=correlation_id,
        )

    def build_record(
        self,
        audit: RequestAudit,
        *,
        status_code: int,
        response_payload: Any = None,
        actor_id: Optional[str] = None,
        acting_entity_id: Optional[str] = None,
        staged: Optional[StagedSnapshot] = None,
    ) -> Optional[AuditRecord]:
        """Return the record to persist, or None when the sensitivity filter suppresses it."""
        action = audit.classification.action
        outcome = AuditOutcome.from_status_code(status_code)
        if not should_persist(action, outcome):
            return None

        after = audit.body if action in CHANGE_CAPTURE_ACTIONS else None
        before = redact(staged.before) if staged is not None else None
        changes = None
        if before is not None or after is not None:
            changes = AuditChanges(before=before, after=after)

        extra: Dict[str, Any] = dict(audit.extra)
        if staged is not None and staged.resource_type != audit.classification.resource:
            extra["staged_resource"] = staged.resource_type

        metadata = RequestMetadata(
            method=audit.method,
            path=audit.path,
            status_code=status_code,
            duration_ms=int((self._clock() - audit.started_at) * 1000),
            query=audit.query or None,
            body=audit.body if after is None else None,
            error=extract_error(response_payload) if outcome is AuditOutcome.FAILURE else None,
            correlation_id=audit.correlation_id,
            extra=extra,
        )

        resource_id = audit.classification.resource_id
        if resource_id is None and staged is not None:
            resource_id = staged.resource_id

        return AuditRecord(
            action=action,
            resource=audit.classification.resource,
            resource_id=resource_id,
            outcome=outcome,
            network=audit.network,
            actor_id=actor_id,
            acting_entity_id=acting_entity_id,
            changes=changes,
            metadata=metadata,
        )

    def complete(
        self,
        audit: RequestAudit,
        *,
        status_code: int,
        response_payload: Any = None,
        actor_id: Optional[str] = None,
        acting_entity_id: Optional[str] = None,
        staged: Optional[StagedSnapshot] = None,
    ) -> Optional[AuditRecord]:
        """Build and enqueue the record. Failures are logged and swallowed."""
        try:
            record = self.build_record(
                audit,
                status_code=status_code,
                response_payload=response_payload,
                actor_id=actor_id,
                acting_entity_id=acting_entity_id,
                staged=staged,
            )
            if record is None:
                return None
            self._dispatcher.submit(record)
            return record
        except Exception as e:
            logger.error(
                "audit_record_failed",
                extra={"path": audit.path, "method": audit.method, "error": str(e)},
            )
            return None
