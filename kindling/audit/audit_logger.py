"""Manual audit events for flows the HTTP middleware does not see. No FastAPI."""

import logging
from typing import Optional

from kindling.audit.models import (
    AuditAction,
    AuditChanges,
    AuditMetadata,
    AuditOutcome,
    AuditRecord,
    AuthEventMetadata,
    NetworkContext,
)
from kindling.audit.repository import AuditRepository

AUTH_RESOURCE = "auth"
DEFAULT_AUTH_FAILURE_REASON = "Authentication failed"


class AuditLogger:
    """
    Writes immutable audit records directly via repository, bypassing classification.
    Write failures are logged locally and never propagate to the caller.
    """

    def __init__(
        self,
        repository: AuditRepository,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self._repository = repository
        self._logger = logger or logging.getLogger(__name__)

    async def log_event(
        self,
        *,
        action: AuditAction,
        resource: str,
        outcome: AuditOutcome = AuditOutcome.SUCCESS,
        actor_id: Optional[str] = None,
        acting_entity_id: Optional[str] = None,
        resource_id: Optional[str] = None,
        network: Optional[NetworkContext] = None,
        changes: Optional[AuditChanges] = None,
        metadata: Optional[AuditMetadata] = None,
    ) -> Optional[AuditRecord]:
        """Persist one record. Returns the stored record, or None if the write failed."""
        record = AuditRecord(
            action=action,
            resource=resource,
            outcome=outcome,
            network=network or NetworkContext(),
            actor_id=actor_id,
            acting_entity_id=acting_entity_id,
            resource_id=resource_id,
            changes=changes,
            metadata=metadata,
        )
        try:
            return await self._repository.save(record)
        except Exception as e:
            self._logger.error(
                "audit_event_failed",
                extra={"action": action.value, "resource": resource, "error": str(e)},
            )
            return None

    async def log_auth_success(
        self,
        user_id: str,
        *,
        network: NetworkContext,
        path: Optional[str] = None,
        entity_id: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> Optional[AuditRecord]:
        return await self.log_event(
            action=AuditAction.LOGIN,
            resource=AUTH_RESOURCE,
            outcome=AuditOutcome.SUCCESS,
            actor_id=user_id,
            acting_entity_id=entity_id,
            network=network,
            metadata=AuthEventMetadata(path=path, correlation_id=correlation_id),
        )

    async def log_auth_failure(
        self,
        *,
        network: NetworkContext,
        reason: Optional[str] = None,
        path: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> Optional[AuditRecord]:
        """Failed login. There is no actor: the caller never proved who they are."""
        return await self.log_event(
            action=AuditAction.LOGIN,
            resource=AUTH_RESOURCE,
            outcome=AuditOutcome.FAILURE,
            network=network,
            metadata=AuthEventMetadata(
                path=path,
                error=reason or DEFAULT_AUTH_FAILURE_REASON,
                correlation_id=correlation_id,
            ),
        )

    async def log_logout(
        self,
        user_id: str,
        *,
        network: NetworkContext,
        path: Optional[str] = None,
        entity_id: Optional[str] = None,
        correlation_id: Optional[str] = None,
    ) -> Optional[AuditRecord]:
        return await self.log_event(
            action=AuditAction.LOGOUT,
            resource=AUTH_RESOURCE,
            outcome=AuditOutcome.SUCCESS,
            actor_id=user_id,
            acting_entity_id=entity_id,
            network=network,
            metadata=AuthEventMetadata(path=path, correlation_id=correlation_id),
        )
