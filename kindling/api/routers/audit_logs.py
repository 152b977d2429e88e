"""Audit log retrieval: GET /api/audit-logs (filterable, newest first)."""

from datetime import datetime, timezone
from typing import Annotated, List, Optional

from fastapi import APIRouter, Depends, Query

from kindling.api.dependencies import get_audit_repository, require_permission
from kindling.api.schemas import AuditLogResponse
from kindling.audit.models import AuditAction, AuditLogFilter
from kindling.audit.repository import AuditRepository

router = APIRouter()


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Naive bounds are read as UTC; stored timestamps are always aware."""
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@router.get(
    "",
    response_model=List[AuditLogResponse],
    dependencies=[Depends(require_permission("audit_logs", "read_all"))],
)
async def list_audit_logs(
    repository: Annotated[AuditRepository, Depends(get_audit_repository)],
    user_id: Optional[str] = None,
    action: Optional[AuditAction] = None,
    resource: Optional[str] = None,
    resource_id: Optional[str] = None,
    entity_id: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: Annotated[int, Query(ge=1, le=1000)] = 100,
):
    filters = AuditLogFilter(
        actor_id=user_id,
        action=action,
        resource=resource,
        resource_id=resource_id,
        acting_entity_id=entity_id,
        start=_as_utc(start),
        end=_as_utc(end),
        limit=limit,
    )
    return [AuditLogResponse.from_record(record) for record in await repository.query(filters)]
