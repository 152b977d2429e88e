"""DB-backed audit repository. Persists audit records to PostgreSQL (audit_logs table)."""

import uuid
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from kindling.audit.exceptions import AuditWriteError
from kindling.audit.models import (
    AuditAction,
    AuditChanges,
    AuditLogFilter,
    AuditOutcome,
    AuditRecord,
    NetworkContext,
    metadata_to_dict,
)
from kindling.infrastructure.database.models import AuditLog


def _aware(value: Optional[datetime]) -> Optional[datetime]:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _to_record(orm: AuditLog) -> AuditRecord:
    changes = None
    if orm.changes:
        changes = AuditChanges(before=orm.changes.get("before"), after=orm.changes.get("after"))
    return AuditRecord(
        id=orm.id,
        actor_id=orm.user_id,
        acting_entity_id=orm.entity_id,
        action=AuditAction.coerce(orm.action),
        resource=orm.resource,
        resource_id=orm.resource_id,
        outcome=AuditOutcome(orm.outcome),
        network=NetworkContext(ip_address=orm.ip_address or "unknown", user_agent=orm.user_agent),
        changes=changes,
        metadata=orm.metadata_ or None,
        created_at=_aware(orm.created_at),
    )


class DbAuditRepository:
    """
    Append-only audit store. Implements AuditRepository protocol.
    Opens one session per call so it can be shared by the middleware and background writers.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def save(self, record: AuditRecord) -> AuditRecord:
        orm = AuditLog(
            id=record.id or str(uuid.uuid4()),
            user_id=record.actor_id,
            entity_id=record.acting_entity_id,
            action=record.action.value,
            resource=record.resource,
            resource_id=record.resource_id,
            outcome=record.outcome.value,
            ip_address=record.network.ip_address,
            user_agent=record.network.user_agent,
            changes=record.changes.to_dict() if record.changes else None,
            metadata_=metadata_to_dict(record.metadata) or None,
            created_at=record.created_at or datetime.now(timezone.utc),
        )
        try:
            async with self._session_factory() as session:
                session.add(orm)
                await session.commit()
        except SQLAlchemyError as e:
            raise AuditWriteError(f"Failed to persist audit record: {e}") from e
        return _to_record(orm)

    async def query(self, filters: AuditLogFilter) -> List[AuditRecord]:
        """Newest first, at most filters.limit rows."""
        stmt = select(AuditLog)
        if filters.actor_id is not None:
            stmt = stmt.where(AuditLog.user_id == filters.actor_id)
        if filters.action is not None:
            stmt = stmt.where(AuditLog.action == filters.action.value)
        if filters.resource is not None:
            stmt = stmt.where(AuditLog.resource == filters.resource)
        if filters.resource_id is not None:
            stmt = stmt.where(AuditLog.resource_id == filters.resource_id)
        if filters.acting_entity_id is not None:
            stmt = stmt.where(AuditLog.entity_id == filters.acting_entity_id)
        if filters.start is not None:
            stmt = stmt.where(AuditLog.created_at >= filters.start)
        if filters.end is not None:
            stmt = stmt.where(AuditLog.created_at <= filters.end)
        stmt = stmt.order_by(AuditLog.created_at.desc()).limit(filters.limit)
        async with self._session_factory() as session:
            result = await session.execute(stmt)
            return [_to_record(orm) for orm in result.scalars().all()]
