"""In-process audit repository. Implements AuditRepository protocol."""

import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import List

from kindling.audit.models import AuditLogFilter, AuditRecord


class InMemoryAuditRepository:
    """Append-only list of records; created_at is assigned on save."""

    def __init__(self) -> None:
        self._records: List[AuditRecord] = []

    @property
    def records(self) -> List[AuditRecord]:
        return list(self._records)

    async def save(self, record: AuditRecord) -> AuditRecord:
        stored = replace(
            record,
            id=str(uuid.uuid4()),
            created_at=datetime.now(timezone.utc),
        )
        self._records.append(stored)
        return stored

    async def query(self, filters: AuditLogFilter) -> List[AuditRecord]:
        matched = [r for r in reversed(self._records) if filters.matches(r)]
        return matched[: filters.limit]
