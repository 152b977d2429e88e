"""Audit repository protocol. Audit layer depends on this; infrastructure implements it."""

from typing import List, Protocol

from kindling.audit.models import AuditLogFilter, AuditRecord


class AuditRepository(Protocol):
    """Protocol for persisting and retrieving immutable audit records."""

    async def save(self, record: AuditRecord) -> AuditRecord:
        """Append a record. Returns it with `id` and server-assigned `created_at` set."""
        ...

    async def query(self, filters: AuditLogFilter) -> List[AuditRecord]:
        """Return records matching filters, newest first, at most filters.limit."""
        ...
