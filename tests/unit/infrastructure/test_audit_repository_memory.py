"""In-memory audit store: id/created_at assignment, filtering, newest first."""

from datetime import timedelta

import pytest

from kindling.audit.models import AuditAction, AuditLogFilter, AuditOutcome, AuditRecord
from kindling.infrastructure.memory.audit_repository_memory import InMemoryAuditRepository


def _record(action=AuditAction.CREATE, resource="notes", actor_id="u1", resource_id=None):
    return AuditRecord(
        action=action,
        resource=resource,
        outcome=AuditOutcome.SUCCESS,
        actor_id=actor_id,
        resource_id=resource_id,
    )


@pytest.fixture
def repo():
    return InMemoryAuditRepository()


async def test_save_assigns_id_and_utc_timestamp(repo):
    stored = await repo.save(_record())
    assert stored.id
    assert stored.created_at.utcoffset() == timedelta(0)
    assert repo.records == [stored]


async def test_query_newest_first_with_limit(repo):
    first = await repo.save(_record(resource_id="1"))
    second = await repo.save(_record(resource_id="2"))
    third = await repo.save(_record(resource_id="3"))
    assert [r.id for r in await repo.query(AuditLogFilter())] == [third.id, second.id, first.id]
    assert [r.id for r in await repo.query(AuditLogFilter(limit=2))] == [third.id, second.id]


async def test_query_filters(repo):
    await repo.save(_record(actor_id="u1", resource="notes"))
    await repo.save(_record(actor_id="u2", resource="notes", action=AuditAction.DELETE))
    await repo.save(_record(actor_id="u1", resource="payments"))

    assert len(await repo.query(AuditLogFilter(actor_id="u1"))) == 2
    assert len(await repo.query(AuditLogFilter(resource="notes"))) == 2
    only = await repo.query(AuditLogFilter(action=AuditAction.DELETE))
    assert [r.actor_id for r in only] == ["u2"]


async def test_query_time_window(repo):
    stored = await repo.save(_record())
    assert await repo.query(AuditLogFilter(start=stored.created_at + timedelta(seconds=1))) == []
    assert len(await repo.query(AuditLogFilter(end=stored.created_at))) == 1
