"""AuditDispatcher: non-blocking submit, retry with backoff, drop on overflow."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from kindling.audit.dispatcher import AuditDispatcher
from kindling.audit.models import AuditAction, AuditOutcome, AuditRecord


def _record(resource: str = "notes") -> AuditRecord:
    return AuditRecord(action=AuditAction.CREATE, resource=resource, outcome=AuditOutcome.SUCCESS)


@pytest.mark.asyncio
async def test_submit_persists_in_background():
    repo = AsyncMock()
    dispatcher = AuditDispatcher(repo, base_delay=0)
    assert dispatcher.submit(_record()) is True
    await dispatcher.join()
    repo.save.assert_awaited_once()
    await dispatcher.stop()


@pytest.mark.asyncio
async def test_submit_does_not_wait_for_slow_store():
    release = asyncio.Event()
    saved = []

    async def slow_save(record):
        await release.wait()
        saved.append(record)
        return record

    repo = AsyncMock()
    repo.save = AsyncMock(side_effect=slow_save)
    dispatcher = AuditDispatcher(repo, base_delay=0)

    dispatcher.submit(_record())
    await asyncio.sleep(0)
    assert saved == []

    release.set()
    await dispatcher.join()
    assert len(saved) == 1
    await dispatcher.stop()


@pytest.mark.asyncio
async def test_transient_failure_is_retried():
    repo = AsyncMock()
    repo.save = AsyncMock(side_effect=[RuntimeError("db down"), None])
    dispatcher = AuditDispatcher(repo, max_attempts=3, base_delay=0)
    dispatcher.submit(_record())
    await dispatcher.join()
    assert repo.save.await_count == 2
    await dispatcher.stop()


@pytest.mark.asyncio
async def test_persistent_failure_is_dropped_after_max_attempts(caplog):
    repo = AsyncMock()
    repo.save = AsyncMock(side_effect=RuntimeError("db down"))
    dispatcher = AuditDispatcher(repo, max_attempts=3, base_delay=0)
    dispatcher.submit(_record())
    await dispatcher.join()
    assert repo.save.await_count == 3
    assert any(r.getMessage() == "audit_write_failed" for r in caplog.records)

    # The worker survives and keeps writing.
    repo.save = AsyncMock(return_value=None)
    dispatcher.submit(_record("payments"))
    await dispatcher.join()
    repo.save.assert_awaited_once()
    await dispatcher.stop()


@pytest.mark.asyncio
async def test_full_queue_drops_without_raising(caplog):
    release = asyncio.Event()

    async def blocked_save(record):
        await release.wait()

    repo = AsyncMock()
    repo.save = AsyncMock(side_effect=blocked_save)
    dispatcher = AuditDispatcher(repo, max_queued=1, base_delay=0)

    assert dispatcher.submit(_record("a")) is True
    await asyncio.sleep(0)  # worker takes "a" and blocks in save
    assert dispatcher.submit(_record("b")) is True
    assert dispatcher.submit(_record("c")) is False
    assert any(r.getMessage() == "audit_record_dropped" for r in caplog.records)

    release.set()
    await dispatcher.join()
    assert repo.save.await_count == 2
    await dispatcher.stop()


@pytest.mark.asyncio
async def test_stop_drains_pending_records():
    repo = AsyncMock()
    dispatcher = AuditDispatcher(repo, base_delay=0)
    for _ in range(5):
        dispatcher.submit(_record())
    await dispatcher.stop()
    assert repo.save.await_count == 5
    assert dispatcher.backlog == 0


@pytest.mark.asyncio
async def test_stop_without_worker_is_noop():
    dispatcher = AuditDispatcher(AsyncMock())
    await dispatcher.stop()
