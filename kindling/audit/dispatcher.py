"""Fire-and-forget audit writes: bounded queue, single worker, retry with backoff."""

import asyncio
import logging
from typing import Optional

from kindling.audit.models import AuditRecord
from kindling.audit.repository import AuditRepository

logger = logging.getLogger(__name__)


class AuditDispatcher:
    """
    Decouples audit persistence from the request path. submit() never blocks and
    never raises; the worker retries failed writes with exponential backoff and
    logs (then drops) records that still fail. No ordering guarantee across writers.
    """

    def __init__(
        self,
        repository: AuditRepository,
        max_queued: int = 1000,
        max_attempts: int = 3,
        base_delay: float = 0.2,
    ) -> None:
        self._repository = repository
        self._max_attempts = max(1, max_attempts)
        self._base_delay = base_delay
        self._queue: asyncio.Queue[AuditRecord] = asyncio.Queue(maxsize=max_queued)
        self._worker: Optional[asyncio.Task[None]] = None

    @property
    def backlog(self) -> int:
        return self._queue.qsize()

    def _ensure_worker(self) -> None:
        if self._worker is None or self._worker.done():
            self._worker = asyncio.create_task(self._run_worker())

    async def _run_worker(self) -> None:
        while True:
            record = await self._queue.get()
            try:
                await self._write(record)
            finally:
                self._queue.task_done()

    async def _write(self, record: AuditRecord) -> None:
        for attempt in range(1, self._max_attempts + 1):
            try:
                await self._repository.save(record)
                return
            except Exception as e:
                if attempt == self._max_attempts:
                    logger.error(
                        "audit_write_failed",
                        extra={
                            "action": record.action.value,
                            "resource": record.resource,
                            "attempts": attempt,
                            "error": str(e),
                        },
                    )
                    return
                logger.warning(
                    "audit_write_retry",
                    extra={"attempt": attempt, "error": str(e)},
                )
                await asyncio.sleep(self._base_delay * (2 ** (attempt - 1)))

    def submit(self, record: AuditRecord) -> bool:
        """Enqueue record for persistence. Returns False if it was dropped (queue full)."""
        self._ensure_worker()
        try:
            self._queue.put_nowait(record)
        except asyncio.QueueFull:
            logger.error(
                "audit_record_dropped",
                extra={"action": record.action.value, "resource": record.resource},
            )
            return False
        return True

    async def join(self) -> None:
        """Wait until every queued record has been written or given up on."""
        await self._queue.join()

    async def stop(self) -> None:
        """Drain pending records, then stop the worker."""
        if self._worker is None:
            return
        await self._queue.join()
        self._worker.cancel()
        try:
            await self._worker
        except asyncio.CancelledError:
            pass
        self._worker = None
