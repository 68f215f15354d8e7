"""
Best-effort audit recording.

Entries are queued in-process and written by a background worker so the
request path never waits on, or fails because of, the audit store.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from shared.logging import get_logger
from shared.metrics import MetricsCollector


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class AuditEntry:
    action: str
    resource: str
    user_id: Optional[str] = None
    resource_id: Optional[str] = None
    old_values: Optional[Dict[str, Any]] = None
    new_values: Optional[Dict[str, Any]] = None
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime = field(default_factory=_utcnow)


class AuditRecorder:
    """Queue audit entries and append them to the repository in the background."""

    def __init__(self, repository, *, queue_size: int = 1000, metrics: Optional[MetricsCollector] = None):
        self.repository = repository
        self.metrics = metrics
        self.logger = get_logger("esawitku.audit")
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self._worker_task: Optional[asyncio.Task] = None
        self._running = False

    async def start(self) -> None:
        """Start the background writer."""
        if self._running:
            return
        self._running = True
        self._worker_task = asyncio.create_task(self._audit_worker())

    async def stop(self) -> None:
        """Write out what is queued, then stop the writer."""
        if not self._running:
            return
        await self.flush()
        self._running = False
        if self._worker_task:
            self._worker_task.cancel()
            try:
                await self._worker_task
            except asyncio.CancelledError:
                pass
            self._worker_task = None

    def record(self, entry: AuditEntry) -> None:
        """Hand an entry to the writer. Never raises, never blocks."""
        try:
            self._queue.put_nowait(entry)
        except asyncio.QueueFull:
            self.logger.error(
                "Audit queue full, dropping entry",
                action=entry.action,
                resource=entry.resource,
                user_id=entry.user_id,
            )
            self._record_outcome("dropped")

    async def flush(self) -> None:
        """Wait until every queued entry has been handled."""
        if self._running:
            await self._queue.join()
            return
        while not self._queue.empty():
            await self._write(self._queue.get_nowait())
            self._queue.task_done()

    @property
    def pending(self) -> int:
        return self._queue.qsize()

    async def _audit_worker(self) -> None:
        while True:
            entry = await self._queue.get()
            try:
                await self._write(entry)
            finally:
                self._queue.task_done()

    async def _write(self, entry: AuditEntry) -> None:
        try:
            await self.repository.append(entry)
            self._record_outcome("written")
        except Exception as e:
            self.logger.error(
                "Failed to write audit entry",
                action=entry.action,
                resource=entry.resource,
                user_id=entry.user_id,
                error=str(e),
            )
            self._record_outcome("failed")

    def _record_outcome(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.record_audit(outcome)
