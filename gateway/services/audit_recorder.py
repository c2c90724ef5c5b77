"""Fire-and-forget audit trail recording.

Audit writes never sit on a request's critical path: ``record()`` only puts
the event on a bounded in-process queue and returns. A single background
worker drains the queue into an ``AuditSink`` (the ``audit_log`` table).

Failure handling:
- Queue full        → the event is dropped, counted and logged.
- Sink write error  → counted, logged, kept as ``last_error`` and passed to
                      the optional ``on_error`` callback. Callers never see it.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from typing import Callable, Protocol

from gateway.adapters.identity_store.repository import AccountRepository
from gateway.schemas.audit import AuditEvent

logger = logging.getLogger(__name__)

ErrorCallback = Callable[[AuditEvent, Exception], None]


class AuditSink(Protocol):
    """Destination of recorded audit events."""

    async def write(self, event: AuditEvent) -> None:
        ...


class RepositoryAuditSink:
    """Writes audit events to the identity store's ``audit_log`` table."""

    def __init__(self, repository: AccountRepository) -> None:
        self._repository = repository

    async def write(self, event: AuditEvent) -> None:
        await self._repository.insert_audit_entry(event)


class AuditRecorder:
    """Bounded queue plus one worker task writing audit events."""

    def __init__(
        self,
        sink: AuditSink,
        *,
        queue_size: int = 1000,
        enabled: bool = True,
        on_error: ErrorCallback | None = None,
    ) -> None:
        if queue_size < 1:
            raise ValueError("queue_size must be >= 1")

        self._sink = sink
        self._enabled = enabled
        self._on_error = on_error
        self._queue: asyncio.Queue[AuditEvent] = asyncio.Queue(maxsize=queue_size)
        self._worker: asyncio.Task[None] | None = None
        self._recorded = 0
        self._written = 0
        self._dropped = 0
        self._failed = 0
        self._last_error: str | None = None

    @property
    def running(self) -> bool:
        return self._worker is not None and not self._worker.done()

    @property
    def last_error(self) -> str | None:
        return self._last_error

    def record(self, event: AuditEvent) -> bool:
        """Queue ``event`` for writing. Never raises, never waits on I/O.

        Returns:
            True if the event was queued, False if disabled or dropped.
        """
        if not self._enabled:
            return False

        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            self._dropped += 1
            logger.warning(
                "audit.dropped",
                extra={
                    "action": event.action,
                    "account_id": event.account_id,
                    "reason": "queue_full",
                    "dropped_total": self._dropped,
                },
            )
            return False

        self._recorded += 1
        return True

    async def start(self) -> None:
        if self.running:
            return
        self._worker = asyncio.create_task(self._run(), name="audit-recorder")
        logger.info("audit.started", extra={"queue_size": self._queue.maxsize})

    async def stop(self, timeout: float = 5.0) -> None:
        """Drain pending events (bounded by ``timeout``) and stop the worker."""

        if self._worker is None:
            return

        try:
            await asyncio.wait_for(self._queue.join(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning("audit.shutdown_timeout", extra={"pending": self._queue.qsize()})

        worker, self._worker = self._worker, None
        worker.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await worker
        logger.info("audit.stopped", extra=self.stats())

    async def join(self) -> None:
        """Wait until every queued event has been handled."""

        await self._queue.join()

    def stats(self) -> dict[str, int | bool | str | None]:
        return {
            "enabled": self._enabled,
            "running": self.running,
            "pending": self._queue.qsize(),
            "recorded": self._recorded,
            "written": self._written,
            "dropped": self._dropped,
            "failed": self._failed,
            "last_error": self._last_error,
        }

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                await self._sink.write(event)
                self._written += 1
            except Exception as exc:  # noqa: BLE001 - reported on the error channel
                self._report_failure(event, exc)
            finally:
                self._queue.task_done()

    def _report_failure(self, event: AuditEvent, exc: Exception) -> None:
        self._failed += 1
        self._last_error = f"{type(exc).__name__}: {exc}"
        logger.warning(
            "audit.write_failed",
            extra={
                "action": event.action,
                "account_id": event.account_id,
                "error_type": type(exc).__name__,
                "error_msg": str(exc),
            },
        )
        if self._on_error is None:
            return
        try:
            self._on_error(event, exc)
        except Exception:  # noqa: BLE001
            logger.exception("audit.error_callback_failed")
