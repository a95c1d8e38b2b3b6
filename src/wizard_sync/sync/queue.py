"""In-process FIFO queue that runs at most one wizard sync at a time.

The queue owns its pending deque and a lock-guarded busy flag; the app
creates one instance at startup and keeps it on ``app.state``. A single
drain task pops ids in order and awaits the worker for each, logging and
swallowing worker failures so one bad wizard never stalls the rest.

Plain FIFO by default: enqueuing an id twice gives two runs. Opt-in
duplicate handling (``coalesce=True``):
- an id already waiting in the queue is not queued again
- an id that is currently running is queued once more, so a re-sync
  requested mid-run still happens, after the in-flight run finishes
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable

import structlog

logger = structlog.get_logger(__name__)

SyncWorker = Callable[[str], Awaitable[object]]


class SyncQueue:
    """Sequential wizard sync queue.

    Args:
        worker: Async callable running the full sync workflow for a wizard id.
        coalesce: Drop enqueues of ids that are already pending. Off by
            default, so every enqueue produces a run.
    """

    def __init__(self, worker: SyncWorker, coalesce: bool = False) -> None:
        self._worker = worker
        self._coalesce = coalesce
        self._pending: deque[str] = deque()
        self._lock = asyncio.Lock()
        self._busy = False
        self._current: str | None = None
        self._drain_task: asyncio.Task[None] | None = None
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def pending(self) -> list[str]:
        return list(self._pending)

    @property
    def current(self) -> str | None:
        return self._current

    @property
    def is_busy(self) -> bool:
        return self._busy

    async def enqueue(self, wizard_id: str) -> bool:
        """Queue a wizard for sync and start draining if idle.

        Returns:
            True if the id was queued, False if it was coalesced into an
            already-pending entry.
        """
        async with self._lock:
            if self._coalesce and wizard_id in self._pending:
                logger.info("sync_queue.coalesced", wizard_id=wizard_id)
                return False

            self._pending.append(wizard_id)
            self._idle.clear()
            logger.info(
                "sync_queue.enqueued",
                wizard_id=wizard_id,
                depth=len(self._pending),
                deferred=wizard_id == self._current,
            )

            if not self._busy:
                self._busy = True
                self._drain_task = asyncio.create_task(self._drain())
        return True

    async def _drain(self) -> None:
        while True:
            async with self._lock:
                if not self._pending:
                    self._busy = False
                    self._current = None
                    self._idle.set()
                    return
                wizard_id = self._pending.popleft()
                self._current = wizard_id

            try:
                await self._worker(wizard_id)
            except Exception:
                logger.exception("sync_queue.job_failed", wizard_id=wizard_id)

    async def join(self) -> None:
        """Wait until the queue has drained."""
        await self._idle.wait()

    async def close(self) -> None:
        """Cancel the drain task and discard pending ids (shutdown)."""
        task = self._drain_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        dropped = len(self._pending)
        self._pending.clear()
        self._busy = False
        self._current = None
        self._drain_task = None
        self._idle.set()
        if dropped:
            logger.warning("sync_queue.closed_with_pending", dropped=dropped)
