"""
Offline Queue.

Durable, connectivity-aware queue of intake operations that could not
reach the language model. Operations move queued → in-flight → removed on
success, or back to queued on failure. Every mutation goes straight to
the store, and the in-memory view is refreshed from it, so processes
sharing one store see each other's operations.

Delivery is at-least-once: a crash between a successful replay and the
dequeue, or two processes draining the same store, replays the operation
again, so processors receive the operation id to use as an idempotency key.
"""

from __future__ import annotations

import asyncio
from typing import Awaitable, Callable, Optional
from uuid import UUID

from circles.logging_config import get_logger
from circles.schemas.intake import DrainReport, PendingOperation
from circles.services.queue_store import QueueStore

logger = get_logger(__name__)

OperationProcessor = Callable[[PendingOperation], Awaitable[object]]


class OfflineQueue:
    """
    Ordered queue of pending intake operations.

    Mutations are serialised by an asyncio lock. Only one drain runs at a
    time; a drain requested while one is running makes the running drain
    take another pass over the store before it finishes.
    """

    def __init__(
        self,
        store: QueueStore,
        processor: Optional[OperationProcessor] = None,
        is_online: bool = False,
    ) -> None:
        self._store = store
        self._processor = processor
        self._is_online = is_online
        self._operations: list[PendingOperation] = []
        self._in_flight: set[UUID] = set()
        self._lock = asyncio.Lock()
        self._drain_lock = asyncio.Lock()
        self._drain_requested = False
        self._background: set[asyncio.Task] = set()

    @property
    def is_online(self) -> bool:
        return self._is_online

    def set_processor(self, processor: OperationProcessor) -> None:
        self._processor = processor

    def pending(self) -> list[PendingOperation]:
        """Snapshot of queued operations in submission order, as last read."""
        return list(self._operations)

    def __len__(self) -> int:
        return len(self._operations)

    def is_in_flight(self, operation_id: UUID) -> bool:
        return operation_id in self._in_flight

    # -- Lifecycle --

    async def load(self) -> None:
        """Replace the in-memory queue with the persisted one."""
        await self.refresh()
        logger.info("offline_queue_loaded", count=len(self._operations))

    async def refresh(self) -> list[PendingOperation]:
        """Re-read the store, picking up operations written by other processes."""
        async with self._lock:
            self._operations = await self._store.load()
        return self.pending()

    async def wait_idle(self) -> None:
        """Wait for drains scheduled in the background to finish."""
        while self._background:
            await asyncio.gather(*list(self._background), return_exceptions=True)

    # -- Mutations --

    async def enqueue(self, operation: PendingOperation) -> None:
        async with self._lock:
            await self._store.append(operation)
            self._operations = await self._store.load()

        logger.info(
            "operation_enqueued",
            operation_id=str(operation.id),
            kind=operation.kind.value,
            queue_size=len(self._operations),
        )

        if not self._is_online:
            return
        if self._drain_lock.locked():
            self._drain_requested = True
        else:
            self._schedule_drain()

    async def dequeue(self, operation_id: UUID) -> bool:
        """Remove an operation; returns False if it was not queued."""
        async with self._lock:
            removed = await self._store.remove(operation_id)
            self._operations = await self._store.load()

        if removed:
            logger.info(
                "operation_dequeued",
                operation_id=str(operation_id),
                queue_size=len(self._operations),
            )
        return removed

    async def _record_failure(self, operation: PendingOperation) -> None:
        async with self._lock:
            await self._store.update(operation.model_copy(update={"attempts": operation.attempts + 1}))
            self._operations = await self._store.load()

    # -- Draining --

    async def drain_if_online(self) -> DrainReport:
        """
        Replay every queued operation once, in submission order.

        A failed operation stays queued and the drain moves on to the next
        one; it is retried from its original position on the next drain.
        Operations enqueued while the drain runs are picked up before it
        returns.
        """
        report = DrainReport()
        if not self._is_online:
            logger.info("queue_drain_skipped_offline", queue_size=len(self._operations))
            return report
        if self._processor is None:
            logger.warning("queue_drain_without_processor", queue_size=len(self._operations))
            return report
        if self._drain_lock.locked():
            self._drain_requested = True
            logger.debug("queue_drain_already_running")
            return report

        async with self._drain_lock:
            attempted: set[UUID] = set()
            self._drain_requested = True
            while self._drain_requested:
                self._drain_requested = False
                snapshot = [op for op in await self.refresh() if op.id not in attempted]
                logger.info("queue_drain_started", count=len(snapshot))

                for operation in snapshot:
                    attempted.add(operation.id)
                    if not self._is_online:
                        report.skipped += 1
                        continue
                    await self._replay(operation, report)

        logger.info(
            "queue_drain_complete",
            processed=report.processed,
            failed=report.failed,
            skipped=report.skipped,
            remaining=len(self._operations),
        )
        return report

    async def _replay(self, operation: PendingOperation, report: DrainReport) -> None:
        self._in_flight.add(operation.id)
        try:
            await self._processor(operation)
        except Exception as e:
            report.failed += 1
            logger.error(
                "queued_operation_failed",
                operation_id=str(operation.id),
                kind=operation.kind.value,
                attempts=operation.attempts + 1,
                error=str(e),
            )
            await self._record_failure(operation)
        else:
            report.processed += 1
            await self.dequeue(operation.id)
        finally:
            self._in_flight.discard(operation.id)

    async def handle_connectivity_change(self, is_online: bool) -> None:
        """Record connectivity; an offline → online edge triggers a drain."""
        was_online = self._is_online
        self._is_online = is_online
        logger.info("connectivity_changed", online=is_online, queue_size=len(self._operations))

        if is_online and not was_online:
            await self.drain_if_online()

    def _schedule_drain(self) -> None:
        task = asyncio.create_task(self.drain_if_online())
        self._background.add(task)
        task.add_done_callback(self._background.discard)
