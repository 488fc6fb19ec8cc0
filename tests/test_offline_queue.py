"""Tests for the offline queue and its persistence."""

from __future__ import annotations

import asyncio
import json
import tempfile
import unittest
from pathlib import Path

from circles.schemas.intake import OperationKind, PendingOperation
from circles.services.offline_queue import OfflineQueue
from circles.services.queue_store import FileQueueStore, decode_operations

from intake_fakes import InMemoryQueueStore


def _operation(text: str) -> PendingOperation:
    return PendingOperation(kind=OperationKind.TEXT_IMPORT, raw_text=text)


class RecordingProcessor:
    def __init__(self, fail_on: set[str] | None = None) -> None:
        self.fail_on = fail_on or set()
        self.seen: list[str] = []

    async def __call__(self, operation: PendingOperation) -> None:
        self.seen.append(operation.raw_text)
        if operation.raw_text in self.fail_on:
            raise RuntimeError(f"cannot process {operation.raw_text}")


class FileQueueStoreTests(unittest.IsolatedAsyncioTestCase):
    def setUp(self) -> None:
        self._tmp = tempfile.TemporaryDirectory()
        self.path = Path(self._tmp.name) / "queue" / "ai_operations_queue.json"

    def tearDown(self) -> None:
        self._tmp.cleanup()

    async def test_queue_survives_reload_in_order(self) -> None:
        queue = OfflineQueue(FileQueueStore(self.path))
        operations = [_operation("first"), _operation("second"), _operation("third")]
        for operation in operations:
            await queue.enqueue(operation)

        reloaded = OfflineQueue(FileQueueStore(self.path))
        await reloaded.load()

        self.assertEqual([op.id for op in reloaded.pending()], [op.id for op in operations])
        self.assertEqual(reloaded.pending()[0].submitted_at, operations[0].submitted_at)

    async def test_file_is_a_json_array_with_iso_dates(self) -> None:
        operation = _operation("hello")
        await FileQueueStore(self.path).save([operation])

        data = json.loads(self.path.read_text())

        self.assertIsInstance(data, list)
        self.assertEqual(data[0]["id"], str(operation.id))
        self.assertEqual(data[0]["kind"], "text_import")
        self.assertEqual(decode_operations(self.path.read_bytes())[0].submitted_at, operation.submitted_at)

    async def test_missing_file_is_an_empty_queue(self) -> None:
        self.assertEqual(await FileQueueStore(self.path).load(), [])

    async def test_corrupt_file_is_moved_aside(self) -> None:
        self.path.parent.mkdir(parents=True)
        self.path.write_text("{not json")

        operations = await FileQueueStore(self.path).load()

        self.assertEqual(operations, [])
        self.assertFalse(self.path.exists())
        self.assertEqual(self.path.with_name(self.path.name + ".corrupt").read_text(), "{not json")

    async def test_queues_sharing_a_file_keep_each_others_operations(self) -> None:
        worker_queue = OfflineQueue(FileQueueStore(self.path))
        old = _operation("old")
        await worker_queue.enqueue(old)

        api_queue = OfflineQueue(FileQueueStore(self.path))
        await api_queue.load()
        await api_queue.enqueue(_operation("new-from-api"))

        await worker_queue.dequeue(old.id)

        remaining = await FileQueueStore(self.path).load()
        self.assertEqual([op.raw_text for op in remaining], ["new-from-api"])

    async def test_drain_replays_operations_queued_by_another_process(self) -> None:
        processor = RecordingProcessor()
        worker_queue = OfflineQueue(FileQueueStore(self.path), processor=processor)
        await worker_queue.enqueue(_operation("old"))

        api_queue = OfflineQueue(FileQueueStore(self.path))
        await api_queue.enqueue(_operation("new-from-api"))

        await worker_queue.handle_connectivity_change(True)

        self.assertEqual(processor.seen, ["old", "new-from-api"])
        self.assertEqual(await FileQueueStore(self.path).load(), [])

    async def test_remove_and_update_touch_only_their_operation(self) -> None:
        store = FileQueueStore(self.path)
        first, second = _operation("first"), _operation("second")
        await store.append(first)
        await store.append(second)

        self.assertTrue(await store.update(second.model_copy(update={"attempts": 3})))
        self.assertTrue(await store.remove(first.id))
        self.assertFalse(await store.remove(first.id))
        self.assertFalse(await store.update(first))

        operations = await store.load()
        self.assertEqual([op.id for op in operations], [second.id])
        self.assertEqual(operations[0].attempts, 3)


class OfflineQueueDrainTests(unittest.IsolatedAsyncioTestCase):
    async def test_reconnect_drains_everything(self) -> None:
        store = InMemoryQueueStore()
        processor = RecordingProcessor()
        queue = OfflineQueue(store, processor=processor)
        for text in ("a", "b", "c"):
            await queue.enqueue(_operation(text))

        await queue.handle_connectivity_change(True)

        self.assertEqual(processor.seen, ["a", "b", "c"])
        self.assertEqual(len(queue), 0)
        self.assertEqual(store.operations, [])

    async def test_offline_drain_does_nothing(self) -> None:
        processor = RecordingProcessor()
        queue = OfflineQueue(InMemoryQueueStore(), processor=processor)
        await queue.enqueue(_operation("a"))

        report = await queue.drain_if_online()

        self.assertEqual(report.processed, 0)
        self.assertEqual(processor.seen, [])
        self.assertEqual(len(queue), 1)

    async def test_failed_operation_stays_queued_and_drain_continues(self) -> None:
        store = InMemoryQueueStore()
        processor = RecordingProcessor(fail_on={"b"})
        queue = OfflineQueue(store, processor=processor)
        for text in ("a", "b", "c"):
            await queue.enqueue(_operation(text))

        await queue.handle_connectivity_change(True)

        self.assertEqual(processor.seen, ["a", "b", "c"])
        self.assertEqual([op.raw_text for op in queue.pending()], ["b"])
        self.assertEqual(queue.pending()[0].attempts, 1)
        self.assertEqual(store.operations[0].attempts, 1)

        processor.fail_on.clear()
        report = await queue.drain_if_online()

        self.assertEqual(report.processed, 1)
        self.assertEqual(len(queue), 0)

    async def test_going_offline_again_does_not_drain(self) -> None:
        processor = RecordingProcessor()
        queue = OfflineQueue(InMemoryQueueStore(), processor=processor, is_online=True)

        await queue.handle_connectivity_change(False)
        await queue.enqueue(_operation("a"))
        await queue.handle_connectivity_change(False)

        self.assertEqual(processor.seen, [])
        self.assertEqual(len(queue), 1)

    async def test_enqueue_while_online_schedules_drain(self) -> None:
        processor = RecordingProcessor()
        queue = OfflineQueue(InMemoryQueueStore(), processor=processor, is_online=True)

        await queue.enqueue(_operation("a"))
        await queue.wait_idle()

        self.assertEqual(processor.seen, ["a"])
        self.assertEqual(len(queue), 0)

    async def test_only_one_drain_runs_at_a_time(self) -> None:
        release = asyncio.Event()
        started = asyncio.Event()

        async def slow_processor(operation: PendingOperation) -> None:
            started.set()
            await release.wait()

        queue = OfflineQueue(InMemoryQueueStore(), processor=slow_processor)
        operation = _operation("a")
        await queue.enqueue(operation)

        first = asyncio.create_task(queue.handle_connectivity_change(True))
        await started.wait()
        self.assertTrue(queue.is_in_flight(operation.id))

        second = await queue.drain_if_online()
        release.set()
        await first

        self.assertEqual(second.processed, 0)
        self.assertEqual(len(queue), 0)
        self.assertFalse(queue.is_in_flight(operation.id))

    async def test_operation_enqueued_mid_drain_is_replayed_before_drain_ends(self) -> None:
        release = asyncio.Event()
        started = asyncio.Event()
        seen: list[str] = []

        async def gated_processor(operation: PendingOperation) -> None:
            seen.append(operation.raw_text)
            if operation.raw_text == "a":
                started.set()
                await release.wait()

        queue = OfflineQueue(InMemoryQueueStore(), processor=gated_processor, is_online=True)
        await queue.enqueue(_operation("a"))
        await started.wait()

        await queue.enqueue(_operation("b"))
        release.set()
        await queue.wait_idle()

        self.assertEqual(seen, ["a", "b"])
        self.assertEqual(len(queue), 0)

    async def test_failed_operation_is_not_retried_within_the_same_drain(self) -> None:
        store = InMemoryQueueStore()
        seen: list[str] = []
        queue = OfflineQueue(store)

        async def failing_processor(operation: PendingOperation) -> None:
            seen.append(operation.raw_text)
            if operation.raw_text == "a":
                await queue.enqueue(_operation("b"))
                raise RuntimeError("cannot process a")

        queue.set_processor(failing_processor)
        await queue.enqueue(_operation("a"))
        await queue.handle_connectivity_change(True)
        await queue.wait_idle()

        self.assertEqual(seen, ["a", "b"])
        self.assertEqual([op.raw_text for op in store.operations], ["a"])
        self.assertEqual(store.operations[0].attempts, 1)

    async def test_dequeue_unknown_id(self) -> None:
        queue = OfflineQueue(InMemoryQueueStore())
        await queue.enqueue(_operation("a"))

        self.assertFalse(await queue.dequeue(_operation("b").id))
        self.assertEqual(len(queue), 1)


if __name__ == "__main__":
    unittest.main()
