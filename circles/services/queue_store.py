"""
Offline queue persistence.

The store is the source of truth for the queue: every mutation is applied
to the persisted state directly, so several processes (the API server and
the queue drainer worker) can share one queue without overwriting each
other's operations. Two backends are provided:

- a local JSON file, one array of PendingOperation records with ISO-8601
  datetimes, rewritten atomically under an exclusive lock file
- Redis, one hash entry per operation plus a sorted set for submission order
"""

from __future__ import annotations

import asyncio
import fcntl
import os
import tempfile
from pathlib import Path
from typing import Callable, Optional, Protocol
from uuid import UUID

import redis.asyncio as aioredis
from pydantic import TypeAdapter, ValidationError

from circles.config import QueueBackend, Settings, get_settings
from circles.logging_config import get_logger
from circles.schemas.intake import PendingOperation

logger = get_logger(__name__)

_OPERATIONS = TypeAdapter(list[PendingOperation])

Mutation = Callable[[list[PendingOperation]], Optional[list[PendingOperation]]]


class QueueStore(Protocol):
    """Durable storage for the offline queue."""

    async def load(self) -> list[PendingOperation]:
        """Return the persisted queue in submission order."""

    async def append(self, operation: PendingOperation) -> None:
        """Add an operation at the tail of the queue."""

    async def remove(self, operation_id: UUID) -> bool:
        """Remove an operation; False if it was not persisted."""

    async def update(self, operation: PendingOperation) -> bool:
        """Replace a persisted operation in place; False if it is gone."""


def encode_operations(operations: list[PendingOperation]) -> bytes:
    return _OPERATIONS.dump_json(operations, indent=2)


def decode_operations(data: bytes | str) -> list[PendingOperation]:
    return _OPERATIONS.validate_json(data)


class FileQueueStore:
    """
    Queue kept in a single JSON file.

    Each mutation takes an exclusive ``flock`` on ``<file>.lock``, re-reads
    the file, applies the change and atomically replaces the file, so
    concurrent writers in other processes are never lost.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)
        self._lock_path = self._path.with_name(self._path.name + ".lock")

    @property
    def path(self) -> Path:
        return self._path

    async def load(self) -> list[PendingOperation]:
        return await asyncio.to_thread(self._locked, lambda operations: None)

    async def append(self, operation: PendingOperation) -> None:
        def add(operations: list[PendingOperation]) -> list[PendingOperation]:
            return [*operations, operation]

        await asyncio.to_thread(self._locked, add)

    async def remove(self, operation_id: UUID) -> bool:
        removed = False

        def drop(operations: list[PendingOperation]) -> Optional[list[PendingOperation]]:
            nonlocal removed
            remaining = [op for op in operations if op.id != operation_id]
            removed = len(remaining) != len(operations)
            return remaining if removed else None

        await asyncio.to_thread(self._locked, drop)
        return removed

    async def update(self, operation: PendingOperation) -> bool:
        found = False

        def replace(operations: list[PendingOperation]) -> Optional[list[PendingOperation]]:
            nonlocal found
            found = any(op.id == operation.id for op in operations)
            if not found:
                return None
            return [operation if op.id == operation.id else op for op in operations]

        await asyncio.to_thread(self._locked, replace)
        return found

    async def save(self, operations: list[PendingOperation]) -> None:
        """Replace the whole persisted queue."""
        await asyncio.to_thread(self._locked, lambda _: list(operations))

    def _locked(self, mutate: Mutation) -> list[PendingOperation]:
        """Run ``mutate`` on the current queue under the lock file.

        Returning None from ``mutate`` leaves the file untouched.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with open(self._lock_path, "a") as lock:
            fcntl.flock(lock.fileno(), fcntl.LOCK_EX)
            try:
                operations = self._read()
                updated = mutate(operations)
                if updated is None:
                    return operations
                self._write(updated)
                return updated
            finally:
                fcntl.flock(lock.fileno(), fcntl.LOCK_UN)

    def _read(self) -> list[PendingOperation]:
        if not self._path.exists():
            return []

        data = self._path.read_bytes()
        try:
            return decode_operations(data)
        except ValidationError as e:
            # Moved aside so the next write cannot overwrite it.
            corrupt_path = self._path.with_name(self._path.name + ".corrupt")
            os.replace(self._path, corrupt_path)
            logger.error(
                "queue_file_corrupt",
                path=str(self._path),
                moved_to=str(corrupt_path),
                error=str(e),
            )
            return []

    def _write(self, operations: list[PendingOperation]) -> None:
        fd, tmp_name = tempfile.mkstemp(
            dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(encode_operations(operations))
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self._path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise


# Redis keys, derived from the configured queue key
OPERATIONS_KEY = "{key}:operations"
ORDER_KEY = "{key}:order"
SEQUENCE_KEY = "{key}:seq"
CORRUPT_KEY = "{key}:corrupt"


class RedisQueueStore:
    """
    Queue kept in Redis: a hash of operation id → JSON record and a sorted
    set of ids scored by a shared sequence counter.
    """

    def __init__(self, redis_url: str, key: str) -> None:
        self._operations_key = OPERATIONS_KEY.format(key=key)
        self._order_key = ORDER_KEY.format(key=key)
        self._sequence_key = SEQUENCE_KEY.format(key=key)
        self._corrupt_key = CORRUPT_KEY.format(key=key)
        self._redis: Optional[aioredis.Redis] = aioredis.from_url(redis_url)

    @property
    def redis(self) -> aioredis.Redis:
        if not self._redis:
            raise RuntimeError("RedisQueueStore is closed.")
        return self._redis

    async def load(self) -> list[PendingOperation]:
        ids = await self.redis.zrange(self._order_key, 0, -1)
        if not ids:
            return []
        records = await self.redis.hmget(self._operations_key, ids)

        operations: list[PendingOperation] = []
        for operation_id, record in zip(ids, records):
            if record is None:
                # Removed by another process between the two reads.
                continue
            try:
                operations.append(PendingOperation.model_validate_json(record))
            except ValidationError as e:
                await self._quarantine(operation_id, record)
                logger.error("queue_record_corrupt", operation_id=str(operation_id), error=str(e))
        return operations

    async def append(self, operation: PendingOperation) -> None:
        operation_id = str(operation.id)
        position = await self.redis.incr(self._sequence_key)
        await self.redis.hset(self._operations_key, operation_id, operation.model_dump_json())
        await self.redis.zadd(self._order_key, {operation_id: position})

    async def remove(self, operation_id: UUID) -> bool:
        removed = await self.redis.zrem(self._order_key, str(operation_id))
        await self.redis.hdel(self._operations_key, str(operation_id))
        return bool(removed)

    async def update(self, operation: PendingOperation) -> bool:
        operation_id = str(operation.id)
        if await self.redis.zscore(self._order_key, operation_id) is None:
            return False
        await self.redis.hset(self._operations_key, operation_id, operation.model_dump_json())
        return True

    async def _quarantine(self, operation_id: bytes | str, record: bytes | str) -> None:
        await self.redis.hset(self._corrupt_key, operation_id, record)
        await self.redis.zrem(self._order_key, operation_id)
        await self.redis.hdel(self._operations_key, operation_id)

    async def close(self) -> None:
        if self._redis:
            await self._redis.aclose()
            self._redis = None


def build_queue_store(settings: Settings | None = None) -> QueueStore:
    """Create the queue store selected by configuration."""
    settings = settings or get_settings()
    if settings.queue_backend == QueueBackend.REDIS:
        return RedisQueueStore(settings.redis_url, settings.queue_redis_key)
    return FileQueueStore(settings.queue_file)
