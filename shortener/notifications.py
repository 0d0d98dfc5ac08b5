"""Owner notification sinks.

The lifecycle engine reports events (link created, click limit reached,
expired, access denied, management changes) to the link owner through a
``Notifier``. ``notify`` is fire-and-forget and never awaits, so the engine is
never blocked by the sink.

Flow Diagram — RedisNotifier
============================
::
    ┌─────────────┐
    │ notify()    │  (sync, engine side)
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ asyncio     │
    │ Queue       │
    └──────┬──────┘
           ▼
    ┌─────────────┐
    │ _flush_loop │  (background task)
    │ RPUSH       │
    └──────┬──────┘
           ▼
    ┌──────────────────────┐
    │ notifications:<owner> │
    └──────────────────────┘

How to Use
===========
**Step 1 — Create and start**::
    notifier = RedisNotifier(redis_client, key_prefix="notifications")
    await notifier.start()

**Step 2 — Notify from the engine**::
    notifier.notify(owner_id, "Short URL created")

**Step 3 — Drain for the owner**::
    messages = await notifier.drain(owner_id)

Key Behaviours
===============
- Messages are queued per owner and delivered in order.
- ``drain`` returns and clears the owner's pending messages in one Redis
  transaction, so concurrent drains never return the same message twice.
- Redis failures in the flusher are logged and the message dropped; they never
  propagate into the engine.
"""

import asyncio
import logging
import uuid
from collections import deque
from typing import Protocol

import redis.asyncio as redis
from prometheus_client import Counter

__all__ = ["Notifier", "InMemoryNotifier", "RedisNotifier"]

NOTIFICATIONS_SENT_TOTAL = Counter(
    "shortener_notifications_sent_total",
    "Owner notifications delivered to the sink",
    ["backend"],
)
NOTIFICATIONS_FAILED_TOTAL = Counter(
    "shortener_notifications_failed_total",
    "Owner notifications dropped because the sink failed",
    ["backend"],
)


class Notifier(Protocol):
    def notify(self, owner_id: uuid.UUID, message: str) -> None: ...

    async def drain(self, owner_id: uuid.UUID) -> list[str]: ...

    async def count(self, owner_id: uuid.UUID) -> int: ...

    async def ping(self) -> None: ...


class InMemoryNotifier:
    def __init__(self) -> None:
        self._queues: dict[uuid.UUID, deque[str]] = {}

    def notify(self, owner_id: uuid.UUID, message: str) -> None:
        self._queues.setdefault(owner_id, deque()).append(message)
        NOTIFICATIONS_SENT_TOTAL.labels(backend="memory").inc()

    async def drain(self, owner_id: uuid.UUID) -> list[str]:
        queue = self._queues.get(owner_id)
        if not queue:
            return []
        messages = list(queue)
        queue.clear()
        return messages

    async def count(self, owner_id: uuid.UUID) -> int:
        return len(self._queues.get(owner_id, ()))

    def clear(self) -> None:
        self._queues.clear()

    async def ping(self) -> None:
        return None


class RedisNotifier:
    """Queues messages locally and flushes them into per-owner Redis lists."""

    def __init__(
        self,
        cache: redis.Redis,
        key_prefix: str = "notifications",
        logger: logging.Logger | None = None,
    ) -> None:
        self._cache = cache
        self._key_prefix = key_prefix
        self._logger = logger or logging.getLogger("shortener")
        self._pending: asyncio.Queue[tuple[uuid.UUID, str]] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None

    def _key(self, owner_id: uuid.UUID) -> str:
        return f"{self._key_prefix}:{owner_id}"

    def notify(self, owner_id: uuid.UUID, message: str) -> None:
        self._pending.put_nowait((owner_id, message))

    async def start(self) -> None:
        if self._task is None:
            self._task = asyncio.create_task(self._flush_loop(), name="notification-flusher")

    async def stop(self) -> None:
        if self._task is None:
            return
        await self.flush()
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None

    async def flush(self) -> None:
        """Wait until every queued message has been written to Redis."""
        if self._task is not None and not self._task.done():
            await self._pending.join()
            return
        while not self._pending.empty():
            owner_id, message = self._pending.get_nowait()
            await self._deliver(owner_id, message)
            self._pending.task_done()

    async def _flush_loop(self) -> None:
        while True:
            owner_id, message = await self._pending.get()
            try:
                await self._deliver(owner_id, message)
            finally:
                self._pending.task_done()

    async def _deliver(self, owner_id: uuid.UUID, message: str) -> None:
        try:
            await self._cache.rpush(self._key(owner_id), message)
            NOTIFICATIONS_SENT_TOTAL.labels(backend="redis").inc()
        except redis.RedisError as exc:
            NOTIFICATIONS_FAILED_TOTAL.labels(backend="redis").inc()
            self._logger.error(f"Notification delivery failed for owner {owner_id}: {exc}")

    async def drain(self, owner_id: uuid.UUID) -> list[str]:
        await self.flush()
        key = self._key(owner_id)
        # MULTI/EXEC: a concurrent drain sees either all of these messages or none.
        pipe = self._cache.pipeline(transaction=True)
        pipe.lrange(key, 0, -1)
        pipe.delete(key)
        messages, _ = await pipe.execute()
        return list(messages)

    async def count(self, owner_id: uuid.UUID) -> int:
        await self.flush()
        return int(await self._cache.llen(self._key(owner_id)))

    async def ping(self) -> None:
        await self._cache.ping()
