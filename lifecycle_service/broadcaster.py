"""Change broadcaster: fans committed document records out to live subscribers.

Each subscription owns a bounded queue. A push is a non-blocking
``put_nowait``; a closed or full queue counts as a failed push, and the
failed subscriptions are removed in one batch after the fan-out pass. A
failed push is the only disconnect signal besides an explicit
``unsubscribe`` from the connection handler.

All state is touched from the event loop only. Fan-out iterates a snapshot
of the subscriber set, so subscribe/unsubscribe calls interleaving with a
publish never invalidate the iteration.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
import logging
from collections.abc import AsyncIterator
from dataclasses import dataclass
from typing import Any

from lifecycle_service.config import LIFECYCLE_HEARTBEAT_SECONDS, LIFECYCLE_SUBSCRIBER_QUEUE_SIZE
from lifecycle_service.types import DocumentRecord

logger = logging.getLogger(__name__)

EVENT_DOCUMENT = "document"
EVENT_HEARTBEAT = "heartbeat"


@dataclass(frozen=True)
class BroadcastEvent:
    kind: str
    payload: dict[str, Any] | None = None


HEARTBEAT = BroadcastEvent(kind=EVENT_HEARTBEAT)


class SubscriptionClosed(Exception):
    """Push attempted on a subscription whose connection has gone away."""


class Subscription:
    """Handle for one live connection; iterate it to receive events."""

    def __init__(self, queue_size: int = LIFECYCLE_SUBSCRIBER_QUEUE_SIZE) -> None:
        self._queue: asyncio.Queue[BroadcastEvent | None] = asyncio.Queue(maxsize=queue_size)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def push(self, event: BroadcastEvent) -> None:
        """Enqueue without waiting; raises on a closed or backed-up subscriber."""
        if self._closed:
            raise SubscriptionClosed("subscription closed")
        self._queue.put_nowait(event)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        # Wake a waiting reader; if the queue is full it will drain to the end anyway.
        with contextlib.suppress(asyncio.QueueFull):
            self._queue.put_nowait(None)

    def __aiter__(self) -> AsyncIterator[BroadcastEvent]:
        return self._events()

    async def _events(self) -> AsyncIterator[BroadcastEvent]:
        while True:
            event = await self._queue.get()
            if event is None:
                return
            yield event
            if self._closed and self._queue.empty():
                return


class ChangeBroadcaster:
    def __init__(
        self,
        *,
        heartbeat_interval: float = LIFECYCLE_HEARTBEAT_SECONDS,
        queue_size: int = LIFECYCLE_SUBSCRIBER_QUEUE_SIZE,
    ) -> None:
        self._subscribers: set[Subscription] = set()
        self._heartbeat_interval = heartbeat_interval
        self._queue_size = queue_size
        self._heartbeat_task: asyncio.Task[None] | None = None

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self) -> Subscription:
        sub = Subscription(self._queue_size)
        self._subscribers.add(sub)
        logger.debug("Subscriber added (%d active)", len(self._subscribers))
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        self._subscribers.discard(sub)
        sub.close()
        logger.debug("Subscriber removed (%d active)", len(self._subscribers))

    def publish(self, record: DocumentRecord) -> int:
        """Push ``record`` to every subscriber; returns how many received it."""
        return self._fan_out(BroadcastEvent(kind=EVENT_DOCUMENT, payload=record.to_wire()))

    def _fan_out(self, event: BroadcastEvent) -> int:
        failed: list[Subscription] = []
        delivered = 0
        for sub in list(self._subscribers):
            try:
                sub.push(event)
                delivered += 1
            except (SubscriptionClosed, asyncio.QueueFull) as e:
                logger.debug("Dropping subscriber after failed %s push: %r", event.kind, e)
                failed.append(sub)

        for sub in failed:
            self.unsubscribe(sub)
        return delivered

    # -- Heartbeat -----------------------------------------------------------

    def start(self) -> None:
        if self._heartbeat_task is None or self._heartbeat_task.done():
            self._heartbeat_task = asyncio.create_task(self._heartbeat_loop(), name="broadcaster-heartbeat")

    async def stop(self) -> None:
        task, self._heartbeat_task = self._heartbeat_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        for sub in list(self._subscribers):
            self.unsubscribe(sub)

    async def _heartbeat_loop(self) -> None:
        while True:
            await asyncio.sleep(self._heartbeat_interval)
            self._fan_out(HEARTBEAT)


def format_sse(event: BroadcastEvent) -> str:
    """Render one event as a Server-Sent Events frame."""
    if event.kind == EVENT_HEARTBEAT:
        return ": heartbeat\n\n"
    return f"event: {event.kind}\ndata: {json.dumps(event.payload, separators=(',', ':'))}\n\n"
