"""In-memory queue client for tests and local mode.

Emulates the parts of SQS the listener relies on: long polling, per-delivery
receipt handles and visibility-timeout redelivery. Single event loop only.
"""
from __future__ import annotations

import asyncio
import time
import uuid
from collections import deque
from dataclasses import dataclass, field
from typing import Callable

from sqs_listener.app.domain.models import Message
from sqs_listener.app.ports.queue_client import MessageNotFoundError, QueueNotFoundError


@dataclass
class _StoredMessage:
    message_id: str
    body: str
    attributes: dict[str, str]
    receive_count: int = 0


@dataclass
class _Queue:
    name: str
    url: str
    ready: deque[_StoredMessage] = field(default_factory=deque)
    in_flight: dict[str, tuple[_StoredMessage, float]] = field(default_factory=dict)
    available: asyncio.Event = field(default_factory=asyncio.Event)


class InMemoryQueueClient:
    """Implements QueueClient without a network."""

    def __init__(
        self,
        *,
        base_url: str = "memory://local/",
        default_visibility_timeout: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._base_url = base_url
        self._default_visibility_timeout = default_visibility_timeout
        self._clock = clock
        self._queues: dict[str, _Queue] = {}

    def create_queue(self, name: str) -> str:
        queue = self._queues.get(name)
        if queue is None:
            queue = _Queue(name=name, url=f"{self._base_url}{name}")
            self._queues[name] = queue
        return queue.url

    def send_message(self, queue: str, body: str, *, attributes: dict[str, str] | None = None) -> str:
        """Enqueue ``body`` on a queue given by name or URL; returns the message id."""
        target = self._lookup(queue)
        stored = _StoredMessage(message_id=str(uuid.uuid4()), body=body, attributes=dict(attributes or {}))
        target.ready.append(stored)
        target.available.set()
        return stored.message_id

    def expire_in_flight(self, queue: str) -> int:
        """Make every in-flight message visible again, as if its timeout elapsed."""
        target = self._lookup(queue)
        expired = list(target.in_flight)
        for handle in expired:
            stored, _ = target.in_flight.pop(handle)
            target.ready.append(stored)
        if target.ready:
            target.available.set()
        return len(expired)

    def pending_count(self, queue: str) -> int:
        return len(self._lookup(queue).ready)

    def in_flight_count(self, queue: str) -> int:
        return len(self._lookup(queue).in_flight)

    async def resolve_queue_url(self, queue_name: str) -> str:
        queue = self._queues.get(queue_name)
        if queue is None:
            raise QueueNotFoundError(f"queue {queue_name!r} does not exist")
        return queue.url

    async def receive_messages(
        self,
        queue_url: str,
        *,
        max_messages: int,
        wait_time_seconds: int,
        visibility_timeout: int | None = None,
    ) -> list[Message]:
        queue = self._lookup(queue_url)
        self._requeue_expired(queue)
        loop = asyncio.get_running_loop()
        deadline = loop.time() + wait_time_seconds
        while not queue.ready:
            remaining = deadline - loop.time()
            if remaining <= 0:
                return []
            # Wake no later than the next in-flight message becomes visible again.
            next_visible = self._next_visible_in(queue)
            if next_visible is not None:
                remaining = min(remaining, max(next_visible, 0.0))
            queue.available.clear()
            try:
                await asyncio.wait_for(queue.available.wait(), timeout=remaining)
            except asyncio.TimeoutError:
                pass
            self._requeue_expired(queue)

        timeout = self._default_visibility_timeout if visibility_timeout is None else visibility_timeout
        messages: list[Message] = []
        while queue.ready and len(messages) < max_messages:
            stored = queue.ready.popleft()
            stored.receive_count += 1
            handle = uuid.uuid4().hex
            queue.in_flight[handle] = (stored, self._clock() + timeout)
            attributes = dict(stored.attributes)
            attributes["ApproximateReceiveCount"] = str(stored.receive_count)
            messages.append(
                Message(
                    receipt_handle=handle,
                    body=stored.body,
                    message_id=stored.message_id,
                    attributes=attributes,
                    queue_url=queue.url,
                )
            )
        if not queue.ready:
            queue.available.clear()
        return messages

    async def delete_message(self, queue_url: str, receipt_handle: str) -> None:
        queue = self._lookup(queue_url)
        if queue.in_flight.pop(receipt_handle, None) is None:
            raise MessageNotFoundError(f"receipt handle not in flight on {queue_url}")

    async def close(self) -> None:
        return

    def _lookup(self, queue: str) -> _Queue:
        for candidate in self._queues.values():
            if queue in (candidate.name, candidate.url):
                return candidate
        raise QueueNotFoundError(f"queue {queue!r} does not exist")

    def _next_visible_in(self, queue: _Queue) -> float | None:
        if not queue.in_flight:
            return None
        return min(visible_at for _, visible_at in queue.in_flight.values()) - self._clock()

    def _requeue_expired(self, queue: _Queue) -> None:
        now = self._clock()
        for handle, (stored, visible_at) in list(queue.in_flight.items()):
            if visible_at <= now:
                del queue.in_flight[handle]
                queue.ready.append(stored)
