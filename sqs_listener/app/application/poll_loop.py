"""
Poll loop: the receive -> dispatch -> acknowledge cycle for one listener's queue.

Lifecycle:
  resolve queue URL (cached; retried with backoff on transport errors, fatal when the
  queue does not exist) -> loop until the stop event is set:
  receive batch -> dispatch each message -> delete on success.

Failure policy:
  - handler raised or returned False: message is left on the queue; the visibility
    timeout makes it visible again, which is the retry.
  - delete failed: logged only; redelivery covers it.
  - receive failed: logged, then an interruptible exponential backoff before the next
    receive. A successful receive resets the backoff.

Cancellation is checked at iteration boundaries and interrupts idle/backoff waits; it
never interrupts an in-flight handler or receive call.
"""
from __future__ import annotations

import asyncio
from collections import OrderedDict
from typing import Any

from loguru import logger

from sqs_listener.app.constants import DELETED_HANDLE_WINDOW
from sqs_listener.app.core import SERVICE_NAME
from sqs_listener.app.core.backoff import backoff_delay
from sqs_listener.app.domain.errors import NoReceiptHandleError, QueueResolutionError
from sqs_listener.app.domain.listener import Listener
from sqs_listener.app.domain.models import Message, PollConfig
from sqs_listener.app.ports.queue_client import QueueClient, QueueClientError, QueueNotFoundError


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class DeletedHandles:
    """Bounded record of deleted deliveries, keyed by (queue_url, receipt_handle).

    Shared by every loop of a client so that loops polling the same queue, and manual
    acks routed through any of them, never delete one delivery twice.
    """

    def __init__(self, capacity: int = DELETED_HANDLE_WINDOW) -> None:
        self._capacity = capacity
        self._keys: OrderedDict[tuple[str, str], None] = OrderedDict()

    def __len__(self) -> int:
        return len(self._keys)

    def __contains__(self, key: tuple[str, str]) -> bool:
        return key in self._keys

    def claim(self, queue_url: str, receipt_handle: str) -> bool:
        """Record the delivery; False when it was already claimed."""
        key = (queue_url, receipt_handle)
        if key in self._keys:
            return False
        self._keys[key] = None
        while len(self._keys) > self._capacity:
            self._keys.popitem(last=False)
        return True

    def release(self, queue_url: str, receipt_handle: str) -> None:
        self._keys.pop((queue_url, receipt_handle), None)


class PollLoop:
    """Runs one listener against its queue until stopped."""

    def __init__(
        self,
        listener: Listener,
        queue_client: QueueClient,
        config: PollConfig,
        *,
        deleted: DeletedHandles | None = None,
    ) -> None:
        self._listener = listener
        self._client = queue_client
        self._config = config
        self._queue_url: str | None = listener.queue_name if listener.is_queue_url else None
        self._deleted = deleted if deleted is not None else DeletedHandles()
        self._semaphore = asyncio.Semaphore(config.max_concurrency)

    @property
    def listener(self) -> Listener:
        return self._listener

    @property
    def queue_name(self) -> str:
        return self._listener.queue_name

    @property
    def queue_url(self) -> str | None:
        return self._queue_url

    async def run(self, stop_event: asyncio.Event) -> None:
        """Poll until ``stop_event`` is set. Raises QueueResolutionError if the queue is unusable."""
        queue_url = await self._resolve_queue_url(stop_event)
        if queue_url is None:
            _log("poll_loop_stopped", queue_name=self.queue_name, queue_url=None)
            return
        _log("poll_loop_started", queue_name=self.queue_name, queue_url=queue_url)

        failures = 0
        while not stop_event.is_set():
            try:
                messages = await self._client.receive_messages(
                    queue_url,
                    max_messages=self._config.max_messages,
                    wait_time_seconds=self._config.wait_time_seconds,
                    visibility_timeout=self._config.visibility_timeout,
                )
            except QueueClientError as exc:
                failures += 1
                delay = backoff_delay(
                    failures,
                    self._config.error_backoff_initial_seconds,
                    self._config.error_backoff_max_seconds,
                    self._config.error_backoff_multiplier,
                )
                logger.warning("receive failed on {} (retry in {}s): {}", queue_url, delay, exc)
                await self._wait(stop_event, delay)
                continue

            failures = 0
            if not messages:
                logger.debug("no messages on {}", queue_url)
                await self._wait(stop_event, self._config.idle_delay_seconds)
                continue

            _log("batch_received", queue_name=self.queue_name, count=len(messages))
            await self._dispatch_batch(messages)

        _log("poll_loop_stopped", queue_name=self.queue_name, queue_url=queue_url)

    async def ack(self, message: Message) -> bool:
        """Delete ``message`` from this loop's queue.

        Returns False without a network call when the receipt handle was already
        deleted. Transport errors propagate to the caller.
        """
        if not message.receipt_handle:
            raise NoReceiptHandleError(
                f"message {message.message_id or '<unknown>'} has no receipt handle"
            )
        queue_url = message.queue_url or self._queue_url
        if queue_url is None:
            raise QueueClientError(f"queue {self.queue_name!r} has not been resolved yet")
        # Claimed before the call so a concurrent ack of the same delivery is a no-op.
        if not self._deleted.claim(queue_url, message.receipt_handle):
            return False
        try:
            await self._client.delete_message(queue_url, message.receipt_handle)
        except BaseException:
            self._deleted.release(queue_url, message.receipt_handle)
            raise
        return True

    async def _resolve_queue_url(self, stop_event: asyncio.Event) -> str | None:
        """Resolve and cache the queue URL. Returns None when stopped while retrying."""
        if self._queue_url is not None:
            return self._queue_url

        attempt = 0
        last_error: Exception | None = None
        while attempt < self._config.resolve_attempts:
            if attempt:
                delay = backoff_delay(
                    attempt,
                    self._config.error_backoff_initial_seconds,
                    self._config.error_backoff_max_seconds,
                    self._config.error_backoff_multiplier,
                )
                await self._wait(stop_event, delay)
            if stop_event.is_set():
                return None
            attempt += 1
            _log("queue_resolve_attempt", queue_name=self.queue_name, attempt=attempt)
            try:
                self._queue_url = await self._client.resolve_queue_url(self.queue_name)
                return self._queue_url
            except QueueNotFoundError as exc:
                _log("queue_not_found", queue_name=self.queue_name)
                raise QueueResolutionError(self.queue_name, str(exc)) from exc
            except QueueClientError as exc:
                logger.warning("queue resolve failed for {}: {}", self.queue_name, exc)
                last_error = exc

        _log("queue_resolve_exhausted", queue_name=self.queue_name, attempts=attempt)
        raise QueueResolutionError(
            self.queue_name, f"gave up after {attempt} attempts: {last_error}"
        ) from last_error

    async def _dispatch_batch(self, messages: list[Message]) -> None:
        if self._config.max_concurrency == 1:
            for message in messages:
                await self._dispatch(message)
            return
        await asyncio.gather(*(self._dispatch_bounded(message) for message in messages))

    async def _dispatch_bounded(self, message: Message) -> None:
        async with self._semaphore:
            await self._dispatch(message)

    async def _dispatch(self, message: Message) -> None:
        try:
            result = await self._listener.handler.handle(message)
        except Exception as exc:
            logger.warning("handler failed for message {}: {}", message.message_id, exc)
            _log("message_left_for_redelivery", queue_name=self.queue_name, message_id=message.message_id)
            return

        if result is False:
            _log("message_rejected", queue_name=self.queue_name, message_id=message.message_id)
            return

        if not self._config.auto_ack:
            return

        try:
            deleted = await self.ack(message)
        except NoReceiptHandleError as exc:
            logger.warning("cannot acknowledge message: {}", exc)
            return
        except QueueClientError as exc:
            logger.warning("delete failed for message {}: {}", message.message_id, exc)
            return
        if deleted:
            _log("message_deleted", queue_name=self.queue_name, message_id=message.message_id)

    @staticmethod
    async def _wait(stop_event: asyncio.Event, delay: float) -> None:
        """Sleep up to ``delay`` seconds, returning early when stop is requested."""
        if delay <= 0:
            await asyncio.sleep(0)
            return
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=delay)
        except asyncio.TimeoutError:
            pass
