"""
Listener client: owns one poll loop task per listener and their shared queue client.

Lifecycle:
  CREATED -> start() -> RUNNING -> stop() -> STOPPING -> (all loops exited) -> STOPPED.
  A loop that dies on a fatal error (queue not found) is recorded in ``failures`` and
  the other loops keep running. When every loop has exited the client is STOPPED.

Concurrency:
  - stop() may be called from a signal handler, from a handler running in a worker
    thread, or after the client already stopped; it only sets the shared stop event,
    via call_soon_threadsafe when called off the event loop.
  - join() waits; it never cancels tasks, so in-flight handlers always finish.
"""
from __future__ import annotations

import asyncio
from typing import Any, Sequence

from loguru import logger

from sqs_listener.app.application.poll_loop import DeletedHandles, PollLoop
from sqs_listener.app.constants import ClientState
from sqs_listener.app.core import SERVICE_NAME
from sqs_listener.app.domain.errors import ListenerStateError, ListenerStoppedError
from sqs_listener.app.domain.listener import Listener, ListenerFailure
from sqs_listener.app.domain.models import Message, PollConfig
from sqs_listener.app.ports.queue_client import QueueClient


def _log(event: str, **kwargs: Any) -> None:
    logger.bind(service_name=SERVICE_NAME, event=event, **kwargs).info("")


class ListenerClient:
    """Runs every registered listener concurrently. Build with ListenerClientBuilder."""

    def __init__(
        self,
        queue_client: QueueClient,
        listeners: Sequence[Listener],
        config: PollConfig,
        *,
        owns_queue_client: bool = True,
    ) -> None:
        self._queue_client = queue_client
        self._listeners = tuple(listeners)
        self._config = config
        self._owns_queue_client = owns_queue_client
        self._deleted = DeletedHandles()
        self._loops = [
            PollLoop(listener, queue_client, config, deleted=self._deleted)
            for listener in self._listeners
        ]
        self._state = ClientState.CREATED
        self._stop_event: asyncio.Event | None = None
        self._event_loop: asyncio.AbstractEventLoop | None = None
        self._tasks: list[asyncio.Task[None]] = []
        self._failures: list[ListenerFailure] = []
        self._closed = False

    @property
    def state(self) -> ClientState:
        return self._state

    @property
    def running(self) -> bool:
        return self._state == ClientState.RUNNING

    @property
    def listeners(self) -> tuple[Listener, ...]:
        return self._listeners

    @property
    def config(self) -> PollConfig:
        return self._config

    @property
    def queue_client(self) -> QueueClient:
        return self._queue_client

    @property
    def failures(self) -> list[ListenerFailure]:
        """Fatal loop errors, one per failed listener, in registration order."""
        return sorted(self._failures, key=lambda failure: failure.index)

    async def start(self) -> None:
        """Spawn one poll loop task per listener and return immediately."""
        if self._state != ClientState.CREATED:
            raise ListenerStateError(f"cannot start a client in state {self._state.value}")
        self._event_loop = asyncio.get_running_loop()
        self._stop_event = asyncio.Event()
        self._state = ClientState.RUNNING
        for index, poll_loop in enumerate(self._loops):
            task = asyncio.create_task(
                poll_loop.run(self._stop_event),
                name=f"{SERVICE_NAME}:{poll_loop.queue_name}",
            )
            task.add_done_callback(lambda t, i=index, loop=poll_loop: self._on_loop_done(i, loop, t))
            self._tasks.append(task)
        _log("listener_client_started", listeners=len(self._loops))

    def stop(self) -> None:
        """Ask every loop to exit at its next iteration boundary. Idempotent."""
        if self._state in (ClientState.STOPPING, ClientState.STOPPED):
            return
        if self._state == ClientState.CREATED:
            self._state = ClientState.STOPPED
            return
        self._state = ClientState.STOPPING
        _log("listener_client_stopping")
        if self._stop_event is None or self._event_loop is None:
            return
        try:
            current = asyncio.get_running_loop()
        except RuntimeError:
            current = None
        if current is self._event_loop:
            self._stop_event.set()
        else:
            self._event_loop.call_soon_threadsafe(self._stop_event.set)

    async def join(self) -> list[ListenerFailure]:
        """Wait for every loop to exit; returns the fatal failures in listener order."""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._state != ClientState.CREATED:
            self._state = ClientState.STOPPED
        return self.failures

    async def run(self) -> list[ListenerFailure]:
        """Start and wait until every loop has exited."""
        await self.start()
        return await self.join()

    async def close(self) -> None:
        """Stop, wait for the loops and release the queue client."""
        self.stop()
        await self.join()
        if self._closed:
            return
        self._closed = True
        if self._owns_queue_client:
            try:
                await self._queue_client.close()
            except Exception as exc:
                logger.warning("queue client close failed: {}", exc)
        _log("listener_client_closed")

    async def ack_message(self, message: Message) -> bool:
        """Manually delete ``message``; needed when PollConfig.auto_ack is False.

        Returns False when the message had already been deleted.
        """
        if self._state != ClientState.RUNNING:
            raise ListenerStoppedError("listener client is not running")
        for poll_loop in self._loops:
            if poll_loop.queue_url is not None and poll_loop.queue_url == message.queue_url:
                return await poll_loop.ack(message)
        raise ListenerStoppedError(f"no running listener owns queue {message.queue_url}")

    async def __aenter__(self) -> "ListenerClient":
        await self.start()
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()

    def _on_loop_done(self, index: int, poll_loop: PollLoop, task: asyncio.Task[None]) -> None:
        if task.cancelled():
            _log("poll_loop_cancelled", queue_name=poll_loop.queue_name)
        else:
            exc = task.exception()
            if exc is not None:
                self._failures.append(ListenerFailure(index, poll_loop.listener, exc))
                logger.error("poll loop for {!r} failed: {}", poll_loop.queue_name, exc)
        if all(t.done() for t in self._tasks):
            self._state = ClientState.STOPPED
            _log("listener_client_stopped", failures=len(self._failures))
