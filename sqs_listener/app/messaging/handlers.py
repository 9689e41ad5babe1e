"""Handler adapters: turn plain callables into MessageHandler implementations."""
from __future__ import annotations

import asyncio
import inspect
from typing import Any, Callable

from sqs_listener.app.domain.errors import ConfigurationError
from sqs_listener.app.domain.models import Message
from sqs_listener.app.ports.message_handler import MessageHandler


class CallbackHandler:
    """MessageHandler wrapping a function.

    Coroutine functions are awaited on the event loop. Plain functions run in a
    worker thread by default so a slow callback does not stall polling; pass
    ``in_thread=False`` to call them inline.
    """

    def __init__(self, callback: Callable[[Message], Any], *, in_thread: bool = True) -> None:
        if not callable(callback):
            raise ConfigurationError("handler callback must be callable", key="handler")
        self._callback = callback
        self._is_async = inspect.iscoroutinefunction(callback) or inspect.iscoroutinefunction(
            getattr(callback, "__call__", None)
        )
        self._in_thread = in_thread

    @property
    def callback(self) -> Callable[[Message], Any]:
        return self._callback

    async def handle(self, message: Message) -> bool | None:
        if self._is_async:
            return await self._callback(message)
        if self._in_thread:
            result = await asyncio.to_thread(self._callback, message)
        else:
            result = self._callback(message)
        if inspect.isawaitable(result):
            result = await result
        return result

    def __repr__(self) -> str:
        name = getattr(self._callback, "__qualname__", repr(self._callback))
        return f"CallbackHandler({name})"


def as_message_handler(target: Any) -> MessageHandler:
    """Normalise a handler object or callable to the MessageHandler port."""
    handle = getattr(target, "handle", None)
    if callable(handle):
        if inspect.iscoroutinefunction(handle):
            return target
        return CallbackHandler(handle)
    if callable(target):
        return CallbackHandler(target)
    raise ConfigurationError(
        f"handler must be callable or define handle(message), got {type(target).__name__}",
        key="handler",
    )
