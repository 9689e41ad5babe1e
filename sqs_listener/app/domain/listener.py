"""Listener: binds a queue to the handler run for each of its messages."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from sqs_listener.app.messaging.handlers import as_message_handler
from sqs_listener.app.ports.message_handler import MessageHandler


@dataclass(frozen=True, init=False)
class Listener:
    """Queue name plus handler. Pure configuration, no network activity.

    An empty ``queue_name`` means the builder's default queue. A name starting with
    ``http://`` or ``https://`` is taken as the queue URL and skips resolution.
    """

    queue_name: str
    handler: MessageHandler

    def __init__(self, queue_name: str, handler: Any) -> None:
        object.__setattr__(self, "queue_name", (queue_name or "").strip())
        object.__setattr__(self, "handler", as_message_handler(handler))

    @property
    def is_queue_url(self) -> bool:
        return self.queue_name.startswith(("http://", "https://"))

    def with_queue_name(self, queue_name: str) -> "Listener":
        return Listener(queue_name, self.handler)


@dataclass(frozen=True)
class ListenerFailure:
    """Fatal error of one listener's poll loop; ``index`` is its registration position."""

    index: int
    listener: Listener
    error: BaseException

    @property
    def queue_name(self) -> str:
        return self.listener.queue_name
