"""Port: message handler invoked once per received message."""
from __future__ import annotations

from typing import Awaitable, Protocol, runtime_checkable

from sqs_listener.app.domain.models import Message


@runtime_checkable
class MessageHandler(Protocol):
    """Processes one message.

    Raising, or returning ``False``, signals failure: the message is left on the
    queue and redelivered after its visibility timeout. Any other return value is
    success.
    """

    def handle(self, message: Message) -> Awaitable[bool | None]: ...
