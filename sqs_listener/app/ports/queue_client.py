"""Queue client port: contract for the remote queue service.

Application code depends on this port; infrastructure (boto3, in-memory) implements it.
Implementations map their library errors onto the exceptions below.
"""
from __future__ import annotations

from typing import Protocol, runtime_checkable

from sqs_listener.app.domain.errors import SqsListenerError
from sqs_listener.app.domain.models import Message


class QueueClientError(SqsListenerError):
    """Base for queue service failures (network, throttling, service errors)."""


class QueueNotFoundError(QueueClientError):
    """Raised when the named queue does not exist."""


class MessageNotFoundError(QueueClientError):
    """Raised when a receipt handle is unknown or expired."""


@runtime_checkable
class QueueClient(Protocol):
    """Port: receive and delete queue messages. Implementations live in infrastructure."""

    async def resolve_queue_url(self, queue_name: str) -> str:
        """Return the URL of ``queue_name``; raise QueueNotFoundError or QueueClientError."""
        ...

    async def receive_messages(
        self,
        queue_url: str,
        *,
        max_messages: int,
        wait_time_seconds: int,
        visibility_timeout: int | None = None,
    ) -> list[Message]:
        """Long-poll for up to ``max_messages``; an empty list is a normal result."""
        ...

    async def delete_message(self, queue_url: str, receipt_handle: str) -> None:
        """Delete one delivery; raise MessageNotFoundError or QueueClientError on failure."""
        ...

    async def close(self) -> None:
        """Release resources (e.g. connection pool). No-op allowed if nothing to close."""
        ...
