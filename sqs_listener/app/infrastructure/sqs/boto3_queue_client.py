"""Concrete QueueClient implementation using a boto3 SQS client.

boto3 calls block, so each one runs in a worker thread via asyncio.to_thread; the
botocore client itself is thread-safe and shared by every poll loop.
"""
from __future__ import annotations

import asyncio
from typing import Any

from botocore.exceptions import BotoCoreError, ClientError
from loguru import logger

from sqs_listener.app.constants import QUEUE_NOT_FOUND_CODES, RECEIPT_HANDLE_INVALID_CODES
from sqs_listener.app.domain.models import Message
from sqs_listener.app.ports.queue_client import (
    QueueClient,
    QueueClientError,
    QueueNotFoundError,
    MessageNotFoundError,
)


def _error_code(exc: ClientError) -> str:
    return str(exc.response.get("Error", {}).get("Code", ""))


class Boto3QueueClient(QueueClient):
    """QueueClient implementation over ``boto3.client("sqs")``."""

    def __init__(self, client: Any) -> None:
        self._client = client

    @property
    def client(self) -> Any:
        return self._client

    async def resolve_queue_url(self, queue_name: str) -> str:
        try:
            response = await asyncio.to_thread(self._client.get_queue_url, QueueName=queue_name)
        except ClientError as exc:
            if _error_code(exc) in QUEUE_NOT_FOUND_CODES:
                raise QueueNotFoundError(f"queue {queue_name!r} does not exist") from exc
            raise QueueClientError(f"get_queue_url failed for {queue_name!r}: {exc}") from exc
        except BotoCoreError as exc:
            raise QueueClientError(f"get_queue_url failed for {queue_name!r}: {exc}") from exc
        return str(response["QueueUrl"])

    async def receive_messages(
        self,
        queue_url: str,
        *,
        max_messages: int,
        wait_time_seconds: int,
        visibility_timeout: int | None = None,
    ) -> list[Message]:
        params: dict[str, Any] = {
            "QueueUrl": queue_url,
            "MaxNumberOfMessages": max_messages,
            "WaitTimeSeconds": wait_time_seconds,
            "AttributeNames": ["All"],
            "MessageAttributeNames": ["All"],
        }
        if visibility_timeout is not None:
            params["VisibilityTimeout"] = visibility_timeout

        try:
            response = await asyncio.to_thread(self._client.receive_message, **params)
        except ClientError as exc:
            if _error_code(exc) in QUEUE_NOT_FOUND_CODES:
                raise QueueNotFoundError(f"queue {queue_url} does not exist") from exc
            raise QueueClientError(f"receive_message failed for {queue_url}: {exc}") from exc
        except BotoCoreError as exc:
            raise QueueClientError(f"receive_message failed for {queue_url}: {exc}") from exc

        return [Message.from_sqs(raw, queue_url=queue_url) for raw in response.get("Messages", [])]

    async def delete_message(self, queue_url: str, receipt_handle: str) -> None:
        try:
            await asyncio.to_thread(
                self._client.delete_message,
                QueueUrl=queue_url,
                ReceiptHandle=receipt_handle,
            )
        except ClientError as exc:
            code = _error_code(exc)
            if code in RECEIPT_HANDLE_INVALID_CODES:
                raise MessageNotFoundError(f"receipt handle rejected by {queue_url}: {code}") from exc
            if code in QUEUE_NOT_FOUND_CODES:
                raise QueueNotFoundError(f"queue {queue_url} does not exist") from exc
            raise QueueClientError(f"delete_message failed for {queue_url}: {exc}") from exc
        except BotoCoreError as exc:
            raise QueueClientError(f"delete_message failed for {queue_url}: {exc}") from exc

    async def close(self) -> None:
        """Close the botocore client. ListenerClient calls this only for clients it owns."""
        close = getattr(self._client, "close", None)
        if callable(close):
            try:
                await asyncio.to_thread(close)
            except Exception as exc:
                logger.warning("sqs client close failed: {}", exc)
