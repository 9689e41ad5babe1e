"""Domain models."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

from sqs_listener.app.constants import (
    MAX_BATCH_SIZE,
    MAX_VISIBILITY_TIMEOUT_SECONDS,
    MAX_WAIT_TIME_SECONDS,
)
from sqs_listener.app.domain.errors import ConfigurationError


@dataclass(frozen=True)
class Message:
    """One delivery of a queue message (value object).

    The receipt handle identifies this delivery, not the message: a redelivered
    message arrives with a new handle.
    """

    receipt_handle: str
    body: str
    message_id: str
    attributes: dict[str, str] = field(default_factory=dict)
    message_attributes: dict[str, Any] = field(default_factory=dict)
    md5_of_body: str | None = None
    queue_url: str | None = None

    @staticmethod
    def from_sqs(raw: Mapping[str, Any], *, queue_url: str | None = None) -> "Message":
        """Build from a ReceiveMessage ``Messages`` entry."""
        return Message(
            receipt_handle=str(raw.get("ReceiptHandle") or ""),
            body=str(raw.get("Body") or ""),
            message_id=str(raw.get("MessageId") or ""),
            attributes={str(k): str(v) for k, v in (raw.get("Attributes") or {}).items()},
            message_attributes=dict(raw.get("MessageAttributes") or {}),
            md5_of_body=raw.get("MD5OfBody"),
            queue_url=queue_url,
        )

    @property
    def receive_count(self) -> int:
        """ApproximateReceiveCount when the queue returned it, else 0."""
        try:
            return int(self.attributes.get("ApproximateReceiveCount", 0))
        except ValueError:
            return 0


@dataclass(frozen=True)
class StaticCredentials:
    """Explicit AWS key pair; the default credential chain is used when absent."""

    access_key_id: str
    secret_access_key: str
    session_token: str | None = None

    def __post_init__(self) -> None:
        if not self.access_key_id or not self.secret_access_key:
            raise ConfigurationError(
                "static credentials need both an access key id and a secret access key",
                key="credentials",
            )

    def __repr__(self) -> str:
        return f"StaticCredentials(access_key_id={self.access_key_id!r}, secret_access_key='***')"


@dataclass(frozen=True)
class PollConfig:
    """Polling parameters shared by every loop of a client.

    Defaults follow the queue-service maxima: batches of 10, 20 second long polls.
    ``idle_delay_seconds`` is an extra pause after an empty receive; with long
    polling it can stay at zero.
    """

    max_messages: int = MAX_BATCH_SIZE
    wait_time_seconds: int = MAX_WAIT_TIME_SECONDS
    visibility_timeout: int | None = None
    idle_delay_seconds: float = 0.0
    auto_ack: bool = True
    max_concurrency: int = 1
    error_backoff_initial_seconds: float = 1.0
    error_backoff_max_seconds: float = 30.0
    error_backoff_multiplier: float = 2.0
    resolve_attempts: int = 3

    def __post_init__(self) -> None:
        if not 1 <= self.max_messages <= MAX_BATCH_SIZE:
            raise ConfigurationError(
                f"max_messages must be between 1 and {MAX_BATCH_SIZE}", key="max_messages"
            )
        if not 0 <= self.wait_time_seconds <= MAX_WAIT_TIME_SECONDS:
            raise ConfigurationError(
                f"wait_time_seconds must be between 0 and {MAX_WAIT_TIME_SECONDS}",
                key="wait_time_seconds",
            )
        if self.visibility_timeout is not None and not (
            0 <= self.visibility_timeout <= MAX_VISIBILITY_TIMEOUT_SECONDS
        ):
            raise ConfigurationError(
                f"visibility_timeout must be between 0 and {MAX_VISIBILITY_TIMEOUT_SECONDS}",
                key="visibility_timeout",
            )
        if self.idle_delay_seconds < 0:
            raise ConfigurationError("idle_delay_seconds must not be negative", key="idle_delay_seconds")
        if self.max_concurrency < 1:
            raise ConfigurationError("max_concurrency must be at least 1", key="max_concurrency")
        if self.error_backoff_initial_seconds < 0 or self.error_backoff_max_seconds < 0:
            raise ConfigurationError("error backoff delays must not be negative", key="error_backoff")
        if self.error_backoff_multiplier < 1:
            raise ConfigurationError(
                "error_backoff_multiplier must be at least 1", key="error_backoff_multiplier"
            )
        if self.resolve_attempts < 1:
            raise ConfigurationError("resolve_attempts must be at least 1", key="resolve_attempts")
