"""Long-polling SQS listener: run a handler for every message of one or more queues."""
from sqs_listener.app.application.builder import ListenerClientBuilder
from sqs_listener.app.application.listener_client import ListenerClient
from sqs_listener.app.constants import ClientState
from sqs_listener.app.domain.errors import (
    ConfigurationError,
    ListenerStateError,
    ListenerStoppedError,
    NoReceiptHandleError,
    QueueResolutionError,
    SqsListenerError,
)
from sqs_listener.app.domain.listener import Listener, ListenerFailure
from sqs_listener.app.domain.models import Message, PollConfig, StaticCredentials
from sqs_listener.app.messaging.handlers import CallbackHandler
from sqs_listener.app.ports.message_handler import MessageHandler
from sqs_listener.app.ports.queue_client import (
    MessageNotFoundError,
    QueueClient,
    QueueClientError,
    QueueNotFoundError,
)

__all__ = [
    "CallbackHandler",
    "ClientState",
    "ConfigurationError",
    "Listener",
    "ListenerClient",
    "ListenerClientBuilder",
    "ListenerFailure",
    "ListenerStateError",
    "ListenerStoppedError",
    "Message",
    "MessageHandler",
    "MessageNotFoundError",
    "NoReceiptHandleError",
    "PollConfig",
    "QueueClient",
    "QueueClientError",
    "QueueNotFoundError",
    "QueueResolutionError",
    "SqsListenerError",
    "StaticCredentials",
]
