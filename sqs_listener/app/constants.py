"""Listener-level constants shared across modules."""
from __future__ import annotations

from enum import Enum

# Service maxima for ReceiveMessage.
MAX_BATCH_SIZE = 10
MAX_WAIT_TIME_SECONDS = 20
MAX_VISIBILITY_TIMEOUT_SECONDS = 43_200

# Receipt handles remembered per loop to keep deletes idempotent.
DELETED_HANDLE_WINDOW = 10_000

QUEUE_NOT_FOUND_CODES = frozenset(
    {
        "AWS.SimpleQueueService.NonExistentQueue",
        "QueueDoesNotExist",
    }
)
RECEIPT_HANDLE_INVALID_CODES = frozenset({"ReceiptHandleIsInvalid"})


class ClientState(str, Enum):
    CREATED = "CREATED"
    RUNNING = "RUNNING"
    STOPPING = "STOPPING"
    STOPPED = "STOPPED"
