"""Listener error taxonomy."""
from __future__ import annotations


class SqsListenerError(Exception):
    """Base for every error raised by the listener."""


class ConfigurationError(SqsListenerError):
    """Invalid configuration detected before any network activity."""

    def __init__(self, message: str, *, key: str | None = None) -> None:
        super().__init__(message)
        self.key = key


class QueueResolutionError(SqsListenerError):
    """A listener's queue could not be resolved; fatal for that listener only."""

    def __init__(self, queue_name: str, reason: str) -> None:
        super().__init__(f"unable to resolve queue {queue_name!r}: {reason}")
        self.queue_name = queue_name
        self.reason = reason


class NoReceiptHandleError(SqsListenerError):
    """Message did not contain a receipt handle to use for acknowledging."""


class ListenerStoppedError(SqsListenerError):
    """Operation needs a running listener."""


class ListenerStateError(SqsListenerError):
    """Lifecycle call made in a state that does not allow it."""
