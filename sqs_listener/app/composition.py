"""Listener composition root: build a ListenerClient from settings.

Composition may: import concrete classes, call factories, store interface types.
"""
from __future__ import annotations

from typing import Any, Iterable

from sqs_listener.app.application.builder import ListenerClientBuilder
from sqs_listener.app.application.listener_client import ListenerClient
from sqs_listener.app.config.settings import Settings
from sqs_listener.app.domain.listener import Listener


def create_listener_client(
    handler: Any = None,
    settings: Settings | None = None,
    *,
    listeners: Iterable[Listener] = (),
) -> ListenerClient:
    """Client for ``settings``.

    ``handler`` listens on the configured QUEUE_NAME; extra ``listeners`` are added
    after it in order.
    """
    builder = ListenerClientBuilder.from_settings(settings or Settings())
    if handler is not None:
        builder.listener(Listener("", handler))
    for listener in listeners:
        builder.listener(listener)
    return builder.build()
