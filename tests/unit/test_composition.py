"""Unit tests for the composition root."""
from __future__ import annotations

import pytest

from sqs_listener.app.composition import create_listener_client
from sqs_listener.app.config.settings import Settings
from sqs_listener.app.domain.listener import Listener
from sqs_listener.app.infrastructure.inmemory.in_memory_queue_client import InMemoryQueueClient
from sqs_listener.app.main import log_message
from tests.fakes import wait_until


def _settings(**overrides) -> Settings:
    values = {"QUEUE_NAME": "jobs", "QUEUE_CLIENT_BACKEND": "inmemory", "WAIT_TIME_SECONDS": 0}
    values.update(overrides)
    return Settings(**values)


def test_handler_listens_on_configured_queue_first():
    client = create_listener_client(
        lambda message: None,
        _settings(),
        listeners=[Listener("audit", lambda message: None)],
    )

    assert [listener.queue_name for listener in client.listeners] == ["jobs", "audit"]
    assert isinstance(client.queue_client, InMemoryQueueClient)


@pytest.mark.asyncio
async def test_logging_handler_consumes_configured_queue():
    client = create_listener_client(log_message, _settings(IDLE_DELAY_SECONDS=0.001))
    queue = client.queue_client
    assert isinstance(queue, InMemoryQueueClient)
    queue.send_message("jobs", "hello")

    async with client:
        await wait_until(lambda: queue.pending_count("jobs") == 0 and queue.in_flight_count("jobs") == 0)

    assert client.failures == []
