from __future__ import annotations

import pytest

from sqs_listener.app.domain.models import PollConfig
from tests.fakes import FakeQueueClient


@pytest.fixture()
def poll_config() -> PollConfig:
    return PollConfig(
        wait_time_seconds=0,
        error_backoff_initial_seconds=0.001,
        error_backoff_max_seconds=0.005,
        resolve_attempts=2,
    )


@pytest.fixture()
def fake_client() -> FakeQueueClient:
    return FakeQueueClient(
        {
            "orders": "https://sqs.us-east-1.amazonaws.com/123456789012/orders",
            "payments": "https://sqs.us-east-1.amazonaws.com/123456789012/payments",
            "q1": "https://sqs.us-east-1.amazonaws.com/123456789012/q1",
        }
    )
