"""Unit tests for PollLoop: dispatch, acknowledgment and failure policy."""
from __future__ import annotations

import asyncio
import threading
from dataclasses import replace

import pytest

from sqs_listener.app.application.poll_loop import DeletedHandles, PollLoop
from sqs_listener.app.domain.errors import NoReceiptHandleError, QueueResolutionError
from sqs_listener.app.domain.listener import Listener
from sqs_listener.app.domain.models import Message
from sqs_listener.app.ports.queue_client import QueueClientError
from tests.fakes import FakeQueueClient, RecordingHandler, sqs_message, wait_until

ORDERS_URL = "https://sqs.us-east-1.amazonaws.com/123456789012/orders"


async def _stop(task: asyncio.Task, stop_event: asyncio.Event) -> None:
    stop_event.set()
    await asyncio.wait_for(task, timeout=1.0)


@pytest.mark.asyncio
async def test_successful_batch_deletes_each_receipt_handle_once(fake_client, poll_config):
    handler = RecordingHandler()
    fake_client.add_batch(ORDERS_URL, [sqs_message("m1"), sqs_message("m2"), sqs_message("m3")])
    loop = PollLoop(Listener("orders", handler), fake_client, poll_config)
    stop_event = asyncio.Event()

    task = asyncio.create_task(loop.run(stop_event))
    await wait_until(lambda: len(fake_client.delete_calls) == 3)
    await _stop(task, stop_event)

    assert handler.seen_ids == ["m1", "m2", "m3"]
    assert fake_client.deleted_handles(ORDERS_URL) == ["rh-m1", "rh-m2", "rh-m3"]
    assert len(set(fake_client.deleted_handles())) == len(fake_client.delete_calls)


@pytest.mark.asyncio
async def test_failing_handler_leaves_only_that_message_undeleted(fake_client, poll_config):
    handler = RecordingHandler(fail_ids=("m2",))
    fake_client.add_batch(ORDERS_URL, [sqs_message("m1"), sqs_message("m2"), sqs_message("m3")])
    loop = PollLoop(Listener("orders", handler), fake_client, poll_config)
    stop_event = asyncio.Event()

    task = asyncio.create_task(loop.run(stop_event))
    await wait_until(lambda: len(handler.seen) == 3 and fake_client.receive_count(ORDERS_URL) >= 2)
    await _stop(task, stop_event)

    assert fake_client.deleted_handles() == ["rh-m1", "rh-m3"]


@pytest.mark.asyncio
async def test_handler_returning_false_is_a_failure(fake_client, poll_config):
    handler = RecordingHandler(reject_ids=("m1",))
    fake_client.add_batch(ORDERS_URL, [sqs_message("m1"), sqs_message("m2")])
    loop = PollLoop(Listener("orders", handler), fake_client, poll_config)
    stop_event = asyncio.Event()

    task = asyncio.create_task(loop.run(stop_event))
    await wait_until(lambda: len(fake_client.delete_calls) == 1)
    await _stop(task, stop_event)

    assert fake_client.deleted_handles() == ["rh-m2"]


@pytest.mark.asyncio
async def test_empty_receive_is_not_an_error_and_polls_again(fake_client, poll_config):
    handler = RecordingHandler()
    loop = PollLoop(Listener("orders", handler), fake_client, poll_config)
    stop_event = asyncio.Event()

    task = asyncio.create_task(loop.run(stop_event))
    await wait_until(lambda: fake_client.receive_count(ORDERS_URL) >= 3)
    assert not task.done()
    await _stop(task, stop_event)

    assert handler.seen == []
    assert fake_client.delete_calls == []


@pytest.mark.asyncio
async def test_receive_uses_configured_batch_and_wait(fake_client, poll_config):
    config = replace(poll_config, max_messages=4, visibility_timeout=45)
    loop = PollLoop(Listener("orders", RecordingHandler()), fake_client, config)
    stop_event = asyncio.Event()

    task = asyncio.create_task(loop.run(stop_event))
    await wait_until(lambda: fake_client.receive_count(ORDERS_URL) >= 1)
    await _stop(task, stop_event)

    assert fake_client.receive_calls[0] == {
        "queue_url": ORDERS_URL,
        "max_messages": 4,
        "wait_time_seconds": 0,
        "visibility_timeout": 45,
    }


@pytest.mark.asyncio
async def test_queue_url_is_resolved_once_per_run(fake_client, poll_config):
    loop = PollLoop(Listener("orders", RecordingHandler()), fake_client, poll_config)
    stop_event = asyncio.Event()

    task = asyncio.create_task(loop.run(stop_event))
    await wait_until(lambda: fake_client.receive_count(ORDERS_URL) >= 3)
    await _stop(task, stop_event)

    assert fake_client.resolve_calls == ["orders"]
    assert loop.queue_url == ORDERS_URL


@pytest.mark.asyncio
async def test_transient_receive_error_does_not_stop_the_loop(fake_client, poll_config):
    handler = RecordingHandler()
    fake_client.add_batch(ORDERS_URL, QueueClientError("connection reset"))
    fake_client.add_batch(ORDERS_URL, QueueClientError("throttled"))
    fake_client.add_batch(ORDERS_URL, [sqs_message("m1")])
    loop = PollLoop(Listener("orders", handler), fake_client, poll_config)
    stop_event = asyncio.Event()

    task = asyncio.create_task(loop.run(stop_event))
    await wait_until(lambda: len(fake_client.delete_calls) == 1)
    assert not task.done()
    await _stop(task, stop_event)

    assert handler.seen_ids == ["m1"]


@pytest.mark.asyncio
async def test_missing_queue_is_fatal_for_the_loop(fake_client, poll_config):
    loop = PollLoop(Listener("missing", RecordingHandler()), fake_client, poll_config)

    with pytest.raises(QueueResolutionError) as excinfo:
        await loop.run(asyncio.Event())

    assert excinfo.value.queue_name == "missing"
    assert fake_client.receive_calls == []
    assert fake_client.resolve_calls == ["missing"]


@pytest.mark.asyncio
async def test_transient_resolve_error_is_retried(fake_client, poll_config):
    fake_client.resolve_errors["orders"] = [QueueClientError("timeout")]
    loop = PollLoop(Listener("orders", RecordingHandler()), fake_client, poll_config)
    stop_event = asyncio.Event()

    task = asyncio.create_task(loop.run(stop_event))
    await wait_until(lambda: fake_client.receive_count(ORDERS_URL) >= 1)
    await _stop(task, stop_event)

    assert fake_client.resolve_calls == ["orders", "orders"]


@pytest.mark.asyncio
async def test_resolve_gives_up_after_configured_attempts(fake_client, poll_config):
    fake_client.resolve_errors["orders"] = [QueueClientError("down"), QueueClientError("still down")]
    loop = PollLoop(Listener("orders", RecordingHandler()), fake_client, poll_config)

    with pytest.raises(QueueResolutionError, match="gave up after 2 attempts"):
        await loop.run(asyncio.Event())

    assert fake_client.receive_calls == []


@pytest.mark.asyncio
async def test_queue_url_listener_skips_resolution(fake_client, poll_config):
    handler = RecordingHandler()
    fake_client.add_batch(ORDERS_URL, [sqs_message("m1")])
    loop = PollLoop(Listener(ORDERS_URL, handler), fake_client, poll_config)
    stop_event = asyncio.Event()

    task = asyncio.create_task(loop.run(stop_event))
    await wait_until(lambda: len(fake_client.delete_calls) == 1)
    await _stop(task, stop_event)

    assert fake_client.resolve_calls == []
    assert fake_client.deleted_handles(ORDERS_URL) == ["rh-m1"]


@pytest.mark.asyncio
async def test_delete_failure_is_not_fatal(fake_client, poll_config):
    handler = RecordingHandler()
    fake_client.delete_errors.append(QueueClientError("delete timed out"))
    fake_client.add_batch(ORDERS_URL, [sqs_message("m1"), sqs_message("m2")])
    loop = PollLoop(Listener("orders", handler), fake_client, poll_config)
    stop_event = asyncio.Event()

    task = asyncio.create_task(loop.run(stop_event))
    await wait_until(lambda: len(fake_client.delete_calls) == 1)
    await asyncio.sleep(0.01)
    assert not task.done()
    await _stop(task, stop_event)

    assert handler.seen_ids == ["m1", "m2"]
    assert fake_client.deleted_handles() == ["rh-m2"]


@pytest.mark.asyncio
async def test_manual_ack_when_auto_ack_disabled(fake_client, poll_config):
    handler = RecordingHandler()
    fake_client.add_batch(ORDERS_URL, [sqs_message("m1")])
    loop = PollLoop(Listener("orders", handler), fake_client, replace(poll_config, auto_ack=False))
    stop_event = asyncio.Event()

    task = asyncio.create_task(loop.run(stop_event))
    await wait_until(lambda: len(handler.seen) == 1 and fake_client.receive_count(ORDERS_URL) >= 2)
    assert fake_client.delete_calls == []

    assert await loop.ack(handler.seen[0]) is True
    assert await loop.ack(handler.seen[0]) is False
    await _stop(task, stop_event)

    assert fake_client.delete_calls == [(ORDERS_URL, "rh-m1")]


@pytest.mark.asyncio
async def test_ack_without_receipt_handle_raises(fake_client, poll_config):
    loop = PollLoop(Listener("orders", RecordingHandler()), fake_client, poll_config)
    message = Message(receipt_handle="", body="x", message_id="m1", queue_url=ORDERS_URL)

    with pytest.raises(NoReceiptHandleError):
        await loop.ack(message)

    assert fake_client.delete_calls == []


@pytest.mark.asyncio
async def test_concurrent_dispatch_deletes_each_handle_once(fake_client, poll_config):
    in_flight = 0
    peak = 0

    async def slow_handler(message: Message) -> None:
        nonlocal in_flight, peak
        in_flight += 1
        peak = max(peak, in_flight)
        await asyncio.sleep(0.01)
        in_flight -= 1

    ids = [f"m{i}" for i in range(6)]
    fake_client.add_batch(ORDERS_URL, [sqs_message(i) for i in ids])
    loop = PollLoop(Listener("orders", slow_handler), fake_client, replace(poll_config, max_concurrency=3))
    stop_event = asyncio.Event()

    task = asyncio.create_task(loop.run(stop_event))
    await wait_until(lambda: len(fake_client.delete_calls) == 6)
    await _stop(task, stop_event)

    assert 1 < peak <= 3
    assert sorted(fake_client.deleted_handles()) == sorted(f"rh-{i}" for i in ids)


@pytest.mark.asyncio
async def test_sync_handler_runs_off_the_event_loop(fake_client, poll_config):
    threads: list[int] = []

    def handler(message: Message) -> None:
        threads.append(threading.get_ident())

    fake_client.add_batch(ORDERS_URL, [sqs_message("m1")])
    loop = PollLoop(Listener("orders", handler), fake_client, poll_config)
    stop_event = asyncio.Event()

    task = asyncio.create_task(loop.run(stop_event))
    await wait_until(lambda: len(fake_client.delete_calls) == 1)
    await _stop(task, stop_event)

    assert threads and threads[0] != threading.get_ident()


@pytest.mark.asyncio
async def test_stop_interrupts_idle_delay(fake_client, poll_config):
    loop = PollLoop(
        Listener("orders", RecordingHandler()),
        fake_client,
        replace(poll_config, idle_delay_seconds=30.0),
    )
    stop_event = asyncio.Event()

    task = asyncio.create_task(loop.run(stop_event))
    await wait_until(lambda: fake_client.receive_count(ORDERS_URL) == 1)
    await _stop(task, stop_event)

    assert fake_client.receive_count(ORDERS_URL) == 1


@pytest.mark.asyncio
async def test_stop_set_before_run_exits_without_receiving(fake_client, poll_config):
    loop = PollLoop(Listener("orders", RecordingHandler()), fake_client, poll_config)
    stop_event = asyncio.Event()
    stop_event.set()

    await asyncio.wait_for(loop.run(stop_event), timeout=1.0)

    assert fake_client.receive_calls == []


@pytest.mark.asyncio
async def test_loops_sharing_deleted_handles_ack_a_delivery_once(fake_client, poll_config):
    deleted = DeletedHandles()
    first = PollLoop(Listener(ORDERS_URL, RecordingHandler()), fake_client, poll_config, deleted=deleted)
    second = PollLoop(Listener(ORDERS_URL, RecordingHandler()), fake_client, poll_config, deleted=deleted)
    message = Message(receipt_handle="rh-m1", body="x", message_id="m1", queue_url=ORDERS_URL)

    assert await first.ack(message) is True
    assert await second.ack(message) is False

    assert fake_client.delete_calls == [(ORDERS_URL, "rh-m1")]
    assert (ORDERS_URL, "rh-m1") in deleted


@pytest.mark.asyncio
async def test_failed_delete_releases_the_claim(fake_client, poll_config):
    loop = PollLoop(Listener("orders", RecordingHandler()), fake_client, poll_config)
    message = Message(receipt_handle="rh-m1", body="x", message_id="m1", queue_url=ORDERS_URL)
    fake_client.delete_errors.append(QueueClientError("delete timed out"))

    with pytest.raises(QueueClientError):
        await loop.ack(message)
    assert await loop.ack(message) is True

    assert fake_client.delete_calls == [(ORDERS_URL, "rh-m1")]


def test_deleted_handles_window_is_bounded():
    deleted = DeletedHandles(capacity=2)

    for handle in ("rh-1", "rh-2", "rh-3"):
        assert deleted.claim(ORDERS_URL, handle) is True

    assert len(deleted) == 2
    assert (ORDERS_URL, "rh-1") not in deleted
    assert deleted.claim(ORDERS_URL, "rh-3") is False
    assert deleted.claim("https://sqs.us-east-1.amazonaws.com/123456789012/other", "rh-3") is True


@pytest.mark.asyncio
async def test_stop_interrupts_resolve_backoff(fake_client, poll_config):
    fake_client.resolve_errors["orders"] = [QueueClientError("down"), QueueClientError("down")]
    config = replace(
        poll_config,
        resolve_attempts=3,
        error_backoff_initial_seconds=30.0,
        error_backoff_max_seconds=30.0,
    )
    loop = PollLoop(Listener("orders", RecordingHandler()), fake_client, config)
    stop_event = asyncio.Event()

    task = asyncio.create_task(loop.run(stop_event))
    await wait_until(lambda: fake_client.resolve_calls == ["orders"])
    await _stop(task, stop_event)

    assert task.exception() is None
    assert fake_client.resolve_calls == ["orders"]
    assert fake_client.receive_calls == []
    assert loop.queue_url is None
