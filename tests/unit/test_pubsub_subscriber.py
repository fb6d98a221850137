"""Unit tests for the Pub/Sub subscriber adapter."""

from __future__ import annotations

import asyncio
import threading
from unittest.mock import MagicMock

import pytest
from google.api_core import exceptions as google_exceptions
from tenacity import wait_none

from vulnrouter.core.config import PubSubConfig
from vulnrouter.core.errors import DependencyError
from vulnrouter.ingestion.pubsub_subscriber import PubSubSubscriber


class _RecordingConsumer:
    def __init__(self):
        self.handled: list = []
        self.done = asyncio.Event()

    async def handle(self, message):
        self.handled.append(message)
        self.done.set()


class _BlockingConsumer:
    """Holds every message until released, like a slow webhook call."""

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.finished: list = []

    async def handle(self, message):
        self.started.set()
        await self.release.wait()
        self.finished.append(message)


@pytest.fixture
def pubsub_config():
    return PubSubConfig(
        enabled=True,
        project_id="demo-proj",
        subscription="vuln-findings-sub",
        max_messages=10,
        startup_retry_attempts=3,
    )


@pytest.fixture
def client():
    mock = MagicMock()
    streaming_pull = MagicMock()
    streaming_pull.done.return_value = False
    mock.subscribe.return_value = streaming_pull
    return mock


@pytest.fixture(autouse=True)
def no_backoff(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(
        "vulnrouter.ingestion.pubsub_subscriber.wait_exponential", lambda **_: wait_none()
    )


def test_subscription_path(pubsub_config, client):
    subscriber = PubSubSubscriber(pubsub_config, _RecordingConsumer(), client=client)
    assert subscriber.subscription_path == "projects/demo-proj/subscriptions/vuln-findings-sub"


def test_pubsub_config_is_configured_requires_project_and_subscription():
    assert PubSubConfig(enabled=True, project_id="p", subscription="s").is_configured
    assert not PubSubConfig(enabled=True, project_id="", subscription="s").is_configured
    assert not PubSubConfig(enabled=False, project_id="p", subscription="s").is_configured


@pytest.mark.asyncio
async def test_start_opens_streaming_pull_with_flow_control(pubsub_config, client):
    subscriber = PubSubSubscriber(pubsub_config, _RecordingConsumer(), client=client)

    await subscriber.start()

    client.get_subscription.assert_called_once_with(
        request={"subscription": "projects/demo-proj/subscriptions/vuln-findings-sub"}
    )
    args, kwargs = client.subscribe.call_args
    assert args[0] == "projects/demo-proj/subscriptions/vuln-findings-sub"
    assert kwargs["flow_control"].max_messages == 10
    assert subscriber.is_running is True


@pytest.mark.asyncio
async def test_start_retries_transient_errors(pubsub_config, client):
    client.get_subscription.side_effect = [
        google_exceptions.ServiceUnavailable("unavailable"),
        None,
    ]
    subscriber = PubSubSubscriber(pubsub_config, _RecordingConsumer(), client=client)

    await subscriber.start()

    assert client.get_subscription.call_count == 2
    client.subscribe.assert_called_once()


@pytest.mark.asyncio
async def test_start_fails_fast_on_missing_subscription(pubsub_config, client):
    client.get_subscription.side_effect = google_exceptions.NotFound("no such subscription")
    subscriber = PubSubSubscriber(pubsub_config, _RecordingConsumer(), client=client)

    with pytest.raises(DependencyError) as exc_info:
        await subscriber.start()

    assert isinstance(exc_info.value.__cause__, google_exceptions.NotFound)
    assert exc_info.value.details["subscription"] == subscriber.subscription_path
    assert client.get_subscription.call_count == 1
    client.subscribe.assert_not_called()


@pytest.mark.asyncio
async def test_messages_from_callback_thread_run_on_event_loop(pubsub_config, client):
    consumer = _RecordingConsumer()
    subscriber = PubSubSubscriber(pubsub_config, consumer, client=client)
    await subscriber.start()
    message = MagicMock()

    callback_thread = threading.Thread(target=subscriber._on_message, args=(message,))
    callback_thread.start()
    await asyncio.wait_for(consumer.done.wait(), timeout=2)
    callback_thread.join(timeout=2)

    assert consumer.handled == [message]
    message.nack.assert_not_called()


def test_message_without_running_loop_is_nacked(pubsub_config, client):
    subscriber = PubSubSubscriber(pubsub_config, _RecordingConsumer(), client=client)
    message = MagicMock()

    subscriber._on_message(message)

    message.nack.assert_called_once()


@pytest.mark.asyncio
async def test_stop_cancels_streaming_pull_and_closes_client(pubsub_config, client):
    subscriber = PubSubSubscriber(pubsub_config, _RecordingConsumer(), client=client)
    await subscriber.start()
    streaming_pull = client.subscribe.return_value

    await subscriber.stop()

    streaming_pull.cancel.assert_called_once()
    client.close.assert_called_once()
    assert subscriber.is_running is False


def _deliver_from_pubsub_thread(subscriber: PubSubSubscriber, message) -> None:
    callback_thread = threading.Thread(target=subscriber._on_message, args=(message,))
    callback_thread.start()
    callback_thread.join(timeout=2)


@pytest.mark.asyncio
async def test_stop_waits_for_in_flight_handlers(pubsub_config, client):
    consumer = _BlockingConsumer()
    subscriber = PubSubSubscriber(pubsub_config, consumer, client=client)
    await subscriber.start()
    message = MagicMock()
    _deliver_from_pubsub_thread(subscriber, message)
    await asyncio.wait_for(consumer.started.wait(), timeout=2)
    assert subscriber.in_flight == 1

    stopping = asyncio.create_task(subscriber.stop(timeout=5))
    await asyncio.sleep(0.05)
    assert not stopping.done()
    client.close.assert_not_called()

    consumer.release.set()
    await asyncio.wait_for(stopping, timeout=2)

    assert consumer.finished == [message]
    assert subscriber.in_flight == 0
    client.close.assert_called_once()


@pytest.mark.asyncio
async def test_stop_cancels_handlers_that_outlive_the_timeout(pubsub_config, client):
    consumer = _BlockingConsumer()
    subscriber = PubSubSubscriber(pubsub_config, consumer, client=client)
    await subscriber.start()
    _deliver_from_pubsub_thread(subscriber, MagicMock())
    await asyncio.wait_for(consumer.started.wait(), timeout=2)

    await asyncio.wait_for(subscriber.stop(timeout=0.05), timeout=2)
    consumer.release.set()
    await asyncio.sleep(0.05)

    assert consumer.finished == []
    client.close.assert_called_once()


@pytest.mark.asyncio
async def test_messages_after_stop_are_nacked(pubsub_config, client):
    consumer = _RecordingConsumer()
    subscriber = PubSubSubscriber(pubsub_config, consumer, client=client)
    await subscriber.start()
    await subscriber.stop()
    message = MagicMock()

    _deliver_from_pubsub_thread(subscriber, message)

    message.nack.assert_called_once()
    assert consumer.handled == []
