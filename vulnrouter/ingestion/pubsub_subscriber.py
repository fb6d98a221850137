"""Google Cloud Pub/Sub streaming-pull subscriber.

Pub/Sub invokes the message callback on its own thread pool. Each message is
handed to the asyncio event loop that owns the consumer, so all routing and
webhook calls share the application's loop and HTTP client.
"""

from __future__ import annotations

import asyncio
import threading
from concurrent.futures import Future
from typing import Any

import structlog
from google.api_core import exceptions as google_exceptions
from google.cloud import pubsub_v1
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from vulnrouter.core.config import PubSubConfig
from vulnrouter.core.errors import DependencyError
from vulnrouter.ingestion.consumer import FindingConsumer

logger = structlog.get_logger(__name__)

TRANSIENT_ERRORS = (
    google_exceptions.ServiceUnavailable,
    google_exceptions.DeadlineExceeded,
    google_exceptions.InternalServerError,
)


class PubSubSubscriber:
    """Owns the streaming pull for the findings subscription."""

    def __init__(
        self,
        config: PubSubConfig,
        consumer: FindingConsumer,
        client: pubsub_v1.SubscriberClient | None = None,
    ) -> None:
        self._config = config
        self._consumer = consumer
        self._client = client
        self._loop: asyncio.AbstractEventLoop | None = None
        self._streaming_pull: Any = None
        self._stopping = False
        # Handler futures scheduled from Pub/Sub threads, drained by stop().
        self._in_flight: set[Future] = set()
        self._in_flight_lock = threading.Lock()

    @property
    def subscription_path(self) -> str:
        return pubsub_v1.SubscriberClient.subscription_path(
            self._config.project_id, self._config.subscription
        )

    @property
    def is_running(self) -> bool:
        return self._streaming_pull is not None and not self._streaming_pull.done()

    @property
    def in_flight(self) -> int:
        with self._in_flight_lock:
            return len(self._in_flight)

    def _get_client(self) -> pubsub_v1.SubscriberClient:
        if self._client is None:
            self._client = pubsub_v1.SubscriberClient()
        return self._client

    async def _verify_subscription(self) -> None:
        """Fail fast on a missing subscription, ride out transient API errors."""
        client = self._get_client()
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._config.startup_retry_attempts),
                wait=wait_exponential(multiplier=1, min=1, max=16),
                retry=retry_if_exception_type(TRANSIENT_ERRORS),
                reraise=True,
            ):
                with attempt:
                    await asyncio.to_thread(
                        client.get_subscription,
                        request={"subscription": self.subscription_path},
                    )
        except google_exceptions.GoogleAPICallError as exc:
            logger.error(
                "Pub/Sub subscription unavailable",
                subscription=self.subscription_path,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise DependencyError(
                f"Pub/Sub subscription unavailable: {self.subscription_path}",
                details={"subscription": self.subscription_path, "error_type": type(exc).__name__},
            ) from exc

    async def start(self) -> None:
        """Open the streaming pull. Returns once messages are flowing."""
        self._loop = asyncio.get_running_loop()
        self._stopping = False
        await self._verify_subscription()

        flow_control = pubsub_v1.types.FlowControl(max_messages=self._config.max_messages)
        self._streaming_pull = self._get_client().subscribe(
            self.subscription_path,
            callback=self._on_message,
            flow_control=flow_control,
        )
        self._streaming_pull.add_done_callback(self._on_stream_closed)
        logger.info(
            "Pub/Sub subscriber started",
            subscription=self.subscription_path,
            max_messages=self._config.max_messages,
        )

    def _on_message(self, message: pubsub_v1.subscriber.message.Message) -> None:
        with self._in_flight_lock:
            accepting = not self._stopping and self._loop is not None and not self._loop.is_closed()
            if accepting:
                handled = asyncio.run_coroutine_threadsafe(
                    self._consumer.handle(message), self._loop
                )
                self._in_flight.add(handled)
        if not accepting:
            message.nack()
            return
        handled.add_done_callback(self._on_handled)

    def _on_handled(self, future: Future) -> None:
        with self._in_flight_lock:
            self._in_flight.discard(future)
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.error("Finding handler failed", error=str(exc), error_type=type(exc).__name__)

    def _on_stream_closed(self, future: Any) -> None:
        if self._stopping or future.cancelled():
            return
        exc = future.exception()
        logger.error(
            "Pub/Sub streaming pull terminated",
            subscription=self.subscription_path,
            error=str(exc) if exc else None,
        )

    async def _drain_in_flight(self, timeout: float) -> None:
        with self._in_flight_lock:
            pending = [asyncio.wrap_future(future) for future in self._in_flight]
        if not pending:
            return
        _, not_done = await asyncio.wait(pending, timeout=timeout)
        for future in not_done:
            future.cancel()
        if not_done:
            await asyncio.gather(*not_done, return_exceptions=True)
            logger.warning("Cancelled in-flight finding handlers", count=len(not_done))

    async def stop(self, timeout: float = 10.0) -> None:
        """Cancel the streaming pull and wait for in-flight handlers.

        Handlers still running after ``timeout`` are cancelled, so nothing
        touches the notifier once the caller closes it.
        """
        with self._in_flight_lock:
            self._stopping = True
        if self._streaming_pull is not None:
            self._streaming_pull.cancel()
            try:
                await asyncio.to_thread(self._streaming_pull.result, timeout)
            except Exception as exc:
                logger.debug("Streaming pull shut down", error=str(exc))
            self._streaming_pull = None
        await self._drain_in_flight(timeout)
        if self._client is not None:
            self._client.close()
            self._client = None
        logger.info("Pub/Sub subscriber stopped")
