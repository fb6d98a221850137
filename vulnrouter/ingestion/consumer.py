"""Finding ingestion: decode, count, route, acknowledge."""

from __future__ import annotations

from typing import Protocol

import pydantic
import structlog

from vulnrouter.clients.slack_client import NotificationResult
from vulnrouter.core.metrics import (
    vulnerability_reports_total,
    vulnrouter_messages_rejected_total,
    vulnrouter_routing_decisions_total,
)
from vulnrouter.core.tracing import clear_tracing_context, set_request_id
from vulnrouter.routing.engine import DispatchRequest, decide
from vulnrouter.routing.severity import is_known_severity, normalize_severity
from vulnrouter.routing.store import KNOWN_CATEGORIES, RoutingConfigStore
from vulnrouter.schemas.v1.findings import Finding

logger = structlog.get_logger(__name__)

UNKNOWN_LABEL = "UNKNOWN"


class InboundMessage(Protocol):
    """The subset of a Pub/Sub message the consumer relies on."""

    data: bytes

    def ack(self) -> None: ...

    def nack(self) -> None: ...


class Notifier(Protocol):
    async def send(self, request: DispatchRequest) -> NotificationResult: ...


def metric_labels(finding: Finding) -> dict[str, str]:
    """Bounded label values for the per-finding counter."""
    severity = normalize_severity(finding.severity)
    return {
        "severity": severity if is_known_severity(severity) else UNKNOWN_LABEL,
        "type": finding.category if finding.category in KNOWN_CATEGORIES else UNKNOWN_LABEL,
    }


class FindingConsumer:
    """Processes one inbound finding message at a time; safe to run concurrently."""

    def __init__(self, store: RoutingConfigStore, notifier: Notifier) -> None:
        self._store = store
        self._notifier = notifier

    async def handle(self, message: InboundMessage) -> DispatchRequest | None:
        """Route a single message and settle it.

        Undecodable payloads are nacked. Everything that decodes is acked,
        whether or not a notification went out.
        """
        set_request_id(getattr(message, "message_id", None) or None)
        structlog.contextvars.bind_contextvars(message_id=getattr(message, "message_id", ""))
        try:
            try:
                finding = Finding.model_validate_json(message.data)
            except pydantic.ValidationError as exc:
                vulnrouter_messages_rejected_total.labels(reason="decode_error").inc()
                logger.warning("Invalid message format", error=str(exc))
                message.nack()
                return None

            request: DispatchRequest | None = None
            try:
                request = await self._route(finding)
            except Exception:
                logger.exception(
                    "Unexpected error while routing finding",
                    severity=finding.severity,
                    category=finding.category,
                )
            message.ack()
            return request
        finally:
            structlog.contextvars.unbind_contextvars("message_id")
            clear_tracing_context()

    async def _route(self, finding: Finding) -> DispatchRequest | None:
        labels = metric_labels(finding)
        vulnerability_reports_total.labels(**labels).inc()

        # Snapshot releases the store lock before the webhook call below.
        request = decide(finding, self._store.snapshot())

        vulnrouter_routing_decisions_total.labels(
            category=labels["type"],
            outcome="dispatched" if request else "suppressed",
        ).inc()

        if request is None:
            logger.debug(
                "Finding below routing threshold",
                severity=finding.severity,
                category=finding.category,
            )
            return None

        result = await self._notifier.send(request)
        if not result.success:
            logger.warning(
                "Notification not delivered",
                channel=request.channel,
                status=result.status,
                error=result.error_message,
            )
        return request
