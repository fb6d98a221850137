"""Slack incoming-webhook client for vulnerability alerts.

Delivery is fire-and-forget: a failed post is logged and counted, never
retried and never raised to the ingestion path.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote_plus

import httpx
import structlog

from vulnrouter.core.config import SlackConfig
from vulnrouter.core.metrics import (
    vulnrouter_notification_latency_seconds,
    vulnrouter_notifications_total,
)
from vulnrouter.core.tracing import get_tracing_headers
from vulnrouter.routing.engine import DispatchRequest

logger = structlog.get_logger(__name__)

SCC_FINDINGS_URL = "https://console.cloud.google.com/security/command-center/findings"


def build_scc_link(project_id: str, resource_name: str) -> str:
    """Deep link to the finding's resource in GCP Security Command Center."""
    return (
        f"{SCC_FINDINGS_URL}?project={quote_plus(project_id)}"
        f"&resourceName={quote_plus(resource_name)}"
    )


def build_alert_payload(request: DispatchRequest, project_id: str) -> dict[str, Any]:
    """Render a dispatch request as a Slack Block Kit message."""
    finding = request.finding
    text = (
        "*Vulnerability Alert*\n"
        f"*Severity:* `{finding.severity}`\n"
        f"*Type:* `{finding.category}`\n"
        f"*Package:* `{finding.package_name}`\n"
        f"*Resource:* `{finding.resource_name}`\n"
        f"*Description:* {finding.description}"
    )
    return {
        "channel": request.channel,
        "blocks": [
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": text},
            },
            {
                "type": "actions",
                "elements": [
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": "View in GCP SCC"},
                        "url": build_scc_link(project_id, finding.resource_name),
                    }
                ],
            },
        ],
    }


@dataclass
class NotificationResult:
    """Outcome of a single webhook post."""

    status: str
    status_code: int | None = None
    error_message: str | None = None

    @property
    def success(self) -> bool:
        return self.status == "sent"


class SlackNotifier:
    """Posts vulnerability alerts to a Slack incoming webhook."""

    def __init__(self, config: SlackConfig, project_id: str = "") -> None:
        self._webhook_url = config.webhook_url.get_secret_value()
        self._timeout = config.timeout_seconds
        self._project_id = project_id
        self._client: httpx.AsyncClient | None = None

    @property
    def is_configured(self) -> bool:
        return bool(self._webhook_url)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def close(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _record(self, result: NotificationResult) -> NotificationResult:
        vulnrouter_notifications_total.labels(status=result.status).inc()
        return result

    async def send(self, request: DispatchRequest) -> NotificationResult:
        """Deliver one alert. Never raises for delivery failures."""
        log = logger.bind(
            channel=request.channel,
            severity=request.finding.severity,
            category=request.finding.category,
            resource_name=request.finding.resource_name,
        )

        if not self._webhook_url:
            log.warning("Slack webhook URL not configured, dropping notification")
            return self._record(
                NotificationResult(status="skipped", error_message="Webhook URL not configured")
            )

        payload = build_alert_payload(request, self._project_id)
        headers = {"Content-Type": "application/json", **get_tracing_headers()}

        started = time.perf_counter()
        try:
            client = await self._get_client()
            response = await client.post(self._webhook_url, json=payload, headers=headers)
        except httpx.TimeoutException as exc:
            log.error("Slack notification timed out", error=str(exc))
            return self._record(
                NotificationResult(status="timeout", error_message=f"Request timeout: {exc}")
            )
        except httpx.HTTPError as exc:
            log.error("Failed to send Slack notification", error=str(exc))
            return self._record(
                NotificationResult(status="transport_error", error_message=f"Request error: {exc}")
            )
        finally:
            vulnrouter_notification_latency_seconds.observe(time.perf_counter() - started)

        if response.status_code >= 300:
            log.warning(
                "Slack returned non-success status",
                status_code=response.status_code,
                body=response.text[:200],
            )
            return self._record(
                NotificationResult(
                    status="http_error",
                    status_code=response.status_code,
                    error_message=f"HTTP {response.status_code}: {response.text[:200]}",
                )
            )

        log.info("Slack notification sent", status_code=response.status_code)
        return self._record(NotificationResult(status="sent", status_code=response.status_code))
