"""Unit tests for SlackNotifier."""

from __future__ import annotations

from urllib.parse import parse_qs, urlsplit

import httpx
import pytest
from pydantic import SecretStr

from vulnrouter.clients.slack_client import (
    SlackNotifier,
    build_alert_payload,
    build_scc_link,
)
from vulnrouter.core.config import SlackConfig
from vulnrouter.core.tracing import clear_tracing_context, set_request_id
from vulnrouter.routing.engine import DispatchRequest

WEBHOOK = "https://hooks.slack.test/services/T000/B000/XXX"


class _FakeResponse:
    def __init__(self, status_code: int, text: str = "ok"):
        self.status_code = status_code
        self.text = text


class _FakeClient:
    def __init__(self, response: _FakeResponse | None = None, error: Exception | None = None):
        self._response = response
        self._error = error
        self.calls: list[dict] = []

    async def post(self, url: str, json: dict, headers: dict | None = None):
        self.calls.append({"url": url, "json": json, "headers": headers or {}})
        if self._error is not None:
            raise self._error
        return self._response


def _notifier(monkeypatch: pytest.MonkeyPatch, fake: _FakeClient, webhook: str = WEBHOOK):
    notifier = SlackNotifier(SlackConfig(webhook_url=SecretStr(webhook)), project_id="demo-proj")

    async def fake_get_client() -> _FakeClient:
        return fake

    monkeypatch.setattr(notifier, "_get_client", fake_get_client)
    return notifier


@pytest.fixture
def dispatch_request(make_finding):
    return DispatchRequest(
        channel="#os-vulns",
        finding=make_finding(
            severity="HIGH",
            category="OS",
            package_name="openssl",
            resource_name="projects/demo/instances/web 1",
            description="Heap overflow",
        ),
    )


def test_build_scc_link_escapes_resource_name():
    link = build_scc_link("demo-proj", "//compute.googleapis.com/projects/demo/instances/a&b")
    query = parse_qs(urlsplit(link).query)
    assert link.startswith("https://console.cloud.google.com/security/command-center/findings?")
    assert query["project"] == ["demo-proj"]
    assert query["resourceName"] == ["//compute.googleapis.com/projects/demo/instances/a&b"]


def test_build_alert_payload_shape(dispatch_request):
    payload = build_alert_payload(dispatch_request, "demo-proj")

    assert payload["channel"] == "#os-vulns"
    section, actions = payload["blocks"]
    assert section["type"] == "section"
    assert section["text"]["type"] == "mrkdwn"
    assert section["text"]["text"] == (
        "*Vulnerability Alert*\n"
        "*Severity:* `HIGH`\n"
        "*Type:* `OS`\n"
        "*Package:* `openssl`\n"
        "*Resource:* `projects/demo/instances/web 1`\n"
        "*Description:* Heap overflow"
    )
    button = actions["elements"][0]
    assert actions["type"] == "actions"
    assert button["type"] == "button"
    assert button["text"] == {"type": "plain_text", "text": "View in GCP SCC"}
    assert "resourceName=projects%2Fdemo%2Finstances%2Fweb+1" in button["url"]


@pytest.mark.asyncio
async def test_send_success(monkeypatch, dispatch_request):
    fake = _FakeClient(_FakeResponse(200))
    notifier = _notifier(monkeypatch, fake)

    result = await notifier.send(dispatch_request)

    assert result.success is True
    assert result.status_code == 200
    assert fake.calls[0]["url"] == WEBHOOK
    assert fake.calls[0]["json"]["channel"] == "#os-vulns"


@pytest.mark.asyncio
async def test_send_propagates_request_id(monkeypatch, dispatch_request):
    fake = _FakeClient(_FakeResponse(200))
    notifier = _notifier(monkeypatch, fake)
    set_request_id("msg-42")
    try:
        await notifier.send(dispatch_request)
    finally:
        clear_tracing_context()

    assert fake.calls[0]["headers"]["X-Request-ID"] == "msg-42"


@pytest.mark.asyncio
async def test_send_reports_non_success_status(monkeypatch, dispatch_request):
    fake = _FakeClient(_FakeResponse(404, text="channel_not_found"))
    notifier = _notifier(monkeypatch, fake)

    result = await notifier.send(dispatch_request)

    assert result.success is False
    assert result.status == "http_error"
    assert result.status_code == 404
    assert "channel_not_found" in result.error_message
    assert len(fake.calls) == 1


@pytest.mark.asyncio
async def test_send_does_not_retry_or_raise_on_timeout(monkeypatch, dispatch_request):
    fake = _FakeClient(error=httpx.ReadTimeout("slow"))
    notifier = _notifier(monkeypatch, fake)

    result = await notifier.send(dispatch_request)

    assert result.status == "timeout"
    assert len(fake.calls) == 1


@pytest.mark.asyncio
async def test_send_handles_transport_error(monkeypatch, dispatch_request):
    fake = _FakeClient(error=httpx.ConnectError("refused"))
    notifier = _notifier(monkeypatch, fake)

    result = await notifier.send(dispatch_request)

    assert result.status == "transport_error"
    assert "refused" in result.error_message


@pytest.mark.asyncio
async def test_send_skips_without_webhook(monkeypatch, dispatch_request):
    fake = _FakeClient(_FakeResponse(200))
    notifier = _notifier(monkeypatch, fake, webhook="")

    result = await notifier.send(dispatch_request)

    assert notifier.is_configured is False
    assert result.status == "skipped"
    assert fake.calls == []


@pytest.mark.asyncio
async def test_close_is_idempotent():
    notifier = SlackNotifier(SlackConfig(webhook_url=SecretStr(WEBHOOK)))
    await notifier._get_client()
    await notifier.close()
    await notifier.close()
