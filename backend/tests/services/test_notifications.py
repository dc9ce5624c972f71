"""Pruebas del envío de correos vía SendGrid (transporte simulado)."""

from __future__ import annotations

import asyncio
import json

import httpx
import pytest

from app.models.contact import ContactSummary
from app.services.notifications import NotificationDispatcher


def _dispatcher(handler, **kwargs) -> NotificationDispatcher:
    options = {
        "api_key": "SG.test",
        "from_email": "wellness@example.com",
        "from_name": "Wellness Centre",
        "api_url": "https://sendgrid.test/v3/mail/send",
        "transport": httpx.MockTransport(handler),
    }
    options.update(kwargs)
    return NotificationDispatcher(**options)


async def test_each_recipient_gets_lowercased_message_with_html_copy() -> None:
    requests: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(202)

    dispatcher = _dispatcher(handler)
    report = await dispatcher.dispatch_all(
        [ContactSummary(email="Ana@X.com"), ContactSummary(email="b@x.com", name="Beto")],
        "Bienvenida",
        "<b>Hola</b>",
        campaign_id="campaign1",
    )

    assert (report.sent, report.failed) == (2, 0)
    bodies = [json.loads(r.content) for r in requests]
    assert sorted(b["personalizations"][0]["to"][0]["email"] for b in bodies) == [
        "ana@x.com",
        "b@x.com",
    ]
    body = bodies[0]
    assert body["subject"] == "Bienvenida"
    assert body["from"] == {"email": "wellness@example.com", "name": "Wellness Centre"}
    assert body["content"] == [
        {"type": "text/plain", "value": "<b>Hola</b>"},
        {"type": "text/html", "value": "<b>Hola</b>"},
    ]
    assert requests[0].headers["authorization"] == "Bearer SG.test"


async def test_failure_for_one_recipient_does_not_block_others(
    caplog: pytest.LogCaptureFixture,
) -> None:
    delivered: list[str] = []

    def handler(request: httpx.Request) -> httpx.Response:
        to = json.loads(request.content)["personalizations"][0]["to"][0]["email"]
        if to == "bad@x.com":
            return httpx.Response(400, json={"errors": [{"message": "invalid"}]})
        if to == "down@x.com":
            raise httpx.ConnectError("connection refused", request=request)
        delivered.append(to)
        return httpx.Response(202)

    dispatcher = _dispatcher(handler)
    report = await dispatcher.dispatch_all(
        [
            ContactSummary(email="bad@x.com"),
            ContactSummary(email="ok@x.com"),
            ContactSummary(email="down@x.com"),
        ],
        "s",
        "t",
    )

    assert delivered == ["ok@x.com"]
    assert (report.sent, report.failed) == (1, 2)
    failed = [r for r in caplog.records if r.getMessage() == "notifications.failed"]
    assert sorted(r.to for r in failed) == ["bad@x.com", "down@x.com"]


async def test_missing_api_key_logs_failure_without_calling_provider() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover - no debe llamarse
        raise AssertionError("no request expected")

    dispatcher = _dispatcher(handler, api_key=None)
    report = await dispatcher.dispatch_all([ContactSummary(email="a@x.com")], "s", "t")

    assert (report.sent, report.failed) == (0, 1)


async def test_concurrency_is_bounded() -> None:
    state = {"active": 0, "peak": 0}

    async def handler(request: httpx.Request) -> httpx.Response:
        state["active"] += 1
        state["peak"] = max(state["peak"], state["active"])
        await asyncio.sleep(0.01)
        state["active"] -= 1
        return httpx.Response(202)

    dispatcher = _dispatcher(handler, concurrency=2)
    recipients = [ContactSummary(email=f"user{i}@x.com") for i in range(6)]
    report = await dispatcher.dispatch_all(recipients, "s", "t")

    assert report.sent == 6
    assert state["peak"] <= 2


async def test_empty_recipient_list_is_a_noop() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
        raise AssertionError("no request expected")

    report = await _dispatcher(handler).dispatch_all([], "s", "t")
    assert report.attempted == 0


async def test_unexpected_error_is_counted_as_failure(caplog: pytest.LogCaptureFixture) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        to = json.loads(request.content)["personalizations"][0]["to"][0]["email"]
        if to == "broken@x.com":
            raise RuntimeError("transport misconfigured")
        return httpx.Response(202)

    report = await _dispatcher(handler).dispatch_all(
        [ContactSummary(email="broken@x.com"), ContactSummary(email="ok@x.com")], "s", "t"
    )

    assert (report.sent, report.failed) == (1, 1)
    failed = [r for r in caplog.records if r.getMessage() == "notifications.failed"]
    assert [r.to for r in failed] == ["broken@x.com"]


async def test_invalid_api_url_is_counted_as_failure() -> None:
    def handler(request: httpx.Request) -> httpx.Response:  # pragma: no cover
        raise AssertionError("no request expected")

    dispatcher = _dispatcher(handler, api_url="https://sendgrid.test/v3/mail/send\n")
    report = await dispatcher.dispatch_all([ContactSummary(email="a@x.com")], "s", "t")

    assert (report.sent, report.failed) == (0, 1)
