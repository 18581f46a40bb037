from __future__ import annotations

from types import SimpleNamespace
from typing import Any

import pytest
from pywebpush import WebPushException

import listsync.server.push as push_module
from listsync.server.push import PushDeliveryError, PushEndpointGoneError, PushSender, WebPushSender
from tests.server.fakes import subscription


@pytest.fixture
def sender() -> WebPushSender:
    return WebPushSender("private-key", "mailto:ops@example.com", ttl=60)


def _failing_webpush(exc: Exception):
    def webpush(**kwargs: Any) -> None:
        raise exc

    return webpush


def test_sender_satisfies_protocol(sender: WebPushSender) -> None:
    assert isinstance(sender, PushSender)


async def test_send_passes_vapid_details(sender: WebPushSender, monkeypatch: pytest.MonkeyPatch) -> None:
    calls: list[dict[str, Any]] = []
    monkeypatch.setattr(push_module, "webpush", lambda **kwargs: calls.append(kwargs))

    await sender.send(subscription("dev-a"), '{"title": "Lists updated"}')

    assert len(calls) == 1
    assert calls[0]["subscription_info"] == subscription("dev-a")
    assert calls[0]["data"] == '{"title": "Lists updated"}'
    assert calls[0]["vapid_private_key"] == "private-key"
    assert calls[0]["vapid_claims"] == {"sub": "mailto:ops@example.com"}
    assert calls[0]["ttl"] == 60


@pytest.mark.parametrize("status", [404, 410])
async def test_gone_status_marks_endpoint_gone(
    sender: WebPushSender, monkeypatch: pytest.MonkeyPatch, status: int
) -> None:
    exc = WebPushException("Push failed", response=SimpleNamespace(status_code=status))
    monkeypatch.setattr(push_module, "webpush", _failing_webpush(exc))

    with pytest.raises(PushEndpointGoneError, match=str(status)):
        await sender.send(subscription("dev-a"), "{}")


async def test_server_error_is_transient(sender: WebPushSender, monkeypatch: pytest.MonkeyPatch) -> None:
    exc = WebPushException("Push failed", response=SimpleNamespace(status_code=503))
    monkeypatch.setattr(push_module, "webpush", _failing_webpush(exc))

    with pytest.raises(PushDeliveryError, match="503") as exc_info:
        await sender.send(subscription("dev-a"), "{}")
    assert not isinstance(exc_info.value, PushEndpointGoneError)


async def test_missing_response_is_transient(sender: WebPushSender, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(push_module, "webpush", _failing_webpush(WebPushException("no response", response=None)))

    with pytest.raises(PushDeliveryError) as exc_info:
        await sender.send(subscription("dev-a"), "{}")
    assert not isinstance(exc_info.value, PushEndpointGoneError)


async def test_network_error_is_transient(sender: WebPushSender, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(push_module, "webpush", _failing_webpush(ConnectionError("connection refused")))

    with pytest.raises(PushDeliveryError, match="connection refused"):
        await sender.send(subscription("dev-a"), "{}")
