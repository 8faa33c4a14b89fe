from __future__ import annotations

import json
from decimal import Decimal

import httpx
import pytest

from fundee_backend.app.services.notifications_service import notify_outcome


@pytest.fixture
def webhook(monkeypatch, settings):
    monkeypatch.setattr(settings, "NOTIFY_WEBHOOK_URL", "https://hooks.example.test/fundee")
    monkeypatch.setattr(settings, "NOTIFY_WEBHOOK_TOKEN", "s3cret")
    return settings


async def test_without_webhook_only_logs(caplog):
    with caplog.at_level("INFO"):
        assert await notify_outcome(1, 2, Decimal("150")) is True
    assert any(r.getMessage() == "outcome notice emitted" for r in caplog.records)


async def test_webhook_receives_payload(webhook):
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(204)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        assert await notify_outcome(7, 3, Decimal("60"), client=client) is True

    (request,) = seen
    assert request.headers["Authorization"] == "Bearer s3cret"
    assert json.loads(request.content) == {"event": "draw_outcome", "user_id": 7, "draw_id": 3, "amount": "60.00"}


async def test_webhook_failure_is_reported_not_raised(webhook):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(502)

    async with httpx.AsyncClient(transport=httpx.MockTransport(handler)) as client:
        assert await notify_outcome(7, 3, Decimal("60"), client=client) is False
