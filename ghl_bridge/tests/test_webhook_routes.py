"""Webhook endpoint tests."""

from __future__ import annotations

import json

import pytest
from httpx import AsyncClient

from ghl_bridge.config import settings
from ghl_bridge.webhooks.signature import compute_signature


def _payload(**fields) -> bytes:
    return json.dumps({"type": "ContactCreate", "locationId": "loc_main", "id": "c1", **fields}).encode()


@pytest.mark.asyncio
async def test_webhook_processed_without_session(client: AsyncClient):
    resp = await client.post("/webhooks/ghl", content=_payload(eventId="evt_1"))
    assert resp.status_code == 200
    body = resp.json()
    assert body["success"] is True
    assert body["eventType"] == "ContactCreate"
    assert body["entityId"] == "c1"
    assert body["action"] == "create"


@pytest.mark.asyncio
async def test_signature_required_when_secret_configured(
    client: AsyncClient,
    monkeypatch: pytest.MonkeyPatch,
):
    monkeypatch.setattr(settings, "webhook_secret", "whsec")

    resp = await client.post("/webhooks/ghl", content=_payload(), headers={"X-GHL-Signature": "bogus"})
    assert resp.status_code == 401


@pytest.mark.asyncio
async def test_valid_signature_accepted(
    client: AsyncClient,
    monkeypatch: pytest.MonkeyPatch,
):
    monkeypatch.setattr(settings, "webhook_secret", "whsec")
    body = _payload()

    resp = await client.post(
        "/webhooks/ghl",
        content=body,
        headers={"X-GHL-Signature": f"sha256={compute_signature('whsec', body)}"},
    )
    assert resp.status_code == 200
    assert resp.json()["success"] is True


@pytest.mark.asyncio
async def test_fails_closed_when_secret_missing(
    client: AsyncClient,
    monkeypatch: pytest.MonkeyPatch,
):
    monkeypatch.setattr(settings, "security_fail_closed", True)

    resp = await client.post("/webhooks/ghl", content=_payload())
    assert resp.status_code == 503


@pytest.mark.asyncio
async def test_production_without_secret_unavailable(client: AsyncClient, monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr(settings, "environment", "production")

    resp = await client.post("/webhooks/ghl", content=_payload())
    assert resp.status_code == 503


@pytest.mark.asyncio
async def test_invalid_json_rejected(client: AsyncClient):
    resp = await client.post("/webhooks/ghl", content=b"{oops")
    assert resp.status_code == 400
    assert "Invalid JSON" in resp.json()["error"]


@pytest.mark.asyncio
async def test_handler_failure_is_acknowledged(client: AsyncClient):
    resp = await client.post(
        "/webhooks/ghl",
        content=json.dumps({"type": "InboundMessage", "locationId": "loc_main", "id": "m1"}).encode(),
    )
    assert resp.status_code == 200
    assert resp.json()["success"] is False
    assert resp.json()["error"]


@pytest.mark.asyncio
async def test_webhook_health(client: AsyncClient):
    resp = await client.get("/webhooks/ghl")
    assert resp.status_code == 200
    assert resp.json()["status"] == "ok"
    assert resp.json()["endpoint"] == "/webhooks/ghl"
