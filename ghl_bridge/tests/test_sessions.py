"""Dashboard session token and middleware tests."""

from __future__ import annotations

import time
import uuid

import pytest
from httpx import AsyncClient

from ghl_bridge.config import BridgeSettings, settings
from ghl_bridge.security.sessions import (
    DEFAULT_EXEMPT_PREFIXES,
    decode_session_token,
    is_exempt_path,
    issue_session_token,
)


class TestSessionTokens:
    def test_round_trip(self):
        user_id, tenant_id = uuid.uuid4(), uuid.uuid4()
        claims = decode_session_token(issue_session_token(user_id, tenant_id, "manager"))

        assert claims.user_id == user_id
        assert claims.tenant_id == tenant_id
        assert claims.role == "manager"

    def test_tampered_signature_rejected(self):
        token = issue_session_token(uuid.uuid4(), uuid.uuid4(), "admin")
        body, _, sig = token.partition(".")
        forged = f"{body}.{'0' * len(sig)}"
        assert decode_session_token(forged) is None
        assert decode_session_token("not-a-token") is None
        assert decode_session_token("") is None

    def test_other_secret_rejected(self):
        token = issue_session_token(uuid.uuid4(), uuid.uuid4(), "admin")
        other = BridgeSettings(auth_secret="another-secret")
        assert decode_session_token(token, settings_obj=other) is None

    def test_expired_token_rejected(self, monkeypatch: pytest.MonkeyPatch):
        token = issue_session_token(uuid.uuid4(), uuid.uuid4(), "agent")
        later = time.time() + 2 * 86400
        monkeypatch.setattr(time, "time", lambda: later)
        assert decode_session_token(token) is None

    def test_issue_requires_secret(self, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(settings, "auth_secret", "  ")
        with pytest.raises(RuntimeError):
            issue_session_token(uuid.uuid4(), uuid.uuid4(), "admin")


@pytest.mark.parametrize(
    "path, exempt",
    [
        ("/health", True),
        ("/health/deep", True),
        ("/healthz", False),
        ("/webhooks/ghl", True),
        ("/cron/sync", True),
        ("/sync/status", False),
        ("/auth/ghl", False),
    ],
)
def test_exempt_paths(path, exempt):
    assert is_exempt_path(path, DEFAULT_EXEMPT_PREFIXES) is exempt


class TestMiddleware:
    @pytest.mark.asyncio
    async def test_protected_route_requires_session(self, client: AsyncClient):
        resp = await client.get("/sync/status", params={"locationId": "loc_main"})
        assert resp.status_code == 401
        assert resp.json()["detail"] == "Authentication required"

    @pytest.mark.asyncio
    async def test_missing_secret_fails_closed(self, client: AsyncClient, monkeypatch: pytest.MonkeyPatch):
        monkeypatch.setattr(settings, "auth_secret", "")
        resp = await client.get("/sync/status", params={"locationId": "loc_main"})
        assert resp.status_code == 503

    @pytest.mark.asyncio
    async def test_cookie_session_accepted(self, client: AsyncClient, admin_user):
        token = issue_session_token(admin_user.id, admin_user.tenant_id, admin_user.role)
        client.cookies.set(settings.auth_cookie_name, token)

        resp = await client.get("/sync/status", params={"locationId": "loc_main"})

        assert resp.status_code == 200
        assert resp.json() == {"locationId": "loc_main", "entities": []}

    @pytest.mark.asyncio
    async def test_inactive_user_forbidden(self, client: AsyncClient, db, admin_user, auth_headers):
        headers = auth_headers(admin_user)
        admin_user.is_active = False
        await db.commit()

        resp = await client.get("/sync/status", params={"locationId": "loc_main"}, headers=headers)
        assert resp.status_code == 403
