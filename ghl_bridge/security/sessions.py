"""HMAC-signed dashboard session tokens and the middleware that checks them."""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import time
import uuid
from dataclasses import dataclass
from typing import Iterable

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from ..config import BridgeSettings, settings

DEFAULT_EXEMPT_PREFIXES = ("/health", "/ready", "/webhooks/", "/cron/", "/docs", "/openapi.json")


@dataclass(frozen=True)
class SessionClaims:
    user_id: uuid.UUID
    tenant_id: uuid.UUID
    role: str
    expires_at: int


def _b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("utf-8").rstrip("=")


def _b64url_decode(data: str) -> bytes:
    padding = "=" * ((4 - (len(data) % 4)) % 4)
    return base64.urlsafe_b64decode((data + padding).encode("utf-8"))


def _sign(secret: str, body: str) -> str:
    return hmac.new(secret.encode("utf-8"), body.encode("utf-8"), hashlib.sha256).hexdigest()


def issue_session_token(
    user_id: uuid.UUID,
    tenant_id: uuid.UUID,
    role: str,
    *,
    settings_obj: BridgeSettings | None = None,
) -> str:
    settings_obj = settings_obj or settings
    secret = settings_obj.auth_secret.strip()
    if not secret:
        raise RuntimeError("auth_secret is required to issue session tokens")

    now = int(time.time())
    payload = {
        "sub": str(user_id),
        "tid": str(tenant_id),
        "role": role,
        "iat": now,
        "exp": now + max(60, settings_obj.auth_session_ttl_seconds),
    }
    body = _b64url_encode(json.dumps(payload, separators=(",", ":"), sort_keys=True).encode("utf-8"))
    return f"{body}.{_sign(secret, body)}"


def decode_session_token(token: str, *, settings_obj: BridgeSettings | None = None) -> SessionClaims | None:
    """Claims for a valid, unexpired token; None for anything else."""
    settings_obj = settings_obj or settings
    secret = settings_obj.auth_secret.strip()
    if not secret or not token:
        return None

    body, sep, provided_sig = token.partition(".")
    if not sep or not hmac.compare_digest(provided_sig, _sign(secret, body)):
        return None

    try:
        payload = json.loads(_b64url_decode(body))
        claims = SessionClaims(
            user_id=uuid.UUID(payload["sub"]),
            tenant_id=uuid.UUID(payload["tid"]),
            role=str(payload.get("role") or ""),
            expires_at=int(payload["exp"]),
        )
    except (ValueError, KeyError, TypeError):
        return None

    if claims.expires_at <= int(time.time()):
        return None
    return claims


def token_from_request(request: Request, settings_obj: BridgeSettings | None = None) -> str:
    settings_obj = settings_obj or settings
    cookie_token = request.cookies.get(settings_obj.auth_cookie_name, "")
    if cookie_token:
        return cookie_token
    auth = request.headers.get("authorization", "")
    if auth.lower().startswith("bearer "):
        return auth[7:].strip()
    return ""


def is_exempt_path(path: str, exempt_prefixes: Iterable[str]) -> bool:
    for prefix in exempt_prefixes:
        if not prefix:
            continue
        if prefix.endswith("/"):
            if path.startswith(prefix):
                return True
        elif path == prefix or path.startswith(prefix + "/"):
            return True
    return False


class SessionAuthMiddleware(BaseHTTPMiddleware):
    """Rejects unauthenticated dashboard requests and stashes claims on ``request.state.session``."""

    def __init__(self, app, *, settings_obj: BridgeSettings | None = None, exempt_prefixes: Iterable[str] = DEFAULT_EXEMPT_PREFIXES):
        super().__init__(app)
        self._settings = settings_obj
        self._exempt_prefixes = tuple(exempt_prefixes)

    async def dispatch(self, request: Request, call_next):
        if is_exempt_path(request.url.path, self._exempt_prefixes):
            return await call_next(request)

        settings_obj = self._settings or settings
        if not settings_obj.auth_secret.strip():
            return JSONResponse({"detail": "Authentication is misconfigured"}, status_code=503)

        claims = decode_session_token(token_from_request(request, settings_obj), settings_obj=settings_obj)
        if claims is None:
            return JSONResponse({"detail": "Authentication required"}, status_code=401)

        request.state.session = claims
        return await call_next(request)
