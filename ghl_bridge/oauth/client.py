"""OAuth 2.0 client for the upstream Marketplace app.

Handles the Authorization Code flow:
1. Generate authorization URL (state carries the tenant id)
2. Exchange the callback code for access + refresh tokens
3. Refresh tokens before they expire
"""

from __future__ import annotations

import secrets
import uuid
from dataclasses import dataclass
from typing import Any
from urllib.parse import urlencode

import httpx

from ..config import settings
from ..errors import AuthenticationError, InvalidRequestError


@dataclass
class TokenResponse:
    """Token payload returned by the upstream token endpoint."""

    access_token: str
    refresh_token: str
    expires_in: int  # seconds
    token_type: str = "Bearer"
    scope: str = ""
    user_type: str | None = None  # "Company" or "Location"
    company_id: str | None = None
    location_id: str | None = None

    @property
    def scopes(self) -> list[str]:
        return [s for s in self.scope.split(" ") if s]


class OAuthError(AuthenticationError):
    """Token exchange or refresh failed; ``details["body"]`` holds the upstream body."""

    def __init__(self, message: str, error_code: str | None = None, details: dict | None = None):
        super().__init__(message, details=details)
        self.error_code = error_code


def generate_state(tenant_id: uuid.UUID | str) -> str:
    """Build an OAuth state value of the form ``<tenant_id>:<nonce>``."""
    return f"{tenant_id}:{secrets.token_urlsafe(16)}"


def tenant_from_state(state: str) -> uuid.UUID:
    tenant_part, sep, nonce = state.partition(":")
    if not sep or not nonce:
        raise InvalidRequestError("Invalid OAuth state")
    try:
        return uuid.UUID(tenant_part)
    except ValueError:
        raise InvalidRequestError("Invalid OAuth state") from None


class GHLOAuthClient:
    """OAuth client bound to the app's Marketplace credentials.

    Usage:
        client = GHLOAuthClient.from_settings()
        url = client.build_authorization_url(generate_state(tenant.id))
        # ...upstream redirects back with ?code=...&state=...
        tokens = await client.exchange_code(code)
        tokens = await client.refresh(tokens.refresh_token)
    """

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        redirect_uri: str,
        *,
        auth_url: str | None = None,
        token_url: str | None = None,
        scopes: list[str] | None = None,
        timeout: float | None = None,
    ):
        self.client_id = client_id
        self.client_secret = client_secret
        self.redirect_uri = redirect_uri
        self.auth_url = auth_url or settings.auth_url
        self.token_url = token_url or settings.token_url
        self.scopes = scopes if scopes is not None else settings.scopes
        self.timeout = timeout or settings.http_timeout_seconds

    @classmethod
    def from_settings(cls) -> "GHLOAuthClient":
        return cls(
            client_id=settings.client_id,
            client_secret=settings.client_secret,
            redirect_uri=settings.redirect_uri,
        )

    def build_authorization_url(self, state: str, scopes: list[str] | None = None) -> str:
        params = {
            "response_type": "code",
            "client_id": self.client_id,
            "redirect_uri": self.redirect_uri,
            "scope": " ".join(scopes or self.scopes),
            "state": state,
        }
        return f"{self.auth_url}?{urlencode(params)}"

    async def exchange_code(self, code: str) -> TokenResponse:
        return await self._token_request(
            {
                "grant_type": "authorization_code",
                "code": code,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "redirect_uri": self.redirect_uri,
            },
            failure="Token exchange failed",
            default_code="exchange_failed",
        )

    async def refresh(self, refresh_token: str) -> TokenResponse:
        return await self._token_request(
            {
                "grant_type": "refresh_token",
                "refresh_token": refresh_token,
                "client_id": self.client_id,
                "client_secret": self.client_secret,
            },
            failure="Token refresh failed",
            default_code="refresh_failed",
        )

    async def _token_request(self, form: dict[str, str], *, failure: str, default_code: str) -> TokenResponse:
        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(
                    self.token_url,
                    data=form,
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
        except httpx.HTTPError as exc:
            raise OAuthError(f"{failure}: {exc}", error_code="transport_error") from exc

        if response.status_code != 200:
            body = response.text
            error_code = default_code
            try:
                error_data = response.json() if response.content else {}
            except ValueError:
                error_data = {}
            if isinstance(error_data, dict):
                error_code = error_data.get("error", default_code)
            raise OAuthError(
                f"{failure}: {body}",
                error_code=error_code,
                details={"status": response.status_code, "body": body},
            )

        return self._parse_token_response(response.json())

    def _parse_token_response(self, data: dict[str, Any]) -> TokenResponse:
        try:
            return TokenResponse(
                access_token=data["access_token"],
                refresh_token=data["refresh_token"],
                expires_in=int(data.get("expires_in", 86400)),
                token_type=data.get("token_type", "Bearer"),
                scope=data.get("scope", ""),
                user_type=data.get("userType"),
                company_id=data.get("companyId"),
                location_id=data.get("locationId"),
            )
        except KeyError as e:
            raise OAuthError(
                f"Invalid token response: missing {e}",
                error_code="invalid_response",
                details={"missing_field": str(e), "response_keys": list(data.keys())},
            ) from e
