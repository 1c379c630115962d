"""Upstream API client with rate limiting, retries and token refresh.

Every resource method funnels through :meth:`GHLApiClient.request`, which
never raises for HTTP or transport failures: it returns an
:class:`ApiResponse` whose ``error_kind`` drives retry decisions upstream.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TYPE_CHECKING

import httpx

from ..config import settings
from ..errors import BridgeError, ErrorKind, error_from_kind, kind_for_status
from .rate_limit import RateLimiter, RateLimitExceeded, default_rate_limiter

if TYPE_CHECKING:
    from ..oauth.token_store import TokenStore
    from .calendars import CalendarsAPI
    from .contacts import ContactsAPI
    from .conversations import ConversationsAPI
    from .invoices import InvoicesAPI
    from .locations import LocationsAPI
    from .opportunities import OpportunitiesAPI

log = logging.getLogger(__name__)

BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


@dataclass
class ApiResponse:
    """Outcome of one logical API call (after retries)."""

    data: Any = None
    error: str | None = None
    status: int = 0
    rate_limit_remaining: int | None = None
    error_kind: ErrorKind | None = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_error(self) -> BridgeError:
        kind = self.error_kind or kind_for_status(self.status)
        return error_from_kind(kind, self.error or "Upstream request failed", status=self.status)

    def unwrap(self) -> Any:
        """Return ``data`` or raise the typed error for this response."""
        if not self.ok:
            raise self.to_error()
        return self.data


def _remaining(headers: httpx.Headers) -> int | None:
    value = headers.get("X-RateLimit-Remaining")
    try:
        return int(value) if value is not None else None
    except ValueError:
        return None


def _retry_after(headers: httpx.Headers) -> float:
    value = headers.get("Retry-After")
    try:
        return float(value) if value is not None else float(settings.default_retry_after_seconds)
    except ValueError:
        return float(settings.default_retry_after_seconds)


class GHLApiClient:
    """Upstream API client with typed sub-APIs.

    Usage:
        async with GHLApiClient(token_store, tenant_id, location_id) as ghl:
            page = await ghl.contacts.list(limit=100)
            if page.ok:
                contacts = page.data["contacts"]
    """

    def __init__(
        self,
        token_store: "TokenStore | None",
        tenant_id: uuid.UUID | str,
        location_id: str | None = None,
        *,
        rate_limiter: RateLimiter | None = None,
        api_key: str | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        base_url: str | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        if token_store is None and not api_key:
            raise ValueError("token_store or api_key is required")
        self.token_store = token_store
        self.tenant_id = tenant_id
        self.location_id = location_id
        self.rate_limiter = rate_limiter or default_rate_limiter
        self.api_key = api_key
        self.retry_attempts = settings.retry_attempts
        self.retry_delay = settings.retry_delay_seconds
        self.base_url = base_url or settings.api_base_url
        self._sleep = sleep
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        self._contacts: ContactsAPI | None = None
        self._opportunities: OpportunitiesAPI | None = None
        self._calendars: CalendarsAPI | None = None
        self._conversations: ConversationsAPI | None = None
        self._invoices: InvoicesAPI | None = None
        self._locations: LocationsAPI | None = None

    @property
    def rate_limit_key(self) -> str:
        return self.location_id or str(self.tenant_id)

    async def __aenter__(self) -> "GHLApiClient":
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.http_timeout_seconds,
            transport=self._transport,
            headers={
                "Content-Type": "application/json",
                "Accept": "application/json",
                "Version": settings.api_version,
            },
        )

        from .calendars import CalendarsAPI
        from .contacts import ContactsAPI
        from .conversations import ConversationsAPI
        from .invoices import InvoicesAPI
        from .locations import LocationsAPI
        from .opportunities import OpportunitiesAPI

        self._contacts = ContactsAPI(self)
        self._opportunities = OpportunitiesAPI(self)
        self._calendars = CalendarsAPI(self)
        self._conversations = ConversationsAPI(self)
        self._invoices = InvoicesAPI(self)
        self._locations = LocationsAPI(self)
        return self

    async def __aexit__(self, *args):
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def contacts(self) -> "ContactsAPI":
        if not self._contacts:
            raise RuntimeError("Client not initialized. Use 'async with' context.")
        return self._contacts

    @property
    def opportunities(self) -> "OpportunitiesAPI":
        if not self._opportunities:
            raise RuntimeError("Client not initialized. Use 'async with' context.")
        return self._opportunities

    @property
    def calendars(self) -> "CalendarsAPI":
        if not self._calendars:
            raise RuntimeError("Client not initialized. Use 'async with' context.")
        return self._calendars

    @property
    def conversations(self) -> "ConversationsAPI":
        if not self._conversations:
            raise RuntimeError("Client not initialized. Use 'async with' context.")
        return self._conversations

    @property
    def invoices(self) -> "InvoicesAPI":
        if not self._invoices:
            raise RuntimeError("Client not initialized. Use 'async with' context.")
        return self._invoices

    @property
    def locations(self) -> "LocationsAPI":
        if not self._locations:
            raise RuntimeError("Client not initialized. Use 'async with' context.")
        return self._locations

    async def _authorization(self, force_refresh: bool = False) -> str | None:
        if self.api_key:
            return f"Bearer {self.api_key}"
        credential = await self.token_store.get_valid(
            self.tenant_id, self.location_id, force_refresh=force_refresh
        )
        if credential is None:
            return None
        return f"{credential.token_type or 'Bearer'} {credential.access_token}"

    async def request(
        self,
        method: str,
        path: str,
        body: dict[str, Any] | None = None,
        params: dict[str, Any] | None = None,
    ) -> ApiResponse:
        if self._client is None:
            raise RuntimeError("Client not initialized. Use 'async with' context.")

        method = method.upper()
        query = {k: v for k, v in (params or {}).items() if v is not None}
        last_error = "Request failed after retries"
        last_status = 0
        remaining: int | None = None
        force_refresh = False

        for attempt in range(self.retry_attempts):
            try:
                await self.rate_limiter.acquire(self.rate_limit_key)
            except RateLimitExceeded as exc:
                log.warning("Daily rate limit reached for %s", self.rate_limit_key)
                return ApiResponse(
                    error=exc.message,
                    status=429,
                    rate_limit_remaining=0,
                    error_kind=ErrorKind.UPSTREAM_TRANSIENT,
                )

            authorization = await self._authorization(force_refresh=force_refresh)
            if authorization is None:
                return ApiResponse(
                    error="No valid OAuth credential; re-authorization required",
                    status=401,
                    error_kind=ErrorKind.AUTHENTICATION,
                )

            try:
                response = await self._client.request(
                    method,
                    path,
                    params=query or None,
                    json=body if method in BODY_METHODS else None,
                    headers={"Authorization": authorization},
                )
            except httpx.HTTPError as exc:
                last_error = str(exc) or exc.__class__.__name__
                last_status = 0
                log.warning(
                    "%s %s transport failure (attempt %d/%d): %s",
                    method, path, attempt + 1, self.retry_attempts, last_error,
                )
                await self._sleep(self.retry_delay * (attempt + 1))
                continue

            remaining = _remaining(response.headers)

            if response.is_success:
                try:
                    data = response.json() if response.content else {}
                except ValueError:
                    return ApiResponse(
                        error=f"Invalid JSON from {path}",
                        status=response.status_code,
                        rate_limit_remaining=remaining,
                        error_kind=ErrorKind.UPSTREAM_PERMANENT,
                    )
                return ApiResponse(data=data, status=response.status_code, rate_limit_remaining=remaining)

            last_status = response.status_code
            last_error = response.text or f"HTTP {last_status}"

            if last_status == 429:
                wait = _retry_after(response.headers)
                log.info("%s %s rate limited upstream, retrying in %.1fs", method, path, wait)
                await self._sleep(wait)
                continue

            if last_status == 401:
                log.info("%s %s unauthorized, forcing token refresh", method, path)
                force_refresh = True
                continue

            return ApiResponse(
                error=last_error,
                status=last_status,
                rate_limit_remaining=remaining,
                error_kind=kind_for_status(last_status),
            )

        log.warning("%s %s failed after %d attempts: %s", method, path, self.retry_attempts, last_status)
        return ApiResponse(
            error=last_error,
            status=last_status,
            rate_limit_remaining=remaining,
            error_kind=kind_for_status(last_status),
        )

    async def _get(self, path: str, **params) -> ApiResponse:
        return await self.request("GET", path, params=params)

    async def _post(self, path: str, data: dict | None = None, **params) -> ApiResponse:
        return await self.request("POST", path, body=data, params=params)

    async def _put(self, path: str, data: dict | None = None) -> ApiResponse:
        return await self.request("PUT", path, body=data)

    async def _delete(self, path: str, **params) -> ApiResponse:
        return await self.request("DELETE", path, params=params)
