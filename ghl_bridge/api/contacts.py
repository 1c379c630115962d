"""Contacts API."""

from __future__ import annotations

from typing import Any

from .base import ResourceAPI
from .client import ApiResponse


class ContactsAPI(ResourceAPI):
    """Contacts for a location.

    Usage:
        async with GHLApiClient(store, tenant_id, location_id) as ghl:
            page = await ghl.contacts.list(limit=100)
            nxt = await ghl.contacts.list(limit=100, start_after_id=page.data["meta"]["startAfterId"])
    """

    async def list(
        self,
        limit: int = 20,
        query: str | None = None,
        location_id: str | None = None,
        start_after_id: str | None = None,
        start_after: int | str | None = None,
    ) -> ApiResponse:
        """List contacts, cursor-paginated.

        Returns:
            {"contacts": [...], "meta": {"total": N, "startAfterId": ..., "startAfter": ...}}
        """
        params: dict[str, Any] = {"locationId": self._location(location_id), "limit": min(limit, 100)}
        if query:
            params["query"] = query
        if start_after_id:
            params["startAfterId"] = start_after_id
        if start_after is not None:
            params["startAfter"] = start_after
        return await self._client._get("/contacts/", **params)

    async def get(self, contact_id: str) -> ApiResponse:
        return await self._client._get(f"/contacts/{contact_id}")

    async def create(self, data: dict[str, Any], location_id: str | None = None) -> ApiResponse:
        return await self._client._post("/contacts/", {"locationId": self._location(location_id), **data})

    async def update(self, contact_id: str, data: dict[str, Any]) -> ApiResponse:
        return await self._client._put(f"/contacts/{contact_id}", data)

    async def delete(self, contact_id: str) -> ApiResponse:
        return await self._client._delete(f"/contacts/{contact_id}")
