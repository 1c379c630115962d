"""Conversations and messages API."""

from __future__ import annotations

from typing import Any

from .base import ResourceAPI
from .client import ApiResponse


class ConversationsAPI(ResourceAPI):
    async def list(
        self,
        limit: int = 20,
        offset: int = 0,
        contact_id: str | None = None,
        location_id: str | None = None,
    ) -> ApiResponse:
        return await self._client._get(
            "/conversations/",
            locationId=self._location(location_id),
            contactId=contact_id,
            limit=limit,
            skip=offset,
        )

    async def messages(self, conversation_id: str, limit: int = 50) -> ApiResponse:
        return await self._client._get(f"/conversations/{conversation_id}/messages", limit=limit)

    async def send_message(self, data: dict[str, Any]) -> ApiResponse:
        return await self._client._post("/conversations/messages", data)
