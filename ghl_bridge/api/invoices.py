"""Invoices API.

Invoices are addressed by ``altId``/``altType`` rather than ``locationId``
and paginate by offset.
"""

from __future__ import annotations

from typing import Any

from .base import ResourceAPI
from .client import ApiResponse


class InvoicesAPI(ResourceAPI):
    async def list(
        self,
        limit: int = 20,
        offset: int = 0,
        status: str | None = None,
        location_id: str | None = None,
    ) -> ApiResponse:
        """Returns {"invoices": [...], "total": N}."""
        return await self._client._get(
            "/invoices/",
            altId=self._location(location_id),
            altType="location",
            status=status,
            limit=limit,
            skip=offset,
        )

    async def get(self, invoice_id: str) -> ApiResponse:
        return await self._client._get(f"/invoices/{invoice_id}")

    async def create(self, data: dict[str, Any], location_id: str | None = None) -> ApiResponse:
        lid = self._location(location_id)
        return await self._client._post("/invoices/", {"altId": lid, "altType": "location", **data})

    async def update(self, invoice_id: str, data: dict[str, Any]) -> ApiResponse:
        return await self._client._put(f"/invoices/{invoice_id}", data)

    async def send(self, invoice_id: str) -> ApiResponse:
        return await self._client._post(f"/invoices/{invoice_id}/send")

    async def void(self, invoice_id: str) -> ApiResponse:
        return await self._client._post(f"/invoices/{invoice_id}/void")
