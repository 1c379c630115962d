"""Opportunities and pipelines API."""

from __future__ import annotations

from typing import Any

from .base import ResourceAPI
from .client import ApiResponse


class OpportunitiesAPI(ResourceAPI):
    async def search(
        self,
        limit: int = 20,
        location_id: str | None = None,
        pipeline_id: str | None = None,
        stage_id: str | None = None,
        status: str | None = None,
        start_after_id: str | None = None,
        start_after: int | str | None = None,
    ) -> ApiResponse:
        """Search opportunities, cursor-paginated.

        Returns:
            {"opportunities": [...], "meta": {"total": N, "startAfterId": ..., "startAfter": ...}}
        """
        return await self._client._get(
            "/opportunities/search",
            location_id=self._location(location_id),
            pipeline_id=pipeline_id,
            pipeline_stage_id=stage_id,
            status=status,
            limit=min(limit, 100),
            startAfterId=start_after_id,
            startAfter=start_after,
        )

    async def get(self, opportunity_id: str) -> ApiResponse:
        return await self._client._get(f"/opportunities/{opportunity_id}")

    async def create(self, data: dict[str, Any], location_id: str | None = None) -> ApiResponse:
        return await self._client._post("/opportunities/", {"locationId": self._location(location_id), **data})

    async def update(self, opportunity_id: str, data: dict[str, Any]) -> ApiResponse:
        return await self._client._put(f"/opportunities/{opportunity_id}", data)

    async def update_status(self, opportunity_id: str, status: str) -> ApiResponse:
        """Set status to one of open / won / lost / abandoned."""
        return await self._client._put(f"/opportunities/{opportunity_id}/status", {"status": status})

    async def delete(self, opportunity_id: str) -> ApiResponse:
        return await self._client._delete(f"/opportunities/{opportunity_id}")

    async def pipelines(self, location_id: str | None = None) -> ApiResponse:
        """Returns {"pipelines": [{..., "stages": [...]}]}."""
        return await self._client._get("/opportunities/pipelines", locationId=self._location(location_id))
