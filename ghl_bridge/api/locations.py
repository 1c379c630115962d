"""Locations, users, products and workflows API."""

from __future__ import annotations

from .base import ResourceAPI
from .client import ApiResponse


class LocationsAPI(ResourceAPI):
    async def get(self, location_id: str | None = None) -> ApiResponse:
        """Returns {"location": {...}}."""
        return await self._client._get(f"/locations/{self._location(location_id)}")

    async def list(self, company_id: str) -> ApiResponse:
        return await self._client._get("/locations/", companyId=company_id)

    async def users(self, location_id: str | None = None) -> ApiResponse:
        return await self._client._get("/users/", locationId=self._location(location_id))

    async def get_user(self, user_id: str) -> ApiResponse:
        return await self._client._get(f"/users/{user_id}")

    async def products(self, location_id: str | None = None) -> ApiResponse:
        return await self._client._get("/products/", locationId=self._location(location_id))

    async def get_product(self, product_id: str) -> ApiResponse:
        return await self._client._get(f"/products/{product_id}")

    async def workflows(self, location_id: str | None = None) -> ApiResponse:
        return await self._client._get("/workflows/", locationId=self._location(location_id))
