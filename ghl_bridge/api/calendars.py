"""Calendars and appointments API."""

from __future__ import annotations

from typing import Any

from .base import ResourceAPI
from .client import ApiResponse


class CalendarsAPI(ResourceAPI):
    async def list(self, location_id: str | None = None) -> ApiResponse:
        return await self._client._get("/calendars/", locationId=self._location(location_id))

    async def events(
        self,
        start: str,
        end: str,
        location_id: str | None = None,
        calendar_id: str | None = None,
    ) -> ApiResponse:
        """Calendar events between two ISO timestamps.

        Returns:
            {"events": [...]}
        """
        return await self._client._get(
            "/calendars/events",
            locationId=self._location(location_id),
            calendarId=calendar_id,
            startDate=start,
            endDate=end,
        )

    async def create_appointment(self, data: dict[str, Any]) -> ApiResponse:
        return await self._client._post("/calendars/events/appointments", data)

    async def update_appointment(self, event_id: str, data: dict[str, Any]) -> ApiResponse:
        return await self._client._put(f"/calendars/events/appointments/{event_id}", data)

    async def delete_event(self, event_id: str) -> ApiResponse:
        return await self._client._delete(f"/calendars/events/{event_id}")
