"""Shared plumbing for the typed resource APIs."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .client import GHLApiClient


class ResourceAPI:
    def __init__(self, client: "GHLApiClient"):
        self._client = client

    def _location(self, location_id: str | None) -> str:
        lid = location_id or self._client.location_id
        if not lid:
            raise ValueError("location_id required for this call")
        return lid
