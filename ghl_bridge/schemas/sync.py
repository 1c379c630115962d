"""Request bodies for the sync and cron endpoints."""

from __future__ import annotations

import uuid

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from ..entities import EntityType


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class SyncTriggerRequest(CamelModel):
    location_id: str = Field(min_length=1)
    entity_type: EntityType | None = None
    full_sync: bool = False


class InitialSyncRequest(CamelModel):
    location_id: str = Field(min_length=1)


class CronSyncRequest(CamelModel):
    tenant_id: uuid.UUID | None = None
    location_id: str | None = None
    entity_type: EntityType | None = None
    force: bool = False
