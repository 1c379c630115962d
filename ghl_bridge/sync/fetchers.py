"""Per-entity fetch-and-upsert routines shared by the scheduler and the initial sync.

``ENTITY_FETCHERS`` is the single dispatch table from entity type to the
routine that walks the upstream listing for one location and upserts every
record. Per-record mapping failures are collected on the result; upstream
and store failures raise and fail the whole batch.
"""

from __future__ import annotations

import logging
import time
import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from typing import Any, AsyncIterator, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from ..api.client import ApiResponse, GHLApiClient
from ..clock import utcnow
from ..config import settings
from ..entities import EntityType
from ..errors import ErrorKind, InvalidRequestError, MappingError
from ..models import Location, PipelineStage
from ..store import upsert_row, write_sync_log
from .mappers import ENTITY_MAPPINGS, map_location, map_pipeline_stage, parse_payload
from .schemas import LocationPayload, PipelineStagePayload

log = logging.getLogger(__name__)

# Initial sync pulls a wider appointment window than the scheduled poll.
FULL_SYNC_APPOINTMENT_HISTORY_DAYS = 30
FULL_SYNC_APPOINTMENT_HORIZON_DAYS = 60


@dataclass
class SyncContext:
    db: AsyncSession
    client: GHLApiClient
    tenant_id: uuid.UUID
    location_id: str
    full_sync: bool = False
    page_size: int = field(default_factory=lambda: settings.sync_page_size)


@dataclass
class SyncBatchResult:
    entity_type: str
    location_id: str
    success: bool = True
    records_synced: int = 0
    records_failed: int = 0
    pages: int = 0
    error: str | None = None
    error_kind: ErrorKind | None = None
    mapping_errors: list[dict[str, Any]] = field(default_factory=list)
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "entityType": self.entity_type,
            "locationId": self.location_id,
            "success": self.success,
            "recordsSynced": self.records_synced,
            "recordsFailed": self.records_failed,
            "pages": self.pages,
            "error": self.error,
            "errorKind": self.error_kind.value if self.error_kind else None,
            "durationMs": self.duration_ms,
        }


PageFetch = Callable[[str | None, Any], Awaitable[ApiResponse]]


async def iter_cursor_pages(fetch_page: PageFetch, key: str, page_size: int) -> AsyncIterator[list[dict[str, Any]]]:
    """Yield record pages following ``meta.startAfterId`` / ``meta.startAfter``.

    Stops on a short page, a missing cursor, or a cursor already seen.
    """
    start_after_id: str | None = None
    start_after: Any = None
    seen: set[tuple[str, str]] = set()
    while True:
        data = (await fetch_page(start_after_id, start_after)).unwrap() or {}
        records = data.get(key) or []
        yield records

        meta = data.get("meta") or {}
        next_id = meta.get("startAfterId")
        next_after = meta.get("startAfter")
        if len(records) < page_size or not next_id:
            return
        cursor = (str(next_id), str(next_after))
        if cursor in seen:
            log.warning("Pagination cursor repeated for %s (%s); stopping", key, next_id)
            return
        seen.add(cursor)
        start_after_id, start_after = next_id, next_after


async def iter_offset_pages(
    fetch_page: Callable[[int], Awaitable[ApiResponse]],
    key: str,
    page_size: int,
) -> AsyncIterator[list[dict[str, Any]]]:
    offset = 0
    while True:
        data = (await fetch_page(offset)).unwrap() or {}
        records = data.get(key) or []
        yield records
        offset += len(records)
        total = data.get("total")
        if len(records) < page_size or (isinstance(total, int) and offset >= total):
            return


async def upsert_records(
    ctx: SyncContext,
    entity_type: EntityType,
    records: list[dict[str, Any]],
    result: SyncBatchResult,
) -> list[Any]:
    """Map and upsert one page; mapping failures are logged and skipped."""
    mapping = ENTITY_MAPPINGS[entity_type]
    payloads = []
    for raw in records:
        try:
            payload = parse_payload(mapping.schema, raw)
            values = mapping.map(payload, ctx.location_id)
        except MappingError as exc:
            entity_id = str(exc.details.get("entity_id") or "unknown")
            log.warning(
                "Skipping unmappable %s record %s for location %s: %s",
                entity_type.value, entity_id, ctx.location_id, exc.message,
            )
            result.records_failed += 1
            result.mapping_errors.append({"entityId": entity_id, "error": exc.message})
            await write_sync_log(
                ctx.db,
                location_id=ctx.location_id,
                entity_type=entity_type.value,
                entity_id=entity_id,
                action="sync",
                source="poll",
                payload={"error": exc.message, "kind": exc.kind.value, **exc.details},
            )
            continue
        await upsert_row(ctx.db, mapping.model, values)
        result.records_synced += 1
        payloads.append(payload)
    return payloads


async def _sync_pages(ctx: SyncContext, entity_type: EntityType, pages: AsyncIterator[list[dict[str, Any]]]) -> SyncBatchResult:
    result = SyncBatchResult(entity_type=entity_type.value, location_id=ctx.location_id)
    async for records in pages:
        result.pages += 1
        await upsert_records(ctx, entity_type, records, result)
    return result


async def _sync_list(ctx: SyncContext, entity_type: EntityType, response: ApiResponse, key: str) -> SyncBatchResult:
    data = response.unwrap() or {}
    result = SyncBatchResult(entity_type=entity_type.value, location_id=ctx.location_id, pages=1)
    await upsert_records(ctx, entity_type, data.get(key) or [], result)
    return result


async def fetch_contacts(ctx: SyncContext) -> SyncBatchResult:
    async def page(start_after_id, start_after):
        return await ctx.client.contacts.list(
            limit=ctx.page_size,
            location_id=ctx.location_id,
            start_after_id=start_after_id,
            start_after=start_after,
        )

    return await _sync_pages(ctx, EntityType.CONTACTS, iter_cursor_pages(page, "contacts", ctx.page_size))


async def fetch_opportunities(ctx: SyncContext) -> SyncBatchResult:
    async def page(start_after_id, start_after):
        return await ctx.client.opportunities.search(
            limit=ctx.page_size,
            location_id=ctx.location_id,
            start_after_id=start_after_id,
            start_after=start_after,
        )

    return await _sync_pages(ctx, EntityType.OPPORTUNITIES, iter_cursor_pages(page, "opportunities", ctx.page_size))


async def fetch_invoices(ctx: SyncContext) -> SyncBatchResult:
    async def page(offset):
        return await ctx.client.invoices.list(limit=ctx.page_size, offset=offset, location_id=ctx.location_id)

    return await _sync_pages(ctx, EntityType.INVOICES, iter_offset_pages(page, "invoices", ctx.page_size))


async def fetch_appointments(ctx: SyncContext) -> SyncBatchResult:
    now = utcnow()
    if ctx.full_sync:
        start = now - timedelta(days=FULL_SYNC_APPOINTMENT_HISTORY_DAYS)
        end = now + timedelta(days=FULL_SYNC_APPOINTMENT_HORIZON_DAYS)
    else:
        start = now
        end = now + timedelta(days=settings.appointment_window_days)
    response = await ctx.client.calendars.events(
        start=start.isoformat(), end=end.isoformat(), location_id=ctx.location_id
    )
    return await _sync_list(ctx, EntityType.APPOINTMENTS, response, "events")


async def fetch_calendars(ctx: SyncContext) -> SyncBatchResult:
    response = await ctx.client.calendars.list(location_id=ctx.location_id)
    return await _sync_list(ctx, EntityType.CALENDARS, response, "calendars")


async def fetch_users(ctx: SyncContext) -> SyncBatchResult:
    response = await ctx.client.locations.users(location_id=ctx.location_id)
    return await _sync_list(ctx, EntityType.USERS, response, "users")


async def fetch_products(ctx: SyncContext) -> SyncBatchResult:
    response = await ctx.client.locations.products(location_id=ctx.location_id)
    return await _sync_list(ctx, EntityType.PRODUCTS, response, "products")


async def fetch_workflows(ctx: SyncContext) -> SyncBatchResult:
    response = await ctx.client.locations.workflows(location_id=ctx.location_id)
    return await _sync_list(ctx, EntityType.WORKFLOWS, response, "workflows")


async def fetch_pipelines(ctx: SyncContext) -> SyncBatchResult:
    """Pipelines plus their nested stages; only pipelines count toward the total."""
    data = (await ctx.client.opportunities.pipelines(location_id=ctx.location_id)).unwrap() or {}
    result = SyncBatchResult(entity_type=EntityType.PIPELINES.value, location_id=ctx.location_id, pages=1)
    pipelines = await upsert_records(ctx, EntityType.PIPELINES, data.get("pipelines") or [], result)
    for pipeline in pipelines:
        for raw_stage in pipeline.stages:
            try:
                stage = parse_payload(PipelineStagePayload, raw_stage)
            except MappingError as exc:
                log.warning("Skipping unmappable stage in pipeline %s: %s", pipeline.id, exc.message)
                result.mapping_errors.append({"entityId": pipeline.id, "error": exc.message})
                continue
            await upsert_row(ctx.db, PipelineStage, map_pipeline_stage(stage, ctx.location_id, pipeline.id))
    return result


async def fetch_location(ctx: SyncContext) -> SyncBatchResult:
    """Fetch the location profile and upsert it under the context's tenant."""
    data = (await ctx.client.locations.get(ctx.location_id)).unwrap() or {}
    raw = data.get("location") if isinstance(data.get("location"), dict) else data
    payload = parse_payload(LocationPayload, {"id": ctx.location_id, **raw})
    await upsert_row(ctx.db, Location, map_location(payload, ctx.tenant_id))
    return SyncBatchResult(
        entity_type=EntityType.LOCATIONS.value, location_id=ctx.location_id, records_synced=1, pages=1
    )


EntityFetcher = Callable[[SyncContext], Awaitable[SyncBatchResult]]

ENTITY_FETCHERS: dict[EntityType, EntityFetcher] = {
    EntityType.LOCATIONS: fetch_location,
    EntityType.CONTACTS: fetch_contacts,
    EntityType.OPPORTUNITIES: fetch_opportunities,
    EntityType.APPOINTMENTS: fetch_appointments,
    EntityType.INVOICES: fetch_invoices,
    EntityType.CALENDARS: fetch_calendars,
    EntityType.PIPELINES: fetch_pipelines,
    EntityType.USERS: fetch_users,
    EntityType.PRODUCTS: fetch_products,
    EntityType.WORKFLOWS: fetch_workflows,
}


async def run_fetcher(ctx: SyncContext, entity_type: EntityType) -> SyncBatchResult:
    """Dispatch to the fetcher for ``entity_type`` and stamp the duration."""
    fetcher = ENTITY_FETCHERS.get(entity_type)
    if fetcher is None:
        raise InvalidRequestError(f"No fetcher registered for {entity_type.value}")
    started = time.monotonic()
    result = await fetcher(ctx)
    result.duration_ms = int((time.monotonic() - started) * 1000)
    return result
