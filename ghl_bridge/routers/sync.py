"""Dashboard-facing sync endpoints: manual trigger, status, initial sync."""

from __future__ import annotations

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ..clock import as_utc
from ..database import get_db
from ..errors import ConflictError
from ..models import SyncStatus
from ..rbac.context import UserContext
from ..rbac.deps import get_user_context, load_accessible_location, require_role
from ..rbac.permissions import Role
from ..schemas.sync import InitialSyncRequest, SyncTriggerRequest
from ..sync.incremental import IncrementalSyncService
from ..sync.initial import InitialSyncService, run_initial_sync
from .common import http_error

router = APIRouter(prefix="/sync", tags=["sync"])


def _iso(value):
    value = as_utc(value)
    return value.isoformat() if value else None


@router.post("/trigger")
async def trigger_sync(
    body: SyncTriggerRequest,
    context: UserContext = Depends(require_role(Role.MANAGER)),
    db: AsyncSession = Depends(get_db),
):
    await load_accessible_location(db, context, body.location_id)
    entity_types = [body.entity_type] if body.entity_type else None
    results = await IncrementalSyncService(db).sync_location(
        context.tenant_id, body.location_id, entity_types, full_sync=body.full_sync
    )
    return {
        "success": all(r.success for r in results),
        "locationId": body.location_id,
        "results": [r.to_dict() for r in results],
    }


@router.get("/status")
async def sync_status(
    location_id: str = Query(..., alias="locationId"),
    context: UserContext = Depends(get_user_context),
    db: AsyncSession = Depends(get_db),
):
    await load_accessible_location(db, context, location_id)
    rows = (await db.execute(
        select(SyncStatus)
        .where(SyncStatus.tenant_id == context.tenant_id, SyncStatus.location_id == location_id)
        .order_by(SyncStatus.entity_type)
    )).scalars().all()
    return {
        "locationId": location_id,
        "entities": [
            {
                "entityType": row.entity_type,
                "status": row.status,
                "lastSyncAt": _iso(row.last_sync_at),
                "nextSyncAt": _iso(row.next_sync_at),
                "recordsSynced": row.records_synced,
                "errorMessage": row.error_message,
            }
            for row in rows
        ],
    }


@router.post("/initial", status_code=202)
async def start_initial_sync(
    body: InitialSyncRequest,
    background_tasks: BackgroundTasks,
    context: UserContext = Depends(require_role(Role.ADMIN)),
    db: AsyncSession = Depends(get_db),
):
    await load_accessible_location(db, context, body.location_id)
    try:
        claimed = await InitialSyncService(db).claim(context.tenant_id, body.location_id)
    except ConflictError as exc:
        raise http_error(exc) from exc
    background_tasks.add_task(run_initial_sync, claimed)
    return {"status": "started", "locationId": body.location_id}


@router.get("/initial/{location_id}")
async def initial_sync_progress(
    location_id: str,
    context: UserContext = Depends(get_user_context),
    db: AsyncSession = Depends(get_db),
):
    await load_accessible_location(db, context, location_id)
    progress = await InitialSyncService(db).get_progress(context.tenant_id, location_id)
    if progress is None:
        raise HTTPException(status_code=404, detail="No initial sync recorded for this location")
    return progress.to_dict()
