"""Scheduler-invoked endpoints: due-task polling and daily reconciliation."""

from __future__ import annotations

from datetime import timedelta

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from ..clock import utcnow
from ..database import get_db
from ..errors import BridgeError
from ..schemas.sync import CronSyncRequest
from ..sync.incremental import IncrementalSyncService
from ..sync.reconcile import ReconciliationService
from .common import http_error, verify_cron_request

router = APIRouter(prefix="/cron", tags=["cron"], dependencies=[Depends(verify_cron_request)])

# Lookback handed to targeted non-forced syncs.
TARGETED_SYNC_LOOKBACK = timedelta(minutes=15)


@router.get("/sync")
async def run_scheduled_sync(db: AsyncSession = Depends(get_db)):
    summary = await IncrementalSyncService(db).run_due_tasks()
    return {"success": True, **summary.to_dict()}


@router.post("/sync")
async def run_targeted_sync(body: CronSyncRequest, db: AsyncSession = Depends(get_db)):
    if body.tenant_id is None:
        raise HTTPException(status_code=400, detail="tenantId is required")
    service = IncrementalSyncService(db)
    try:
        if body.location_id and body.entity_type:
            since = None if body.force else utcnow() - TARGETED_SYNC_LOOKBACK
            result = await service.sync_entity(
                body.tenant_id, body.location_id, body.entity_type, since, full_sync=body.force
            )
            return {"success": result.success, "result": result.to_dict()}
        if body.location_id and body.force:
            results = await service.sync_location(body.tenant_id, body.location_id, full_sync=True)
            return {"success": all(r.success for r in results), "results": [r.to_dict() for r in results]}
    except BridgeError as exc:
        raise http_error(exc) from exc

    summary = await service.run_due_tasks(tenant_id=body.tenant_id, location_id=body.location_id)
    return {"success": True, **summary.to_dict()}


@router.get("/reconcile")
async def run_reconciliation(db: AsyncSession = Depends(get_db)):
    summary = await ReconciliationService(db).run()
    return {"success": True, **summary.to_dict()}
