"""OAuth connect, callback and disconnect endpoints (tenant admins only)."""

from __future__ import annotations

import logging
import uuid
from urllib.parse import urlencode

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query
from fastapi.responses import RedirectResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..config import settings
from ..database import get_db
from ..errors import BridgeError, ConflictError
from ..models import Location
from ..oauth.client import GHLOAuthClient, generate_state, tenant_from_state
from ..oauth.token_store import TokenStore
from ..rbac.context import UserContext
from ..rbac.deps import require_role
from ..rbac.permissions import Role
from ..sync.initial import InitialSyncService, run_initial_sync

log = logging.getLogger(__name__)

router = APIRouter(prefix="/auth/ghl", tags=["oauth"])

require_admin = require_role(Role.ADMIN)


def _integrations_redirect(**params: str) -> RedirectResponse:
    return RedirectResponse(
        f"{settings.dashboard_url.rstrip('/')}/settings/integrations?{urlencode(params)}",
        status_code=303,
    )


def _ensure_tenant(context: UserContext, tenant_id: uuid.UUID | None) -> uuid.UUID:
    if tenant_id is not None and tenant_id != context.tenant_id:
        raise HTTPException(status_code=403, detail="Unauthorized access to tenant")
    return context.tenant_id


@router.get("")
async def start_oauth(
    tenant_id: uuid.UUID | None = Query(default=None),
    context: UserContext = Depends(require_admin),
):
    tenant_id = _ensure_tenant(context, tenant_id)
    if not settings.oauth_configured:
        raise HTTPException(status_code=503, detail="OAuth client is not configured")
    url = GHLOAuthClient.from_settings().build_authorization_url(generate_state(tenant_id))
    return RedirectResponse(url, status_code=307)


@router.get("/callback")
async def oauth_callback(
    background_tasks: BackgroundTasks,
    code: str | None = None,
    state: str | None = None,
    error: str | None = None,
    error_description: str | None = None,
    context: UserContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    if error:
        log.warning("OAuth authorization denied: %s %s", error, error_description or "")
        return _integrations_redirect(error=error_description or error)
    if not code:
        return _integrations_redirect(error="missing_code")

    try:
        tenant_id = tenant_from_state(state or "")
        if tenant_id != context.tenant_id:
            return _integrations_redirect(error="Unauthorized access to tenant")

        store = TokenStore(db)
        tokens = await store.oauth_client.exchange_code(code)
        if tokens.location_id:
            location = await db.get(Location, tokens.location_id)
            if location is not None and location.tenant_id != tenant_id:
                log.warning("Location %s already belongs to another tenant", tokens.location_id)
                return _integrations_redirect(error="Location is connected to another tenant")
            if location is None:
                db.add(Location(id=tokens.location_id, tenant_id=tenant_id, company_id=tokens.company_id, name=""))
        await store.store(tenant_id, tokens)
    except BridgeError as exc:
        log.warning("OAuth callback failed for tenant %s: %s", context.tenant_id, exc.message)
        return _integrations_redirect(error=exc.message)

    if tokens.location_id:
        try:
            claimed = await InitialSyncService(db).claim(tenant_id, tokens.location_id)
        except ConflictError as exc:
            log.info("Initial sync for %s not restarted: %s", tokens.location_id, exc.message)
        else:
            background_tasks.add_task(run_initial_sync, claimed)

    return _integrations_redirect(success="connected", location=tokens.location_id or "company")


@router.delete("")
async def disconnect(
    tenant_id: uuid.UUID | None = Query(default=None),
    location_id: str | None = Query(default=None),
    context: UserContext = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    tenant_id = _ensure_tenant(context, tenant_id)
    revoked = await TokenStore(db).revoke(tenant_id, location_id)
    return {"success": True, "message": "Integration disconnected successfully", "revoked": revoked}
