"""Inbound GoHighLevel webhook endpoint."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from ..clock import utcnow
from ..config import settings
from ..database import get_db
from ..errors import AuthenticationError, InvalidRequestError
from ..webhooks.pipeline import WebhookPipeline

log = logging.getLogger(__name__)

router = APIRouter(tags=["webhooks"])

WEBHOOK_PATH = "/webhooks/ghl"


@router.post(WEBHOOK_PATH)
async def receive_webhook(request: Request, db: AsyncSession = Depends(get_db)):
    if not settings.webhook_secret and (settings.is_production or settings.security_fail_closed):
        raise HTTPException(status_code=503, detail="Webhook secret is not configured")

    raw_body = await request.body()
    signature = request.headers.get(settings.webhook_signature_header)
    pipeline = WebhookPipeline(db)
    try:
        result = await pipeline.process(raw_body, signature)
    except AuthenticationError as exc:
        log.warning("Rejected webhook: %s", exc.message)
        return JSONResponse({"error": exc.message}, status_code=401)
    except InvalidRequestError as exc:
        return JSONResponse({"error": exc.message}, status_code=400)
    return result.to_dict()


@router.get(WEBHOOK_PATH)
async def webhook_health():
    return {"status": "ok", "endpoint": WEBHOOK_PATH, "timestamp": utcnow().isoformat()}
