"""Helpers shared by the HTTP routers."""

from __future__ import annotations

import hmac
import logging

from fastapi import HTTPException, Request

from ..config import settings
from ..errors import BridgeError

log = logging.getLogger(__name__)


def http_error(exc: BridgeError) -> HTTPException:
    return HTTPException(status_code=exc.http_status, detail=exc.to_dict())


def verify_cron_request(request: Request) -> None:
    """Bearer check against ``cron_secret``; open only in development when unset."""
    secret = settings.cron_secret
    if not secret:
        if settings.is_development:
            log.debug("Cron secret not configured; allowing request in development")
            return
        raise HTTPException(status_code=401, detail="Unauthorized")
    auth = request.headers.get("authorization", "")
    provided = auth[7:].strip() if auth.lower().startswith("bearer ") else ""
    if not provided or not hmac.compare_digest(provided, secret):
        raise HTTPException(status_code=401, detail="Unauthorized")
