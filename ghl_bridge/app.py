"""FastAPI application for the GHL bridge."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from .config import settings
from .security.sessions import DEFAULT_EXEMPT_PREFIXES, SessionAuthMiddleware


@asynccontextmanager
async def lifespan(app: FastAPI):
    logging.getLogger("ghl_bridge").setLevel(settings.log_level.upper())
    # Auto-create tables for SQLite (local dev); other databases run `alembic -c ghl_bridge/alembic.ini upgrade head`
    from .database import create_tables, engine, is_sqlite
    if is_sqlite(settings.database_url):
        await create_tables(engine)
    if (settings.is_production or settings.security_fail_closed) and not settings.auth_secret.strip():
        raise RuntimeError("auth_secret must be set in production/fail-closed mode")
    yield


app = FastAPI(title=settings.app_title, lifespan=lifespan)

app.add_middleware(SessionAuthMiddleware, exempt_prefixes=DEFAULT_EXEMPT_PREFIXES)

# Import and register routers
from .routers import cron, health, oauth, sync, webhooks  # noqa: E402

app.include_router(health.router)
app.include_router(webhooks.router)
app.include_router(cron.router)
app.include_router(sync.router)
app.include_router(oauth.router)
