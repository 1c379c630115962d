"""Persistent OAuth credential store with refresh-on-read.

``get_valid`` is the contract the rest of the bridge relies on: it either
returns a credential that is good for at least the expiry buffer, or None,
which callers treat as "re-authorization required".
"""

from __future__ import annotations

import logging
import uuid
from datetime import timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from ..clock import as_utc, utcnow
from ..config import settings
from ..models.oauth import OAuthCredential
from .client import GHLOAuthClient, OAuthError, TokenResponse

log = logging.getLogger(__name__)


class TokenStore:
    def __init__(
        self,
        db: AsyncSession,
        oauth_client: GHLOAuthClient | None = None,
        *,
        expiry_buffer: timedelta | None = None,
    ):
        self.db = db
        self.oauth_client = oauth_client or GHLOAuthClient.from_settings()
        self.expiry_buffer = expiry_buffer or timedelta(seconds=settings.token_expiry_buffer_seconds)

    async def store(
        self,
        tenant_id: uuid.UUID,
        tokens: TokenResponse,
        *,
        previous: OAuthCredential | None = None,
    ) -> OAuthCredential:
        """Persist a fresh credential, superseding any valid one for the same location."""
        location_id = tokens.location_id or (previous.location_id if previous else None)
        company_id = tokens.company_id or (previous.company_id if previous else None)
        now = utcnow()

        stmt = update(OAuthCredential).where(
            OAuthCredential.tenant_id == tenant_id,
            OAuthCredential.is_valid.is_(True),
        )
        if location_id is None:
            stmt = stmt.where(OAuthCredential.location_id.is_(None))
        else:
            stmt = stmt.where(OAuthCredential.location_id == location_id)
        await self.db.execute(stmt.values(is_valid=False))

        credential = OAuthCredential(
            tenant_id=tenant_id,
            location_id=location_id,
            company_id=company_id,
            access_token=tokens.access_token,
            refresh_token=tokens.refresh_token,
            token_type=tokens.token_type or "Bearer",
            expires_at=now + timedelta(seconds=tokens.expires_in),
            scopes=tokens.scopes,
            user_type=tokens.user_type,
            is_valid=True,
            last_refreshed_at=now,
        )
        self.db.add(credential)
        await self.db.commit()
        await self.db.refresh(credential)
        log.info("Stored OAuth credential for tenant %s location %s", tenant_id, location_id)
        return credential

    async def _current(self, tenant_id: uuid.UUID, location_id: str | None) -> OAuthCredential | None:
        stmt = select(OAuthCredential).where(
            OAuthCredential.tenant_id == tenant_id,
            OAuthCredential.is_valid.is_(True),
        )
        if location_id is not None:
            stmt = stmt.where(OAuthCredential.location_id == location_id)
        stmt = stmt.order_by(OAuthCredential.created_at.desc(), OAuthCredential.expires_at.desc()).limit(1)
        return (await self.db.execute(stmt)).scalar_one_or_none()

    def needs_refresh(self, credential: OAuthCredential) -> bool:
        return as_utc(credential.expires_at) - utcnow() < self.expiry_buffer

    async def get_valid(
        self,
        tenant_id: uuid.UUID,
        location_id: str | None = None,
        *,
        force_refresh: bool = False,
    ) -> OAuthCredential | None:
        credential = await self._current(tenant_id, location_id)
        if credential is None:
            return None
        if not force_refresh and not self.needs_refresh(credential):
            return credential

        try:
            tokens = await self.oauth_client.refresh(credential.refresh_token)
        except OAuthError as exc:
            log.warning(
                "Token refresh failed for tenant %s location %s: %s",
                tenant_id,
                credential.location_id,
                exc.error_code or exc.message,
            )
            await self.invalidate(credential.id)
            return None
        return await self.store(tenant_id, tokens, previous=credential)

    async def invalidate(self, credential_id: uuid.UUID) -> None:
        await self.db.execute(
            update(OAuthCredential).where(OAuthCredential.id == credential_id).values(is_valid=False)
        )
        await self.db.commit()

    async def revoke(self, tenant_id: uuid.UUID, location_id: str | None = None) -> int:
        """Mark the tenant's credentials (or one location's) invalid. Rows are kept."""
        stmt = update(OAuthCredential).where(
            OAuthCredential.tenant_id == tenant_id,
            OAuthCredential.is_valid.is_(True),
        )
        if location_id is not None:
            stmt = stmt.where(OAuthCredential.location_id == location_id)
        result = await self.db.execute(stmt.values(is_valid=False))
        await self.db.commit()
        log.info("Revoked %d credential(s) for tenant %s location %s", result.rowcount, tenant_id, location_id)
        return result.rowcount

    async def get_tokens_for_tenant(self, tenant_id: uuid.UUID) -> list[OAuthCredential]:
        stmt = (
            select(OAuthCredential)
            .where(OAuthCredential.tenant_id == tenant_id, OAuthCredential.is_valid.is_(True))
            .order_by(OAuthCredential.created_at.desc())
        )
        return list((await self.db.execute(stmt)).scalars().all())

    async def is_location_connected(self, tenant_id: uuid.UUID, location_id: str) -> bool:
        return await self._current(tenant_id, location_id) is not None
