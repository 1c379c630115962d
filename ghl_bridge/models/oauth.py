"""Stored OAuth credentials for the upstream platform."""

from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, String, Text, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, TimestampMixin, UUIDMixin


class OAuthCredential(UUIDMixin, TimestampMixin, Base):
    """One valid row per (tenant, location); superseded rows stay with is_valid=False."""

    __tablename__ = "ghl_oauth_credential"
    __table_args__ = (
        Index("ix_oauth_credential_lookup", "tenant_id", "location_id", "is_valid"),
    )

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenant.id", ondelete="CASCADE"), index=True
    )
    location_id: Mapped[str | None] = mapped_column(String(100), default=None)
    company_id: Mapped[str | None] = mapped_column(String(100), default=None)
    access_token: Mapped[str] = mapped_column(Text)
    refresh_token: Mapped[str] = mapped_column(Text)
    token_type: Mapped[str] = mapped_column(String(20), default="Bearer")
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True))
    scopes: Mapped[list[str]] = mapped_column(JSON, default=list)
    user_type: Mapped[str | None] = mapped_column(String(20), default=None)
    is_valid: Mapped[bool] = mapped_column(Boolean, default=True)
    last_refreshed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
