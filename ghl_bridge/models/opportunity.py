"""Opportunity model mirrored from the upstream platform."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UpstreamEntityMixin


class Opportunity(UpstreamEntityMixin, Base):
    __tablename__ = "ghl_opportunity"

    contact_id: Mapped[str | None] = mapped_column(String(100), default=None, index=True)
    name: Mapped[str] = mapped_column(String(255), default="")
    status: Mapped[str] = mapped_column(String(20), default="open")
    pipeline_id: Mapped[str | None] = mapped_column(String(100), default=None)
    pipeline_stage_id: Mapped[str | None] = mapped_column(String(100), default=None)
    monetary_value: Mapped[float] = mapped_column(Float, default=0.0)
    currency: Mapped[str] = mapped_column(String(10), default="USD")
    assigned_to: Mapped[str | None] = mapped_column(String(100), default=None, index=True)
    source: Mapped[str | None] = mapped_column(String(255), default=None)
    loss_reason: Mapped[str | None] = mapped_column(Text, default=None)
    custom_fields: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    notes: Mapped[str | None] = mapped_column(Text, default=None)
    date_added: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    date_updated: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
