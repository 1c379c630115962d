"""Invoice model."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, DateTime, Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UpstreamEntityMixin


class Invoice(UpstreamEntityMixin, Base):
    __tablename__ = "ghl_invoice"

    contact_id: Mapped[str | None] = mapped_column(String(100), default=None, index=True)
    invoice_number: Mapped[str | None] = mapped_column(String(100), default=None)
    name: Mapped[str | None] = mapped_column(String(255), default=None)
    title: Mapped[str | None] = mapped_column(String(255), default=None)
    status: Mapped[str] = mapped_column(String(30), default="draft")
    due_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    issue_date: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    amount_due: Mapped[float] = mapped_column(Float, default=0.0)
    total_amount: Mapped[float] = mapped_column(Float, default=0.0)
    discount: Mapped[float] = mapped_column(Float, default=0.0)
    currency: Mapped[str] = mapped_column(String(10), default="USD")
    items: Mapped[list[Any]] = mapped_column(JSON, default=list)
    business_details: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    payment_terms: Mapped[str | None] = mapped_column(Text, default=None)
    notes: Mapped[str | None] = mapped_column(Text, default=None)
    sent_to: Mapped[list[Any]] = mapped_column(JSON, default=list)
