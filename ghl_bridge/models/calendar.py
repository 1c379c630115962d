"""Calendar and appointment models."""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import Boolean, DateTime, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UpstreamEntityMixin


class Calendar(UpstreamEntityMixin, Base):
    __tablename__ = "ghl_calendar"

    name: Mapped[str] = mapped_column(String(255), default="")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    calendar_type: Mapped[str] = mapped_column(String(50), default="round_robin")
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)


class Appointment(UpstreamEntityMixin, Base):
    __tablename__ = "ghl_appointment"

    contact_id: Mapped[str | None] = mapped_column(String(100), default=None, index=True)
    calendar_id: Mapped[str | None] = mapped_column(String(100), default=None)
    title: Mapped[str] = mapped_column(String(255), default="Appointment")
    status: Mapped[str] = mapped_column(String(30), default="confirmed")
    appointment_status: Mapped[str | None] = mapped_column(String(30), default=None)
    start_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    end_time: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    timezone: Mapped[str] = mapped_column(String(50), default="UTC")
    assigned_user_id: Mapped[str | None] = mapped_column(String(100), default=None, index=True)
    appointment_type: Mapped[str | None] = mapped_column(String(50), default=None)
    notes: Mapped[str | None] = mapped_column(Text, default=None)
    address: Mapped[str | None] = mapped_column(String(500), default=None)
