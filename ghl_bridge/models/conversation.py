"""Conversation and message models."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, UpstreamEntityMixin


class Conversation(UpstreamEntityMixin, Base):
    __tablename__ = "ghl_conversation"

    contact_id: Mapped[str | None] = mapped_column(String(100), default=None, index=True)
    type: Mapped[str] = mapped_column(String(30), default="sms")
    channel: Mapped[str | None] = mapped_column(String(30), default=None)
    unread_count: Mapped[int] = mapped_column(Integer, default=0)
    last_message_body: Mapped[str | None] = mapped_column(Text, default=None)
    last_message_type: Mapped[str | None] = mapped_column(String(50), default=None)
    last_message_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), default=None
    )
    assigned_to: Mapped[str | None] = mapped_column(String(100), default=None, index=True)
    starred: Mapped[bool] = mapped_column(Boolean, default=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False)
    inbox_status: Mapped[str] = mapped_column(String(20), default="open")


class Message(UpstreamEntityMixin, Base):
    __tablename__ = "ghl_message"

    conversation_id: Mapped[str] = mapped_column(String(100), index=True)
    contact_id: Mapped[str | None] = mapped_column(String(100), default=None)
    body: Mapped[str | None] = mapped_column(Text, default=None)
    message_type: Mapped[str | None] = mapped_column(String(50), default=None)
    direction: Mapped[str | None] = mapped_column(String(20), default=None)
    status: Mapped[str] = mapped_column(String(30), default="delivered")
    content_type: Mapped[str] = mapped_column(String(100), default="text/plain")
    attachments: Mapped[list[Any]] = mapped_column(JSON, default=list)
    meta_data: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    source: Mapped[str | None] = mapped_column(String(100), default=None)
    user_id: Mapped[str | None] = mapped_column(String(100), default=None)
    date_added: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
