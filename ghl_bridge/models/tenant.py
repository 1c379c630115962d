"""Tenant, dashboard user and access-assignment models."""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Any

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, String, UniqueConstraint, Uuid, func
from sqlalchemy.orm import Mapped, mapped_column, relationship

from .base import Base, TimestampMixin, UUIDMixin


class Tenant(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "tenant"

    name: Mapped[str] = mapped_column(String(255))
    slug: Mapped[str] = mapped_column(String(100), unique=True, index=True)
    status: Mapped[str] = mapped_column(String(20), default="active")
    subscription_tier: Mapped[str] = mapped_column(String(50), default="free")
    settings: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)

    users: Mapped[list["DashboardUser"]] = relationship(back_populates="tenant")


class DashboardUser(UUIDMixin, TimestampMixin, Base):
    __tablename__ = "dashboard_user"

    tenant_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("tenant.id", ondelete="CASCADE"), index=True
    )
    email: Mapped[str] = mapped_column(String(255), index=True)
    full_name: Mapped[str] = mapped_column(String(255), default="")
    role: Mapped[str] = mapped_column(String(20), default="agent")
    ghl_user_id: Mapped[str | None] = mapped_column(String(100), default=None, index=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    last_login: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)

    tenant: Mapped[Tenant] = relationship(back_populates="users")


class UserLocationAssignment(UUIDMixin, Base):
    __tablename__ = "user_location_assignment"
    __table_args__ = (UniqueConstraint("user_id", "location_id", name="uq_user_location"),)

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("dashboard_user.id", ondelete="CASCADE"), index=True
    )
    location_id: Mapped[str] = mapped_column(String(100), index=True)
    can_view: Mapped[bool] = mapped_column(Boolean, default=True)
    can_edit: Mapped[bool] = mapped_column(Boolean, default=False)
    can_delete: Mapped[bool] = mapped_column(Boolean, default=False)
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    assigned_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, default=None)


class ManagerTeamAssignment(UUIDMixin, Base):
    __tablename__ = "manager_team_assignment"
    __table_args__ = (UniqueConstraint("manager_id", "agent_id", name="uq_manager_agent"),)

    manager_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("dashboard_user.id", ondelete="CASCADE"), index=True
    )
    agent_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("dashboard_user.id", ondelete="CASCADE"), index=True
    )
    assigned_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
    assigned_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, default=None)


class PermissionOverride(UUIDMixin, Base):
    __tablename__ = "permission_override"

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("dashboard_user.id", ondelete="CASCADE"), index=True
    )
    entity_type: Mapped[str] = mapped_column(String(50))
    entity_id: Mapped[str | None] = mapped_column(String(100), default=None)
    action: Mapped[str] = mapped_column(String(20))
    is_allowed: Mapped[bool] = mapped_column(Boolean, default=True)
    reason: Mapped[str | None] = mapped_column(String(500), default=None)
    granted_by: Mapped[uuid.UUID | None] = mapped_column(Uuid, default=None)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), default=None)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())
