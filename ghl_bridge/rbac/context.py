"""Resolved per-request authorization context."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from typing import Any

from ..models import DashboardUser, PermissionOverride, Tenant
from .permissions import PermissionMatrix, Role


@dataclass(frozen=True)
class EntityOwnership:
    location_id: str | None = None
    assigned_to: str | None = None
    created_by: str | None = None
    entity_id: str | None = None


@dataclass
class PermissionCheckResult:
    allowed: bool
    reason: str | None = None
    override: PermissionOverride | None = None

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {"allowed": self.allowed}
        if self.reason:
            body["reason"] = self.reason
        if self.override is not None:
            body["overrideId"] = str(self.override.id)
        return body


ALLOWED = PermissionCheckResult(allowed=True)


@dataclass
class UserContext:
    user: DashboardUser
    tenant: Tenant
    role: Role
    permissions: PermissionMatrix
    assigned_locations: frozenset[str] = frozenset()
    # Upstream user ids of the agents a manager supervises.
    team_members: frozenset[str] = frozenset()
    overrides: list[PermissionOverride] = field(default_factory=list)

    @property
    def user_id(self) -> uuid.UUID:
        return self.user.id

    @property
    def tenant_id(self) -> uuid.UUID:
        return self.tenant.id

    @property
    def ghl_user_id(self) -> str | None:
        return self.user.ghl_user_id

    @property
    def is_admin(self) -> bool:
        return self.role is Role.ADMIN


def _field(record: Any, *names: str) -> Any:
    for name in names:
        value = record.get(name) if isinstance(record, dict) else getattr(record, name, None)
        if value is not None:
            return value
    return None


def ownership_of(record: Any) -> EntityOwnership:
    """Ownership facts of a row or a row-shaped dict (snake or camel case)."""
    return EntityOwnership(
        location_id=_field(record, "location_id", "locationId"),
        assigned_to=_field(record, "assigned_to", "assignedTo", "assigned_user_id", "assignedUserId"),
        created_by=_field(record, "created_by", "createdBy"),
        entity_id=_field(record, "id"),
    )
