"""Permission checks for dashboard users.

Order of evaluation: an unexpired override for the user, entity type and
action decides outright; otherwise the role matrix must grant the action,
and non-admins must also pass the location and assignment constraints.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Iterable, TypeVar

from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession

from ..clock import as_utc, utcnow
from ..entities import EntityType
from ..errors import InvalidRequestError
from ..models import (
    DashboardUser,
    Location,
    ManagerTeamAssignment,
    PermissionOverride,
    Tenant,
    UserLocationAssignment,
)
from .context import ALLOWED, EntityOwnership, PermissionCheckResult, UserContext, ownership_of
from .permissions import ROLE_PERMISSIONS, Action, PermissionMatrix, Role, copy_matrix, parse_role, permission_entity

log = logging.getLogger(__name__)

RecordT = TypeVar("RecordT")


def _is_live(override: PermissionOverride, now: datetime) -> bool:
    expires_at = as_utc(override.expires_at)
    return expires_at is None or expires_at > now


def build_permission_matrix(role: Role, overrides: Iterable[PermissionOverride]) -> PermissionMatrix:
    """Role defaults with type-wide overrides folded in (record-specific ones are skipped)."""
    matrix = copy_matrix(ROLE_PERMISSIONS[role])
    for override in overrides:
        if override.entity_id:
            continue
        try:
            entity, action = EntityType(override.entity_type), Action(override.action)
        except ValueError:
            log.warning("Ignoring override %s with unknown target %s/%s", override.id, override.entity_type, override.action)
            continue
        if entity in matrix:
            matrix[entity][action] = override.is_allowed
    return matrix


def find_override(
    context: UserContext,
    entity_type: EntityType,
    action: Action,
    entity_id: str | None = None,
    *,
    now: datetime | None = None,
) -> PermissionOverride | None:
    """Most specific, then newest, live override matching the request."""
    now = now or utcnow()
    candidates = [
        o for o in context.overrides
        if o.entity_type == entity_type.value
        and o.action == action.value
        and (o.entity_id is None or o.entity_id == entity_id)
        and _is_live(o, now)
    ]
    if not candidates:
        return None
    candidates.sort(key=lambda o: (o.entity_id is not None, as_utc(o.created_at) or now), reverse=True)
    return candidates[0]


def check_ownership(context: UserContext, ownership: EntityOwnership) -> PermissionCheckResult:
    if context.is_admin:
        return ALLOWED

    if ownership.location_id and ownership.location_id not in context.assigned_locations:
        return PermissionCheckResult(False, "User does not have access to this location")

    assignee = ownership.assigned_to
    if not assignee or assignee == context.ghl_user_id:
        return ALLOWED
    if context.role is Role.MANAGER:
        if assignee in context.team_members:
            return ALLOWED
        return PermissionCheckResult(False, "Manager can only access records from their team")
    return PermissionCheckResult(False, "Agent can only access records assigned to them")


def evaluate(
    context: UserContext,
    entity_type: EntityType | str,
    action: Action | str,
    ownership: EntityOwnership | None = None,
    *,
    now: datetime | None = None,
) -> PermissionCheckResult:
    try:
        entity = permission_entity(entity_type)
        action = Action(action)
    except ValueError:
        raise InvalidRequestError(f"Unknown permission target {entity_type}/{action}") from None

    entity_id = ownership.entity_id if ownership else None
    override = find_override(context, entity, action, entity_id, now=now)
    if override is not None:
        return PermissionCheckResult(
            allowed=override.is_allowed,
            reason=override.reason or "Permission override applied",
            override=override,
        )

    if not ROLE_PERMISSIONS[context.role].get(entity, {}).get(action, False):
        return PermissionCheckResult(False, f"Role {context.role.value} cannot {action.value} {entity.value}")

    if ownership is not None:
        return check_ownership(context, ownership)
    return ALLOWED


def can_access_location(context: UserContext, location_id: str) -> bool:
    return context.is_admin or location_id in context.assigned_locations


def can_access_record(record: Any, context: UserContext) -> bool:
    return check_ownership(context, ownership_of(record)).allowed


def filter_by_access(records: Iterable[RecordT], context: UserContext) -> list[RecordT]:
    """List form of the location and assignment checks."""
    if context.is_admin:
        return list(records)
    return [r for r in records if can_access_record(r, context)]


class PermissionService:
    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_user_context(self, user_id: uuid.UUID) -> UserContext | None:
        user = await self.db.get(DashboardUser, user_id)
        if user is None or not user.is_active:
            return None
        tenant = await self.db.get(Tenant, user.tenant_id)
        if tenant is None:
            return None
        role = parse_role(user.role)

        locations = await self.db.scalars(
            select(UserLocationAssignment.location_id).where(
                UserLocationAssignment.user_id == user_id,
                UserLocationAssignment.can_view.is_(True),
            )
        )

        team: set[str] = set()
        if role is Role.MANAGER:
            members = await self.db.scalars(
                select(DashboardUser.ghl_user_id)
                .join(ManagerTeamAssignment, ManagerTeamAssignment.agent_id == DashboardUser.id)
                .where(ManagerTeamAssignment.manager_id == user_id, DashboardUser.ghl_user_id.is_not(None))
            )
            team = set(members)

        now = utcnow()
        rows = await self.db.scalars(
            select(PermissionOverride).where(
                PermissionOverride.user_id == user_id,
                or_(PermissionOverride.expires_at.is_(None), PermissionOverride.expires_at > now),
            )
        )
        overrides = [o for o in rows if _is_live(o, now)]

        return UserContext(
            user=user,
            tenant=tenant,
            role=role,
            permissions=build_permission_matrix(role, overrides),
            assigned_locations=frozenset(locations),
            team_members=frozenset(team),
            overrides=overrides,
        )

    async def check_permission(
        self,
        user_id: uuid.UUID,
        entity_type: EntityType | str,
        action: Action | str,
        ownership: EntityOwnership | None = None,
    ) -> PermissionCheckResult:
        context = await self.get_user_context(user_id)
        if context is None:
            return PermissionCheckResult(False, "User not found")
        result = evaluate(context, entity_type, action, ownership)
        if not result.allowed:
            log.info("Denied %s %s for user %s: %s", action, entity_type, user_id, result.reason)
        return result

    async def get_accessible_locations(self, user_id: uuid.UUID) -> list[str]:
        context = await self.get_user_context(user_id)
        if context is None:
            return []
        if context.is_admin:
            rows = await self.db.scalars(select(Location.id).where(Location.tenant_id == context.tenant_id))
            return list(rows)
        return sorted(context.assigned_locations)
