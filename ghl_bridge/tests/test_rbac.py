"""Tests for roles, ownership checks and permission overrides."""

from __future__ import annotations

import uuid
from datetime import timedelta

import pytest

from ghl_bridge.clock import utcnow
from ghl_bridge.entities import EntityType
from ghl_bridge.errors import InvalidRequestError
from ghl_bridge.models import DashboardUser, PermissionOverride, Tenant, UserLocationAssignment
from ghl_bridge.rbac.context import EntityOwnership, UserContext, ownership_of
from ghl_bridge.rbac.permissions import ROLE_PERMISSIONS, Action, Role, has_role, parse_role
from ghl_bridge.rbac.service import (
    PermissionService,
    build_permission_matrix,
    can_access_location,
    evaluate,
    filter_by_access,
    find_override,
)

TENANT_ID = uuid.uuid4()


def _override(entity_type="users", action="read", allowed=True, entity_id=None, expires_in=None, age=0, reason=None):
    now = utcnow()
    return PermissionOverride(
        id=uuid.uuid4(),
        user_id=uuid.uuid4(),
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        is_allowed=allowed,
        reason=reason,
        expires_at=now + expires_in if expires_in is not None else None,
        created_at=now - timedelta(minutes=age),
    )


def _context(role: Role, ghl_user_id="ghl_me", locations=("loc_main",), team=(), overrides=()) -> UserContext:
    user = DashboardUser(
        id=uuid.uuid4(), tenant_id=TENANT_ID, email="u@example.com", role=role.value, ghl_user_id=ghl_user_id
    )
    tenant = Tenant(id=TENANT_ID, name="Acme", slug="acme")
    return UserContext(
        user=user,
        tenant=tenant,
        role=role,
        permissions=build_permission_matrix(role, overrides),
        assigned_locations=frozenset(locations),
        team_members=frozenset(team),
        overrides=list(overrides),
    )


class TestRoles:
    def test_hierarchy(self):
        assert Role.ADMIN.level > Role.MANAGER.level > Role.AGENT.level
        assert has_role("admin", Role.MANAGER)
        assert has_role(Role.MANAGER, [Role.MANAGER])
        assert not has_role("agent", ("manager", "admin"))

    def test_unknown_role_is_agent(self):
        assert parse_role("superuser") is Role.AGENT
        assert parse_role(None) is Role.AGENT
        assert parse_role(" Manager ") is Role.MANAGER

    def test_default_matrix(self):
        admin, manager, agent = (ROLE_PERMISSIONS[r] for r in (Role.ADMIN, Role.MANAGER, Role.AGENT))
        assert all(all(actions.values()) for actions in admin.values())
        assert manager[EntityType.CONTACTS][Action.DELETE] is False
        assert manager[EntityType.CONTACTS][Action.UPDATE] is True
        assert manager[EntityType.PIPELINES] == {
            Action.CREATE: False, Action.READ: True, Action.UPDATE: False, Action.DELETE: False
        }
        assert agent[EntityType.USERS][Action.READ] is False
        assert agent[EntityType.INVOICES][Action.UPDATE] is False
        assert agent[EntityType.OPPORTUNITIES][Action.CREATE] is True
        assert EntityType.MESSAGES not in agent


class TestEvaluate:
    def test_role_denial_reason(self):
        result = evaluate(_context(Role.AGENT), "users", "read")
        assert result.allowed is False
        assert result.reason == "Role agent cannot read users"

    def test_messages_follow_conversations(self):
        assert evaluate(_context(Role.AGENT), EntityType.MESSAGES, Action.CREATE).allowed
        assert not evaluate(_context(Role.AGENT), EntityType.MESSAGES, Action.DELETE).allowed

    def test_unknown_target_rejected(self):
        with pytest.raises(InvalidRequestError):
            evaluate(_context(Role.ADMIN), "widgets", "read")
        with pytest.raises(InvalidRequestError):
            evaluate(_context(Role.ADMIN), "contacts", "export")

    def test_agent_limited_to_own_records(self):
        context = _context(Role.AGENT)
        own = EntityOwnership(location_id="loc_main", assigned_to="ghl_me")
        other = EntityOwnership(location_id="loc_main", assigned_to="ghl_other")
        unassigned = EntityOwnership(location_id="loc_main")

        assert evaluate(context, "contacts", "update", own).allowed
        assert evaluate(context, "contacts", "update", unassigned).allowed
        denied = evaluate(context, "contacts", "update", other)
        assert denied.allowed is False
        assert denied.reason == "Agent can only access records assigned to them"

    def test_manager_limited_to_team(self):
        context = _context(Role.MANAGER, team={"ghl_agent"})
        assert evaluate(context, "opportunities", "read", EntityOwnership("loc_main", "ghl_agent")).allowed
        denied = evaluate(context, "opportunities", "read", EntityOwnership("loc_main", "ghl_stranger"))
        assert denied.reason == "Manager can only access records from their team"

    def test_location_assignment_required(self):
        denied = evaluate(_context(Role.MANAGER), "contacts", "read", EntityOwnership("loc_other", None))
        assert denied.allowed is False
        assert denied.reason == "User does not have access to this location"

    def test_admin_skips_ownership(self):
        context = _context(Role.ADMIN, locations=())
        assert evaluate(context, "contacts", "delete", EntityOwnership("loc_other", "ghl_x")).allowed
        assert can_access_location(context, "loc_anything")


class TestOverrides:
    def test_override_grants_beyond_role(self):
        override = _override("users", "read", allowed=True, reason="Temporary audit access")
        result = evaluate(_context(Role.AGENT, overrides=[override]), "users", "read")
        assert result.allowed is True
        assert result.override is override
        assert result.to_dict()["reason"] == "Temporary audit access"

    def test_override_bypasses_ownership(self):
        override = _override("contacts", "update", allowed=True)
        context = _context(Role.AGENT, overrides=[override])
        assert evaluate(context, "contacts", "update", EntityOwnership("loc_other", "ghl_other")).allowed

    def test_override_can_revoke(self):
        override = _override("contacts", "read", allowed=False)
        result = evaluate(_context(Role.ADMIN, overrides=[override]), "contacts", "read")
        assert result.allowed is False
        assert result.reason == "Permission override applied"

    def test_expired_override_ignored(self):
        override = _override("users", "read", allowed=True, expires_in=timedelta(minutes=-5))
        assert not evaluate(_context(Role.AGENT, overrides=[override]), "users", "read").allowed

    def test_record_specific_override_wins(self):
        type_wide = _override("contacts", "delete", allowed=False, age=0)
        specific = _override("contacts", "delete", allowed=True, entity_id="c42", age=10)
        context = _context(Role.ADMIN, overrides=[type_wide, specific])

        assert evaluate(context, "contacts", "delete", EntityOwnership(entity_id="c42")).allowed
        assert not evaluate(context, "contacts", "delete", EntityOwnership(entity_id="c7")).allowed

    def test_newest_override_wins(self):
        older = _override("users", "read", allowed=True, age=30)
        newer = _override("users", "read", allowed=False, age=1)
        context = _context(Role.AGENT, overrides=[older, newer])
        assert find_override(context, EntityType.USERS, Action.READ) is newer

    def test_matrix_folds_type_wide_overrides_only(self):
        matrix = build_permission_matrix(
            Role.AGENT,
            [_override("users", "read", allowed=True), _override("invoices", "update", entity_id="inv1")],
        )
        assert matrix[EntityType.USERS][Action.READ] is True
        assert matrix[EntityType.INVOICES][Action.UPDATE] is False
        assert ROLE_PERMISSIONS[Role.AGENT][EntityType.USERS][Action.READ] is False


class TestFiltering:
    def test_ownership_of_reads_rows_and_dicts(self):
        assert ownership_of({"locationId": "l1", "assignedTo": "u1", "id": "c1"}) == EntityOwnership(
            location_id="l1", assigned_to="u1", entity_id="c1"
        )
        row = type("Row", (), {"location_id": "l2", "assigned_user_id": "u2", "id": "a1"})()
        assert ownership_of(row).assigned_to == "u2"

    def test_filter_by_access(self):
        records = [
            {"id": "1", "locationId": "loc_main", "assignedTo": "ghl_me"},
            {"id": "2", "locationId": "loc_main", "assignedTo": "ghl_other"},
            {"id": "3", "locationId": "loc_other", "assignedTo": "ghl_me"},
            {"id": "4", "locationId": "loc_main"},
        ]
        visible = filter_by_access(records, _context(Role.AGENT))
        assert [r["id"] for r in visible] == ["1", "4"]
        assert len(filter_by_access(records, _context(Role.ADMIN, locations=()))) == 4


class TestPermissionService:
    @pytest.mark.asyncio
    async def test_manager_context_includes_team_and_locations(self, db, manager_user, agent_user):
        context = await PermissionService(db).get_user_context(manager_user.id)

        assert context.role is Role.MANAGER
        assert context.assigned_locations == frozenset({"loc_main"})
        assert context.team_members == frozenset({"ghl_agent"})

    @pytest.mark.asyncio
    async def test_inactive_user_has_no_context(self, db, agent_user):
        agent_user.is_active = False
        await db.commit()

        service = PermissionService(db)
        assert await service.get_user_context(agent_user.id) is None
        result = await service.check_permission(agent_user.id, "contacts", "read")
        assert result.allowed is False
        assert result.reason == "User not found"

    @pytest.mark.asyncio
    async def test_stored_override_applied(self, db, agent_user):
        db.add(PermissionOverride(user_id=agent_user.id, entity_type="users", action="read", is_allowed=True))
        db.add(PermissionOverride(user_id=agent_user.id, entity_type="invoices", action="update", is_allowed=True,
                                  expires_at=utcnow() - timedelta(days=1)))
        await db.commit()

        service = PermissionService(db)
        assert (await service.check_permission(agent_user.id, "users", "read")).allowed
        assert not (await service.check_permission(agent_user.id, "invoices", "update")).allowed

    @pytest.mark.asyncio
    async def test_accessible_locations(self, db, admin_user, agent_user, tenant):
        db.add(UserLocationAssignment(user_id=agent_user.id, location_id="loc_view_blocked", can_view=False))
        await db.commit()

        service = PermissionService(db)
        assert await service.get_accessible_locations(admin_user.id) == ["loc_main"]
        assert await service.get_accessible_locations(agent_user.id) == ["loc_main"]
        assert await service.get_accessible_locations(uuid.uuid4()) == []
