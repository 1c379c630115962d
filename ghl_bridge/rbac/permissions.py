"""Roles, actions and the default per-role permission matrix."""

from __future__ import annotations

from enum import Enum
from typing import Iterable

from ..entities import EntityType


class Role(str, Enum):
    ADMIN = "admin"
    MANAGER = "manager"
    AGENT = "agent"

    @property
    def level(self) -> int:
        return ROLE_LEVELS[self]


ROLE_LEVELS = {Role.ADMIN: 3, Role.MANAGER: 2, Role.AGENT: 1}


class Action(str, Enum):
    CREATE = "create"
    READ = "read"
    UPDATE = "update"
    DELETE = "delete"


PermissionMatrix = dict[EntityType, dict[Action, bool]]

# Messages are governed by their conversation.
PERMISSION_ENTITY = {EntityType.MESSAGES: EntityType.CONVERSATIONS}

RBAC_ENTITY_TYPES = tuple(t for t in EntityType if t not in PERMISSION_ENTITY)

CRUD = "crud"
CRU = "cru"
READ_ONLY = "r"
NONE = ""


def _grants(spec: str) -> dict[Action, bool]:
    letters = {"c": Action.CREATE, "r": Action.READ, "u": Action.UPDATE, "d": Action.DELETE}
    return {action: letter in spec for letter, action in letters.items()}


def _matrix(**grants: str) -> PermissionMatrix:
    return {entity: _grants(grants[entity.value]) for entity in RBAC_ENTITY_TYPES}


ROLE_PERMISSIONS: dict[Role, PermissionMatrix] = {
    Role.ADMIN: _matrix(**{t.value: CRUD for t in RBAC_ENTITY_TYPES}),
    Role.MANAGER: _matrix(
        contacts=CRU,
        opportunities=CRU,
        appointments=CRU,
        conversations=CRU,
        invoices=CRU,
        calendars=CRU,
        pipelines=READ_ONLY,
        products=CRU,
        users=READ_ONLY,
        locations=READ_ONLY,
        workflows=READ_ONLY,
    ),
    Role.AGENT: _matrix(
        contacts=CRU,
        opportunities=CRU,
        appointments=CRU,
        conversations=CRU,
        invoices=READ_ONLY,
        calendars=READ_ONLY,
        pipelines=READ_ONLY,
        products=READ_ONLY,
        users=NONE,
        locations=READ_ONLY,
        workflows=READ_ONLY,
    ),
}


def parse_role(value: str | Role | None) -> Role:
    """Unknown or missing roles collapse to the least privileged one."""
    try:
        return Role((value or "").strip().lower()) if not isinstance(value, Role) else value
    except ValueError:
        return Role.AGENT


def has_role(user_role: str | Role, required: str | Role | Iterable[str | Role]) -> bool:
    """True if ``user_role`` is at or above any of the required roles."""
    if isinstance(required, (str, Role)):
        required = [required]
    level = parse_role(user_role).level
    return any(level >= parse_role(role).level for role in required)


def permission_entity(entity_type: EntityType | str) -> EntityType:
    entity = EntityType(entity_type)
    return PERMISSION_ENTITY.get(entity, entity)


def copy_matrix(matrix: PermissionMatrix) -> PermissionMatrix:
    return {entity: dict(actions) for entity, actions in matrix.items()}
