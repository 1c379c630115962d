"""Closed set of synchronized entity types and their poll intervals."""

from __future__ import annotations

from datetime import timedelta
from enum import Enum

from .errors import InvalidRequestError


class EntityType(str, Enum):
    CONTACTS = "contacts"
    OPPORTUNITIES = "opportunities"
    APPOINTMENTS = "appointments"
    CONVERSATIONS = "conversations"
    MESSAGES = "messages"
    INVOICES = "invoices"
    CALENDARS = "calendars"
    PIPELINES = "pipelines"
    PRODUCTS = "products"
    USERS = "users"
    LOCATIONS = "locations"
    WORKFLOWS = "workflows"


SYNC_INTERVALS: dict[EntityType, timedelta] = {
    EntityType.CONTACTS: timedelta(minutes=15),
    EntityType.OPPORTUNITIES: timedelta(minutes=10),
    EntityType.APPOINTMENTS: timedelta(minutes=5),
    EntityType.INVOICES: timedelta(minutes=30),
    EntityType.CALENDARS: timedelta(hours=1),
    EntityType.PIPELINES: timedelta(hours=24),
    EntityType.USERS: timedelta(hours=1),
    EntityType.PRODUCTS: timedelta(hours=24),
    EntityType.WORKFLOWS: timedelta(hours=24),
}

# Entity types the scheduler polls, in the order a manual "sync everything" walks them.
SCHEDULED_ENTITY_TYPES: tuple[EntityType, ...] = tuple(SYNC_INTERVALS)

DEFAULT_SYNC_INTERVAL = timedelta(hours=1)


def interval_for(entity_type: EntityType | str) -> timedelta:
    try:
        return SYNC_INTERVALS[EntityType(entity_type)]
    except (KeyError, ValueError):
        return DEFAULT_SYNC_INTERVAL


def parse_entity_type(value: str | EntityType) -> EntityType:
    """Return the EntityType for ``value`` or raise InvalidRequestError."""
    try:
        return EntityType(value)
    except ValueError:
        raise InvalidRequestError(f"Unknown entity type: {value}") from None
