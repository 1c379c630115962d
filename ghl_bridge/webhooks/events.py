"""Inbound webhook event types and the delivery envelope."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from ..entities import EntityType


class WebhookEventType(str, Enum):
    CONTACT_CREATE = "ContactCreate"
    CONTACT_UPDATE = "ContactUpdate"
    CONTACT_DELETE = "ContactDelete"
    CONTACT_DND_UPDATE = "ContactDndUpdate"
    CONTACT_TAG_UPDATE = "ContactTagUpdate"
    OPPORTUNITY_CREATE = "OpportunityCreate"
    OPPORTUNITY_STATUS_UPDATE = "OpportunityStatusUpdate"
    OPPORTUNITY_STAGE_UPDATE = "OpportunityStageUpdate"
    OPPORTUNITY_MONETARY_VALUE_UPDATE = "OpportunityMonetaryValueUpdate"
    OPPORTUNITY_ASSIGNED_TO_UPDATE = "OpportunityAssignedToUpdate"
    OPPORTUNITY_DELETE = "OpportunityDelete"
    APPOINTMENT_CREATE = "AppointmentCreate"
    APPOINTMENT_UPDATE = "AppointmentUpdate"
    APPOINTMENT_DELETE = "AppointmentDelete"
    APPOINTMENT_STATUS_UPDATE = "AppointmentStatusUpdate"
    CONVERSATION_UNREAD_UPDATE = "ConversationUnreadUpdate"
    INBOUND_MESSAGE = "InboundMessage"
    OUTBOUND_MESSAGE = "OutboundMessage"
    MESSAGE_STATUS_UPDATE = "MessageStatusUpdate"
    INVOICE_CREATE = "InvoiceCreate"
    INVOICE_UPDATE = "InvoiceUpdate"
    INVOICE_SENT = "InvoiceSent"
    INVOICE_PAID = "InvoicePaid"
    INVOICE_PARTIALLY_PAID = "InvoicePartiallyPaid"
    INVOICE_VOID = "InvoiceVoid"
    TASK_CREATE = "TaskCreate"
    TASK_COMPLETE = "TaskComplete"
    TASK_DELETE = "TaskDelete"
    NOTE_CREATE = "NoteCreate"
    LOCATION_UPDATE = "LocationUpdate"
    USER_CREATE = "UserCreate"
    USER_UPDATE = "UserUpdate"

    @classmethod
    def parse(cls, value: str) -> WebhookEventType | None:
        try:
            return cls(value)
        except ValueError:
            return None


_PREFIX_ENTITY = (
    ("Contact", EntityType.CONTACTS),
    ("Opportunity", EntityType.OPPORTUNITIES),
    ("Appointment", EntityType.APPOINTMENTS),
    ("Conversation", EntityType.CONVERSATIONS),
    ("Invoice", EntityType.INVOICES),
    ("Location", EntityType.LOCATIONS),
    ("User", EntityType.USERS),
)

EVENT_ENTITY: dict[WebhookEventType, EntityType] = {
    WebhookEventType.INBOUND_MESSAGE: EntityType.MESSAGES,
    WebhookEventType.OUTBOUND_MESSAGE: EntityType.MESSAGES,
    WebhookEventType.MESSAGE_STATUS_UPDATE: EntityType.MESSAGES,
}
for _event in WebhookEventType:
    for _prefix, _entity in _PREFIX_ENTITY:
        if _event.value.startswith(_prefix):
            EVENT_ENTITY[_event] = _entity
            break


def audit_entity_type(event_type: str) -> str:
    """Entity type recorded in the sync log; ``unknown`` for tasks, notes and unrecognized types."""
    event = WebhookEventType.parse(event_type)
    entity = EVENT_ENTITY.get(event) if event else None
    return entity.value if entity else "unknown"


# Delivery metadata that must not leak into entity payloads. ``type`` in
# particular collides with the contact ``type`` field.
ENVELOPE_KEYS = frozenset({"type", "locationId", "eventId", "webhookId", "timestamp", "version"})


class WebhookEnvelope(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str = Field(min_length=1)
    location_id: str = Field(alias="locationId", min_length=1)
    id: str | None = None
    event_id: str | None = Field(default=None, validation_alias=AliasChoices("eventId", "webhookId"))
    timestamp: str | None = None


def entity_payload(data: dict[str, Any]) -> dict[str, Any]:
    return {k: v for k, v in data.items() if k not in ENVELOPE_KEYS}
