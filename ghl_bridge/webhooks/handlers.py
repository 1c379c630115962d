"""Per-event webhook handlers and the dispatch table that routes to them.

Handlers stage their writes on the session; the pipeline owns the commit so
the entity change, the idempotency ledger row and the audit entry land in one
transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable

from sqlalchemy.ext.asyncio import AsyncSession

from ..clock import utcnow
from ..errors import MappingError
from ..models import Appointment, Contact, Conversation, Invoice, Message, Opportunity
from ..store import delete_row, find_by_id, update_row, upsert_row
from ..sync.mappers import (
    map_appointment,
    map_contact,
    map_conversation,
    map_invoice,
    map_message,
    map_opportunity,
    parse_payload,
)
from ..sync.schemas import (
    AppointmentPayload,
    ContactPayload,
    ConversationPayload,
    InvoicePayload,
    MessagePayload,
    OpportunityPayload,
)
from .events import WebhookEventType as E

log = logging.getLogger(__name__)

CLOSED_OPPORTUNITY_STATUSES = frozenset({"won", "lost"})


@dataclass
class WebhookContext:
    db: AsyncSession
    event_type: E
    location_id: str
    payload: dict[str, Any]


@dataclass
class HandlerOutcome:
    entity_id: str | None
    action: str


Handler = Callable[[WebhookContext], Awaitable[HandlerOutcome]]

EVENT_HANDLERS: dict[E, Handler] = {}


def handles(*event_types: E) -> Callable[[Handler], Handler]:
    def register(fn: Handler) -> Handler:
        for event_type in event_types:
            if event_type in EVENT_HANDLERS:
                raise RuntimeError(f"Duplicate webhook handler for {event_type.value}")
            EVENT_HANDLERS[event_type] = fn
        return fn

    return register


def _require_id(ctx: WebhookContext, payload: dict[str, Any] | None = None) -> str:
    payload = ctx.payload if payload is None else payload
    entity_id = payload.get("id") or payload.get("_id")
    if not entity_id:
        raise MappingError(f"{ctx.event_type.value} payload has no id")
    return str(entity_id)


# Contacts


@handles(E.CONTACT_CREATE)
async def contact_create(ctx: WebhookContext) -> HandlerOutcome:
    payload = parse_payload(ContactPayload, ctx.payload)
    await upsert_row(ctx.db, Contact, map_contact(payload, ctx.location_id))
    return HandlerOutcome(payload.id, "create")


@handles(E.CONTACT_UPDATE, E.CONTACT_DND_UPDATE, E.CONTACT_TAG_UPDATE)
async def contact_update(ctx: WebhookContext) -> HandlerOutcome:
    payload = parse_payload(ContactPayload, ctx.payload)
    values = map_contact(payload, ctx.location_id, partial=True)
    values.setdefault("date_updated", utcnow())
    await upsert_row(ctx.db, Contact, values)
    return HandlerOutcome(payload.id, "update")


@handles(E.CONTACT_DELETE)
async def contact_delete(ctx: WebhookContext) -> HandlerOutcome:
    """Contacts are only ever soft-deleted; reconciliation purges them later."""
    contact_id = _require_id(ctx)
    contact = await find_by_id(ctx.db, Contact, contact_id)
    if contact is None:
        log.info("ContactDelete for unknown contact %s in %s", contact_id, ctx.location_id)
    else:
        contact.is_deleted = True
        contact.date_updated = utcnow()
    return HandlerOutcome(contact_id, "delete")


# Opportunities


@handles(E.OPPORTUNITY_CREATE)
async def opportunity_create(ctx: WebhookContext) -> HandlerOutcome:
    payload = parse_payload(OpportunityPayload, ctx.payload)
    await upsert_row(ctx.db, Opportunity, map_opportunity(payload, ctx.location_id))
    return HandlerOutcome(payload.id, "create")


@handles(
    E.OPPORTUNITY_STATUS_UPDATE,
    E.OPPORTUNITY_STAGE_UPDATE,
    E.OPPORTUNITY_MONETARY_VALUE_UPDATE,
    E.OPPORTUNITY_ASSIGNED_TO_UPDATE,
)
async def opportunity_update(ctx: WebhookContext) -> HandlerOutcome:
    payload = parse_payload(OpportunityPayload, ctx.payload)
    values = map_opportunity(payload, ctx.location_id, partial=True)
    values.setdefault("date_updated", utcnow())
    if payload.status in CLOSED_OPPORTUNITY_STATUSES:
        values.setdefault("closed_at", utcnow())
    elif payload.status == "open":
        values["closed_at"] = None
    await upsert_row(ctx.db, Opportunity, values)
    return HandlerOutcome(payload.id, "update")


@handles(E.OPPORTUNITY_DELETE)
async def opportunity_delete(ctx: WebhookContext) -> HandlerOutcome:
    opportunity_id = _require_id(ctx)
    await delete_row(ctx.db, Opportunity, opportunity_id)
    return HandlerOutcome(opportunity_id, "delete")


# Appointments


def _appointment_payload(ctx: WebhookContext) -> dict[str, Any]:
    """Appointment events may nest the record under ``appointment``."""
    nested = ctx.payload.get("appointment")
    if not isinstance(nested, dict):
        return ctx.payload
    raw = dict(nested)
    if not raw.get("id") and ctx.payload.get("id"):
        raw["id"] = ctx.payload["id"]
    return raw


@handles(E.APPOINTMENT_CREATE)
async def appointment_create(ctx: WebhookContext) -> HandlerOutcome:
    payload = parse_payload(AppointmentPayload, _appointment_payload(ctx))
    await upsert_row(ctx.db, Appointment, map_appointment(payload, ctx.location_id))
    return HandlerOutcome(payload.id, "create")


@handles(E.APPOINTMENT_UPDATE, E.APPOINTMENT_STATUS_UPDATE)
async def appointment_update(ctx: WebhookContext) -> HandlerOutcome:
    payload = parse_payload(AppointmentPayload, _appointment_payload(ctx))
    await upsert_row(ctx.db, Appointment, map_appointment(payload, ctx.location_id, partial=True))
    return HandlerOutcome(payload.id, "update")


@handles(E.APPOINTMENT_DELETE)
async def appointment_delete(ctx: WebhookContext) -> HandlerOutcome:
    appointment_id = _require_id(ctx, _appointment_payload(ctx))
    await delete_row(ctx.db, Appointment, appointment_id)
    return HandlerOutcome(appointment_id, "delete")


# Conversations and messages


@handles(E.CONVERSATION_UNREAD_UPDATE)
async def conversation_unread(ctx: WebhookContext) -> HandlerOutcome:
    payload = parse_payload(ConversationPayload, ctx.payload)
    if payload.unread_count is None:
        raise MappingError(f"ConversationUnreadUpdate for {payload.id} has no unreadCount")
    await upsert_row(ctx.db, Conversation, map_conversation(payload, ctx.location_id, partial=True))
    return HandlerOutcome(payload.id, "update")


@handles(E.INBOUND_MESSAGE, E.OUTBOUND_MESSAGE)
async def message_create(ctx: WebhookContext) -> HandlerOutcome:
    payload = parse_payload(MessagePayload, ctx.payload)
    if not payload.conversation_id:
        raise MappingError(f"{ctx.event_type.value} {payload.id} has no conversationId")
    inbound = ctx.event_type is E.INBOUND_MESSAGE

    values = map_message(payload, ctx.location_id)
    values["direction"] = "inbound" if inbound else "outbound"
    message, _ = await upsert_row(ctx.db, Message, values)

    conversation = await find_by_id(ctx.db, Conversation, payload.conversation_id)
    if conversation is None:
        conversation = Conversation(
            id=payload.conversation_id,
            location_id=ctx.location_id,
            contact_id=payload.contact_id,
            type=(message.message_type or "sms").lower(),
            unread_count=0,
            extra={},
        )
        ctx.db.add(conversation)
    conversation.last_message_body = message.body
    conversation.last_message_type = message.message_type
    conversation.last_message_date = message.date_added
    if inbound:
        conversation.unread_count = (conversation.unread_count or 0) + 1
    return HandlerOutcome(payload.id, "create")


@handles(E.MESSAGE_STATUS_UPDATE)
async def message_status(ctx: WebhookContext) -> HandlerOutcome:
    message_id = ctx.payload.get("id") or ctx.payload.get("messageId")
    if not message_id:
        raise MappingError("MessageStatusUpdate payload has no message id")
    status = ctx.payload.get("status")
    if not status:
        raise MappingError(f"MessageStatusUpdate for {message_id} has no status")
    await update_row(ctx.db, Message, message_id, {"status": status})
    return HandlerOutcome(message_id, "update")


# Invoices


@handles(E.INVOICE_CREATE)
async def invoice_create(ctx: WebhookContext) -> HandlerOutcome:
    payload = parse_payload(InvoicePayload, ctx.payload)
    await upsert_row(ctx.db, Invoice, map_invoice(payload, ctx.location_id))
    return HandlerOutcome(payload.id, "create")


def _void_note(existing: str | None, reason: str | None) -> str:
    note = f"VOIDED: {reason or 'no reason given'}"
    return f"{existing}\n{note}" if existing else note


@handles(E.INVOICE_UPDATE, E.INVOICE_SENT, E.INVOICE_PAID, E.INVOICE_PARTIALLY_PAID, E.INVOICE_VOID)
async def invoice_update(ctx: WebhookContext) -> HandlerOutcome:
    payload = parse_payload(InvoicePayload, ctx.payload)
    values = map_invoice(payload, ctx.location_id, partial=True)
    event = ctx.event_type

    if event is E.INVOICE_SENT:
        values["status"] = "sent"
    elif event is E.INVOICE_PAID:
        values["status"] = "paid"
        values["amount_due"] = 0.0
    elif event is E.INVOICE_PARTIALLY_PAID:
        values["status"] = "partially_paid"
        remaining = ctx.payload.get("remainingAmount")
        if remaining is not None:
            values["amount_due"] = float(remaining)
    elif event is E.INVOICE_VOID:
        values["status"] = "void"
        existing = await find_by_id(ctx.db, Invoice, payload.id)
        reason = ctx.payload.get("reason") or ctx.payload.get("voidReason")
        values["notes"] = _void_note(existing.notes if existing else None, reason)

    await upsert_row(ctx.db, Invoice, values)
    return HandlerOutcome(payload.id, "update")
