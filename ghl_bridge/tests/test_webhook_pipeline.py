"""Tests for webhook verification, de-duplication and event handling."""

from __future__ import annotations

import json

import pytest
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from ghl_bridge.errors import AuthenticationError, InvalidRequestError
from ghl_bridge.models import Contact, Conversation, Invoice, Message, Opportunity, SyncLogEntry, WebhookEventRecord
from ghl_bridge.webhooks.events import WebhookEventType, audit_entity_type, entity_payload
from ghl_bridge.webhooks.handlers import EVENT_HANDLERS
from ghl_bridge.webhooks.pipeline import SKIPPED_DUPLICATE, UNHANDLED_EVENT_TYPE, WebhookPipeline, delivery_id
from ghl_bridge.webhooks.signature import compute_signature, verify_signature

LOCATION_ID = "loc_main"


def _body(event_type: str, event_id: str | None = None, **fields) -> bytes:
    data = {"type": event_type, "locationId": LOCATION_ID, **fields}
    if event_id:
        data["eventId"] = event_id
    return json.dumps(data).encode()


async def _ledger(db: AsyncSession) -> list[WebhookEventRecord]:
    rows = await db.execute(select(WebhookEventRecord).order_by(WebhookEventRecord.created_at))
    return list(rows.scalars().all())


async def _log(db: AsyncSession) -> list[SyncLogEntry]:
    return list((await db.execute(select(SyncLogEntry))).scalars().all())


class TestSignature:
    def test_verify_accepts_prefixed_and_bare_digest(self):
        body = b'{"type":"ContactCreate"}'
        digest = compute_signature("s3cret", body)
        assert verify_signature("s3cret", body, digest)
        assert verify_signature("s3cret", body, f"sha256={digest}")
        assert verify_signature("s3cret", body, digest.upper())

    def test_verify_rejects_missing_or_wrong(self):
        body = b"{}"
        assert not verify_signature("s3cret", body, None)
        assert not verify_signature("s3cret", body, "")
        assert not verify_signature("s3cret", body, compute_signature("other", body))


class TestEvents:
    def test_every_known_entity_event_has_a_handler(self):
        unhandled = {e for e in WebhookEventType if e not in EVENT_HANDLERS}
        assert all(e.value.startswith(("Task", "Note", "Location", "User")) for e in unhandled)

    def test_audit_entity_type(self):
        assert audit_entity_type("ContactTagUpdate") == "contacts"
        assert audit_entity_type("InboundMessage") == "messages"
        assert audit_entity_type("TaskCreate") == "unknown"
        assert audit_entity_type("SomethingNew") == "unknown"

    def test_entity_payload_strips_envelope(self):
        data = {"type": "ContactCreate", "locationId": "l", "eventId": "e", "id": "c1", "email": "a@b.c"}
        assert entity_payload(data) == {"id": "c1", "email": "a@b.c"}


class TestVerificationAndParsing:
    @pytest.mark.asyncio
    async def test_bad_signature_rejected_before_any_write(self, db):
        pipeline = WebhookPipeline(db, secret="s3cret")
        with pytest.raises(AuthenticationError):
            await pipeline.process(_body("ContactCreate", "evt_1", id="c1"), "deadbeef")
        assert await _ledger(db) == []

    @pytest.mark.asyncio
    async def test_good_signature_processed(self, db):
        body = _body("ContactCreate", "evt_1", id="c1")
        result = await WebhookPipeline(db, secret="s3cret").process(body, compute_signature("s3cret", body))
        assert result.success

    @pytest.mark.asyncio
    async def test_invalid_json(self, db):
        with pytest.raises(InvalidRequestError):
            await WebhookPipeline(db).process(b"not json")

    @pytest.mark.asyncio
    async def test_missing_location(self, db):
        with pytest.raises(InvalidRequestError):
            await WebhookPipeline(db).process(json.dumps({"type": "ContactCreate", "id": "c1"}).encode())

    @pytest.mark.asyncio
    async def test_non_object_payload(self, db):
        with pytest.raises(InvalidRequestError):
            await WebhookPipeline(db).process(b"[1, 2]")


class TestIdempotency:
    @pytest.mark.asyncio
    async def test_duplicate_event_id_skipped(self, db):
        pipeline = WebhookPipeline(db)
        first = await pipeline.process(_body("ContactCreate", "evt_1", id="c1", firstName="Jane"))
        second = await pipeline.process(_body("ContactCreate", "evt_1", id="c1", firstName="Changed"))

        assert first.action == "create"
        assert second.success is True
        assert second.action == SKIPPED_DUPLICATE
        assert len(await _ledger(db)) == 1
        assert len(await _log(db)) == 1
        contact = await db.get(Contact, "c1")
        assert contact.first_name == "Jane"

    @pytest.mark.asyncio
    async def test_body_digest_used_without_event_id(self, db):
        pipeline = WebhookPipeline(db)
        body = _body("ContactCreate", id="c1")

        await pipeline.process(body)
        again = await pipeline.process(body)

        assert again.action == SKIPPED_DUPLICATE
        ledger = await _ledger(db)
        assert len(ledger) == 1
        envelope, _ = WebhookPipeline.parse(body)
        assert ledger[0].event_id == delivery_id(envelope, body)


class TestContactEvents:
    @pytest.mark.asyncio
    async def test_create_records_ledger_and_audit(self, db, location):
        result = await WebhookPipeline(db).process(
            _body("ContactCreate", "evt_1", id="c1", firstName="Jane", email="jane@example.com")
        )

        assert result.success
        assert result.entity_id == "c1"
        contact = await db.get(Contact, "c1")
        assert contact.name == "Jane"
        assert contact.location_id == LOCATION_ID
        # Envelope "type" must not overwrite the contact type.
        assert contact.type == "lead"

        (record,) = await _ledger(db)
        assert record.processed is True
        assert record.tenant_id == location.tenant_id
        (entry,) = await _log(db)
        assert (entry.entity_type, entry.entity_id, entry.action, entry.source) == ("contacts", "c1", "create", "webhook")

    @pytest.mark.asyncio
    async def test_update_keeps_unsent_fields(self, db):
        pipeline = WebhookPipeline(db)
        await pipeline.process(_body("ContactCreate", "evt_1", id="c1", firstName="Jane", phone="+15550100"))
        await pipeline.process(_body("ContactTagUpdate", "evt_2", id="c1", tags=["hot"]))

        contact = await db.get(Contact, "c1")
        assert contact.tags == ["hot"]
        assert contact.phone == "+15550100"
        assert contact.first_name == "Jane"

    @pytest.mark.asyncio
    async def test_delete_is_soft(self, db):
        pipeline = WebhookPipeline(db)
        await pipeline.process(_body("ContactCreate", "evt_1", id="c1"))
        result = await pipeline.process(_body("ContactDelete", "evt_2", id="c1"))

        assert result.action == "delete"
        contact = await db.get(Contact, "c1")
        assert contact is not None
        assert contact.is_deleted is True


class TestOpportunityEvents:
    @pytest.mark.asyncio
    async def test_status_won_then_reopened(self, db):
        pipeline = WebhookPipeline(db)
        await pipeline.process(_body("OpportunityCreate", "evt_1", id="o1", name="Roof"))
        await pipeline.process(_body("OpportunityStatusUpdate", "evt_2", id="o1", status="won"))

        opportunity = await db.get(Opportunity, "o1")
        assert opportunity.status == "won"
        assert opportunity.closed_at is not None
        assert opportunity.name == "Roof"

        await pipeline.process(_body("OpportunityStatusUpdate", "evt_3", id="o1", status="open"))
        assert opportunity.closed_at is None

    @pytest.mark.asyncio
    async def test_delete_is_hard(self, db):
        pipeline = WebhookPipeline(db)
        await pipeline.process(_body("OpportunityCreate", "evt_1", id="o1"))
        await pipeline.process(_body("OpportunityDelete", "evt_2", id="o1"))

        db.expunge_all()
        assert await db.get(Opportunity, "o1") is None


class TestMessageEvents:
    @pytest.mark.asyncio
    async def test_inbound_creates_conversation_and_counts_unread(self, db):
        pipeline = WebhookPipeline(db)
        await pipeline.process(
            _body("InboundMessage", "evt_1", id="m1", conversationId="conv1", contactId="c1", body="Hi")
        )
        await pipeline.process(
            _body("InboundMessage", "evt_2", id="m2", conversationId="conv1", contactId="c1", body="Anyone?")
        )
        await pipeline.process(
            _body("OutboundMessage", "evt_3", id="m3", conversationId="conv1", contactId="c1", body="Yes!")
        )

        conversation = await db.get(Conversation, "conv1")
        assert conversation.unread_count == 2
        assert conversation.last_message_body == "Yes!"
        assert conversation.type == "sms"
        assert (await db.get(Message, "m1")).direction == "inbound"
        assert (await db.get(Message, "m3")).direction == "outbound"

    @pytest.mark.asyncio
    async def test_message_without_conversation_fails_and_is_recorded(self, db):
        result = await WebhookPipeline(db).process(_body("InboundMessage", "evt_1", id="m1", body="Hi"))

        assert result.success is False
        assert "conversationId" in result.error
        (record,) = await _ledger(db)
        assert record.processed is False
        assert record.error_message == result.error
        (entry,) = await _log(db)
        assert entry.action == "failed"
        assert entry.payload["error"] == result.error

    @pytest.mark.asyncio
    async def test_status_update_for_unknown_message_fails(self, db):
        result = await WebhookPipeline(db).process(
            _body("MessageStatusUpdate", "evt_1", messageId="m404", status="read")
        )
        assert result.success is False
        assert "not found" in result.error

    @pytest.mark.asyncio
    async def test_status_update(self, db):
        pipeline = WebhookPipeline(db)
        await pipeline.process(_body("OutboundMessage", "evt_1", id="m1", conversationId="conv1"))
        result = await pipeline.process(_body("MessageStatusUpdate", "evt_2", id="m1", status="read"))

        assert result.success
        assert (await db.get(Message, "m1")).status == "read"


class TestInvoiceEvents:
    @pytest.mark.asyncio
    async def test_paid_zeroes_amount_due(self, db):
        pipeline = WebhookPipeline(db)
        await pipeline.process(_body("InvoiceCreate", "evt_1", id="inv1", amountDue=120, total=120))
        await pipeline.process(_body("InvoicePaid", "evt_2", id="inv1"))

        invoice = await db.get(Invoice, "inv1")
        assert invoice.status == "paid"
        assert invoice.amount_due == 0.0
        assert invoice.total_amount == 120.0

    @pytest.mark.asyncio
    async def test_partially_paid_uses_remaining_amount(self, db):
        pipeline = WebhookPipeline(db)
        await pipeline.process(_body("InvoiceCreate", "evt_1", id="inv1", amountDue=120))
        await pipeline.process(_body("InvoicePartiallyPaid", "evt_2", id="inv1", remainingAmount=20))

        invoice = await db.get(Invoice, "inv1")
        assert invoice.status == "partially_paid"
        assert invoice.amount_due == 20.0

    @pytest.mark.asyncio
    async def test_void_appends_note(self, db):
        pipeline = WebhookPipeline(db)
        await pipeline.process(_body("InvoiceCreate", "evt_1", id="inv1", notes="Net 30"))
        await pipeline.process(_body("InvoiceVoid", "evt_2", id="inv1", reason="duplicate"))

        invoice = await db.get(Invoice, "inv1")
        assert invoice.status == "void"
        assert invoice.notes == "Net 30\nVOIDED: duplicate"


class TestUnhandledEvents:
    @pytest.mark.asyncio
    async def test_task_event_acknowledged(self, db):
        result = await WebhookPipeline(db).process(_body("TaskCreate", "evt_1", id="t1"))

        assert result.success
        assert result.action == UNHANDLED_EVENT_TYPE
        (record,) = await _ledger(db)
        assert record.processed is True
        (entry,) = await _log(db)
        assert entry.entity_type == "unknown"

    @pytest.mark.asyncio
    async def test_unrecognised_type_acknowledged(self, db):
        result = await WebhookPipeline(db).process(_body("BrandNewEvent", "evt_1"))

        assert result.success
        assert result.action == UNHANDLED_EVENT_TYPE
        assert result.to_dict()["eventType"] == "BrandNewEvent"
