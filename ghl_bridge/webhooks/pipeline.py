"""Webhook ingestion: verify, de-duplicate, route, handle, record.

Signature and envelope failures raise so the HTTP layer can reject the
delivery. Everything after that is acknowledged: handler failures are
recorded and reported with ``success=False`` but never bubble up, so the
upstream does not redeliver on application errors.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
import uuid
from dataclasses import dataclass
from typing import Any

from pydantic import ValidationError
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from ..clock import utcnow
from ..config import settings
from ..errors import AuthenticationError, BridgeError, InvalidRequestError
from ..models import Location, WebhookEventRecord
from ..store import write_sync_log
from .events import WebhookEnvelope, WebhookEventType, audit_entity_type, entity_payload
from .handlers import EVENT_HANDLERS, HandlerOutcome, WebhookContext
from .signature import verify_signature

log = logging.getLogger(__name__)

SKIPPED_DUPLICATE = "skipped_duplicate"
UNHANDLED_EVENT_TYPE = "unhandled_event_type"


@dataclass
class WebhookResult:
    success: bool
    event_type: str
    entity_id: str | None = None
    action: str | None = None
    error: str | None = None
    duration_ms: int = 0

    def to_dict(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "success": self.success,
            "eventType": self.event_type,
            "entityId": self.entity_id,
            "action": self.action,
            "duration": self.duration_ms,
        }
        if self.error:
            body["error"] = self.error
        return body


def delivery_id(envelope: WebhookEnvelope, raw_body: bytes) -> str:
    """Idempotency key: the upstream delivery id when sent, else a digest of the body."""
    if envelope.event_id:
        return envelope.event_id
    return hashlib.sha256(raw_body).hexdigest()


class WebhookPipeline:
    def __init__(self, db: AsyncSession, secret: str | None = None):
        self.db = db
        self.secret = secret if secret is not None else settings.webhook_secret

    def verify(self, raw_body: bytes, signature: str | None) -> None:
        if not self.secret:
            log.debug("Webhook secret not configured; skipping signature verification")
            return
        if not verify_signature(self.secret, raw_body, signature):
            raise AuthenticationError("Invalid webhook signature")

    @staticmethod
    def parse(raw_body: bytes) -> tuple[WebhookEnvelope, dict[str, Any]]:
        try:
            data = json.loads(raw_body)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise InvalidRequestError(f"Invalid JSON payload: {exc}") from exc
        if not isinstance(data, dict):
            raise InvalidRequestError("Webhook payload must be a JSON object")
        try:
            envelope = WebhookEnvelope.model_validate(data)
        except ValidationError as exc:
            raise InvalidRequestError(
                "Missing required fields: type, locationId",
                details={"errors": [e["msg"] for e in exc.errors()]},
            ) from exc
        return envelope, data

    async def is_duplicate(self, event_id: str, location_id: str) -> bool:
        stmt = select(WebhookEventRecord.id).where(
            WebhookEventRecord.event_id == event_id,
            WebhookEventRecord.location_id == location_id,
        )
        return (await self.db.execute(stmt)).first() is not None

    async def _tenant_for(self, location_id: str) -> uuid.UUID | None:
        return await self.db.scalar(select(Location.tenant_id).where(Location.id == location_id))

    async def _record(
        self,
        *,
        event_id: str,
        tenant_id: uuid.UUID | None,
        envelope: WebhookEnvelope,
        data: dict[str, Any],
        outcome: HandlerOutcome | None,
        error: str | None = None,
    ) -> None:
        processed = error is None
        self.db.add(
            WebhookEventRecord(
                event_id=event_id,
                tenant_id=tenant_id,
                location_id=envelope.location_id,
                event_type=envelope.type,
                payload=data,
                processed=processed,
                processed_at=utcnow() if processed else None,
                error_message=error,
            )
        )
        payload = dict(data)
        if error:
            payload["error"] = error
        await write_sync_log(
            self.db,
            location_id=envelope.location_id,
            entity_type=audit_entity_type(envelope.type),
            entity_id=(outcome.entity_id if outcome else None) or envelope.id or "unknown",
            action=outcome.action if outcome else "failed",
            source="webhook",
            payload=payload,
        )

    async def process(self, raw_body: bytes, signature: str | None = None) -> WebhookResult:
        started = time.monotonic()
        self.verify(raw_body, signature)
        envelope, data = self.parse(raw_body)

        def finish(**kwargs: Any) -> WebhookResult:
            return WebhookResult(
                event_type=envelope.type,
                duration_ms=int((time.monotonic() - started) * 1000),
                **kwargs,
            )

        event_id = delivery_id(envelope, raw_body)
        if await self.is_duplicate(event_id, envelope.location_id):
            log.info("Duplicate webhook %s for %s; skipping", event_id, envelope.location_id)
            return finish(success=True, entity_id=envelope.id, action=SKIPPED_DUPLICATE)

        tenant_id = await self._tenant_for(envelope.location_id)
        event_type = WebhookEventType.parse(envelope.type)
        handler = EVENT_HANDLERS.get(event_type) if event_type else None

        try:
            if handler is None:
                log.info("Unhandled webhook event type %s", envelope.type)
                outcome = HandlerOutcome(envelope.id, UNHANDLED_EVENT_TYPE)
            else:
                ctx = WebhookContext(
                    db=self.db,
                    event_type=event_type,
                    location_id=envelope.location_id,
                    payload=entity_payload(data),
                )
                outcome = await handler(ctx)
            await self._record(event_id=event_id, tenant_id=tenant_id, envelope=envelope, data=data, outcome=outcome)
            await self.db.commit()
        except IntegrityError:
            # Lost the ledger race to a concurrent delivery of the same event.
            await self.db.rollback()
            log.info("Concurrent duplicate webhook %s for %s", event_id, envelope.location_id)
            return finish(success=True, entity_id=envelope.id, action=SKIPPED_DUPLICATE)
        except Exception as exc:
            await self.db.rollback()
            message = exc.message if isinstance(exc, BridgeError) else str(exc) or exc.__class__.__name__
            log.exception(
                "Webhook %s (%s) failed for location %s: %s", envelope.type, event_id, envelope.location_id, message
            )
            await self._record_failure(event_id, tenant_id, envelope, data, message)
            return finish(success=False, entity_id=envelope.id, error=message)

        log.info(
            "Processed webhook %s for %s: %s %s", envelope.type, envelope.location_id, outcome.action, outcome.entity_id
        )
        return finish(success=True, entity_id=outcome.entity_id, action=outcome.action)

    async def _record_failure(
        self,
        event_id: str,
        tenant_id: uuid.UUID | None,
        envelope: WebhookEnvelope,
        data: dict[str, Any],
        message: str,
    ) -> None:
        try:
            await self._record(
                event_id=event_id, tenant_id=tenant_id, envelope=envelope, data=data, outcome=None, error=message
            )
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            log.exception("Could not record failed webhook %s for %s", event_id, envelope.location_id)
